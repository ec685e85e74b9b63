"""Table export helpers.

Convert pivoted rows to a pandas DataFrame and write them to CSV or JSON.
Column order follows the rows: ``patient_id`` first, then fields in row order.
"""

import json
import logging
from pathlib import Path
from typing import List, Optional, Sequence

import pandas as pd

from clinic_pivot.domain.facts import PATIENT_ID_KEY, Row

logger = logging.getLogger(__name__)


def table_columns(rows: Sequence[Row]) -> List[str]:
    """Collect column names across rows, in order of first appearance.

    Stream-variant rows can have different field sets; the union keeps the
    first row's order and appends new fields as they appear.
    """
    columns: List[str] = [PATIENT_ID_KEY]
    seen = {PATIENT_ID_KEY}
    for row in rows:
        for key in row:
            if key not in seen:
                seen.add(key)
                columns.append(key)
    return columns


def rows_to_dataframe(rows: Sequence[Row], columns: Optional[List[str]] = None) -> pd.DataFrame:
    """Build a DataFrame with one line per row.

    Parameters:
        rows: Pivoted rows
        columns: Explicit column order; defaults to table_columns(rows)

    Returns:
        pd.DataFrame: Missing keys (stream-variant rows) become None
    """
    columns = columns or table_columns(rows)
    return pd.DataFrame(
        [[row.get(column) for column in columns] for row in rows],
        columns=columns,
        dtype=object,
    )


def export_rows(rows: Sequence[Row], path: str, columns: Optional[List[str]] = None) -> Path:
    """Write rows to a CSV or JSON file, chosen by extension.

    Parameters:
        rows: Pivoted rows
        path: Output path ending in .csv or .json
        columns: Explicit column order

    Returns:
        Path: The written file

    Raises:
        ValueError: If the extension is not .csv or .json
    """
    output = Path(path)
    extension = output.suffix.lower()
    columns = columns or table_columns(rows)

    if extension == ".csv":
        rows_to_dataframe(rows, columns).to_csv(output, index=False)
    elif extension == ".json":
        records = [{column: row.get(column) for column in columns} for row in rows]
        with open(output, 'w', encoding='utf-8') as f:
            json.dump(records, f, indent=2, default=str)
    else:
        raise ValueError(f"Unsupported export format: {extension or path}. Use .csv or .json")

    logger.info(f"Exported {len(rows)} rows to {output}")
    return output
