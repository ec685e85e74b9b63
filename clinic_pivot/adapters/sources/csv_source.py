"""CSV Fact Source Adapter.

This adapter implements the FactSourcePort contract for long-format CSV exports
(one fact per line). The file is read with pandas in chunks so large exports
don't have to fit in memory as raw text and as Facts at the same time.

Expected columns:
    patient_id, field_nm (or field_name), field_value, clinic_id (optional)

Architecture:
    - Implements FactSourcePort (Hexagonal Architecture)
    - Isolated from domain core - only depends on ports and models
    - Every cell is read as text; identifiers are normalized by the Fact model
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

import pandas as pd

from clinic_pivot.domain.facts import Fact, FactFilter
from clinic_pivot.domain.ports import (
    FactSourcePort,
    SourceError,
    SourceNotFoundError,
    UnsupportedSourceError,
)
from clinic_pivot.domain.services.coercion import iter_facts

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("patient_id",)
FIELD_NAME_COLUMNS = ("field_name", "field_nm")


class CSVFactSource(FactSourcePort):
    """CSV fact source with chunked pandas reading.

    Parameters:
        path: Path to the CSV file
        delimiter: CSV delimiter character (default: ',')
        chunk_size: Number of rows read per chunk (default: 10000)
    """

    def __init__(self, path: str, delimiter: str = ',', chunk_size: int = 10000):
        self.path = Path(path)
        self.delimiter = delimiter
        self.chunk_size = chunk_size
        self.adapter_name = "csv_source"

    def can_read(self, source: str) -> bool:
        if not source:
            return False
        return Path(source).suffix.lower() in (".csv", ".tsv")

    def get_source_info(self) -> Optional[dict]:
        if not self.path.exists():
            return None
        return {
            "format": "csv",
            "location": str(self.path),
            "size": self.path.stat().st_size,
        }

    def _check_columns(self, columns: List[str]) -> None:
        missing = [column for column in REQUIRED_COLUMNS if column not in columns]
        if not any(column in columns for column in FIELD_NAME_COLUMNS):
            missing.append("field_nm")
        if missing:
            raise UnsupportedSourceError(
                f"CSV source is missing required columns: {missing}",
                source=str(self.path),
                adapter=self.adapter_name,
            )

    def read_records(self) -> Iterator[Dict[str, Any]]:
        """Yield raw CSV records, one dict per line, with empty cells as None.

        Raises:
            SourceNotFoundError: If the file doesn't exist
            UnsupportedSourceError: If required columns are missing
            SourceError: If the file cannot be parsed
        """
        if not self.path.exists():
            raise SourceNotFoundError(f"CSV source not found: {self.path}", source=str(self.path))

        try:
            chunks = pd.read_csv(
                self.path,
                sep=self.delimiter,
                dtype=str,
                keep_default_na=False,
                chunksize=self.chunk_size,
            )
            for chunk in chunks:
                self._check_columns(list(chunk.columns))
                for record in chunk.to_dict(orient="records"):
                    # Empty cells are absent values, not empty strings
                    yield {key: (None if value == "" else value) for key, value in record.items()}
        except pd.errors.EmptyDataError:
            logger.warning(f"CSV source is empty: {self.path}")
        except (pd.errors.ParserError, UnicodeDecodeError) as e:
            raise SourceError(
                f"Failed to parse CSV source: {str(e)}",
                operation="fetch",
                details={"path": str(self.path)},
            ) from e

    def _read(self, filters: Optional[FactFilter]) -> List[Fact]:
        facts = [
            fact for fact in iter_facts(self.read_records())
            if filters is None or filters.matches(fact)
        ]
        logger.info(f"Read {len(facts)} facts from {self.path}")
        return facts

    async def fetch(self, filters: Optional[FactFilter] = None) -> List[Fact]:
        return await asyncio.to_thread(self._read, filters)
