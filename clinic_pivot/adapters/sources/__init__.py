"""Fact source adapters for Clinic-Pivot.

This module contains fact source adapters that implement the FactSourcePort
interface for reading facts from memory, CSV, JSON and DuckDB.
"""

from pathlib import Path

from clinic_pivot.adapters.sources.csv_source import CSVFactSource
from clinic_pivot.adapters.sources.duckdb_source import DuckDBFactSource
from clinic_pivot.adapters.sources.json_source import JSONFactSource
from clinic_pivot.adapters.sources.memory_source import SAMPLE_FACTS, InMemoryFactSource
from clinic_pivot.domain.ports import FactSourcePort, UnsupportedSourceError

__all__ = [
    "CSVFactSource",
    "DuckDBFactSource",
    "JSONFactSource",
    "InMemoryFactSource",
    "SAMPLE_FACTS",
    "get_fact_source",
]


def get_fact_source(source: str, **kwargs) -> FactSourcePort:
    """Factory function to get the appropriate fact source for a location.

    Parameters:
        source: File path (.csv, .tsv, .json, .duckdb, .db) or ':memory:'
            for the built-in sample facts
        **kwargs: Additional arguments passed to the adapter constructor
            - For DuckDB: table
            - For CSV: delimiter, chunk_size
            - For JSON: records_key

    Returns:
        FactSourcePort: Appropriate adapter instance

    Raises:
        UnsupportedSourceError: If no adapter can handle the source

    Example Usage:
        ```python
        source = get_fact_source("results.csv")
        source = get_fact_source("results.duckdb", table="lab_results")
        ```
    """
    if source == ":memory:":
        return InMemoryFactSource(**kwargs)

    extension = Path(source).suffix.lower()

    if extension == ".csv":
        return CSVFactSource(source, **kwargs)
    if extension == ".tsv":
        kwargs.setdefault("delimiter", "\t")
        return CSVFactSource(source, **kwargs)
    if extension == ".json":
        return JSONFactSource(source, **kwargs)
    if extension in (".duckdb", ".db"):
        return DuckDBFactSource(source, **kwargs)

    raise UnsupportedSourceError(
        f"No fact source found for: {source}. Supported formats: CSV, TSV, JSON, DuckDB",
        source=source
    )
