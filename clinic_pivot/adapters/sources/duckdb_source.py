"""DuckDB Fact Source Adapter.

This adapter implements the FactSourcePort contract for a results table held in
DuckDB, an in-process OLAP database. Filters are pushed down into a
parameterised WHERE clause so only matching facts leave the database.

Architecture:
    - Implements FactSourcePort (Hexagonal Architecture)
    - Isolated from domain core - only depends on ports and models
    - Connection is created lazily and reused; queries run in a worker thread
      and are serialized on the connection
    - Identifiers and values are stored as VARCHAR; the Fact model normalizes
      numeric identifiers back to integers on the way out
"""

import asyncio
import logging
import re
import threading
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import duckdb

from clinic_pivot.domain.facts import Fact, FactFilter
from clinic_pivot.domain.ports import (
    FactSourcePort,
    InvalidRecordError,
    Result,
    SourceError,
    SourceNotFoundError,
)
from clinic_pivot.domain.services.coercion import coerce_facts, iter_facts

logger = logging.getLogger(__name__)

DEFAULT_TABLE = "results"

_IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _as_text(value: Any) -> Optional[str]:
    return None if value is None else str(value)


class DuckDBFactSource(FactSourcePort):
    """DuckDB implementation of FactSourcePort.

    Parameters:
        db_path: Path to DuckDB database file (or ':memory:' for in-memory)
        table: Name of the results table (default: 'results')

    Example Usage:
        ```python
        source = DuckDBFactSource("data/results.duckdb")
        facts = await source.fetch(FactFilter(clinic_id=1))
        ```
    """

    def __init__(self, db_path: str = ":memory:", table: str = DEFAULT_TABLE):
        if not _IDENTIFIER_PATTERN.match(table):
            raise SourceError(f"Invalid table name: {table!r}", operation="__init__")

        self.db_path = db_path or ":memory:"
        self.table = table
        self.adapter_name = "duckdb_source"
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._lock = threading.Lock()

        if self.db_path != ":memory:":
            db_path_obj = Path(self.db_path)
            if not db_path_obj.parent.exists():
                raise SourceError(
                    f"Database directory does not exist: {db_path_obj.parent}",
                    operation="__init__"
                )

    def _get_connection(self) -> duckdb.DuckDBPyConnection:
        """Get or create the DuckDB connection."""
        if self._connection is None:
            try:
                self._connection = duckdb.connect(self.db_path)
                logger.info(f"Connected to DuckDB database: {self.db_path}")
            except duckdb.Error as e:
                raise SourceError(
                    f"Failed to connect to DuckDB: {str(e)}",
                    operation="connect",
                    details={"db_path": self.db_path}
                ) from e
        return self._connection

    def can_read(self, source: str) -> bool:
        if not source:
            return False
        return source == ":memory:" or Path(source).suffix.lower() in (".duckdb", ".db")

    def get_source_info(self) -> Optional[dict]:
        info = {"format": "duckdb", "location": self.db_path, "table": self.table}
        if self.db_path != ":memory:" and Path(self.db_path).exists():
            info["size"] = Path(self.db_path).stat().st_size
        return info

    def initialize_schema(self) -> Result[None]:
        """Create the results table and its lookup index if missing.

        Returns:
            Result[None]: Success or failure result
        """
        try:
            conn = self._get_connection()
            conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {self.table} (
                    patient_id VARCHAR NOT NULL,
                    field_nm VARCHAR NOT NULL,
                    field_value VARCHAR,
                    clinic_id VARCHAR
                )
            """)
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{self.table}_clinic_patient "
                f"ON {self.table}(clinic_id, patient_id)"
            )
            logger.info(f"Initialized fact table '{self.table}'")
            return Result.success_result(None)
        except (duckdb.Error, SourceError) as e:
            logger.error(f"Failed to initialize schema: {str(e)}")
            return Result.failure_result(e, error_details={"table": self.table})

    def insert_facts(self, records: Iterable[Any]) -> Result[int]:
        """Append facts to the results table.

        Parameters:
            records: Facts or fact mappings

        Returns:
            Result[int]: Number of facts inserted, or failure information
        """
        try:
            facts = coerce_facts(records)
        except InvalidRecordError as e:
            return Result.failure_result(e, error_details={"table": self.table})

        if not facts:
            return Result.success_result(0)

        try:
            conn = self._get_connection()
            conn.executemany(
                f"INSERT INTO {self.table} (patient_id, field_nm, field_value, clinic_id) VALUES (?, ?, ?, ?)",
                [
                    (
                        _as_text(fact.patient_id),
                        fact.field_name,
                        _as_text(fact.field_value),
                        _as_text(fact.clinic_id),
                    )
                    for fact in facts
                ],
            )
            logger.info(f"Inserted {len(facts)} facts into '{self.table}'")
            return Result.success_result(len(facts))
        except (duckdb.Error, SourceError) as e:
            logger.error(f"Failed to insert facts: {str(e)}")
            return Result.failure_result(e, error_details={"table": self.table, "count": len(facts)})

    def build_query(self, filters: Optional[FactFilter]) -> tuple:
        """Build the SELECT statement and its parameters for a filter.

        Rows come back grouped by patient (insertion order within a patient),
        so the result is also valid input for the stream pivot.

        Returns:
            Tuple of (sql, params)
        """
        query = filters.to_query() if filters is not None else {}
        conditions = [f"{column} = ?" for column in query]
        params = [str(value) for value in query.values()]

        sql = f"SELECT patient_id, field_nm, field_value, clinic_id FROM {self.table}"
        if conditions:
            sql += " WHERE " + " AND ".join(conditions)
        sql += " ORDER BY patient_id, rowid"
        return sql, params

    def read_records(self, filters: Optional[FactFilter] = None) -> List[Dict[str, Any]]:
        """Run the filtered query and return the raw result rows as dicts.

        Raises:
            SourceNotFoundError: If the database file doesn't exist
            SourceError: If the query fails (missing table, bad connection)
        """
        if self.db_path != ":memory:" and not Path(self.db_path).exists():
            raise SourceNotFoundError(f"DuckDB source not found: {self.db_path}", source=self.db_path)

        sql, params = self.build_query(filters)
        try:
            with self._lock:
                cursor = self._get_connection().execute(sql, params)
                columns = [description[0] for description in cursor.description]
                return [dict(zip(columns, values)) for values in cursor.fetchall()]
        except duckdb.Error as e:
            raise SourceError(
                f"Failed to query fact table '{self.table}': {str(e)}",
                operation="fetch",
                details={"db_path": self.db_path},
            ) from e

    def _read(self, filters: Optional[FactFilter]) -> List[Fact]:
        facts = list(iter_facts(self.read_records(filters)))
        logger.info(f"Fetched {len(facts)} facts from '{self.table}'")
        return facts

    async def fetch(self, filters: Optional[FactFilter] = None) -> List[Fact]:
        """Run the query in a worker thread; concurrent fetches share the connection one at a time."""
        return await asyncio.to_thread(self._read, filters)

    def close(self) -> None:
        """Close the database connection."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None
            logger.info("Closed DuckDB connection")
