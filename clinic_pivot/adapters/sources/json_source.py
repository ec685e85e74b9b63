"""JSON Fact Source Adapter.

Reads a JSON document holding an array of fact objects, or an object with the
array under a "results" key (the shape of a results collection export).
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, List, Optional

from clinic_pivot.domain.facts import Fact, FactFilter
from clinic_pivot.domain.ports import (
    FactSourcePort,
    SourceError,
    SourceNotFoundError,
    UnsupportedSourceError,
)
from clinic_pivot.domain.services.coercion import iter_facts

logger = logging.getLogger(__name__)


class JSONFactSource(FactSourcePort):
    """JSON fact source.

    Parameters:
        path: Path to the JSON file
        records_key: Key holding the fact array when the document is an object
    """

    def __init__(self, path: str, records_key: str = "results"):
        self.path = Path(path)
        self.records_key = records_key
        self.adapter_name = "json_source"

    def can_read(self, source: str) -> bool:
        if not source:
            return False
        return Path(source).suffix.lower() == ".json"

    def get_source_info(self) -> Optional[dict]:
        if not self.path.exists():
            return None
        return {
            "format": "json",
            "location": str(self.path),
            "size": self.path.stat().st_size,
        }

    def read_records(self) -> List[Any]:
        """Load the raw fact records from the document."""
        if not self.path.exists():
            raise SourceNotFoundError(f"JSON source not found: {self.path}", source=str(self.path))

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                raw_data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise SourceError(
                f"Failed to parse JSON source: {str(e)}",
                operation="fetch",
                details={"path": str(self.path)},
            ) from e

        if isinstance(raw_data, dict):
            raw_data = raw_data.get(self.records_key)
        if not isinstance(raw_data, list):
            raise UnsupportedSourceError(
                f"JSON source must hold an array of facts or an object with a '{self.records_key}' array",
                source=str(self.path),
                adapter=self.adapter_name,
            )
        return raw_data

    def _read(self, filters: Optional[FactFilter]) -> List[Fact]:
        records = self.read_records()
        facts = [fact for fact in iter_facts(records) if filters is None or filters.matches(fact)]
        logger.info(f"Read {len(facts)} facts from {self.path} ({len(records)} records scanned)")
        return facts

    async def fetch(self, filters: Optional[FactFilter] = None) -> List[Fact]:
        return await asyncio.to_thread(self._read, filters)
