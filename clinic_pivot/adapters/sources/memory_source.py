"""In-memory fact source.

Holds a fixed list of records and applies the filter in Python. Used for
tests, for demos and wherever facts are already loaded.
"""

import logging
from typing import Any, Iterable, List, Optional

from clinic_pivot.domain.facts import Fact, FactFilter
from clinic_pivot.domain.ports import FactSourcePort
from clinic_pivot.domain.services.coercion import iter_facts

logger = logging.getLogger(__name__)

# Sample results as they come back from the clinic results collection
SAMPLE_FACTS = [
    {"patient_id": 1, "field_nm": "a", "field_value": "1", "clinic_id": 1},
    {"patient_id": 1, "field_nm": "b", "field_value": "2", "clinic_id": 1},
    {"patient_id": 3, "field_nm": "a", "field_value": "3", "clinic_id": 1},
]


class InMemoryFactSource(FactSourcePort):
    """Fact source backed by a list.

    Parameters:
        records: Facts or fact mappings (defaults to SAMPLE_FACTS). Records are
            validated on every fetch, so a bad record surfaces as
            InvalidRecordError at fetch time.
    """

    def __init__(self, records: Optional[Iterable[Any]] = None):
        self.records: List[Any] = list(records if records is not None else SAMPLE_FACTS)
        self.adapter_name = "memory_source"

    def read_records(self) -> List[Any]:
        return list(self.records)

    async def fetch(self, filters: Optional[FactFilter] = None) -> List[Fact]:
        facts = [fact for fact in iter_facts(self.records) if filters is None or filters.matches(fact)]
        logger.debug(f"In-memory source matched {len(facts)} of {len(self.records)} records")
        return facts

    def can_read(self, source: str) -> bool:
        return source == ":memory:"

    def get_source_info(self) -> Optional[dict]:
        return {"format": "memory", "location": ":memory:", "record_count": len(self.records)}
