"""Table Service.

Fetches facts from a fact source and pivots them into the dense table declared
by a TableLayout. The service is the only place that awaits the source; the
pivot itself is synchronous and filter-agnostic.
"""

import logging
from typing import Any, List, Mapping, Optional, Tuple, Union

from clinic_pivot.domain.facts import FactFilter, PivotReport, Row, TableLayout
from clinic_pivot.domain.ports import FactSourcePort
from clinic_pivot.domain.services.pivot_builder import build_dense_table_with_report

logger = logging.getLogger(__name__)


class TableService:
    """Service producing dense patient tables from a fact source.

    Parameters:
        source: Fact source adapter
        layout: Declared field universe, patient universe and default value

    Example Usage:
        ```python
        service = TableService(InMemoryFactSource(facts), TableLayout(...))
        rows = await service.get_table_data({"clinic_id": 1})
        ```
    """

    def __init__(self, source: FactSourcePort, layout: TableLayout):
        self.source = source
        self.layout = layout
        self.last_report: Optional[PivotReport] = None

    async def get_table_data_with_report(
        self,
        filters: Union[FactFilter, Mapping[str, Any], None] = None,
    ) -> Tuple[List[Row], PivotReport]:
        """Fetch the filtered facts once and build the dense table.

        Parameters:
            filters: FactFilter or a mapping with optional clinic_id/patient_id

        Returns:
            Tuple of (rows, report)
        """
        fact_filter = filters if isinstance(filters, FactFilter) else FactFilter(**(filters or {}))
        logger.info(f"Fetching facts with query {fact_filter.to_query()}")

        facts = await self.source.fetch(fact_filter)
        rows, report = build_dense_table_with_report(facts, self.layout)

        logger.info(
            f"Built table: {report.row_count} rows x {report.field_count} fields "
            f"from {report.fact_count} facts",
            extra={"extra_fields": {**report.model_dump(), "dropped_facts": report.dropped_facts}},
        )
        self.last_report = report
        return rows, report

    async def get_table_data(
        self,
        filters: Union[FactFilter, Mapping[str, Any], None] = None,
    ) -> List[Row]:
        """Fetch the filtered facts once and build the dense table.

        Returns:
            List[Row]: One row per patient of the layout, in layout order
        """
        rows, _ = await self.get_table_data_with_report(filters)
        return rows
