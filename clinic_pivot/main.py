"""Pipeline entry points for Clinic-Pivot.

This module wires configuration, fact sources and the pivot builder together.
The CLI and library callers go through these functions.

Architecture:
    - Follows Hexagonal Architecture principles
    - Fact sources are selected automatically based on the source location
    - Table layout is declared via the configuration manager
"""

import asyncio
import logging
from typing import Any, List, Mapping, Optional, Tuple, Union

from clinic_pivot.adapters.sources import CSVFactSource, DuckDBFactSource, get_fact_source
from clinic_pivot.domain.facts import FactFilter, PivotReport, Row
from clinic_pivot.domain.ports import FactSourcePort
from clinic_pivot.domain.services import TableService, pivot_contiguous
from clinic_pivot.infrastructure.config_manager import PivotConfig, get_pivot_config
from clinic_pivot.infrastructure.settings import settings

logger = logging.getLogger(__name__)

Filters = Union[FactFilter, Mapping[str, Any], None]


def create_fact_source(config: Optional[PivotConfig] = None, source: Optional[str] = None) -> FactSourcePort:
    """Create the fact source adapter for a configuration.

    Parameters:
        config: Pivot configuration (defaults to the environment)
        source: Location overriding ``config.source``

    Returns:
        FactSourcePort: Configured adapter instance
    """
    config = config or get_pivot_config()
    location = source or config.source

    fact_source = get_fact_source(location)
    if isinstance(fact_source, DuckDBFactSource) and config.source_table != fact_source.table:
        fact_source = DuckDBFactSource(location, table=config.source_table)
    elif isinstance(fact_source, CSVFactSource):
        fact_source.chunk_size = settings.chunk_size

    logger.info(f"Using {type(fact_source).__name__} for {location}")
    return fact_source


async def get_table_data(
    filters: Filters = None,
    config: Optional[PivotConfig] = None,
    source: Optional[FactSourcePort] = None,
) -> Tuple[List[Row], PivotReport]:
    """Fetch filtered facts and pivot them into the configured dense table.

    Parameters:
        filters: Optional clinic_id / patient_id predicates
        config: Pivot configuration (defaults to the environment)
        source: Fact source (defaults to the configured one)

    Returns:
        Tuple of (rows, report)
    """
    config = config or get_pivot_config()
    owns_source = source is None
    source = source or create_fact_source(config)

    try:
        service = TableService(source, config.to_layout())
        return await service.get_table_data_with_report(filters)
    finally:
        if owns_source:
            source.close()


def run_table(
    filters: Filters = None,
    config: Optional[PivotConfig] = None,
    source: Optional[FactSourcePort] = None,
) -> Tuple[List[Row], PivotReport]:
    """Synchronous wrapper around get_table_data."""
    return asyncio.run(get_table_data(filters, config=config, source=source))


def run_stream(
    filters: Filters = None,
    config: Optional[PivotConfig] = None,
    source: Optional[FactSourcePort] = None,
    require_contiguous: bool = False,
) -> List[Row]:
    """Fetch filtered facts and pivot them with the contiguous stream pivot.

    Returns:
        List[Row]: One row per contiguous run of same-patient facts
    """
    config = config or get_pivot_config()
    owns_source = source is None
    source = source or create_fact_source(config)
    fact_filter = filters if isinstance(filters, FactFilter) else FactFilter(**(filters or {}))

    try:
        facts = asyncio.run(source.fetch(fact_filter))
        return list(pivot_contiguous(facts, require_contiguous=require_contiguous))
    finally:
        if owns_source:
            source.close()
