"""Domain Services.

This package contains domain services that implement the pivot logic
without infrastructure dependencies.
"""

from clinic_pivot.domain.services.coercion import (
    coerce_fact,
    coerce_facts,
    coerce_facts_safely,
    iter_facts,
)
from clinic_pivot.domain.services.pivot_builder import (
    build_dense_table,
    build_dense_table_with_report,
    group_by_patient,
    pivot_contiguous,
)
from clinic_pivot.domain.services.table_service import TableService

__all__ = [
    'coerce_fact',
    'coerce_facts',
    'coerce_facts_safely',
    'iter_facts',
    'build_dense_table',
    'build_dense_table_with_report',
    'group_by_patient',
    'pivot_contiguous',
    'TableService',
]
