"""Domain layer for Clinic-Pivot.

This module contains the fact/table schemas and the pivot logic.
All domain models are pure Python with no external dependencies beyond Pydantic.
"""

from .facts import (
    Fact,
    FactFilter,
    PivotReport,
    Row,
    TableLayout,
)

__all__ = [
    "Fact",
    "FactFilter",
    "PivotReport",
    "Row",
    "TableLayout",
]
