"""Pivot Builder Service.

Reshapes long-format Facts (one observation per record) into wide-format Rows
(one record per patient, one key per field).

Three entry points:
    - pivot_contiguous: streaming pass, a new row starts whenever the patient id
      changes from the previous fact. Input must already be grouped by patient.
    - group_by_patient: explicit group-by keyed on patient id. Input order does
      not matter.
    - build_dense_table: group-by, then reconcile against a declared layout so
      every patient in the layout gets a row and every row has every field.

Merge rule everywhere: the last fact for a (patient, field) pair wins.

Architecture:
    - Pure domain service with no infrastructure dependencies
    - Each call owns its accumulator; nothing is shared between calls
"""

import logging
from collections import OrderedDict
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from clinic_pivot.domain.facts import (
    PATIENT_ID_KEY,
    Fact,
    Identifier,
    PivotReport,
    Row,
    TableLayout,
)
from clinic_pivot.domain.ports import NonContiguousGroupError
from clinic_pivot.domain.services.coercion import coerce_facts, iter_facts

logger = logging.getLogger(__name__)


def pivot_contiguous(facts: Iterable[Any], require_contiguous: bool = False) -> Iterator[Row]:
    """Merge each contiguous run of same-patient facts into one row.

    Rows are yielded lazily, in the order their runs start. The input is not
    re-sorted: if a patient id reappears after another patient's run, it starts
    a second row for that patient.

    Parameters:
        facts: Facts (or fact mappings) grouped by patient id
        require_contiguous: Raise instead of splitting when a patient id
            reappears non-contiguously

    Yields:
        Row: ``{"patient_id": id, field: value, ...}`` with fields in order of
        first occurrence within the run

    Raises:
        InvalidRecordError: If a record is malformed
        NonContiguousGroupError: If require_contiguous is set and a patient id
            reappears after its run ended
    """
    row: Row = {}
    current_id: Optional[Identifier] = None
    closed_ids = set()

    for index, fact in enumerate(iter_facts(facts)):
        if not row or fact.patient_id != current_id:
            if fact.patient_id in closed_ids:
                message = (
                    f"Patient {fact.patient_id!r} reappears at fact {index} after its "
                    "group ended; input is not grouped by patient"
                )
                if require_contiguous:
                    raise NonContiguousGroupError(message, patient_id=fact.patient_id, index=index)
                logger.warning(message + "; starting a new row")
            if row:
                closed_ids.add(current_id)
                yield row
            row = {PATIENT_ID_KEY: fact.patient_id}
            current_id = fact.patient_id

        row[fact.field_name] = fact.field_value

    if row:
        yield row


def _group(facts: List[Fact]) -> Tuple["OrderedDict[Identifier, Dict[str, Any]]", int]:
    """Group validated facts by patient, counting last-write-wins overwrites."""
    groups: "OrderedDict[Identifier, Dict[str, Any]]" = OrderedDict()
    overwritten = 0

    for fact in facts:
        fields = groups.setdefault(fact.patient_id, {})
        if fact.field_name in fields:
            overwritten += 1
        fields[fact.field_name] = fact.field_value

    return groups, overwritten


def group_by_patient(facts: Iterable[Any]) -> "OrderedDict[Identifier, Dict[str, Any]]":
    """Group facts into one partial row per patient, regardless of input order.

    Parameters:
        facts: Facts (or fact mappings) in any order

    Returns:
        OrderedDict mapping patient id (in first-seen order) to a dict of the
        fields observed for that patient. The patient id is the key only; it is
        not repeated inside the field dict.

    Raises:
        InvalidRecordError: If a record is malformed
    """
    groups, _ = _group(coerce_facts(facts))
    return groups


def build_dense_table_with_report(
    facts: Iterable[Any],
    layout: TableLayout,
) -> Tuple[List[Row], PivotReport]:
    """Build the dense table and a report of what happened to the input.

    Facts whose patient id is not in ``layout.patient_ids`` or whose field name
    is not in ``layout.field_names`` are dropped: reconciliation only walks the
    declared universes. The drops are counted in the report.

    Parameters:
        facts: Facts (or fact mappings) in any order
        layout: Declared field universe, patient universe and default value

    Returns:
        Tuple of (rows, report). Exactly one row per id in ``layout.patient_ids``,
        in that order; each row is ``patient_id`` followed by every field of
        ``layout.field_names`` in that order.

    Raises:
        InvalidRecordError: If a record is malformed
    """
    fact_list = coerce_facts(facts)
    groups, overwritten = _group(fact_list)

    known_patients = set(layout.patient_ids)
    known_fields = set(layout.field_names)
    dropped_patient = sum(1 for fact in fact_list if fact.patient_id not in known_patients)
    dropped_field = sum(
        1 for fact in fact_list
        if fact.patient_id in known_patients and fact.field_name not in known_fields
    )

    rows: List[Row] = []
    default_filled = 0
    for patient_id in layout.patient_ids:
        observed = groups.get(patient_id, {})
        row: Row = {PATIENT_ID_KEY: patient_id}
        for field_name in layout.field_names:
            if field_name in observed:
                row[field_name] = observed[field_name]
            else:
                row[field_name] = layout.default_value
                default_filled += 1
        rows.append(row)

    report = PivotReport(
        fact_count=len(fact_list),
        row_count=len(rows),
        field_count=len(layout.field_names),
        observed_patients=sum(1 for patient_id in layout.patient_ids if patient_id in groups),
        dropped_unknown_patient=dropped_patient,
        dropped_unknown_field=dropped_field,
        overwritten_values=overwritten,
        default_filled=default_filled,
    )

    if report.dropped_facts:
        logger.debug(
            f"Dropped {report.dropped_facts} facts outside the table layout "
            f"({dropped_patient} unknown patient, {dropped_field} unknown field)"
        )

    return rows, report


def build_dense_table(facts: Iterable[Any], layout: TableLayout) -> List[Row]:
    """Build the dense table for a layout. See build_dense_table_with_report."""
    rows, _ = build_dense_table_with_report(facts, layout)
    return rows
