"""Record coercion: raw mappings to validated Facts.

Every record entering the pivot builder passes through here, so a malformed
record is reported with its position instead of silently corrupting a row.
"""

import logging
from collections.abc import Mapping
from typing import Any, Iterable, Iterator, List

from pydantic import ValidationError as PydanticValidationError

from clinic_pivot.domain.facts import Fact
from clinic_pivot.domain.ports import InvalidRecordError, Result

logger = logging.getLogger(__name__)


def coerce_fact(record: Any, index: int = 0) -> Fact:
    """Turn one raw record into a Fact.

    Parameters:
        record: A Fact or a mapping with patient_id, field_name (or field_nm),
            field_value and clinic_id keys
        index: Position of the record in its sequence, used in error messages

    Returns:
        Fact: The validated fact

    Raises:
        InvalidRecordError: If the record is not a mapping or fails validation
    """
    if isinstance(record, Fact):
        return record

    if not isinstance(record, Mapping):
        raise InvalidRecordError(
            f"Record {index} is not a mapping: {type(record).__name__}",
            record_index=index,
            record=record,
        )

    try:
        return Fact.model_validate(dict(record))
    except PydanticValidationError as e:
        details = {
            ".".join(str(part) for part in error["loc"]) or "record": error["msg"]
            for error in e.errors()
        }
        raise InvalidRecordError(
            f"Record {index} is not a valid fact: {details}",
            record_index=index,
            record=record,
            details=details,
        ) from e


def iter_facts(records: Iterable[Any]) -> Iterator[Fact]:
    """Lazily coerce a record sequence, failing on the first bad record."""
    for index, record in enumerate(records):
        yield coerce_fact(record, index)


def coerce_facts(records: Iterable[Any]) -> List[Fact]:
    """Coerce a whole record sequence, failing on the first bad record."""
    return list(iter_facts(records))


def coerce_facts_safely(records: Iterable[Any]) -> Iterator[Result[Fact]]:
    """Coerce every record, reporting failures as Results instead of raising.

    Yields:
        Result[Fact]: One result per input record, in input order
    """
    for index, record in enumerate(records):
        try:
            yield Result.success_result(coerce_fact(record, index))
        except InvalidRecordError as e:
            logger.warning(f"Rejected record {index}: {e}")
            yield Result.failure_result(
                e,
                error_details={"record_index": index, **e.details},
            )
