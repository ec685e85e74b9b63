"""Domain Ports - Abstract Contracts for Fact Retrieval.

This module defines the Port interfaces (abstract contracts) that Adapters must implement,
together with the Result type and the exception hierarchy shared by every layer.
Following Hexagonal Architecture, the Domain Core defines what it needs, not how it's provided.

Architecture:
    - Pure abstract interfaces with zero infrastructure dependencies
    - Adapters (in-memory, CSV, JSON, DuckDB) implement these ports
    - Domain Core is isolated from data source specifics
    - The pivot builder awaits the fact source exactly once per table
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Generic, Iterable, List, Optional, TypeVar, Union

from clinic_pivot.domain.facts import Fact, FactFilter, Identifier

# Type variable for Result generic
T = TypeVar('T')


# ============================================================================
# Result Type for Success/Failure Communication
# ============================================================================

@dataclass(frozen=True)
class Result(Generic[T]):
    """Result type for communicating success or failure without exceptions.

    Used where a caller wants to see every bad record at once (for example the
    ``validate`` CLI command) instead of stopping at the first one.

    Attributes:
        success: True if the operation succeeded, False otherwise
        value: The successful result value (only present if success=True)
        error: Error information (only present if success=False)
        error_type: Type of error (InvalidRecordError, SourceNotFoundError, etc.)
        error_details: Additional error context (source, record_index, etc.)

    Example:
        ```python
        result = Result.success_result(fact)
        if result.is_success():
            facts.append(result.value)
        ```
    """

    success: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    error_details: Optional[dict] = None

    @classmethod
    def success_result(cls, value: T) -> 'Result[T]':
        """Create a successful result.

        Parameters:
            value: The successful result value

        Returns:
            Result: Success result with the value
        """
        return cls(success=True, value=value)

    @classmethod
    def failure_result(
        cls,
        error: Union[str, Exception],
        error_type: Optional[str] = None,
        error_details: Optional[dict] = None
    ) -> 'Result[T]':
        """Create a failure result.

        Parameters:
            error: Error message or exception
            error_type: Type of error (defaults to the exception class name)
            error_details: Additional context (source, record_index, etc.)

        Returns:
            Result: Failure result with error information
        """
        error_message = str(error) if isinstance(error, Exception) else error
        error_type_name = error_type or (type(error).__name__ if isinstance(error, Exception) else "UnknownError")

        return cls(
            success=False,
            value=None,
            error=error_message,
            error_type=error_type_name,
            error_details=error_details or {}
        )

    def is_success(self) -> bool:
        """Check if result is successful."""
        return self.success

    def is_failure(self) -> bool:
        """Check if result is a failure."""
        return not self.success


# ============================================================================
# Custom Exception Hierarchy
# ============================================================================

class PivotError(Exception):
    """Base exception for all pivot-related errors."""
    pass


class InvalidRecordError(PivotError):
    """Raised when a record cannot be read as a Fact.

    A record missing ``patient_id`` or ``field_name`` (or one that is not a
    mapping at all) would corrupt the row it lands in, so the builder fails
    fast instead.

    Attributes:
        record_index: Position of the record in the input sequence
        record: The offending raw record
        details: Validation messages keyed by field
    """

    def __init__(
        self,
        message: str,
        record_index: Optional[int] = None,
        record: Any = None,
        details: Optional[dict] = None
    ):
        super().__init__(message)
        self.record_index = record_index
        self.record = record
        self.details = details or {}


class NonContiguousGroupError(PivotError):
    """Raised when a patient id reappears after its run of facts has ended.

    Only raised by the stream pivot when contiguity is required.

    Attributes:
        patient_id: The patient id that reappeared
        index: Position of the fact that reopened the group
    """

    def __init__(self, message: str, patient_id: Optional[Identifier] = None, index: Optional[int] = None):
        super().__init__(message)
        self.patient_id = patient_id
        self.index = index


class LayoutError(PivotError):
    """Raised when a table layout cannot be built from configuration."""
    pass


class SourceNotFoundError(PivotError):
    """Raised when the fact source cannot be found or accessed.

    Attributes:
        source: The source identifier that was not found
    """

    def __init__(self, message: str, source: Optional[str] = None):
        super().__init__(message)
        self.source = source


class UnsupportedSourceError(PivotError):
    """Raised when no fact source adapter can read the given location.

    Attributes:
        source: The source identifier that is unsupported
        adapter: The adapter that cannot handle the source
    """

    def __init__(self, message: str, source: Optional[str] = None, adapter: Optional[str] = None):
        super().__init__(message)
        self.source = source
        self.adapter = adapter


class SourceError(PivotError):
    """Raised when a fact source fails while reading or writing.

    Attributes:
        operation: The operation that failed (connect, fetch, insert, ...)
        details: Additional error context
    """

    def __init__(self, message: str, operation: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(message)
        self.operation = operation
        self.details = details or {}


# ============================================================================
# Ports
# ============================================================================

class FactSourcePort(ABC):
    """Abstract contract for fact source adapters.

    This port defines how the Domain Core wants to receive Facts, regardless of
    whether they come from memory, a CSV/JSON export or a database table.

    Key Principles:
        - Filtered: Adapters apply the FactFilter predicates themselves
        - Validated: Adapters return Fact instances, never raw dictionaries
        - Ordered: Facts are returned in source order; nothing is re-sorted
          unless the source defines an order (the DuckDB adapter does)

    Example Usage:
        ```python
        source = CSVFactSource("results.csv")
        facts = await source.fetch(FactFilter(clinic_id=1))
        ```
    """

    @abstractmethod
    async def fetch(self, filters: Optional[FactFilter] = None) -> List[Fact]:
        """Fetch the facts matching the filter.

        Parameters:
            filters: Optional predicates; None means every fact

        Returns:
            List[Fact]: Validated facts in source order

        Raises:
            SourceNotFoundError: If the source doesn't exist
            InvalidRecordError: If a stored record cannot be read as a Fact
            SourceError: If the source fails while being read
        """
        pass

    @abstractmethod
    def read_records(self) -> Iterable[Any]:
        """Return the unfiltered raw records, before they are validated as Facts.

        Used to report every malformed record at once instead of failing on the
        first one.
        """
        pass

    @abstractmethod
    def can_read(self, source: str) -> bool:
        """Check if this adapter can handle the given source location.

        Parameters:
            source: Source identifier to check

        Returns:
            bool: True if this adapter can handle the source, False otherwise
        """
        pass

    def get_source_info(self) -> Optional[dict]:
        """Get metadata about the source (optional, adapter-specific).

        Returns:
            Optional[dict]: Metadata such as 'format', 'location' and 'size'.
            Returns None if metadata cannot be determined.
        """
        return None

    def close(self) -> None:
        """Release any resources held by the adapter."""
        pass
