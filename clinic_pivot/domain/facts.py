"""Fact and Table Schema Definitions.

This module defines the canonical data models for the pivot pipeline. A Fact is
one attribute observation for a patient (long format); a Row is the per-patient
reconciliation of all Facts (wide format).

Architecture:
    - Pure domain models with zero infrastructure dependencies
    - Models are immutable and validated before use
    - Follows Hexagonal Architecture: Domain Core is isolated from Adapters
"""

from typing import Any, Dict, List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

# Patient and clinic identifiers arrive as integers (database ids) or strings (MRNs)
Identifier = Union[int, str]

# One pivoted record: "patient_id" first, then one key per field
Row = Dict[str, Any]

# Key under which every Row carries its patient identifier
PATIENT_ID_KEY = "patient_id"


def normalize_identifier(v: Any) -> Any:
    """Normalize an identifier so that 7, "7" and " 7 " compare equal.

    Strings are stripped; strings made only of digits become integers. Any
    other value is returned unchanged and left to Pydantic to validate.
    """
    if isinstance(v, bool):
        raise ValueError("Identifier cannot be a boolean")
    if isinstance(v, str):
        v = v.strip()
        if v.isdigit():
            return int(v)
    return v


class Fact(BaseModel):
    """One attribute observation for a patient.

    Parameters:
        patient_id: Patient identifier the observation belongs to
        field_name: Name of the observed attribute (becomes a column). The
            source key ``field_nm`` is accepted as an alias. ``patient_id`` is
            rejected because every Row already uses it as its key.
        field_value: Observed value (kept verbatim, may be None)
        clinic_id: Clinic the observation was recorded at
    """

    patient_id: Identifier = Field(..., description="Patient identifier")
    field_name: str = Field(
        ...,
        validation_alias=AliasChoices("field_name", "field_nm"),
        description="Observed attribute name",
    )
    field_value: Optional[Any] = Field(None, description="Observed value")
    clinic_id: Optional[Identifier] = Field(None, description="Clinic identifier")

    model_config = ConfigDict(
        frozen=True,
        str_strip_whitespace=True,
        populate_by_name=True,
    )

    @field_validator("patient_id", mode="before")
    @classmethod
    def validate_patient_id(cls, v: Any) -> Any:
        """Reject empty identifiers and normalize numeric strings."""
        if v is None:
            raise ValueError("patient_id is required")
        v = normalize_identifier(v)
        if v == "":
            raise ValueError("patient_id cannot be empty or whitespace only")
        return v

    @field_validator("clinic_id", mode="before")
    @classmethod
    def validate_clinic_id(cls, v: Any) -> Any:
        if v is None:
            return None
        v = normalize_identifier(v)
        return None if v == "" else v

    @field_validator("field_name")
    @classmethod
    def validate_field_name(cls, v: str) -> str:
        """Field names must be non-empty and must not shadow the row key.

        Raises:
            ValueError: If the name is empty or equals ``patient_id``
        """
        if not v:
            raise ValueError("field_name cannot be empty or whitespace only")
        if v == PATIENT_ID_KEY:
            raise ValueError(f"field_name '{PATIENT_ID_KEY}' is reserved for the row key")
        return v


class FactFilter(BaseModel):
    """Predicates narrowing the Fact sequence before it reaches the builder.

    Only ``clinic_id`` and ``patient_id`` are supported. A falsy value (None,
    0, empty string) means "no predicate" for that key.
    """

    clinic_id: Optional[Identifier] = None
    patient_id: Optional[Identifier] = None

    model_config = ConfigDict(frozen=True)

    @field_validator("clinic_id", "patient_id", mode="before")
    @classmethod
    def normalize(cls, v: Any) -> Any:
        if v is None:
            return None
        return normalize_identifier(v)

    def to_query(self) -> Dict[str, Identifier]:
        """Build the source query holding only the active predicates.

        Returns:
            Dictionary with ``clinic_id`` and/or ``patient_id`` keys
        """
        query: Dict[str, Identifier] = {}
        if self.clinic_id:
            query["clinic_id"] = self.clinic_id
        if self.patient_id:
            query["patient_id"] = self.patient_id
        return query

    def matches(self, fact: Fact) -> bool:
        """Check whether a fact satisfies every active predicate."""
        return all(getattr(fact, key) == value for key, value in self.to_query().items())


class TableLayout(BaseModel):
    """Declared shape of the dense table.

    Parameters:
        field_names: Field universe, in column order
        patient_ids: Patient universe, in row order
        default_value: Value used for every absent field
    """

    field_names: List[str] = Field(default_factory=list, description="Field universe")
    patient_ids: List[Identifier] = Field(default_factory=list, description="Patient universe")
    default_value: Optional[Any] = Field(None, description="Default for absent fields")

    model_config = ConfigDict(frozen=True)

    @field_validator("field_names")
    @classmethod
    def validate_field_names(cls, v: List[str]) -> List[str]:
        names = [name.strip() for name in v]
        if any(not name for name in names):
            raise ValueError("field_names cannot contain empty names")
        if PATIENT_ID_KEY in names:
            raise ValueError(f"field_names cannot contain the reserved key '{PATIENT_ID_KEY}'")
        return names

    @field_validator("patient_ids", mode="before")
    @classmethod
    def validate_patient_ids(cls, v: Any) -> Any:
        if v is None:
            return []
        return [normalize_identifier(item) for item in v]

    @model_validator(mode="after")
    def check_unique(self) -> "TableLayout":
        """Both universes are sets; duplicates would produce duplicate rows or columns."""
        for label, values in (("field_names", self.field_names), ("patient_ids", self.patient_ids)):
            seen = set()
            duplicates = [x for x in values if x in seen or seen.add(x)]
            if duplicates:
                raise ValueError(f"{label} contains duplicates: {duplicates}")
        return self


class PivotReport(BaseModel):
    """Summary of one dense pivot run."""

    fact_count: int = 0
    row_count: int = 0
    field_count: int = 0
    observed_patients: int = 0
    dropped_unknown_patient: int = 0
    dropped_unknown_field: int = 0
    overwritten_values: int = 0
    default_filled: int = 0

    @property
    def dropped_facts(self) -> int:
        return self.dropped_unknown_patient + self.dropped_unknown_field
