"""Configuration Manager for Table Layout and Fact Source Settings.

This module loads the declared table layout (field universe, patient universe,
default value) and the fact source location from environment variables or a
JSON file.

Architecture:
    - Follows Hexagonal Architecture: Infrastructure layer isolated from domain
    - Type-safe configuration using Pydantic models
    - Fail-fast validation prevents runtime errors
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator

from clinic_pivot.domain.facts import Identifier, TableLayout, normalize_identifier
from clinic_pivot.domain.ports import LayoutError

logger = logging.getLogger(__name__)

# Table layout used when nothing is configured
DEFAULT_FIELD_NAMES = ["a", "b", "c"]
DEFAULT_PATIENT_IDS = [1, 2, 3, 4, 5]
DEFAULT_VALUE = None
DEFAULT_SOURCE = ":memory:"
DEFAULT_SOURCE_TABLE = "results"


def parse_list(value: Optional[str]) -> Optional[List[str]]:
    """Split a comma separated environment value, dropping blanks.

    Returns:
        List of stripped items, or None if the value is unset
    """
    if value is None:
        return None
    return [item.strip() for item in value.split(",") if item.strip()]


class PivotConfig(BaseModel):
    """Pivot configuration model.

    Parameters:
        field_names: Field universe, in column order
        patient_ids: Patient universe, in row order
        default_value: Value for absent fields (None renders as null)
        source: Fact source location (file path or ':memory:')
        source_table: Table name for database sources
    """

    field_names: List[str] = Field(default_factory=lambda: list(DEFAULT_FIELD_NAMES))
    patient_ids: List[Identifier] = Field(default_factory=lambda: list(DEFAULT_PATIENT_IDS))
    default_value: Optional[Any] = Field(DEFAULT_VALUE, description="Default for absent fields")
    source: str = Field(DEFAULT_SOURCE, description="Fact source location")
    source_table: str = Field(DEFAULT_SOURCE_TABLE, description="Results table name")

    @field_validator("patient_ids", mode="before")
    @classmethod
    def validate_patient_ids(cls, v: Any) -> Any:
        """Accept a comma separated string as well as a list."""
        if isinstance(v, str):
            v = parse_list(v)
        return [normalize_identifier(item) for item in v or []]

    @field_validator("field_names", mode="before")
    @classmethod
    def validate_field_names(cls, v: Any) -> Any:
        """Accept a comma separated string; strip names so they match fact field names."""
        if isinstance(v, str):
            return parse_list(v)
        if isinstance(v, list):
            return [item.strip() if isinstance(item, str) else item for item in v]
        return v

    def to_layout(self) -> TableLayout:
        """Build the TableLayout declared by this configuration.

        Raises:
            LayoutError: If the universes are invalid (duplicates, empty names)
        """
        try:
            return TableLayout(
                field_names=self.field_names,
                patient_ids=self.patient_ids,
                default_value=self.default_value,
            )
        except PydanticValidationError as e:
            raise LayoutError(f"Invalid table layout: {e.errors()[0]['msg']}") from e


class ConfigManager:
    """Configuration manager for the pivot layout and fact source.

    Example Usage:
        ```python
        # Load from environment variables
        config = ConfigManager.from_environment()
        layout = config.get_table_layout()

        # Load from file
        config = ConfigManager.from_file("pivot.json")
        layout = config.get_table_layout()
        ```
    """

    def __init__(self, config_data: Dict[str, Any]):
        """Initialize configuration manager.

        Parameters:
            config_data: Configuration dictionary
        """
        self._config_data = config_data
        self._pivot_config: Optional[PivotConfig] = None

    @classmethod
    def from_environment(cls) -> 'ConfigManager':
        """Load configuration from environment variables.

        Environment Variables:
            - CP_FIELD_NAMES: Comma separated field universe
            - CP_PATIENT_IDS: Comma separated patient universe
            - CP_DEFAULT_VALUE: Default for absent fields (unset means null)
            - CP_SOURCE: Fact source location
            - CP_SOURCE_TABLE: Results table name for database sources

        A .env file in the working directory is loaded first if present.

        Returns:
            ConfigManager instance
        """
        env_path = Path.cwd() / ".env"
        if env_path.exists():
            load_dotenv(env_path)
            logger.debug(f"Loaded environment variables from {env_path}")

        pivot_data: Dict[str, Any] = {}
        field_names = parse_list(os.getenv("CP_FIELD_NAMES"))
        if field_names is not None:
            pivot_data["field_names"] = field_names
        patient_ids = parse_list(os.getenv("CP_PATIENT_IDS"))
        if patient_ids is not None:
            pivot_data["patient_ids"] = patient_ids
        if os.getenv("CP_DEFAULT_VALUE") is not None:
            pivot_data["default_value"] = os.getenv("CP_DEFAULT_VALUE")
        if os.getenv("CP_SOURCE"):
            pivot_data["source"] = os.getenv("CP_SOURCE")
        if os.getenv("CP_SOURCE_TABLE"):
            pivot_data["source_table"] = os.getenv("CP_SOURCE_TABLE")

        return cls({"pivot": pivot_data})

    @classmethod
    def from_file(cls, config_path: str) -> 'ConfigManager':
        """Load configuration from a JSON file.

        The file holds the pivot settings either at the top level or under a
        "pivot" key.

        Parameters:
            config_path: Path to configuration file

        Returns:
            ConfigManager instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config file is invalid
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        try:
            with open(config_file, 'r') as f:
                config_data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in configuration file: {str(e)}")

        if not isinstance(config_data, dict):
            raise ValueError("Configuration file must hold a JSON object")
        if "pivot" not in config_data:
            config_data = {"pivot": config_data}

        return cls(config_data)

    def get_pivot_config(self) -> PivotConfig:
        """Get the validated pivot configuration.

        Raises:
            LayoutError: If the configuration cannot be validated
        """
        if self._pivot_config is None:
            try:
                self._pivot_config = PivotConfig(**self._config_data.get("pivot", {}))
            except PydanticValidationError as e:
                raise LayoutError(f"Invalid pivot configuration: {e.errors()[0]['msg']}") from e
        return self._pivot_config

    def get_table_layout(self) -> TableLayout:
        """Get the TableLayout declared by the configuration."""
        return self.get_pivot_config().to_layout()

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value by key.

        Parameters:
            key: Configuration key (supports dot notation, e.g., "pivot.source")
            default: Default value if key not found

        Returns:
            Configuration value
        """
        keys = key.split(".")
        value = self._config_data

        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
            else:
                return default

        return value if value is not None else default


# ============================================================================
# Convenience Functions
# ============================================================================

def get_pivot_config() -> PivotConfig:
    """Convenience function to get the pivot configuration from environment.

    Returns:
        PivotConfig instance (defaults: fields a,b,c; patients 1-5; null default)
    """
    return ConfigManager.from_environment().get_pivot_config()
