"""Application Settings and Configuration.

This module provides application-wide settings that combine configuration
from the configuration manager with application-specific defaults.
"""

import logging
import os
from typing import Optional

from clinic_pivot import __version__
from clinic_pivot.infrastructure.config_manager import ConfigManager, PivotConfig

logger = logging.getLogger(__name__)

# Application metadata
APP_NAME = "Clinic-Pivot"
APP_VERSION = __version__

# Default chunk size for CSV sources
DEFAULT_CHUNK_SIZE = 10000


def read_chunk_size() -> int:
    """Read CP_CHUNK_SIZE, falling back to DEFAULT_CHUNK_SIZE when it is not a positive integer."""
    raw_value = os.getenv("CP_CHUNK_SIZE")
    if raw_value is None or not raw_value.strip():
        return DEFAULT_CHUNK_SIZE
    try:
        chunk_size = int(raw_value)
    except ValueError:
        chunk_size = 0
    if chunk_size <= 0:
        logger.warning(f"Ignoring CP_CHUNK_SIZE={raw_value!r}: expected a positive integer, using {DEFAULT_CHUNK_SIZE}")
        return DEFAULT_CHUNK_SIZE
    return chunk_size


class Settings:
    """Application settings loaded from configuration manager and environment.

    The pivot configuration is loaded lazily so that importing this module
    never reads the environment layout before the CLI has a chance to override it.
    """

    def __init__(self):
        """Initialize settings from environment."""
        self._pivot_config: Optional[PivotConfig] = None
        self._config_manager: Optional[ConfigManager] = None

        self.app_name = os.getenv("CP_APP_NAME", APP_NAME)
        self.chunk_size = read_chunk_size()

        # Logging
        self.log_level = os.getenv("CP_LOG_LEVEL", "WARNING")
        self.log_json = os.getenv("CP_LOG_JSON", "false").lower() == "true"

    @property
    def config_manager(self) -> ConfigManager:
        """Get configuration manager instance."""
        if self._config_manager is None:
            self._config_manager = ConfigManager.from_environment()
        return self._config_manager

    @property
    def pivot_config(self) -> PivotConfig:
        """Get pivot configuration, loaded on first access."""
        if self._pivot_config is None:
            self._pivot_config = self.config_manager.get_pivot_config()
        return self._pivot_config


# Global settings instance
settings = Settings()
