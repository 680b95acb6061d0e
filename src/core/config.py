"""Runtime configuration model for sevenimport.

This module owns all environment variable parsing and validation.
Other modules consume a typed config object instead of raw env reads.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import os

from core.constants import DEFAULT_LOG_LEVEL
from core.errors import SevenImportConfigError

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off")


@dataclass(frozen=True)
class SevenImportConfig:
    """Validated runtime configuration.

    Attributes:
        verify_crc: Verify folder, substream, and pack-stream CRCs.
        allow_bytecode: Consider ``.pyc`` entries during module resolution.
        retain_decoded_folders: Keep decoded folders cached after a load.
        log_level: Minimum level for structured log events.
    """

    verify_crc: bool = True
    allow_bytecode: bool = True
    retain_decoded_folders: bool = True
    log_level: str = DEFAULT_LOG_LEVEL

    @classmethod
    def from_env(cls) -> "SevenImportConfig":
        """Build config from process environment variables.

        Returns:
            A validated config object.

        Raises:
            SevenImportConfigError: If environment values are invalid.
        """
        return cls(
            verify_crc=_parse_flag("SEVENIMPORT_VERIFY_CRC", True),
            allow_bytecode=_parse_flag("SEVENIMPORT_ALLOW_BYTECODE", True),
            retain_decoded_folders=_parse_flag("SEVENIMPORT_RETAIN_DECODED_FOLDERS", True),
            log_level=parse_log_level(os.getenv("SEVENIMPORT_LOG_LEVEL", DEFAULT_LOG_LEVEL)),
        )


def _parse_flag(variable_name: str, default_value: bool) -> bool:
    """Parse a boolean environment flag.

    Args:
        variable_name: Environment variable to read.
        default_value: Value used when the variable is unset or blank.

    Returns:
        Parsed flag.

    Raises:
        SevenImportConfigError: If the value is not a recognized boolean.
    """
    raw_value = os.getenv(variable_name)
    if raw_value is None or not raw_value.strip():
        return default_value
    normalized = raw_value.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    raise SevenImportConfigError(
        f"Invalid {variable_name} value: expected a boolean, got '{raw_value}'. "
        f"Set {variable_name} to one of {', '.join(_TRUE_VALUES + _FALSE_VALUES)}."
    )


def parse_log_level(raw_value: str) -> str:
    """Parse the log level environment value."""
    level_name = raw_value.strip().upper()
    if not isinstance(logging.getLevelName(level_name), int):
        raise SevenImportConfigError(
            f"Invalid SEVENIMPORT_LOG_LEVEL value: got '{raw_value}'. "
            "Use DEBUG, INFO, WARNING, ERROR, or CRITICAL."
        )
    return level_name
