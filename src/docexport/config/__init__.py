"""Configuration loading and validation for docexport."""

from docexport.config.loader import (
    ConfigLoadError,
    ExportSettings,
    load_config,
    load_settings,
    normalize_paths,
)
from docexport.config.schema import (
    ConfigValidationError,
    ConfigValidationIssue,
    assert_valid_config,
    default_config,
    validate_config,
)

__all__ = [
    "ConfigLoadError",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ExportSettings",
    "assert_valid_config",
    "default_config",
    "load_config",
    "load_settings",
    "normalize_paths",
]
