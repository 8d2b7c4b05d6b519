"""Config module exports."""

from covguard.config.loader import load_config
from covguard.config.models import (
    CoverageConfig,
    CovguardConfig,
    LoggingConfig,
    ValidationConfig,
)

__all__ = [
    "load_config",
    "CovguardConfig",
    "CoverageConfig",
    "LoggingConfig",
    "ValidationConfig",
]
