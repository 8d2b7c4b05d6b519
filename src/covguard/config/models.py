"""Pydantic configuration models with env var support.

Configuration Hierarchy (highest to lowest precedence):
1. Direct kwargs to load_config()
2. Environment variables (COVGUARD__SECTION__KEY)
3. Repo YAML (.covguard/config.yaml)
4. Global YAML (~/.config/covguard/config.yaml)
5. Built-in defaults (this file)

Examples:
    COVGUARD__LOGGING__LEVEL=DEBUG
    COVGUARD__COVERAGE__ENABLED=false
    COVGUARD__VALIDATION__VALIDATION_THRESHOLD=1.0
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
CacheKeyMode = Literal["mtime", "content"]


class LogOutputConfig(BaseModel):
    """Single logging output configuration."""

    format: Literal["json", "console"] = "console"
    destination: str = "stderr"  # stderr, stdout, or absolute file path
    level: LogLevel | None = None  # Inherits from parent if None

    @field_validator("destination")
    @classmethod
    def validate_destination(cls, v: str) -> str:
        if v in ("stderr", "stdout"):
            return v
        path = Path(v).expanduser()
        if not path.is_absolute():
            raise ValueError(f"File destination must be absolute path: {v}")
        return str(path)


class LoggingConfig(BaseModel):
    """Logging configuration.

    Env vars:
        COVGUARD__LOGGING__LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    level: LogLevel = Field(
        default="INFO",
        description="Root log level. DEBUG logs every cache hit and module load.",
    )
    outputs: list[LogOutputConfig] = Field(default_factory=lambda: [LogOutputConfig()])


class CoverageConfig(BaseModel):
    """Instrumentation configuration.

    Env vars:
        COVGUARD__COVERAGE__ENABLED: Master switch for coverage collection
        COVGUARD__COVERAGE__USE_INSTRUMENTATION: Install the instrumenting loader
        COVGUARD__COVERAGE__CACHE_KEY: "mtime" or "content"
    """

    enabled: bool = Field(default=True, description="Collect coverage at all.")
    use_instrumentation: bool = Field(
        default=True,
        description="Rewrite modules at load time. When false, install() is a no-op.",
    )
    include: list[str] = Field(
        default_factory=lambda: ["*.py"],
        description="Glob patterns (matched against the file path) to instrument.",
    )
    exclude: list[str] = Field(
        default_factory=lambda: ["test_*.py", "*_test.py", "conftest.py"],
        description="Glob patterns matched against the file name that are never instrumented.",
    )
    cache_key: CacheKeyMode = Field(
        default="mtime",
        description="Cache signature. 'mtime' stats the file (mtime_ns + size); "
        "'content' hashes the bytes and survives same-tick edits.",
    )
    roots: list[str] = Field(
        default_factory=list,
        description="Directories searched for module files. Empty means the working directory.",
    )


class ValidationConfig(BaseModel):
    """Report validation configuration.

    Env vars:
        COVGUARD__VALIDATION__VALIDATE_REPORTS: Master switch
        COVGUARD__VALIDATION__VALIDATION_THRESHOLD: Percentage tolerance (points)
    """

    validate_reports: bool = True
    validate_line_counts: bool = True
    validate_percentages: bool = True
    validate_file_paths: bool = True
    validate_function_counts: bool = True
    validate_block_counts: bool = True
    validate_cross_module: bool = True
    validation_threshold: float = Field(
        default=0.5,
        description="Allowed difference between reported and recomputed percentages.",
    )
    warn_on_validation_failure: bool = True

    @field_validator("validation_threshold")
    @classmethod
    def validate_threshold(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"validation_threshold must be >= 0, got {v}")
        return v


class CovguardConfig(BaseModel):
    """Root config model for type hints."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    coverage: CoverageConfig = Field(default_factory=CoverageConfig)
    validation: ValidationConfig = Field(default_factory=ValidationConfig)
