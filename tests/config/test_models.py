"""Tests for config models."""

import pytest
from pydantic import ValidationError

from covguard.config.models import (
    CoverageConfig,
    CovguardConfig,
    LogOutputConfig,
    ValidationConfig,
)


class TestCoverageConfig:
    def test_defaults(self) -> None:
        config = CoverageConfig()
        assert config.enabled is True
        assert config.use_instrumentation is True
        assert config.include == ["*.py"]
        assert "test_*.py" in config.exclude
        assert config.roots == []

    def test_rejects_unknown_cache_key(self) -> None:
        with pytest.raises(ValidationError):
            CoverageConfig(cache_key="inode")  # type: ignore[arg-type]


class TestValidationConfig:
    def test_all_checks_on_by_default(self) -> None:
        config = ValidationConfig()
        assert config.validate_reports
        assert config.validate_line_counts
        assert config.validate_percentages
        assert config.validate_file_paths
        assert config.validate_function_counts
        assert config.validate_block_counts
        assert config.validate_cross_module
        assert config.validation_threshold == 0.5

    def test_negative_threshold_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ValidationConfig(validation_threshold=-0.1)

    def test_zero_threshold_allowed(self) -> None:
        assert ValidationConfig(validation_threshold=0).validation_threshold == 0


class TestLogOutputConfig:
    def test_relative_file_destination_rejected(self) -> None:
        with pytest.raises(ValidationError):
            LogOutputConfig(destination="relative/file.log")

    def test_stream_destinations_accepted(self) -> None:
        assert LogOutputConfig(destination="stdout").destination == "stdout"


def test_root_config_sections() -> None:
    config = CovguardConfig()
    assert config.logging.level == "INFO"
    assert isinstance(config.coverage, CoverageConfig)
    assert isinstance(config.validation, ValidationConfig)
