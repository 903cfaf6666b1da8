"""Tests for configuration loading and validation."""

import dataclasses

import pytest

from src.config import AppConfig, _safe_bool, _safe_float, _safe_int, _validate_config
from tests.conftest import make_config


class TestConfigValidation:
    def setup_method(self):
        self.config = make_config()

    def _with(self, section: str, **changes) -> AppConfig:
        updated = dataclasses.replace(getattr(self.config, section), **changes)
        return dataclasses.replace(self.config, **{section: updated})

    def test_default_config_passes_validation(self):
        _validate_config(AppConfig())

    def test_test_config_passes_validation(self):
        _validate_config(self.config)

    def test_invalid_temperature_too_high(self):
        with pytest.raises(ValueError, match="LLM_TEMPERATURE"):
            _validate_config(self._with("model", temperature=3.0))

    def test_invalid_temperature_negative(self):
        with pytest.raises(ValueError, match="LLM_TEMPERATURE"):
            _validate_config(self._with("model", temperature=-0.5))

    def test_retries_must_be_positive(self):
        with pytest.raises(ValueError, match="LLM_MAX_RETRIES_PER_MODEL"):
            _validate_config(self._with("model", max_retries_per_model=0))

    def test_pending_ttl_must_be_positive(self):
        with pytest.raises(ValueError, match="PENDING_STATE_TTL_SECONDS"):
            _validate_config(self._with("cache", pending_state_ttl_seconds=0))

    def test_photo_cap_must_be_positive(self):
        with pytest.raises(ValueError, match="MAX_PENDING_PHOTOS"):
            _validate_config(self._with("cache", max_pending_photos=0))

    def test_service_timeout_must_be_positive(self):
        with pytest.raises(ValueError, match="SERVICE_TIMEOUT_SECONDS"):
            _validate_config(self._with("services", timeout_seconds=-1))

    def test_identical_threshold_floor(self):
        with pytest.raises(ValueError, match="SPAM_GUARD_MAX_IDENTICAL"):
            _validate_config(self._with("guardrails", spam_max_identical=1))

    def test_response_length_floor(self):
        with pytest.raises(ValueError, match="MAX_RESPONSE_LENGTH"):
            _validate_config(self._with("guardrails", max_response_length=50))

    def test_config_is_frozen(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            self.config.village_name = "Desa Lain"


class TestEnvParsing:
    def test_safe_int_parsing(self):
        assert _safe_int("NONEXISTENT_VAR_12345", "42") == 42

    def test_safe_float_parsing(self):
        assert _safe_float("NONEXISTENT_VAR_12345", "3.14") == pytest.approx(3.14)

    def test_safe_int_reports_variable(self, monkeypatch):
        monkeypatch.setenv("GOVCONNECT_TEST_INT", "ten")
        with pytest.raises(ValueError, match="GOVCONNECT_TEST_INT"):
            _safe_int("GOVCONNECT_TEST_INT", "1")

    def test_safe_bool(self, monkeypatch):
        monkeypatch.setenv("GOVCONNECT_TEST_BOOL", " Yes ")
        assert _safe_bool("GOVCONNECT_TEST_BOOL", "false") is True
        assert _safe_bool("NONEXISTENT_VAR_12345", "false") is False
