"""
Tests for PliSettings configuration loading.

Verifies env var loading, defaults, hex error codes, validation errors, and
the derived driver parameters.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import pytest
from pli.src.models import ControllerModel
from pydantic import ValidationError


class TestLoadFromEnv:
    """Settings come from PLI_* environment variables."""

    def test_all_fields_from_env(self, env_vars_full: dict[str, str]) -> None:
        """Every env var is picked up."""
        from pli.src.config import PliSettings

        settings = PliSettings()

        assert settings.pli_host == "192.168.1.60"
        assert settings.pli_port == 9000
        assert settings.pli_model is ControllerModel.PL60
        assert settings.pli_system_voltage == 24
        assert settings.pli_request_timeout_ms == 2500
        assert settings.pli_retry_interval_s == 2.0
        assert settings.pli_max_retry_interval_s == 60.0
        assert settings.pli_connect_timeout_s == 3.0
        assert settings.pli_activity_timeout_s == 120
        assert settings.pli_error_code_min == 0x80
        assert settings.pli_error_code_max == 0x85
        assert settings.pli_error_frame_width == 2
        assert settings.pli_reject_on_error_frame is True
        assert settings.pli_late_frame_grace_s == 0.25
        assert settings.pli_history_memory == "ram"
        assert settings.pli_poll_interval_s == 10
        assert settings.pli_history_interval_s == 600
        assert settings.pli_health_path == "/tmp/pli-health.json"
        assert settings.pli_log_level == "DEBUG"

    def test_defaults(self, env_vars_required_only: dict[str, str]) -> None:
        """Only PLI_HOST is required."""
        from pli.src.config import PliSettings

        settings = PliSettings()

        assert settings.pli_host == "10.0.0.50"
        assert settings.pli_port == 8888
        assert settings.pli_model is ControllerModel.PL40
        assert settings.pli_system_voltage == 12
        assert settings.pli_request_timeout_ms == 5000
        assert settings.pli_retry_interval_s == 1.0
        assert settings.pli_max_retry_interval_s == 30.0
        assert settings.pli_activity_timeout_s == 300
        assert settings.pli_error_code_min == 0x80
        assert settings.pli_error_code_max == 0x88
        assert settings.pli_error_frame_width == 1
        assert settings.pli_reject_on_error_frame is False
        assert settings.pli_late_frame_grace_s == 0.5
        assert settings.pli_history_memory == "eeprom"
        assert settings.pli_poll_interval_s == 30
        assert settings.pli_history_interval_s == 3600
        assert settings.pli_log_level == "INFO"

    def test_missing_host(self) -> None:
        from pli.src.config import PliSettings

        with pytest.raises(ValidationError, match="pli_host"):
            PliSettings()

    def test_env_file(self, tmp_path) -> None:
        """A .env file in the working directory is read."""
        from pli.src.config import PliSettings

        (tmp_path / ".env").write_text("PLI_HOST=172.16.0.9\nPLI_PORT=23\n")
        settings = PliSettings()
        assert settings.pli_host == "172.16.0.9"
        assert settings.pli_port == 23


class TestValidation:
    """Invalid values are rejected at startup."""

    @pytest.mark.parametrize(
        ("var", "value"),
        [
            ("PLI_PORT", "0"),
            ("PLI_PORT", "70000"),
            ("PLI_MODEL", "PL80"),
            ("PLI_SYSTEM_VOLTAGE", "36"),
            ("PLI_REQUEST_TIMEOUT_MS", "0"),
            ("PLI_RETRY_INTERVAL_S", "0"),
            ("PLI_ACTIVITY_TIMEOUT_S", "-1"),
            ("PLI_ERROR_CODE_MIN", "0x100"),
            ("PLI_ERROR_FRAME_WIDTH", "3"),
            ("PLI_POLL_INTERVAL_S", "0"),
            ("PLI_HISTORY_INTERVAL_S", "-5"),
            ("PLI_LATE_FRAME_GRACE_S", "-0.1"),
            ("PLI_HISTORY_MEMORY", "flash"),
            ("PLI_LOG_LEVEL", "chatty"),
        ],
    )
    def test_rejected(
        self,
        env_vars_required_only: dict[str, str],
        monkeypatch: pytest.MonkeyPatch,
        var: str,
        value: str,
    ) -> None:
        from pli.src.config import PliSettings

        monkeypatch.setenv(var, value)
        with pytest.raises(ValidationError):
            PliSettings()

    def test_error_range_must_be_ordered(
        self, env_vars_required_only: dict[str, str], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        from pli.src.config import PliSettings

        monkeypatch.setenv("PLI_ERROR_CODE_MIN", "0x88")
        monkeypatch.setenv("PLI_ERROR_CODE_MAX", "0x80")
        with pytest.raises(ValidationError, match="PLI_ERROR_CODE_MIN"):
            PliSettings()

    def test_error_range_must_exclude_prefix(
        self, env_vars_required_only: dict[str, str], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        from pli.src.config import PliSettings

        monkeypatch.setenv("PLI_ERROR_CODE_MAX", "0xD0")
        with pytest.raises(ValidationError, match="0xC8"):
            PliSettings()

    def test_decimal_error_codes(
        self, env_vars_required_only: dict[str, str], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        from pli.src.config import PliSettings

        monkeypatch.setenv("PLI_ERROR_CODE_MAX", "133")
        assert PliSettings().pli_error_code_max == 0x85


class TestDerived:
    """Helpers that feed the driver."""

    def test_request_timeout_seconds(self, env_vars_full: dict[str, str]) -> None:
        from pli.src.config import PliSettings

        assert PliSettings().request_timeout_s == 2.5

    def test_system_config(self, env_vars_full: dict[str, str]) -> None:
        from pli.src.config import PliSettings

        config = PliSettings().system_config()
        assert config.model is ControllerModel.PL60
        assert config.system_voltage_ratio == 2

    def test_frame_settings(self, env_vars_full: dict[str, str]) -> None:
        from pli.src.config import PliSettings

        frame = PliSettings().frame_settings()
        assert (frame.error_code_min, frame.error_code_max) == (0x80, 0x85)
        assert frame.error_frame_width == 2

    def test_history_opcode_ram(self, env_vars_full: dict[str, str]) -> None:
        from pli.src.commands import Opcode
        from pli.src.config import PliSettings

        assert PliSettings().history_opcode == Opcode.READ_RAM

    def test_history_opcode_default_eeprom(
        self, env_vars_required_only: dict[str, str]
    ) -> None:
        from pli.src.commands import Opcode
        from pli.src.config import PliSettings

        assert PliSettings().history_opcode == Opcode.READ_EEPROM
