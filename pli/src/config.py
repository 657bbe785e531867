"""
Relay configuration loaded from environment variables.

Uses Pydantic BaseSettings for automatic env var loading and validation.
Everything the driver needs from its environment (gateway endpoint, device
model, system voltage, timeouts, error-frame layout) comes from here; the
driver itself never reads the environment.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings

from pli.src.commands import Opcode
from pli.src.framing import DATA_PREFIX, FrameSettings
from pli.src.models import ControllerModel, SystemConfig


class PliSettings(BaseSettings):
    """Relay configuration for one PLI controller behind a TCP gateway.

    Attributes:
        pli_host: Gateway IP address / hostname.
        pli_port: Gateway TCP port (default 8888).
        pli_model: Controller model, PL20, PL40 or PL60.
        pli_system_voltage: Nominal battery voltage, 12, 24 or 48.
        pli_request_timeout_ms: Timeout for a single register read.
        pli_retry_interval_s: Initial delay between reconnection attempts.
        pli_max_retry_interval_s: Cap for the reconnection delay.
        pli_connect_timeout_s: Timeout for one TCP connect.
        pli_activity_timeout_s: Idle time before the link is force-closed
            (0 disables).
        pli_error_code_min: Lowest error-frame code (accepts ``0x`` hex).
        pli_error_code_max: Highest error-frame code (accepts ``0x`` hex).
        pli_error_frame_width: Error frame length in bytes, 1 or 2.
        pli_reject_on_error_frame: Fail the in-flight read on an error frame.
        pli_late_frame_grace_s: Seconds a timed-out read keeps the line so its
            late reply is dropped (0 disables).
        pli_history_memory: Memory the history log is read from, ``eeprom``
            or ``ram``.
        pli_poll_interval_s: Seconds between real-time snapshots.
        pli_history_interval_s: Seconds between history log reads (0 disables).
        pli_health_path: Health JSON file path.
        pli_log_level: Root log level.
    """

    pli_host: str
    pli_port: int = 8888
    pli_model: ControllerModel = ControllerModel.PL40
    pli_system_voltage: int = 12
    pli_request_timeout_ms: int = 5000
    pli_retry_interval_s: float = 1.0
    pli_max_retry_interval_s: float = 30.0
    pli_connect_timeout_s: float = 5.0
    pli_activity_timeout_s: float = 300.0
    pli_error_code_min: int = 0x80
    pli_error_code_max: int = 0x88
    pli_error_frame_width: int = 1
    pli_reject_on_error_frame: bool = False
    pli_late_frame_grace_s: float = 0.5
    pli_history_memory: Literal["eeprom", "ram"] = "eeprom"
    pli_poll_interval_s: int = 30
    pli_history_interval_s: int = 3600
    pli_health_path: str = "/data/health.json"
    pli_log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @field_validator("pli_error_code_min", "pli_error_code_max", mode="before")
    @classmethod
    def parse_hex_code(cls, v: object) -> object:
        """Accept ``0x80`` style values as well as decimal."""
        if isinstance(v, str):
            return int(v.strip(), 0)
        return v

    @field_validator("pli_error_code_min", "pli_error_code_max")
    @classmethod
    def error_code_must_be_byte(cls, v: int) -> int:
        if not 0 <= v <= 0xFF:
            raise ValueError("PLI_ERROR_CODE_MIN/MAX must be between 0 and 255")
        return v

    @field_validator("pli_port")
    @classmethod
    def port_must_be_valid(cls, v: int) -> int:
        """Validate gateway TCP port is in valid range."""
        if v < 1 or v > 65535:
            raise ValueError("PLI_PORT must be between 1 and 65535")
        return v

    @field_validator("pli_system_voltage")
    @classmethod
    def system_voltage_must_be_nominal(cls, v: int) -> int:
        if v not in (12, 24, 48):
            raise ValueError("PLI_SYSTEM_VOLTAGE must be 12, 24 or 48")
        return v

    @field_validator("pli_request_timeout_ms")
    @classmethod
    def request_timeout_must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("PLI_REQUEST_TIMEOUT_MS must be > 0")
        return v

    @field_validator("pli_retry_interval_s", "pli_connect_timeout_s")
    @classmethod
    def interval_must_be_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("PLI_RETRY_INTERVAL_S and PLI_CONNECT_TIMEOUT_S must be > 0")
        return v

    @field_validator(
        "pli_activity_timeout_s", "pli_history_interval_s", "pli_late_frame_grace_s"
    )
    @classmethod
    def must_be_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError(
                "PLI_ACTIVITY_TIMEOUT_S, PLI_HISTORY_INTERVAL_S and "
                "PLI_LATE_FRAME_GRACE_S must be >= 0"
            )
        return v

    @field_validator("pli_history_memory", mode="before")
    @classmethod
    def history_memory_lowercase(cls, v: object) -> object:
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("pli_error_frame_width")
    @classmethod
    def frame_width_must_be_known(cls, v: int) -> int:
        if v not in (1, 2):
            raise ValueError("PLI_ERROR_FRAME_WIDTH must be 1 or 2")
        return v

    @field_validator("pli_poll_interval_s")
    @classmethod
    def poll_interval_must_be_positive(cls, v: int) -> int:
        """Every snapshot costs six round trips; sub-second polling is pointless."""
        if v < 1:
            raise ValueError("PLI_POLL_INTERVAL_S must be >= 1")
        return v

    @field_validator("pli_log_level")
    @classmethod
    def log_level_must_exist(cls, v: str) -> str:
        level = v.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"PLI_LOG_LEVEL '{v}' is not a logging level")
        return level

    @model_validator(mode="after")
    def _error_range_is_consistent(self) -> PliSettings:
        """The error-code range must be ordered and exclude the data prefix."""
        if self.pli_error_code_min > self.pli_error_code_max:
            raise ValueError("PLI_ERROR_CODE_MIN must be <= PLI_ERROR_CODE_MAX")
        if self.pli_error_code_min <= DATA_PREFIX <= self.pli_error_code_max:
            raise ValueError("error code range must not contain the data prefix 0xC8")
        return self

    # ------------------------------------------------------------------
    # Derived configuration
    # ------------------------------------------------------------------

    @property
    def request_timeout_s(self) -> float:
        return self.pli_request_timeout_ms / 1000.0

    @property
    def history_opcode(self) -> int:
        """Read command used for the history log."""
        if self.pli_history_memory == "ram":
            return Opcode.READ_RAM
        return Opcode.READ_EEPROM

    def system_config(self) -> SystemConfig:
        """Return the scaling parameters for the semantic decoder."""
        return SystemConfig.from_nominal_voltage(self.pli_model, self.pli_system_voltage)

    def frame_settings(self) -> FrameSettings:
        """Return the error-frame layout for the frame decoder."""
        return FrameSettings(
            error_code_min=self.pli_error_code_min,
            error_code_max=self.pli_error_code_max,
            error_frame_width=self.pli_error_frame_width,
        )
