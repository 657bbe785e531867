"""
Pydantic models for decoded PLI readings, history records, and events.

- SystemConfig: controller model and system-voltage ratio used for scaling.
- PliReading: one snapshot of real-time values from ``read_all()``.
- HistoryRecord: one day of the controller's 30-day log.
- ConnectionEvent: a connection-state transition notification.

All models are frozen; a value is never mutated once produced.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, field_validator


class ControllerModel(str, Enum):
    """Supported charge controller models."""

    PL20 = "PL20"
    PL40 = "PL40"
    PL60 = "PL60"


MODEL_CURRENT_MULTIPLIERS: dict[ControllerModel, float] = {
    ControllerModel.PL20: 0.1,
    ControllerModel.PL40: 0.2,
    ControllerModel.PL60: 0.4,
}
"""Amps per raw count for the charge current register."""


class ControllerState(str, Enum):
    """Charging state reported by the controller (register 101)."""

    BOOST = "BOOST"
    EQUALIZE = "EQUALIZE"
    ABSORPTION = "ABSORPTION"
    FLOAT = "FLOAT"
    RESTRICTED = "RESTRICTED"
    LVD = "LVD"
    SHORT_EQ = "SHORT_EQ"
    UNDEFINED = "UNDEFINED"
    UNKNOWN = "UNKNOWN"


class ConnectionState(str, Enum):
    """Lifecycle state of the gateway connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


_NOMINAL_VOLTAGE_RATIOS: dict[int, int] = {12: 1, 24: 2, 48: 4}


class SystemConfig(BaseModel):
    """Installation parameters needed to scale raw register values.

    Attributes:
        model: Controller model, selects the charge current multiplier.
        system_voltage_ratio: 1, 2, or 4 for a 12 V, 24 V, or 48 V bank.
    """

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    model: ControllerModel = ControllerModel.PL40
    system_voltage_ratio: int = 1

    @field_validator("system_voltage_ratio")
    @classmethod
    def ratio_must_be_supported(cls, v: int) -> int:
        """Only 12/24/48 V systems exist."""
        if v not in (1, 2, 4):
            raise ValueError("system_voltage_ratio must be 1, 2 or 4")
        return v

    @classmethod
    def from_nominal_voltage(
        cls, model: ControllerModel | str, nominal_voltage: int
    ) -> SystemConfig:
        """Build a config from a nominal battery voltage (12, 24 or 48)."""
        ratio = _NOMINAL_VOLTAGE_RATIOS.get(nominal_voltage)
        if ratio is None:
            raise ValueError(
                f"nominal system voltage must be 12, 24 or 48, got {nominal_voltage}"
            )
        return cls(model=ControllerModel(model), system_voltage_ratio=ratio)

    @property
    def current_multiplier(self) -> float:
        return MODEL_CURRENT_MULTIPLIERS[self.model]


class PliReading(BaseModel):
    """A single snapshot of real-time controller values.

    Fields are ``None`` when the underlying register read failed.

    Attributes:
        ts: Time the snapshot was taken.
        battery_voltage_v: Battery voltage.
        battery_temp_c: Battery temperature in degrees Celsius.
        battery_soc_pct: State of charge (0-100).
        solar_voltage_v: Solar array voltage.
        charge_current_a: Charge current in amps.
        state: Controller charging state.
        raw: Raw byte per register address, ``None`` for failed reads.
    """

    model_config = ConfigDict(frozen=True)

    ts: datetime
    battery_voltage_v: float | None = None
    battery_temp_c: float | None = None
    battery_soc_pct: float | None = None
    solar_voltage_v: float | None = None
    charge_current_a: float | None = None
    state: ControllerState | None = None
    raw: dict[int, int | None] = {}


class HistoryRecord(BaseModel):
    """One day of the controller's circular 30-day log.

    Day 1 is the most recent entry.  When any byte of the entry could not be
    read, ``available`` is False and every value is ``None``.

    Attributes:
        day: 1..30, counting back from the current day.
        offset: EEPROM address of the entry's first byte.
        available: Whether all seven bytes were read.
        vmax_v: Maximum battery voltage of the day.
        vmin_v: Minimum battery voltage of the day.
        float_hours: Hours spent in float.
        soc_pct: State of charge.
        charge_ah: Amp-hours charged.
        load_ah: Amp-hours drawn by the load.
    """

    model_config = ConfigDict(frozen=True)

    day: int
    offset: int | None = None
    available: bool = True
    vmax_v: float | None = None
    vmin_v: float | None = None
    float_hours: float | None = None
    soc_pct: int | None = None
    charge_ah: int | None = None
    load_ah: int | None = None

    @field_validator("day")
    @classmethod
    def day_in_log_range(cls, v: int) -> int:
        """The log holds exactly 30 days."""
        if not 1 <= v <= 30:
            raise ValueError("day must be between 1 and 30")
        return v


class ConnectionEvent(BaseModel):
    """A connection-state transition, published to subscribers.

    Attributes:
        state: New state.
        previous: State before the transition.
        ts: Time of the transition.
        reason: Short cause (e.g. ``"eof"``, error text), when known.
    """

    model_config = ConfigDict(frozen=True)

    state: ConnectionState
    previous: ConnectionState
    ts: datetime
    reason: str | None = None
