"""
PLI controller register map and semantic decoder -- single source of truth.

Each register is a single byte in the controller's RAM.  The table below maps
an address to the formula that turns its raw byte into an engineering value:

==================  =======  ==========================================
Quantity            Address  Formula
==================  =======  ==========================================
day number          0        raw
software version    1        raw
battery voltage     50       raw * system_voltage_ratio
battery temp        52       raw - 100
solar voltage       53       raw * 0.5
controller state    101      0..7 -> ControllerState, else UNKNOWN
state of charge     181      raw (already %)
charge current      212      raw * model multiplier (PL20 0.1, PL40 0.2,
                             PL60 0.4)
==================  =======  ==========================================

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

from dataclasses import dataclass

from pli.src.models import ControllerState, SystemConfig

# ---------------------------------------------------------------------------
# Data definitions
# ---------------------------------------------------------------------------

SCALE_BY_SYSTEM_VOLTAGE = "system_voltage"
SCALE_BY_MODEL = "model"

_PRECISION = 3
"""Decimal places kept on scaled float values."""


@dataclass(frozen=True, slots=True)
class RegisterDef:
    """Definition of a single controller register.

    Attributes:
        address: RAM address (0-255).
        name: Unique human-readable identifier.
        unit: Engineering unit string (e.g. ``"V"``, ``"A"``, ``"%"``).
        scale: Multiplicative factor applied after *offset*.
        offset: Added to the raw byte before scaling.
        scale_by: Extra installation-dependent factor: ``"system_voltage"``,
            ``"model"``, or ``None``.
        states: Enum lookup for coded registers; the value is then a
            :class:`ControllerState` instead of a number.
        description: Free-text description of the register.
    """

    address: int
    name: str
    unit: str
    scale: float = 1.0
    offset: int = 0
    scale_by: str | None = None
    states: tuple[ControllerState, ...] | None = None
    description: str = ""


_CONTROLLER_STATES: tuple[ControllerState, ...] = (
    ControllerState.BOOST,
    ControllerState.EQUALIZE,
    ControllerState.ABSORPTION,
    ControllerState.FLOAT,
    ControllerState.RESTRICTED,
    ControllerState.LVD,
    ControllerState.SHORT_EQ,
    ControllerState.UNDEFINED,
)

# ---------------------------------------------------------------------------
# Register table
# ---------------------------------------------------------------------------

ALL_REGISTERS: list[RegisterDef] = [
    RegisterDef(
        address=0,
        name="day_number",
        unit="",
        description="Day counter since installation",
    ),
    RegisterDef(
        address=1,
        name="software_version",
        unit="",
        description="Controller firmware version",
    ),
    RegisterDef(
        address=50,
        name="battery_voltage",
        unit="V",
        scale_by=SCALE_BY_SYSTEM_VOLTAGE,
        description="Battery voltage, scaled by the 12/24/48 V system ratio",
    ),
    RegisterDef(
        address=52,
        name="battery_temperature",
        unit="C",
        offset=-100,
        description="Battery temperature, stored with a +100 offset",
    ),
    RegisterDef(
        address=53,
        name="solar_voltage",
        unit="V",
        scale=0.5,
        description="Solar array voltage in half-volt steps",
    ),
    RegisterDef(
        address=101,
        name="controller_state",
        unit="",
        states=_CONTROLLER_STATES,
        description="Charging state code",
    ),
    RegisterDef(
        address=181,
        name="state_of_charge",
        unit="%",
        description="Battery state of charge",
    ),
    RegisterDef(
        address=212,
        name="charge_current",
        unit="A",
        scale_by=SCALE_BY_MODEL,
        description="Charge current, scaled by the controller model",
    ),
]

REGISTERS_BY_ADDRESS: dict[int, RegisterDef] = {reg.address: reg for reg in ALL_REGISTERS}
"""Lookup of every register by address."""

REGISTERS_BY_NAME: dict[str, RegisterDef] = {reg.name: reg for reg in ALL_REGISTERS}
"""Lookup of every register by name."""

READING_REGISTERS: tuple[str, ...] = (
    "battery_voltage",
    "battery_temperature",
    "state_of_charge",
    "solar_voltage",
    "charge_current",
    "controller_state",
)
"""Registers read for one real-time snapshot, in read order."""


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


def decode_register(
    reg: RegisterDef, raw: int, config: SystemConfig
) -> float | int | ControllerState:
    """Apply *reg*'s formula to a raw byte.

    Args:
        reg: Register definition.
        raw: Raw byte read from the controller.
        config: Model and system voltage used for scaling.

    Returns:
        An ``int`` for unscaled registers, a ``float`` for scaled ones, or a
        :class:`ControllerState` for coded registers.
    """
    if reg.states is not None:
        if 0 <= raw < len(reg.states):
            return reg.states[raw]
        return ControllerState.UNKNOWN

    factor = reg.scale
    if reg.scale_by == SCALE_BY_SYSTEM_VOLTAGE:
        factor *= config.system_voltage_ratio
    elif reg.scale_by == SCALE_BY_MODEL:
        factor *= config.current_multiplier

    value = raw + reg.offset
    if factor == 1:
        return value
    return round(value * factor, _PRECISION)


def decode(address: int, raw: int, config: SystemConfig) -> float | int | ControllerState:
    """Decode the raw byte read from *address*.

    Raises:
        KeyError: If *address* has no entry in the register table.
    """
    return decode_register(REGISTERS_BY_ADDRESS[address], raw, config)


def decode_by_name(
    name: str, raw: int, config: SystemConfig
) -> float | int | ControllerState:
    """Decode a raw byte for the register called *name*.

    Raises:
        KeyError: If *name* is not a known register.
    """
    return decode_register(REGISTERS_BY_NAME[name], raw, config)
