"""
Tests for the register map and semantic decoder.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import pytest
from pli.src.models import ControllerModel, ControllerState, SystemConfig
from pli.src.registers import (
    ALL_REGISTERS,
    READING_REGISTERS,
    REGISTERS_BY_ADDRESS,
    REGISTERS_BY_NAME,
    decode,
    decode_by_name,
)

PL40_12V = SystemConfig(model=ControllerModel.PL40, system_voltage_ratio=1)


class TestRegisterTable:
    """The map is consistent and complete."""

    def test_addresses_are_unique(self) -> None:
        assert len(REGISTERS_BY_ADDRESS) == len(ALL_REGISTERS)

    def test_names_are_unique(self) -> None:
        assert len(REGISTERS_BY_NAME) == len(ALL_REGISTERS)

    def test_addresses_fit_in_a_byte(self) -> None:
        assert all(0 <= reg.address <= 0xFF for reg in ALL_REGISTERS)

    def test_reading_registers_are_defined(self) -> None:
        for name in READING_REGISTERS:
            assert name in REGISTERS_BY_NAME

    @pytest.mark.parametrize(
        ("name", "address"),
        [
            ("day_number", 0),
            ("software_version", 1),
            ("battery_voltage", 50),
            ("battery_temperature", 52),
            ("solar_voltage", 53),
            ("controller_state", 101),
            ("state_of_charge", 181),
            ("charge_current", 212),
        ],
    )
    def test_known_addresses(self, name: str, address: int) -> None:
        assert REGISTERS_BY_NAME[name].address == address


class TestDecode:
    """Formulas turn raw bytes into engineering values."""

    def test_battery_temperature_offset(self) -> None:
        assert decode(52, 80, PL40_12V) == -20

    def test_solar_voltage_half_volts(self) -> None:
        assert decode(53, 37, PL40_12V) == 18.5

    def test_charge_current_pl40(self) -> None:
        assert decode(212, 21, PL40_12V) == 4.2

    @pytest.mark.parametrize(
        ("model", "expected"),
        [(ControllerModel.PL20, 2.1), (ControllerModel.PL40, 4.2), (ControllerModel.PL60, 8.4)],
    )
    def test_charge_current_by_model(self, model: ControllerModel, expected: float) -> None:
        assert decode(212, 21, SystemConfig(model=model)) == expected

    @pytest.mark.parametrize(("ratio", "expected"), [(1, 138), (2, 276), (4, 552)])
    def test_battery_voltage_ratio(self, ratio: int, expected: int) -> None:
        assert decode(50, 138, SystemConfig(system_voltage_ratio=ratio)) == expected

    def test_state_of_charge_passthrough(self) -> None:
        assert decode_by_name("state_of_charge", 87, PL40_12V) == 87

    def test_identity_registers(self) -> None:
        assert decode(0, 12, PL40_12V) == 12
        assert decode(1, 4, PL40_12V) == 4

    @pytest.mark.parametrize(
        ("raw", "state"),
        [
            (0, ControllerState.BOOST),
            (1, ControllerState.EQUALIZE),
            (2, ControllerState.ABSORPTION),
            (3, ControllerState.FLOAT),
            (4, ControllerState.RESTRICTED),
            (5, ControllerState.LVD),
            (6, ControllerState.SHORT_EQ),
            (7, ControllerState.UNDEFINED),
        ],
    )
    def test_controller_states(self, raw: int, state: ControllerState) -> None:
        assert decode(101, raw, PL40_12V) is state

    def test_unknown_state_code(self) -> None:
        assert decode(101, 42, PL40_12V) is ControllerState.UNKNOWN

    def test_unknown_address(self) -> None:
        with pytest.raises(KeyError):
            decode(99, 1, PL40_12V)

    def test_unknown_name(self) -> None:
        with pytest.raises(KeyError):
            decode_by_name("load_current", 1, PL40_12V)


class TestSystemConfig:
    """Installation parameters used by the decoder."""

    @pytest.mark.parametrize(("volts", "ratio"), [(12, 1), (24, 2), (48, 4)])
    def test_from_nominal_voltage(self, volts: int, ratio: int) -> None:
        config = SystemConfig.from_nominal_voltage("PL60", volts)
        assert config.system_voltage_ratio == ratio
        assert config.model is ControllerModel.PL60

    def test_unsupported_nominal_voltage(self) -> None:
        with pytest.raises(ValueError):
            SystemConfig.from_nominal_voltage("PL40", 36)

    def test_unsupported_ratio(self) -> None:
        with pytest.raises(ValueError):
            SystemConfig(system_voltage_ratio=3)

    def test_current_multiplier(self) -> None:
        assert SystemConfig(model=ControllerModel.PL20).current_multiplier == 0.1
