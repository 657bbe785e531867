"""
Tests for the register scanner CLI.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import pytest
from pli.scan_registers import parse_args, print_history, run_scan, scan_range
from pli.src.commands import Opcode
from pli.src.models import ControllerModel, HistoryRecord, SystemConfig
from pli.tests.fake_gateway import FakeGateway, make_driver


class TestParseArgs:
    """Command-line parsing."""

    def test_defaults(self) -> None:
        args = parse_args(["--host", "192.168.1.50"])
        assert args.host == "192.168.1.50"
        assert args.port == 8888
        assert (args.start, args.end) == (0, 255)
        assert not args.eeprom
        assert args.model == "PL40"
        assert args.system_voltage == 12

    def test_hex_addresses(self) -> None:
        args = parse_args(["--host", "h", "--start", "0x2d", "--end", "0xff", "--eeprom"])
        assert (args.start, args.end) == (0x2D, 0xFF)
        assert args.eeprom

    def test_history_ram(self) -> None:
        assert parse_args(["--host", "h", "--history", "--history-ram"]).history_ram
        assert not parse_args(["--host", "h"]).history_ram

    def test_start_after_end(self) -> None:
        with pytest.raises(SystemExit):
            parse_args(["--host", "h", "--start", "10", "--end", "5"])

    def test_address_out_of_range(self) -> None:
        with pytest.raises(SystemExit):
            parse_args(["--host", "h", "--end", "256"])

    def test_host_required(self) -> None:
        with pytest.raises(SystemExit):
            parse_args([])


class TestScan:
    """Scanning against the fake gateway."""

    @pytest.mark.asyncio
    async def test_scan_range_reports_non_zero(self, capsys: pytest.CaptureFixture[str]) -> None:
        async with FakeGateway(ram={50: 138, 53: 37}) as gateway:
            async with make_driver(gateway.port) as driver:
                hits = await scan_range(driver, start=48, end=55, opcode=Opcode.READ_RAM)
        assert hits == [(50, 138), (53, 37)]
        out = capsys.readouterr().out
        assert "battery_voltage" in out
        assert "solar_voltage" in out

    @pytest.mark.asyncio
    async def test_scan_eeprom_has_no_register_tags(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        async with FakeGateway(eeprom={50: 9}) as gateway:
            async with make_driver(gateway.port) as driver:
                hits = await scan_range(driver, start=50, end=50, opcode=Opcode.READ_EEPROM)
        assert hits == [(50, 9)]
        assert "battery_voltage" not in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_run_scan(self, capsys: pytest.CaptureFixture[str]) -> None:
        async with FakeGateway(ram={1: 4}) as gateway:
            code = await run_scan(
                host="127.0.0.1",
                port=gateway.port,
                start=0,
                end=2,
                eeprom=False,
                loopback=True,
                history=False,
                config=SystemConfig(model=ControllerModel.PL20),
            )
        assert code == 0
        out = capsys.readouterr().out
        assert "Loopback: OK" in out
        assert "1 non-zero address(es)" in out

    def test_print_history(self, capsys: pytest.CaptureFixture[str]) -> None:
        print_history(
            [
                HistoryRecord(
                    day=1, offset=60, vmax_v=14.4, vmin_v=12.1, float_hours=3.5,
                    soc_pct=95, charge_ah=818, load_ah=316,
                ),
                HistoryRecord(day=2, offset=53, available=False),
            ]
        )
        out = capsys.readouterr().out
        assert "818" in out
        assert "(unavailable)" in out
