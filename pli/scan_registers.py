"""
PLI register scanner -- diagnostic tool.

Reads a range of controller RAM (or EEPROM) addresses one byte at a time and
prints every non-zero value, tagging addresses known to the register map.
Use this to check a gateway link end to end, or to look for live data when a
documented address reads back zero.

Optionally runs the loopback self-test first and dumps the 30-day history
log afterwards.

Usage:
    python -m pli.scan_registers --host 192.168.x.x
    python -m pli.scan_registers --host 192.168.x.x --start 40 --end 120 --eeprom
    python -m pli.scan_registers --host 192.168.x.x --loopback --history

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from pli.src.commands import Opcode
from pli.src.driver import DEFAULT_PORT, PliDriver
from pli.src.errors import PliError
from pli.src.models import ControllerModel, HistoryRecord, SystemConfig
from pli.src.registers import REGISTERS_BY_ADDRESS

# ---------------------------------------------------------------------------
# Scan configuration
# ---------------------------------------------------------------------------

DELAY_S = 0.02      # 20 ms between reads (gateway serial is 9600 baud)
TIMEOUT_S = 2.0


# ---------------------------------------------------------------------------
# Scanner
# ---------------------------------------------------------------------------


async def scan_range(
    driver: PliDriver,
    *,
    start: int,
    end: int,
    opcode: int,
) -> list[tuple[int, int]]:
    """Scan an address range and return (address, value) pairs for non-zero bytes.

    Args:
        driver: Connected driver.
        start: First address to scan (inclusive).
        end: Last address to scan (inclusive).
        opcode: READ_RAM or READ_EEPROM.

    Returns:
        List of (address, raw_byte) tuples where value != 0.
    """
    space = "EEPROM" if opcode == Opcode.READ_EEPROM else "RAM"
    print(f"\n{'='*70}")
    print(f"  {space} {start}..{end}")
    print(f"{'='*70}")

    non_zero: list[tuple[int, int]] = []
    for addr in range(start, end + 1):
        try:
            raw = await driver.read(addr, TIMEOUT_S, opcode=opcode)
        except PliError as exc:
            print(f"  [ERR] {addr:3d}: {exc}")
            await asyncio.sleep(DELAY_S)
            continue

        if raw != 0:
            reg = REGISTERS_BY_ADDRESS.get(addr) if space == "RAM" else None
            tag = f"  <- {reg.name}" if reg else ""
            print(f"  addr {addr:3d}  raw {raw:3d}  (0x{raw:02X}){tag}")
            non_zero.append((addr, raw))
        await asyncio.sleep(DELAY_S)

    if not non_zero:
        print("  (all zeros in this range)")
    return non_zero


def print_history(records: list[HistoryRecord]) -> None:
    """Print the history log as a table, most recent day first."""
    print(f"\n{'='*70}")
    print("  HISTORY (day 1 = today)")
    print(f"{'='*70}")
    print(f"  {'day':>3}  {'addr':>4}  {'vmax':>6}  {'vmin':>6}  {'float h':>7}  "
          f"{'soc':>4}  {'chg Ah':>6}  {'load Ah':>7}")
    for rec in records:
        addr = f"{rec.offset:4d}" if rec.offset is not None else "   -"
        if not rec.available:
            print(f"  {rec.day:3d}  {addr}  (unavailable)")
            continue
        print(f"  {rec.day:3d}  {addr}  {rec.vmax_v:6.1f}  {rec.vmin_v:6.1f}  "
              f"{rec.float_hours:7.1f}  {rec.soc_pct:4d}  {rec.charge_ah:6d}  "
              f"{rec.load_ah:7d}")


async def run_scan(
    *,
    host: str,
    port: int,
    start: int,
    end: int,
    eeprom: bool,
    loopback: bool,
    history: bool,
    config: SystemConfig,
    history_opcode: int = Opcode.READ_EEPROM,
) -> int:
    """Connect to the gateway and run the requested diagnostics.

    Returns:
        Process exit code.
    """
    print(f"Connecting to {host}:{port} ...")
    driver = PliDriver(
        host=host,
        port=port,
        config=config,
        timeout_s=TIMEOUT_S,
        history_opcode=history_opcode,
    )

    if not await driver.connect():
        print("Connection failed", file=sys.stderr)
        await driver.disconnect()
        return 1

    print("Connected.")
    try:
        if loopback:
            ok = await driver.test()
            print(f"Loopback: {'OK' if ok else 'no reply'}")

        opcode = Opcode.READ_EEPROM if eeprom else Opcode.READ_RAM
        hits = await scan_range(driver, start=start, end=end, opcode=opcode)

        if history:
            print_history(await driver.read_history())
    finally:
        await driver.disconnect()

    print(f"\n{len(hits)} non-zero address(es). {driver.stats.to_dict()}")
    return 0


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


def _byte(value: str) -> int:
    n = int(value, 0)
    if not 0 <= n <= 0xFF:
        raise argparse.ArgumentTypeError(f"{value} is not a byte address (0-255)")
    return n


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    p = argparse.ArgumentParser(
        description="PLI register scanner -- read a range of controller addresses"
    )
    p.add_argument("--host", required=True, help="Gateway IP address or hostname")
    p.add_argument(
        "--port", type=int, default=DEFAULT_PORT,
        help=f"Gateway TCP port (default {DEFAULT_PORT})"
    )
    p.add_argument("--start", type=_byte, default=0, help="First address (default 0)")
    p.add_argument("--end", type=_byte, default=255, help="Last address (default 255)")
    p.add_argument("--eeprom", action="store_true", help="Read EEPROM instead of RAM")
    p.add_argument("--loopback", action="store_true", help="Run the loopback test first")
    p.add_argument("--history", action="store_true", help="Dump the 30-day history log")
    p.add_argument(
        "--history-ram", action="store_true", dest="history_ram",
        help="Read the history log from RAM instead of EEPROM"
    )
    p.add_argument(
        "--model", choices=[m.value for m in ControllerModel], default="PL40",
        help="Controller model (default PL40)"
    )
    p.add_argument(
        "--system-voltage", type=int, choices=(12, 24, 48), default=12,
        dest="system_voltage", help="Nominal battery voltage (default 12)"
    )
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = p.parse_args(argv)
    if args.start > args.end:
        p.error("--start must be <= --end")
    return args


def main() -> None:
    """Synchronous entrypoint."""
    args = parse_args()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)
    code = asyncio.run(
        run_scan(
            host=args.host,
            port=args.port,
            start=args.start,
            end=args.end,
            eeprom=args.eeprom,
            loopback=args.loopback,
            history=args.history,
            config=SystemConfig.from_nominal_voltage(args.model, args.system_voltage),
            history_opcode=Opcode.READ_RAM if args.history_ram else Opcode.READ_EEPROM,
        )
    )
    sys.exit(code)


if __name__ == "__main__":
    main()
