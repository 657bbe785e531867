"""
Reader for the controller's circular 30-day history log.

The log is a ring of 30 entries, 7 bytes each, starting at ``LOG_START``.
A pointer register holds the index (0-29) of the current day's entry; older
days are found by stepping back 7 bytes at a time and wrapping at the start
of the ring.  There is no batch read, so each entry costs 7 round trips.

Entry layout::

    b0  vmax      * 0.1 * system_voltage_ratio
    b1  vmin      * 0.1 * system_voltage_ratio
    b2  float h   * 0.1
    b3  SOC %
    b4  charge Ah low byte
    b5  load Ah low byte
    b6  high nibbles: charge Ah (bits 0-3), load Ah (bits 4-7), * 256

RAM addresses 50-212 fall inside the ring's span, so the log is read from
EEPROM by default.  Firmwares that mirror the log in RAM can pass
``opcode=Opcode.READ_RAM``.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence

from pli.src.commands import Opcode
from pli.src.errors import PliError
from pli.src.models import HistoryRecord, SystemConfig

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

POINTER_ADDRESS: int = 0x2D
"""Register holding the index of the current day's entry."""

LOG_START: int = 0x2E
"""Address of the first byte of entry 0."""

ENTRY_SIZE: int = 7
DAYS: int = 30
RING_SIZE: int = ENTRY_SIZE * DAYS

HISTORY_OPCODE: int = Opcode.READ_EEPROM

ReadFn = Callable[..., Awaitable[int]]


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------


def day_offset(pointer: int, day: int, *, log_start: int = LOG_START) -> int:
    """Return the address of the first byte of *day*'s entry.

    Args:
        pointer: Current value of the pointer register (0-29).
        day: 1 for the current day, up to 30 for the oldest.
        log_start: Address of the ring's first byte.

    Returns:
        An address in ``[log_start, log_start + RING_SIZE)``.
    """
    if not 0 <= pointer < DAYS:
        raise ValueError(f"pointer must be 0..{DAYS - 1}, got {pointer}")
    if not 1 <= day <= DAYS:
        raise ValueError(f"day must be 1..{DAYS}, got {day}")

    base = log_start + ENTRY_SIZE * pointer
    offset = base - ENTRY_SIZE * (day - 1)
    if offset < log_start:
        offset = base + RING_SIZE - ENTRY_SIZE * (day - 1)
    return offset


def parse_record(
    day: int, data: Sequence[int], *, ratio: int = 1, offset: int | None = None
) -> HistoryRecord:
    """Parse one 7-byte log entry.

    Args:
        day: Day number (1-30) the entry belongs to.
        data: The entry's 7 raw bytes.
        ratio: System voltage ratio (1, 2 or 4).
        offset: Address the entry was read from, kept for diagnostics.
    """
    if len(data) != ENTRY_SIZE:
        raise ValueError(f"history entry must be {ENTRY_SIZE} bytes, got {len(data)}")
    b0, b1, b2, b3, b4, b5, b6 = data
    return HistoryRecord(
        day=day,
        offset=offset,
        vmax_v=round(b0 * 0.1 * ratio, 3),
        vmin_v=round(b1 * 0.1 * ratio, 3),
        float_hours=round(b2 * 0.1, 3),
        soc_pct=b3,
        charge_ah=b4 + (b6 & 0x0F) * 256,
        load_ah=b5 + ((b6 & 0xF0) >> 4) * 256,
    )


# ---------------------------------------------------------------------------
# Reader
# ---------------------------------------------------------------------------


class HistoryReader:
    """Walks the circular log one register at a time.

    Args:
        read: Coroutine ``read(address, *, opcode=...) -> int`` issuing a
            single serialised register read.
        opcode: Command used for pointer and log reads.
        pointer_address: Address of the pointer register.
        log_start: Address of the ring's first byte.
    """

    def __init__(
        self,
        read: ReadFn,
        *,
        opcode: int = HISTORY_OPCODE,
        pointer_address: int = POINTER_ADDRESS,
        log_start: int = LOG_START,
    ) -> None:
        if log_start + RING_SIZE - 1 > 0xFF:
            raise ValueError(
                f"log_start 0x{log_start:02X} puts the ring past address 0xFF"
            )
        self._read = read
        self._opcode = opcode
        self._pointer_address = pointer_address
        self._log_start = log_start

    async def read_pointer(self) -> int:
        """Read and validate the pointer register.

        Raises:
            PliError: If the read fails or the pointer is out of range.
        """
        pointer = await self._read(self._pointer_address, opcode=self._opcode)
        if not 0 <= pointer < DAYS:
            raise PliError(f"history pointer out of range: {pointer}")
        return pointer

    async def read_day(self, pointer: int, day: int, *, ratio: int = 1) -> HistoryRecord:
        """Read one day's entry, or an unavailable record if any byte fails."""
        offset = day_offset(pointer, day, log_start=self._log_start)
        data: list[int] = []
        for address in range(offset, offset + ENTRY_SIZE):
            try:
                data.append(await self._read(address, opcode=self._opcode))
            except PliError as exc:
                logger.warning(
                    "History day %d unavailable: read @%d failed: %s", day, address, exc
                )
                return HistoryRecord(day=day, offset=offset, available=False)
        return parse_record(day, data, ratio=ratio, offset=offset)

    async def read(self, config: SystemConfig) -> list[HistoryRecord]:
        """Read all 30 days, most recent first.

        A failed day is reported unavailable and the walk continues.  When
        the pointer itself cannot be read, every day is unavailable.
        """
        try:
            pointer = await self.read_pointer()
        except PliError as exc:
            logger.warning("History pointer read failed, no days available: %s", exc)
            return [HistoryRecord(day=day, available=False) for day in range(1, DAYS + 1)]

        logger.info("Reading history log (pointer=%d)", pointer)
        records = [
            await self.read_day(pointer, day, ratio=config.system_voltage_ratio)
            for day in range(1, DAYS + 1)
        ]
        missing = sum(1 for r in records if not r.available)
        if missing:
            logger.warning("History read complete with %d/%d days unavailable", missing, DAYS)
        return records
