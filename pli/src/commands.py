"""
Command encoder for the PLI request protocol.

Every request is exactly four bytes on the wire::

    [opcode, address, payload, checksum]
    checksum = opcode ^ address ^ payload ^ 0xFF

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum


class Opcode(IntEnum):
    """Command codes understood by the controller."""

    READ_RAM = 0x14
    READ_EEPROM = 0x48
    WRITE_RAM = 0x98
    WRITE_EEPROM = 0xCA
    LOOPBACK = 0xB7
    BUTTON = 0x57


@dataclass(frozen=True, slots=True)
class Command:
    """A single encoded request frame.

    Attributes:
        opcode: Command code byte.
        address: Register address byte.
        payload: Data byte (0 for reads).
        checksum: ``opcode ^ address ^ payload ^ 0xFF``.
    """

    opcode: int
    address: int
    payload: int
    checksum: int

    def to_bytes(self) -> bytes:
        """Return the four wire bytes in transmission order."""
        return bytes((self.opcode, self.address, self.payload, self.checksum))

    def __repr__(self) -> str:
        return f"Command({self.to_bytes().hex(' ')})"


def _check_byte(name: str, value: int) -> int:
    if not 0 <= value <= 0xFF:
        raise ValueError(f"{name} must be a single byte (0-255), got {value}")
    return int(value)


def encode(opcode: int, address: int, payload: int = 0) -> Command:
    """Build a request frame with its checksum byte.

    Args:
        opcode: Command code (see :class:`Opcode`).
        address: RAM/EEPROM address.
        payload: Data byte, 0 for reads.

    Returns:
        The encoded :class:`Command`.

    Raises:
        ValueError: If any argument is outside 0-255.
    """
    opcode = _check_byte("opcode", opcode)
    address = _check_byte("address", address)
    payload = _check_byte("payload", payload)
    checksum = opcode ^ address ^ payload ^ 0xFF
    return Command(opcode=opcode, address=address, payload=payload, checksum=checksum)
