"""
Frame decoder for the PLI response byte stream.

The gateway forwards whatever the controller sends, including noise and
partial frames from interrupted transmissions.  Responses carry no length,
delimiter, or address, so frames are classified from the head of a bounded
byte buffer:

1. ``0xC8`` followed by one byte -> ``DataFrame(value)``.  A lone prefix stays
   buffered until its value byte arrives.
2. A byte inside the error-code range -> ``ErrorFrame(code)`` (plus a detail
   byte when error frames are configured two bytes wide).
3. Anything else is discarded so the parser resynchronises on the next byte.

A value byte that happens to equal the prefix or an error code and shows up
out of position is misclassified.  The policy is stateless and accepted as is.

Error frame width and code range differ between gateway firmwares, so both
are configuration (:class:`FrameSettings`).

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DATA_PREFIX: int = 0xC8
"""First byte of every data response frame."""

DEFAULT_BUFFER_CAPACITY: int = 1024
"""Lookback buffer size in bytes."""

DEFAULT_ERROR_CODE_MIN: int = 0x80
DEFAULT_ERROR_CODE_MAX: int = 0x88


# ---------------------------------------------------------------------------
# Frame types
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class DataFrame:
    """A ``[0xC8, value]`` response."""

    value: int


@dataclass(frozen=True, slots=True)
class ErrorFrame:
    """A device error response.

    Attributes:
        code: Error code byte.
        detail: Trailing byte when error frames are two bytes wide.
    """

    code: int
    detail: int | None = None


Frame = DataFrame | ErrorFrame


@dataclass(frozen=True, slots=True)
class FrameSettings:
    """Error-frame layout, which varies between gateway firmwares.

    Attributes:
        error_code_min: Lowest byte classified as an error code.
        error_code_max: Highest byte classified as an error code (inclusive).
        error_frame_width: 1 for a bare code, 2 for code plus detail byte.
    """

    error_code_min: int = DEFAULT_ERROR_CODE_MIN
    error_code_max: int = DEFAULT_ERROR_CODE_MAX
    error_frame_width: int = 1

    def __post_init__(self) -> None:  # noqa: D105
        if not 0 <= self.error_code_min <= self.error_code_max <= 0xFF:
            msg = (
                "error code range must satisfy 0 <= min <= max <= 255, got "
                f"0x{self.error_code_min:02X}-0x{self.error_code_max:02X}"
            )
            raise ValueError(msg)
        if self.error_code_min <= DATA_PREFIX <= self.error_code_max:
            raise ValueError("error code range must not contain the data prefix 0xC8")
        if self.error_frame_width not in (1, 2):
            raise ValueError(
                f"error_frame_width must be 1 or 2, got {self.error_frame_width}"
            )

    def is_error_code(self, byte: int) -> bool:
        """Return True if *byte* falls in the configured error-code range."""
        return self.error_code_min <= byte <= self.error_code_max


# ---------------------------------------------------------------------------
# Bounded byte buffer
# ---------------------------------------------------------------------------


class ByteBuffer:
    """Bounded FIFO of received bytes.

    When a write would exceed *capacity*, the oldest bytes are dropped and
    counted in :attr:`overflowed`.

    Args:
        capacity: Maximum number of buffered bytes.
    """

    def __init__(self, capacity: int = DEFAULT_BUFFER_CAPACITY) -> None:
        if capacity < 2:
            raise ValueError("capacity must hold at least one data frame (2 bytes)")
        self.capacity = capacity
        self._data = bytearray()
        self.overflowed: int = 0

    def __len__(self) -> int:
        return len(self._data)

    def write(self, chunk: bytes) -> None:
        """Append *chunk*, discarding the oldest bytes on overflow."""
        self._data.extend(chunk)
        excess = len(self._data) - self.capacity
        if excess > 0:
            del self._data[:excess]
            self.overflowed += excess
            logger.warning("Receive buffer overflow: dropped %d oldest bytes", excess)

    def peek(self, index: int = 0) -> int | None:
        """Return the byte at *index* from the head without consuming it."""
        if index < len(self._data):
            return self._data[index]
        return None

    def consume(self, n: int = 1) -> bytes:
        """Remove and return up to *n* bytes from the head."""
        out = bytes(self._data[:n])
        del self._data[:n]
        return out

    def clear(self) -> None:
        self._data.clear()

    def hex(self) -> str:
        """Return the buffered bytes as upper-case spaced hex (diagnostics)."""
        return self._data.hex(" ").upper()


# ---------------------------------------------------------------------------
# Decoder
# ---------------------------------------------------------------------------


class FrameDecoder:
    """Classifies raw channel bytes into :data:`Frame` objects.

    Args:
        settings: Error-frame layout.
        capacity: Size of the lookback buffer in bytes.
    """

    def __init__(
        self,
        settings: FrameSettings | None = None,
        *,
        capacity: int = DEFAULT_BUFFER_CAPACITY,
    ) -> None:
        self.settings = settings or FrameSettings()
        self.buffer = ByteBuffer(capacity)
        self.discarded: int = 0

    def feed(self, chunk: bytes) -> list[Frame]:
        """Buffer *chunk* and return every complete frame now available.

        Args:
            chunk: Bytes as read from the channel, any length.

        Returns:
            Frames in stream order.  Incomplete trailing frames stay buffered.
        """
        if chunk:
            self.buffer.write(chunk)

        frames: list[Frame] = []
        buf = self.buffer
        while len(buf) > 0:
            head = buf.peek()
            if head == DATA_PREFIX:
                if len(buf) < 2:
                    break
                _, value = buf.consume(2)
                frames.append(DataFrame(value))
            elif self.settings.is_error_code(head):
                if self.settings.error_frame_width == 2:
                    if len(buf) < 2:
                        break
                    code, detail = buf.consume(2)
                    frames.append(ErrorFrame(code, detail))
                else:
                    buf.consume(1)
                    frames.append(ErrorFrame(head))
            else:
                buf.consume(1)
                self.discarded += 1
                logger.debug("Discarding unframed byte 0x%02X", head)
        return frames

    def reset(self) -> None:
        """Drop any buffered partial frame (used when a new link comes up)."""
        if len(self.buffer):
            logger.debug("Clearing %d buffered bytes: %s", len(self.buffer), self.buffer.hex())
        self.buffer.clear()
