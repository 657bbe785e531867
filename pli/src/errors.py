"""
Error taxonomy for the PLI protocol driver.

- NotConnectedError: a command was written while the channel was not open.
- RequestTimeoutError: no data frame arrived within the request timeout.
- ProtocolError: the device reported an error frame (advisory, uncorrelated).
- ChannelClosedError: the connection dropped while a request was outstanding.

The timeout and connection errors also derive from the matching builtin
exception so callers can catch ``TimeoutError`` / ``ConnectionError``.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

ERROR_DESCRIPTIONS: dict[int, str] = {
    0x80: "No comms",
    0x81: "Timeout",
    0x82: "Checksum error",
    0x83: "Command not recognized",
    0x84: "Controller no reply",
    0x85: "Error in reply",
}
"""Known gateway/device error codes."""


class PliError(Exception):
    """Base class for every error raised by the driver."""


class NotConnectedError(PliError, ConnectionError):
    """Raised when writing to a channel that is not open."""


class RequestTimeoutError(PliError, TimeoutError):
    """Raised when a read receives no data frame before its timeout.

    Args:
        address: Register address the request was issued for.
        timeout_s: Timeout that elapsed, in seconds.
    """

    def __init__(self, address: int, timeout_s: float) -> None:
        super().__init__(f"Timeout reading @{address} after {timeout_s:.3f}s")
        self.address = address
        self.timeout_s = timeout_s


class ProtocolError(PliError):
    """A device error frame was observed.

    Args:
        code: Error code byte.
        detail: Trailing byte for two-byte error frames, else ``None``.
    """

    def __init__(self, code: int, detail: int | None = None) -> None:
        self.code = code
        self.detail = detail
        self.description = describe_error(code)
        msg = f"Device error 0x{code:02X} ({self.description})"
        if detail is not None:
            msg += f" detail=0x{detail:02X}"
        super().__init__(msg)


class ChannelClosedError(PliError, ConnectionError):
    """Raised for every request outstanding when the connection drops."""


def describe_error(code: int) -> str:
    """Return a human-readable description for a device error code."""
    return ERROR_DESCRIPTIONS.get(code, "Unknown")
