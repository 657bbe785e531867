"""
PLI protocol driver session.

A :class:`PliDriver` owns everything one controller link needs: the
connection manager and its channel, the frame decoder, the bounded frame
queue, the request correlator, the history reader, and traffic statistics.
There is no module-level state; run two drivers for two controllers.

Wiring::

    read() -> encode() -> correlator.submit() -> connection.write()
    connection reader task -> decoder.feed() -> frame queue
    dispatcher task -> correlator.deliver() -> caller's future

Responses carry no correlation id, so the driver allows a single request in
flight: concurrent callers queue on an ``asyncio.Lock`` behind the current
read.

Driver contract:
- ``connect()`` / ``disconnect()``: idempotent lifecycle controls.
- ``read(address)``: one raw byte, raises on failure.
- ``read_batch(addresses)``: best effort, ``None`` for failed addresses.
- ``read_value(name)``: one decoded register value.
- ``read_all()``: decoded real-time snapshot.
- ``read_history()``: 30 daily records, unavailable days marked.
- ``test()``: loopback self-test.
- ``subscribe()``: connection-state notifications.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from pli.src.commands import Opcode, encode
from pli.src.connection import (
    DEFAULT_ACTIVITY_TIMEOUT_S,
    DEFAULT_CONNECT_TIMEOUT_S,
    DEFAULT_MAX_RETRY_INTERVAL_S,
    DEFAULT_RETRY_INTERVAL_S,
    ConnectionManager,
    ConnectionStats,
)
from pli.src.correlator import RequestCorrelator
from pli.src.errors import PliError, ProtocolError, RequestTimeoutError
from pli.src.framing import DEFAULT_BUFFER_CAPACITY, FrameDecoder, FrameSettings
from pli.src.history import HISTORY_OPCODE, HistoryReader
from pli.src.models import (
    ConnectionEvent,
    ConnectionState,
    ControllerState,
    HistoryRecord,
    PliReading,
    SystemConfig,
)
from pli.src.registers import READING_REGISTERS, REGISTERS_BY_NAME, decode_register

if TYPE_CHECKING:
    from collections.abc import Iterable

    from pli.src.commands import Command
    from pli.src.config import PliSettings
    from pli.src.framing import Frame

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_PORT: int = 8888
DEFAULT_TIMEOUT_S: float = 5.0
DEFAULT_LATE_FRAME_GRACE_S: float = 0.5
"""How long a timed-out request keeps the line, so its late reply is dropped."""
FRAME_QUEUE_SIZE: int = 64

_FIELD_MAP: dict[str, str] = {
    "battery_voltage_v": "battery_voltage",
    "battery_temp_c": "battery_temperature",
    "battery_soc_pct": "state_of_charge",
    "solar_voltage_v": "solar_voltage",
    "charge_current_a": "charge_current",
    "state": "controller_state",
}
"""Maps PliReading field name -> register name."""


class PliDriver:
    """Session object for one controller behind one gateway.

    Args:
        host: Gateway IP address or hostname.
        port: Gateway TCP port.
        config: Controller model and system voltage used for decoding.
        timeout_s: Default per-request timeout.
        frame_settings: Error-frame layout for the decoder.
        reject_on_error_frame: Fail the in-flight read when the device sends
            an error frame instead of leaving it to time out.
        retry_interval_s: Initial reconnection delay.
        max_retry_interval_s: Cap for the reconnection delay.
        connect_timeout_s: Timeout for one TCP connect.
        activity_timeout_s: Idle time before the link is force-closed.
        frame_queue_size: Capacity of the decoded frame queue.
        buffer_capacity: Capacity of the decoder's byte buffer.
        late_frame_grace_s: After a timeout, how long the next request waits
            so a late reply is dropped instead of answering it.
        history_opcode: READ_EEPROM (default) or READ_RAM for history reads.

    Usage::

        async with PliDriver(host="192.168.1.50", config=SystemConfig()) as pli:
            soc = await pli.read_value("state_of_charge")
            history = await pli.read_history()
    """

    def __init__(
        self,
        *,
        host: str,
        port: int = DEFAULT_PORT,
        config: SystemConfig | None = None,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        frame_settings: FrameSettings | None = None,
        reject_on_error_frame: bool = False,
        retry_interval_s: float = DEFAULT_RETRY_INTERVAL_S,
        max_retry_interval_s: float = DEFAULT_MAX_RETRY_INTERVAL_S,
        connect_timeout_s: float = DEFAULT_CONNECT_TIMEOUT_S,
        activity_timeout_s: float = DEFAULT_ACTIVITY_TIMEOUT_S,
        frame_queue_size: int = FRAME_QUEUE_SIZE,
        buffer_capacity: int = DEFAULT_BUFFER_CAPACITY,
        late_frame_grace_s: float = DEFAULT_LATE_FRAME_GRACE_S,
        history_opcode: int = HISTORY_OPCODE,
    ) -> None:
        self.config = config or SystemConfig()
        self.timeout_s = timeout_s
        self.late_frame_grace_s = late_frame_grace_s
        self.stats = ConnectionStats()
        self.last_protocol_error: ProtocolError | None = None

        self.decoder = FrameDecoder(frame_settings, capacity=buffer_capacity)
        self._frames: asyncio.Queue[Frame] = asyncio.Queue(maxsize=frame_queue_size)
        self.connection = ConnectionManager(
            host=host,
            port=port,
            decoder=self.decoder,
            frames=self._frames,
            on_lost=self._on_connection_lost,
            retry_interval_s=retry_interval_s,
            max_retry_interval_s=max_retry_interval_s,
            connect_timeout_s=connect_timeout_s,
            activity_timeout_s=activity_timeout_s,
            stats=self.stats,
        )
        self.correlator = RequestCorrelator(
            self.connection.write,
            reject_on_error_frame=reject_on_error_frame,
            on_error=self._on_protocol_error,
        )
        self.history = HistoryReader(self.read, opcode=history_opcode)
        self._lock = asyncio.Lock()
        self._dispatcher: asyncio.Task[None] | None = None

    @classmethod
    def from_settings(cls, settings: PliSettings) -> PliDriver:
        """Build a driver from :class:`~pli.src.config.PliSettings`."""
        return cls(
            host=settings.pli_host,
            port=settings.pli_port,
            config=settings.system_config(),
            timeout_s=settings.request_timeout_s,
            frame_settings=settings.frame_settings(),
            reject_on_error_frame=settings.pli_reject_on_error_frame,
            retry_interval_s=settings.pli_retry_interval_s,
            max_retry_interval_s=settings.pli_max_retry_interval_s,
            connect_timeout_s=settings.pli_connect_timeout_s,
            activity_timeout_s=settings.pli_activity_timeout_s,
            late_frame_grace_s=settings.pli_late_frame_grace_s,
            history_opcode=settings.history_opcode,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self.connection.state

    def subscribe(self, maxsize: int = 32) -> asyncio.Queue[ConnectionEvent]:
        """Return a queue of connection-state change notifications."""
        return self.connection.subscribe(maxsize)

    def unsubscribe(self, queue: asyncio.Queue[ConnectionEvent]) -> None:
        self.connection.unsubscribe(queue)

    async def connect(self) -> bool:
        """Start the connection lifecycle.

        Returns True once connected.  On failure the driver keeps retrying
        in the background and False is returned; reads succeed as soon as
        a later attempt gets through.
        """
        if self._dispatcher is None or self._dispatcher.done():
            self._dispatcher = asyncio.create_task(self._dispatch_frames())
        return await self.connection.connect()

    async def disconnect(self) -> None:
        """Close the link, stop reconnecting, and fail outstanding reads."""
        await self.connection.disconnect()
        if self._dispatcher is not None:
            self._dispatcher.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._dispatcher
            self._dispatcher = None
        while not self._frames.empty():
            self._frames.get_nowait()

    async def __aenter__(self) -> PliDriver:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        await self.disconnect()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def read(
        self,
        address: int,
        timeout_s: float | None = None,
        *,
        opcode: int = Opcode.READ_RAM,
    ) -> int:
        """Read one register byte.

        Waits behind any read already in flight.  If the read times out, the line
        is held for ``late_frame_grace_s`` so a late reply cannot answer the
        next read.

        Args:
            address: Register address (0-255).
            timeout_s: Request timeout, defaults to the driver's.
            opcode: READ_RAM (default) or READ_EEPROM.

        Returns:
            The raw byte.

        Raises:
            NotConnectedError: The channel is not open.
            RequestTimeoutError: No data frame arrived in time.
            ChannelClosedError: The connection dropped during the read.
            ProtocolError: An error frame arrived and
                ``reject_on_error_frame`` is enabled.
        """
        command = encode(opcode, address)
        timeout = self.timeout_s if timeout_s is None else timeout_s
        return await self._request(command, timeout)

    async def read_batch(self, addresses: Iterable[int]) -> dict[int, int | None]:
        """Read several registers one after another.

        A failed address maps to ``None``; the batch never aborts.
        """
        results: dict[int, int | None] = {}
        for address in addresses:
            try:
                results[address] = await self.read(address)
            except PliError as exc:
                logger.warning("Read @%d failed: %s", address, exc)
                results[address] = None
        return results

    async def read_value(self, name: str) -> float | int | ControllerState:
        """Read and decode the register called *name*.

        Raises:
            KeyError: Unknown register name.
            PliError: The read failed.
        """
        reg = REGISTERS_BY_NAME[name]
        raw = await self.read(reg.address)
        return decode_register(reg, raw, self.config)

    async def read_all(self) -> PliReading:
        """Read and decode a real-time snapshot, best effort."""
        regs = [REGISTERS_BY_NAME[name] for name in READING_REGISTERS]
        raw = await self.read_batch(reg.address for reg in regs)

        fields: dict[str, object] = {}
        for field_name, reg_name in _FIELD_MAP.items():
            reg = REGISTERS_BY_NAME[reg_name]
            value = raw.get(reg.address)
            fields[field_name] = (
                None if value is None else decode_register(reg, value, self.config)
            )

        return PliReading(ts=datetime.now(tz=UTC), raw=raw, **fields)

    async def read_history(self) -> list[HistoryRecord]:
        """Read the 30-day log, most recent day first."""
        return await self.history.read(self.config)

    async def test(self, timeout_s: float | None = None) -> bool:
        """Loopback self-test.

        Sends a LOOPBACK command and reports whether the gateway answered
        with any frame (data or error) before the timeout.
        """
        if self.state is not ConnectionState.CONNECTED:
            logger.warning("Loopback test skipped: not connected")
            return False
        command = encode(Opcode.LOOPBACK, 0x00, 0x00)
        timeout = self.timeout_s if timeout_s is None else timeout_s
        try:
            reply = await self._request(command, timeout, accepts_error=True)
        except PliError as exc:
            logger.warning("Loopback test failed: %s", exc)
            return False
        logger.info("Loopback test OK (reply 0x%02X)", reply)
        return True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _request(
        self, command: Command, timeout_s: float, *, accepts_error: bool = False
    ) -> int:
        """Run one request with the line to itself."""
        async with self._lock:
            self._discard_stale()
            future = await self.correlator.submit(
                command, timeout_s, accepts_error=accepts_error
            )
            try:
                return await future
            except RequestTimeoutError:
                if self.late_frame_grace_s > 0:
                    await asyncio.sleep(self.late_frame_grace_s)
                raise

    def _discard_stale(self) -> None:
        # Bytes and frames received while nothing was pending belong to no one.
        self.decoder.reset()
        while not self._frames.empty():
            self._frames.get_nowait()
            self.correlator.unmatched_frames += 1

    async def _dispatch_frames(self) -> None:
        """Drain the frame queue into the correlator until cancelled."""
        while True:
            frame = await self._frames.get()
            try:
                self.correlator.deliver(frame)
            except Exception:
                logger.error("Frame dispatch error for %r", frame, exc_info=True)

    def _on_connection_lost(self, exc: PliError) -> None:
        # Frames from the dead link must not answer reads on the next one.
        while not self._frames.empty():
            self._frames.get_nowait()
        self.correlator.fail_all(exc)

    def _on_protocol_error(self, error: ProtocolError) -> None:
        self.last_protocol_error = error
