"""
Connection manager for the PLI serial-to-TCP gateway.

Owns the TCP channel and drives its lifecycle::

    DISCONNECTED --retry tick--> CONNECTING --ok--> CONNECTED
         ^                           |                 |
         |<-------- failure ---------+                 |
         |<----- eof / activity timeout ---------------+
         |<-- retry delay -- ERROR <-- read/write error+

A dedicated reader task feeds received bytes into the
:class:`~pli.src.framing.FrameDecoder` and pushes classified frames onto a
bounded queue consumed by the driver.  Every state transition is published
as a :class:`~pli.src.models.ConnectionEvent` to subscriber queues.

Reconnection is driven by a single ``call_later`` handle.  A new retry is
only armed while no retry is pending and no attempt is in flight, so
repeated close events never stack up retry timers.  The retry delay grows
exponentially with consecutive failures, capped at ``max_retry_interval_s``.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from pli.src.errors import ChannelClosedError, NotConnectedError
from pli.src.framing import DataFrame
from pli.src.models import ConnectionEvent, ConnectionState

if TYPE_CHECKING:
    from pli.src.framing import Frame, FrameDecoder

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_RETRY_INTERVAL_S: float = 1.0
"""Delay before the first reconnection attempt."""

DEFAULT_MAX_RETRY_INTERVAL_S: float = 30.0
"""Cap for the exponentially growing retry delay."""

DEFAULT_CONNECT_TIMEOUT_S: float = 5.0

DEFAULT_ACTIVITY_TIMEOUT_S: float = 300.0
"""Force-close the channel after this long without traffic either way."""

READ_CHUNK_SIZE: int = 1024


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------


@dataclass
class ConnectionStats:
    """Traffic counters for one driver session."""

    connections: int = 0
    bytes_received: int = 0
    bytes_sent: int = 0
    errors: int = 0
    frames_data: int = 0
    frames_error: int = 0
    frames_dropped: int = 0
    last_activity: datetime | None = None

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-friendly copy of the counters."""
        data = asdict(self)
        if self.last_activity is not None:
            data["last_activity"] = self.last_activity.isoformat()
        return data


# ---------------------------------------------------------------------------
# Manager
# ---------------------------------------------------------------------------


class ConnectionManager:
    """Sole owner of the gateway channel and its connection state.

    Args:
        host: Gateway IP address or hostname.
        port: Gateway TCP port.
        decoder: Frame decoder fed by the reader task.
        frames: Bounded queue receiving decoded frames.
        on_lost: Called with a :class:`ChannelClosedError` whenever an open
            connection goes away.
        retry_interval_s: Initial reconnection delay.
        max_retry_interval_s: Cap for the reconnection delay.
        connect_timeout_s: Timeout for a single connection attempt.
        activity_timeout_s: Idle time before the channel is force-closed;
            0 disables the watchdog.
        stats: Counters to update, shared with the driver.
    """

    def __init__(
        self,
        *,
        host: str,
        port: int,
        decoder: FrameDecoder,
        frames: asyncio.Queue[Frame],
        on_lost: Callable[[ChannelClosedError], None] | None = None,
        retry_interval_s: float = DEFAULT_RETRY_INTERVAL_S,
        max_retry_interval_s: float = DEFAULT_MAX_RETRY_INTERVAL_S,
        connect_timeout_s: float = DEFAULT_CONNECT_TIMEOUT_S,
        activity_timeout_s: float = DEFAULT_ACTIVITY_TIMEOUT_S,
        stats: ConnectionStats | None = None,
    ) -> None:
        self.host = host
        self.port = port
        self._decoder = decoder
        self._frames = frames
        self._on_lost = on_lost
        self._retry_interval_s = retry_interval_s
        self._max_retry_interval_s = max(max_retry_interval_s, retry_interval_s)
        self._connect_timeout_s = connect_timeout_s
        self._activity_timeout_s = activity_timeout_s
        self.stats = stats or ConnectionStats()

        self._state = ConnectionState.DISCONNECTED
        self._running = False
        self._consecutive_failures = 0
        self._last_activity = time.monotonic()

        self._writer: asyncio.StreamWriter | None = None
        self._connect_task: asyncio.Task[None] | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._watchdog_task: asyncio.Task[None] | None = None
        self._retry_handle: asyncio.TimerHandle | None = None
        self._subscribers: list[asyncio.Queue[ConnectionEvent]] = []

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def retry_armed(self) -> bool:
        """True while a reconnection timer is pending."""
        return self._retry_handle is not None

    @property
    def current_retry_delay(self) -> float:
        """Delay the next reconnection attempt would wait, in seconds."""
        exponent = max(self._consecutive_failures - 1, 0)
        return min(self._retry_interval_s * (2**exponent), self._max_retry_interval_s)

    def subscribe(self, maxsize: int = 32) -> asyncio.Queue[ConnectionEvent]:
        """Return a queue receiving every future state transition.

        When the queue is full the oldest event is dropped.
        """
        queue: asyncio.Queue[ConnectionEvent] = asyncio.Queue(maxsize=maxsize)
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[ConnectionEvent]) -> None:
        with contextlib.suppress(ValueError):
            self._subscribers.remove(queue)

    async def connect(self) -> bool:
        """Start the connection lifecycle and wait for the current attempt.

        Idempotent: while connected this returns immediately, and while an
        attempt is in flight it waits for that attempt rather than starting
        another.  Failed attempts keep retrying in the background until
        :meth:`disconnect` is called.

        Returns:
            True if the channel is connected when the attempt completes.
        """
        self._running = True
        if self._state is ConnectionState.CONNECTED:
            return True
        if self._connect_task is None or self._connect_task.done():
            self._cancel_retry()
            self._connect_task = asyncio.create_task(self._attempt())
        await asyncio.wait({self._connect_task})
        return self._state is ConnectionState.CONNECTED

    async def disconnect(self) -> None:
        """Stop reconnecting and close the channel.  Idempotent."""
        self._running = False
        self._cancel_retry()

        task = self._connect_task
        self._connect_task = None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        was_connected = self._state is ConnectionState.CONNECTED
        pending = self._teardown()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._set_state(ConnectionState.DISCONNECTED, reason="disconnect requested")
        if was_connected and self._on_lost is not None:
            self._on_lost(ChannelClosedError("Disconnected by caller"))

    async def write(self, data: bytes) -> None:
        """Send raw bytes to the gateway.

        Raises:
            NotConnectedError: If the channel is not open.
            ChannelClosedError: If the write fails; the connection is torn
                down and a reconnection is scheduled.
        """
        writer = self._writer
        if self._state is not ConnectionState.CONNECTED or writer is None:
            raise NotConnectedError(
                f"Not connected to {self.host}:{self.port} (state={self._state.value})"
            )
        try:
            writer.write(data)
            await writer.drain()
        except OSError as exc:
            self._lost(f"write failed: {exc}", error=True)
            raise ChannelClosedError(f"Write to {self.host}:{self.port} failed") from exc
        self.stats.bytes_sent += len(data)
        self._touch()

    # ------------------------------------------------------------------
    # Lifecycle internals
    # ------------------------------------------------------------------

    async def _attempt(self) -> None:
        """Run one connection attempt: DISCONNECTED -> CONNECTING -> ..."""
        if self._state is ConnectionState.ERROR:
            self._set_state(ConnectionState.DISCONNECTED)
        self._set_state(ConnectionState.CONNECTING)
        logger.info("Connecting to gateway %s:%d", self.host, self.port)

        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port),
                timeout=self._connect_timeout_s,
            )
        except (OSError, TimeoutError) as exc:
            self._consecutive_failures += 1
            self.stats.errors += 1
            reason = str(exc) or type(exc).__name__
            logger.warning(
                "Failed to connect to gateway %s:%d: %s (consecutive failures: %d)",
                self.host,
                self.port,
                reason,
                self._consecutive_failures,
            )
            self._set_state(ConnectionState.DISCONNECTED, reason=reason)
            self._schedule_reconnect()
            return

        if not self._running:
            writer.close()
            self._set_state(ConnectionState.DISCONNECTED, reason="disconnect requested")
            return

        self._writer = writer
        self._consecutive_failures = 0
        self.stats.connections += 1
        self._decoder.reset()
        self._touch()
        self._set_state(ConnectionState.CONNECTED)
        self._reader_task = asyncio.create_task(self._read_loop(reader))
        if self._activity_timeout_s > 0:
            self._watchdog_task = asyncio.create_task(self._watchdog())

    def _schedule_reconnect(self) -> None:
        """Arm the single reconnection timer, unless one is already armed."""
        if not self._running or self._retry_handle is not None:
            return
        if self._state in (ConnectionState.CONNECTING, ConnectionState.CONNECTED):
            return
        delay = self.current_retry_delay
        logger.info("Reconnecting to %s:%d in %.1fs", self.host, self.port, delay)
        loop = asyncio.get_running_loop()
        self._retry_handle = loop.call_later(delay, self._on_retry_tick)

    def _on_retry_tick(self) -> None:
        self._retry_handle = None
        if not self._running:
            return
        if self._state in (ConnectionState.CONNECTING, ConnectionState.CONNECTED):
            return
        if self._connect_task is not None and not self._connect_task.done():
            return
        self._connect_task = asyncio.create_task(self._attempt())

    def _cancel_retry(self) -> None:
        if self._retry_handle is not None:
            self._retry_handle.cancel()
            self._retry_handle = None

    def _lost(self, reason: str, *, error: bool = False) -> None:
        """Tear down an open connection and schedule reconnection."""
        if self._state is not ConnectionState.CONNECTED:
            return
        self._teardown()
        if error:
            self.stats.errors += 1
            logger.warning("Gateway connection error: %s", reason)
            self._set_state(ConnectionState.ERROR, reason=reason)
        else:
            logger.info("Gateway connection closed: %s", reason)
            self._set_state(ConnectionState.DISCONNECTED, reason=reason)
        if self._on_lost is not None:
            self._on_lost(ChannelClosedError(f"Connection lost: {reason}"))
        self._schedule_reconnect()

    def _teardown(self) -> list[asyncio.Task[None]]:
        """Close the writer and cancel helper tasks.

        Returns:
            Cancelled tasks, other than the current one, for the caller to
            await if it can.
        """
        current = asyncio.current_task()
        cancelled: list[asyncio.Task[None]] = []
        for task in (self._reader_task, self._watchdog_task):
            if task is not None and task is not current and not task.done():
                task.cancel()
                cancelled.append(task)
        self._reader_task = None
        self._watchdog_task = None

        if self._writer is not None:
            self._writer.close()
            self._writer = None
        return cancelled

    # ------------------------------------------------------------------
    # Helper tasks
    # ------------------------------------------------------------------

    async def _read_loop(self, reader: asyncio.StreamReader) -> None:
        """Pump channel bytes through the decoder into the frame queue."""
        try:
            while True:
                chunk = await reader.read(READ_CHUNK_SIZE)
                if not chunk:
                    self._lost("closed by peer")
                    return
                self.stats.bytes_received += len(chunk)
                self._touch()
                for frame in self._decoder.feed(chunk):
                    self._enqueue_frame(frame)
        except OSError as exc:
            self._lost(f"read failed: {exc}", error=True)

    async def _watchdog(self) -> None:
        """Force-close the channel after ``activity_timeout_s`` of silence."""
        timeout = self._activity_timeout_s
        while True:
            idle = time.monotonic() - self._last_activity
            if idle >= timeout:
                logger.warning(
                    "No traffic for %.1fs, closing gateway connection", idle
                )
                self._lost("activity timeout")
                return
            await asyncio.sleep(timeout - idle)

    def _enqueue_frame(self, frame: Frame) -> None:
        if isinstance(frame, DataFrame):
            self.stats.frames_data += 1
        else:
            self.stats.frames_error += 1
        if self._frames.full():
            dropped = self._frames.get_nowait()
            self.stats.frames_dropped += 1
            logger.warning("Frame queue full, dropping oldest frame %r", dropped)
        self._frames.put_nowait(frame)

    def _touch(self) -> None:
        self._last_activity = time.monotonic()
        self.stats.last_activity = datetime.now(tz=UTC)

    def _set_state(self, state: ConnectionState, *, reason: str | None = None) -> None:
        previous = self._state
        if state is previous:
            return
        self._state = state
        event = ConnectionEvent(
            state=state, previous=previous, ts=datetime.now(tz=UTC), reason=reason
        )
        logger.info(
            "Connection state %s -> %s%s",
            previous.value,
            state.value,
            f" ({reason})" if reason else "",
        )
        for queue in list(self._subscribers):
            if queue.full():
                queue.get_nowait()
            queue.put_nowait(event)
