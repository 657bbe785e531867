"""
Request/response correlation for the PLI protocol.

Responses carry no address or request id, so a data frame always resolves
the *oldest* outstanding request.  This is only correct while a single
request is in flight; :class:`~pli.src.driver.PliDriver` serialises callers
to guarantee it.

- ``submit()`` enqueues a pending request, writes the command, and arms a
  timeout.
- ``deliver()`` hands a decoded frame to the oldest pending request.
- A request that times out is removed; a data frame arriving later is
  dropped, never re-attributed.
- ``fail_all()`` rejects everything outstanding (connection lost).

Error frames are advisory: they are reported to ``on_error`` and leave the
pending request alone unless ``reject_on_error_frame`` is set, or the request
was submitted with ``accepts_error`` (loopback self-test).

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
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from pli.src.errors import ProtocolError, RequestTimeoutError
from pli.src.framing import DataFrame, ErrorFrame, Frame

if TYPE_CHECKING:
    from pli.src.commands import Command

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class PendingRequest:
    """One outstanding request, owned by the correlator until completion.

    Attributes:
        address: Register address the command targeted.
        timeout_s: Seconds before the request is rejected.
        future: Single-use result slot awaited by the caller.
        issued_at: Monotonic timestamp of submission.
        accepts_error: Resolve with the code when an error frame arrives.
        timer: Armed timeout handle, cancelled on completion.
    """

    address: int
    timeout_s: float
    future: asyncio.Future[int]
    issued_at: float = field(default_factory=time.monotonic)
    accepts_error: bool = False
    timer: asyncio.TimerHandle | None = None


class RequestCorrelator:
    """FIFO matcher between submitted requests and decoded frames.

    Args:
        send: Coroutine writing raw bytes to the channel.
        reject_on_error_frame: Reject the oldest request with
            :class:`ProtocolError` when an error frame arrives.
        on_error: Observer called with a :class:`ProtocolError` for every
            error frame.
    """

    def __init__(
        self,
        send: Callable[[bytes], Awaitable[None]],
        *,
        reject_on_error_frame: bool = False,
        on_error: Callable[[ProtocolError], None] | None = None,
    ) -> None:
        self._send = send
        self._reject_on_error_frame = reject_on_error_frame
        self._on_error = on_error
        self._pending: deque[PendingRequest] = deque()
        self.unmatched_frames: int = 0

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def submit(
        self,
        command: Command,
        timeout_s: float,
        *,
        accepts_error: bool = False,
    ) -> asyncio.Future[int]:
        """Register a pending request, send *command*, and arm its timeout.

        Args:
            command: Encoded request frame.
            timeout_s: Seconds to wait for a response.
            accepts_error: Resolve with the error code if the next frame is
                an error frame.

        Returns:
            Future resolved with the response byte, or rejected with
            :class:`RequestTimeoutError` / a connection error.

        Raises:
            NotConnectedError: If the channel is not open (request is not kept).
        """
        loop = asyncio.get_running_loop()
        request = PendingRequest(
            address=command.address,
            timeout_s=timeout_s,
            future=loop.create_future(),
            accepts_error=accepts_error,
        )
        self._pending.append(request)
        try:
            await self._send(command.to_bytes())
        except BaseException:
            self._discard(request)
            request.future.cancel()
            raise

        if not request.future.done():
            request.timer = loop.call_later(timeout_s, self._expire, request)
            request.future.add_done_callback(lambda _f: self._discard(request))
        logger.debug("Sent %r, awaiting response @%d", command, command.address)
        return request.future

    def deliver(self, frame: Frame) -> None:
        """Route a decoded frame to the oldest pending request."""
        if isinstance(frame, DataFrame):
            request = self._oldest()
            if request is None:
                self.unmatched_frames += 1
                logger.debug("Dropping unmatched data frame value=%d", frame.value)
                return
            self._complete(request, result=frame.value)
            return

        if isinstance(frame, ErrorFrame):
            error = ProtocolError(frame.code, frame.detail)
            logger.warning("Device reported error frame: %s", error)
            if self._on_error is not None:
                self._on_error(error)
            request = self._oldest()
            if request is None:
                return
            if request.accepts_error:
                self._complete(request, result=frame.code)
            elif self._reject_on_error_frame:
                self._complete(request, error=error)

    def fail_all(self, exc: BaseException) -> None:
        """Reject every outstanding request with *exc*."""
        if self._pending:
            logger.warning("Failing %d pending request(s): %s", len(self._pending), exc)
        while self._pending:
            self._complete(self._pending[0], error=exc)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _oldest(self) -> PendingRequest | None:
        while self._pending and self._pending[0].future.done():
            self._discard(self._pending[0])
        return self._pending[0] if self._pending else None

    def _complete(
        self,
        request: PendingRequest,
        *,
        result: int | None = None,
        error: BaseException | None = None,
    ) -> None:
        self._discard(request)
        if request.future.done():
            return
        if error is not None:
            request.future.set_exception(error)
        else:
            elapsed_ms = (time.monotonic() - request.issued_at) * 1000
            logger.debug("Read @%d -> %s in %.0fms", request.address, result, elapsed_ms)
            request.future.set_result(result)

    def _expire(self, request: PendingRequest) -> None:
        request.timer = None
        logger.warning(
            "Timeout reading @%d after %.3fs", request.address, request.timeout_s
        )
        self._complete(
            request, error=RequestTimeoutError(request.address, request.timeout_s)
        )

    def _discard(self, request: PendingRequest) -> None:
        if request.timer is not None:
            request.timer.cancel()
            request.timer = None
        with contextlib.suppress(ValueError):
            self._pending.remove(request)
