"""
Relay daemon main loop for the PLI charge controller.

Runs three concurrent asyncio loops around one :class:`PliDriver`:
1. **Poll loop**: reads a decoded real-time snapshot every poll interval and
   logs it as JSON for downstream collectors.
2. **History loop**: reads the 30-day log every history interval.
3. **State loop**: follows connection-state notifications and mirrors them
   into the log and the health file.

The driver reconnects on its own; the loops simply skip work while the link
is down.  An exception in one iteration is logged and does not crash the
loop.  Graceful shutdown on SIGTERM/SIGINT sets a shared asyncio.Event, lets
each loop finish its current iteration, then disconnects the driver.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import signal
import sys
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from pli.src.health import HealthWriter
from pli.src.models import ConnectionState

if TYPE_CHECKING:
    from pli.src.driver import PliDriver
    from pli.src.models import ConnectionEvent, HistoryRecord, PliReading

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Structured JSON logging setup
# ---------------------------------------------------------------------------


def configure_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging for the relay daemon.

    Sets up the root logger with a JSON-formatted handler writing to stderr.
    """

    class _JsonFormatter(logging.Formatter):
        """Minimal JSON log formatter."""

        def format(self, record: logging.LogRecord) -> str:
            log_entry = {
                "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
                "level": record.levelname,
                "logger": record.name,
                "msg": record.getMessage(),
            }
            if record.exc_info and record.exc_info[1] is not None:
                log_entry["exception"] = self.formatException(record.exc_info)
            return json.dumps(log_entry)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_JsonFormatter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)


def log_config_summary(settings: object) -> None:
    """Log a config summary at startup.

    Args:
        settings: A PliSettings instance (or any object with the same attrs).
    """
    logger.info(
        "PLI relay starting with config: "
        "pli_host=%s, pli_port=%s, pli_model=%s, pli_system_voltage=%s, "
        "pli_request_timeout_ms=%s, pli_retry_interval_s=%s, "
        "pli_activity_timeout_s=%s, error_codes=0x%02X-0x%02X, "
        "pli_error_frame_width=%s, pli_poll_interval_s=%s, "
        "pli_history_interval_s=%s, pli_history_memory=%s, "
        "pli_late_frame_grace_s=%s, pli_health_path=%s",
        settings.pli_host,  # type: ignore[attr-defined]
        settings.pli_port,  # type: ignore[attr-defined]
        getattr(settings.pli_model, "value", settings.pli_model),  # type: ignore[attr-defined]
        settings.pli_system_voltage,  # type: ignore[attr-defined]
        settings.pli_request_timeout_ms,  # type: ignore[attr-defined]
        settings.pli_retry_interval_s,  # type: ignore[attr-defined]
        settings.pli_activity_timeout_s,  # type: ignore[attr-defined]
        settings.pli_error_code_min,  # type: ignore[attr-defined]
        settings.pli_error_code_max,  # type: ignore[attr-defined]
        settings.pli_error_frame_width,  # type: ignore[attr-defined]
        settings.pli_poll_interval_s,  # type: ignore[attr-defined]
        settings.pli_history_interval_s,  # type: ignore[attr-defined]
        settings.pli_history_memory,  # type: ignore[attr-defined]
        settings.pli_late_frame_grace_s,  # type: ignore[attr-defined]
        settings.pli_health_path,  # type: ignore[attr-defined]
    )


# ---------------------------------------------------------------------------
# Single-iteration functions (easily testable)
# ---------------------------------------------------------------------------


async def _poll_once(
    *,
    driver: PliDriver,
    health: HealthWriter | None,
) -> PliReading | None:
    """Read and log one real-time snapshot.

    Catches all exceptions so that the caller's loop is never broken.

    Returns:
        The reading, or None when the link is down or the poll failed.
    """
    reading: PliReading | None = None
    ok = False
    try:
        if driver.state is not ConnectionState.CONNECTED:
            logger.warning("Gateway not connected, skipping poll")
        else:
            reading = await driver.read_all()
            ok = all(v is not None for v in reading.raw.values())
            if ok:
                logger.info("Reading: %s", reading.model_dump_json())
            else:
                logger.warning("Partial reading: %s", reading.model_dump_json())
    except Exception:
        logger.error("Poll cycle error", exc_info=True)

    if health is not None:
        try:
            health.record_poll(ok)
        except Exception:
            logger.warning("Failed to write health file", exc_info=True)
    return reading


async def _history_once(
    *,
    driver: PliDriver,
    health: HealthWriter | None,
) -> list[HistoryRecord] | None:
    """Read and log the 30-day history log.

    Catches all exceptions so that the caller's loop is never broken.
    """
    if driver.state is not ConnectionState.CONNECTED:
        logger.warning("Gateway not connected, skipping history read")
        return None
    try:
        records = await driver.read_history()
    except Exception:
        logger.error("History read error", exc_info=True)
        return None

    available = [r for r in records if r.available]
    logger.info(
        "History: %d/%d days available: %s",
        len(available),
        len(records),
        json.dumps([r.model_dump() for r in available]),
    )
    if health is not None:
        try:
            health.record_history()
        except Exception:
            logger.warning("Failed to write health file", exc_info=True)
    return records


# ---------------------------------------------------------------------------
# Loop runners
# ---------------------------------------------------------------------------


async def _poll_loop(
    *,
    driver: PliDriver,
    poll_interval_s: float,
    shutdown_event: asyncio.Event,
    health: HealthWriter | None,
) -> None:
    """Run the poll loop until shutdown_event is set."""
    logger.info("Poll loop started (interval=%ss)", poll_interval_s)
    while not shutdown_event.is_set():
        await _poll_once(driver=driver, health=health)
        # Use wait with timeout so we can check shutdown between sleeps
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(shutdown_event.wait(), timeout=poll_interval_s)
    logger.info("Poll loop stopped")


async def _history_loop(
    *,
    driver: PliDriver,
    history_interval_s: float,
    shutdown_event: asyncio.Event,
    health: HealthWriter | None,
) -> None:
    """Run the history loop until shutdown_event is set.

    The first read waits one interval so startup is not delayed by the
    210-register walk.
    """
    logger.info("History loop started (interval=%ss)", history_interval_s)
    while not shutdown_event.is_set():
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(shutdown_event.wait(), timeout=history_interval_s)
        if shutdown_event.is_set():
            break
        await _history_once(driver=driver, health=health)
    logger.info("History loop stopped")


async def _state_loop(
    *,
    driver: PliDriver,
    shutdown_event: asyncio.Event,
    health: HealthWriter | None,
) -> None:
    """Mirror connection-state notifications into the log and health file."""
    events = driver.subscribe()
    stop = asyncio.create_task(shutdown_event.wait())
    get: asyncio.Task[ConnectionEvent] | None = None
    try:
        if health is not None:
            health.record_state(driver.state)
        while not shutdown_event.is_set():
            get = asyncio.create_task(events.get())
            done, _ = await asyncio.wait(
                {get, stop}, return_when=asyncio.FIRST_COMPLETED
            )
            if get not in done:
                break
            event = get.result()
            get = None
            logger.info(
                "Gateway %s (was %s)%s",
                event.state.value,
                event.previous.value,
                f": {event.reason}" if event.reason else "",
            )
            if health is not None:
                try:
                    health.record_state(event.state)
                except Exception:
                    logger.warning("Failed to write health file", exc_info=True)
    finally:
        for task in (get, stop):
            if task is not None:
                task.cancel()
        driver.unsubscribe(events)


# ---------------------------------------------------------------------------
# Concurrent runner with graceful shutdown
# ---------------------------------------------------------------------------


async def run_loops(
    *,
    driver: PliDriver,
    poll_interval_s: float,
    history_interval_s: float,
    shutdown_event: asyncio.Event,
    health: HealthWriter | None = None,
) -> None:
    """Run the poll, history and state loops until shutdown.

    A history interval of 0 disables the history loop.
    """
    logger.info("Starting relay loops")
    loops = [
        _state_loop(driver=driver, shutdown_event=shutdown_event, health=health),
        _poll_loop(
            driver=driver,
            poll_interval_s=poll_interval_s,
            shutdown_event=shutdown_event,
            health=health,
        ),
    ]
    if history_interval_s > 0:
        loops.append(
            _history_loop(
                driver=driver,
                history_interval_s=history_interval_s,
                shutdown_event=shutdown_event,
                health=health,
            )
        )
    await asyncio.gather(*loops)
    logger.info("Shutdown complete")


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


async def async_main() -> None:
    """Async entrypoint: load config, build the driver, run loops.

    Sets up SIGTERM/SIGINT handlers to trigger graceful shutdown.
    """
    from pli.src.config import PliSettings
    from pli.src.driver import PliDriver

    settings = PliSettings()
    configure_logging(settings.pli_log_level)
    log_config_summary(settings)

    shutdown_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda: _handle_signal(shutdown_event),
        )

    driver = PliDriver.from_settings(settings)
    health = HealthWriter(settings.pli_health_path, stats=driver.stats)

    if not await driver.connect():
        logger.warning("Initial connection failed, retrying in background")
    try:
        await run_loops(
            driver=driver,
            poll_interval_s=settings.pli_poll_interval_s,
            history_interval_s=settings.pli_history_interval_s,
            shutdown_event=shutdown_event,
            health=health,
        )
    finally:
        await driver.disconnect()


def _handle_signal(shutdown_event: asyncio.Event) -> None:
    """Handle SIGTERM/SIGINT by setting the shutdown event.

    Args:
        shutdown_event: The event to set for graceful shutdown.
    """
    logger.info("Received shutdown signal, initiating graceful shutdown")
    shutdown_event.set()


def main() -> None:
    """Synchronous entrypoint for the relay daemon."""
    asyncio.run(async_main())


if __name__ == "__main__":
    main()
