"""
Health file writer for the relay daemon.

Writes a JSON health file at a configurable path with these fields:
- connection_state: Current gateway connection state.
- last_state_change_ts: ISO timestamp of the last connection transition.
- last_poll_ts: ISO timestamp of the most recent snapshot attempt.
- last_poll_ok: Whether every register of that snapshot was read.
- last_history_ts: ISO timestamp of the most recent history read.
- stats: Traffic counters of the driver session.

The file is rewritten on every state change, providing a simple liveness
signal that Docker HEALTHCHECK or monitoring can inspect.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pli.src.connection import ConnectionStats
    from pli.src.models import ConnectionState


class HealthWriter:
    """Writes relay health status to a JSON file.

    Each mutating method updates the in-memory state and immediately
    rewrites the health file so it always reflects the latest status.

    Args:
        path: Filesystem path for the health JSON file. Accepts str or Path.
        stats: Driver statistics embedded in every write.
    """

    def __init__(self, path: str | Path, stats: ConnectionStats | None = None) -> None:
        self.path = Path(path)
        self._stats = stats
        self._connection_state: str | None = None
        self._last_state_change_ts: str | None = None
        self._last_poll_ts: str | None = None
        self._last_poll_ok: bool | None = None
        self._last_history_ts: str | None = None

    def record_state(self, state: ConnectionState) -> None:
        """Record a connection-state transition and write health file."""
        self._connection_state = state.value
        self._last_state_change_ts = _now()
        self._write()

    def record_poll(self, ok: bool) -> None:
        """Record a snapshot attempt and write health file.

        Args:
            ok: True when every register of the snapshot was read.
        """
        self._last_poll_ts = _now()
        self._last_poll_ok = ok
        self._write()

    def record_history(self) -> None:
        """Record a history read and write health file."""
        self._last_history_ts = _now()
        self._write()

    def _write(self) -> None:
        """Write the health JSON file with current state."""
        data = {
            "connection_state": self._connection_state,
            "last_state_change_ts": self._last_state_change_ts,
            "last_poll_ts": self._last_poll_ts,
            "last_poll_ok": self._last_poll_ok,
            "last_history_ts": self._last_history_ts,
            "stats": self._stats.to_dict() if self._stats is not None else None,
        }
        self.path.write_text(json.dumps(data))


def _now() -> str:
    return datetime.now(tz=UTC).isoformat()
