"""
Unit tests for the relay health writer.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import json
from pathlib import Path

from pli.src.connection import ConnectionStats
from pli.src.health import HealthWriter
from pli.src.models import ConnectionState

_FIELDS = {
    "connection_state",
    "last_state_change_ts",
    "last_poll_ts",
    "last_poll_ok",
    "last_history_ts",
    "stats",
}


class TestHealthWriter:
    """Every record_* call rewrites the file with all fields."""

    def test_record_state(self, tmp_path: Path) -> None:
        path = tmp_path / "health.json"
        HealthWriter(path).record_state(ConnectionState.CONNECTED)

        data = json.loads(path.read_text())
        assert set(data) == _FIELDS
        assert data["connection_state"] == "connected"
        assert "T" in data["last_state_change_ts"]
        assert data["last_poll_ts"] is None
        assert data["stats"] is None

    def test_record_poll(self, tmp_path: Path) -> None:
        path = tmp_path / "health.json"
        writer = HealthWriter(path)
        writer.record_poll(True)
        assert json.loads(path.read_text())["last_poll_ok"] is True
        writer.record_poll(False)
        data = json.loads(path.read_text())
        assert data["last_poll_ok"] is False
        assert data["last_poll_ts"] is not None

    def test_record_history(self, tmp_path: Path) -> None:
        path = tmp_path / "health.json"
        HealthWriter(str(path)).record_history()
        assert json.loads(path.read_text())["last_history_ts"] is not None

    def test_fields_persist_across_writes(self, tmp_path: Path) -> None:
        path = tmp_path / "health.json"
        writer = HealthWriter(path)
        writer.record_state(ConnectionState.ERROR)
        writer.record_poll(True)
        data = json.loads(path.read_text())
        assert data["connection_state"] == "error"
        assert data["last_poll_ok"] is True

    def test_stats_embedded(self, tmp_path: Path) -> None:
        path = tmp_path / "health.json"
        stats = ConnectionStats()
        writer = HealthWriter(path, stats=stats)
        stats.bytes_sent = 24
        stats.frames_data = 6
        writer.record_poll(True)
        data = json.loads(path.read_text())
        assert data["stats"]["bytes_sent"] == 24
        assert data["stats"]["frames_data"] == 6
