"""
Health file writer for the bridge daemon.

Writes a JSON health file at a configurable path with three fields:
- last_dispatch_ts: ISO timestamp of the most recent inbound poll.
- last_telemetry_ts: ISO timestamp of the most recent telemetry publication.
- messages_processed: Inbound messages deleted since start.

The file is rewritten on every state change, providing a simple liveness
signal that a container HEALTHCHECK or monitoring can inspect.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path


class HealthWriter:
    """Writes bridge health status to a JSON file.

    Args:
        path: Filesystem path for the health JSON file. Accepts str or Path.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._last_dispatch_ts: str | None = None
        self._last_telemetry_ts: str | None = None
        self._messages_processed: int = 0

    def record_dispatch(self, processed: int = 0) -> None:
        """Record an inbound poll tick and the messages it processed."""
        self._last_dispatch_ts = datetime.now(tz=UTC).isoformat()
        self._messages_processed += processed
        self._write()

    def record_telemetry(self) -> None:
        """Record a telemetry publication and write health file."""
        self._last_telemetry_ts = datetime.now(tz=UTC).isoformat()
        self._write()

    def _write(self) -> None:
        data = {
            "last_dispatch_ts": self._last_dispatch_ts,
            "last_telemetry_ts": self._last_telemetry_ts,
            "messages_processed": self._messages_processed,
        }
        self.path.write_text(json.dumps(data))
