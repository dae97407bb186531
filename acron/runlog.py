"""Run log: one stdout line and one stderr line per finished execution.

Shared by every job, so writes go through a lock and each call emits a whole
line. The file is rotated on open: an existing log is renamed to
``<path>.<unix-millis>`` and a fresh file is created in its place.
"""

from __future__ import annotations

import json
import sys
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import TextIO

from loguru import logger

from acron.cron.types import RunRecord

PREFIX = "[acron] "


def _rfc3339(dt: datetime) -> str:
    dt = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt.isoformat().replace("+00:00", "Z")


def _quote(text: str) -> str:
    return json.dumps(text, ensure_ascii=False)


def rotate_log_file(path: Path) -> Path | None:
    """Move an existing log aside. Returns the new name, or None if absent."""
    if not path.exists():
        return None
    rotated = path.with_name(f"{path.name}.{int(time.time() * 1000)}")
    path.rename(rotated)
    return rotated


class RunLog:
    """Serialized line writer for run output records."""

    def __init__(self, stream: TextIO | None = None, *, owns_stream: bool = False) -> None:
        self._stream = stream if stream is not None else sys.stdout
        self._owns_stream = owns_stream
        self._lock = threading.Lock()

    @classmethod
    def open(cls, path: str | Path | None) -> "RunLog":
        """Open a rotated log file, falling back to stdout on failure."""
        if not path:
            return cls()
        p = Path(path)
        try:
            p.parent.mkdir(parents=True, exist_ok=True)
            rotated = rotate_log_file(p)
            if rotated is not None:
                logger.info("Run log: rotated {} to {}", p, rotated)
            stream = open(p, "w", encoding="utf-8")
        except OSError as e:
            logger.error("Error initializing run log {}: {}", p, e)
            return cls()
        return cls(stream, owns_stream=True)

    def write_line(self, line: str) -> None:
        stamp = datetime.now().strftime("%Y/%m/%d %H:%M:%S")
        line = line.rstrip("\n")
        text = f"{PREFIX}{stamp} {line}\n"
        with self._lock:
            self._stream.write(text)
            self._stream.flush()

    def record(self, command: str, record: RunRecord) -> None:
        started = _rfc3339(record.started_at)
        self.write_line(f"command: {command}, time: {started}, stdout: {_quote(record.stdout)}")
        self.write_line(f"command: {command}, time: {started}, stderr: {_quote(record.stderr)}")

    def close(self) -> None:
        with self._lock:
            if self._owns_stream:
                self._stream.close()
                self._owns_stream = False
