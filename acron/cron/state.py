"""Per-job state: due-check, single-flight guard and run history."""

from __future__ import annotations

import asyncio
import threading
from collections import deque
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Mapping

from loguru import logger

from acron.cron.duration import parse_duration
from acron.cron.types import JobDefinition, RunOutcome, RunRecord

if TYPE_CHECKING:
    from acron.cron.runner import ProcessRunner
    from acron.runlog import RunLog

ZERO_TIME = datetime.min.replace(tzinfo=timezone.utc)
DEFAULT_HISTORY_LIMIT = 100


def _parse_optional(value: str | None, what: str, job: str) -> timedelta | None:
    if not value:
        return None
    try:
        return parse_duration(value)
    except ValueError as e:
        logger.warning("Job '{}': ignoring invalid {}: {}", job, what, e)
        return None


def _failed_record(reason: str) -> RunRecord:
    return RunRecord(
        started_at=datetime.now(timezone.utc),
        duration=timedelta(0),
        outcome=RunOutcome.launch_failure(reason),
    )


class JobState:
    """Runtime state of one job.

    ``history`` and ``in_flight`` are only changed under ``_lock``, which is
    never held across an await.
    """

    def __init__(
        self,
        definition: JobDefinition,
        *,
        history_limit: int | None = DEFAULT_HISTORY_LIMIT,
        run_log: RunLog | None = None,
    ):
        self.definition = definition
        self.run_log = run_log
        self._lock = threading.Lock()
        self._history: deque[RunRecord] = deque(maxlen=history_limit)
        self._in_flight = False
        self._deferred_until: datetime | None = None

        name = definition.display_name
        self.interval = _parse_optional(definition.interval, "rate", name) or timedelta(0)
        self.startup_delay = _parse_optional(definition.startup_delay, "startup delay", name)
        self.timeout = _parse_optional(definition.timeout, "timeout", name)

        self.valid = bool(definition.command)
        if not self.valid:
            logger.warning("Job '{}' has no command and will never run", name)

    # ========== Due-check ==========

    def is_due(self, now: datetime, is_first_evaluation: bool = False) -> bool:
        """Return True and mark the job in flight if it should run now."""
        if self.definition.disabled or not self.valid:
            return False

        with self._lock:
            if self._in_flight:
                return False

            if self._history:
                baseline = self._history[-1].started_at
            elif self._deferred_until is not None:
                baseline = self._deferred_until
            else:
                baseline = ZERO_TIME
                if is_first_evaluation and self.startup_delay is not None:
                    self._deferred_until = now + self.startup_delay
                    baseline = self._deferred_until

            if not baseline + self.interval < now:
                return False

            self._in_flight = True
            return True

    def complete(self, record: RunRecord) -> None:
        """Append a finished run and release the in-flight marker."""
        with self._lock:
            self._history.append(record)
            self._in_flight = False

    def abandon(self, reason: str) -> RunRecord:
        """Release an in-flight job that never reached its process."""
        record = _failed_record(reason)
        self.complete(record)
        return record

    async def execute(
        self,
        runner: ProcessRunner,
        env_extra: Mapping[str, str] | None = None,
        cancel: asyncio.Event | None = None,
    ) -> RunRecord:
        """Run the job once. The caller must have obtained ``is_due() == True``."""
        d = self.definition
        try:
            record = await runner.run(
                d.command,
                d.args,
                d.working_dir,
                env_extra,
                cancel=cancel,
                timeout=self.timeout.total_seconds() if self.timeout else None,
            )
        except asyncio.CancelledError:
            self.abandon("cancelled")
            raise
        except Exception as e:
            logger.exception("Job '{}': runner failed", d.display_name)
            record = _failed_record(str(e))

        self.complete(record)
        if record.outcome.ok:
            logger.info("Job '{}' finished in {:.2f}s", d.display_name, record.duration.total_seconds())
        else:
            logger.warning("Job '{}' failed: {}", d.display_name, record.outcome)
        if self.run_log is not None:
            self.run_log.record(d.command, record)
        return record

    # ========== Read accessors ==========

    @property
    def disabled(self) -> bool:
        return self.definition.disabled

    @property
    def display_name(self) -> str:
        return self.definition.display_name

    @property
    def in_flight(self) -> bool:
        with self._lock:
            return self._in_flight

    @property
    def history(self) -> tuple[RunRecord, ...]:
        with self._lock:
            return tuple(self._history)

    def last_record(self) -> RunRecord | None:
        with self._lock:
            return self._history[-1] if self._history else None

    def last_run_time(self) -> datetime | None:
        record = self.last_record()
        return record.started_at if record else None

    def last_run_duration(self) -> timedelta | None:
        record = self.last_record()
        return record.duration if record else None

    def last_output(self, stream: str) -> str | None:
        if stream not in ("stdout", "stderr"):
            raise ValueError(f"unknown output stream '{stream}'")
        record = self.last_record()
        return record.output(stream) if record else None
