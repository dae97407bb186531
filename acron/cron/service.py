"""Scheduler: periodic tick over all jobs and supervised job dispatch."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Iterable

from loguru import logger

from acron.cron.environment import load_env_file
from acron.cron.runner import ProcessRunner
from acron.cron.state import DEFAULT_HISTORY_LIMIT, JobState
from acron.cron.types import JobDefinition

if TYPE_CHECKING:
    from acron.runlog import RunLog

DEFAULT_TICK_INTERVAL_S = 60.0


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Scheduler:
    """Owns every JobState and launches due jobs as asyncio tasks."""

    def __init__(
        self,
        definitions: Iterable[JobDefinition],
        runner: ProcessRunner | None = None,
        run_log: RunLog | None = None,
        history_limit: int | None = DEFAULT_HISTORY_LIMIT,
        max_concurrency: int | None = None,
    ):
        self.runner = runner or ProcessRunner()
        self.run_log = run_log
        self._jobs = tuple(
            JobState(d, history_limit=history_limit, run_log=run_log) for d in definitions
        )
        self._slots = asyncio.Semaphore(max_concurrency) if max_concurrency else None
        self._shutdown = asyncio.Event()
        self._tasks: set[asyncio.Task] = set()
        self._loop_task: asyncio.Task | None = None
        self._running = False

    @property
    def jobs(self) -> tuple[JobState, ...]:
        return self._jobs

    def job(self, index: int) -> JobState:
        if index < 0 or index >= len(self._jobs):
            raise IndexError(f"no job at index {index}")
        return self._jobs[index]

    # ========== Tick ==========

    def tick(self, now: datetime | None = None, is_first_evaluation: bool = False) -> list[JobState]:
        """Evaluate every job once and dispatch the due ones.

        Must be called from within a running event loop. Never waits on a job.
        """
        now = now or _now()
        dispatched: list[JobState] = []
        if self._shutdown.is_set():
            return dispatched

        for state in self._jobs:
            try:
                due = state.is_due(now, is_first_evaluation)
            except Exception:
                logger.exception("Scheduler: failed to check job '{}'", state.display_name)
                continue
            if not due:
                continue

            task = asyncio.create_task(self._execute(state))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            dispatched.append(state)
            logger.info("Scheduler: triggered '{}'", state.display_name)

        return dispatched

    async def _execute(self, state: JobState) -> None:
        # Until execute() takes over, releasing the in-flight marker is on us.
        handed_off = False
        try:
            env_extra = await asyncio.to_thread(load_env_file, state.definition.env_file)
            if self._slots is None:
                handed_off = True
                await state.execute(self.runner, env_extra, cancel=self._shutdown)
                return
            async with self._slots:
                if self._shutdown.is_set():
                    state.abandon("cancelled")
                    return
                handed_off = True
                await state.execute(self.runner, env_extra, cancel=self._shutdown)
        except asyncio.CancelledError:
            if not handed_off:
                state.abandon("cancelled")
            raise
        except Exception as e:
            logger.exception("Scheduler: failed to run job '{}'", state.display_name)
            if not handed_off:
                state.abandon(str(e))

    # ========== Loop ==========

    async def start(self, tick_interval: float = DEFAULT_TICK_INTERVAL_S) -> None:
        """Start the tick loop."""
        if self._loop_task is not None:
            return
        self._running = True
        self._loop_task = asyncio.create_task(self._run_loop(tick_interval))
        logger.info("Scheduler started with {} jobs, tick every {}s", len(self._jobs), tick_interval)

    async def _run_loop(self, tick_interval: float) -> None:
        first = True
        while self._running:
            started = _now()
            try:
                self.tick(started, is_first_evaluation=first)
                logger.debug("Scheduler: check on {} done", started.isoformat())
            except Exception:
                logger.exception("Scheduler: check on {} failed", started.isoformat())
            first = False
            try:
                await asyncio.sleep(tick_interval)
            except asyncio.CancelledError:
                return

    async def stop(self) -> None:
        """Stop ticking, kill running processes and wait for their records."""
        self._running = False
        self._shutdown.set()
        if self._loop_task is not None:
            self._loop_task.cancel()
            await asyncio.gather(self._loop_task, return_exceptions=True)
            self._loop_task = None
        await self.wait_idle()
        logger.info("Scheduler stopped")

    async def wait_idle(self) -> None:
        """Wait for every dispatched run to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def status(self) -> dict[str, Any]:
        return {
            "running": self._running,
            "jobs": len(self._jobs),
            "in_flight": sum(1 for s in self._jobs if s.in_flight),
        }
