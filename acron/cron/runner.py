"""Child process execution with captured output."""

from __future__ import annotations

import asyncio
import errno
import os
import signal
import time
from datetime import datetime, timedelta, timezone
from typing import Mapping, Sequence

from loguru import logger

from acron.cron.types import RunOutcome, RunRecord

EXEC_MARKER_ENV = "ACRON_EXEC"
REAP_TIMEOUT_S = 5.0

_EXHAUSTION_ERRNOS = {errno.EAGAIN, errno.ENOMEM, errno.EMFILE, errno.ENFILE}


def _decode(data: bytes | None) -> str:
    if not data:
        return ""
    return data.decode("utf-8", errors="replace")


class ProcessRunner:
    """Runs one command to completion and returns its RunRecord."""

    def build_environment(self, env_extra: Mapping[str, str] | None = None) -> dict[str, str]:
        env = dict(os.environ)
        env[EXEC_MARKER_ENV] = "1"
        if env_extra:
            env.update(env_extra)
        return env

    async def run(
        self,
        command: str,
        args: Sequence[str] = (),
        working_dir: str = "",
        env_extra: Mapping[str, str] | None = None,
        cancel: asyncio.Event | None = None,
        timeout: float | None = None,
    ) -> RunRecord:
        """Execute ``command`` and wait for it to exit.

        Args:
            command: Executable to launch.
            args: Arguments passed to the executable.
            working_dir: Directory to run in; empty inherits the current one.
            env_extra: Variables added on top of the base environment.
            cancel: When set before the child exits, the child is killed and
                the run is recorded as a "cancelled" launch failure.
            timeout: Deadline in seconds; the child is killed when it passes.
        """
        if not command:
            raise ValueError("command must not be empty")

        env = self.build_environment(env_extra)
        started_at = datetime.now(timezone.utc)
        start = time.monotonic()

        try:
            proc = await asyncio.create_subprocess_exec(
                command,
                *args,
                cwd=working_dir or None,
                env=env,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as e:
            if e.errno in _EXHAUSTION_ERRNOS:
                logger.error("Runner: cannot spawn '{}', resources exhausted: {}", command, e)
            else:
                logger.warning("Runner: failed to launch '{}': {}", command, e)
            return RunRecord(
                started_at=started_at,
                duration=timedelta(seconds=time.monotonic() - start),
                outcome=RunOutcome.launch_failure(str(e)),
            )

        communicate = asyncio.ensure_future(proc.communicate())
        cancel_wait = asyncio.ensure_future(cancel.wait()) if cancel is not None else None
        waiters = {communicate} if cancel_wait is None else {communicate, cancel_wait}

        try:
            done, _ = await asyncio.wait(
                waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
            if communicate in done:
                stdout, stderr = communicate.result()
                if proc.returncode == 0:
                    outcome = RunOutcome.success()
                else:
                    outcome = RunOutcome.non_zero_exit(proc.returncode)
            else:
                reason = "cancelled" if cancel_wait is not None and cancel_wait in done else "deadline exceeded"
                logger.info("Runner: killing '{}' (pid={}): {}", command, proc.pid, reason)
                self._kill(proc)
                stdout, stderr = await communicate
                outcome = RunOutcome.launch_failure(reason)
        except asyncio.CancelledError:
            self._kill(proc)
            communicate.cancel()
            try:
                await asyncio.wait_for(asyncio.shield(proc.wait()), timeout=REAP_TIMEOUT_S)
            except (asyncio.TimeoutError, asyncio.CancelledError):
                logger.warning("Runner: '{}' (pid={}) not reaped after kill", command, proc.pid)
            raise
        finally:
            if cancel_wait is not None:
                cancel_wait.cancel()

        return RunRecord(
            started_at=started_at,
            duration=timedelta(seconds=time.monotonic() - start),
            outcome=outcome,
            stdout=_decode(stdout),
            stderr=_decode(stderr),
        )

    @staticmethod
    def _kill(proc: asyncio.subprocess.Process) -> None:
        # The child leads its own session, so this also reaps anything it forked
        # that still holds the output pipes.
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            return
        except PermissionError:
            if proc.returncode is None:
                proc.kill()
