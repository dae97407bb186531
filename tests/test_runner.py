import asyncio
import os
from datetime import timedelta
from pathlib import Path

import pytest

from acron.cron.runner import EXEC_MARKER_ENV, ProcessRunner
from acron.cron.types import RunOutcome


@pytest.mark.asyncio
async def test_run_captures_output_on_success() -> None:
    record = await ProcessRunner().run("sh", ["-c", "echo hello; echo oops >&2"])

    assert record.outcome == RunOutcome.success()
    assert record.stdout == "hello\n"
    assert record.stderr == "oops\n"
    assert record.duration >= timedelta(0)


@pytest.mark.asyncio
async def test_run_reports_non_zero_exit_with_output() -> None:
    record = await ProcessRunner().run("sh", ["-c", "echo partial; echo broken >&2; exit 3"])

    assert record.outcome == RunOutcome.non_zero_exit(3)
    assert record.outcome.ok is False
    assert record.stdout == "partial\n"
    assert record.stderr == "broken\n"


@pytest.mark.asyncio
async def test_missing_executable_is_launch_failure(tmp_path) -> None:
    record = await ProcessRunner().run(str(tmp_path / "does-not-exist"))

    assert record.outcome.kind == "launch_failure"
    assert record.outcome.reason
    assert record.stdout == ""
    assert record.stderr == ""
    assert record.duration >= timedelta(0)


@pytest.mark.asyncio
async def test_non_executable_file_is_launch_failure(tmp_path) -> None:
    script = tmp_path / "script.sh"
    script.write_text("#!/bin/sh\necho hi\n", encoding="utf-8")
    script.chmod(0o644)

    record = await ProcessRunner().run(str(script))

    assert record.outcome.kind == "launch_failure"


@pytest.mark.asyncio
async def test_empty_command_is_rejected() -> None:
    with pytest.raises(ValueError, match="command must not be empty"):
        await ProcessRunner().run("")


@pytest.mark.asyncio
async def test_child_sees_exec_marker_and_extra_env() -> None:
    record = await ProcessRunner().run(
        "sh",
        ["-c", f'echo "${EXEC_MARKER_ENV}:$FOO"'],
        env_extra={"FOO": "bar"},
    )

    assert record.stdout == "1:bar\n"


@pytest.mark.asyncio
async def test_child_inherits_base_environment(monkeypatch) -> None:
    monkeypatch.setenv("ACRON_TEST_BASE", "from-parent")

    record = await ProcessRunner().run("sh", ["-c", 'echo "$ACRON_TEST_BASE"'])

    assert record.stdout == "from-parent\n"


@pytest.mark.asyncio
async def test_working_dir_is_applied(tmp_path) -> None:
    record = await ProcessRunner().run("pwd", working_dir=str(tmp_path))

    assert Path(record.stdout.strip()).resolve() == tmp_path.resolve()


@pytest.mark.asyncio
async def test_missing_working_dir_is_launch_failure(tmp_path) -> None:
    record = await ProcessRunner().run("pwd", working_dir=str(tmp_path / "missing"))

    assert record.outcome.kind == "launch_failure"


@pytest.mark.asyncio
async def test_cancel_kills_child_and_keeps_partial_output() -> None:
    cancel = asyncio.Event()
    task = asyncio.create_task(
        ProcessRunner().run("sh", ["-c", "echo started; sleep 30"], cancel=cancel)
    )
    await asyncio.sleep(0.5)
    cancel.set()

    record = await asyncio.wait_for(task, timeout=10)

    assert record.outcome == RunOutcome.launch_failure("cancelled")
    assert record.stdout == "started\n"
    assert record.duration < timedelta(seconds=10)


@pytest.mark.asyncio
async def test_deadline_kills_child() -> None:
    record = await asyncio.wait_for(
        ProcessRunner().run("sleep", ["30"], timeout=0.2),
        timeout=10,
    )

    assert record.outcome == RunOutcome.launch_failure("deadline exceeded")
    assert record.duration >= timedelta(seconds=0.2)
    assert record.duration < timedelta(seconds=10)


@pytest.mark.asyncio
async def test_task_cancellation_propagates() -> None:
    task = asyncio.create_task(ProcessRunner().run("sleep", ["30"]))
    await asyncio.sleep(0.2)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task


@pytest.mark.asyncio
async def test_task_cancellation_reaps_child(tmp_path) -> None:
    pid_file = tmp_path / "child.pid"
    task = asyncio.create_task(
        ProcessRunner().run("sh", ["-c", f"echo $$ > {pid_file}; exec sleep 30"])
    )
    for _ in range(100):
        if pid_file.exists() and pid_file.read_text().strip():
            break
        await asyncio.sleep(0.05)
    pid = int(pid_file.read_text())

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await asyncio.wait_for(task, timeout=10)

    with pytest.raises(ProcessLookupError):
        os.kill(pid, 0)
