"""Job and run record types."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Literal


@dataclass(frozen=True)
class JobDefinition:
    """A periodic job as loaded from configuration."""

    command: str
    name: str = ""
    interval: str = ""
    startup_delay: str | None = None
    args: tuple[str, ...] = ()
    working_dir: str = ""
    env_file: str | None = None
    disabled: bool = False
    timeout: str | None = None

    @property
    def display_name(self) -> str:
        return self.name or self.command


@dataclass(frozen=True)
class RunOutcome:
    """How a single execution ended."""

    kind: Literal["success", "non_zero_exit", "launch_failure"]
    exit_code: int | None = None
    reason: str | None = None

    @classmethod
    def success(cls) -> "RunOutcome":
        return cls(kind="success", exit_code=0)

    @classmethod
    def non_zero_exit(cls, code: int) -> "RunOutcome":
        return cls(kind="non_zero_exit", exit_code=code)

    @classmethod
    def launch_failure(cls, reason: str) -> "RunOutcome":
        return cls(kind="launch_failure", reason=reason)

    @property
    def ok(self) -> bool:
        return self.kind == "success"

    def __str__(self) -> str:
        if self.kind == "success":
            return "success"
        if self.kind == "non_zero_exit":
            return f"exit status {self.exit_code}"
        return f"launch failure: {self.reason}"


@dataclass(frozen=True)
class RunRecord:
    """Snapshot of one finished execution."""

    started_at: datetime
    duration: timedelta
    outcome: RunOutcome
    stdout: str = ""
    stderr: str = ""

    def output(self, stream: str) -> str:
        if stream == "stdout":
            return self.stdout
        if stream == "stderr":
            return self.stderr
        raise ValueError(f"unknown output stream '{stream}'")
