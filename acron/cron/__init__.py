"""Scheduling and execution engine."""

from acron.cron.runner import ProcessRunner
from acron.cron.service import Scheduler
from acron.cron.state import JobState
from acron.cron.types import JobDefinition, RunOutcome, RunRecord

__all__ = ["JobDefinition", "JobState", "ProcessRunner", "RunOutcome", "RunRecord", "Scheduler"]
