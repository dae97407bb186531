"""Configuration schema using Pydantic."""

from __future__ import annotations

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, field_validator

from acron.cron.duration import parse_duration
from acron.cron.types import JobDefinition

DEFAULT_TICKER_DURATION = "1m"


class JobConfig(BaseModel):
    """One job entry in the config file."""

    model_config = ConfigDict(extra="ignore")

    name: str = ""
    rate: str = ""
    startup_delay: str | None = None
    command: str = ""
    args: list[str] = Field(default_factory=list)
    dir: str = ""
    env_file: str | None = None
    timeout: str | None = None
    disabled: bool = False

    def to_definition(self) -> JobDefinition:
        return JobDefinition(
            command=self.command,
            name=self.name,
            interval=self.rate,
            startup_delay=self.startup_delay,
            args=tuple(self.args),
            working_dir=self.dir,
            env_file=self.env_file,
            disabled=self.disabled,
            timeout=self.timeout,
        )


class Config(BaseModel):
    """Root configuration."""

    model_config = ConfigDict(extra="ignore")

    ticker_duration: str = DEFAULT_TICKER_DURATION
    log_file: str = ""
    history_limit: int | None = Field(default=100, ge=1)
    max_concurrency: int | None = Field(default=None, ge=1)
    jobs: list[JobConfig] = Field(default_factory=list)

    @field_validator("jobs", mode="before")
    @classmethod
    def _none_jobs(cls, value):
        return [] if value is None else value

    def tick_interval(self) -> float:
        """Tick period in seconds; an invalid or zero duration falls back to 1m."""
        try:
            seconds = parse_duration(self.ticker_duration).total_seconds()
        except ValueError as e:
            logger.warning("Invalid ticker duration, using default: {}", e)
            return parse_duration(DEFAULT_TICKER_DURATION).total_seconds()
        if seconds <= 0:
            logger.warning("Ticker duration must be positive, using default")
            return parse_duration(DEFAULT_TICKER_DURATION).total_seconds()
        return seconds

    def definitions(self) -> list[JobDefinition]:
        return [job.to_definition() for job in self.jobs]
