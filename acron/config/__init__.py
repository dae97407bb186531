"""Configuration module for acron."""

from acron.config.loader import ConfigError, dump_config, load_config
from acron.config.schema import Config, JobConfig

__all__ = ["Config", "ConfigError", "JobConfig", "dump_config", "load_config"]
