"""Environment-file loading for job processes."""

from __future__ import annotations

from pathlib import Path

from loguru import logger


def parse_env_lines(text: str) -> dict[str, str]:
    """Parse KEY=VALUE lines, skipping blanks, comments and malformed lines."""
    env: dict[str, str] = {}
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        key = key.strip()
        if not sep or not key:
            logger.debug("Skipping malformed environment line: {!r}", raw)
            continue
        env[key] = value
    return env


def load_env_file(path: str | Path | None) -> dict[str, str]:
    """Read an environment file.

    A missing or unreadable file is logged and yields an empty mapping so the
    job still runs with the base environment.
    """
    if not path:
        return {}
    try:
        text = Path(path).read_text(encoding="utf-8")
    except (OSError, ValueError) as e:
        logger.warning("Error reading environment file {}: {}", path, e)
        return {}
    return parse_env_lines(text)
