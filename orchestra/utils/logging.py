"""Logging setup shared by the engine, its tools and the developer CLI."""

import logging
import os
import sys

from pydantic import BaseModel, Field

# Provider SDK and HTTP client loggers; their INFO records would bury the engine's own
NOISY_LOGGERS = ("anthropic", "httpx", "httpcore")


class LogConfig(BaseModel):
    """How records are rendered and which third-party loggers are quieted."""

    level: str = Field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    format: str = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"
    date_format: str = "%H:%M:%S"
    quiet_loggers: tuple[str, ...] = NOISY_LOGGERS
    quiet_level: str = "WARNING"


def resolve_level(name: str) -> int:
    """Map a level name such as ``"debug"`` to its numeric value.

    Raises:
        ValueError: If the name is not a standard logging level
    """
    level = logging.getLevelName(name.strip().upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {name!r}")
    return level


def setup_logging(config: LogConfig | None = None) -> None:
    """Send every record to stdout, replacing any handlers configured earlier."""
    config = config or LogConfig()

    logging.basicConfig(
        level=resolve_level(config.level),
        format=config.format,
        datefmt=config.date_format,
        stream=sys.stdout,
        force=True,
    )

    quiet_level = resolve_level(config.quiet_level)
    for name in config.quiet_loggers:
        logging.getLogger(name).setLevel(quiet_level)


def get_logger(name: str, level: str | None = None) -> logging.Logger:
    """Module logger whose level defaults to the LOG_LEVEL environment variable.

    Args:
        name: Module name (typically __name__)
        level: Explicit level name, overriding LOG_LEVEL
    """
    logger = logging.getLogger(name)
    logger.setLevel(resolve_level(level or os.getenv("LOG_LEVEL", "INFO")))
    return logger
