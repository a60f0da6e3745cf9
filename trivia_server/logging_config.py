"""Logging setup for the trivia server process."""

import logging
from logging import Logger


def configure_logging(level: str = "INFO") -> Logger:
    """Configure root logging once and return the package logger."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    return logging.getLogger("trivia_server")
