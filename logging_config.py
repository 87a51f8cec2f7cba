"""Loguru setup shared by the server, the orchestrator and the demo script."""

import sys

from loguru import logger

import config

LOG_FORMAT = " | ".join(
    (
        "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green>",
        "<level>{level:<8}</level>",
        "<cyan>{name}:{function}:{line}</cyan>",
        "{message}",
    )
)


def setup_logging(level: str = None):
    """
    Replace loguru's default handler with a single stderr sink.
    Safe to call more than once; each call resets the sinks.
    """
    logger.remove()
    logger.add(sys.stderr, format=LOG_FORMAT, level=(level or config.LOG_LEVEL).upper())
    return logger
