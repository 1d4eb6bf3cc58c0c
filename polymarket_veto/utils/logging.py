"""Loguru setup for CLI entry points."""

from __future__ import annotations

import sys

from loguru import logger

LOG_FORMAT = "<green>{time:HH:mm:ss}</green> | <level>{level: <7}</level> | <cyan>{name}</cyan> - {message}"


def configure_logging(verbose: bool = False) -> None:
    """Route logs to stderr; stdout carries the stdio JSON-RPC stream."""
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "INFO", format=LOG_FORMAT)
