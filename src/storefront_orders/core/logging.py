"""Logging setup shared by the API and the CLI."""

from __future__ import annotations

import logging

from pythonjsonlogger.json import JsonFormatter

LOGGER_NAME = "storefront_orders"
_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def build_formatter(json_output: bool = True) -> logging.Formatter:
    if json_output:
        return JsonFormatter(_FORMAT)
    return logging.Formatter(_FORMAT)


def configure_logging(level: str = "INFO", json_output: bool = True) -> logging.Logger:
    """Attach a single stream handler to the package logger."""

    logger = logging.getLogger(LOGGER_NAME)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(build_formatter(json_output))
        logger.addHandler(handler)
    logger.setLevel(level.upper())
    return logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{LOGGER_NAME}.{name}")
