"""Structured logging setup shared by every module."""

import logging
import os

import structlog

LOG_LEVEL = logging.getLevelNamesMapping().get(
    os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO
)

structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(LOG_LEVEL),
    logger_factory=structlog.PrintLoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()
