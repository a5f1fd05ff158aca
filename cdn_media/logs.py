"""Logging setup for cdn-media.

Configures structlog on top of the stdlib logging module. Level and output
format come from the CDN_MEDIA_LOG_LEVEL and CDN_MEDIA_LOG_FORMAT
environment variables.
"""

import logging
import os

import structlog


def setup_logging() -> None:
    """Configure structured logging.

    Uses JSON output by default; set CDN_MEDIA_LOG_FORMAT=dev for the
    human readable console renderer.
    """
    log_level = os.getenv("CDN_MEDIA_LOG_LEVEL", "WARNING")
    dev_logs = os.getenv("CDN_MEDIA_LOG_FORMAT", "") == "dev"

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if dev_logs:
        processors.append(structlog.dev.set_exc_info)
    else:
        processors.append(structlog.processors.format_exc_info)

    structlog.configure(
        processors=processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    if dev_logs:
        log_renderer = structlog.dev.ConsoleRenderer()
    else:
        log_renderer = structlog.processors.JSONRenderer()

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            log_renderer,
        ],
    )

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.addHandler(handler)
    root.setLevel(log_level)
