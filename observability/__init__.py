"""Observability package for ragcrawl."""

from .logging import (
    ColoredFormatter,
    JSONFormatter,
    StructuredLogger,
    get_structured_logger,
    log_performance,
    setup_logging
)

__all__ = [
    'setup_logging',
    'get_structured_logger',
    'StructuredLogger',
    'JSONFormatter',
    'ColoredFormatter',
    'log_performance'
]
