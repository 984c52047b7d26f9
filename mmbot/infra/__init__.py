"""
Infrastructure package.

Logging configuration shared by every component.
"""

from mmbot.infra.logging_cfg import AsyncQueueHandler, JsonFormatter, ThrottledFilter, build_logger, log_event

__all__ = [
    "AsyncQueueHandler",
    "JsonFormatter",
    "ThrottledFilter",
    "build_logger",
    "log_event",
]
