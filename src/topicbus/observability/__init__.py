"""Logging setup for topicbus."""

from topicbus.observability.logger import configure_logging, get_logger, setup_logging

__all__ = ["configure_logging", "get_logger", "setup_logging"]
