"""Custom exception hierarchy for the topic mediator."""

from __future__ import annotations

from typing import Any


class MediatorError(Exception):
    """Base exception for all topicbus errors."""


# --- Configuration ---
class ConfigError(MediatorError):
    """Invalid or missing configuration."""


# --- Topics ---
class TopicError(MediatorError, ValueError):
    """A topic could not be composed (e.g., empty action name)."""


# --- Request / response ---
class RequestError(MediatorError):
    """A request over the mediator did not produce a result."""


class RequestTimeoutError(RequestError):
    """No done/error outcome arrived before the request timeout."""

    def __init__(self, topic: str, timeout: float):
        self.topic = topic
        self.timeout = timeout
        super().__init__(f"Request [{topic}] timed out after {timeout}s")


class RequestFailedError(RequestError):
    """The error topic carried a payload that is not an exception."""

    def __init__(self, topic: str, payload: Any):
        self.topic = topic
        self.payload = payload
        super().__init__(f"Request [{topic}] failed: {payload!r}")
