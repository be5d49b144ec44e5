"""Outcome classification for correlated done/error topics.

A handler's settled value decides which derived topics it is published
on.  Classification is explicit rather than duck-typed at the call site:

- ``IDENTIFIED``: a mapping with an ``"id"`` key, or any object with an
  ``id`` attribute (pydantic models, exceptions tagged with ``.id``).
  Correlates on that id.
- ``STRING``: a non-empty ``str``.  The string is its own id.
- ``OPAQUE``: anything else.  Only the uncorrelated topic fires.

An id of ``None`` or ``""`` is not usable and classifies as ``OPAQUE``.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Any


class OutcomeKind(str, Enum):
    IDENTIFIED = "identified"
    STRING = "string"
    OPAQUE = "opaque"


def _extract_id(value: Any) -> Any:
    if isinstance(value, Mapping):
        return value.get("id")
    return getattr(value, "id", None)


def classify(value: Any) -> OutcomeKind:
    """Return the ``OutcomeKind`` of a resolved value or error."""
    # str has no ``id``, so order only matters for str subclasses
    if isinstance(value, str):
        return OutcomeKind.STRING if value else OutcomeKind.OPAQUE
    ident = _extract_id(value)
    if ident is None or ident == "":
        return OutcomeKind.OPAQUE
    return OutcomeKind.IDENTIFIED


def correlation_id(value: Any) -> str | None:
    """Return the id *value* correlates on, or ``None``."""
    kind = classify(value)
    if kind is OutcomeKind.STRING:
        return value
    if kind is OutcomeKind.IDENTIFIED:
        return str(_extract_id(value))
    return None
