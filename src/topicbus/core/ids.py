"""Canonical ID factories for the mediator.

All modules import from here instead of defining local _uuid() copies.

ID Categories
-------------
1. Internal IDs: UUID v4 strings (subscription_id)
2. Application IDs: caller-assigned, opaque strings carried in payloads
   or on errors as ``id`` and used to scope outcome topics
"""

from __future__ import annotations

import uuid


def new_id() -> str:
    """Generate a new UUID v4 string.  Use for all internal IDs."""
    return str(uuid.uuid4())

