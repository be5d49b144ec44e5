"""Shared fixtures for the topicbus test suite."""

from __future__ import annotations

import asyncio

import pytest

from topicbus.bus.memory_bus import Mediator
from topicbus.topics.namespace import TopicNamespace


# ---------------------------------------------------------------------------
# Mediator
# ---------------------------------------------------------------------------

@pytest.fixture
def mediator() -> Mediator:
    """Return a fresh in-memory mediator that records publishes."""
    return Mediator(record_history=True)


# ---------------------------------------------------------------------------
# Namespaces
# ---------------------------------------------------------------------------

@pytest.fixture
def users(mediator: Mediator):
    """``wfm:cloud:user`` namespace, torn down after the test."""
    ns = TopicNamespace(mediator).prefix("wfm:cloud").entity("user")
    yield ns
    ns.unsubscribe_all()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def _drain(iterations: int = 10) -> None:
    for _ in range(iterations):
        await asyncio.sleep(0)


@pytest.fixture
def drain():
    """Await to let call_soon callbacks and short handler tasks run."""
    return _drain
