"""Adapters at the consumption boundary of ``TopicNamespace.request``.

Hosts that want a different async type than ``asyncio.Future`` wrap the
request here instead of patching the shared namespace.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
from collections.abc import Callable
from typing import Any

from .namespace import TopicNamespace


def wrap_request(
    namespace: TopicNamespace,
    convert: Callable[[asyncio.Future], Any],
) -> Callable[..., Any]:
    """Return ``namespace.request`` with its future passed through *convert*."""

    def request(action: str, payload: Any = None, **kwargs: Any) -> Any:
        return convert(namespace.request(action, payload, **kwargs))

    return request


async def request_and_wait(
    namespace: TopicNamespace,
    action: str,
    payload: Any = None,
    **kwargs: Any,
) -> Any:
    """Coroutine form of ``namespace.request``."""
    return await namespace.request(action, payload, **kwargs)


def request_threadsafe(
    namespace: TopicNamespace,
    loop: asyncio.AbstractEventLoop,
    action: str,
    payload: Any = None,
    **kwargs: Any,
) -> concurrent.futures.Future:
    """Issue a request on *loop* from another thread.

    The namespace and its mediator are only touched on the loop thread.
    """
    return asyncio.run_coroutine_threadsafe(
        request_and_wait(namespace, action, payload, **kwargs), loop
    )
