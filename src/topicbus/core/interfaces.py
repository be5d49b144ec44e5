"""Protocol interfaces for the mediator layer.

The topic namespace only depends on these protocols, so any bus with the
same publish/subscribe/unsubscribe surface can sit underneath it.
"""

from __future__ import annotations

from typing import Any, Callable, Protocol, runtime_checkable


# ---------------------------------------------------------------------------
# Mediator
# ---------------------------------------------------------------------------

@runtime_checkable
class IMediator(Protocol):
    """Synchronous publish/subscribe bus.

    ``subscribe`` returns an opaque handle that ``unsubscribe`` accepts.
    """

    def publish(self, topic: str, payload: Any = None) -> None: ...

    def subscribe(self, topic: str, handler: Callable[[Any], Any]) -> Any: ...

    def unsubscribe(self, subscription: Any) -> bool: ...
