"""In-memory mediator: the publish/subscribe bus under topic namespaces.

No external dependencies. Handlers are called synchronously in
subscription order, so every subscriber has seen a payload by the time
``publish()`` returns.

Improvements:
- Subscription handles that can be released individually
- Optional error callback for handler failures
- Per-topic error counters
- Dead-letter tracking for failed messages
"""

from __future__ import annotations

import logging
import time
from collections import defaultdict, deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from topicbus.core.ids import new_id

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Any]


@dataclass(frozen=True)
class Subscription:
    """Opaque handle returned by ``Mediator.subscribe()``."""

    topic: str
    handler: Handler = field(repr=False, compare=False)
    subscription_id: str = field(default_factory=new_id)


@dataclass
class MediatorDeadLetter:
    """Record of a handler failure in the mediator."""

    topic: str
    subscription_id: str
    payload_type: str
    error: str
    timestamp: float = field(default_factory=time.monotonic)


class Mediator:
    """In-memory publish/subscribe bus. Safe within a single event loop.

    Parameters
    ----------
    on_handler_error:
        Optional callback ``(topic, subscription_id, exc)`` invoked when
        a handler raises.  Useful for external metrics/alerting.
    record_history:
        Keep every ``(topic, payload)`` published, for tests.  Off by
        default so a long-running process does not retain payloads.
    max_dead_letters:
        Most recent handler failures kept; older entries are dropped.
    """

    def __init__(
        self,
        on_handler_error: Callable[[str, str, Exception], None] | None = None,
        *,
        record_history: bool = False,
        max_dead_letters: int = 1000,
    ) -> None:
        # topic → subscriptions in registration order
        self._subscriptions: dict[str, list[Subscription]] = defaultdict(list)
        self._history: list[tuple[str, Any]] = []
        self._record_history = record_history
        self._on_handler_error = on_handler_error

        # Observability
        self._error_counts: dict[str, int] = defaultdict(int)
        self._dead_letters: deque[MediatorDeadLetter] = deque(maxlen=max_dead_letters)
        self._messages_processed: int = 0

    # ------------------------------------------------------------------
    # Core API
    # ------------------------------------------------------------------

    def publish(self, topic: str, payload: Any = None) -> None:
        """Deliver *payload* to every handler subscribed to *topic*."""
        if self._record_history:
            self._history.append((topic, payload))

        # Snapshot: handlers may subscribe/unsubscribe while we dispatch.
        for sub in list(self._subscriptions.get(topic, ())):
            try:
                sub.handler(payload)
                self._messages_processed += 1
            except Exception as exc:
                self._error_counts[topic] += 1
                self._dead_letters.append(
                    MediatorDeadLetter(
                        topic=topic,
                        subscription_id=sub.subscription_id,
                        payload_type=type(payload).__name__,
                        error=str(exc),
                    )
                )
                logger.exception(
                    "Handler error on topic=%s subscription=%s payload=%s",
                    topic,
                    sub.subscription_id,
                    type(payload).__name__,
                )

                if self._on_handler_error is not None:
                    try:
                        self._on_handler_error(topic, sub.subscription_id, exc)
                    except Exception:
                        logger.warning(
                            "on_handler_error callback failed",
                            exc_info=True,
                        )

    def subscribe(self, topic: str, handler: Handler) -> Subscription:
        """Subscribe *handler* to *topic* and return its handle."""
        sub = Subscription(topic=topic, handler=handler)
        self._subscriptions[topic].append(sub)
        logger.debug(
            "Subscribed topic=%s subscription=%s (total=%d)",
            topic,
            sub.subscription_id,
            len(self._subscriptions[topic]),
        )
        return sub

    def unsubscribe(self, subscription: Subscription) -> bool:
        """Release *subscription*.  Returns False if it was not active."""
        subs = self._subscriptions.get(subscription.topic)
        if not subs:
            return False
        for i, sub in enumerate(subs):
            if sub.subscription_id == subscription.subscription_id:
                del subs[i]
                if not subs:
                    del self._subscriptions[subscription.topic]
                return True
        return False

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def subscriber_count(self, topic: str | None = None) -> int:
        """Active subscriptions on *topic*, or across all topics."""
        if topic is None:
            return sum(len(subs) for subs in self._subscriptions.values())
        return len(self._subscriptions.get(topic, ()))

    def topics(self) -> list[str]:
        """Topics that currently have at least one subscriber."""
        return sorted(self._subscriptions.keys())

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    def get_error_counts(self) -> dict[str, int]:
        """Return per-topic error counts."""
        return dict(self._error_counts)

    @property
    def dead_letters(self) -> list[MediatorDeadLetter]:
        """Access the dead-letter list (read-only snapshot)."""
        return list(self._dead_letters)

    @property
    def messages_processed(self) -> int:
        """Total handler invocations that returned without raising."""
        return self._messages_processed

    def clear_dead_letters(self) -> list[MediatorDeadLetter]:
        """Drain the dead-letter list and return all entries."""
        drained = list(self._dead_letters)
        self._dead_letters.clear()
        return drained

    # ------------------------------------------------------------------
    # Testing helpers
    # ------------------------------------------------------------------

    def get_history(self, topic: str | None = None) -> list[tuple[str, Any]]:
        """Get publish history, optionally filtered by topic. For testing.

        Empty unless the mediator was built with ``record_history=True``.
        """
        if topic is None:
            return list(self._history)
        return [(t, p) for t, p in self._history if t == topic]

    def clear_history(self) -> None:
        """Clear publish history. For testing."""
        self._history.clear()
