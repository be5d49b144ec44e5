"""Topic namespaces over a mediator.

A ``TopicNamespace`` composes colon-delimited topic names from a prefix,
an entity and an action, and layers two conventions on top of the plain
publish/subscribe bus:

1.  **Outcome topics** — a handler registered with ``on()`` has its
    result published on ``done:<topic>`` and its exception on
    ``error:<topic>``.  Results and errors that carry an identifier are
    republished on a correlated topic (``done:<topic>:<id>``) so a
    listener can follow one specific operation.
2.  **Requests** — ``request()`` publishes on ``<topic>`` and returns an
    ``asyncio.Future`` settled by the first matching done/error outcome.

Usage::

    users = TopicNamespace(mediator).prefix("wfm:cloud").entity("user")

    def create(ns, user):
        return store.save(user)          # value or awaitable

    users.on("create", create)
    user = await users.request("create", {"id": "trever"})

    users.unsubscribe_all()

Handlers receive the namespace as their first argument, followed by the
published payload.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from functools import partial
from typing import Any

from topicbus.core.config import Settings
from topicbus.core.errors import RequestFailedError, RequestTimeoutError, TopicError
from topicbus.core.interfaces import IMediator
from topicbus.observability.logger import (
    bind_correlation_id,
    configure_logging as apply_logging_settings,
    reset_correlation_id,
)

from .outcome import correlation_id

logger = logging.getLogger(__name__)

SEPARATOR = ":"
DONE = "done"
ERROR = "error"

# request() falls back to the namespace timeout when given this
_DEFAULT_TIMEOUT: Any = object()

# handler(namespace, payload) -> value | awaitable | None
NamespaceHandler = Callable[["TopicNamespace", Any], Any]


def _split_segments(segment: str) -> tuple[str, ...]:
    if not isinstance(segment, str) or not segment:
        raise TopicError(f"Prefix segment must be a non-empty string, got {segment!r}")
    parts = tuple(segment.split(SEPARATOR))
    if not all(parts):
        raise TopicError(f"Prefix segment {segment!r} contains an empty part")
    return parts


@dataclass(eq=False)
class _PendingRequest:
    """Listeners and timer of one unsettled ``request()``."""

    topic: str
    future: asyncio.Future
    subscriptions: list[Any] = field(default_factory=list)
    timer: asyncio.TimerHandle | None = None


class TopicNamespace:
    """Topic naming, outcome propagation and request correlation.

    Parameters
    ----------
    mediator:
        Bus providing ``publish``/``subscribe``/``unsubscribe``.  Shared by
        every namespace derived from this one.
    prefix:
        Prefix segments.  Segments containing ``:`` are split, so
        ``("wfm:cloud",)`` and ``("wfm", "cloud")`` are equivalent.
    entity:
        Entity name placed between prefix and action.  May be ``None``
        for a bare prefix namespace.
    request_timeout:
        Default seconds ``request()`` waits for an outcome.  ``None``
        waits forever.
    """

    def __init__(
        self,
        mediator: IMediator,
        prefix: Iterable[str] = (),
        entity: str | None = None,
        *,
        request_timeout: float | None = None,
    ) -> None:
        if isinstance(prefix, str):
            prefix = (prefix,)
        segments: tuple[str, ...] = ()
        for segment in prefix:
            segments += _split_segments(segment)
        if entity is not None and not entity:
            raise TopicError("Entity name must be a non-empty string")

        self._mediator = mediator
        self._prefix = segments
        self._entity = entity
        self._request_timeout = request_timeout

        # Registry of every subscription this namespace created
        self._subscriptions: list[Any] = []
        self._requests: set[_PendingRequest] = set()
        # Strong refs to handler tasks still running
        self._tasks: set[asyncio.Future] = set()

    @classmethod
    def from_settings(
        cls,
        mediator: IMediator,
        settings: Settings | None = None,
        *,
        configure_logging: bool = False,
    ) -> TopicNamespace:
        """Build a namespace from ``Settings.prefix`` and timeouts.

        With *configure_logging*, ``settings.observability`` is applied
        to the process logging setup as well.
        """
        settings = settings or Settings()
        if configure_logging:
            apply_logging_settings(settings)
        return cls(
            mediator,
            settings.prefix,
            request_timeout=settings.request_timeout,
        )

    # ------------------------------------------------------------------
    # Derivation
    # ------------------------------------------------------------------

    def prefix(self, segment: str) -> TopicNamespace:
        """Return a new namespace with *segment* appended to the prefix."""
        return TopicNamespace(
            self._mediator,
            self._prefix + _split_segments(segment),
            self._entity,
            request_timeout=self._request_timeout,
        )

    def entity(self, name: str) -> TopicNamespace:
        """Return a new namespace for entity *name* under the same prefix."""
        return TopicNamespace(
            self._mediator,
            self._prefix,
            name,
            request_timeout=self._request_timeout,
        )

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def mediator(self) -> IMediator:
        return self._mediator

    @property
    def prefix_segments(self) -> tuple[str, ...]:
        return self._prefix

    @property
    def entity_name(self) -> str | None:
        return self._entity

    @property
    def request_timeout(self) -> float | None:
        return self._request_timeout

    @property
    def subscriptions(self) -> list[Any]:
        """Snapshot of the subscriptions this namespace holds."""
        return list(self._subscriptions)

    @property
    def pending_requests(self) -> int:
        return len(self._requests)

    def __repr__(self) -> str:
        return (
            f"TopicNamespace(prefix={SEPARATOR.join(self._prefix)!r}, "
            f"entity={self._entity!r}, subscriptions={len(self._subscriptions)})"
        )

    # ------------------------------------------------------------------
    # Topic names
    # ------------------------------------------------------------------

    def get_topic(self, action: str, suffix: str | None = None) -> str:
        """Compose ``[suffix:]prefix:entity:action``.

        *action* must be a non-empty string; it may itself contain ``:``
        (e.g. ``"create:trever"`` for a correlated topic).
        """
        if not isinstance(action, str) or not action:
            raise TopicError(f"Action must be a non-empty string, got {action!r}")
        parts = list(self._prefix)
        if self._entity:
            parts.append(self._entity)
        parts.append(action)
        topic = SEPARATOR.join(parts)
        if suffix:
            return f"{suffix}{SEPARATOR}{topic}"
        return topic

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def on(self, action: str, handler: NamespaceHandler) -> Any:
        """Handle *action* and publish the handler's outcome.

        A returned value (or awaitable result) goes to ``done:<topic>``
        and, when it is a string or carries an ``id``, also to
        ``done:<topic>:<id>``.  An exception goes to ``error:<topic>``
        and, when it carries an ``id`` attribute, ``error:<topic>:<id>``.
        A plain ``None`` return publishes nothing.
        """
        topic = self.get_topic(action)

        def dispatch(payload: Any) -> None:
            try:
                result = handler(self, payload)
            except (Exception, asyncio.CancelledError) as exc:
                self._settle_later(action, exc, failed=True)
                return
            if inspect.isawaitable(result):
                self._track(action, result)
            elif result is not None:
                self._settle_later(action, result, failed=False)

        return self._register(topic, dispatch)

    def on_done(self, action: str, handler: NamespaceHandler) -> Any:
        """Subscribe *handler* to ``done:<topic>``."""
        return self._register(
            self.get_topic(action, DONE), partial(handler, self)
        )

    def on_error(self, action: str, handler: NamespaceHandler) -> Any:
        """Subscribe *handler* to ``error:<topic>``."""
        return self._register(
            self.get_topic(action, ERROR), partial(handler, self)
        )

    def unsubscribe(self, subscription: Any) -> bool:
        """Release one subscription created by this namespace."""
        try:
            self._subscriptions.remove(subscription)
        except ValueError:
            return False
        self._mediator.unsubscribe(subscription)
        return True

    def unsubscribe_all(self) -> int:
        """Release every subscription and cancel unsettled requests.

        Returns the number of subscriptions released.  Safe to call more
        than once.
        """
        released = len(self._subscriptions)
        for pending in list(self._requests):
            self._finish(pending)
            future = pending.future
            if not future.done() and not future.get_loop().is_closed():
                future.cancel()

        while self._subscriptions:
            self._mediator.unsubscribe(self._subscriptions.pop())
        if released:
            logger.debug("Released %d subscriptions for %r", released, self)
        return released

    def __enter__(self) -> TopicNamespace:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.unsubscribe_all()

    # ------------------------------------------------------------------
    # Request / response
    # ------------------------------------------------------------------

    def request(
        self,
        action: str,
        payload: Any = None,
        *,
        uid: str | int | None = None,
        timeout: Any = _DEFAULT_TIMEOUT,
    ) -> asyncio.Future:
        """Publish *action* and return a future for its outcome.

        The outcome is correlated by *uid*, or else by the id of
        *payload* (a non-empty string, or a mapping/object with ``id``).
        Without any id, the first uncorrelated done/error outcome for
        *action* settles the future, so concurrent uncorrelated
        requests for the same action can be paired with each other's
        results.

        *timeout* defaults to the namespace's ``request_timeout``; pass
        ``None`` to wait forever.  Must be called from a running loop.
        """
        loop = asyncio.get_running_loop()
        if timeout is _DEFAULT_TIMEOUT:
            timeout = self._request_timeout

        cid = str(uid) if uid is not None else correlation_id(payload)
        outcome_action = f"{action}{SEPARATOR}{cid}" if cid else action
        topic = self.get_topic(action)
        pending = _PendingRequest(topic=topic, future=loop.create_future())

        def on_done(result: Any) -> None:
            self._finish(pending)
            if not pending.future.done():
                pending.future.set_result(result)

        def on_error(error: Any) -> None:
            self._finish(pending)
            if pending.future.done():
                return
            if isinstance(error, asyncio.CancelledError):
                pending.future.cancel()
                return
            if not isinstance(error, BaseException):
                error = RequestFailedError(topic, error)
            pending.future.set_exception(error)

        pending.subscriptions = [
            self._register(self.get_topic(outcome_action, DONE), on_done),
            self._register(self.get_topic(outcome_action, ERROR), on_error),
        ]
        self._requests.add(pending)
        pending.future.add_done_callback(lambda _: self._finish(pending))

        if timeout is not None:
            pending.timer = loop.call_later(timeout, self._expire, pending, timeout)

        token = bind_correlation_id(cid or "")
        try:
            logger.debug("Request topic=%s correlation=%s", topic, cid)
            self._mediator.publish(topic, payload)
        except Exception:
            self._finish(pending)
            pending.future.cancel()
            raise
        finally:
            reset_correlation_id(token)
        return pending.future

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _register(self, topic: str, handler: Callable[[Any], Any]) -> Any:
        sub = self._mediator.subscribe(topic, handler)
        self._subscriptions.append(sub)
        return sub

    def _finish(self, pending: _PendingRequest) -> None:
        """Drop a request's listeners and timer.  Idempotent."""
        if pending not in self._requests:
            return
        self._requests.discard(pending)
        if pending.timer is not None:
            pending.timer.cancel()
        for sub in pending.subscriptions:
            self.unsubscribe(sub)

    def _expire(self, pending: _PendingRequest, timeout: float) -> None:
        self._finish(pending)
        if not pending.future.done():
            logger.warning("Request topic=%s timed out after %ss", pending.topic, timeout)
            pending.future.set_exception(RequestTimeoutError(pending.topic, timeout))

    def _track(self, action: str, awaitable: Any) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            raise RuntimeError(
                f"Handler for {self.get_topic(action)!r} returned an awaitable "
                "outside a running event loop"
            ) from None
        task = asyncio.ensure_future(awaitable, loop=loop)
        self._tasks.add(task)
        task.add_done_callback(partial(self._on_task_done, action))

    def _on_task_done(self, action: str, task: asyncio.Future) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            self._publish_outcome(action, asyncio.CancelledError(), failed=True)
            return
        exc = task.exception()
        if exc is not None:
            self._publish_outcome(action, exc, failed=True)
        else:
            self._publish_outcome(action, task.result(), failed=False)

    def _settle_later(self, action: str, outcome: Any, *, failed: bool) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._publish_outcome(action, outcome, failed=failed)
            return
        loop.call_soon(partial(self._publish_outcome, action, outcome, failed=failed))

    def _publish_outcome(self, action: str, outcome: Any, *, failed: bool) -> None:
        suffix = ERROR if failed else DONE
        if failed:
            logger.info(
                "Handler for %s failed: %r", self.get_topic(action), outcome
            )
        self._mediator.publish(self.get_topic(action, suffix), outcome)

        cid = correlation_id(outcome)
        if cid is not None:
            self._mediator.publish(
                self.get_topic(f"{action}{SEPARATOR}{cid}", suffix), outcome
            )
