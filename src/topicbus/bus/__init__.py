"""In-process mediator bus.

``Mediator`` is the synchronous publish/subscribe bus that
``TopicNamespace`` composes topic names for.
"""

from topicbus.bus.memory_bus import Mediator, MediatorDeadLetter, Subscription

__all__ = ["Mediator", "MediatorDeadLetter", "Subscription"]
