"""Topic namespaces, outcome topics and request/response over a mediator."""

from topicbus.topics.namespace import DONE, ERROR, SEPARATOR, TopicNamespace
from topicbus.topics.outcome import OutcomeKind, classify, correlation_id

__all__ = [
    "DONE",
    "ERROR",
    "SEPARATOR",
    "OutcomeKind",
    "TopicNamespace",
    "classify",
    "correlation_id",
]
