"""topicbus: hierarchical topic namespaces and request/response over a
publish/subscribe mediator."""

from topicbus.bus import Mediator, Subscription
from topicbus.topics import TopicNamespace

__all__ = ["Mediator", "Subscription", "TopicNamespace"]

__version__ = "0.1.0"
