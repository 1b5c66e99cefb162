"""Adapters between the connector and its upstream and downstream neighbours."""

from spanlog.adapters.consumers import CollectingLogConsumer, StreamLogConsumer

__all__ = [
    "CollectingLogConsumer",
    "StreamLogConsumer",
]
