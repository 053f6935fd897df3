"""Event models, topic matching and local notification dispatch."""

from pubsub_client.events.emitter import Emitter
from pubsub_client.events.models import (
    Event,
    EventKind,
    Notification,
    NotificationKind,
    RetryRecord,
)
from pubsub_client.events.topics import LocalTopics, has_subscribed_topic, matches

__all__ = [
    "Emitter",
    "Event",
    "EventKind",
    "LocalTopics",
    "Notification",
    "NotificationKind",
    "RetryRecord",
    "has_subscribed_topic",
    "matches",
]
