"""Client-side reliability layer for a hosted publish/subscribe event service."""

from pubsub_client.client import PubSubClient
from pubsub_client.config import ClientConfig
from pubsub_client.delivery import DeliveryState
from pubsub_client.errors import (
    ConfigError,
    DataCloneError,
    DeliveryError,
    PubSubError,
    RetryableDeliveryError,
    TerminalDeliveryError,
    ValidationError,
)
from pubsub_client.events import Notification, NotificationKind, matches
from pubsub_client.settings import ClientOptions, load_settings, options_from_settings
from pubsub_client.version import __version__
from pubsub_client.webhooks import WebhookRequest, WebhookResponse

__all__ = [
    "ClientConfig",
    "ClientOptions",
    "ConfigError",
    "DataCloneError",
    "DeliveryError",
    "DeliveryState",
    "Notification",
    "NotificationKind",
    "PubSubClient",
    "PubSubError",
    "RetryableDeliveryError",
    "TerminalDeliveryError",
    "ValidationError",
    "WebhookRequest",
    "WebhookResponse",
    "__version__",
    "load_settings",
    "matches",
    "options_from_settings",
]
