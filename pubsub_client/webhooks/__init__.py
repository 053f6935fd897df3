"""Inbound webhook handling: body reading, authentication, topic routing."""

from pubsub_client.webhooks.auth import WebhookAuthenticator, parse_basic_auth
from pubsub_client.webhooks.request import WebhookRequest, WebhookResponse, read_body
from pubsub_client.webhooks.router import WebhookRouter

__all__ = [
    "WebhookAuthenticator",
    "WebhookRequest",
    "WebhookResponse",
    "WebhookRouter",
    "parse_basic_auth",
    "read_body",
]
