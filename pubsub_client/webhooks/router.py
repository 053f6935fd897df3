"""Routes authenticated webhook bodies to `event:<topic>` subscribers."""

import logging
from typing import Any, Callable

from pubsub_client.config import ClientConfig
from pubsub_client.events.emitter import Emitter
from pubsub_client.events.models import Notification, NotificationKind
from pubsub_client.events.topics import has_subscribed_topic

logger = logging.getLogger(__name__)


class WebhookRouter:
    def __init__(self, get_config: Callable[[], ClientConfig | None], emitter: Emitter) -> None:
        self._get_config = get_config
        self._emitter = emitter

    async def route(self, body: Any) -> bool:
        """Notify subscribers if body's topic is one this client receives. True if routed."""
        topic = body.get("topic") if isinstance(body, dict) else None
        logger.info("Event received: %s", topic)
        if not isinstance(topic, str) or not topic:
            return False

        config = self._get_config()
        if not has_subscribed_topic(topic, config.topics if config else None):
            logger.debug("Ignoring %s: not in configured topics", topic)
            return False

        await self._emitter.emit(
            Notification(kind=NotificationKind.TOPIC, topic=topic, data=body)
        )
        return True
