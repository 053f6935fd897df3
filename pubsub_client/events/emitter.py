"""Handler registration table: notification kind (+ topic) -> ordered handlers."""

import inspect
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable

from pubsub_client.errors import ValidationError
from pubsub_client.events.models import Notification, NotificationKind
from pubsub_client.events.topics import split_subscription

logger = logging.getLogger(__name__)

Handler = Callable[[Notification], Awaitable[None] | None]
HandlerKey = tuple[NotificationKind, str | None]


def resolve_name(name: "str | NotificationKind") -> HandlerKey:
    """Map "configured" / NotificationKind.RETRY / "event:com.foo" to a table key."""
    if isinstance(name, NotificationKind):
        if name is NotificationKind.TOPIC:
            raise ValidationError("topic subscriptions must be named 'event:<topic>'")
        return name, None
    topic = split_subscription(str(name))
    if topic is not None:
        if not topic:
            raise ValidationError("required topic after 'event:'")
        return NotificationKind.TOPIC, topic
    try:
        kind = NotificationKind(name)
    except ValueError:
        raise ValidationError(f"Unknown notification {name!r}") from None
    if kind is NotificationKind.TOPIC:
        raise ValidationError("topic subscriptions must be named 'event:<topic>'")
    return kind, None


class Emitter:
    """Delivers notifications to registered handlers, sync or async, in registration order."""

    def __init__(self) -> None:
        self._handlers: dict[HandlerKey, list[Handler]] = defaultdict(list)

    def on(self, name: "str | NotificationKind", handler: Handler) -> HandlerKey:
        key = resolve_name(name)
        self._handlers[key].append(handler)
        return key

    def off(self, name: "str | NotificationKind", handler: Handler) -> None:
        key = resolve_name(name)
        try:
            self._handlers[key].remove(handler)
        except ValueError:
            pass

    def handlers(self, kind: NotificationKind, topic: str | None = None) -> list[Handler]:
        return list(self._handlers.get((kind, topic), []))

    async def emit(self, notification: Notification) -> int:
        """Call every handler for the notification. Returns how many ran without error."""
        delivered = 0
        for handler in self.handlers(notification.kind, notification.topic):
            try:
                result: Any = handler(notification)
                if inspect.isawaitable(result):
                    await result
                delivered += 1
            except Exception as e:
                logger.exception(
                    "Handler %r failed for %s%s: %s",
                    handler,
                    notification.kind.value,
                    f":{notification.topic}" if notification.topic else "",
                    e,
                )
        return delivered
