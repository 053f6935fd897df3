"""Event, retry bookkeeping and notification models."""

import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any

__all__ = [
    "Event",
    "EventKind",
    "Notification",
    "NotificationKind",
    "RequestContext",
    "RetryRecord",
    "make_event_id",
]


class EventKind(Enum):
    CREATE = "create"
    UPDATE = "update"


class NotificationKind(Enum):
    """Locally emitted notifications; TOPIC carries an inbound webhook event."""

    CONFIGURED = "configured"
    RESPONSE = "response"
    RETRY = "retry"
    UNAUTHORIZED = "unauthorized"
    NOTFOUND = "notfound"
    TOPIC = "event"


def now_ms() -> int:
    return int(time.time() * 1000)


_id_lock = threading.Lock()
_last_id_ms = 0


def make_event_id(base: str) -> str:
    """Distinct per publish/update call; reused by every retry of that call.

    The suffix is the current epoch ms, bumped past the last one issued so two
    calls in the same millisecond still get different ids.
    """
    global _last_id_ms
    with _id_lock:
        stamp = max(now_ms(), _last_id_ms + 1)
        _last_id_ms = stamp
    return f"{base}-{stamp}"


@dataclass(frozen=True)
class Event:
    """One logical publish (CREATE) or update (UPDATE) attempt.

    `id` keys the retry table. For updates `target_id` is the server-side id
    being patched.
    """

    id: str
    kind: EventKind
    data: dict[str, Any]
    options: dict[str, Any]
    name: str | None = None
    target_id: str | None = None

    def body(self) -> dict[str, Any]:
        """JSON body sent to the server."""
        if self.kind is EventKind.UPDATE:
            return {"id": self.target_id, "data": self.data, "options": self.options}
        return {
            "id": self.id,
            "event": self.name,
            "data": self.data,
            "options": self.options,
        }


@dataclass
class RetryRecord:
    """Attempts made so far for one Event.id. Owned by the delivery engine."""

    attempts: int = 0


@dataclass(frozen=True)
class RequestContext:
    """What was sent, attached to delivery notifications."""

    method: str
    url: str
    event_id: str
    body: str


@dataclass(frozen=True)
class Notification:
    """Payload passed to handlers registered with `on`."""

    kind: NotificationKind
    data: Any = None
    topic: str | None = None
    request: RequestContext | None = None
    status_code: int | None = None
    attempts: int | None = None
    error: str | None = None
