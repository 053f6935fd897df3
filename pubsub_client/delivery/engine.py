"""Delivery engine: send one event over HTTP, classify the outcome, retry with backoff.

Per Event.id: PENDING -> SENDING -> SUCCESS | REJECTED | RETRY_SCHEDULED | ABANDONED.
RETRY_SCHEDULED goes back to SENDING after the backoff delay. Attempts for one id
are strictly sequential: the next one is scheduled only after the previous outcome.
"""

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable
from urllib.parse import quote

import httpx

from pubsub_client.delivery.signing import make_headers
from pubsub_client.errors import (
    DeliveryError,
    RetryableDeliveryError,
    TerminalDeliveryError,
)
from pubsub_client.events.emitter import Emitter
from pubsub_client.events.models import (
    Event,
    EventKind,
    Notification,
    NotificationKind,
    RequestContext,
    RetryRecord,
)
from pubsub_client.sanitize import to_json
from pubsub_client.settings import ClientOptions

logger = logging.getLogger(__name__)

EVENT_PATH = "/api/event"
BACKOFF_BASE = 0.5  # seconds; also the floor

Sleep = Callable[[float], Awaitable[None]]


class DeliveryState(Enum):
    SUCCESS = "success"
    REJECTED = "rejected"
    RETRY_SCHEDULED = "retry_scheduled"
    ABANDONED = "abandoned"
    DISABLED = "disabled"


def backoff_delay(attempts: int) -> float:
    """Seconds to wait before the next attempt: max(0.5, (2^attempts - 1) * 0.5)."""
    return max(BACKOFF_BASE, (2 ** attempts - 1) * BACKOFF_BASE)


def classify(status_code: int) -> type[DeliveryError] | None:
    """None for 2xx; terminal for 400/401/403/404; retryable for anything else."""
    if 200 <= status_code < 300:
        return None
    if status_code in (400, 401, 403, 404):
        return TerminalDeliveryError
    return RetryableDeliveryError


class DeliveryEngine:
    """Owns the retry table and drives sends for publish/update."""

    def __init__(
        self,
        options: ClientOptions,
        http: httpx.AsyncClient,
        emitter: Emitter,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._options = options
        self._http = http
        self._emitter = emitter
        self._sleep = sleep
        self._retries: dict[str, RetryRecord] = {}
        self._scheduled: dict[str, asyncio.Task[None]] = {}
        self._disabled = options.disabled

    @property
    def disabled(self) -> bool:
        return self._disabled

    def disable(self) -> None:
        """Suppress all further sends. An attempt already in flight is not aborted."""
        self._disabled = True

    def attempts(self, event_id: str) -> int | None:
        record = self._retries.get(event_id)
        return record.attempts if record else None

    def tracked(self) -> list[str]:
        """Event ids currently in the retry table, oldest first."""
        return list(self._retries)

    def scheduled(self) -> list[str]:
        return list(self._scheduled)

    def target(self, event: Event) -> tuple[str, httpx.URL]:
        url = self._options.base_url.join(EVENT_PATH)
        if event.kind is EventKind.UPDATE:
            return "PATCH", httpx.URL(f"{url}/{quote(str(event.target_id), safe='')}")
        return "POST", url

    async def send(self, event: Event) -> DeliveryState:
        """Make one attempt for event and act on its outcome. Never raises delivery errors."""
        if self._disabled:
            logger.debug("Client disabled, dropping %s", event.id)
            self._forget(event.id)
            return DeliveryState.DISABLED

        record = self._track(event.id)
        record.attempts += 1

        method, url = self.target(event)
        body = to_json(event.body())
        ctx = RequestContext(method=method, url=str(url), event_id=event.id, body=body)
        logger.debug("send %s %s (attempt %d)", method, url, record.attempts)

        try:
            response = await self._http.request(
                method,
                url,
                content=body.encode("utf-8"),
                headers=make_headers(self._options, body),
                timeout=self._options.timeout,
            )
        except httpx.HTTPError as e:
            logger.error("Web request for %s failed: %s", event.id, e)
            return await self._retry(
                event, record, ctx, RetryableDeliveryError(f"{type(e).__name__}: {e}")
            )

        error_type = classify(response.status_code)
        if error_type is None:
            self._forget(event.id)
            logger.info("Response received for %s, status: %d", event.id, response.status_code)
            await self._emitter.emit(
                Notification(
                    kind=NotificationKind.RESPONSE,
                    data=response,
                    request=ctx,
                    status_code=response.status_code,
                    attempts=record.attempts,
                )
            )
            return DeliveryState.SUCCESS

        if error_type is TerminalDeliveryError:
            await self._reject(event, record, ctx, response)
            return DeliveryState.REJECTED

        return await self._retry(
            event,
            record,
            ctx,
            RetryableDeliveryError("invalid response", status_code=response.status_code),
        )

    async def _reject(
        self,
        event: Event,
        record: RetryRecord,
        ctx: RequestContext,
        response: httpx.Response,
    ) -> None:
        self._forget(event.id)
        status = response.status_code
        if status in (401, 403):
            # bad key/secret, event not permitted, or update from the wrong client
            error = TerminalDeliveryError("Unauthorized", status_code=status)
            logger.error("Sending event %s failed: %s (%d)", event.id, error, status)
            kind = NotificationKind.UNAUTHORIZED
        elif status == 404:
            error = TerminalDeliveryError("NotFound", status_code=status)
            logger.error("Updating event %s failed: %s", event.id, error)
            kind = NotificationKind.NOTFOUND
        else:
            logger.error(
                "Sending event %s failed validation: %s", event.id, response.text
            )
            return
        await self._emitter.emit(
            Notification(
                kind=kind,
                data=str(error),
                request=ctx,
                status_code=status,
                attempts=record.attempts,
                error=str(error),
            )
        )

    async def _retry(
        self,
        event: Event,
        record: RetryRecord,
        ctx: RequestContext,
        error: RetryableDeliveryError,
    ) -> DeliveryState:
        if event.id not in self._retries:
            logger.error("Dropping %s: evicted from the retry table: %s", event.id, error)
            return DeliveryState.ABANDONED
        if record.attempts >= self._options.retry_limit:
            self._forget(event.id)
            logger.error(
                "Retry limit exceeded for %s after %d attempts: %s",
                event.id,
                record.attempts,
                error,
            )
            return DeliveryState.ABANDONED

        delay = backoff_delay(record.attempts)
        logger.warning(
            "Retry scheduled for %s after %.1fs (attempt %d/%d): %s",
            event.id,
            delay,
            record.attempts,
            self._options.retry_limit,
            error,
        )
        self._scheduled[event.id] = asyncio.create_task(self._retry_later(event, delay))
        await self._emitter.emit(
            Notification(
                kind=NotificationKind.RETRY,
                data=delay,
                request=ctx,
                status_code=error.status_code,
                attempts=record.attempts,
                error=str(error),
            )
        )
        return DeliveryState.RETRY_SCHEDULED

    async def _retry_later(self, event: Event, delay: float) -> None:
        await self._sleep(delay)
        self._scheduled.pop(event.id, None)
        if event.id not in self._retries:
            # evicted or stopped while waiting
            return
        try:
            await self.send(event)
        except Exception as e:
            self._forget(event.id)
            logger.exception("Retry of %s failed unexpectedly: %s", event.id, e)

    def _track(self, event_id: str) -> RetryRecord:
        record = self._retries.get(event_id)
        if record is not None:
            return record
        if len(self._retries) >= self._options.max_tracked_events:
            oldest = next(iter(self._retries))
            logger.error("Retry table full, abandoning %s", oldest)
            self._forget(oldest)
        record = RetryRecord()
        self._retries[event_id] = record
        return record

    def _forget(self, event_id: str) -> None:
        self._retries.pop(event_id, None)
        task = self._scheduled.pop(event_id, None)
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def stop(self) -> None:
        """Cancel scheduled retries and clear the retry table."""
        tasks = list(self._scheduled.values())
        self._scheduled.clear()
        self._retries.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
