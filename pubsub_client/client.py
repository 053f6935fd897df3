"""PubSubClient: publish/update events, receive webhooks, route them to subscribers."""

import asyncio
import logging
from typing import Any, Mapping

import httpx

from pubsub_client.config import ClientConfig, fetch_config
from pubsub_client.delivery.engine import DeliveryEngine, DeliveryState, Sleep
from pubsub_client.errors import ConfigError, ValidationError
from pubsub_client.events.emitter import Emitter, Handler
from pubsub_client.events.models import (
    Event,
    EventKind,
    Notification,
    NotificationKind,
    make_event_id,
    now_ms,
)
from pubsub_client.events.topics import (
    MULTI,
    SEPARATOR,
    SINGLE,
    LocalTopics,
    has_subscribed_topic,
)
from pubsub_client.logging_config import enable_debug
from pubsub_client.sanitize import clone_payload, sanitize
from pubsub_client.settings import ClientOptions, parse_options
from pubsub_client.webhooks.auth import Continuation, WebhookAuthenticator
from pubsub_client.webhooks.request import (
    ResponseSink,
    WebhookRequest,
    read_body,
    respond,
)
from pubsub_client.webhooks.router import WebhookRouter

logger = logging.getLogger(__name__)

MAX_NAME_BYTES = 255


def _utf8_length(value: str, label: str) -> int:
    try:
        return len(value.encode("utf-8"))
    except UnicodeEncodeError:
        raise ValidationError(f"{label} must be valid UTF-8") from None


def _validate_name(name: Any) -> str:
    if not name or not isinstance(name, str):
        raise ValidationError("required event name")
    if _utf8_length(name, "event name") > MAX_NAME_BYTES:
        raise ValidationError("name length must be less than 255 bytes")
    return name


def _require_object(value: Any, label: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ValidationError(f"{label} must be an object")
    return clone_payload(dict(value))


class PubSubClient:
    """Client for the hosted pub/sub service.

    publish()/update() are fire-and-forget: only input validation raises;
    delivery outcomes surface through `response`, `retry`, `unauthorized`
    and `notfound` notifications. Call start() to fetch the client config
    before handling webhooks.
    """

    def __init__(
        self,
        options: ClientOptions | dict[str, Any] | None = None,
        *,
        http: httpx.AsyncClient | None = None,
        sleep: Sleep = asyncio.sleep,
        **kwargs: Any,
    ) -> None:
        raw = options if options is not None else {}
        if kwargs:
            raw = {**(raw.model_dump() if isinstance(raw, ClientOptions) else raw), **kwargs}
        self._options = parse_options(raw)
        if self._options.debug:
            enable_debug(self._options.debug)

        self._http = http or httpx.AsyncClient(timeout=self._options.timeout)
        self._owns_http = http is None
        self._emitter = Emitter()
        self._engine = DeliveryEngine(self._options, self._http, self._emitter, sleep=sleep)
        self._config: ClientConfig | None = None
        # `event:` subscriptions made before the first config arrives
        self._pending_checks: list[str] = []
        self._authenticator = WebhookAuthenticator(
            self._options.secret, self.get_config, self._options.max_body_size
        )
        self._router = WebhookRouter(self.get_config, self._emitter)
        self._refresh_task: asyncio.Task[None] | None = None

    @property
    def options(self) -> ClientOptions:
        return self._options

    @property
    def engine(self) -> DeliveryEngine:
        return self._engine

    @property
    def authenticator(self) -> WebhookAuthenticator:
        return self._authenticator

    @property
    def config(self) -> ClientConfig | None:
        return self._config

    def get_config(self) -> ClientConfig | None:
        return self._config

    @property
    def disabled(self) -> bool:
        return self._engine.disabled

    def disable(self) -> None:
        """Turn every further operation into a no-op. In-flight attempts finish."""
        logger.info("Client %s disabled", self._options.key)
        self._engine.disable()
        if self._refresh_task:
            self._refresh_task.cancel()
            self._refresh_task = None

    # --- lifecycle ---

    async def start(self) -> ClientConfig | None:
        """Fetch the client config and start periodic refresh if configured."""
        if self.disabled:
            return None
        try:
            await self.refresh_config()
        except ConfigError as e:
            logger.error("Client configuration failed: %s", e)
        interval = self._options.reconfigure_interval
        if interval and self._refresh_task is None:
            logger.info("Client reconfiguration enabled for %s every %.1fs", self._options.key, interval)
            self._refresh_task = asyncio.create_task(self._refresh_loop(interval))
        return self._config

    async def stop(self) -> None:
        """Cancel refresh and scheduled retries; close the HTTP client if we own it."""
        if self._refresh_task:
            self._refresh_task.cancel()
            try:
                await self._refresh_task
            except asyncio.CancelledError:
                pass
            self._refresh_task = None
        await self._engine.stop()
        if self._owns_http:
            await self._http.aclose()

    async def __aenter__(self) -> "PubSubClient":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    async def _refresh_loop(self, interval: float) -> None:
        while not self.disabled:
            try:
                await asyncio.sleep(interval)
            except asyncio.CancelledError:
                break
            try:
                await self.refresh_config()
            except ConfigError as e:
                logger.error("Client reconfiguration failed, keeping previous config: %s", e)

    # --- configuration ---

    async def refresh_config(self) -> ClientConfig:
        """Fetch and apply the config. Raises ConfigError."""
        config = await fetch_config(self._http, self._options)
        await self.apply_config(config)
        return config

    async def apply_config(self, config: ClientConfig) -> None:
        """Swap in a new config snapshot, drain pending topic checks, emit `configured`."""
        self._config = config
        pending, self._pending_checks = self._pending_checks, []
        for topic in pending:
            self._validate_topic(topic)
        logger.info("Client configured: %s", self._options.key)
        await self._emitter.emit(Notification(kind=NotificationKind.CONFIGURED, data=config))

    def has_subscribed_topic(self, topic: str, topics: list[str] | None = None) -> bool:
        """True if this client receives topic (local notifications always pass)."""
        if topic in LocalTopics.ALL:
            return True
        if topics is None:
            topics = self._config.topics if self._config else None
        return has_subscribed_topic(topic, topics)

    def _validate_topic(self, topic: str) -> None:
        if not self.has_subscribed_topic(topic):
            logger.error(
                "Unexpected event '%s': client not configured to receive this event.", topic
            )

    # --- subscriptions ---

    def on(self, name: "str | NotificationKind", handler: Handler) -> "PubSubClient":
        """Register handler for a local notification or an `event:<topic>` delivery."""
        logger.debug("on %s", name)
        _, topic = self._emitter.on(name, handler)
        if topic is not None:
            segments = topic.split(SEPARATOR)
            if SINGLE in segments or MULTI in segments:
                logger.warning(
                    "Subscription 'event:%s' is a pattern; handlers only receive exact topics.",
                    topic,
                )
            if self._config is None:
                self._pending_checks.append(topic)
            else:
                self._validate_topic(topic)
        return self

    def off(self, name: "str | NotificationKind", handler: Handler) -> "PubSubClient":
        self._emitter.off(name, handler)
        return self

    # --- outbound ---

    async def publish(
        self,
        event: str,
        data: Mapping[str, Any] | None = None,
        options: Mapping[str, Any] | None = None,
    ) -> DeliveryState:
        """Send a new event. Raises ValidationError for bad input; never for delivery."""
        if self.disabled:
            return DeliveryState.DISABLED
        logger.info("publish %s", event)
        name = _validate_name(event)
        payload = sanitize(_require_object(data, "data"))
        opts = _require_object(options, "options")
        if not opts.get("timestamp"):
            opts["timestamp"] = now_ms()
        return await self._engine.send(
            Event(
                id=make_event_id(name),
                kind=EventKind.CREATE,
                name=name,
                data=payload,
                options=opts,
            )
        )

    async def update(
        self,
        id: str,
        data: Mapping[str, Any] | None = None,
        options: Mapping[str, Any] | None = None,
    ) -> DeliveryState:
        """Patch a previously published event by its server id."""
        if self.disabled:
            return DeliveryState.DISABLED
        logger.info("update %s", id)
        if not id:
            raise ValidationError("required event id")
        _utf8_length(str(id), "event id")
        payload = sanitize(_require_object(data, "data"))
        opts = _require_object(options, "options")
        return await self._engine.send(
            Event(
                id=make_event_id(str(id)),
                kind=EventKind.UPDATE,
                target_id=str(id),
                data=payload,
                options=opts,
            )
        )

    # --- inbound ---

    async def authenticate_webhook(
        self,
        request: WebhookRequest,
        response: ResponseSink | None = None,
        next: Continuation | None = None,
    ) -> bool:
        return await self._authenticator.authenticate(request, response, next)

    async def handle_webhook(
        self,
        request: WebhookRequest,
        response: ResponseSink | None = None,
    ) -> None:
        """Authenticate, route to `event:<topic>` subscribers, acknowledge with 200."""
        if not await self.authenticate_webhook(request, response):
            return
        body = await read_body(request, response, self._options.max_body_size)
        if body is None:
            return
        await self._router.route(body)
        respond(response, 200, {"success": True})
