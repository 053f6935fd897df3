"""Webhook authentication against the client's configured auth strategy."""

import base64
import binascii
import hmac
import inspect
import logging
from typing import Any, Awaitable, Callable

from pubsub_client.config import ClientConfig
from pubsub_client.delivery.signing import webhook_signature
from pubsub_client.webhooks.request import (
    ResponseSink,
    WebhookRequest,
    read_body,
    respond,
)

logger = logging.getLogger(__name__)

AUTH_HEADER = "authorization"
TOKEN_HEADER = "x-auth-token"
SIGNATURE_HEADER = "x-signature"

Strategy = Callable[[ClientConfig, WebhookRequest, Any, str], bool]
Continuation = Callable[[], Awaitable[None] | None]


def parse_basic_auth(header: str | None) -> tuple[str, str] | None:
    """(user, password) from an `Authorization: Basic ...` header, or None."""
    if not header:
        return None
    scheme, _, encoded = header.strip().partition(" ")
    if scheme.lower() != "basic" or not encoded:
        return None
    try:
        decoded = base64.b64decode(encoded.strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None
    user, sep, password = decoded.partition(":")
    if not sep:
        return None
    return user, password


def _same(given: str | None, expected: str | None) -> bool:
    if given is None or expected is None:
        return False
    return hmac.compare_digest(given.encode("utf-8"), expected.encode("utf-8"))


def verify_basic(config: ClientConfig, request: WebhookRequest, body: Any, secret: str) -> bool:
    creds = parse_basic_auth(request.header(AUTH_HEADER))
    if creds is None:
        return False
    user, password = creds
    return _same(user, config.auth_user) and _same(password, config.auth_pass)


def verify_token(config: ClientConfig, request: WebhookRequest, body: Any, secret: str) -> bool:
    return _same(request.header(TOKEN_HEADER), config.auth_token)


def verify_signature(config: ClientConfig, request: WebhookRequest, body: Any, secret: str) -> bool:
    return _same(request.header(SIGNATURE_HEADER), webhook_signature(secret, body))


DEFAULT_STRATEGIES: dict[str, Strategy] = {
    "basic": verify_basic,
    "token": verify_token,
    "key_secret": verify_signature,
}


class WebhookAuthenticator:
    """Checks inbound deliveries; replies 400/401 itself and returns False on failure."""

    def __init__(
        self,
        secret: str,
        get_config: Callable[[], ClientConfig | None],
        max_body_size: int,
    ) -> None:
        self._secret = secret
        self._get_config = get_config
        self._max_body_size = max_body_size
        self._strategies: dict[str, Strategy] = dict(DEFAULT_STRATEGIES)

    def register_strategy(self, auth_type: str, strategy: Strategy) -> None:
        self._strategies[auth_type] = strategy

    def verify(self, config: ClientConfig, request: WebhookRequest, body: Any) -> bool:
        """Run the strategy for config.auth_type; unknown or absent types pass."""
        strategy = self._strategies.get(config.auth_type or "")
        if strategy is None:
            return True
        return strategy(config, request, body, self._secret)

    async def authenticate(
        self,
        request: WebhookRequest,
        response: ResponseSink | None = None,
        next: Continuation | None = None,
    ) -> bool:
        """Authenticate once per request; repeat calls on the same request short-circuit."""
        if request.authenticated:
            await _continue(next)
            return True

        body = await read_body(request, response, self._max_body_size)
        if body is None:
            return False

        config = self._get_config()
        if config is None or not config.can_consume:
            if config is None:
                logger.error("Webhook received before client config was fetched")
            respond(
                response,
                400,
                {"success": False, "message": "This client does not have consumption enabled."},
            )
            return False

        logger.info("Authenticating webhook using: method = %s", config.auth_type)
        if not self.verify(config, request, body):
            logger.error(
                "Webhook authentication failed (method = %s, headers = %s)",
                config.auth_type,
                sorted(request.headers),
            )
            respond(response, 401, {"success": False, "message": "Unauthorized"})
            return False

        request.authenticated = True
        await _continue(next)
        return True


async def _continue(next: Continuation | None) -> None:
    if next is None:
        return
    result = next()
    if inspect.isawaitable(result):
        await result
