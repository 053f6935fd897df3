"""HMAC-SHA256 request signing shared by outbound calls and webhook verification."""

import base64
import hashlib
import hmac
from typing import Any

from pubsub_client.sanitize import to_json
from pubsub_client.settings import ClientOptions

# Config fetches carry no body; the server expects the signature of "{}".
EMPTY_BODY = "{}"


def _digest(secret: str, body: str | bytes) -> bytes:
    data = body.encode("utf-8") if isinstance(body, str) else body
    return hmac.new(secret.encode("utf-8"), data, hashlib.sha256).digest()


def sign_request_body(secret: str, body: str | bytes) -> str:
    """APISig header value: base64 HMAC-SHA256 of the serialized body."""
    return base64.b64encode(_digest(secret, body)).decode("ascii")


def webhook_signature(secret: str, body: Any) -> str:
    """x-signature value the server sends: hex HMAC-SHA256 of the compact JSON body."""
    return _digest(secret, to_json(body)).hex()


def make_headers(options: ClientOptions, body: str = EMPTY_BODY) -> dict[str, str]:
    return {
        "content-type": "application/json",
        "user-agent": options.user_agent,
        "APIKey": options.key,
        "APISig": sign_request_body(options.secret, body),
    }
