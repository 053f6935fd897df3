"""Framework-neutral webhook request/response and the body reading pipeline.

RawRequest --read--> parsed body. A body that cannot be read becomes a 400
reply and a None result; nothing is raised.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterable, Mapping, Protocol

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"


class ResponseSink(Protocol):
    def send(self, status_code: int, body: dict[str, Any]) -> None:
        """Write a JSON reply. Called at most once per request."""


@dataclass
class WebhookResponse:
    """Records the reply; adapters turn it into their framework's response."""

    status_code: int | None = None
    body: dict[str, Any] | None = None
    sent: bool = False

    def send(self, status_code: int, body: dict[str, Any]) -> None:
        self.status_code = status_code
        self.body = body
        self.sent = True

    @property
    def unauthorized(self) -> bool:
        return self.sent and self.status_code == 401


class WebhookRequest:
    """Inbound delivery: headers plus either an already-parsed body or a byte stream."""

    def __init__(
        self,
        headers: Mapping[str, Any] | None = None,
        body: Any = None,
        stream: AsyncIterable[bytes] | None = None,
    ) -> None:
        self.headers = {str(k).lower(): str(v) for k, v in (headers or {}).items()}
        self.body = body
        self.stream = stream
        self.parsed_body: Any = None
        self.authenticated = False

    def header(self, name: str) -> str | None:
        return self.headers.get(name.lower())


def respond(response: ResponseSink | None, status_code: int, body: dict[str, Any]) -> None:
    if response is None:
        return
    response.send(status_code, body)


def _body_parse_error(response: ResponseSink | None, reason: str) -> None:
    logger.error("Webhook body parse error: %s", reason)
    respond(response, 400, {"success": False, "message": "Body parse error"})


def _declared_length(request: WebhookRequest) -> int | None:
    raw = request.header("content-length")
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


async def read_body(
    request: WebhookRequest,
    response: ResponseSink | None,
    max_size: int,
) -> Any:
    """Return the request's JSON body, reading the stream once. None on failure."""
    if request.body is not None:
        return request.body
    if request.parsed_body is not None:
        return request.parsed_body

    content_type = (request.header("content-type") or "").split(";")[0].strip().lower()
    if content_type != JSON_CONTENT_TYPE:
        _body_parse_error(response, f"unexpected content-type {content_type!r}")
        return None
    if request.stream is None:
        _body_parse_error(response, "no body")
        return None

    declared = _declared_length(request)
    limit = min(declared, max_size) if declared is not None else max_size
    data = bytearray()
    async for chunk in request.stream:
        data.extend(chunk)
        if len(data) > limit:
            _body_parse_error(response, "body too large")
            return None

    try:
        parsed = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        _body_parse_error(response, "invalid JSON")
        return None
    if parsed is None:
        _body_parse_error(response, "null body")
        return None
    request.parsed_body = parsed
    return parsed
