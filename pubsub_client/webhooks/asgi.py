"""Starlette adapter: mount the client's webhook handling as an endpoint."""

from typing import TYPE_CHECKING, Awaitable, Callable

from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from pubsub_client.webhooks.request import WebhookRequest, WebhookResponse

if TYPE_CHECKING:
    from pubsub_client.client import PubSubClient


def to_webhook_request(request: Request) -> WebhookRequest:
    return WebhookRequest(headers=request.headers, stream=request.stream())


def to_starlette(reply: WebhookResponse) -> Response:
    if not reply.sent or reply.status_code is None:
        return JSONResponse({"success": False}, status_code=500)
    return JSONResponse(reply.body, status_code=reply.status_code)


def webhook_endpoint(client: "PubSubClient") -> Callable[[Request], Awaitable[Response]]:
    """Endpoint for `Route(path, webhook_endpoint(client), methods=["POST"])`."""

    async def endpoint(request: Request) -> Response:
        reply = WebhookResponse()
        await client.handle_webhook(to_webhook_request(request), reply)
        return to_starlette(reply)

    return endpoint
