"""Server-issued client configuration: model and fetch."""

import logging
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from pubsub_client.delivery.signing import make_headers
from pubsub_client.errors import ConfigError
from pubsub_client.settings import ClientOptions

logger = logging.getLogger(__name__)

CONFIG_PATH = "/api/client/config"


class ClientConfig(BaseModel):
    """Read-only snapshot of what this client may do. Replaced wholesale on refresh."""

    model_config = ConfigDict(frozen=True, extra="allow")

    can_consume: bool = False
    can_publish: bool = False
    auth_type: str | None = None  # basic | token | key_secret | none
    auth_user: str | None = None
    auth_pass: str | None = None
    auth_token: str | None = None
    url: str | None = None
    events: dict[str, Any] = Field(default_factory=dict)
    topics: list[str] = Field(default_factory=list)

    @field_validator("events", mode="before")
    @classmethod
    def _events_default(cls, value: Any) -> Any:
        return value if value is not None else {}

    @classmethod
    def from_server(cls, data: dict[str, Any]) -> "ClientConfig":
        """Build from the server payload, deriving topics and basic-auth credentials."""
        values = dict(data)
        if values.get("can_consume"):
            values["topics"] = list((values.get("events") or {}).keys())
            if values.get("auth_type") == "basic" and values.get("url"):
                url = httpx.URL(values["url"])
                values["auth_user"] = url.username
                values["auth_pass"] = url.password
        return cls.model_validate(values)


async def fetch_config(http: httpx.AsyncClient, options: ClientOptions) -> ClientConfig:
    """GET the client config. Raises ConfigError on transport, status or shape problems.

    The response body is keyed indirectly: {"key": "<name>", "<name>": {...config}}.
    """
    url = options.base_url.join(CONFIG_PATH)
    logger.info("Fetching client config for %s", options.key)
    try:
        response = await http.get(url, headers=make_headers(options), timeout=options.timeout)
    except httpx.HTTPError as e:
        raise ConfigError(f"Failed to fetch config: {type(e).__name__}: {e}") from e

    if not response.is_success:
        raise ConfigError(f"Failed to fetch config: {response.status_code} {response.text}")

    try:
        body = response.json()
    except ValueError as e:
        raise ConfigError(f"Bad config format: {response.text}") from e

    key = body.get("key") if isinstance(body, dict) else None
    data = body.get(key) if isinstance(key, str) else None
    if not isinstance(data, dict):
        raise ConfigError(f"Bad config format: {body}")

    try:
        return ClientConfig.from_server(data)
    except PydanticValidationError as e:
        raise ConfigError(f"Bad config format: {e}") from e
