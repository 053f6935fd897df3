"""Client options and settings loading from settings.yaml / environment."""

import hashlib
import os
import socket
from pathlib import Path
from typing import Any

import httpx
import yaml
from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from pubsub_client import secrets
from pubsub_client.errors import ValidationError
from pubsub_client.version import __version__

DEFAULT_TIMEOUT = 10.0
DEFAULT_RETRY_LIMIT = 10
DEFAULT_MAX_TRACKED_EVENTS = 1000
DEFAULT_MAX_BODY_SIZE = 1024 * 1024

_ENV_OVERRIDES = {
    "PUBSUB_URL": "url",
    "PUBSUB_KEY": "key",
    "PUBSUB_SECRET": "secret",
}

_DEFAULTS: dict[str, Any] = {
    "client": {
        "url": None,
        "key": None,
        "secret": None,
        "secret_name": None,
        "timeout": DEFAULT_TIMEOUT,
        "retry_limit": DEFAULT_RETRY_LIMIT,
        "reconfigure_interval": None,
        "disabled": False,
        "max_tracked_events": DEFAULT_MAX_TRACKED_EVENTS,
        "max_body_size": DEFAULT_MAX_BODY_SIZE,
    },
    "logging": {
        "file": None,
        "level": "INFO",
        "log_to_console": True,
        "max_bytes": 10485760,  # 10 MB
        "backup_count": 3,
    },
}

_cached: dict[str, Any] | None = None


def machine_fingerprint() -> str:
    """sha256 of the host name, used to tell client machines apart in the User-Agent."""
    host = socket.gethostname() or "unknown"
    return hashlib.sha256(host.encode("utf-8")).hexdigest()


def default_user_agent() -> str:
    return f"pubsub-client/{__version__} ({machine_fingerprint()})"


class ClientOptions(BaseModel):
    """Resolved client options. Passed explicitly to every component; never mutated."""

    model_config = ConfigDict(frozen=True)

    url: str
    key: str
    secret: str
    timeout: float = DEFAULT_TIMEOUT
    retry_limit: int = DEFAULT_RETRY_LIMIT
    reconfigure_interval: float | None = None
    disabled: bool = False
    max_tracked_events: int = DEFAULT_MAX_TRACKED_EVENTS
    max_body_size: int = DEFAULT_MAX_BODY_SIZE
    user_agent: str = Field(default_factory=default_user_agent)
    debug: bool | str = False

    @field_validator("url", mode="before")
    @classmethod
    def _check_url(cls, value: Any) -> str:
        if not value:
            raise ValueError("Missing required option: url")
        try:
            parsed = httpx.URL(str(value))
        except (httpx.InvalidURL, TypeError) as e:
            raise ValueError("Invalid URL format") from e
        if parsed.scheme not in ("http", "https") or not parsed.host:
            raise ValueError("Invalid URL format")
        return str(value)

    @field_validator("key", "secret", mode="before")
    @classmethod
    def _check_credentials(cls, value: Any, info: Any) -> str:
        if not value or not isinstance(value, str):
            raise ValueError(f"Missing required option: {info.field_name}")
        return value

    @field_validator("timeout", mode="before")
    @classmethod
    def _default_timeout(cls, value: Any) -> float:
        return _positive_number(value, DEFAULT_TIMEOUT)

    @field_validator("retry_limit", mode="before")
    @classmethod
    def _default_retry_limit(cls, value: Any) -> int:
        return int(_positive_number(value, DEFAULT_RETRY_LIMIT))

    @field_validator("reconfigure_interval", mode="before")
    @classmethod
    def _optional_interval(cls, value: Any) -> float | None:
        number = _positive_number(value, 0)
        return number or None

    @field_validator("max_tracked_events", "max_body_size", mode="before")
    @classmethod
    def _positive_limits(cls, value: Any, info: Any) -> int:
        fallback = (
            DEFAULT_MAX_TRACKED_EVENTS
            if info.field_name == "max_tracked_events"
            else DEFAULT_MAX_BODY_SIZE
        )
        return int(_positive_number(value, fallback))

    @property
    def base_url(self) -> httpx.URL:
        return httpx.URL(self.url)


def _positive_number(value: Any, fallback: float) -> float:
    """Coerce to a positive number; zero, negative and non-numeric fall back."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return fallback
    return number if number > 0 else fallback


def parse_options(data: dict[str, Any] | ClientOptions) -> ClientOptions:
    """Validate raw options. Raises ValidationError with the first problem found."""
    if isinstance(data, ClientOptions):
        return data
    try:
        return ClientOptions.model_validate(
            {k: v for k, v in data.items() if v is not None}
        )
    except PydanticValidationError as e:
        first = e.errors()[0]
        message = str(first.get("ctx", {}).get("error") or first.get("msg"))
        if first.get("type") == "missing":
            message = f"Missing required option: {first['loc'][0]}"
        raise ValidationError(message) from e


def _deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """Merge overlay into base recursively. Mutates base."""
    for key, value in overlay.items():
        if value is None:
            continue
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def get_default_settings() -> dict[str, Any]:
    """Return a deep copy of default settings."""
    return _deep_copy_nested(_DEFAULTS)


def get_setting(settings: dict[str, Any], path: str, default: Any = None) -> Any:
    """Get a nested value by dot path (e.g. 'client.retry_limit')."""
    current: Any = settings
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return default
        current = current[part]
    return current


def reload_settings() -> None:
    """Clear the settings cache. Call after config files change."""
    global _cached
    _cached = None


def load_settings(
    config_dir: Path | None = None,
    env_path: Path | None = None,
) -> dict[str, Any]:
    """Load settings.yaml merged over defaults, then apply PUBSUB_* env overrides."""
    global _cached
    if _cached is not None:
        return _cached

    if config_dir is None:
        config_dir = Path.cwd() / "config"
    path = config_dir / "settings.yaml"

    result = get_default_settings()

    if path.exists():
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
            if isinstance(data, dict):
                _deep_merge(result, data)
        except (yaml.YAMLError, OSError):
            pass

    env_file = env_path or (config_dir.parent / ".env")
    env_vars = dict(dotenv_values(env_file)) if env_file.exists() else {}
    env_vars.update(os.environ)
    for env_name, option in _ENV_OVERRIDES.items():
        if env_vars.get(env_name):
            result["client"][option] = env_vars[env_name]

    _cached = result
    return result


def options_from_settings(settings: dict[str, Any]) -> ClientOptions:
    """Build ClientOptions from the `client` section, resolving `secret_name` if set."""
    client_cfg = dict(settings.get("client") or {})
    secret_name = client_cfg.pop("secret_name", None)
    if not client_cfg.get("secret") and secret_name:
        client_cfg["secret"] = secrets.get_secret(secret_name)
    if get_setting(settings, "logging.level", "").upper() == "DEBUG":
        client_cfg.setdefault("debug", True)
    return parse_options(client_cfg)


def _deep_copy_nested(obj: Any) -> Any:
    """Return a deep copy of nested dicts/lists for defaults."""
    if isinstance(obj, dict):
        return {k: _deep_copy_nested(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_deep_copy_nested(x) for x in obj]
    return obj
