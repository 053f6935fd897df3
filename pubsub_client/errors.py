"""Exception taxonomy for the pub/sub client.

Only input validation errors cross the public publish/update boundary.
Delivery errors are classified internally and surface through notifications.
"""


class PubSubError(Exception):
    """Base class for all client errors."""


class ValidationError(PubSubError, ValueError):
    """Caller supplied an invalid event, option or payload. Never retried."""


class DataCloneError(ValidationError):
    """Payload could not be cloned into a JSON-compatible tree."""


class ConfigError(PubSubError):
    """Client config fetch failed or returned a malformed shape."""


class DeliveryError(PubSubError):
    """Outcome of a failed delivery attempt."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TerminalDeliveryError(DeliveryError):
    """Server rejected the event (400/401/403/404). Must not be retried."""


class RetryableDeliveryError(DeliveryError):
    """Server or transport failure eligible for backoff and re-send."""
