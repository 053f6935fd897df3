"""Outbound delivery: signing, retry state machine, backoff."""

from pubsub_client.delivery.engine import (
    DeliveryEngine,
    DeliveryState,
    backoff_delay,
    classify,
)

__all__ = ["DeliveryEngine", "DeliveryState", "backoff_delay", "classify"]
