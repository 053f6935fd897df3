"""Test helpers shared across modules."""

import asyncio
from typing import Any

from pubsub_client import ClientConfig

BASE_URL = "http://pubsub.test"
KEY = "key"
SECRET = "secret"

EVENTS = {
    "com.test.event": None,
    "com.test.topic.*": None,
    "com.test.*.interior": None,
    "com.splatted.**": None,
}


class FakeSleep:
    """Records backoff delays. Blocks forever unless created with block=False."""

    def __init__(self, block: bool = True) -> None:
        self.delays: list[float] = []
        self._block = block

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if self._block:
            await asyncio.Event().wait()


def make_config(**overrides: Any) -> ClientConfig:
    data: dict[str, Any] = {
        "url": "http://un:pw@axwaylocal.com",
        "can_consume": True,
        "auth_type": "basic",
        "events": EVENTS,
    }
    data.update(overrides)
    return ClientConfig.from_server(data)


async def settle(rounds: int = 50) -> None:
    """Let scheduled tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Poll predicate until true; fail the test on timeout."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)
