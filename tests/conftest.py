"""Shared fixtures: a client that never fetches config on its own."""

import httpx
import pytest

from helpers import BASE_URL, KEY, SECRET, FakeSleep, make_config
from pubsub_client import PubSubClient


@pytest.fixture
async def http_client():
    async with httpx.AsyncClient() as client:
        yield client


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
async def client(http_client: httpx.AsyncClient, fake_sleep: FakeSleep):
    c = PubSubClient(
        url=BASE_URL,
        key=KEY,
        secret=SECRET,
        retry_limit=3,
        http=http_client,
        sleep=fake_sleep,
    )
    yield c
    await c.stop()


@pytest.fixture
async def configured_client(client: PubSubClient) -> PubSubClient:
    await client.apply_config(make_config())
    return client
