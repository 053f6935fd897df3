"""Tests for the delivery engine: classification, backoff, retry table."""

import base64
import hashlib
import hmac
import json

import httpx
import pytest

from helpers import BASE_URL, KEY, SECRET, FakeSleep, settle, wait_until
from pubsub_client.delivery.engine import (
    DeliveryEngine,
    DeliveryState,
    backoff_delay,
    classify,
)
from pubsub_client.errors import RetryableDeliveryError, TerminalDeliveryError
from pubsub_client.events.emitter import Emitter
from pubsub_client.events.models import Event, EventKind, Notification
from pubsub_client.settings import parse_options

EVENT_URL = f"{BASE_URL}/api/event"


def make_event(event_id: str = "com.test.event-1", **kwargs) -> Event:
    fields = {
        "id": event_id,
        "kind": EventKind.CREATE,
        "name": "com.test.event",
        "data": {"a": 1},
        "options": {"timestamp": 1},
    }
    fields.update(kwargs)
    return Event(**fields)


@pytest.fixture
def emitter() -> Emitter:
    return Emitter()


@pytest.fixture
def received(emitter: Emitter) -> dict[str, list[Notification]]:
    seen: dict[str, list[Notification]] = {
        "response": [],
        "retry": [],
        "unauthorized": [],
        "notfound": [],
    }
    for name, bucket in seen.items():
        emitter.on(name, bucket.append)
    return seen


def make_engine(http_client, emitter, sleep, **overrides) -> DeliveryEngine:
    raw = {"url": BASE_URL, "key": KEY, "secret": SECRET, "retry_limit": 3}
    raw.update(overrides)
    return DeliveryEngine(parse_options(raw), http_client, emitter, sleep=sleep)


class TestBackoff:
    """Delay computation."""

    def test_floor_and_growth(self) -> None:
        assert backoff_delay(0) == 0.5
        assert backoff_delay(1) == 0.5
        assert backoff_delay(2) == 1.5
        assert backoff_delay(3) == 3.5

    def test_monotonic_and_floored(self) -> None:
        delays = [backoff_delay(n) for n in range(1, 12)]
        assert all(d >= 0.5 for d in delays)
        assert delays == sorted(delays)


class TestClassify:
    """HTTP status classification."""

    @pytest.mark.parametrize("status", [200, 201, 204])
    def test_success(self, status: int) -> None:
        assert classify(status) is None

    @pytest.mark.parametrize("status", [400, 401, 403, 404])
    def test_terminal(self, status: int) -> None:
        assert classify(status) is TerminalDeliveryError

    @pytest.mark.parametrize("status", [408, 429, 500, 502, 503])
    def test_retryable(self, status: int) -> None:
        assert classify(status) is RetryableDeliveryError


class TestSend:
    """One attempt and its outcome."""

    @pytest.mark.asyncio
    async def test_success_emits_response_and_clears_record(
        self, httpx_mock, http_client, emitter, received, fake_sleep
    ) -> None:
        httpx_mock.add_response(method="POST", url=EVENT_URL, status_code=200, json={})
        engine = make_engine(http_client, emitter, fake_sleep)

        state = await engine.send(make_event())

        assert state is DeliveryState.SUCCESS
        assert engine.tracked() == []
        assert len(received["response"]) == 1
        notification = received["response"][0]
        assert notification.status_code == 200
        assert notification.request.method == "POST"
        assert notification.request.event_id == "com.test.event-1"
        assert isinstance(notification.data, httpx.Response)

    @pytest.mark.asyncio
    async def test_request_body_and_signed_headers(
        self, httpx_mock, http_client, emitter, fake_sleep
    ) -> None:
        httpx_mock.add_response(method="POST", url=EVENT_URL)
        engine = make_engine(http_client, emitter, fake_sleep)

        await engine.send(make_event())

        request = httpx_mock.get_requests()[0]
        assert json.loads(request.content) == {
            "id": "com.test.event-1",
            "event": "com.test.event",
            "data": {"a": 1},
            "options": {"timestamp": 1},
        }
        expected_sig = base64.b64encode(
            hmac.new(SECRET.encode(), request.content, hashlib.sha256).digest()
        ).decode()
        assert request.headers["APIKey"] == KEY
        assert request.headers["APISig"] == expected_sig
        assert request.headers["content-type"] == "application/json"
        assert request.headers["user-agent"].startswith("pubsub-client/")

    @pytest.mark.asyncio
    async def test_update_uses_patch_on_target_id(
        self, httpx_mock, http_client, emitter, fake_sleep
    ) -> None:
        httpx_mock.add_response(method="PATCH", url=f"{EVENT_URL}/evt-42")
        engine = make_engine(http_client, emitter, fake_sleep)
        event = make_event(
            "evt-42-1", kind=EventKind.UPDATE, name=None, target_id="evt-42"
        )

        assert await engine.send(event) is DeliveryState.SUCCESS
        body = json.loads(httpx_mock.get_requests()[0].content)
        assert body == {"id": "evt-42", "data": {"a": 1}, "options": {"timestamp": 1}}

    @pytest.mark.asyncio
    async def test_400_is_rejected_without_retry(
        self, httpx_mock, http_client, emitter, received, fake_sleep, caplog
    ) -> None:
        httpx_mock.add_response(method="POST", url=EVENT_URL, status_code=400, text="bad field")
        engine = make_engine(http_client, emitter, fake_sleep)

        state = await engine.send(make_event())
        await settle()

        assert state is DeliveryState.REJECTED
        assert fake_sleep.delays == []
        assert engine.tracked() == []
        assert engine.scheduled() == []
        assert received["retry"] == []
        assert "bad field" in caplog.text

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 403])
    async def test_auth_failures_emit_unauthorized(
        self, status, httpx_mock, http_client, emitter, received, fake_sleep
    ) -> None:
        httpx_mock.add_response(method="POST", url=EVENT_URL, status_code=status)
        engine = make_engine(http_client, emitter, fake_sleep)

        assert await engine.send(make_event()) is DeliveryState.REJECTED
        assert len(received["unauthorized"]) == 1
        assert received["unauthorized"][0].status_code == status
        assert received["unauthorized"][0].error == "Unauthorized"
        assert fake_sleep.delays == []

    @pytest.mark.asyncio
    async def test_404_emits_notfound(
        self, httpx_mock, http_client, emitter, received, fake_sleep
    ) -> None:
        httpx_mock.add_response(method="PATCH", url=f"{EVENT_URL}/missing", status_code=404)
        engine = make_engine(http_client, emitter, fake_sleep)
        event = make_event("missing-1", kind=EventKind.UPDATE, target_id="missing")

        assert await engine.send(event) is DeliveryState.REJECTED
        assert len(received["notfound"]) == 1
        assert received["notfound"][0].error == "NotFound"
        assert engine.tracked() == []

    @pytest.mark.asyncio
    async def test_500_schedules_exactly_one_retry(
        self, httpx_mock, http_client, emitter, received, fake_sleep
    ) -> None:
        httpx_mock.add_response(method="POST", url=EVENT_URL, status_code=500)
        engine = make_engine(http_client, emitter, fake_sleep)

        state = await engine.send(make_event())
        await settle()

        assert state is DeliveryState.RETRY_SCHEDULED
        assert fake_sleep.delays == [0.5]
        assert engine.scheduled() == ["com.test.event-1"]
        assert engine.attempts("com.test.event-1") == 1
        assert len(received["retry"]) == 1
        assert received["retry"][0].status_code == 500
        assert received["retry"][0].attempts == 1
        await engine.stop()
        assert engine.tracked() == []

    @pytest.mark.asyncio
    async def test_transport_error_is_retryable(
        self, httpx_mock, http_client, emitter, received, fake_sleep
    ) -> None:
        httpx_mock.add_exception(httpx.ConnectError("connection refused"))
        engine = make_engine(http_client, emitter, fake_sleep)

        state = await engine.send(make_event())
        await settle()

        assert state is DeliveryState.RETRY_SCHEDULED
        assert received["retry"][0].status_code is None
        assert "ConnectError" in received["retry"][0].error
        await engine.stop()

    @pytest.mark.asyncio
    async def test_timeout_is_retryable(
        self, httpx_mock, http_client, emitter, fake_sleep
    ) -> None:
        httpx_mock.add_exception(httpx.ReadTimeout("timed out"))
        engine = make_engine(http_client, emitter, fake_sleep)

        assert await engine.send(make_event()) is DeliveryState.RETRY_SCHEDULED
        await engine.stop()


class TestRetryLoop:
    """Retries over several attempts."""

    @pytest.mark.asyncio
    async def test_retry_then_success(self, httpx_mock, http_client, emitter, received) -> None:
        httpx_mock.add_response(method="POST", url=EVENT_URL, status_code=503)
        httpx_mock.add_response(method="POST", url=EVENT_URL, status_code=502)
        httpx_mock.add_response(method="POST", url=EVENT_URL, status_code=200)
        sleep = FakeSleep(block=False)
        engine = make_engine(http_client, emitter, sleep, retry_limit=5)

        await engine.send(make_event())
        await wait_until(lambda: received["response"])

        assert sleep.delays == [0.5, 1.5]
        assert [n.attempts for n in received["retry"]] == [1, 2]
        assert received["response"][0].attempts == 3
        assert engine.tracked() == []
        # the same idempotent id is reused on every attempt
        ids = {json.loads(r.content)["id"] for r in httpx_mock.get_requests()}
        assert ids == {"com.test.event-1"}

    @pytest.mark.asyncio
    async def test_abandoned_after_retry_limit(
        self, httpx_mock, http_client, emitter, received, caplog
    ) -> None:
        for _ in range(3):
            httpx_mock.add_response(method="POST", url=EVENT_URL, status_code=500)
        sleep = FakeSleep(block=False)
        engine = make_engine(http_client, emitter, sleep, retry_limit=3)

        await engine.send(make_event())
        await wait_until(lambda: not engine.tracked())
        await settle()

        assert len(httpx_mock.get_requests()) == 3
        assert len(received["retry"]) == 2
        assert "Retry limit exceeded" in caplog.text
        assert engine.scheduled() == []

    @pytest.mark.asyncio
    async def test_disabled_engine_makes_no_request(
        self, httpx_mock, http_client, emitter, fake_sleep
    ) -> None:
        engine = make_engine(http_client, emitter, fake_sleep, disabled=True)

        assert await engine.send(make_event()) is DeliveryState.DISABLED
        assert httpx_mock.get_requests() == []
        assert engine.tracked() == []

    @pytest.mark.asyncio
    async def test_disable_while_waiting_drops_event(
        self, httpx_mock, http_client, emitter, fake_sleep
    ) -> None:
        httpx_mock.add_response(method="POST", url=EVENT_URL, status_code=500)
        engine = make_engine(http_client, emitter, fake_sleep)

        await engine.send(make_event())
        engine.disable()
        assert await engine.send(make_event()) is DeliveryState.DISABLED
        assert engine.tracked() == []
        assert len(httpx_mock.get_requests()) == 1

    @pytest.mark.asyncio
    async def test_retry_table_is_capped(
        self, httpx_mock, http_client, emitter, fake_sleep
    ) -> None:
        for _ in range(3):
            httpx_mock.add_response(method="POST", url=EVENT_URL, status_code=500)
        engine = make_engine(http_client, emitter, fake_sleep, max_tracked_events=2)

        for n in range(3):
            await engine.send(make_event(f"e-{n}"))
        await settle()

        assert engine.tracked() == ["e-1", "e-2"]
        assert sorted(engine.scheduled()) == ["e-1", "e-2"]
        await engine.stop()
