"""Client and status poller tests using httpx.MockTransport."""

import httpx
import pytest

from animegen.client.status_poller import (
    TIMEOUT_ERROR,
    AnimegenAPIError,
    AnimegenClient,
    JobNotFoundError,
    StatusPoller,
)
from tests.helpers import FakeClock


def status_sequence(*statuses, extra=None):
    """Handler answering status requests with each status in turn (last one repeats)."""
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        index = min(calls["count"], len(statuses) - 1)
        calls["count"] += 1
        payload = {"jobId": "job1", "status": statuses[index]}
        if statuses[index] in ("completed", "failed") and extra:
            payload.update(extra)
        return httpx.Response(200, json=payload)

    return handler, calls


def make_client(handler, user_id=None) -> AnimegenClient:
    return AnimegenClient(
        "http://api.test/", user_id=user_id, transport=httpx.MockTransport(handler)
    )


@pytest.mark.asyncio
async def test_wait_returns_completed_image():
    image = {"id": "img1", "url": "http://api.test/v1/serve/images/2025/01/img1.png"}
    handler, calls = status_sequence("pending", "processing", "completed", extra={"image": image})
    updates = []

    async with make_client(handler) as client:
        poller = StatusPoller(client, interval=0.001)
        result = await poller.wait("job1", on_update=lambda payload: updates.append(payload))

    assert result.succeeded
    assert result.image == image
    assert calls["count"] == 3
    assert [u["status"] for u in updates] == ["pending", "processing", "completed"]


@pytest.mark.asyncio
async def test_wait_returns_server_error_message():
    handler, _ = status_sequence(
        "processing", "failed", extra={"error": "Invalid AI response format"}
    )

    async with make_client(handler) as client:
        result = await StatusPoller(client, interval=0.001).wait("job1")

    assert result.status == "failed"
    assert result.error == "Invalid AI response format"
    assert not result.timed_out


@pytest.mark.asyncio
async def test_wait_times_out_locally():
    """A job that never finishes is reported failed once max_wait elapses."""
    clock = FakeClock(now=0.0)

    def handler(request: httpx.Request) -> httpx.Response:
        clock.advance(2.0)
        return httpx.Response(200, json={"jobId": "job1", "status": "processing"})

    async with make_client(handler) as client:
        result = await StatusPoller(client, interval=0.001, max_wait=5.0, clock=clock).wait("job1")

    assert result.status == "failed"
    assert result.timed_out
    assert result.error == TIMEOUT_ERROR


@pytest.mark.asyncio
async def test_cancel_stops_polling():
    poller_ref = {}

    def handler(request: httpx.Request) -> httpx.Response:
        poller_ref["poller"].cancel()
        return httpx.Response(200, json={"jobId": "job1", "status": "processing"})

    async with make_client(handler) as client:
        poller = StatusPoller(client, interval=10.0)
        poller_ref["poller"] = poller
        result = await poller.wait("job1")

    assert result.cancelled
    assert result.status == "processing"


@pytest.mark.asyncio
async def test_unknown_job_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"error": "Job not found"})

    async with make_client(handler) as client:
        with pytest.raises(JobNotFoundError) as exc_info:
            await StatusPoller(client, interval=0.001).wait("fake-id")

    assert exc_info.value.payload == {"error": "Job not found"}


@pytest.mark.asyncio
async def test_submit_sends_identity_and_surfaces_rate_limit():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["user"] = request.headers.get("X-User-Id")
        return httpx.Response(429, json={"error": "Rate limit exceeded", "resetTime": 123})

    async with make_client(handler, user_id="u1") as client:
        with pytest.raises(AnimegenAPIError) as exc_info:
            await client.submit({"prompt": "anime girl"})

    assert seen == {"path": "/v1/generate", "user": "u1"}
    assert exc_info.value.status_code == 429
    assert exc_info.value.payload["resetTime"] == 123


@pytest.mark.asyncio
async def test_client_against_app(app):
    """Submit and poll through the real application."""
    transport = httpx.ASGITransport(app=app)
    async with AnimegenClient("http://test", transport=transport) as client:
        submitted = await client.submit({"prompt": "anime girl with blue hair"})
        result = await StatusPoller(client, interval=0.001).wait(submitted["jobId"])

    assert result.succeeded
    assert result.image["aspectRatio"] == "1:1"
