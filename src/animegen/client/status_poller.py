"""HTTP client and status poller for the generation API.

Polling is client-local: a timeout here reports the job as failed to the
caller even though the server-side job may still complete later.
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import httpx
import structlog

logger = structlog.get_logger(__name__)

DEFAULT_POLL_INTERVAL = 2.0
DEFAULT_MAX_WAIT = 300.0
TIMEOUT_ERROR = "Generation timed out. Please try again."

TERMINAL = ("completed", "failed")


class AnimegenAPIError(Exception):
    """Non-success HTTP response from the API.

    Attributes:
        status_code: HTTP status
        payload: Decoded JSON body (or {"error": text} when not JSON)
    """

    def __init__(self, status_code: int, payload: dict[str, Any]):
        super().__init__(f"HTTP {status_code}: {payload.get('error', payload)}")
        self.status_code = status_code
        self.payload = payload


class JobNotFoundError(AnimegenAPIError):
    """Status requested for a job id the server never created."""

    pass


@dataclass(frozen=True)
class PollResult:
    """Outcome of waiting on a job.

    status is "completed" or "failed" unless the poll was cancelled, in which
    case it is the last status observed.
    """

    job_id: str
    status: str
    error: Optional[str] = None
    image: Optional[dict[str, Any]] = None
    timed_out: bool = False
    cancelled: bool = False

    @property
    def succeeded(self) -> bool:
        return self.status == "completed" and self.image is not None


class AnimegenClient:
    """Async client for the /v1 generation endpoints."""

    def __init__(
        self,
        base_url: str,
        user_id: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize client.

        Args:
            base_url: API origin (e.g. http://localhost:8000)
            user_id: Sent as X-User-Id; anonymous when omitted
            timeout: Per-request timeout in seconds
            transport: Custom httpx transport (tests use MockTransport)
        """
        headers = {"Content-Type": "application/json"}
        if user_id:
            headers["X-User-Id"] = user_id
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "AnimegenClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    @staticmethod
    def _decode(response: httpx.Response) -> dict[str, Any]:
        try:
            payload = response.json()
        except ValueError:
            payload = {"error": response.text}
        if response.is_success:
            return payload
        if response.status_code == 404:
            raise JobNotFoundError(response.status_code, payload)
        raise AnimegenAPIError(response.status_code, payload)

    async def submit(self, params: dict[str, Any]) -> dict[str, Any]:
        """POST /v1/generate with camelCase params. Returns {jobId, status, message}.

        Raises:
            AnimegenAPIError: 400 (validation), 401, 429 (payload carries resetTime)
        """
        response = await self._http.post("/v1/generate", json=params)
        return self._decode(response)

    async def get_status(self, job_id: str) -> dict[str, Any]:
        """GET /v1/generate/status/{job_id}.

        Raises:
            JobNotFoundError: Unknown job id
        """
        response = await self._http.get(f"/v1/generate/status/{job_id}")
        return self._decode(response)


class StatusPoller:
    """Polls a job's status at a fixed interval until it is terminal.

    Gives up after max_wait seconds and reports a locally synthesized failed
    result flagged timed_out. cancel() stops an in-progress wait at the next
    check; cancelling the task that awaits wait() stops it immediately.
    """

    def __init__(
        self,
        client: AnimegenClient,
        interval: float = DEFAULT_POLL_INTERVAL,
        max_wait: float = DEFAULT_MAX_WAIT,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client = client
        self.interval = interval
        self.max_wait = max_wait
        self.clock = clock
        self._cancelled = asyncio.Event()

    def cancel(self) -> None:
        """Stop polling. A pending wait() returns a result flagged cancelled."""
        self._cancelled.set()

    async def _sleep(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._cancelled.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def wait(
        self,
        job_id: str,
        on_update: Optional[Callable[[dict[str, Any]], Awaitable[None] | None]] = None,
    ) -> PollResult:
        """Poll until the job completes, fails, times out or is cancelled.

        Args:
            job_id: Job to wait on
            on_update: Called with every status payload received

        Returns:
            PollResult

        Raises:
            JobNotFoundError: Job id is unknown to the server
            AnimegenAPIError: Any other non-success response stops polling
        """
        deadline = self.clock() + self.max_wait
        last_status = "pending"

        while not self._cancelled.is_set():
            payload = await self.client.get_status(job_id)
            last_status = payload.get("status", last_status)

            if on_update is not None:
                maybe_awaitable = on_update(payload)
                if maybe_awaitable is not None:
                    await maybe_awaitable

            if last_status in TERMINAL:
                logger.debug("poller.terminal", job_id=job_id, status=last_status)
                return PollResult(
                    job_id=job_id,
                    status=last_status,
                    error=payload.get("error"),
                    image=payload.get("image"),
                )

            remaining = deadline - self.clock()
            if remaining <= 0:
                logger.warning("poller.timed_out", job_id=job_id, max_wait=self.max_wait)
                return PollResult(
                    job_id=job_id, status="failed", error=TIMEOUT_ERROR, timed_out=True
                )

            await self._sleep(min(self.interval, remaining))

        logger.info("poller.cancelled", job_id=job_id, last_status=last_status)
        return PollResult(job_id=job_id, status=last_status, cancelled=True)
