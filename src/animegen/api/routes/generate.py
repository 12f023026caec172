"""Image generation API endpoints.

- POST /v1/generate - Submit a generation job (returns immediately with a job id)
- GET /v1/generate/status/{job_id} - Poll a job's status and result

Submission never waits for inference: the job is processed by a background
task that starts after the response has been sent.
"""

from datetime import datetime
from typing import Annotated, Callable, Optional

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import Field, StringConstraints, field_validator

from animegen.api.dependencies import (
    get_client_ip_hash,
    get_current_user_id,
    get_generation_context,
    get_public_base_url,
    get_rate_limiter,
    get_settings,
    get_uow_factory,
    serve_url,
)
from animegen.api.schemas import CamelModel
from animegen.core.config import Settings
from animegen.core.timezone import utcnow
from animegen.models.generation_job import AspectRatio, JobStatus, Quality
from animegen.services.exceptions import (
    ParentImageForbidden,
    ParentImageNotFound,
    RateLimitExceeded,
    UnknownUserError,
)
from animegen.services.image_generation.orchestrator import (
    GenerationParams,
    RequestContext,
    submit_generation_job,
)
from animegen.services.rate_limiter import FixedWindowRateLimiter, RateLimitResult
from animegen.workers.generation_job_worker import GenerationContext, run_job, stale_job_error

logger = structlog.get_logger()
router = APIRouter(prefix="/v1", tags=["generate"])

MAX_SEED = 2**31 - 1

TagName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=50)]


# Request/Response Models


class GenerateRequest(CamelModel):
    """Generation parameters submitted by the client."""

    prompt: str = Field(..., min_length=1, max_length=1000)
    negative_prompt: Optional[str] = Field(default=None, max_length=500)
    quality: Quality = Field(default=Quality.FAST)
    guidance: float = Field(default=7.5, ge=1, le=30)
    steps: int = Field(default=20, ge=1, le=50)
    seed: Optional[int] = Field(default=None, ge=0, le=MAX_SEED)
    aspect_ratio: AspectRatio = Field(default=AspectRatio.SQUARE)
    tags: Optional[list[TagName]] = Field(default=None, max_length=10)
    is_private: bool = Field(default=False)

    @field_validator("prompt")
    @classmethod
    def validate_prompt(cls, v: str) -> str:
        """Reject whitespace-only prompts."""
        v = v.strip()
        if not v:
            raise ValueError("Prompt cannot be empty")
        return v

    @field_validator("negative_prompt")
    @classmethod
    def normalize_negative_prompt(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None

    def to_params(self) -> GenerationParams:
        return GenerationParams(
            prompt=self.prompt,
            negative_prompt=self.negative_prompt,
            quality=self.quality,
            guidance=self.guidance,
            steps=self.steps,
            seed=self.seed,
            aspect_ratio=self.aspect_ratio,
            tags=self.tags,
            is_private=self.is_private,
        )


class GenerateResponse(CamelModel):
    job_id: str
    status: JobStatus
    message: str
    parent_image_id: Optional[str] = None


class JobImage(CamelModel):
    """Result image embedded in a completed job's status."""

    id: str
    url: str
    prompt: str
    aspect_ratio: str
    width: int
    height: int


class JobStatusResponse(CamelModel):
    """Job status. error is present only when failed; image only when completed."""

    job_id: str
    status: JobStatus
    created_at: datetime
    updated_at: datetime
    error: Optional[str] = None
    image: Optional[JobImage] = None


# Helpers


def rate_limit_headers(limit: int, remaining: int, reset_time_ms: int) -> dict[str, str]:
    return {
        "X-RateLimit-Limit": str(limit),
        "X-RateLimit-Remaining": str(remaining),
        "X-RateLimit-Reset": str(reset_time_ms),
    }


async def submit_and_schedule(
    body: GenerateRequest,
    request: Request,
    response: Response,
    background_tasks: BackgroundTasks,
    uow_factory: Callable,
    rate_limiter: FixedWindowRateLimiter,
    generation_context: GenerationContext,
    user_id: Optional[str],
    client_ip_hash: str,
    parent_image_id: Optional[str] = None,
) -> GenerateResponse | JSONResponse:
    """Submit a job and schedule run_job() as a post-response background task.

    Shared by /v1/generate and /v1/images/remix.

    Raises:
        HTTPException 401: Identity header names an unknown user
        HTTPException 403: Remix parent is another user's private image
        HTTPException 404: Remix parent does not exist
    """

    def schedule(job_id: str) -> None:
        background_tasks.add_task(run_job, job_id, generation_context)

    try:
        result = await submit_generation_job(
            uow_factory=uow_factory,
            rate_limiter=rate_limiter,
            params=body.to_params(),
            context=RequestContext(
                user_id=user_id,
                client_ip_hash=client_ip_hash,
                user_agent=request.headers.get("user-agent"),
            ),
            schedule=schedule,
            parent_image_id=parent_image_id,
        )
    except RateLimitExceeded as e:
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={"error": "Rate limit exceeded", "resetTime": e.reset_time_ms},
            headers=rate_limit_headers(e.limit, 0, e.reset_time_ms),
        )
    except UnknownUserError:
        logger.warning("generate.unknown_user", user_id=user_id)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    except ParentImageNotFound:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Parent image not found"
        )
    except ParentImageForbidden:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Parent image not accessible"
        )

    limit: RateLimitResult = result.rate_limit
    response.headers.update(rate_limit_headers(limit.limit, limit.remaining, limit.reset_time_ms))

    if parent_image_id is not None:
        message = "Remix generation started. Check status with /v1/generate/status/{jobId}"
    else:
        message = "Generation started. Check status with /v1/generate/status/{jobId}"

    return GenerateResponse(
        job_id=result.job.id,
        status=result.job.status,
        message=message,
        parent_image_id=parent_image_id,
    )


# API Endpoints


@router.post(
    "/generate",
    response_model=GenerateResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_200_OK,
)
async def generate(
    body: GenerateRequest,
    request: Request,
    response: Response,
    background_tasks: BackgroundTasks,
    uow_factory=Depends(get_uow_factory),
    rate_limiter: FixedWindowRateLimiter = Depends(get_rate_limiter),
    generation_context: GenerationContext = Depends(get_generation_context),
    user_id: Optional[str] = Depends(get_current_user_id),
    client_ip_hash: str = Depends(get_client_ip_hash),
):
    """Submit an image generation job.

    Anonymous callers (no X-User-Id header) get a synthesized anonymous user
    and the anonymous budget keyed by hashed IP. Authenticated callers are
    limited per quality tier.

    Returns:
        200 {jobId, status: "pending", message} with X-RateLimit-* headers
        400 on validation failure (no job is created)
        401 when X-User-Id names an unknown user
        429 {error, resetTime} when the budget is exhausted

    Example:
        POST /v1/generate
        {"prompt": "anime girl with blue hair", "quality": "fast",
         "aspectRatio": "1:1", "guidance": 7.5, "steps": 20}

        Response 200:
        {"jobId": "3f2a...", "status": "pending", "message": "Generation started. ..."}
    """
    return await submit_and_schedule(
        body,
        request,
        response,
        background_tasks,
        uow_factory,
        rate_limiter,
        generation_context,
        user_id=user_id,
        client_ip_hash=client_ip_hash,
    )


@router.get(
    "/generate/status/{job_id}",
    response_model=JobStatusResponse,
    response_model_exclude_none=True,
)
async def get_job_status(
    job_id: str,
    uow_factory=Depends(get_uow_factory),
    settings: Settings = Depends(get_settings),
    base_url: str = Depends(get_public_base_url),
) -> JobStatusResponse:
    """Get the current state of a generation job.

    A processing job whose heartbeat has expired is failed here, so a client
    polling a job orphaned by a dead process still reaches a terminal state.

    Raises:
        HTTPException 404: Job id was never created
    """
    async with await uow_factory() as uow:
        job = await uow.generation_jobs.get_by_id(job_id)
        if job is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")

        if job.is_stale(utcnow(), settings.job_stale_after_seconds):
            logger.warning("job.stale_on_read", job_id=job.id, heartbeat_at=job.heartbeat_at)
            job.mark_failed(stale_job_error(settings.job_stale_after_seconds))
            await uow.generation_jobs.save(job)

        result = JobStatusResponse(
            job_id=job.id,
            status=job.status,
            created_at=job.created_at,
            updated_at=job.updated_at,
        )

        if job.status == JobStatus.FAILED:
            result.error = job.error or "Unknown error"

        if job.status == JobStatus.COMPLETED and job.result_image_id:
            image = await uow.images.get_by_id(job.result_image_id)
            if image is not None:
                result.image = JobImage(
                    id=image.id,
                    url=serve_url(base_url, image.storage_key),
                    prompt=image.prompt,
                    aspect_ratio=image.aspect_ratio,
                    width=image.width,
                    height=image.height,
                )

    return result
