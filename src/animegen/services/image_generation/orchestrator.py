"""Generation job submission.

submit_generation_job() is the synchronous half of a generation: it validates
identity, applies the rate limit, persists a pending job and hands the
background continuation to a scheduler. It never awaits inference.
"""

from dataclasses import dataclass
from typing import Callable, Optional

import structlog

from animegen.models.generation_job import (
    ASPECT_RATIO_DIMENSIONS,
    AspectRatio,
    GenerationJob,
    Quality,
)
from animegen.services.exceptions import (
    ParentImageForbidden,
    ParentImageNotFound,
    RateLimitExceeded,
    UnknownUserError,
)
from animegen.services.rate_limiter import FixedWindowRateLimiter, RateLimitResult

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class GenerationParams:
    """Validated generation parameters."""

    prompt: str
    negative_prompt: Optional[str] = None
    quality: Quality = Quality.FAST
    guidance: float = 7.5
    steps: int = 20
    seed: Optional[int] = None
    aspect_ratio: AspectRatio = AspectRatio.SQUARE
    tags: Optional[list[str]] = None
    is_private: bool = False


@dataclass(frozen=True)
class RequestContext:
    """Who is asking and from where."""

    user_id: Optional[str]
    client_ip_hash: str
    user_agent: Optional[str] = None


@dataclass(frozen=True)
class SubmissionResult:
    job: GenerationJob
    rate_limit: RateLimitResult


async def submit_generation_job(
    uow_factory: Callable,
    rate_limiter: FixedWindowRateLimiter,
    params: GenerationParams,
    context: RequestContext,
    schedule: Callable[[str], None],
    parent_image_id: Optional[str] = None,
) -> SubmissionResult:
    """Create a pending generation job and schedule its processing.

    Workflow:
    1. Resolve identity (and the remix parent, if any) with a read-only UoW
    2. Apply the rate limit; nothing has been written yet
    3. Create the anonymous user (if needed) and the pending job in one UoW
    4. Pass the job id to schedule() without awaiting the continuation

    Args:
        uow_factory: UnitOfWork factory
        rate_limiter: Fixed-window limiter
        params: Validated generation parameters
        context: Caller identity and request metadata
        schedule: Called with the new job id once the job is committed
        parent_image_id: Source image for a remix

    Returns:
        SubmissionResult with the persisted job and rate-limit state

    Raises:
        UnknownUserError: user_id does not name an existing user
        ParentImageNotFound: Remix parent does not exist
        ParentImageForbidden: Remix parent is another user's private image
        RateLimitExceeded: Budget for the current window is spent
    """
    if context.user_id is not None or parent_image_id is not None:
        async with await uow_factory() as uow:
            if context.user_id is not None:
                user = await uow.users.get_by_id(context.user_id)
                if user is None:
                    raise UnknownUserError(f"User {context.user_id} not found")

            if parent_image_id is not None:
                parent = await uow.images.get_by_id(parent_image_id)
                if parent is None:
                    raise ParentImageNotFound(f"Parent image {parent_image_id} not found")
                if not parent.visible_to(context.user_id):
                    raise ParentImageForbidden(f"Parent image {parent_image_id} is private")

    is_anonymous = context.user_id is None
    rate_limit = await rate_limiter.check_submission(
        user_id=context.user_id,
        is_anonymous=is_anonymous,
        client_ip_hash=context.client_ip_hash,
        quality=params.quality,
    )
    if not rate_limit.allowed:
        raise RateLimitExceeded(rate_limit.limit, rate_limit.reset_time_ms)

    width, height = ASPECT_RATIO_DIMENSIONS[params.aspect_ratio]

    async with await uow_factory() as uow:
        owner_id = context.user_id
        if owner_id is None:
            anonymous_user = await uow.users.create_anonymous()
            owner_id = anonymous_user.id

        job = GenerationJob(
            user_id=owner_id,
            prompt=params.prompt,
            negative_prompt=params.negative_prompt,
            quality=params.quality,
            guidance=params.guidance,
            steps=params.steps,
            seed=params.seed,
            aspect_ratio=params.aspect_ratio,
            width=width,
            height=height,
            tags=list(params.tags) if params.tags else None,
            is_private=params.is_private,
            parent_image_id=parent_image_id,
            client_ip_hash=context.client_ip_hash,
            user_agent=context.user_agent,
        )
        await uow.generation_jobs.add(job)

    logger.info(
        "job.submitted",
        job_id=job.id,
        user_id=owner_id,
        anonymous=is_anonymous,
        quality=params.quality.value,
        remix=parent_image_id is not None,
        rate_limit_remaining=rate_limit.remaining,
    )

    schedule(job.id)
    return SubmissionResult(job=job, rate_limit=rate_limit)
