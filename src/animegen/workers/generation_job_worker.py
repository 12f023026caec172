"""Background processing for generation jobs.

run_job() is scheduled by the submitting request and runs after the HTTP
response is sent. It drives one job from pending to a terminal state.

Each step opens its own Unit of Work:

1. pending -> processing is committed on its own so pollers observe it
2. Inference and the blob write run outside any transaction
3. Image row, tag links, owner image count and the completed transition
   commit together
4. On any exception a fresh UoW records the failure

A failure in a later step therefore cannot roll back the processing
transition, and the job row always ends up terminal unless the process dies.
Jobs left in pending or processing by a dead process are failed by
sweep_stale_jobs() once they stop making progress.
"""

import hashlib
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

import structlog

from animegen.core.config import Settings
from animegen.core.ids import new_id
from animegen.core.timezone import utcnow
from animegen.models.image import Image
from animegen.services.image_generation.payload import build_inference_payload, model_for_quality
from animegen.services.image_generation.replicate_client import ReplicateInferenceGateway
from animegen.services.image_generation.tagging import TagGenerator, merge_tags
from animegen.services.storage.s3_client import S3BlobStore, image_storage_key

logger = structlog.get_logger(__name__)


@dataclass
class GenerationContext:
    """Collaborators needed to process a job."""

    uow_factory: Callable
    gateway: ReplicateInferenceGateway
    blob_store: S3BlobStore
    tag_generator: TagGenerator
    settings: Settings


async def _heartbeat(uow_factory: Callable, job_id: str) -> None:
    async with await uow_factory() as uow:
        job = await uow.generation_jobs.get_by_id(job_id)
        if job is not None and not job.is_terminal:
            job.touch()
            await uow.generation_jobs.save(job)


async def _record_failure(uow_factory: Callable, job_id: str, error: str) -> None:
    """Mark a job failed in a fresh transaction. Never raises."""
    try:
        async with await uow_factory() as uow:
            job = await uow.generation_jobs.get_by_id(job_id)
            if job is None or job.is_terminal:
                return
            job.mark_failed(error)
            await uow.generation_jobs.save(job)
    except Exception as e:
        logger.error(
            "job.failure_not_recorded",
            job_id=job_id,
            error=str(e),
            error_type=type(e).__name__,
            original_error=error,
        )


async def _link_tags(uow, job_id: str, image_id: str, tags: list[str]) -> list[str]:
    """Link tags inside a savepoint; a failure drops the tags, not the job."""
    try:
        async with uow.session.begin_nested():
            return await uow.tags.assign_tags(image_id, tags)
    except Exception as e:
        logger.warning(
            "job.tags_not_linked",
            job_id=job_id,
            image_id=image_id,
            error=str(e),
            error_type=type(e).__name__,
        )
        return []


async def run_job(job_id: str, context: GenerationContext) -> None:
    """Process a single generation job to completion or failure.

    Workflow:
    1. Load the job and mark it processing (own transaction)
    2. Build the payload and call the tier model
    3. Hash and store the image bytes under images/YYYY/MM/<imageId>.png
    4. Classify the prompt into tags (best effort)
    5. Create the Image, link tags, bump the owner's image count and mark
       the job completed (one transaction)

    No exception escapes; failures are stored as the job's error.

    Args:
        job_id: Id of a pending job
        context: Shared collaborators (UoW factory, gateway, blob store, tagger)
    """
    start_time = time.time()
    settings = context.settings

    try:
        async with await context.uow_factory() as uow:
            job = await uow.generation_jobs.get_by_id(job_id)
            if job is None:
                logger.error("job.not_found", job_id=job_id)
                return
            job.mark_processing()
            await uow.generation_jobs.save(job)

        model = model_for_quality(settings, job.quality)
        logger.info(
            "job.processing.started",
            job_id=job_id,
            model=model,
            quality=job.quality.value,
            remix=job.is_remix,
        )

        image_bytes = await context.gateway.generate_image(model, build_inference_payload(job))
        await _heartbeat(context.uow_factory, job_id)

        image_id = new_id()
        storage_key = image_storage_key(image_id, utcnow())
        metadata = {"job-id": job_id, "model": model}
        if job.user_id:
            metadata["user-id"] = job.user_id
        if job.parent_image_id:
            metadata["parent-id"] = job.parent_image_id

        await context.blob_store.put(storage_key, image_bytes, metadata=metadata)
        await _heartbeat(context.uow_factory, job_id)

        generated_tags = await context.tag_generator.generate(job.prompt, job.negative_prompt)
        tags = merge_tags(job.tags, generated_tags, settings.max_tags_per_image)

        async with await context.uow_factory() as uow:
            job = await uow.generation_jobs.get_by_id(job_id)
            if job is None:
                raise ValueError(f"Job {job_id} disappeared during processing")

            image = Image(
                id=image_id,
                user_id=job.user_id,
                prompt=job.prompt,
                negative_prompt=job.negative_prompt,
                model=model,
                guidance=job.guidance,
                steps=job.steps,
                seed=job.seed,
                aspect_ratio=job.aspect_ratio.value,
                width=job.width,
                height=job.height,
                byte_size=len(image_bytes),
                sha256=hashlib.sha256(image_bytes).hexdigest(),
                storage_bucket=context.blob_store.bucket,
                storage_key=storage_key,
                is_private=job.is_private,
                parent_id=job.parent_image_id,
            )
            await uow.images.add(image)

            if tags:
                tags = await _link_tags(uow, job_id, image.id, tags)
            if job.user_id:
                await uow.users.adjust_image_count(job.user_id, 1)

            job.mark_completed(image.id)
            await uow.generation_jobs.save(job)

        logger.info(
            "job.processing.succeeded",
            job_id=job_id,
            image_id=image_id,
            storage_key=storage_key,
            tag_count=len(tags),
            duration_seconds=time.time() - start_time,
        )

    except Exception as e:
        error = str(e) or type(e).__name__
        logger.error(
            "job.processing.failed",
            job_id=job_id,
            error_type=type(e).__name__,
            error_message=error,
            duration_seconds=time.time() - start_time,
        )
        await _record_failure(context.uow_factory, job_id, error)


def stale_job_error(stale_after_seconds: int) -> str:
    return f"Job timed out: no progress for {stale_after_seconds} seconds"


async def sweep_stale_jobs(
    uow_factory: Callable,
    stale_after_seconds: int,
    now: Optional[datetime] = None,
    limit: int = 100,
) -> int:
    """Fail pending or processing jobs that stopped making progress.

    A process that dies before or during a job leaves the row active forever;
    this moves such rows to failed so pollers see a terminal state.

    Args:
        uow_factory: UnitOfWork factory
        stale_after_seconds: Seconds without progress after which a job is dead
        now: Reference time (defaults to current UTC)
        limit: Maximum jobs to fail in one sweep

    Returns:
        Number of jobs marked failed
    """
    now = now or utcnow()
    async with await uow_factory() as uow:
        stale_jobs = await uow.generation_jobs.get_stale_active(
            now, stale_after_seconds, limit=limit
        )
        for job in stale_jobs:
            logger.warning("job.stale_failed", job_id=job.id, heartbeat_at=job.heartbeat_at)
            job.mark_failed(stale_job_error(stale_after_seconds))
            await uow.generation_jobs.save(job)

    if stale_jobs:
        logger.info("job.stale_sweep", failed=len(stale_jobs))
    return len(stale_jobs)
