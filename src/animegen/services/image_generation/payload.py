"""Inference request construction from stored job parameters."""

from typing import Any

from animegen.core.config import Settings
from animegen.models.generation_job import GenerationJob, Quality


def model_for_quality(settings: Settings, quality: Quality) -> str:
    """Return the Replicate model configured for a generation tier."""
    if quality == Quality.QUALITY:
        return settings.image_model_quality
    return settings.image_model_fast


def build_inference_payload(job: GenerationJob) -> dict[str, Any]:
    """Build the model input for a job.

    Optional fields (negative prompt, seed) are included only when present.
    A seed of 0 is a valid deterministic seed and is kept.
    """
    payload: dict[str, Any] = {"prompt": job.prompt}
    if job.negative_prompt:
        payload["negative_prompt"] = job.negative_prompt
    payload["guidance"] = job.guidance
    payload["num_inference_steps"] = job.steps
    if job.seed is not None:
        payload["seed"] = job.seed
    payload["width"] = job.width
    payload["height"] = job.height
    return payload
