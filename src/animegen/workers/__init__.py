"""Background processing for generation jobs."""

from animegen.workers.generation_job_worker import (
    GenerationContext,
    run_job,
    sweep_stale_jobs,
)

__all__ = [
    "GenerationContext",
    "run_job",
    "sweep_stale_jobs",
]
