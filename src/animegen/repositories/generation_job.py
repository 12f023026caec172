"""GenerationJob repository for animegen backend.

Provides data access methods for GenerationJob entities.
"""

from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from animegen.models.generation_job import GenerationJob, JobStatus


class GenerationJobRepository:
    """Repository for GenerationJob entities.

    Status transitions themselves live on the model (mark_processing,
    mark_completed, mark_failed); the repository only loads and persists.
    """

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def add(self, job: GenerationJob) -> GenerationJob:
        """Persist new generation job to database.

        Args:
            job: GenerationJob entity to persist

        Returns:
            Persisted job with generated ID
        """
        self.session.add(job)
        await self.session.flush()
        return job

    async def get_by_id(self, job_id: str) -> GenerationJob | None:
        """Retrieve generation job by id.

        Args:
            job_id: Job's unique identifier

        Returns:
            GenerationJob if found, None otherwise
        """
        result = await self.session.execute(
            select(GenerationJob).where(GenerationJob.id == job_id)  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def save(self, job: GenerationJob) -> GenerationJob:
        """Flush pending changes on a job loaded in this session."""
        self.session.add(job)
        await self.session.flush()
        return job

    async def get_stale_active(
        self, now: datetime, stale_after_seconds: int, limit: int = 100
    ) -> list[GenerationJob]:
        """Retrieve pending or processing jobs that stopped making progress.

        Processing jobs are judged by heartbeat (falling back to updated_at),
        pending jobs by updated_at.

        Args:
            now: Reference time (naive UTC)
            stale_after_seconds: Heartbeat age after which a job is stale
            limit: Maximum jobs to return

        Returns:
            Stale jobs ordered oldest first
        """
        cutoff = now - timedelta(seconds=stale_after_seconds)
        result = await self.session.execute(
            select(GenerationJob)
            .where(
                GenerationJob.status.in_([JobStatus.PENDING, JobStatus.PROCESSING])  # type: ignore[attr-defined]
            )
            .where(GenerationJob.updated_at < cutoff)  # type: ignore[arg-type]
            .order_by(GenerationJob.updated_at.asc())  # type: ignore[attr-defined]
            .limit(limit)
        )
        return [job for job in result.scalars().all() if job.is_stale(now, stale_after_seconds)]

