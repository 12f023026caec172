"""GenerationJob entity - one tracked request to produce an image."""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from animegen.core.ids import new_id
from animegen.core.timezone import utcnow


class JobStatus(str, Enum):
    """Generation job lifecycle status."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = (JobStatus.COMPLETED, JobStatus.FAILED)


class Quality(str, Enum):
    """Generation tier. Selects the model and the rate-limit budget."""

    FAST = "fast"
    QUALITY = "quality"


class AspectRatio(str, Enum):
    """Supported aspect ratios."""

    SQUARE = "1:1"
    LANDSCAPE = "16:9"
    PORTRAIT = "9:16"
    CLASSIC = "4:3"
    CLASSIC_PORTRAIT = "3:4"


ASPECT_RATIO_DIMENSIONS: dict[AspectRatio, tuple[int, int]] = {
    AspectRatio.SQUARE: (1024, 1024),
    AspectRatio.LANDSCAPE: (1344, 768),
    AspectRatio.PORTRAIT: (768, 1344),
    AspectRatio.CLASSIC: (1152, 896),
    AspectRatio.CLASSIC_PORTRAIT: (896, 1152),
}


class InvalidStateTransition(Exception):
    """Raised when attempting an invalid job state transition."""

    pass


class GenerationJob(SQLModel, table=True):
    """GenerationJob tracks one submission from pending to a terminal state.

    Rows are written only by the submitting request (creation) and by the
    background routine (every later transition). They are never deleted.
    """

    __tablename__ = "generation_jobs"  # type: ignore[assignment]

    id: str = Field(default_factory=new_id, primary_key=True, max_length=64)
    user_id: Optional[str] = Field(default=None, foreign_key="users.id", index=True)

    # Input parameters
    prompt: str = Field(max_length=1000)
    negative_prompt: Optional[str] = Field(default=None, max_length=500)
    quality: Quality = Field(default=Quality.FAST)
    guidance: float
    steps: int
    seed: Optional[int] = Field(default=None)
    aspect_ratio: AspectRatio = Field(default=AspectRatio.SQUARE)
    width: int
    height: int
    tags: Optional[list[str]] = Field(default=None, sa_column=Column(JSON))
    is_private: bool = Field(default=False)
    parent_image_id: Optional[str] = Field(default=None, max_length=64)

    # Lifecycle
    status: JobStatus = Field(default=JobStatus.PENDING, index=True)
    error: Optional[str] = Field(default=None)
    # No FK: the image may be deleted later while the job is kept for audit
    result_image_id: Optional[str] = Field(default=None, max_length=64)
    heartbeat_at: Optional[datetime] = Field(default=None)

    # Request context
    client_ip_hash: Optional[str] = Field(default=None, max_length=64)
    user_agent: Optional[str] = Field(default=None, max_length=512)

    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_remix(self) -> bool:
        return self.parent_image_id is not None

    def touch(self) -> None:
        """Refresh the heartbeat and update timestamp."""
        now = utcnow()
        self.heartbeat_at = now
        self.updated_at = now

    def mark_processing(self) -> None:
        """Transition from pending to processing.

        Raises:
            InvalidStateTransition: If current status is not pending
        """
        if self.status != JobStatus.PENDING:
            raise InvalidStateTransition(
                f"Cannot mark processing from {self.status.value}. Job must be in pending state."
            )
        self.status = JobStatus.PROCESSING
        self.touch()

    def mark_completed(self, image_id: str) -> None:
        """Transition from processing to completed.

        Args:
            image_id: Id of the Image produced by this job

        Raises:
            InvalidStateTransition: If current status is not processing
            ValueError: If image_id is empty
        """
        if self.status != JobStatus.PROCESSING:
            raise InvalidStateTransition(
                f"Cannot mark completed from {self.status.value}. "
                "Job must be in processing state."
            )
        if not image_id:
            raise ValueError("image_id is required")
        self.result_image_id = image_id
        self.error = None
        self.status = JobStatus.COMPLETED
        self.touch()

    def mark_failed(self, error: str) -> None:
        """Transition from processing to failed.

        A pending job is moved through processing first so the observed
        sequence always contains processing.

        Args:
            error: Human-readable failure message

        Raises:
            InvalidStateTransition: If current status is already terminal
        """
        if self.is_terminal:
            raise InvalidStateTransition(
                f"Cannot mark failed from terminal state {self.status.value}."
            )
        if self.status == JobStatus.PENDING:
            self.mark_processing()
        self.error = error or "Unknown error"
        self.result_image_id = None
        self.status = JobStatus.FAILED
        self.touch()

    def is_stale(self, now: datetime, stale_after_seconds: int) -> bool:
        """True if the job stopped making progress before reaching a terminal state.

        A processing job is judged by its heartbeat. A pending job is judged
        by its last update, which covers a process that died after the job
        was committed but before background processing started.
        """
        if self.status == JobStatus.PROCESSING:
            last_seen = self.heartbeat_at or self.updated_at
        elif self.status == JobStatus.PENDING:
            last_seen = self.updated_at
        else:
            return False
        return (now - last_seen).total_seconds() > stale_after_seconds
