"""SQLModel database entities.

All models are imported here to ensure they're registered with SQLModel metadata
for Alembic autogenerate support.
"""

from animegen.models.generation_job import (
    ASPECT_RATIO_DIMENSIONS,
    AspectRatio,
    GenerationJob,
    InvalidStateTransition,
    JobStatus,
    Quality,
)
from animegen.models.image import Image
from animegen.models.social import Comment, Like
from animegen.models.tag import ImageTag, Tag
from animegen.models.user import User

__all__ = [
    "User",
    "GenerationJob",
    "JobStatus",
    "Quality",
    "AspectRatio",
    "ASPECT_RATIO_DIMENSIONS",
    "InvalidStateTransition",
    "Image",
    "Tag",
    "ImageTag",
    "Like",
    "Comment",
]
