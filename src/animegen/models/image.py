"""Image entity - the durable artifact produced by a completed job."""

from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

from animegen.core.ids import new_id
from animegen.core.timezone import utcnow


class Image(SQLModel, table=True):
    """Image references a stored blob plus the parameters that produced it."""

    __tablename__ = "images"  # type: ignore[assignment]

    id: str = Field(default_factory=new_id, primary_key=True, max_length=64)
    user_id: Optional[str] = Field(default=None, foreign_key="users.id", index=True)

    # Denormalized generation parameters
    prompt: str = Field(max_length=1000)
    negative_prompt: Optional[str] = Field(default=None, max_length=500)
    model: str = Field(max_length=255)
    guidance: float
    steps: int
    seed: Optional[int] = Field(default=None)
    aspect_ratio: str = Field(max_length=8)
    width: int
    height: int

    # Content reference
    byte_size: int
    sha256: str = Field(max_length=64, index=True)
    storage_bucket: str = Field(max_length=255)
    storage_key: str = Field(max_length=512)

    is_private: bool = Field(default=False, index=True)
    parent_id: Optional[str] = Field(default=None, max_length=64, index=True)  # remix source

    # Cached social counters
    like_count: int = Field(default=0)
    comment_count: int = Field(default=0)

    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow)

    def visible_to(self, user_id: Optional[str]) -> bool:
        """Private images are visible to their owner only."""
        return not self.is_private or (user_id is not None and self.user_id == user_id)
