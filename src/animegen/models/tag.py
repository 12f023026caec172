"""Tag and ImageTag entities - image categorization."""

from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

from animegen.core.timezone import utcnow


class Tag(SQLModel, table=True):
    """Lower-cased tag name with a usage counter."""

    __tablename__ = "tags"  # type: ignore[assignment]

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(max_length=64, unique=True, index=True)
    usage_count: int = Field(default=0)
    created_at: datetime = Field(default_factory=utcnow)


class ImageTag(SQLModel, table=True):
    """Many-to-many link between images and tags."""

    __tablename__ = "image_tags"  # type: ignore[assignment]

    image_id: str = Field(foreign_key="images.id", primary_key=True)
    tag_id: int = Field(foreign_key="tags.id", primary_key=True)
