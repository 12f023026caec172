"""Like and Comment entities."""

from datetime import datetime

from pydantic import field_validator
from sqlmodel import Field, SQLModel

from animegen.core.ids import new_id
from animegen.core.timezone import utcnow


class Like(SQLModel, table=True):
    """A user's like on an image. One per (user, image)."""

    __tablename__ = "likes"  # type: ignore[assignment]

    user_id: str = Field(foreign_key="users.id", primary_key=True)
    image_id: str = Field(foreign_key="images.id", primary_key=True, index=True)
    created_at: datetime = Field(default_factory=utcnow)


class Comment(SQLModel, table=True):
    """A comment on an image. Content is stored already sanitized."""

    __tablename__ = "comments"  # type: ignore[assignment]

    id: str = Field(default_factory=new_id, primary_key=True, max_length=64)
    image_id: str = Field(foreign_key="images.id", index=True)
    user_id: str = Field(foreign_key="users.id", index=True)
    content: str = Field(max_length=500)
    created_at: datetime = Field(default_factory=utcnow, index=True)

    @field_validator("content")
    @classmethod
    def validate_content(cls, v: str) -> str:
        """Validate comment length (1-500 characters)."""
        if len(v) < 1 or len(v) > 500:
            raise ValueError("Comment must be between 1 and 500 characters")
        return v
