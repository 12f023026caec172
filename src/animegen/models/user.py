"""User entity - authenticated or synthesized anonymous account."""

import random
from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

from animegen.core.ids import new_id
from animegen.core.timezone import utcnow


class User(SQLModel, table=True):
    """User owns images and jobs and carries cached social counters."""

    __tablename__ = "users"  # type: ignore[assignment]

    id: str = Field(default_factory=new_id, primary_key=True, max_length=64)
    name: str = Field(max_length=100)
    handle: str = Field(max_length=64, unique=True, index=True)
    email: Optional[str] = Field(default=None, max_length=254, unique=True)
    image: Optional[str] = Field(default=None)  # avatar URL
    bio: Optional[str] = Field(default=None, max_length=500)
    is_anonymous: bool = Field(default=True)

    # Cached counters, maintained alongside the owning writes
    image_count: int = Field(default=0)
    like_count: int = Field(default=0)
    follower_count: int = Field(default=0)
    following_count: int = Field(default=0)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def anonymous(cls) -> "User":
        """Build a fresh anonymous user with a generated name and handle."""
        user_id = new_id()
        return cls(
            id=user_id,
            name=f"Anon{random.randint(0, 9999)}",
            handle=f"anon_{user_id[:8]}",
            is_anonymous=True,
        )
