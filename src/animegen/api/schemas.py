"""Request/response models shared across API routers.

All bodies are camelCase on the wire; Python code uses snake_case field names.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from animegen.models.image import Image
from animegen.models.user import User


class CamelModel(BaseModel):
    """Base model serialized with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UserSummary(CamelModel):
    """Public view of an image owner or comment author."""

    id: Optional[str] = None
    name: Optional[str] = None
    handle: Optional[str] = None
    image: Optional[str] = None
    is_anonymous: Optional[bool] = None

    @classmethod
    def from_user(cls, user: User | None, user_id: Optional[str] = None) -> "UserSummary":
        if user is None:
            return cls(id=user_id)
        return cls(
            id=user.id,
            name=user.name,
            handle=user.handle,
            image=user.image,
            is_anonymous=user.is_anonymous,
        )


class ImageListItem(CamelModel):
    """Image as shown in a gallery listing."""

    id: str
    url: str
    prompt: str
    model: str
    aspect_ratio: str
    width: int
    height: int
    is_private: bool
    like_count: int
    comment_count: int
    created_at: datetime

    @classmethod
    def from_image(cls, image: Image, url: str) -> "ImageListItem":
        return cls(
            id=image.id,
            url=url,
            prompt=image.prompt,
            model=image.model,
            aspect_ratio=image.aspect_ratio,
            width=image.width,
            height=image.height,
            is_private=image.is_private,
            like_count=image.like_count,
            comment_count=image.comment_count,
            created_at=image.created_at,
        )


class Pagination(CamelModel):
    page: int
    limit: int
    has_next: bool


class SuccessResponse(CamelModel):
    success: bool = Field(default=True)
