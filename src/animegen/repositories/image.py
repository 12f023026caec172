"""Image repository for animegen backend.

Provides data access methods for Image entities, owner joins for API
responses, and the cached like/comment counters.
"""

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from animegen.core.timezone import utcnow
from animegen.models.image import Image
from animegen.models.social import Comment, Like
from animegen.models.tag import ImageTag
from animegen.models.user import User


class ImageRepository:
    """Repository for Image entities.

    Methods:
    - add / get_by_id: basic persistence
    - get_with_owner: image plus owning user (single LEFT JOIN)
    - list_by_user: newest-first page of a user's gallery
    - delete: remove an image and its dependent rows
    - adjust_like_count / adjust_comment_count: cached counters
    """

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def add(self, image: Image) -> Image:
        """Persist new image to database.

        Args:
            image: Image entity to persist

        Returns:
            Persisted image
        """
        self.session.add(image)
        await self.session.flush()
        return image

    async def get_by_id(self, image_id: str) -> Image | None:
        """Retrieve image by id.

        Args:
            image_id: Image's unique identifier

        Returns:
            Image if found, None otherwise
        """
        result = await self.session.execute(select(Image).where(Image.id == image_id))  # type: ignore[arg-type]
        return result.scalar_one_or_none()

    async def get_with_owner(self, image_id: str) -> tuple[Image, User | None] | None:
        """Retrieve image together with its owner.

        Returns:
            (image, owner) if the image exists, None otherwise. Owner is None
            when the image has no owner reference.
        """
        result = await self.session.execute(
            select(Image, User)
            .outerjoin(User, Image.user_id == User.id)  # type: ignore[arg-type]
            .where(Image.id == image_id)  # type: ignore[arg-type]
        )
        row = result.first()
        if row is None:
            return None
        return row[0], row[1]

    async def list_by_user(
        self,
        user_id: str,
        include_private: bool,
        limit: int = 20,
        offset: int = 0,
    ) -> list[Image]:
        """Retrieve a page of a user's images, newest first.

        Args:
            user_id: Owner id
            include_private: Whether private images are included (owner viewing)
            limit: Page size
            offset: Number of images to skip

        Returns:
            List of images ordered by creation time (newest first)
        """
        stmt = select(Image).where(Image.user_id == user_id)  # type: ignore[arg-type]
        if not include_private:
            stmt = stmt.where(Image.is_private == False)  # type: ignore[arg-type]  # noqa: E712
        result = await self.session.execute(
            stmt.order_by(Image.created_at.desc()).limit(limit).offset(offset)  # type: ignore[attr-defined]
        )
        return list(result.scalars().all())

    async def delete(self, image: Image) -> None:
        """Delete an image row and the rows that reference it.

        Tag links, likes and comments are removed explicitly so the delete
        does not depend on database-level cascades.
        """
        await self.session.execute(delete(ImageTag).where(ImageTag.image_id == image.id))  # type: ignore[arg-type]
        await self.session.execute(delete(Like).where(Like.image_id == image.id))  # type: ignore[arg-type]
        await self.session.execute(delete(Comment).where(Comment.image_id == image.id))  # type: ignore[arg-type]
        await self.session.delete(image)
        await self.session.flush()

    async def adjust_like_count(self, image_id: str, delta: int) -> None:
        await self.session.execute(
            update(Image)
            .where(Image.id == image_id)  # type: ignore[arg-type]
            .values(like_count=Image.like_count + delta, updated_at=utcnow())
        )

    async def adjust_comment_count(self, image_id: str, delta: int) -> None:
        await self.session.execute(
            update(Image)
            .where(Image.id == image_id)  # type: ignore[arg-type]
            .values(comment_count=Image.comment_count + delta, updated_at=utcnow())
        )
