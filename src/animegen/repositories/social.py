"""Like and Comment repositories for animegen backend."""

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from animegen.models.social import Comment, Like
from animegen.models.user import User


class LikeRepository:
    """Repository for Like entities."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def exists(self, user_id: str, image_id: str) -> bool:
        """Check whether a user already liked an image.

        Args:
            user_id: Liking user
            image_id: Liked image

        Returns:
            True if the like exists, False otherwise
        """
        result = await self.session.execute(
            select(Like.user_id)
            .where(Like.user_id == user_id)  # type: ignore[arg-type]
            .where(Like.image_id == image_id)  # type: ignore[arg-type]
        )
        return result.first() is not None

    async def add(self, user_id: str, image_id: str) -> Like:
        like = Like(user_id=user_id, image_id=image_id)
        self.session.add(like)
        await self.session.flush()
        return like

    async def remove(self, user_id: str, image_id: str) -> bool:
        """Delete a like.

        Returns:
            True if a like was removed, False if none existed
        """
        result = await self.session.execute(
            delete(Like)
            .where(Like.user_id == user_id)  # type: ignore[arg-type]
            .where(Like.image_id == image_id)  # type: ignore[arg-type]
        )
        return result.rowcount > 0  # type: ignore[attr-defined]


class CommentRepository:
    """Repository for Comment entities."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def add(self, comment: Comment) -> Comment:
        self.session.add(comment)
        await self.session.flush()
        return comment

    async def list_for_image(
        self, image_id: str, limit: int = 50, offset: int = 0
    ) -> list[tuple[Comment, User | None]]:
        """Retrieve comments on an image with their authors, newest first."""
        result = await self.session.execute(
            select(Comment, User)
            .outerjoin(User, Comment.user_id == User.id)  # type: ignore[arg-type]
            .where(Comment.image_id == image_id)  # type: ignore[arg-type]
            .order_by(Comment.created_at.desc())  # type: ignore[attr-defined]
            .limit(limit)
            .offset(offset)
        )
        return [(row[0], row[1]) for row in result.all()]
