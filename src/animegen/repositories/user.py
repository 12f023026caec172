"""User repository for animegen backend.

Provides data access methods for User entities and their cached counters.
"""

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from animegen.core.timezone import utcnow
from animegen.models.user import User


class UserRepository:
    """Repository for User entities.

    Counter updates are issued as single UPDATE statements (col = col + n)
    so they never read-modify-write in Python.
    """

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def get_by_id(self, user_id: str) -> User | None:
        """Retrieve user by id.

        Args:
            user_id: User's unique identifier

        Returns:
            User if found, None otherwise
        """
        result = await self.session.execute(select(User).where(User.id == user_id))  # type: ignore[arg-type]
        return result.scalar_one_or_none()

    async def get_by_handle(self, handle: str) -> User | None:
        result = await self.session.execute(select(User).where(User.handle == handle))  # type: ignore[arg-type]
        return result.scalar_one_or_none()

    async def add(self, user: User) -> User:
        """Persist new user to database.

        Args:
            user: User entity to persist

        Returns:
            Persisted user
        """
        self.session.add(user)
        await self.session.flush()
        return user

    async def create_anonymous(self) -> User:
        """Synthesize and persist a new anonymous user."""
        return await self.add(User.anonymous())

    async def adjust_image_count(self, user_id: str, delta: int) -> None:
        """Add delta to the user's cached image count."""
        await self.session.execute(
            update(User)
            .where(User.id == user_id)  # type: ignore[arg-type]
            .values(image_count=User.image_count + delta, updated_at=utcnow())
        )

    async def adjust_like_count(self, user_id: str, delta: int) -> None:
        """Add delta to the number of likes the user has given."""
        await self.session.execute(
            update(User)
            .where(User.id == user_id)  # type: ignore[arg-type]
            .values(like_count=User.like_count + delta, updated_at=utcnow())
        )

    async def refresh(self, user: User) -> User:
        """Reload counters after bulk UPDATE statements."""
        await self.session.refresh(user)
        return user
