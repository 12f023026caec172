"""Tag repository for animegen backend.

Provides tag upsert and image-tag linking.
"""

from sqlalchemy import select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from animegen.core.timezone import utcnow
from animegen.models.tag import ImageTag, Tag

# Dialects with INSERT ... ON CONFLICT support
_UPSERT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class TagRepository:
    """Repository for Tag and ImageTag entities."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def get_by_name(self, name: str) -> Tag | None:
        result = await self.session.execute(
            select(Tag)
            .where(Tag.name == name)  # type: ignore[arg-type]
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_or_create(self, name: str) -> Tag:
        """Return the tag with this name, inserting it if missing.

        The insert is ON CONFLICT DO NOTHING, so a concurrent transaction
        creating the same name never raises a unique violation here.

        Args:
            name: Normalized tag name

        Returns:
            Existing or newly created tag
        """
        insert = _UPSERT_INSERTS[self.session.get_bind().dialect.name]
        await self.session.execute(
            insert(Tag)
            .values(name=name, usage_count=0, created_at=utcnow())
            .on_conflict_do_nothing(index_elements=["name"])
        )
        tag = await self.get_by_name(name)
        if tag is None:
            raise LookupError(f"Tag {name!r} missing after upsert")
        return tag

    async def assign_tags(self, image_id: str, tag_names: list[str]) -> list[str]:
        """Link tags to an image, creating tags that don't exist yet.

        Names are lower-cased and stripped; blanks and duplicates are skipped.
        Each linked tag's usage count is incremented once, in place.

        Args:
            image_id: Image to tag
            tag_names: Raw tag names

        Returns:
            Normalized names actually linked, in input order
        """
        linked: list[str] = []
        for raw_name in tag_names:
            name = raw_name.lower().strip()
            if not name or name in linked:
                continue

            tag = await self.get_or_create(name)
            await self.session.execute(
                update(Tag)
                .where(Tag.id == tag.id)  # type: ignore[arg-type]
                .values(usage_count=Tag.usage_count + 1)
            )
            self.session.add(ImageTag(image_id=image_id, tag_id=tag.id))  # type: ignore[arg-type]
            linked.append(name)

        await self.session.flush()
        return linked

    async def get_names_for_image(self, image_id: str) -> list[str]:
        """Retrieve tag names linked to an image, alphabetically."""
        result = await self.session.execute(
            select(Tag.name)
            .join(ImageTag, ImageTag.tag_id == Tag.id)  # type: ignore[arg-type]
            .where(ImageTag.image_id == image_id)  # type: ignore[arg-type]
            .order_by(Tag.name.asc())  # type: ignore[attr-defined]
        )
        return list(result.scalars().all())
