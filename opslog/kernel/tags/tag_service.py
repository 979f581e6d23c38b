"""
Tag service. Tags have no owner and are not gated by log visibility.
"""

from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from opslog.exceptions import InvariantViolationError
from opslog.kernel.events.event_store import EventStore
from opslog.kernel.models.account import Account
from opslog.kernel.models.event_log import EventType
from opslog.kernel.models.tag import Tag
from opslog.kernel.text_match import contains_ci
from opslog.logging_config import get_logger

logger = get_logger(__name__)


class TagService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.event_store = EventStore(session)

    async def create_tag(
        self,
        title: str,
        description: Optional[str] = None,
        color: Optional[str] = None,
        created_by: Optional[Account] = None,
    ) -> Tag:
        title = title.strip()
        if not title:
            raise InvariantViolationError("Tag title must not be blank")

        tag = Tag(title=title, description=description, color=color)
        self.session.add(tag)
        await self.session.flush()

        await self.event_store.log(
            event_type=EventType.TAG_CREATED,
            entity_type="tag",
            entity_id=tag.id,
            account_id=created_by.id if created_by else None,
            payload={"title": tag.title},
        )
        return tag

    async def get_tag(self, tag_id: int) -> Optional[Tag]:
        return await self.session.get(Tag, tag_id)

    async def get_tags(self, tag_ids: List[int]) -> List[Tag]:
        """Tags for the given IDs; missing IDs are simply absent."""
        if not tag_ids:
            return []
        result = await self.session.execute(
            select(Tag).where(Tag.id.in_(sorted(set(tag_ids)))).order_by(Tag.id)
        )
        return list(result.scalars().all())

    async def find_by_title(self, title: str) -> Optional[Tag]:
        """First tag with exactly this title."""
        result = await self.session.execute(
            select(Tag).where(Tag.title == title).order_by(Tag.id).limit(1)
        )
        return result.scalar_one_or_none()

    async def find_by_title_contains(self, substring: str) -> List[Tag]:
        """Tags whose title contains substring, ignoring case."""
        result = await self.session.execute(
            select(Tag).where(contains_ci(Tag.title, substring)).order_by(Tag.id)
        )
        return list(result.scalars().all())

    async def find_by_color(self, color: str) -> List[Tag]:
        result = await self.session.execute(
            select(Tag).where(Tag.color == color).order_by(Tag.id)
        )
        return list(result.scalars().all())

    async def delete_tag(self, tag_id: int, deleted_by: Optional[Account] = None) -> bool:
        """Delete a tag; its log associations go with it."""
        result = await self.session.execute(
            delete(Tag).where(Tag.id == tag_id),
            execution_options={"synchronize_session": False},
        )
        if not result.rowcount:
            return False

        await self.event_store.log(
            event_type=EventType.TAG_DELETED,
            entity_type="tag",
            entity_id=tag_id,
            account_id=deleted_by.id if deleted_by else None,
        )
        logger.info("Tag deleted", extra={"tag_id": tag_id})
        return True
