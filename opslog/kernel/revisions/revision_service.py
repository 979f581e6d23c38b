"""
Revision chain service.

Logs are append-only. An edit never touches the log being edited: it inserts
a new row whose parent_id points back at it. A log may have any number of
direct revisions, and a revision may itself be revised, so a log's full
history is the tree below it.
"""

from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from opslog.exceptions import InvariantViolationError, NotFoundError
from opslog.kernel.events.event_store import EventStore
from opslog.kernel.models.account import Account
from opslog.kernel.models.base import as_utc, utcnow
from opslog.kernel.models.event_log import EventType
from opslog.kernel.models.log import Log
from opslog.kernel.models.tag import Tag
from opslog.logging_config import get_logger
from opslog.schemas.log import LogContent

logger = get_logger(__name__)


class RevisionService:
    """Creates originals and revisions, and reads revision trees."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.event_store = EventStore(session)

    async def get_log(self, log_id: int) -> Optional[Log]:
        """Get a log by ID, bypassing visibility. For internal use."""
        return await self.session.get(Log, log_id)

    async def create_original(
        self,
        creator: Optional[Account],
        time_of_event: datetime,
        tags: Sequence[Tag],
        title: str,
        description: str = "",
    ) -> Log:
        """
        Record a new original log.

        Raises:
            InvariantViolationError: If creator is unset or title is blank
        """
        if creator is None:
            raise InvariantViolationError("A log must have a creator")
        if not title or not title.strip():
            raise InvariantViolationError("A log must have a title")

        log = Log(
            created_by_id=creator.id,
            created_at=utcnow(),
            time_of_event=as_utc(time_of_event),
            title=title,
            description=description or "",
            tags=_unique_tags(tags),
        )
        self.session.add(log)
        await self.session.flush()

        await self.event_store.log(
            event_type=EventType.LOG_CREATED,
            entity_type="log",
            entity_id=log.id,
            account_id=creator.id,
            payload={"title": log.title, "tag_ids": log.tag_ids},
        )
        logger.info("Log created", extra={"log_id": log.id, "account_id": creator.id})
        return log

    async def revise_log(
        self,
        parent: Log,
        reviser: Optional[Account],
        content: LogContent,
        tags: Optional[Sequence[Tag]] = None,
    ) -> Log:
        """
        Record a revision of ``parent``.

        The new row carries the revised content and points at the parent;
        the parent is left exactly as it was. Content fields left unset are
        copied from the parent. ``tags`` replaces the parent's tags when
        given.

        Raises:
            InvariantViolationError: If reviser is unset
            NotFoundError: If the parent was deleted before the revision landed
        """
        if reviser is None:
            raise InvariantViolationError("A revision must have a reviser")

        # Key-share lock: concurrent revisions proceed, a concurrent delete
        # of the parent waits for this transaction (no-op on SQLite)
        locked = await self.session.execute(
            select(Log.id, Log.created_at)
            .where(Log.id == parent.id)
            .with_for_update(read=True, key_share=True)
        )
        row = locked.first()
        if row is None:
            raise NotFoundError("log", parent.id)

        # revised_at never precedes the parent's creation
        revised_at = max(utcnow(), as_utc(row.created_at))

        revision = Log(
            created_by_id=reviser.id,
            created_at=revised_at,
            time_of_event=as_utc(content.time_of_event or parent.time_of_event),
            title=content.title if content.title is not None else parent.title,
            description=(
                content.description if content.description is not None else parent.description
            ),
            tags=_unique_tags(tags) if tags is not None else list(parent.tags),
            parent_id=parent.id,
            revised_by_id=reviser.id,
            revised_at=revised_at,
        )
        try:
            async with self.session.begin_nested():
                self.session.add(revision)
                await self.session.flush()
        except IntegrityError as e:
            # Parent vanished between the lock read and the insert
            raise NotFoundError("log", parent.id) from e

        await self.event_store.log(
            event_type=EventType.LOG_REVISED,
            entity_type="log",
            entity_id=revision.id,
            account_id=reviser.id,
            payload={"parent_id": parent.id, "tag_ids": revision.tag_ids},
        )
        logger.info(
            "Log revised",
            extra={"log_id": revision.id, "parent_id": parent.id, "account_id": reviser.id},
        )
        return revision

    async def list_revisions(self, parent: Log) -> List[Log]:
        """
        Direct revisions of ``parent``, newest first.

        Equal revision times keep insertion order. Computed fresh on each call.
        """
        query = (
            select(Log)
            .where(Log.parent_id == parent.id)
            .order_by(Log.revised_at.desc(), Log.id.asc())
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def list_descendants(self, log: Log) -> List[Log]:
        """Every revision anywhere below ``log``, newest first."""
        tree = (
            select(Log.id)
            .where(Log.parent_id == log.id)
            .cte(name="revision_tree", recursive=True)
        )
        tree = tree.union_all(select(Log.id).where(Log.parent_id == tree.c.id))

        query = (
            select(Log)
            .where(Log.id.in_(select(tree.c.id)))
            .order_by(Log.revised_at.desc(), Log.id.asc())
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def find_original(self, log: Log) -> Log:
        """Follow parent links up to the original entry."""
        current = log
        while current.parent_id is not None:
            parent = await self.session.get(Log, current.parent_id)
            if parent is None:
                # Cascade makes this unreachable unless rows were removed mid-walk
                raise NotFoundError("log", current.parent_id)
            current = parent
        return current


def _unique_tags(tags: Sequence[Tag]) -> List[Tag]:
    """Each tag at most once per log, first-seen order."""
    seen = {}
    for tag in tags:
        seen.setdefault(tag.id, tag)
    return list(seen.values())
