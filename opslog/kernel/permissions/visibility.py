"""
Group-scoped visibility.

A requester sees a log exactly when the log's creator shares at least one
group with the requester. The requester's group IDs are read once per
request and the test becomes a single EXISTS clause over account_groups,
so every read is filtered in the database before rows reach the caller.
Visibility comes from membership only: an account with no groups sees no
logs, not even its own.
"""

from typing import AbstractSet, List, Optional

from sqlalchemy import Select, exists, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from opslog.kernel.identity.identity_service import IdentityService
from opslog.kernel.models.account import Account, account_groups
from opslog.kernel.models.group import Group
from opslog.kernel.models.log import Log, log_tags
from opslog.kernel.text_match import contains_ci
from opslog.logging_config import get_logger
from opslog.schemas.log import LogFilter

logger = get_logger(__name__)


def creator_shares_group(group_ids: AbstractSet[int]) -> ColumnElement[bool]:
    """SQL predicate: the log's creator belongs to one of ``group_ids``."""
    return exists().where(
        account_groups.c.account_id == Log.created_by_id,
        account_groups.c.group_id.in_(sorted(group_ids)),
    )


def creator_in_group(group_id: int) -> ColumnElement[bool]:
    """SQL predicate: the log's creator belongs to ``group_id``."""
    return exists().where(
        account_groups.c.account_id == Log.created_by_id,
        account_groups.c.group_id == group_id,
    )


def has_any_tag(tag_ids: AbstractSet[int]) -> ColumnElement[bool]:
    return exists().where(
        log_tags.c.log_id == Log.id,
        log_tags.c.tag_id.in_(sorted(tag_ids)),
    )


def apply_log_filter(query: Select, log_filter: LogFilter) -> Select:
    """Add the WHERE clauses for every field set on ``log_filter``."""
    f = log_filter

    if f.time_from is not None:
        query = query.where(Log.time_of_event >= f.time_from)
    if f.time_to is not None:
        query = query.where(Log.time_of_event <= f.time_to)
    if f.at_time is not None:
        query = query.where(Log.time_of_event == f.at_time)

    if f.group_id is not None:
        query = query.where(creator_in_group(f.group_id))
    if f.account_id is not None:
        query = query.where(Log.created_by_id == f.account_id)
    if f.account_ids is not None:
        query = query.where(Log.created_by_id.in_(f.account_ids))
    if f.tag_id is not None:
        query = query.where(has_any_tag({f.tag_id}))
    if f.tag_ids is not None:
        query = query.where(has_any_tag(set(f.tag_ids)))

    if f.title is not None:
        query = query.where(Log.title == f.title)
    if f.title_contains is not None:
        query = query.where(contains_ci(Log.title, f.title_contains))
    if f.description is not None:
        query = query.where(Log.description == f.description)
    if f.description_contains is not None:
        query = query.where(contains_ci(Log.description, f.description_contains))

    if f.originals_only:
        query = query.where(Log.parent_id.is_(None))
    return query


class VisibilityFilter:
    """Computes what a requesting account may see."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.identity = IdentityService(session)

    async def group_ids_for(self, account: Account) -> frozenset:
        return frozenset(await self.identity.get_group_ids(account.id))

    async def visible_clause(self, requester: Account) -> Optional[ColumnElement[bool]]:
        """
        The visibility predicate for ``requester``, or None when the
        requester belongs to no group and therefore sees nothing.
        """
        group_ids = await self.group_ids_for(requester)
        if not group_ids:
            return None
        return creator_shares_group(group_ids)

    async def is_visible(self, requester: Account, log_id: int) -> bool:
        clause = await self.visible_clause(requester)
        if clause is None:
            return False
        result = await self.session.execute(select(Log.id).where(Log.id == log_id, clause))
        return result.first() is not None

    async def list_visible_logs(
        self,
        requester: Account,
        log_filter: Optional[LogFilter] = None,
    ) -> List[Log]:
        """
        Logs visible to ``requester`` that match ``log_filter``.

        Ordered by time of event, newest first, then by ID descending.
        """
        log_filter = log_filter or LogFilter()
        if log_filter.selects_nothing:
            return []

        clause = await self.visible_clause(requester)
        if clause is None:
            logger.debug("Requester has no groups", extra={"account_id": requester.id})
            return []

        query = apply_log_filter(select(Log).where(clause), log_filter)
        query = query.order_by(Log.time_of_event.desc(), Log.id.desc())

        result = await self.session.execute(query)
        logs = list(result.scalars().all())
        logger.debug(
            "Listed visible logs",
            extra={"account_id": requester.id, "count": len(logs)},
        )
        return logs

    async def filter_visible(self, requester: Account, logs: List[Log]) -> List[Log]:
        """
        Keep the visible ones from logs already read for an internal purpose,
        preserving their order. The check runs in the database.
        """
        if not logs:
            return []
        clause = await self.visible_clause(requester)
        if clause is None:
            return []
        ids = [log.id for log in logs]
        result = await self.session.execute(select(Log.id).where(Log.id.in_(ids), clause))
        visible_ids = {row[0] for row in result.all()}
        return [log for log in logs if log.id in visible_ids]

    async def list_visible_accounts(self, requester: Account) -> List[Account]:
        """Accounts sharing at least one group with ``requester``."""
        group_ids = await self.group_ids_for(requester)
        if not group_ids:
            return []
        query = (
            select(Account)
            .where(
                exists().where(
                    account_groups.c.account_id == Account.id,
                    account_groups.c.group_id.in_(sorted(group_ids)),
                )
            )
            .order_by(Account.id)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def list_visible_groups(self, requester: Account) -> List[Group]:
        """Groups ``requester`` belongs to."""
        return await self.identity.get_groups(requester.id)
