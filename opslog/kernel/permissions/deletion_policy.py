"""
Administrative deletion policy.

Every destructive operation needs both:
1. the requester is a member of the ADMINISTRATOR system group, and
2. the targeted logs pass the same visibility test as reads.

Failures look like "nothing matched": False for single deletes, 0 for bulk
deletes. A caller cannot tell a refused request from a missing log.
Deleting a log removes its revision subtree through the ON DELETE CASCADE
on logs.parent_id, inside the same transaction. Bulk counts include every
removed revision.
"""

from typing import Iterable

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from opslog.kernel.events.event_store import EventStore
from opslog.kernel.identity.identity_service import IdentityService
from opslog.kernel.models.account import Account
from opslog.kernel.models.event_log import EventType
from opslog.kernel.models.group import SystemRole
from opslog.kernel.models.log import Log
from opslog.kernel.permissions.visibility import VisibilityFilter, creator_in_group
from opslog.logging_config import get_logger

logger = get_logger(__name__)


class AdministrativeDeletionPolicy:
    """Admin-only, visibility-scoped log deletion."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.identity = IdentityService(session)
        self.visibility = VisibilityFilter(session)
        self.event_store = EventStore(session)

    async def is_admin(self, account: Account) -> bool:
        return await self.identity.has_role(account, SystemRole.ADMINISTRATOR)

    async def delete_log(self, requester: Account, log_id: int) -> bool:
        """Delete one log and its revisions. False if refused or not found."""
        if not await self.is_admin(requester):
            logger.info("Deletion refused", extra={"account_id": requester.id})
            return False

        removed = await self._delete_where(requester, Log.id == log_id)
        if not removed:
            return False

        await self.event_store.log(
            event_type=EventType.LOG_DELETED,
            entity_type="log",
            entity_id=log_id,
            account_id=requester.id,
        )
        logger.info("Log deleted", extra={"log_id": log_id, "account_id": requester.id})
        return True

    async def delete_logs_for_account(self, requester: Account, account_id: int) -> int:
        """Delete every visible log created by one account."""
        return await self._bulk_delete(
            requester,
            Log.created_by_id == account_id,
            target={"account_id": account_id},
        )

    async def delete_logs_for_group(self, requester: Account, group_id: int) -> int:
        """Delete every visible log whose creator belongs to the group."""
        return await self._bulk_delete(
            requester,
            creator_in_group(group_id),
            target={"group_id": group_id},
        )

    async def delete_logs_for_accounts(self, requester: Account, account_ids: Iterable[int]) -> int:
        """Delete every visible log created by any of the accounts."""
        account_ids = set(account_ids or ())
        if not account_ids:
            return 0
        return await self._bulk_delete(
            requester,
            Log.created_by_id.in_(sorted(account_ids)),
            target={"account_ids": account_ids},
        )

    async def _bulk_delete(
        self,
        requester: Account,
        condition: ColumnElement[bool],
        target: dict,
    ) -> int:
        if not await self.is_admin(requester):
            logger.info("Bulk deletion refused", extra={"account_id": requester.id})
            return 0

        removed = await self._delete_where(requester, condition)
        if removed:
            await self.event_store.log(
                event_type=EventType.LOGS_BULK_DELETED,
                entity_type="log",
                entity_id=None,
                account_id=requester.id,
                payload={**target, "count": removed},
            )
        logger.info(
            "Logs deleted",
            extra={"account_id": requester.id, "count": removed},
        )
        return removed

    async def _delete_where(self, requester: Account, condition: ColumnElement[bool]) -> int:
        """
        Delete the visible logs matching ``condition`` with their revision
        subtrees, in one statement. Returns the number of rows removed.

        The subtree is collected up front: SQLite leaves rows removed by the
        FK cascade out of the statement's rowcount.
        """
        clause = await self.visibility.visible_clause(requester)
        if clause is None:
            return 0

        tree = (
            select(Log.id)
            .where(condition, clause)
            .cte(name="deletion_tree", recursive=True)
        )
        tree = tree.union(select(Log.id).where(Log.parent_id == tree.c.id))
        result = await self.session.execute(select(tree.c.id))
        log_ids = sorted(result.scalars().all())
        if not log_ids:
            return 0

        await self.session.execute(
            delete(Log).where(Log.id.in_(log_ids)),
            execution_options={"synchronize_session": False},
        )
        return len(log_ids)
