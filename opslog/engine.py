"""
opslog engine facade.

The operation surface a request layer calls. Every method is one unit of
work: it opens a session, resolves IDs, runs the kernel services and commits,
or rolls back on any exception. Inputs are IDs and schemas; outputs are IDs,
booleans, counts and pydantic records, never ORM objects.

Usage:
    engine = OpsLogEngine()
    with request_scope():
        log_id = await engine.create_original(alice_id, when, [tag_id], "Pump trip", "...")
        records = await engine.list_visible_logs(bob_id, LogFilter(title_contains="pump"))
"""

from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Type, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from opslog.database import async_session_maker, transaction
from opslog.exceptions import InvariantViolationError, NotFoundError
from opslog.kernel.identity.identity_service import IdentityService
from opslog.kernel.models.account import Account
from opslog.kernel.models.group import Group, SystemRole
from opslog.kernel.models.log import Log
from opslog.kernel.models.tag import Tag
from opslog.kernel.permissions.deletion_policy import AdministrativeDeletionPolicy
from opslog.kernel.permissions.visibility import VisibilityFilter
from opslog.kernel.revisions.revision_service import RevisionService
from opslog.kernel.tags.tag_service import TagService
from opslog.logging_config import get_logger, request_scope
from opslog.schemas.identity import AccountCreate, AccountRecord, GroupRecord
from opslog.schemas.log import LogContent, LogFilter, LogRecord
from opslog.schemas.tag import TagCreate, TagRecord

logger = get_logger(__name__)

__all__ = ["OpsLogEngine", "request_scope"]

M = TypeVar("M")


async def _require(session: AsyncSession, model: Type[M], entity_id: Optional[int], entity_type: str) -> M:
    """Load a row by ID or raise NotFoundError."""
    row = await session.get(model, entity_id) if entity_id is not None else None
    if row is None:
        logger.debug("Reference not found", extra={"entity_type": entity_type, "entity_id": entity_id})
        raise NotFoundError(entity_type, entity_id)
    return row


async def _require_tags(session: AsyncSession, tag_ids: Optional[Sequence[int]]) -> List[Tag]:
    tag_ids = list(dict.fromkeys(tag_ids or ()))
    tags = await TagService(session).get_tags(tag_ids)
    found = {tag.id for tag in tags}
    missing = [tag_id for tag_id in tag_ids if tag_id not in found]
    if missing:
        raise NotFoundError("tag", missing[0])
    return tags


def _records(logs: Iterable[Log]) -> List[LogRecord]:
    return [LogRecord.model_validate(log) for log in logs]


class OpsLogEngine:
    """Access-scoped revision engine, one transaction per operation."""

    def __init__(self, session_maker: Optional[async_sessionmaker[AsyncSession]] = None):
        self._session_maker = session_maker or async_session_maker

    # ------------------------------------------------------------------
    # Revision chain
    # ------------------------------------------------------------------

    async def create_original(
        self,
        creator_id: Optional[int],
        time_of_event: datetime,
        tag_ids: Sequence[int],
        title: str,
        description: str = "",
    ) -> int:
        """Record a new original log and return its ID."""
        if creator_id is None:
            raise InvariantViolationError("A log must have a creator")

        async with transaction(self._session_maker) as session:
            creator = await _require(session, Account, creator_id, "account")
            tags = await _require_tags(session, tag_ids)
            log = await RevisionService(session).create_original(
                creator, time_of_event, tags, title, description
            )
            return log.id

    async def revise_log(self, parent_log_id: int, reviser_id: int, content: LogContent) -> int:
        """
        Record a revision of a log and return the revision's ID.

        The reviser must be able to see the parent. A hidden parent raises
        the same NotFoundError as a missing one.
        """
        async with transaction(self._session_maker) as session:
            reviser = await _require(session, Account, reviser_id, "account")
            if not await VisibilityFilter(session).is_visible(reviser, parent_log_id):
                logger.info(
                    "Revision of unseen log refused",
                    extra={"log_id": parent_log_id, "account_id": reviser_id},
                )
                raise NotFoundError("log", parent_log_id)
            parent = await _require(session, Log, parent_log_id, "log")
            tags = await _require_tags(session, content.tag_ids) if content.tag_ids is not None else None
            revision = await RevisionService(session).revise_log(parent, reviser, content, tags)
            return revision.id

    async def list_revisions(
        self,
        parent_log_id: int,
        requester_id: Optional[int] = None,
    ) -> List[LogRecord]:
        """
        Direct revisions of a log, newest first.

        With a requester, the parent must be visible to it and only visible
        revisions are returned; a missing or hidden parent gives [].
        """
        async with transaction(self._session_maker) as session:
            revisions = RevisionService(session)
            if requester_id is None:
                parent = await _require(session, Log, parent_log_id, "log")
                return _records(await revisions.list_revisions(parent))

            requester = await _require(session, Account, requester_id, "account")
            visibility = VisibilityFilter(session)
            if not await visibility.is_visible(requester, parent_log_id):
                return []
            parent = await _require(session, Log, parent_log_id, "log")
            children = await revisions.list_revisions(parent)
            return _records(await visibility.filter_visible(requester, children))

    async def revision_history(
        self,
        log_id: int,
        requester_id: Optional[int] = None,
    ) -> List[LogRecord]:
        """Every revision anywhere below a log, newest first."""
        async with transaction(self._session_maker) as session:
            revisions = RevisionService(session)
            if requester_id is None:
                log = await _require(session, Log, log_id, "log")
                return _records(await revisions.list_descendants(log))

            requester = await _require(session, Account, requester_id, "account")
            visibility = VisibilityFilter(session)
            if not await visibility.is_visible(requester, log_id):
                return []
            log = await _require(session, Log, log_id, "log")
            descendants = await revisions.list_descendants(log)
            return _records(await visibility.filter_visible(requester, descendants))

    async def get_log(self, log_id: int, requester_id: int) -> Optional[LogRecord]:
        """One log if visible to the requester, else None."""
        async with transaction(self._session_maker) as session:
            requester = await _require(session, Account, requester_id, "account")
            if not await VisibilityFilter(session).is_visible(requester, log_id):
                return None
            log = await RevisionService(session).get_log(log_id)
            return LogRecord.model_validate(log) if log else None

    # ------------------------------------------------------------------
    # Visibility
    # ------------------------------------------------------------------

    async def list_visible_logs(
        self,
        requester_id: int,
        log_filter: Optional[LogFilter] = None,
    ) -> List[LogRecord]:
        """Logs the requester may see, narrowed by an optional filter."""
        async with transaction(self._session_maker) as session:
            requester = await _require(session, Account, requester_id, "account")
            if log_filter is not None:
                await self._check_filter_refs(session, log_filter)
            logs = await VisibilityFilter(session).list_visible_logs(requester, log_filter)
            return _records(logs)

    async def list_visible_accounts(self, requester_id: int) -> List[AccountRecord]:
        async with transaction(self._session_maker) as session:
            requester = await _require(session, Account, requester_id, "account")
            accounts = await VisibilityFilter(session).list_visible_accounts(requester)
            return [AccountRecord.model_validate(a) for a in accounts]

    async def list_visible_groups(self, requester_id: int) -> List[GroupRecord]:
        async with transaction(self._session_maker) as session:
            requester = await _require(session, Account, requester_id, "account")
            groups = await VisibilityFilter(session).list_visible_groups(requester)
            return [GroupRecord.model_validate(g) for g in groups]

    async def _check_filter_refs(self, session: AsyncSession, log_filter: LogFilter) -> None:
        """Referenced groups, accounts and tags must exist."""
        if log_filter.group_id is not None:
            await _require(session, Group, log_filter.group_id, "group")
        account_ids = list(log_filter.account_ids or ())
        if log_filter.account_id is not None:
            account_ids.append(log_filter.account_id)
        for account_id in account_ids:
            await _require(session, Account, account_id, "account")
        tag_ids = list(log_filter.tag_ids or ())
        if log_filter.tag_id is not None:
            tag_ids.append(log_filter.tag_id)
        await _require_tags(session, tag_ids)

    # ------------------------------------------------------------------
    # Deletion (admin only; refusals are indistinguishable from misses)
    # ------------------------------------------------------------------

    async def delete_log(self, requester_id: int, log_id: int) -> bool:
        async with transaction(self._session_maker) as session:
            requester = await session.get(Account, requester_id)
            if requester is None:
                return False
            return await AdministrativeDeletionPolicy(session).delete_log(requester, log_id)

    async def delete_logs_for_account(self, requester_id: int, account_id: int) -> int:
        async with transaction(self._session_maker) as session:
            requester = await session.get(Account, requester_id)
            if requester is None:
                return 0
            return await AdministrativeDeletionPolicy(session).delete_logs_for_account(
                requester, account_id
            )

    async def delete_logs_for_group(self, requester_id: int, group_id: int) -> int:
        async with transaction(self._session_maker) as session:
            requester = await session.get(Account, requester_id)
            if requester is None:
                return 0
            return await AdministrativeDeletionPolicy(session).delete_logs_for_group(
                requester, group_id
            )

    async def delete_logs_for_accounts(self, requester_id: int, account_ids: Iterable[int]) -> int:
        async with transaction(self._session_maker) as session:
            requester = await session.get(Account, requester_id)
            if requester is None:
                return 0
            return await AdministrativeDeletionPolicy(session).delete_logs_for_accounts(
                requester, account_ids
            )

    # ------------------------------------------------------------------
    # Identity & groups
    # ------------------------------------------------------------------

    async def register_account(self, data: AccountCreate) -> AccountRecord:
        async with transaction(self._session_maker) as session:
            account = await IdentityService(session).register_account(
                first_name=data.first_name,
                last_name=data.last_name,
                email=data.email,
                username=data.username,
                password_hash=data.password_hash,
            )
            return AccountRecord.model_validate(account)

    async def find_accounts_by_username_prefix(self, prefix: str, group_name: str) -> List[AccountRecord]:
        async with transaction(self._session_maker) as session:
            accounts = await IdentityService(session).find_by_username_prefix(prefix, group_name)
            return [AccountRecord.model_validate(a) for a in accounts]

    async def create_group(
        self,
        name: str,
        description: Optional[str] = None,
        created_by_id: Optional[int] = None,
    ) -> GroupRecord:
        async with transaction(self._session_maker) as session:
            creator = (
                await _require(session, Account, created_by_id, "account")
                if created_by_id is not None else None
            )
            group = await IdentityService(session).create_group(name, description, creator)
            return GroupRecord.model_validate(group)

    async def ensure_system_group(self, role: SystemRole) -> GroupRecord:
        async with transaction(self._session_maker) as session:
            group = await IdentityService(session).ensure_system_group(role)
            return GroupRecord.model_validate(group)

    async def add_account_to_group(
        self,
        account_id: int,
        group_id: int,
        actor_id: Optional[int] = None,
    ) -> bool:
        """False when the group is system-defined."""
        async with transaction(self._session_maker) as session:
            account, group, actor = await self._membership_args(session, account_id, group_id, actor_id)
            return await IdentityService(session).add_account_to_group(account, group, actor)

    async def remove_account_from_group(
        self,
        account_id: int,
        group_id: int,
        actor_id: Optional[int] = None,
    ) -> bool:
        """False when the group is system-defined or the account was not a member."""
        async with transaction(self._session_maker) as session:
            account, group, actor = await self._membership_args(session, account_id, group_id, actor_id)
            return await IdentityService(session).remove_account_from_group(account, group, actor)

    async def grant_system_role(
        self,
        account_id: int,
        role: SystemRole,
        granted_by_id: Optional[int] = None,
    ) -> bool:
        async with transaction(self._session_maker) as session:
            account = await _require(session, Account, account_id, "account")
            granter = await session.get(Account, granted_by_id) if granted_by_id is not None else None
            if granted_by_id is not None and granter is None:
                return False
            return await IdentityService(session).grant_system_role(account, role, granter)

    async def revoke_system_role(self, account_id: int, role: SystemRole, revoked_by_id: int) -> bool:
        async with transaction(self._session_maker) as session:
            account = await _require(session, Account, account_id, "account")
            revoker = await session.get(Account, revoked_by_id)
            if revoker is None:
                return False
            return await IdentityService(session).revoke_system_role(account, role, revoker)

    async def _membership_args(
        self,
        session: AsyncSession,
        account_id: int,
        group_id: int,
        actor_id: Optional[int],
    ):
        account = await _require(session, Account, account_id, "account")
        group = await _require(session, Group, group_id, "group")
        actor = await _require(session, Account, actor_id, "account") if actor_id is not None else None
        return account, group, actor

    # ------------------------------------------------------------------
    # Tags
    # ------------------------------------------------------------------

    async def create_tag(self, data: TagCreate, created_by_id: Optional[int] = None) -> TagRecord:
        async with transaction(self._session_maker) as session:
            creator = (
                await _require(session, Account, created_by_id, "account")
                if created_by_id is not None else None
            )
            tag = await TagService(session).create_tag(
                data.title, data.description, data.color, created_by=creator
            )
            return TagRecord.model_validate(tag)

    async def delete_tag(self, tag_id: int, deleted_by_id: Optional[int] = None) -> bool:
        async with transaction(self._session_maker) as session:
            deleter = await session.get(Account, deleted_by_id) if deleted_by_id is not None else None
            return await TagService(session).delete_tag(tag_id, deleted_by=deleter)
