"""
Identity service: accounts, groups and group membership.
"""

from typing import List, Optional, Set, Union

from sqlalchemy import delete, func, insert, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from opslog.exceptions import InvariantViolationError, UniquenessConflictError
from opslog.kernel.events.event_store import EventStore
from opslog.kernel.models.account import Account, account_groups
from opslog.kernel.models.event_log import EventType
from opslog.kernel.models.group import Group, SystemGroup, SystemRole, UserGroup
from opslog.kernel.text_match import startswith
from opslog.logging_config import get_logger

logger = get_logger(__name__)

_SYSTEM_ROLE_NAMES = {role.value.lower() for role in SystemRole}


def normalize_email(email: str) -> str:
    return email.lower().strip()


class IdentityService:
    """
    Service for account and group operations.

    Membership is stored as (account_id, group_id) rows; nothing here keeps
    group collections on the account objects.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.event_store = EventStore(session)

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    async def register_account(
        self,
        first_name: str,
        last_name: str,
        email: str,
        username: str,
        password_hash: str,
    ) -> Account:
        """
        Register a new account.

        Raises:
            UniquenessConflictError: If email or username already exists
        """
        email = normalize_email(email)
        username = username.strip()

        if await self.find_by_email(email):
            raise UniquenessConflictError("Email already registered")
        if await self.find_by_username(username):
            raise UniquenessConflictError("Username already taken")

        account = Account(
            first_name=first_name.strip(),
            last_name=last_name.strip(),
            email=email,
            username=username,
            password_hash=password_hash,
        )
        try:
            async with self.session.begin_nested():
                self.session.add(account)
                await self.session.flush()
        except IntegrityError as e:
            # Lost a race with a concurrent registration
            raise UniquenessConflictError("Email or username already taken") from e

        await self.event_store.log(
            event_type=EventType.ACCOUNT_REGISTERED,
            entity_type="account",
            entity_id=account.id,
            account_id=account.id,
            payload={"username": account.username},
        )
        logger.info("Account registered", extra={"account_id": account.id})
        return account

    async def get_account(self, account_id: int) -> Optional[Account]:
        """Get an account by ID."""
        return await self.session.get(Account, account_id)

    async def find_by_email(self, email: str) -> Optional[Account]:
        """Get an account by email (used for login)."""
        query = select(Account).where(Account.email == normalize_email(email))
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def find_by_username(self, username: str) -> Optional[Account]:
        """Get an account by exact username."""
        query = select(Account).where(Account.username == username)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def find_by_full_name(self, first_name: str, last_name: str) -> List[Account]:
        """Accounts with this exact first and last name."""
        query = (
            select(Account)
            .where(Account.first_name == first_name, Account.last_name == last_name)
            .order_by(Account.id)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def find_by_group(self, group_name: str) -> List[Account]:
        """All members of the named group (name matched case-insensitively)."""
        query = (
            select(Account)
            .join(account_groups, account_groups.c.account_id == Account.id)
            .join(Group, Group.id == account_groups.c.group_id)
            .where(func.lower(Group.name) == group_name.lower())
            .order_by(Account.id)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def find_by_username_prefix(self, prefix: str, group_name: str) -> List[Account]:
        """Members of the named group whose username starts with prefix."""
        query = (
            select(Account)
            .join(account_groups, account_groups.c.account_id == Account.id)
            .join(Group, Group.id == account_groups.c.group_id)
            .where(
                startswith(Account.username, prefix),
                func.lower(Group.name) == group_name.lower(),
            )
            .order_by(Account.username)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Groups
    # ------------------------------------------------------------------

    async def create_group(
        self,
        name: str,
        description: Optional[str] = None,
        created_by: Optional[Account] = None,
    ) -> UserGroup:
        """
        Create a user-defined group.

        Raises:
            InvariantViolationError: If the name is blank
            UniquenessConflictError: If the name is taken or reserved by a system role
        """
        name = name.strip()
        if not name:
            raise InvariantViolationError("Group name must not be blank")
        if name.lower() in _SYSTEM_ROLE_NAMES:
            raise UniquenessConflictError(f"Group name {name!r} is reserved")
        if await self.group_exists(name):
            raise UniquenessConflictError(f"Group {name!r} already exists")

        group = UserGroup(name=name, description=description)
        self.session.add(group)
        await self.session.flush()

        await self.event_store.log(
            event_type=EventType.GROUP_CREATED,
            entity_type="group",
            entity_id=group.id,
            account_id=created_by.id if created_by else None,
            payload={"name": group.name},
        )
        logger.info("Group created", extra={"group_id": group.id})
        return group

    async def ensure_system_group(self, role: SystemRole) -> SystemGroup:
        """Get the group for a system role, creating it on first use."""
        existing = await self.find_system_group(role)
        if existing:
            return existing

        group = SystemGroup(role)
        try:
            async with self.session.begin_nested():
                self.session.add(group)
                await self.session.flush()
        except IntegrityError:
            # Another transaction created it first; one group per role
            existing = await self.find_system_group(role)
            if existing is None:
                raise
            return existing

        await self.event_store.log(
            event_type=EventType.GROUP_CREATED,
            entity_type="group",
            entity_id=group.id,
            payload={"system_role": role},
        )
        logger.info("System group created", extra={"group_id": group.id, "role": role.value})
        return group

    async def get_group(self, group_id: int) -> Optional[Group]:
        """Get a group by ID."""
        return await self.session.get(Group, group_id)

    async def find_group_by_name(self, name: str) -> Optional[Group]:
        """Find a group by its name (case-insensitive)."""
        query = (
            select(Group)
            .where(func.lower(Group.name) == name.strip().lower())
            .order_by(Group.id)
            .limit(1)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def find_system_group(self, role: SystemRole) -> Optional[SystemGroup]:
        """Find the group bound to a system role."""
        query = select(SystemGroup).where(SystemGroup.system_role == role.value)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def list_groups(self) -> List[Group]:
        result = await self.session.execute(select(Group).order_by(Group.id))
        return list(result.scalars().all())

    async def list_user_groups(self) -> List[UserGroup]:
        result = await self.session.execute(select(UserGroup).order_by(UserGroup.id))
        return list(result.scalars().all())

    async def group_exists(self, name_or_role: Union[str, SystemRole]) -> bool:
        """
        A SystemRole matches only the reserved role column; a string
        matches only user-defined names, case-insensitively.
        """
        if isinstance(name_or_role, SystemRole):
            condition = Group.system_role == name_or_role.value
        else:
            condition = (Group.system_role.is_(None)) & (
                func.lower(Group.name) == name_or_role.strip().lower()
            )
        result = await self.session.execute(select(Group.id).where(condition).limit(1))
        return result.first() is not None

    async def delete_group(self, group: Group, deleted_by: Optional[Account] = None) -> bool:
        """Delete a user-defined group. System groups are never deleted."""
        if group.is_system:
            return False

        result = await self.session.execute(delete(Group).where(Group.id == group.id))
        if not result.rowcount:
            return False

        await self.event_store.log(
            event_type=EventType.GROUP_DELETED,
            entity_type="group",
            entity_id=group.id,
            account_id=deleted_by.id if deleted_by else None,
            payload={"name": group.name},
        )
        logger.info("Group deleted", extra={"group_id": group.id})
        return True

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    async def get_group_ids(self, account_id: int) -> Set[int]:
        """IDs of every group the account belongs to."""
        query = select(account_groups.c.group_id).where(account_groups.c.account_id == account_id)
        result = await self.session.execute(query)
        return {row[0] for row in result.all()}

    async def get_groups(self, account_id: int) -> List[Group]:
        query = (
            select(Group)
            .join(account_groups, account_groups.c.group_id == Group.id)
            .where(account_groups.c.account_id == account_id)
            .order_by(Group.id)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def is_member(self, account: Account, group: Group) -> bool:
        """Check if the account is a member of the group."""
        query = select(account_groups.c.account_id).where(
            account_groups.c.account_id == account.id,
            account_groups.c.group_id == group.id,
        )
        result = await self.session.execute(query)
        return result.first() is not None

    async def has_role(self, account: Account, role: SystemRole) -> bool:
        """Check if the account belongs to the group bound to a system role."""
        query = (
            select(account_groups.c.account_id)
            .join(Group, Group.id == account_groups.c.group_id)
            .where(
                account_groups.c.account_id == account.id,
                Group.system_role == role.value,
            )
        )
        result = await self.session.execute(query)
        return result.first() is not None

    async def add_account_to_group(
        self,
        account: Account,
        group: Group,
        actor: Optional[Account] = None,
    ) -> bool:
        """
        Add an account to a user-defined group if not already a member.

        Returns False for system groups: those are granted through
        grant_system_role only. Repeating the call is harmless.
        """
        if group.is_system:
            return False
        await self._insert_membership(account, group, EventType.GROUP_MEMBER_ADDED, actor)
        return True

    async def remove_account_from_group(
        self,
        account: Account,
        group: Group,
        actor: Optional[Account] = None,
    ) -> bool:
        """
        Remove an account from a user-defined group.

        System-defined groups cannot be left this way. Returns True only if a
        membership was actually removed.
        """
        if group.is_system:
            return False
        return await self._delete_membership(account, group, EventType.GROUP_MEMBER_REMOVED, actor)

    async def grant_system_role(
        self,
        account: Account,
        role: SystemRole,
        granted_by: Optional[Account] = None,
    ) -> bool:
        """
        Add an account to a system group.

        The granter must hold ADMINISTRATOR. With no granter the grant only
        succeeds while the role has no members, which bootstraps the first
        administrator.
        """
        group = await self.ensure_system_group(role)

        if granted_by is None:
            if await self._has_members(group):
                logger.info("Bootstrap grant refused", extra={"role": role.value})
                return False
        elif not await self.has_role(granted_by, SystemRole.ADMINISTRATOR):
            logger.info("System role grant denied", extra={"account_id": granted_by.id})
            return False

        await self._insert_membership(account, group, EventType.SYSTEM_ROLE_GRANTED, granted_by)
        return True

    async def revoke_system_role(
        self,
        account: Account,
        role: SystemRole,
        revoked_by: Account,
    ) -> bool:
        """Remove an account from a system group. Requires an ADMINISTRATOR."""
        if not await self.has_role(revoked_by, SystemRole.ADMINISTRATOR):
            logger.info("System role revoke denied", extra={"account_id": revoked_by.id})
            return False

        group = await self.find_system_group(role)
        if group is None:
            return False
        return await self._delete_membership(account, group, EventType.SYSTEM_ROLE_REVOKED, revoked_by)

    async def _has_members(self, group: Group) -> bool:
        query = select(account_groups.c.account_id).where(account_groups.c.group_id == group.id).limit(1)
        result = await self.session.execute(query)
        return result.first() is not None

    async def _insert_membership(
        self,
        account: Account,
        group: Group,
        event_type: EventType,
        actor: Optional[Account],
    ) -> None:
        if await self.is_member(account, group):
            return
        try:
            async with self.session.begin_nested():
                await self.session.execute(
                    insert(account_groups).values(account_id=account.id, group_id=group.id)
                )
        except IntegrityError:
            # Concurrent insert of the same pair; membership already holds
            return

        await self.event_store.log(
            event_type=event_type,
            entity_type="group",
            entity_id=group.id,
            account_id=actor.id if actor else None,
            payload={"member_id": account.id},
        )
        logger.info(
            "Group membership added",
            extra={"group_id": group.id, "member_id": account.id},
        )

    async def _delete_membership(
        self,
        account: Account,
        group: Group,
        event_type: EventType,
        actor: Optional[Account],
    ) -> bool:
        result = await self.session.execute(
            delete(account_groups).where(
                account_groups.c.account_id == account.id,
                account_groups.c.group_id == group.id,
            )
        )
        if not result.rowcount:
            return False

        await self.event_store.log(
            event_type=event_type,
            entity_type="group",
            entity_id=group.id,
            account_id=actor.id if actor else None,
            payload={"member_id": account.id},
        )
        logger.info(
            "Group membership removed",
            extra={"group_id": group.id, "member_id": account.id},
        )
        return True
