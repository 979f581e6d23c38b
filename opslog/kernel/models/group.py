"""
Group models.

A group is either user-defined (free-text name and description) or bound
to one built-in system role. Both live in one table, told apart by the
``kind`` discriminator.
"""

from enum import Enum
from typing import Optional

from sqlalchemy import Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, validates

from opslog.exceptions import InvariantViolationError
from opslog.kernel.models.base import Base, CreatedAtMixin


class SystemRole(str, Enum):
    """Built-in roles. At most one group exists per role."""
    ADMINISTRATOR = "ADMINISTRATOR"


class GroupKind(str, Enum):
    """Discriminator values for the group table."""
    USER_DEFINED = "user_defined"
    SYSTEM_DEFINED = "system_defined"


class Group(Base, CreatedAtMixin):
    """Common columns of every group. Instantiate a subclass."""

    __tablename__ = "groups"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # NULL for user-defined groups; NULLs never collide on a unique column
    system_role: Mapped[Optional[SystemRole]] = mapped_column(
        String(50),
        unique=True,
        nullable=True,
    )

    __mapper_args__ = {
        "polymorphic_on": "kind",
        "polymorphic_abstract": True,
    }

    @property
    def is_system(self) -> bool:
        return self.system_role is not None

    @property
    def role(self) -> Optional[SystemRole]:
        """System role as an enum member (SQLite returns plain strings)."""
        if self.system_role is None:
            return None
        return SystemRole(self.system_role)

    @validates("name")
    def _validate_name(self, key: str, value: str) -> str:
        if self.system_role is not None and value != SystemRole(self.system_role).value:
            raise InvariantViolationError(
                f"System group {self.system_role} cannot be renamed"
            )
        return value

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.id} {self.name!r}>"


class UserGroup(Group):
    """Group created and named by users."""

    __mapper_args__ = {"polymorphic_identity": GroupKind.USER_DEFINED.value}

    def __init__(self, name: str, description: Optional[str] = None):
        super().__init__()
        self.name = name
        self.description = description


class SystemGroup(Group):
    """Group bound to a built-in role; its name is the role value."""

    __mapper_args__ = {"polymorphic_identity": GroupKind.SYSTEM_DEFINED.value}

    def __init__(self, role: SystemRole):
        super().__init__()
        # Role first: the name validator checks against it
        self.system_role = role.value
        self.name = role.value
        self.description = f"System-defined group: {role.value}"
