"""
Account model and the account/group membership table.
"""

from sqlalchemy import Column, ForeignKey, Index, Integer, String, Table
from sqlalchemy.orm import Mapped, mapped_column

from opslog.kernel.models.base import Base, CreatedAtMixin


# Membership is a set of (account_id, group_id) pairs. The primary key
# covers account -> groups lookups, the extra index covers group -> accounts.
account_groups = Table(
    "account_groups",
    Base.metadata,
    Column(
        "account_id",
        Integer,
        ForeignKey("accounts.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "group_id",
        Integer,
        ForeignKey("groups.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Index("ix_account_groups_group_id", "group_id"),
)


class Account(Base, CreatedAtMixin):
    """Operator account. Never deleted: log history references it."""

    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    first_name: Mapped[str] = mapped_column(String(255), nullable=False)
    last_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        index=True,
        nullable=False,
    )
    username: Mapped[str] = mapped_column(
        String(150),
        unique=True,
        index=True,
        nullable=False,
    )
    # Opaque to the engine; hashing happens in the request layer
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    def __repr__(self) -> str:
        return f"<Account {self.username}>"
