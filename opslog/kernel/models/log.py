"""
Log model - the shift-log entry and its revision links.

A log with no parent is an original. Every edit inserts a new row whose
parent_id points at the log being edited, so history is append-only.
Children are found through the indexed parent_id column; the model holds
no parent/children object references.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from opslog.kernel.models.base import Base, CreatedAtMixin
from opslog.kernel.models.tag import Tag


# Composite key: a tag appears at most once per log
log_tags = Table(
    "log_tags",
    Base.metadata,
    Column(
        "log_id",
        Integer,
        ForeignKey("logs.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "tag_id",
        Integer,
        ForeignKey("tags.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Index("ix_log_tags_tag_id", "tag_id"),
)


class Log(Base, CreatedAtMixin):
    """A recorded event, original or revision."""

    __tablename__ = "logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    created_by_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("accounts.id"),
        nullable=False,
        index=True,
    )
    time_of_event: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)

    # Revision links. Deleting a log removes its whole subtree in the database.
    parent_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("logs.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    revised_by_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("accounts.id"),
        nullable=True,
    )
    revised_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    tags: Mapped[List[Tag]] = relationship(
        Tag,
        secondary=log_tags,
        lazy="selectin",
        order_by=Tag.id,
    )

    __table_args__ = (
        CheckConstraint(
            "parent_id IS NULL OR (revised_by_id IS NOT NULL AND revised_at IS NOT NULL)",
            name="ck_logs_revision_fields",
        ),
        Index("ix_logs_parent_revised", "parent_id", "revised_at"),
    )

    @property
    def is_original(self) -> bool:
        return self.parent_id is None

    @property
    def tag_ids(self) -> List[int]:
        return [tag.id for tag in self.tags]

    def __repr__(self) -> str:
        kind = "original" if self.is_original else f"revision of {self.parent_id}"
        return f"<Log {self.id} {kind}>"
