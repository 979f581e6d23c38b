"""
Log schemas: revision content, list filters and returned records.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from opslog.schemas.common import UtcDatetime, dedupe_ids


class LogContent(BaseModel):
    """
    Content of a new revision.

    Unset fields carry forward from the log being revised.
    """

    time_of_event: Optional[UtcDatetime] = None
    title: Optional[str] = Field(None, min_length=1, max_length=500)
    description: Optional[str] = None
    tag_ids: Optional[List[int]] = None

    @field_validator("tag_ids")
    @classmethod
    def unique_tags(cls, v: Optional[List[int]]) -> Optional[List[int]]:
        return dedupe_ids(v)


class LogFilter(BaseModel):
    """
    Optional restrictions for listing visible logs.

    Every field that is set must match. Exact matches are case-sensitive;
    the *_contains fields ignore case and match anywhere in the text.
    """

    time_from: Optional[UtcDatetime] = None
    time_to: Optional[UtcDatetime] = None
    at_time: Optional[UtcDatetime] = None

    group_id: Optional[int] = None
    account_id: Optional[int] = None
    account_ids: Optional[List[int]] = None
    tag_id: Optional[int] = None
    tag_ids: Optional[List[int]] = None

    title: Optional[str] = None
    title_contains: Optional[str] = None
    description: Optional[str] = None
    description_contains: Optional[str] = None

    originals_only: bool = False

    @field_validator("account_ids", "tag_ids")
    @classmethod
    def unique_ids(cls, v: Optional[List[int]]) -> Optional[List[int]]:
        return dedupe_ids(v)

    @model_validator(mode="after")
    def check_range(self) -> "LogFilter":
        if self.time_from and self.time_to and self.time_from > self.time_to:
            raise ValueError("time_from must not be after time_to")
        return self

    @property
    def selects_nothing(self) -> bool:
        """An explicitly empty account or tag set matches no log."""
        return self.account_ids == [] or self.tag_ids == []


class LogRecord(BaseModel):
    """A log row as returned to callers."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    created_by_id: int
    created_at: UtcDatetime
    time_of_event: UtcDatetime
    title: str
    description: str
    tag_ids: List[int] = Field(default_factory=list)

    parent_id: Optional[int] = None
    revised_by_id: Optional[int] = None
    revised_at: Optional[UtcDatetime] = None

    @property
    def is_original(self) -> bool:
        return self.parent_id is None
