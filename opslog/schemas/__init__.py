"""
Pydantic schemas for the engine's inputs and returned records.
"""

from opslog.schemas.common import UtcDatetime
from opslog.schemas.identity import AccountCreate, AccountRecord, GroupRecord
from opslog.schemas.log import LogContent, LogFilter, LogRecord
from opslog.schemas.tag import TagCreate, TagRecord

__all__ = [
    "UtcDatetime",
    "AccountCreate",
    "AccountRecord",
    "GroupRecord",
    "LogContent",
    "LogFilter",
    "LogRecord",
    "TagCreate",
    "TagRecord",
]
