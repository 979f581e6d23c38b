"""
Common schema types used across the engine surface.
"""

from datetime import datetime
from typing import Annotated, List, Optional

from pydantic import AfterValidator

from opslog.kernel.models.base import as_utc

# Naive datetimes are read as UTC, aware ones converted to UTC
UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]


def dedupe_ids(ids: Optional[List[int]]) -> Optional[List[int]]:
    """Drop repeated IDs, keeping first-seen order."""
    if ids is None:
        return None
    return list(dict.fromkeys(ids))
