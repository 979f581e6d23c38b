"""
LIKE helpers shared by the search queries.

Wildcards in user input match literally (``autoescape``).
"""

from sqlalchemy import and_, func
from sqlalchemy.sql.elements import ColumnElement


def contains_ci(column, needle: str) -> ColumnElement[bool]:
    """Case-insensitive substring match, wildcard on both sides."""
    return column.icontains(needle, autoescape=True)


def startswith(column, prefix: str) -> ColumnElement[bool]:
    """
    Case-sensitive prefix match on every backend.

    LIKE narrows the rows through the index; the substr comparison keeps
    SQLite from matching "AL" against "alice".
    """
    return and_(
        column.startswith(prefix, autoescape=True),
        func.substr(column, 1, len(prefix)) == prefix,
    )
