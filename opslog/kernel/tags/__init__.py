"""
Tag Core - labels attachable to logs.
"""

from opslog.kernel.tags.tag_service import TagService

__all__ = [
    "TagService",
]
