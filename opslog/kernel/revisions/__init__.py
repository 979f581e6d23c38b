"""
Revision Chain - original logs and their append-only revisions.
"""

from opslog.kernel.revisions.revision_service import RevisionService

__all__ = [
    "RevisionService",
]
