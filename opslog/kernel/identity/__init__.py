"""
Identity Core - accounts, groups and membership.
"""

from opslog.kernel.identity.identity_service import IdentityService, normalize_email

__all__ = [
    "IdentityService",
    "normalize_email",
]
