"""
Account and group schemas.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from opslog.kernel.models.group import SystemRole
from opslog.schemas.common import UtcDatetime


class AccountCreate(BaseModel):
    """Account registration input. The password arrives already hashed."""

    first_name: str = Field(..., min_length=1, max_length=255)
    last_name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    username: str = Field(..., min_length=1, max_length=150)
    password_hash: str = Field(..., min_length=1, max_length=255)


class AccountRecord(BaseModel):
    """Account as returned to callers; never includes the password hash."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    first_name: str
    last_name: str
    email: str
    username: str
    created_at: UtcDatetime


class GroupRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = None
    system_role: Optional[SystemRole] = None
    is_system: bool = False
