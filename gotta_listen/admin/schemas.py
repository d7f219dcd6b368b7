"""Pydantic schemas for user administration."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class UserUpdateAdmin(BaseModel):
    """Schema for admin updating a user."""

    display_name: str | None = Field(None, min_length=1, max_length=100)
    username: str | None = Field(None, max_length=50)
    email: str | None = Field(None, max_length=255)
    bio: str | None = Field(None, max_length=500)
    country: str | None = Field(None, max_length=100)
    state: str | None = Field(None, max_length=100)
    city: str | None = Field(None, max_length=100)
    is_admin: bool | None = None
    new_password: str | None = Field(None, max_length=128)


class RoleUpdate(BaseModel):
    """Schema for granting or revoking admin rights."""

    is_admin: bool


class BanRequest(BaseModel):
    """Schema for banning a user.

    Attributes:
        duration_days: Length of the ban; 0 bans permanently.
        ip_ban: Also record the user's last login IP as banned.
    """

    duration_days: int = Field(0, ge=0, le=36500)
    ip_ban: bool = False


class UserAdminResponse(BaseModel):
    """Schema for a user row in the admin dashboard."""

    id: str
    email: str
    username: str
    display_name: str
    bio: str | None = None
    country: str | None = None
    state: str | None = None
    city: str | None = None
    is_admin: bool
    is_banned: bool
    banned_until: datetime | None = None
    banned_ip: str | None = None
    last_login_ip: str | None = None
    last_login_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    active_sessions: int = 0

    model_config = ConfigDict(from_attributes=True)
