"""Pydantic schemas for authentication."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator


class UserRegister(BaseModel):
    """Schema for user registration.

    Field rules (presence, lengths, username characters) are checked by the
    auth service so that failures come back as field-level messages.

    Attributes:
        email: User's email address.
        username: Public handle.
        display_name: Name shown on profiles.
        password: User's password.
        country: Optional country.
        state: Optional state or region.
        city: Optional city.
    """

    email: str = Field("", max_length=255)
    username: str = Field("", max_length=50)
    display_name: str = Field("", max_length=100)
    password: str = Field("", max_length=128)
    country: str | None = Field(None, max_length=100)
    state: str | None = Field(None, max_length=100)
    city: str | None = Field(None, max_length=100)


class UserLogin(BaseModel):
    """Schema for user login.

    Attributes:
        email: User's email address.
        password: User's password.
        remember_me: Keep the session for a year instead of a week.
    """

    email: str = ""
    password: str = ""
    remember_me: bool = False


class AuthErrorResponse(BaseModel):
    """Error payload returned by auth endpoints.

    Attributes:
        error: Human readable message.
        field: Form field the message refers to, if any.
    """

    error: str
    field: str | None = None


class UserResponse(BaseModel):
    """Schema for user response."""

    id: str
    email: str
    username: str
    display_name: str
    is_admin: bool
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class AuthSuccessResponse(BaseModel):
    """Response for a successful registration or login.

    Attributes:
        message: Status message.
        redirect_to: Page the client should navigate to.
        user: The signed-in user.
        expires_at: Expiry of the new session.
    """

    message: str
    redirect_to: str
    user: UserResponse
    expires_at: datetime


class RefreshResponse(BaseModel):
    """Response for the session refresh endpoint."""

    refreshed: bool
    expires_at: datetime | None = None


class PasswordChange(BaseModel):
    """Schema for changing password.

    Attributes:
        current_password: Current password.
        new_password: New password.
        new_password_confirm: New password confirmation.
    """

    current_password: str
    new_password: str = Field(..., max_length=128)
    new_password_confirm: str

    @field_validator("new_password_confirm")
    @classmethod
    def passwords_match(cls, v: str, info) -> str:
        """Validate that passwords match."""
        if "new_password" in info.data and v != info.data["new_password"]:
            raise ValueError("Passwords do not match")
        return v
