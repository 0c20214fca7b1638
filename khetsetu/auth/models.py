"""Pydantic models for the auth backend: persisted users and request bodies."""

from __future__ import annotations

from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, Field

from khetsetu.api.contracts import User, UserPreferences, UserProfile
from khetsetu.api.contracts.models import Coordinates, UserRole, WireModel
from khetsetu.core import validators


class AuthUser(BaseModel):
    """Persisted user record, including secrets never sent to clients."""

    user_id: str
    email: str
    password_hash: str
    name: str
    phone: str | None = None
    role: UserRole = "farmer"
    profile: dict[str, Any] = Field(default_factory=dict)
    preferences: dict[str, Any] = Field(default_factory=dict)
    is_email_verified: bool = False
    is_phone_verified: bool = False
    is_active: bool = True
    last_login: str | None = None
    refresh_tokens: list[str] = Field(default_factory=list)
    reset_token_hash: str = ""
    reset_token_expires_at: int = 0
    created_at: str
    updated_at: str

    def to_public(self) -> User:
        """Return the client-facing user record."""
        return User(
            id=self.user_id,
            email=self.email,
            name=self.name,
            phone=self.phone,
            role=self.role,
            profile=UserProfile.model_validate(self.profile),
            preferences=UserPreferences.model_validate(self.preferences),
            is_email_verified=self.is_email_verified,
            is_phone_verified=self.is_phone_verified,
            is_active=self.is_active,
            last_login=self.last_login,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


def _check_email(value: str) -> str:
    if not validators.is_valid_email(value):
        raise ValueError("Please provide a valid email address")
    return value.strip().lower()


def _check_phone(value: str | None) -> str | None:
    if value is not None and not validators.is_valid_phone(value):
        raise ValueError("Please provide a valid phone number")
    return value


def _check_name(value: str | None) -> str | None:
    if value is None:
        return None
    message = validators.name_error(value)
    if message:
        raise ValueError(message)
    return value.strip()


def _check_password(value: str) -> str:
    message = validators.password_policy_error(value)
    if message:
        raise ValueError(message)
    return value


def _check_new_password(value: str) -> str:
    message = validators.password_policy_error(value, label="New password")
    if message:
        raise ValueError(message)
    return value


Email = Annotated[str, AfterValidator(_check_email)]
Phone = Annotated[str | None, AfterValidator(_check_phone)]
Name = Annotated[str | None, AfterValidator(_check_name)]
NewPassword = Annotated[str, AfterValidator(_check_new_password)]


class FarmLocationInput(WireModel):
    state: str = Field(min_length=1)
    district: str = Field(min_length=1)
    village: str | None = None
    coordinates: Coordinates | None = None


class ProfileInput(UserProfile):
    """Profile as submitted by a client; stricter than the stored shape."""

    farm_size: float | None = Field(default=None, ge=0.1)
    location: FarmLocationInput | None = None
    farming_experience: int | None = Field(default=None, ge=0)


class RegisterRequest(WireModel):
    email: Email
    password: Annotated[str, AfterValidator(_check_password)]
    name: Annotated[str, AfterValidator(_check_name)]
    phone: Phone = None
    role: UserRole | None = None
    profile: ProfileInput | None = None


class LoginRequest(WireModel):
    email: Email
    password: str = Field(min_length=1)


class RefreshTokenRequest(WireModel):
    refresh_token: str = ""


class LogoutRequest(WireModel):
    refresh_token: str | None = None


class UpdateProfileRequest(WireModel):
    """Editable profile fields; identity and security fields are not accepted."""

    name: Name = None
    phone: Phone = None
    profile: ProfileInput | None = None
    preferences: UserPreferences | None = None


class ChangePasswordRequest(WireModel):
    current_password: str = Field(min_length=1)
    new_password: NewPassword


class ForgotPasswordRequest(WireModel):
    email: Email


class ResetPasswordRequest(WireModel):
    token: str = Field(min_length=1)
    new_password: NewPassword
