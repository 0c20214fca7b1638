"""Public API wire contracts."""

from khetsetu.api.contracts.models import (
    ApiEnvelope,
    ApiErrorResponse,
    AuthPayload,
    FieldErrorItem,
    LoginCredentials,
    PasswordChange,
    RegisterData,
    TokenPayload,
    User,
    UserPayload,
    UserPreferences,
    UserProfile,
)

__all__ = [
    "ApiEnvelope",
    "ApiErrorResponse",
    "AuthPayload",
    "FieldErrorItem",
    "LoginCredentials",
    "PasswordChange",
    "RegisterData",
    "TokenPayload",
    "User",
    "UserPayload",
    "UserPreferences",
    "UserProfile",
]
