"""Authentication service: accounts, sessions, token rotation, password recovery."""

from __future__ import annotations

import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any

import jwt

from khetsetu.api.contracts import UserPreferences, UserProfile
from khetsetu.api.errors import ApiError, ApiErrorCode
from khetsetu.auth.models import AuthUser, RegisterRequest, UpdateProfileRequest
from khetsetu.auth.repository import AuthRepository
from khetsetu.core.config import AuthConfig
from khetsetu.core.security import (
    decode_token,
    hash_password,
    hash_token,
    issue_token,
    new_reset_token,
    verify_password,
)

LOGGER = logging.getLogger(__name__)

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _unauthorized(error_code: ApiErrorCode, message: str) -> ApiError:
    return ApiError(status_code=401, error_code=error_code, message=message)


class AuthService:
    """Auth domain service backing the ``/auth`` routes."""

    def __init__(self, repo: AuthRepository, config: AuthConfig) -> None:
        self._repo = repo
        self._config = config

    def register(self, req: RegisterRequest) -> tuple[AuthUser, str, str]:
        """Create an account and open its first session."""
        if self._repo.get_user_by_email(req.email) is not None or (
            req.phone and self._repo.get_user_by_phone(req.phone) is not None
        ):
            raise ApiError(
                status_code=409,
                error_code=ApiErrorCode.USER_EXISTS,
                message="User already exists with this email or phone number",
            )

        now = _now_iso()
        profile = req.profile or UserProfile()
        user = AuthUser(
            user_id=uuid.uuid4().hex,
            email=req.email,
            password_hash=hash_password(req.password),
            name=req.name,
            phone=req.phone,
            role=req.role or "farmer",
            profile=profile.model_dump(mode="json"),
            preferences=UserPreferences().model_dump(mode="json"),
            created_at=now,
            updated_at=now,
        )
        access_token, refresh_token = self._issue_pair(user)
        self._repo.save_user(user)
        LOGGER.info("New user registered", extra={"user_id": user.user_id})
        return user, access_token, refresh_token

    def login(self, email: str, password: str) -> tuple[AuthUser, str, str]:
        user = self._repo.get_user_by_email(email)
        if user is None:
            raise _unauthorized(ApiErrorCode.INVALID_CREDENTIALS, "Invalid email or password")
        if not user.is_active:
            raise _unauthorized(ApiErrorCode.ACCOUNT_DEACTIVATED, "Account has been deactivated")
        if not verify_password(password, user.password_hash):
            raise _unauthorized(ApiErrorCode.INVALID_CREDENTIALS, "Invalid email or password")

        access_token, refresh_token = self._issue_pair(user)
        user.last_login = _now_iso()
        self._repo.save_user(user)
        LOGGER.info("User logged in", extra={"user_id": user.user_id})
        return user, access_token, refresh_token

    def _issue_pair(self, user: AuthUser) -> tuple[str, str]:
        """Sign a new token pair and record the refresh token on ``user``."""
        claims = {"userId": user.user_id, "email": user.email, "role": user.role}
        access_token = issue_token(
            claims,
            secret_key=self._config.secret_key,
            ttl_seconds=self._config.access_token_ttl_seconds,
            token_type=ACCESS_TOKEN_TYPE,
        )
        refresh_token = issue_token(
            claims,
            secret_key=self._config.refresh_secret_key,
            ttl_seconds=self._config.refresh_token_ttl_seconds,
            token_type=REFRESH_TOKEN_TYPE,
        )
        user.refresh_tokens.append(refresh_token)
        return access_token, refresh_token

    def refresh(self, refresh_token: str) -> tuple[str, str]:
        """Rotate ``refresh_token`` into a new access/refresh pair."""
        if not refresh_token:
            raise ApiError(
                status_code=400,
                error_code=ApiErrorCode.MISSING_REFRESH_TOKEN,
                message="Refresh token is required",
            )
        try:
            payload = decode_token(
                refresh_token,
                secret_key=self._config.refresh_secret_key,
                token_type=REFRESH_TOKEN_TYPE,
            )
        except jwt.InvalidTokenError as exc:
            raise _unauthorized(ApiErrorCode.INVALID_REFRESH_TOKEN, "Token refresh failed") from exc

        user = self._repo.get_user_by_id(str(payload.get("userId") or ""))
        if user is None or refresh_token not in user.refresh_tokens:
            raise _unauthorized(ApiErrorCode.INVALID_REFRESH_TOKEN, "Invalid refresh token")
        if not user.is_active:
            raise _unauthorized(ApiErrorCode.ACCOUNT_DEACTIVATED, "Account has been deactivated")

        user.refresh_tokens.remove(refresh_token)
        pair = self._issue_pair(user)
        self._repo.save_user(user)
        return pair

    def authenticate(self, access_token: str) -> AuthUser:
        """Resolve the active user behind a bearer access token."""
        if not access_token:
            raise _unauthorized(ApiErrorCode.MISSING_TOKEN, "Access denied. No token provided.")
        try:
            payload = decode_token(
                access_token,
                secret_key=self._config.secret_key,
                token_type=ACCESS_TOKEN_TYPE,
            )
        except jwt.ExpiredSignatureError as exc:
            raise _unauthorized(ApiErrorCode.TOKEN_EXPIRED, "Token has expired") from exc
        except jwt.InvalidTokenError as exc:
            raise _unauthorized(ApiErrorCode.INVALID_TOKEN, "Invalid token") from exc

        user = self._repo.get_user_by_id(str(payload.get("userId") or ""))
        if user is None:
            raise _unauthorized(ApiErrorCode.USER_NOT_FOUND, "Token is valid but user not found")
        if not user.is_active:
            raise _unauthorized(ApiErrorCode.ACCOUNT_DEACTIVATED, "Account has been deactivated")
        return user

    def logout(self, user: AuthUser, refresh_token: str | None) -> None:
        if refresh_token and refresh_token in user.refresh_tokens:
            user.refresh_tokens.remove(refresh_token)
            self._repo.save_user(user)
        LOGGER.info("User logged out", extra={"user_id": user.user_id})

    def logout_all(self, user: AuthUser) -> None:
        user.refresh_tokens = []
        self._repo.save_user(user)
        LOGGER.info("User logged out from all devices", extra={"user_id": user.user_id})

    def update_profile(self, user: AuthUser, req: UpdateProfileRequest) -> AuthUser:
        """Apply editable fields; nested objects are replaced as a whole."""
        changes: dict[str, Any] = req.model_dump(exclude_unset=True, mode="json")
        for field in ("name", "phone", "profile", "preferences"):
            if field in changes and changes[field] is not None:
                setattr(user, field, changes[field])
        user.updated_at = _now_iso()
        self._repo.save_user(user)
        LOGGER.info("Profile updated", extra={"user_id": user.user_id})
        return user

    def change_password(self, user: AuthUser, current_password: str, new_password: str) -> None:
        if not verify_password(current_password, user.password_hash):
            raise ApiError(
                status_code=400,
                error_code=ApiErrorCode.INVALID_CURRENT_PASSWORD,
                message="Current password is incorrect",
            )
        self._set_password(user, new_password)
        LOGGER.info("Password changed", extra={"user_id": user.user_id})

    def _set_password(self, user: AuthUser, new_password: str) -> None:
        """Store a new password hash and end every session of ``user``."""
        user.password_hash = hash_password(new_password)
        user.refresh_tokens = []
        user.reset_token_hash = ""
        user.reset_token_expires_at = 0
        user.updated_at = _now_iso()
        self._repo.save_user(user)

    def forgot_password(self, email: str) -> str | None:
        """Issue a reset token for ``email``; ``None`` when no such user exists.

        Delivery of the token is outside this service.
        """
        user = self._repo.get_user_by_email(email)
        if user is None:
            return None
        token = new_reset_token()
        user.reset_token_hash = hash_token(token)
        user.reset_token_expires_at = int(time.time()) + self._config.reset_token_ttl_seconds
        self._repo.save_user(user)
        LOGGER.info("Password reset requested", extra={"user_id": user.user_id})
        return token

    def reset_password(self, token: str, new_password: str) -> None:
        user = self._repo.get_user_by_reset_token_hash(hash_token(token))
        if user is None or user.reset_token_expires_at <= int(time.time()):
            raise ApiError(
                status_code=400,
                error_code=ApiErrorCode.INVALID_RESET_TOKEN,
                message="Invalid or expired reset token",
            )
        self._set_password(user, new_password)
        LOGGER.info("Password reset", extra={"user_id": user.user_id})
