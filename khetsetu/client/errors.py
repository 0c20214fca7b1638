"""Exceptions raised by the KhetSetu API client."""

from __future__ import annotations

from typing import Any


class ApiClientError(Exception):
    """Base error for failures reported by the backend or the client itself."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        payload: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload or {}


class AuthError(ApiClientError):
    """Backend rejected a login or registration."""


class SessionExpiredError(ApiClientError):
    """Access token was rejected and could not be refreshed."""

    def __init__(self, message: str = "Session expired. Please login again.") -> None:
        super().__init__(message, status_code=401)


class InvalidResponseError(ApiClientError):
    """Successful response did not match the endpoint's schema."""
