"""Shared API error types and helpers."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from fastapi import HTTPException


class ApiErrorCode(StrEnum):
    """Machine-readable API error codes."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    USER_EXISTS = "USER_EXISTS"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    ACCOUNT_DEACTIVATED = "ACCOUNT_DEACTIVATED"
    MISSING_TOKEN = "MISSING_TOKEN"
    INVALID_TOKEN = "INVALID_TOKEN"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    MISSING_REFRESH_TOKEN = "MISSING_REFRESH_TOKEN"
    INVALID_REFRESH_TOKEN = "INVALID_REFRESH_TOKEN"
    INVALID_CURRENT_PASSWORD = "INVALID_CURRENT_PASSWORD"
    INVALID_RESET_TOKEN = "INVALID_RESET_TOKEN"
    REQUEST_TOO_LARGE = "REQUEST_TOO_LARGE"
    INTERNAL_SERVER_ERROR = "INTERNAL_SERVER_ERROR"


class ApiError(HTTPException):
    """HTTP exception carrying the stable error envelope."""

    def __init__(
        self, *, status_code: int, error_code: ApiErrorCode, message: str
    ) -> None:
        super().__init__(
            status_code=status_code,
            detail={"error": str(error_code), "message": message},
        )

    @property
    def error_code(self) -> str:
        return str(self.detail["error"])


def to_error_payload(detail: Any, status_code: int) -> dict[str, Any]:
    """Normalize HTTP exception detail into the ``success: false`` envelope."""
    if isinstance(detail, dict):
        error_code = str(detail.get("error") or detail.get("error_code") or f"HTTP_{status_code}")
        message = str(detail.get("message") or detail.get("detail") or "HTTP error")
        return {"success": False, "message": message, "error": error_code}
    return {
        "success": False,
        "message": str(detail or "HTTP error"),
        "error": f"HTTP_{status_code}",
    }
