"""Authentication API router."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Header

from khetsetu.api.contracts import ApiEnvelope, ApiErrorResponse, AuthPayload, TokenPayload, UserPayload
from khetsetu.auth.models import (
    AuthUser,
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginRequest,
    LogoutRequest,
    RefreshTokenRequest,
    RegisterRequest,
    ResetPasswordRequest,
    UpdateProfileRequest,
)
from khetsetu.auth.service import AuthService

FORGOT_PASSWORD_MESSAGE = (
    "If an account with that email exists, a password reset link has been sent."
)

_ERRORS_400 = {400: {"model": ApiErrorResponse}}
_ERRORS_401 = {400: {"model": ApiErrorResponse}, 401: {"model": ApiErrorResponse}}


def _extract_bearer_token(authorization: str | None) -> str:
    """Extract bearer token from Authorization header."""
    if not authorization:
        return ""
    parts = authorization.strip().split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return ""
    return parts[1].strip()


def _message(message: str) -> dict[str, Any]:
    return ApiEnvelope[Any](success=True, message=message).to_wire()


def _session(message: str, user: AuthUser, token: str, refresh_token: str) -> dict[str, Any]:
    return ApiEnvelope[AuthPayload](
        success=True,
        message=message,
        data=AuthPayload(user=user.to_public(), token=token, refresh_token=refresh_token),
    ).to_wire()


def _user(message: str, user: AuthUser) -> dict[str, Any]:
    return ApiEnvelope[UserPayload](
        success=True, message=message, data=UserPayload(user=user.to_public())
    ).to_wire()


def create_auth_router(service: AuthService, *, expose_reset_token: bool = False) -> APIRouter:
    """Build the ``/auth`` router; protected routes resolve the bearer user first."""
    router = APIRouter(prefix="/auth", tags=["auth"])

    def current_user(authorization: str | None = Header(default=None)) -> AuthUser:
        return service.authenticate(_extract_bearer_token(authorization))

    @router.post("/register", status_code=201, responses={409: {"model": ApiErrorResponse}, **_ERRORS_400})
    def register(req: RegisterRequest) -> dict[str, Any]:
        user, token, refresh_token = service.register(req)
        return _session("User registered successfully", user, token, refresh_token)

    @router.post("/login", responses=_ERRORS_401)
    def login(req: LoginRequest) -> dict[str, Any]:
        user, token, refresh_token = service.login(req.email, req.password)
        return _session("Login successful", user, token, refresh_token)

    @router.post("/refresh-token", responses=_ERRORS_401)
    def refresh_token(req: RefreshTokenRequest) -> dict[str, Any]:
        token, new_refresh_token = service.refresh(req.refresh_token)
        return ApiEnvelope[TokenPayload](
            success=True,
            message="Token refreshed successfully",
            data=TokenPayload(token=token, refresh_token=new_refresh_token),
        ).to_wire()

    @router.post("/forgot-password", responses=_ERRORS_400)
    def forgot_password(req: ForgotPasswordRequest) -> dict[str, Any]:
        token = service.forgot_password(req.email)
        payload = _message(FORGOT_PASSWORD_MESSAGE)
        if expose_reset_token and token:
            payload["data"] = {"resetToken": token}
        return payload

    @router.post("/reset-password", responses=_ERRORS_400)
    def reset_password(req: ResetPasswordRequest) -> dict[str, Any]:
        service.reset_password(req.token, req.new_password)
        return _message(
            "Password has been reset successfully. Please login with your new password."
        )

    @router.post("/logout", responses=_ERRORS_401)
    def logout(
        req: LogoutRequest | None = None, user: AuthUser = Depends(current_user)
    ) -> dict[str, Any]:
        service.logout(user, req.refresh_token if req else None)
        return _message("Logout successful")

    @router.post("/logout-all", responses=_ERRORS_401)
    def logout_all(user: AuthUser = Depends(current_user)) -> dict[str, Any]:
        service.logout_all(user)
        return _message("Logged out from all devices successfully")

    @router.get("/profile", responses=_ERRORS_401)
    def get_profile(user: AuthUser = Depends(current_user)) -> dict[str, Any]:
        return _user("Profile retrieved successfully", user)

    @router.put("/profile", responses=_ERRORS_401)
    def update_profile(
        req: UpdateProfileRequest, user: AuthUser = Depends(current_user)
    ) -> dict[str, Any]:
        return _user("Profile updated successfully", service.update_profile(user, req))

    @router.post("/change-password", responses=_ERRORS_401)
    def change_password(
        req: ChangePasswordRequest, user: AuthUser = Depends(current_user)
    ) -> dict[str, Any]:
        service.change_password(user, req.current_password, req.new_password)
        return _message("Password changed successfully. Please login again.")

    return router
