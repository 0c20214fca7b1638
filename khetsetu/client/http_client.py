"""HTTP client for the KhetSetu backend with bearer auth and token refresh."""

from __future__ import annotations

import logging
from threading import RLock
from typing import Any, TypeVar

import requests
from pydantic import BaseModel, ValidationError

from khetsetu.api.contracts import (
    ApiEnvelope,
    AuthPayload,
    LoginCredentials,
    PasswordChange,
    RegisterData,
    TokenPayload,
    UserPayload,
)
from khetsetu.client.errors import InvalidResponseError, SessionExpiredError
from khetsetu.client.token_store import TokenStore

LOGGER = logging.getLogger(__name__)

LOGIN_ENDPOINT = "/auth/login"
REGISTER_ENDPOINT = "/auth/register"
LOGOUT_ENDPOINT = "/auth/logout"
REFRESH_ENDPOINT = "/auth/refresh-token"
PROFILE_ENDPOINT = "/auth/profile"
CHANGE_PASSWORD_ENDPOINT = "/auth/change-password"
FORGOT_PASSWORD_ENDPOINT = "/auth/forgot-password"
RESET_PASSWORD_ENDPOINT = "/auth/reset-password"

# Requests to these never carry a bearer token.
_ANONYMOUS_ENDPOINTS = (LOGIN_ENDPOINT, REGISTER_ENDPOINT)
# A 401 from these is an answer, not an expired session.
_NO_REFRESH_ENDPOINTS = (LOGIN_ENDPOINT, REGISTER_ENDPOINT, REFRESH_ENDPOINT)

PayloadT = TypeVar("PayloadT", bound=BaseModel)


def _matches(endpoint: str, candidates: tuple[str, ...]) -> bool:
    path = endpoint.split("?", 1)[0]
    return any(path.endswith(candidate) for candidate in candidates)


class HttpClient:
    """Authenticated JSON client owning one :class:`TokenStore`."""

    def __init__(
        self,
        *,
        base_url: str,
        token_store: TokenStore,
        session: Any = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._tokens = token_store
        self._session = session if session is not None else requests.Session()
        self._timeout = timeout_seconds
        self._refresh_lock = RLock()

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def tokens(self) -> TokenStore:
        return self._tokens

    def get_token(self) -> str | None:
        return self._tokens.get_token()

    def is_authenticated(self) -> bool:
        return self._tokens.is_authenticated()

    def set_tokens(self, access_token: str, refresh_token: str) -> None:
        self._tokens.set_tokens(access_token, refresh_token)

    def clear_tokens(self) -> None:
        self._tokens.clear_tokens()

    def request(
        self,
        endpoint: str,
        *,
        method: str = "GET",
        json_body: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """Send one API request and return the parsed JSON envelope.

        A 401 on a protected endpoint triggers a single token refresh and a
        single retry. Other HTTP errors are returned as their JSON body.
        """
        url = f"{self._base_url}{endpoint}"
        base_headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            **(headers or {}),
        }
        sent_token = None
        if not _matches(endpoint, _ANONYMOUS_ENDPOINTS):
            sent_token = self._tokens.access_token

        response = self._send(method, url, endpoint, base_headers, json_body, sent_token)

        if (
            response.status_code == 401
            and not _matches(endpoint, _NO_REFRESH_ENDPOINTS)
            and self._tokens.refresh_token
        ):
            if not self._refresh_after_rejection(sent_token):
                self._tokens.clear_tokens()
                LOGGER.info(
                    "Session expired",
                    extra={"endpoint": endpoint, "method": method},
                )
                raise SessionExpiredError()
            response = self._send(
                method, url, endpoint, base_headers, json_body, self._tokens.access_token
            )

        return self._parse(response)

    def _send(
        self,
        method: str,
        url: str,
        endpoint: str,
        headers: dict[str, str],
        json_body: dict[str, Any] | None,
        access_token: str | None,
    ) -> Any:
        request_headers = dict(headers)
        if access_token:
            request_headers["Authorization"] = f"Bearer {access_token}"
        kwargs: dict[str, Any] = {"headers": request_headers}
        if json_body is not None:
            kwargs["json"] = json_body
        if self._timeout is not None:
            kwargs["timeout"] = self._timeout
        try:
            return self._session.request(method, url, **kwargs)
        except requests.RequestException:
            LOGGER.exception(
                "API request failed",
                extra={"endpoint": endpoint, "url": url, "method": method},
            )
            raise

    @staticmethod
    def _parse(response: Any) -> dict[str, Any]:
        try:
            payload = response.json()
        except ValueError:
            return {"success": False, "message": f"HTTP {response.status_code}"}
        if isinstance(payload, dict):
            return payload
        return {"success": 200 <= response.status_code < 300, "message": "", "data": payload}

    def _refresh_after_rejection(self, rejected_token: str | None) -> bool:
        """Refresh once for all callers rejected with the same access token."""
        with self._refresh_lock:
            current = self._tokens.access_token
            if current and current != rejected_token:
                return True
            return self.refresh_access_token()

    def refresh_access_token(self) -> bool:
        """Exchange the held refresh token for a new pair.

        Returns ``False`` without a network call when no refresh token is held.
        Tokens are left untouched on failure.
        """
        with self._refresh_lock:
            refresh_token = self._tokens.refresh_token
            if not refresh_token:
                return False
            try:
                raw = self.request(
                    REFRESH_ENDPOINT,
                    method="POST",
                    json_body={"refreshToken": refresh_token},
                )
                envelope = self._validate(raw, TokenPayload)
            except (requests.RequestException, InvalidResponseError):
                LOGGER.warning("Token refresh failed", exc_info=True)
                return False
            if not envelope.success or envelope.data is None:
                return False
            self._tokens.set_tokens(envelope.data.token, envelope.data.refresh_token)
            return True

    @staticmethod
    def _validate(raw: dict[str, Any], model: type[PayloadT]) -> ApiEnvelope[PayloadT]:
        """Validate ``raw`` as an envelope, strictly only when it reports success."""
        envelope_type = ApiEnvelope[model]  # type: ignore[valid-type]
        try:
            return envelope_type.model_validate(raw)
        except ValidationError as exc:
            if raw.get("success"):
                raise InvalidResponseError(
                    f"Malformed {model.__name__} response", payload=raw
                ) from exc
            return ApiEnvelope[model].model_validate(  # type: ignore[valid-type]
                {
                    "success": False,
                    "message": str(raw.get("message") or ""),
                    "error": raw.get("error"),
                }
            )

    def login(self, credentials: LoginCredentials) -> ApiEnvelope[AuthPayload]:
        raw = self.request(LOGIN_ENDPOINT, method="POST", json_body=credentials.to_wire())
        return self._store_session(raw)

    def register(self, user_data: RegisterData) -> ApiEnvelope[AuthPayload]:
        raw = self.request(REGISTER_ENDPOINT, method="POST", json_body=user_data.to_wire())
        return self._store_session(raw)

    def _store_session(self, raw: dict[str, Any]) -> ApiEnvelope[AuthPayload]:
        envelope = self._validate(raw, AuthPayload)
        if envelope.success and envelope.data is not None:
            self._tokens.set_tokens(envelope.data.token, envelope.data.refresh_token)
        return envelope

    def logout(self) -> dict[str, Any]:
        """Log out server-side when possible; local tokens are always cleared."""
        body: dict[str, Any] = {}
        if self._tokens.refresh_token:
            body["refreshToken"] = self._tokens.refresh_token
        try:
            return self.request(LOGOUT_ENDPOINT, method="POST", json_body=body)
        except (requests.RequestException, SessionExpiredError):
            LOGGER.warning("Logout request failed", exc_info=True)
            return {"success": True, "message": "Logged out locally"}
        finally:
            self._tokens.clear_tokens()

    def get_profile(self) -> ApiEnvelope[UserPayload]:
        return self._validate(self.request(PROFILE_ENDPOINT), UserPayload)

    def update_profile(self, user_data: dict[str, Any]) -> ApiEnvelope[UserPayload]:
        raw = self.request(PROFILE_ENDPOINT, method="PUT", json_body=user_data)
        return self._validate(raw, UserPayload)

    def change_password(self, passwords: PasswordChange) -> dict[str, Any]:
        return self.request(
            CHANGE_PASSWORD_ENDPOINT, method="POST", json_body=passwords.to_wire()
        )

    def forgot_password(self, email: str) -> dict[str, Any]:
        return self.request(FORGOT_PASSWORD_ENDPOINT, method="POST", json_body={"email": email})

    def reset_password(self, token: str, new_password: str) -> dict[str, Any]:
        return self.request(
            RESET_PASSWORD_ENDPOINT,
            method="POST",
            json_body={"token": token, "newPassword": new_password},
        )
