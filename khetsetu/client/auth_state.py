"""Authentication state machine driven by the HTTP client's auth calls.

``auth_reducer`` is a pure transition function; ``AuthProvider`` owns the
current state, applies actions through ``dispatch`` and exposes the
operations the rest of the application uses (login, logout, profile edits,
startup reconciliation).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import StrEnum
from threading import Lock
from typing import Any, Callable

from khetsetu.api.contracts import (
    LoginCredentials,
    PasswordChange,
    RegisterData,
    User,
)
from khetsetu.client.errors import ApiClientError, AuthError
from khetsetu.client.http_client import HttpClient

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthState:
    """Latest known authentication outcome."""

    is_authenticated: bool = False
    user: User | None = None
    loading: bool = False
    error: str | None = None


INITIAL_STATE = AuthState()


class AuthActionType(StrEnum):
    AUTH_START = "AUTH_START"
    AUTH_SUCCESS = "AUTH_SUCCESS"
    AUTH_FAILURE = "AUTH_FAILURE"
    LOGOUT = "LOGOUT"
    CLEAR_ERROR = "CLEAR_ERROR"
    UPDATE_USER = "UPDATE_USER"


@dataclass(frozen=True)
class AuthAction:
    type: AuthActionType
    payload: Any = None


def auth_reducer(state: AuthState, action: AuthAction) -> AuthState:
    """Return the state that follows ``state`` after ``action``."""
    if action.type == AuthActionType.AUTH_START:
        return replace(state, loading=True, error=None)
    if action.type == AuthActionType.AUTH_SUCCESS:
        return AuthState(is_authenticated=True, user=action.payload, loading=False, error=None)
    if action.type == AuthActionType.AUTH_FAILURE:
        return AuthState(is_authenticated=False, user=None, loading=False, error=action.payload)
    if action.type == AuthActionType.LOGOUT:
        return INITIAL_STATE
    if action.type == AuthActionType.CLEAR_ERROR:
        if state.error is None:
            return state
        return replace(state, error=None)
    if action.type == AuthActionType.UPDATE_USER:
        return replace(state, user=action.payload)
    return state


Listener = Callable[[AuthState], None]


class AuthProvider:
    """Holds :class:`AuthState` for one client and runs auth operations."""

    def __init__(self, client: HttpClient) -> None:
        self._client = client
        self._state = INITIAL_STATE
        self._lock = Lock()
        self._listeners: list[Listener] = []
        self._mounted = False

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def client(self) -> HttpClient:
        return self._client

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` for state changes; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def dispatch(self, action: AuthAction) -> AuthState:
        with self._lock:
            previous = self._state
            self._state = auth_reducer(previous, action)
            current = self._state
        if current is not previous:
            for listener in list(self._listeners):
                listener(current)
        return current

    def mount(self) -> AuthState:
        """Reconcile with the backend once, before anything reads the state."""
        if not self._mounted:
            self._mounted = True
            self.check_auth()
        return self._state

    def login(self, credentials: LoginCredentials) -> User:
        return self._start_session(self._client.login, credentials, "Login failed")

    def register(self, user_data: RegisterData) -> User:
        return self._start_session(self._client.register, user_data, "Registration failed")

    def _start_session(
        self, call: Callable[[Any], Any], argument: Any, fallback_message: str
    ) -> User:
        self.dispatch(AuthAction(AuthActionType.AUTH_START))
        try:
            envelope = call(argument)
            if not (envelope.success and envelope.data is not None):
                raise AuthError(
                    envelope.message or fallback_message,
                    payload=envelope.model_dump(by_alias=True, mode="json"),
                )
        except Exception as exc:
            message = str(exc) or fallback_message
            self.dispatch(AuthAction(AuthActionType.AUTH_FAILURE, message))
            raise
        user = envelope.data.user
        self.dispatch(AuthAction(AuthActionType.AUTH_SUCCESS, user))
        return user

    def logout(self) -> None:
        try:
            self._client.logout()
        except Exception:
            LOGGER.warning("Logout error", exc_info=True)
        finally:
            self.dispatch(AuthAction(AuthActionType.LOGOUT))

    def update_profile(self, user_data: dict[str, Any]) -> User:
        envelope = self._client.update_profile(user_data)
        if not (envelope.success and envelope.data is not None):
            raise ApiClientError(envelope.message or "Profile update failed")
        user = envelope.data.user
        self.dispatch(AuthAction(AuthActionType.UPDATE_USER, user))
        return user

    def change_password(self, current_password: str, new_password: str) -> None:
        response = self._client.change_password(
            PasswordChange(current_password=current_password, new_password=new_password)
        )
        if not response.get("success"):
            raise ApiClientError(
                str(response.get("message") or "Password change failed"), payload=response
            )

    def check_auth(self) -> None:
        """Confirm a stored token with the backend, demoting silently on failure."""
        if not self._client.get_token():
            return

        self.dispatch(AuthAction(AuthActionType.AUTH_START))
        try:
            envelope = self._client.get_profile()
        except Exception:
            LOGGER.warning("Stored session rejected", exc_info=True)
            self._end_session()
            return

        if envelope.success and envelope.data is not None:
            self.dispatch(AuthAction(AuthActionType.AUTH_SUCCESS, envelope.data.user))
        else:
            self._end_session()

    def _end_session(self) -> None:
        self._client.clear_tokens()
        self.dispatch(AuthAction(AuthActionType.LOGOUT))

    def clear_error(self) -> None:
        self.dispatch(AuthAction(AuthActionType.CLEAR_ERROR))
