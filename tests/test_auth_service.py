from __future__ import annotations

from dataclasses import dataclass, replace

import pytest
from pydantic import ValidationError

from khetsetu.api.errors import ApiError
from khetsetu.auth.models import AuthUser, RegisterRequest, UpdateProfileRequest
from khetsetu.auth.service import AuthService
from khetsetu.core.config import AuthConfig

CONFIG = AuthConfig(
    secret_key="test-secret",
    refresh_secret_key="test-refresh-secret",
    access_token_ttl_seconds=300,
    refresh_token_ttl_seconds=1200,
    reset_token_ttl_seconds=600,
)


@dataclass
class _Repo:
    users: dict[str, AuthUser]

    def get_user_by_id(self, user_id: str) -> AuthUser | None:
        user = self.users.get(user_id)
        return user.model_copy(deep=True) if user else None

    def _find(self, field: str, value: str) -> AuthUser | None:
        for user in self.users.values():
            if getattr(user, field) == value:
                return user.model_copy(deep=True)
        return None

    def get_user_by_email(self, email: str) -> AuthUser | None:
        return self._find("email", email.strip().lower())

    def get_user_by_phone(self, phone: str) -> AuthUser | None:
        return self._find("phone", phone)

    def get_user_by_reset_token_hash(self, token_hash: str) -> AuthUser | None:
        return self._find("reset_token_hash", token_hash) if token_hash else None

    def save_user(self, user: AuthUser) -> None:
        self.users[user.user_id] = user.model_copy(deep=True)


def _build_service(config: AuthConfig = CONFIG) -> tuple[AuthService, _Repo]:
    repo = _Repo(users={})
    return AuthService(repo=repo, config=config), repo  # type: ignore[arg-type]


def _register(service: AuthService, email: str = "Demo@KhetSetu.com") -> tuple[AuthUser, str, str]:
    return service.register(
        RegisterRequest(email=email, password="Secret123", name="Demo Farmer", phone="+919876543210")
    )


def test_auth_service_register_then_login_and_authenticate() -> None:
    service, repo = _build_service()

    user, _, _ = _register(service)
    logged_in, access_token, refresh_token = service.login("demo@khetsetu.com", "Secret123")
    resolved = service.authenticate(access_token)

    assert user.email == "demo@khetsetu.com"
    assert user.role == "farmer"
    assert resolved.user_id == user.user_id
    assert logged_in.last_login is not None
    assert refresh_token in repo.users[user.user_id].refresh_tokens


def test_auth_service_register_duplicate_email_or_phone_conflicts() -> None:
    service, _ = _build_service()
    _register(service)

    with pytest.raises(ApiError) as exc:
        _register(service, email="demo@khetsetu.com")
    assert exc.value.status_code == 409
    assert exc.value.error_code == "USER_EXISTS"

    with pytest.raises(ApiError):
        _register(service, email="other@khetsetu.com")


def test_auth_service_login_invalid_credentials_raises_api_error() -> None:
    service, _ = _build_service()
    _register(service)

    with pytest.raises(ApiError) as exc:
        service.login("demo@khetsetu.com", "Wrong123")
    assert exc.value.status_code == 401
    assert exc.value.error_code == "INVALID_CREDENTIALS"

    with pytest.raises(ApiError) as missing:
        service.login("nobody@khetsetu.com", "Secret123")
    assert missing.value.error_code == "INVALID_CREDENTIALS"


def test_auth_service_rejects_deactivated_account() -> None:
    service, repo = _build_service()
    user, access_token, _ = _register(service)
    repo.users[user.user_id] = repo.users[user.user_id].model_copy(update={"is_active": False})

    with pytest.raises(ApiError) as exc:
        service.login("demo@khetsetu.com", "Secret123")
    assert exc.value.error_code == "ACCOUNT_DEACTIVATED"

    with pytest.raises(ApiError) as auth_exc:
        service.authenticate(access_token)
    assert auth_exc.value.error_code == "ACCOUNT_DEACTIVATED"


def test_auth_service_refresh_rotates_token() -> None:
    service, _ = _build_service()
    _, _, refresh_token = _register(service)

    access_token, rotated = service.refresh(refresh_token)

    assert access_token
    assert rotated != refresh_token
    with pytest.raises(ApiError) as exc:
        service.refresh(refresh_token)
    assert exc.value.status_code == 401
    assert exc.value.error_code == "INVALID_REFRESH_TOKEN"


def test_auth_service_refresh_requires_token() -> None:
    service, _ = _build_service()

    with pytest.raises(ApiError) as exc:
        service.refresh("")

    assert exc.value.status_code == 400
    assert exc.value.error_code == "MISSING_REFRESH_TOKEN"


def test_auth_service_tokens_are_not_interchangeable() -> None:
    service, _ = _build_service()
    _, access_token, refresh_token = _register(service)

    with pytest.raises(ApiError) as as_access:
        service.authenticate(refresh_token)
    with pytest.raises(ApiError) as as_refresh:
        service.refresh(access_token)

    assert as_access.value.error_code == "INVALID_TOKEN"
    assert as_refresh.value.error_code == "INVALID_REFRESH_TOKEN"


def test_auth_service_expired_and_missing_access_token() -> None:
    service, _ = _build_service(replace(CONFIG, access_token_ttl_seconds=-30))
    _, access_token, _ = _register(service)

    with pytest.raises(ApiError) as expired:
        service.authenticate(access_token)
    with pytest.raises(ApiError) as missing:
        service.authenticate("")

    assert expired.value.error_code == "TOKEN_EXPIRED"
    assert missing.value.error_code == "MISSING_TOKEN"


def test_auth_service_logout_revokes_single_session() -> None:
    service, repo = _build_service()
    user, _, first = _register(service)
    _, _, second = service.login("demo@khetsetu.com", "Secret123")

    service.logout(repo.users[user.user_id].model_copy(deep=True), first)

    assert repo.users[user.user_id].refresh_tokens == [second]
    service.logout_all(repo.users[user.user_id].model_copy(deep=True))
    assert repo.users[user.user_id].refresh_tokens == []


def test_auth_service_update_profile_replaces_editable_fields() -> None:
    service, repo = _build_service()
    user, _, _ = _register(service)

    updated = service.update_profile(
        repo.users[user.user_id].model_copy(deep=True),
        UpdateProfileRequest.model_validate(
            {"name": "  Renamed Farmer ", "profile": {"farmSize": 3, "soilType": "clay"}}
        ),
    )

    assert updated.name == "Renamed Farmer"
    assert updated.profile["farm_size"] == 3
    assert updated.profile["soil_type"] == "clay"
    assert updated.phone == "+919876543210"
    assert repo.users[user.user_id].name == "Renamed Farmer"


def test_auth_service_change_password_ends_sessions() -> None:
    service, repo = _build_service()
    user, _, _ = _register(service)

    with pytest.raises(ApiError) as exc:
        service.change_password(repo.users[user.user_id], "Wrong123", "NewPass123")
    assert exc.value.status_code == 400
    assert exc.value.error_code == "INVALID_CURRENT_PASSWORD"

    service.change_password(repo.users[user.user_id].model_copy(deep=True), "Secret123", "NewPass123")

    assert repo.users[user.user_id].refresh_tokens == []
    service.login("demo@khetsetu.com", "NewPass123")


def test_auth_service_forgot_and_reset_password() -> None:
    service, repo = _build_service()
    user, _, _ = _register(service)

    assert service.forgot_password("nobody@khetsetu.com") is None
    token = service.forgot_password("demo@khetsetu.com")
    assert token
    assert repo.users[user.user_id].reset_token_hash != token

    service.reset_password(token, "Reset1234")

    service.login("demo@khetsetu.com", "Reset1234")
    with pytest.raises(ApiError) as exc:
        service.reset_password(token, "Again1234")
    assert exc.value.error_code == "INVALID_RESET_TOKEN"


def test_auth_service_reset_token_expires() -> None:
    service, _ = _build_service(replace(CONFIG, reset_token_ttl_seconds=-1))
    _register(service)
    token = service.forgot_password("demo@khetsetu.com")

    with pytest.raises(ApiError) as exc:
        service.reset_password(token or "", "Reset1234")

    assert exc.value.status_code == 400


@pytest.mark.parametrize("email", ["Name <a@b.co>", "a b@c.d", "demo@khetsetu"])
def test_register_request_rejects_malformed_email(email: str) -> None:
    with pytest.raises(ValidationError, match="valid email address"):
        RegisterRequest(email=email, password="Secret123", name="Demo Farmer")


def test_profile_update_request_is_stricter_than_stored_profile() -> None:
    with pytest.raises(ValidationError):
        UpdateProfileRequest.model_validate({"profile": {"farmSize": 0}})
    with pytest.raises(ValidationError):
        UpdateProfileRequest.model_validate({"profile": {"location": {"state": "Punjab"}}})

    user = AuthUser(
        user_id="legacy-1",
        email="legacy@khetsetu.com",
        password_hash="hash",
        name="Legacy Farmer",
        profile={"farmSize": 0, "location": {"state": "Punjab"}},
        created_at="2024-01-01T00:00:00+00:00",
        updated_at="2024-01-01T00:00:00+00:00",
    )
    public = user.to_public()

    assert public.profile.farm_size == 0
    assert public.profile.location is not None
    assert public.profile.location.district is None
