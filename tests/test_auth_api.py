from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient

from khetsetu.api.contracts import LoginCredentials, RegisterData
from khetsetu.api.server import create_app
from khetsetu.auth.models import AuthUser
from khetsetu.auth.repository import AuthRepository
from khetsetu.client.auth_state import AuthProvider
from khetsetu.client.http_client import HttpClient
from khetsetu.client.token_store import MemoryTokenStorage, TokenStore
from khetsetu.core.config import (
    ApiConfig,
    AppConfig,
    AuthConfig,
    LoggingConfig,
    ServerConfig,
    StorageConfig,
)
from khetsetu.core.security import hash_password

REGISTRATION = {
    "email": "demo@khetsetu.com",
    "password": "Demo1234",
    "name": "Demo Farmer",
    "phone": "+919876543210",
}


@pytest.fixture
def config(tmp_path: Path) -> AppConfig:
    return AppConfig(
        api=ApiConfig(base_url="http://testserver/api", environment="development"),
        storage=StorageConfig(token_file=tmp_path / "tokens.json"),
        logging=LoggingConfig(level="INFO"),
        auth=AuthConfig(
            secret_key="api-secret",
            refresh_secret_key="api-refresh-secret",
            access_token_ttl_seconds=300,
            refresh_token_ttl_seconds=1200,
            reset_token_ttl_seconds=600,
        ),
        server=ServerConfig(
            runtime_dir=tmp_path / "runtime",
            cors_allowed_origins=["http://localhost:5173"],
            request_max_bytes=4096,
        ),
    )


@pytest.fixture
def http(config: AppConfig, monkeypatch: pytest.MonkeyPatch) -> TestClient:
    monkeypatch.delenv("MONGODB_URI", raising=False)
    return TestClient(create_app(config))


def _register(http: TestClient) -> dict[str, Any]:
    response = http.post("/api/auth/register", json=REGISTRATION)
    assert response.status_code == 201
    return response.json()


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def test_health(http: TestClient) -> None:
    response = http.get("/api/health")

    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "ok"}
    assert response.headers["X-Content-Type-Options"] == "nosniff"


def test_register_returns_session_envelope_without_secrets(http: TestClient) -> None:
    body = _register(http)

    assert body["success"] is True
    assert body["message"] == "User registered successfully"
    user = body["data"]["user"]
    assert user["_id"]
    assert user["email"] == "demo@khetsetu.com"
    assert user["role"] == "farmer"
    assert user["profile"]["preferredLanguage"] == "en"
    assert "passwordHash" not in user and "password_hash" not in user
    assert body["data"]["token"] and body["data"]["refreshToken"]


def test_register_duplicate_returns_conflict(http: TestClient) -> None:
    _register(http)

    response = http.post("/api/auth/register", json=REGISTRATION)

    assert response.status_code == 409
    assert response.json()["error"] == "USER_EXISTS"


def test_register_validation_errors_use_envelope(http: TestClient) -> None:
    response = http.post(
        "/api/auth/register",
        json={"email": "nope", "password": "weak", "name": "Demo Farmer"},
    )

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["message"] == "Validation failed"
    assert {item["param"] for item in body["errors"]} == {"email", "password"}


def test_login_and_profile_flow(http: TestClient) -> None:
    _register(http)

    bad = http.post("/api/auth/login", json={"email": "demo@khetsetu.com", "password": "Wrong123"})
    good = http.post("/api/auth/login", json={"email": "DEMO@khetsetu.com", "password": "Demo1234"})
    token = good.json()["data"]["token"]
    profile = http.get("/api/auth/profile", headers=_bearer(token))

    assert bad.status_code == 401
    assert bad.json() == {
        "success": False,
        "message": "Invalid email or password",
        "error": "INVALID_CREDENTIALS",
    }
    assert good.status_code == 200
    assert profile.json()["data"]["user"]["lastLogin"]


def test_protected_routes_require_token(http: TestClient) -> None:
    missing = http.get("/api/auth/profile")
    invalid = http.get("/api/auth/profile", headers=_bearer("garbage"))

    assert missing.status_code == 401
    assert missing.json()["error"] == "MISSING_TOKEN"
    assert invalid.status_code == 401
    assert invalid.json()["error"] == "INVALID_TOKEN"


def test_update_profile_and_change_password(http: TestClient) -> None:
    token = _register(http)["data"]["token"]

    updated = http.put(
        "/api/auth/profile",
        headers=_bearer(token),
        json={"name": "Renamed Farmer", "profile": {"farmSize": 4.5, "soilType": "silt"}},
    )
    wrong = http.post(
        "/api/auth/change-password",
        headers=_bearer(token),
        json={"currentPassword": "Nope1234", "newPassword": "Fresh1234"},
    )
    changed = http.post(
        "/api/auth/change-password",
        headers=_bearer(token),
        json={"currentPassword": "Demo1234", "newPassword": "Fresh1234"},
    )
    relogin = http.post("/api/auth/login", json={"email": "demo@khetsetu.com", "password": "Fresh1234"})

    user = updated.json()["data"]["user"]
    assert user["name"] == "Renamed Farmer"
    assert user["profile"]["farmSize"] == 4.5
    assert user["profile"]["soilType"] == "silt"
    assert wrong.status_code == 400
    assert wrong.json()["error"] == "INVALID_CURRENT_PASSWORD"
    assert changed.json()["success"] is True
    assert relogin.status_code == 200


def test_refresh_rotates_and_logout_revokes(http: TestClient) -> None:
    data = _register(http)["data"]

    rotated = http.post("/api/auth/refresh-token", json={"refreshToken": data["refreshToken"]})
    reused = http.post("/api/auth/refresh-token", json={"refreshToken": data["refreshToken"]})
    missing = http.post("/api/auth/refresh-token", json={})
    new = rotated.json()["data"]
    logout = http.post(
        "/api/auth/logout", headers=_bearer(new["token"]), json={"refreshToken": new["refreshToken"]}
    )
    after_logout = http.post("/api/auth/refresh-token", json={"refreshToken": new["refreshToken"]})

    assert rotated.status_code == 200
    assert reused.status_code == 401
    assert reused.json()["error"] == "INVALID_REFRESH_TOKEN"
    assert missing.status_code == 400
    assert logout.json() == {"success": True, "message": "Logout successful"}
    assert after_logout.status_code == 401


def test_forgot_and_reset_password(http: TestClient) -> None:
    _register(http)

    unknown = http.post("/api/auth/forgot-password", json={"email": "nobody@khetsetu.com"})
    known = http.post("/api/auth/forgot-password", json={"email": "demo@khetsetu.com"})
    reset_token = known.json()["data"]["resetToken"]
    reset = http.post(
        "/api/auth/reset-password", json={"token": reset_token, "newPassword": "Reset1234"}
    )
    reused = http.post(
        "/api/auth/reset-password", json={"token": reset_token, "newPassword": "Again1234"}
    )
    login = http.post("/api/auth/login", json={"email": "demo@khetsetu.com", "password": "Reset1234"})

    assert unknown.json()["message"] == known.json()["message"]
    assert "data" not in unknown.json()
    assert reset.json()["success"] is True
    assert reused.status_code == 400
    assert reused.json()["error"] == "INVALID_RESET_TOKEN"
    assert login.status_code == 200


def test_oversized_body_is_rejected(http: TestClient) -> None:
    response = http.post(
        "/api/auth/login", json={"email": "demo@khetsetu.com", "password": "x" * 5000}
    )

    assert response.status_code == 413
    assert response.json()["error"] == "REQUEST_TOO_LARGE"


def test_client_refreshes_against_backend(http: TestClient) -> None:
    storage = MemoryTokenStorage()
    client = HttpClient(
        base_url="http://testserver/api", token_store=TokenStore(storage), session=http
    )
    provider = AuthProvider(client)

    provider.register(RegisterData.model_validate(REGISTRATION))
    refresh_token = storage.values["refreshToken"]
    client.set_tokens("not-a-jwt", refresh_token)

    envelope = client.get_profile()

    assert envelope.success is True
    assert envelope.data is not None
    assert envelope.data.user.email == "demo@khetsetu.com"
    assert client.get_token() != "not-a-jwt"
    assert storage.values["refreshToken"] != refresh_token

    provider.logout()
    assert provider.state.is_authenticated is False
    assert storage.values == {}

    provider.login(LoginCredentials(email="demo@khetsetu.com", password="Demo1234"))
    assert provider.state.is_authenticated is True


def test_client_session_expires_when_refresh_token_is_revoked(http: TestClient) -> None:
    storage = MemoryTokenStorage()
    client = HttpClient(
        base_url="http://testserver/api", token_store=TokenStore(storage), session=http
    )
    client.register(RegisterData.model_validate(REGISTRATION))
    http.post("/api/auth/logout-all", headers=_bearer(storage.values["authToken"]))
    client.set_tokens("not-a-jwt", storage.values["refreshToken"])

    provider = AuthProvider(client)
    state = provider.mount()

    assert state.is_authenticated is False
    assert state.error is None
    assert storage.values == {}


def test_profile_input_rules_are_enforced_on_write(http: TestClient) -> None:
    token = _register(http)["data"]["token"]

    tiny_farm = http.put(
        "/api/auth/profile", headers=_bearer(token), json={"profile": {"farmSize": 0.05}}
    )
    no_district = http.put(
        "/api/auth/profile",
        headers=_bearer(token),
        json={"profile": {"location": {"state": "Punjab"}}},
    )
    registered = http.post(
        "/api/auth/register",
        json={**REGISTRATION, "profile": {"farmSize": 0}},
    )

    for response in (tiny_farm, no_district, registered):
        assert response.status_code == 400
        assert response.json()["message"] == "Validation failed"


def test_register_rejects_display_name_email(http: TestClient) -> None:
    response = http.post(
        "/api/auth/register", json={**REGISTRATION, "email": "Demo Farmer <demo@khetsetu.com>"}
    )

    assert response.status_code == 400
    assert [item["param"] for item in response.json()["errors"]] == ["email"]


def test_loosely_shaped_stored_profile_is_served(
    config: AppConfig, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.delenv("MONGODB_URI", raising=False)
    repo = AuthRepository(config.server.runtime_dir)
    repo.save_user(
        AuthUser(
            user_id="legacy-1",
            email="legacy@khetsetu.com",
            password_hash=hash_password("Demo1234"),
            name="Legacy Farmer",
            profile={"farmSize": 0, "location": {"state": "Punjab"}, "primaryCrops": ["wheat"]},
            created_at="2024-01-01T00:00:00+00:00",
            updated_at="2024-01-01T00:00:00+00:00",
        )
    )
    http = TestClient(create_app(config, repo=repo))

    login = http.post(
        "/api/auth/login", json={"email": "legacy@khetsetu.com", "password": "Demo1234"}
    )
    profile = http.get("/api/auth/profile", headers=_bearer(login.json()["data"]["token"]))

    assert login.status_code == 200
    assert profile.status_code == 200
    stored = profile.json()["data"]["user"]["profile"]
    assert stored["farmSize"] == 0
    assert stored["location"] == {"state": "Punjab"}
    assert stored["primaryCrops"] == ["wheat"]

    provider = AuthProvider(
        HttpClient(
            base_url="http://testserver/api",
            token_store=TokenStore(MemoryTokenStorage()),
            session=http,
        )
    )
    provider.login(LoginCredentials(email="legacy@khetsetu.com", password="Demo1234"))
    provider.check_auth()

    assert provider.state.is_authenticated is True
    assert provider.state.user is not None
    assert provider.state.user.profile.farm_size == 0

