"""Integration tests for the authentication endpoints.

Tests the complete auth flow including:
- Registration and validation errors
- Login, lockout and disabled accounts
- Token extraction from header, query and cookie
- Logout, refresh and validate
- Error envelope shape and store outages
"""

import pytest
from fastapi.testclient import TestClient

from litesso import app as app_module
from litesso.config import Settings
from litesso.service.runtime import get_runtime, reset_runtime_for_tests
from litesso.service.tracker import RevocationTracker
from litesso.storage.errors import CacheUnavailable
from litesso.storage.models import UserStatus

PASSWORD = "TestPassword123"


class BrokenCache:
    def __getattr__(self, name):
        async def _fail(*args, **kwargs):
            raise CacheUnavailable(name)

        return _fail


@pytest.fixture
def client():
    return TestClient(app_module.app)


@pytest.fixture
def registered(client):
    response = client.post(
        "/v1/auth/register",
        json={
            "username": "alice",
            "email": "alice@example.com",
            "password": PASSWORD,
            "nickname": "Alice",
        },
    )
    assert response.status_code == 201
    return response.json()["data"]


@pytest.fixture
def tokens(client, registered):
    response = client.post("/v1/auth/login", json={"username": "alice", "password": PASSWORD})
    assert response.status_code == 200
    return response.json()["data"]["token"]


def _bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


class TestRegister:
    def test_register_returns_summary(self, client, registered):
        assert registered["username"] == "alice"
        assert registered["email"] == "alice@example.com"
        assert registered["user_id"]

    def test_email_normalized(self, client):
        response = client.post(
            "/v1/auth/register",
            json={"username": "bob", "email": "Bob@Example.COM", "password": PASSWORD},
        )
        assert response.status_code == 201
        assert response.json()["data"]["email"] == "bob@example.com"

    def test_duplicate_username_conflict(self, client, registered):
        response = client.post(
            "/v1/auth/register",
            json={"username": "alice", "email": "other@example.com", "password": PASSWORD},
        )
        body = response.json()
        assert response.status_code == 409
        assert body["status"] == "error"
        assert body["error"]["code"] == "conflict"
        assert body["error"]["details"] == {"field": "username"}
        assert body["request_id"]

    @pytest.mark.parametrize(
        "payload",
        [
            {"username": "al", "email": "a@example.com", "password": PASSWORD},
            {"username": "alice", "email": "not-an-email", "password": PASSWORD},
            {"username": "alice", "email": "a@example.com", "password": "12345"},
            {"username": "alice", "email": "a@example.com", "password": "x" * 51},
            {"username": "alice", "email": "a@example.com", "password": PASSWORD, "nickname": "n" * 51},
            {"username": "bad name!", "email": "a@example.com", "password": PASSWORD},
        ],
    )
    def test_invalid_payload_rejected(self, client, payload):
        response = client.post("/v1/auth/register", json=payload)
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "validation_error"

    def test_signup_switch(self, client):
        reset_runtime_for_tests(
            Settings(
                test_mode=True,
                use_memory_store=True,
                use_memory_cache=True,
                allow_signup=False,
                jwt_secret="another-test-secret-that-is-long-enough!",
            )
        )
        response = client.post(
            "/v1/auth/register",
            json={"username": "alice", "email": "alice@example.com", "password": PASSWORD},
        )
        assert response.status_code == 403


class TestLogin:
    def test_login_returns_user_and_tokens(self, client, registered):
        response = client.post("/v1/auth/login", json={"username": "alice", "password": PASSWORD})
        data = response.json()["data"]

        assert response.status_code == 200
        assert data["user"]["id"] == registered["user_id"]
        assert data["user"]["nickname"] == "Alice"
        assert "password_hash" not in data["user"]
        assert data["token"]["token_type"] == "bearer"
        assert data["token"]["expires_in"] == get_runtime().settings.access_token_ttl_seconds

    def test_wrong_password(self, client, registered):
        response = client.post("/v1/auth/login", json={"username": "alice", "password": "nope-nope"})
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "invalid_credentials"

    def test_lockout_after_repeated_failures(self, client, registered):
        limit = get_runtime().settings.login_max_attempts
        for _ in range(limit):
            client.post("/v1/auth/login", json={"username": "alice", "password": "nope-nope"})

        response = client.post("/v1/auth/login", json={"username": "alice", "password": PASSWORD})
        assert response.status_code == 429
        assert response.json()["error"]["code"] == "too_many_attempts"

    def test_disabled_account(self, client, registered):
        store = get_runtime().store
        user = store.get_user(registered["user_id"])
        user.status = UserStatus.DISABLED
        store.update_user(user)

        response = client.post("/v1/auth/login", json={"username": "alice", "password": PASSWORD})
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "user_disabled"


class TestTokenTransport:
    def test_bearer_header(self, client, tokens):
        response = client.get("/v1/user/info", headers=_bearer(tokens["access_token"]))
        assert response.status_code == 200
        assert response.json()["data"]["username"] == "alice"

    def test_query_parameter(self, client, tokens):
        response = client.get("/v1/user/info", params={"token": tokens["access_token"]})
        assert response.status_code == 200

    def test_cookie(self, tokens):
        cookie_client = TestClient(app_module.app, cookies={"access_token": tokens["access_token"]})
        response = cookie_client.get("/v1/user/info")
        assert response.status_code == 200

    def test_missing_token(self, client):
        response = client.get("/v1/user/info")
        assert response.status_code == 401
        assert response.json()["error"]["message"] == "authorization token required"

    def test_refresh_token_not_accepted_for_requests(self, client, tokens):
        response = client.get("/v1/user/info", headers=_bearer(tokens["refresh_token"]))
        assert response.status_code == 401
        assert response.json()["error"]["message"] == "invalid or expired token"

    def test_garbage_token(self, client):
        response = client.get("/v1/user/info", headers=_bearer("a.b.c"))
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "unauthorized"


class TestLogoutRefreshValidate:
    def test_logout_revokes_access_token(self, client, tokens):
        headers = _bearer(tokens["access_token"])
        response = client.post("/v1/auth/logout", headers=headers)
        assert response.status_code == 200

        assert client.get("/v1/user/info", headers=headers).status_code == 401
        validate = client.get("/v1/auth/validate", headers=headers)
        assert validate.status_code == 401
        assert validate.json()["error"]["code"] == "invalid_token"

    def test_logout_requires_token(self, client):
        assert client.post("/v1/auth/logout").status_code == 401

    def test_refresh_rotation(self, client, tokens):
        response = client.post("/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert response.status_code == 200
        new_access = response.json()["data"]["access_token"]
        assert client.get("/v1/user/info", headers=_bearer(new_access)).status_code == 200

        replay = client.post("/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert replay.status_code == 401
        assert replay.json()["error"]["code"] == "invalid_token"

    def test_refresh_with_non_ascii_signature(self, client, tokens):
        header, payload, _ = tokens["refresh_token"].split(".")
        response = client.post(
            "/v1/auth/refresh", json={"refresh_token": f"{header}.{payload}.ééé"}
        )

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "invalid_token"

    def test_validate_reports_claims(self, client, tokens, registered):
        response = client.get("/v1/auth/validate", headers=_bearer(tokens["refresh_token"]))
        data = response.json()["data"]

        assert response.status_code == 200
        assert data["user_id"] == registered["user_id"]
        assert data["token_type"] == "refresh"
        assert data["valid"] is True


def test_store_outage_returns_503(client, tokens):
    runtime = get_runtime()
    runtime.auth.tracker = RevocationTracker(BrokenCache())

    response = client.get("/v1/user/info", headers=_bearer(tokens["access_token"]))

    assert response.status_code == 503
    assert response.json()["error"]["code"] == "service_unavailable"


def test_request_id_propagated(client):
    response = client.get("/healthz", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"


def test_healthz(client):
    response = client.get("/healthz")
    body = response.json()

    assert response.status_code == 200
    assert body["status"] == "healthy"
    assert body["checks"]["database"]["type"] == "MemoryStore"
    assert body["checks"]["cache"]["type"] == "MemoryCache"


def test_runtime_built_from_shared_settings(monkeypatch):
    from litesso.service import runtime as runtime_module

    monkeypatch.setattr(runtime_module, "runtime", None)
    assert get_runtime().settings is runtime_module.get_settings()


def test_cors_preflight_allows_local_origin(client):
    response = client.options(
        "/v1/auth/login",
        headers={"Origin": "http://localhost:3000", "Access-Control-Request-Method": "POST"},
    )
    assert response.headers["access-control-allow-origin"] == "http://localhost:3000"
