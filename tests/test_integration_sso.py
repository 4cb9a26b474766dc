"""Integration tests for the SSO ticket endpoints."""

import pytest
from fastapi.testclient import TestClient

from litesso import app as app_module
from litesso.service.runtime import get_runtime
from litesso.storage.errors import CacheUnavailable

PASSWORD = "TestPassword123"
SERVICE = "https://app.example.com/cb"


class BrokenCache:
    def __getattr__(self, name):
        async def _fail(*args, **kwargs):
            raise CacheUnavailable(name)

        return _fail


@pytest.fixture
def client():
    client = TestClient(app_module.app)
    response = client.post(
        "/v1/auth/register",
        json={"username": "alice", "email": "alice@example.com", "password": PASSWORD},
    )
    assert response.status_code == 201
    return client


def _sso_login(client, service=SERVICE, password=PASSWORD):
    body = {"username": "alice", "password": password}
    if service is not None:
        body["service"] = service
    return client.post("/v1/sso/login", json=body)


def test_login_page_info(client):
    response = client.get("/v1/sso/login", params={"service": SERVICE})
    assert response.status_code == 200
    assert response.json()["data"] == {"service": SERVICE, "login_url": "/v1/sso/login"}


def test_login_page_requires_service(client):
    response = client.get("/v1/sso/login")
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "invalid_service"


def test_full_ticket_exchange(client):
    login = _sso_login(client)
    grant = login.json()["data"]

    assert login.status_code == 200
    assert grant["ticket"].startswith("ST-")
    assert grant["redirect_url"] == f"{SERVICE}?ticket={grant['ticket']}"

    response = client.get("/v1/sso/validate", params={"ticket": grant["ticket"], "service": SERVICE})
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["username"] == "alice"
    assert data["email"] == "alice@example.com"
    assert set(data) == {"user_id", "username", "email", "nickname"}

    replay = client.get("/v1/sso/validate", params={"ticket": grant["ticket"], "service": SERVICE})
    assert replay.status_code == 401
    assert replay.json()["error"]["code"] == "ticket_not_found"


def test_redirect_keeps_existing_query(client):
    grant = _sso_login(client, service=f"{SERVICE}?next=/home").json()["data"]
    assert grant["redirect_url"] == f"{SERVICE}?next=/home&ticket={grant['ticket']}"


def test_login_without_service(client):
    response = _sso_login(client, service=None)
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "invalid_service"


def test_login_bad_password(client):
    response = _sso_login(client, password="wrong-one")
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "invalid_credentials"


def test_service_mismatch_consumes_ticket(client):
    ticket = _sso_login(client).json()["data"]["ticket"]

    mismatch = client.get(
        "/v1/sso/validate", params={"ticket": ticket, "service": "https://other.example.com/cb"}
    )
    assert mismatch.status_code == 400
    assert mismatch.json()["error"]["code"] == "service_mismatch"

    retry = client.get("/v1/sso/validate", params={"ticket": ticket, "service": SERVICE})
    assert retry.status_code == 401


@pytest.mark.parametrize(
    "params, status, code",
    [
        ({"service": SERVICE}, 400, "validation_error"),
        ({"ticket": "", "service": SERVICE}, 400, "validation_error"),
        ({"ticket": "ST-abc"}, 400, "invalid_service"),
        ({"ticket": "ST-unknown", "service": SERVICE}, 401, "ticket_not_found"),
    ],
)
def test_validate_parameter_errors(client, params, status, code):
    response = client.get("/v1/sso/validate", params=params)
    assert response.status_code == status
    assert response.json()["error"]["code"] == code


def test_logout_echoes_redirect(client):
    response = client.get("/v1/sso/logout", params={"service": SERVICE})
    assert response.status_code == 200
    assert response.json()["data"] == {"redirect_url": SERVICE}

    bare = client.get("/v1/sso/logout")
    assert bare.json()["data"] == {"redirect_url": None}


def test_missing_ticket_names_the_parameter(client):
    response = client.get("/v1/sso/validate", params={"service": SERVICE})
    assert response.json()["error"]["details"] == {"field": "ticket"}


def test_store_outage_returns_503(client):
    ticket = _sso_login(client).json()["data"]["ticket"]
    get_runtime().sso.cache = BrokenCache()

    response = client.get("/v1/sso/validate", params={"ticket": ticket, "service": SERVICE})

    assert response.status_code == 503
    assert response.json()["error"]["code"] == "service_unavailable"
