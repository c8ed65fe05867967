from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.api import routes
from app.security.tokens import decode_access_token
from app.security.validation import PASSWORD_REQUIREMENTS

from conftest import ADMIN_EMAIL, mint_assertion

PASSWORD = "Valid1Pass!"


@pytest.fixture
def api_client(account_service, broadcast_service):
    """Provide a FastAPI test client with isolated state."""
    app = FastAPI()
    app.include_router(routes.router)
    app.state.account_service = account_service
    app.state.broadcast_service = broadcast_service

    with TestClient(app) as client:
        yield client


def register(client: TestClient, email: str = "jane@example.com", handle: str = "jane"):
    return client.post(
        "/v1/auth/register",
        json={"email": email, "handle": handle, "password": PASSWORD, "display_name": "Jane"},
    )


def login(client: TestClient, email: str, password: str = PASSWORD):
    return client.post("/v1/auth/login", json={"email": email, "password": password})


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def admin_token(client: TestClient) -> str:
    register(client, ADMIN_EMAIL, "root")
    return login(client, ADMIN_EMAIL).json()["access_token"]


def test_register_returns_public_profile(api_client):
    response = register(api_client)

    assert response.status_code == 201
    body = response.json()
    assert body["email"] == "jane@example.com"
    assert body["handle"] == "jane"
    assert body["display_name"] == "Jane"
    assert "password_hash" not in body


def test_register_conflicts_and_validation_errors(api_client):
    register(api_client)

    duplicate = register(api_client, "JANE@example.com", "other")
    assert duplicate.status_code == 409
    assert duplicate.json()["detail"]["code"] == "email_taken"

    weak = api_client.post(
        "/v1/auth/register",
        json={"email": "new@example.com", "handle": "newbie", "password": "alllowercase1!"},
    )
    assert weak.status_code == 400
    assert weak.json()["detail"]["code"] == "weak_password"


def test_login_issues_bearer_token(api_client):
    account = register(api_client).json()

    response = login(api_client, "jane@example.com")

    assert response.status_code == 200
    body = response.json()
    assert body["token_type"] == "bearer"
    assert body["account"]["is_online"] is True
    claims = decode_access_token(body["access_token"])
    assert claims["sub"] == str(account["account_id"])


def test_login_failures_share_one_response(api_client):
    register(api_client)

    unknown = login(api_client, "nobody@example.com")
    wrong = login(api_client, "jane@example.com", "Wrong1Pass!")

    assert unknown.status_code == wrong.status_code == 401
    assert unknown.json() == wrong.json()


def test_federated_login_creates_then_reuses_account(api_client):
    assertion = mint_assertion("g-1", "fed.user@example.com", name="Fed")

    first = api_client.post("/v1/auth/federated", json={"id_token": assertion})
    second = api_client.post("/v1/auth/federated", json={"id_token": assertion})

    assert first.status_code == second.status_code == 200
    assert first.json()["account"]["account_id"] == second.json()["account"]["account_id"]
    assert first.json()["account"]["handle"] == "fed_user"


def test_federated_login_rejects_forged_assertion(api_client):
    forged = mint_assertion("g-1", "a@example.com", secret="forged-secret-0123456789abcdefghij")

    response = api_client.post("/v1/auth/federated", json={"id_token": forged})

    assert response.status_code == 401
    assert response.json()["detail"]["code"] == "provider_unavailable"


def test_logout_requires_token_and_clears_presence(api_client, account_store):
    register(api_client)
    session = login(api_client, "jane@example.com").json()

    assert api_client.post("/v1/auth/logout").status_code == 401
    response = api_client.post("/v1/auth/logout", headers=bearer(session["access_token"]))

    assert response.status_code == 204
    assert not account_store.find_by_id(session["account"]["account_id"]).is_online


def test_password_requirements_are_published(api_client):
    response = api_client.get("/v1/auth/password-requirements")

    assert response.status_code == 200
    assert response.json()["requirements"] == PASSWORD_REQUIREMENTS


def test_broadcast_requires_admin(api_client):
    register(api_client)
    token = login(api_client, "jane@example.com").json()["access_token"]

    response = api_client.post("/v1/admin/broadcasts", json={"message": "hi"}, headers=bearer(token))

    assert response.status_code == 403


def test_admin_broadcast_and_listing(api_client, delivery_queue):
    token = admin_token(api_client)
    register(api_client)

    created = api_client.post("/v1/admin/broadcasts", json={"message": "hello all"}, headers=bearer(token))
    empty = api_client.post("/v1/admin/broadcasts", json={"message": "  "}, headers=bearer(token))
    listed = api_client.get("/v1/admin/broadcasts", headers=bearer(token))

    assert created.status_code == 201
    assert created.json()["message"] == "hello all"
    assert len(delivery_queue) == 2
    assert empty.status_code == 400
    assert [item["broadcast_id"] for item in listed.json()] == [created.json()["broadcast_id"]]


def test_grant_and_revoke_admin(api_client):
    token = admin_token(api_client)
    target = register(api_client).json()["account_id"]
    path = f"/v1/admin/accounts/{target}/admin"

    assert api_client.post(path, headers=bearer(token)).status_code == 204
    assert api_client.post(path, headers=bearer(token)).status_code == 409
    assert api_client.delete(path, headers=bearer(token)).status_code == 204
    assert api_client.post("/v1/admin/accounts/9999/admin", headers=bearer(token)).status_code == 404
