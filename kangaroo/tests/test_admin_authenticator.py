"""Tests for /v1/authenticator."""
import pytest

from kangaroo.crypto import encode_id
from kangaroo.models import AuthenticatorType, ClientType
from kangaroo.tests.support import bearer

GOOGLE = {"client_id": "gid", "client_secret": "gs"}


@pytest.fixture
def owned(builder):
    return (
        builder("Owned App")
        .with_client(ClientType.AuthorizationGrant, redirects=["https://app.example/cb"])
        .with_authenticator(AuthenticatorType.Password)
        .build()
    )


@pytest.fixture
def owner(admin_token, owned):
    _, token = admin_token("authenticator", owns=[owned.application])
    return token


def test_create_google_authenticator(client, owner, owned):
    r = client.post(
        "/v1/authenticator",
        json={"client": encode_id(owned.client.id), "type": "Google", "configuration": GOOGLE},
        headers=bearer(owner),
    )
    assert r.status_code == 201
    assert r.json()["configuration"] == GOOGLE


def test_misconfigured_authenticator(client, owner, owned):
    r = client.post(
        "/v1/authenticator",
        json={"client": encode_id(owned.client.id), "type": "Google", "configuration": {"client_id": "gid"}},
        headers=bearer(owner),
    )
    assert r.status_code == 400
    assert r.json()["errorCode"] == "misconfigured_authenticator"


def test_one_authenticator_per_type(client, owner, owned):
    r = client.post(
        "/v1/authenticator",
        json={"client": encode_id(owned.client.id), "type": "Password"},
        headers=bearer(owner),
    )
    assert r.status_code == 409


def test_update_configuration_but_not_type(client, owner, owned, db):
    r = client.post(
        "/v1/authenticator",
        json={"client": encode_id(owned.client.id), "type": "Facebook", "configuration": GOOGLE},
        headers=bearer(owner),
    )
    created = r.json()
    url = f"/v1/authenticator/{created['id']}"
    changed = {**GOOGLE, "client_secret": "rotated"}
    r = client.put(url, json={"id": created["id"], "type": "Facebook", "configuration": changed}, headers=bearer(owner))
    assert r.status_code == 200
    assert r.json()["configuration"]["client_secret"] == "rotated"
    r = client.put(url, json={"id": created["id"], "type": "Google", "configuration": GOOGLE}, headers=bearer(owner))
    assert r.status_code == 400


def test_browse_and_search(client, owner, owned):
    r = client.get("/v1/authenticator", params={"client": encode_id(owned.client.id)}, headers=bearer(owner))
    assert r.json()["total"] == 1
    assert client.get("/v1/authenticator/search", params={"q": "pass"}, headers=bearer(owner)).json()["total"] == 1
    assert client.get("/v1/authenticator/search", params={"q": "goo"}, headers=bearer(owner)).json()["total"] == 0


def test_delete(client, owner, owned):
    url = f"/v1/authenticator/{encode_id(owned.authenticator.id)}"
    assert client.delete(url, headers=bearer(owner)).status_code == 204
    assert client.get(url, headers=bearer(owner)).status_code == 404


def test_admin_authenticator_is_immutable(client, admin_token, admin_application):
    _, token = admin_token("authenticator.admin")
    authenticator = admin_application.clients[0].authenticators[0]
    assert client.delete(f"/v1/authenticator/{encode_id(authenticator.id)}", headers=bearer(token)).status_code == 403
