"""Tests for /v1/client and its redirect/referrer sub-resources."""
import pytest

from kangaroo.crypto import encode_id
from kangaroo.models import Client, ClientType, OAuthToken
from kangaroo.tests.support import bearer


@pytest.fixture
def owned(builder):
    return (
        builder("Owned App")
        .with_client(ClientType.AuthorizationGrant, redirects=["https://app.example/cb"])
        .with_user()
        .with_identity("alice", "pw")
        .build()
    )


@pytest.fixture
def owner(admin_token, owned):
    _, token = admin_token("client", owns=[owned.application])
    return token


def _client_body(app, **overrides):
    body = {
        "application": encode_id(app.application.id),
        "name": "Web",
        "type": "AuthorizationGrant",
        "clientSecret": "sekrit",
        "configuration": {"access_token_expires_in": "120"},
    }
    body.update(overrides)
    return body


def test_create_client(client, owner, owned):
    r = client.post("/v1/client", json=_client_body(owned), headers=bearer(owner))
    assert r.status_code == 201
    body = r.json()
    assert body["type"] == "AuthorizationGrant"
    assert body["clientSecret"] == "sekrit"
    assert body["configuration"] == {"access_token_expires_in": "120"}
    assert body["application"] == encode_id(owned.application.id)


def test_create_in_foreign_application(client, owner, builder):
    foreign = builder("Foreign").build()
    r = client.post("/v1/client", json=_client_body(foreign), headers=bearer(owner))
    assert r.status_code == 400


@pytest.mark.parametrize(
    "overrides",
    [
        {"type": "Sideways"},
        {"configuration": {"access_token_expires_in": "0"}},
        {"configuration": {"refresh_token_expires_in": "soon"}},
        {"application": None},
        {"application": "xyz"},
    ],
)
def test_create_rejects(client, owner, owned, overrides):
    r = client.post("/v1/client", json=_client_body(owned, **overrides), headers=bearer(owner))
    assert r.status_code == 400


def test_browse_filters(client, owner, owned, db):
    db.add(Client(name="Service", type=ClientType.ClientCredentials, client_secret="s", application=owned.application))
    db.commit()
    url = "/v1/client"
    assert client.get(url, headers=bearer(owner)).json()["total"] == 2
    r = client.get(url, params={"type": "ClientCredentials"}, headers=bearer(owner))
    assert [c["name"] for c in r.json()["results"]] == ["Service"]
    r = client.get(url, params={"application": encode_id(owned.application.id)}, headers=bearer(owner))
    assert r.json()["total"] == 2


def test_search_by_name(client, owner, owned):
    r = client.get("/v1/client/search", params={"q": "authorizationgrant"}, headers=bearer(owner))
    assert r.json()["total"] == 1


def test_update_cannot_move_applications(client, owner, owned, builder):
    foreign = builder("Foreign").build()
    client_id = encode_id(owned.client.id)
    body = _client_body(foreign, id=client_id)
    assert client.put(f"/v1/client/{client_id}", json=body, headers=bearer(owner)).status_code == 400
    body = _client_body(owned, id=client_id, name="Renamed", clientSecret=None)
    r = client.put(f"/v1/client/{client_id}", json=body, headers=bearer(owner))
    assert r.status_code == 200
    assert r.json()["name"] == "Renamed"
    assert r.json()["clientSecret"] is None


def test_delete_revokes_tokens(client, db, owner, owned):
    owned.token()
    owned.build()
    client_id = owned.client.id
    r = client.delete(f"/v1/client/{encode_id(client_id)}", headers=bearer(owner))
    assert r.status_code == 204
    db.expire_all()
    assert db.get(Client, client_id) is None
    assert db.query(OAuthToken).filter(OAuthToken.client_id == client_id).count() == 0


def test_admin_client_is_immutable(client, admin_token, admin_application):
    _, token = admin_token("client.admin")
    admin_client = admin_application.clients[0]
    url = f"/v1/client/{encode_id(admin_client.id)}"
    body = {
        "id": encode_id(admin_client.id),
        "application": encode_id(admin_application.id),
        "name": "Hijacked",
        "type": "Implicit",
    }
    assert client.put(url, json=body, headers=bearer(token)).status_code == 403
    assert client.delete(url, headers=bearer(token)).status_code == 403


# --- redirects and referrers ---


@pytest.mark.parametrize("kind", ["redirect", "referrer"])
def test_uri_lifecycle(client, owner, owned, kind):
    base = f"/v1/client/{encode_id(owned.client.id)}/{kind}"
    r = client.post(base, json={"uri": "https://app.example/other"}, headers=bearer(owner))
    assert r.status_code == 201
    child = r.json()
    assert child["client"] == encode_id(owned.client.id)
    url = f"{base}/{child['id']}"
    assert r.headers["location"].endswith(url)

    assert client.get(url, headers=bearer(owner)).json()["uri"] == "https://app.example/other"
    r = client.put(url, json={"id": child["id"], "uri": "https://app.example/moved"}, headers=bearer(owner))
    assert r.status_code == 200
    assert r.json()["uri"] == "https://app.example/moved"
    assert client.delete(url, headers=bearer(owner)).status_code == 204
    assert client.get(url, headers=bearer(owner)).status_code == 404


def test_duplicate_redirect_conflicts(client, owner, owned):
    base = f"/v1/client/{encode_id(owned.client.id)}/redirect"
    r = client.post(base, json={"uri": "https://app.example/cb"}, headers=bearer(owner))
    assert r.status_code == 409
    assert r.json()["errorCode"] == "conflict"


@pytest.mark.parametrize("uri", ["/relative", "https://app.example/cb#frag", "not a uri"])
def test_unregistrable_redirect(client, owner, owned, uri):
    base = f"/v1/client/{encode_id(owned.client.id)}/redirect"
    assert client.post(base, json={"uri": uri}, headers=bearer(owner)).status_code == 400


def test_redirects_of_invisible_client(client, admin_token, owned):
    _, stranger = admin_token("client")
    base = f"/v1/client/{encode_id(owned.client.id)}/redirect"
    assert client.get(base, headers=bearer(stranger)).status_code == 404
    assert client.post(base, json={"uri": "https://x.example/"}, headers=bearer(stranger)).status_code == 404


def test_browse_redirects(client, owner, owned):
    r = client.get(f"/v1/client/{encode_id(owned.client.id)}/redirect", headers=bearer(owner))
    body = r.json()
    assert body["total"] == 1
    assert body["results"][0]["uri"] == "https://app.example/cb"
