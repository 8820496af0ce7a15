"""Tests for TokenStore: single-use consumption, refresh swap and expiry."""
from datetime import timedelta

import pytest

from kangaroo.database import SessionLocal
from kangaroo.errors import InvalidGrant
from kangaroo.models import Client, ClientType, OAuthToken, OAuthTokenType, utc_now
from kangaroo.tokens import TokenStore


@pytest.fixture
def app(builder):
    return (
        builder()
        .scope("read")
        .with_role("reader", ["read"])
        .with_client(ClientType.AuthorizationGrant, redirects=["https://app.example/cb"])
        .with_user()
        .with_identity("alice", "pw")
        .build()
    )


def test_issue_bearer_uses_client_lifetime(db, builder):
    app = (
        builder()
        .with_client(ClientType.ClientCredentials, secret="s", configuration={"access_token_expires_in": "30"})
        .build()
    )
    token = TokenStore(db).issue_bearer(app.client, None, {})
    db.commit()
    assert token.token_type == OAuthTokenType.Bearer
    assert token.expires_in == 30
    assert token.identity is None


def test_issue_authorization_records_redirect(db, app):
    store = TokenStore(db)
    code = store.issue_authorization(app.client, app.identity, dict(app.role.scopes), "https://app.example/cb")
    db.commit()
    assert code.token_type == OAuthTokenType.Authorization
    assert code.redirect == "https://app.example/cb"
    assert code.expires_in == 600
    assert code.scope_string == "read"


def test_consume_is_single_use(db, app):
    store = TokenStore(db)
    code = store.issue_authorization(app.client, app.identity, {}, "https://app.example/cb")
    db.commit()
    code_id = code.id
    assert store.consume(code_id, OAuthTokenType.Authorization)
    assert not store.consume(code_id, OAuthTokenType.Authorization)
    db.commit()
    assert store.get(code_id) is None


def test_consume_checks_type(db, app):
    store = TokenStore(db)
    token = store.issue_bearer(app.client, app.identity, {})
    db.commit()
    assert not store.consume(token.id, OAuthTokenType.Refresh)
    assert store.get(token.id) is not None


def test_find_active(db, app, builder):
    store = TokenStore(db)
    live = app.token(OAuthTokenType.Refresh)
    old = app.token(OAuthTokenType.Refresh, expires_in=10, issued_at=utc_now() - timedelta(seconds=60))
    other = builder("Other").with_client(ClientType.AuthorizationGrant).build()
    db.commit()

    assert store.find_active(live.id, OAuthTokenType.Refresh, app.client) is live
    assert store.find_active(live.id, OAuthTokenType.Bearer, app.client) is None
    assert store.find_active(live.id, OAuthTokenType.Refresh, other.client) is None
    assert store.find_active(old.id, OAuthTokenType.Refresh, app.client) is None
    assert store.find_active(None, OAuthTokenType.Refresh, app.client) is None


def test_swap_refresh(db, app):
    store = TokenStore(db)
    scopes = dict(app.role.scopes)
    access = store.issue_bearer(app.client, app.identity, scopes)
    refresh = store.issue_refresh(app.client, app.identity, scopes, access)
    db.commit()
    access_id, refresh_id = access.id, refresh.id

    new_access, new_refresh = store.swap_refresh(
        refresh,
        store.new_bearer(app.client, app.identity, scopes),
        store.new_refresh(app.client, app.identity, scopes),
    )
    db.commit()

    assert store.get(access_id) is None
    assert store.get(refresh_id) is None
    assert new_refresh.auth_token_id == new_access.id
    assert new_access.scope_string == "read"


def test_swap_refresh_twice_fails(db, app):
    store = TokenStore(db)
    access = store.issue_bearer(app.client, app.identity, {})
    refresh = store.issue_refresh(app.client, app.identity, {}, access)
    db.commit()
    refresh_id = refresh.id
    assert store.consume(refresh_id, OAuthTokenType.Refresh)

    stale = OAuthToken(id=refresh_id, token_type=OAuthTokenType.Refresh, expires_in=1)
    with pytest.raises(InvalidGrant):
        store.swap_refresh(
            stale,
            store.new_bearer(app.client, app.identity, {}),
            store.new_refresh(app.client, app.identity, {}),
        )
    db.rollback()


def test_delete_all_for_client(db, app):
    store = TokenStore(db)
    access = store.issue_bearer(app.client, app.identity, {})
    store.issue_refresh(app.client, app.identity, {}, access)
    db.commit()
    assert store.delete_all_for_client(app.client.id) == 2
    db.commit()
    assert db.query(OAuthToken).count() == 0


def test_delete_expired(db, app):
    store = TokenStore(db)
    live = app.token()
    app.token(expires_in=10, issued_at=utc_now() - timedelta(seconds=11))
    db.commit()
    live_id = live.id
    assert store.delete_expired() == 1
    db.commit()
    assert [t.id for t in db.query(OAuthToken).all()] == [live_id]


def test_is_expired_boundary():
    issued = utc_now()
    token = OAuthToken(expires_in=60, issued_at=issued)
    assert not token.is_expired(issued + timedelta(seconds=59))
    assert token.is_expired(issued + timedelta(seconds=60))


def test_racing_code_redemptions_have_one_winner(db, app):
    code = TokenStore(db).issue_authorization(app.client, app.identity, {}, "https://app.example/cb")
    db.commit()
    code_id, client_id = code.id, app.client.id

    first, second = SessionLocal(), SessionLocal()
    try:
        # Both requests find the code before either removes it
        seen = [
            TokenStore(s).find_active(code_id, OAuthTokenType.Authorization, s.get(Client, client_id))
            for s in (first, second)
        ]
        assert all(t is not None for t in seen)
        won = TokenStore(first).consume(code_id, OAuthTokenType.Authorization)
        first.commit()
        lost = TokenStore(second).consume(code_id, OAuthTokenType.Authorization)
        second.rollback()
    finally:
        first.close()
        second.close()
    assert (won, lost) == (True, False)


def test_racing_refreshes_have_one_winner(db, app):
    store = TokenStore(db)
    access = store.issue_bearer(app.client, app.identity, {})
    refresh = store.issue_refresh(app.client, app.identity, {}, access)
    db.commit()
    refresh_id, client_id = refresh.id, app.client.id

    first, second = SessionLocal(), SessionLocal()
    outcomes = []
    try:
        pending = []
        for s in (first, second):
            client = s.get(Client, client_id)
            old = TokenStore(s).find_active(refresh_id, OAuthTokenType.Refresh, client)
            assert old is not None
            pending.append((s, client, old))
        for s, client, old in pending:
            store = TokenStore(s)
            identity = old.identity
            try:
                store.swap_refresh(old, store.new_bearer(client, identity, {}), store.new_refresh(client, identity, {}))
                s.commit()
                outcomes.append("rotated")
            except InvalidGrant:
                s.rollback()
                outcomes.append("invalid_grant")
    finally:
        first.close()
        second.close()
    assert outcomes == ["rotated", "invalid_grant"]
    db.expire_all()
    assert db.query(OAuthToken).filter(OAuthToken.token_type == OAuthTokenType.Refresh).count() == 1


def test_scope_string_is_name_ordered(db, builder):
    app = builder().scope("write", "read", "admin").with_client(ClientType.ClientCredentials, secret="s").build()
    requested = {n: app.application.scopes[n] for n in ("write", "admin", "read")}
    token = TokenStore(db).issue_bearer(app.client, None, requested)
    db.commit()
    token_id = token.id
    assert token.scope_string == "admin read write"
    db.expire_all()
    assert db.get(OAuthToken, token_id).scope_string == "admin read write"
