"""Tests for admin application bootstrap, the expired record purge and the health check."""
import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from kangaroo.admin.scopes import ALL_SCOPES, USER_SCOPES
from kangaroo.authenticators.base import find_identity
from kangaroo.authenticators.state import create_state
from kangaroo.cleanup import purge_expired, run_cleanup
from kangaroo.crypto import verify_password
from kangaroo.database import SessionLocal, engine
from kangaroo.models import Application, AuthenticatorType, Base, ClientType, OAuthToken, utc_now
from kangaroo.seed import bootstrap


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok", "service": "kangaroo"}


def test_bootstrap_creates_admin_application(admin_application):
    assert admin_application.name == "Kangaroo"
    assert set(admin_application.scopes) == set(ALL_SCOPES)
    roles = {r.name: r for r in admin_application.roles}
    assert set(roles["admin"].scopes) == set(ALL_SCOPES)
    assert set(roles["member"].scopes) == set(USER_SCOPES)
    assert admin_application.default_role is roles["member"]
    [admin_client] = admin_application.clients
    assert admin_client.type == ClientType.Implicit
    assert [a.type for a in admin_client.authenticators] == [AuthenticatorType.Password]


def test_bootstrap_is_idempotent(db, admin_application):
    again = bootstrap(db)
    assert again.id == admin_application.id
    assert db.query(Application).filter(Application.name == "Kangaroo").count() == 1


def test_bootstrap_seeds_user_from_environment(db, admin_application, monkeypatch):
    monkeypatch.setenv("KANGAROO_SEED_USER", "root")
    monkeypatch.setenv("KANGAROO_SEED_PASSWORD", "changeme")
    bootstrap(db)
    bootstrap(db)
    identity = find_identity(db, admin_application, AuthenticatorType.Password, "root")
    assert verify_password("changeme", identity.password)
    assert identity.user.role.name == "admin"
    db.refresh(admin_application)
    assert admin_application.owner_id == identity.user.id
    assert len([u for u in admin_application.users if u.identities]) == 1


def test_fresh_bootstrap_with_seed_user(client, monkeypatch):
    monkeypatch.setenv("KANGAROO_SEED_USER", "root")
    monkeypatch.setenv("KANGAROO_SEED_PASSWORD", "changeme")
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        application = bootstrap(db)
        db.expire_all()
        assert application.owner is not None
        assert application.owner.role.name == "admin"
        [admin_client] = application.clients
        assert [a.type for a in admin_client.authenticators] == [AuthenticatorType.Password]
    finally:
        db.close()


@pytest.fixture
def expiring(builder):
    app = (
        builder()
        .with_client(ClientType.AuthorizationGrant, redirects=["https://app.example/cb"])
        .with_authenticator(AuthenticatorType.Password)
        .with_user()
        .with_identity("alice", "pw")
    )
    app.token()
    app.token(expires_in=5, issued_at=utc_now() - timedelta(seconds=10))
    return app.build()


def test_purge_expired(db, expiring):
    create_state(expiring.db, expiring.client, expiring.authenticator, "https://app.example/cb")
    db.commit()
    assert purge_expired() == (1, 0)
    db.expire_all()
    assert db.query(OAuthToken).count() == 1
    assert purge_expired() == (0, 0)


def test_run_cleanup_survives_store_errors():
    calls = []

    def purge():
        calls.append(1)
        if len(calls) == 1:
            raise OperationalError("DELETE", {}, Exception("database is locked"))
        raise RuntimeError("stop")

    with patch("kangaroo.cleanup.purge_expired", side_effect=purge), patch(
        "kangaroo.cleanup.asyncio.sleep", new_callable=AsyncMock
    ):
        with pytest.raises(RuntimeError):
            asyncio.run(run_cleanup(1))
    assert len(calls) == 2
