"""
Pytest configuration for kangaroo. Use in-memory SQLite so tests don't touch the filesystem.
"""
import os

# In-memory SQLite; database.py uses StaticPool so all connections share the same DB
os.environ["KANGAROO_DATABASE_URL"] = "sqlite:///:memory:"
os.environ["KANGAROO_CLEANUP_INTERVAL"] = "0"
# Avoid bootstrap picking up seed credentials or a fixed admin id from the environment
for _name in ("KANGAROO_SEED_USER", "KANGAROO_SEED_PASSWORD", "KANGAROO_ADMIN_APPLICATION_ID"):
    os.environ.pop(_name, None)

import pytest
from fastapi.testclient import TestClient

from kangaroo.database import SessionLocal, engine
from kangaroo.main import app
from kangaroo.models import Application, Base
from kangaroo.tests.support import ApplicationBuilder, admin_user


@pytest.fixture
def client():
    """Fresh schema per test; entering the client runs startup (bootstrap)."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db(client):
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def admin_application(client, db) -> Application:
    return db.get(Application, client.app.state.admin_application_id)


@pytest.fixture
def builder(db):
    def make(name: str = "Test Application") -> ApplicationBuilder:
        return ApplicationBuilder(db, name)

    return make


@pytest.fixture
def admin_token(db, admin_application):
    """Factory: (user, bearer id) for a new admin-application user holding the given scopes."""

    def make(*scopes: str, owns=()):
        return admin_user(db, admin_application, list(scopes), owns=owns)

    return make
