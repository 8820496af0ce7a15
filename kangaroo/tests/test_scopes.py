"""Tests for scope parsing and role-based scope validation."""
import pytest

from kangaroo.errors import InvalidScope
from kangaroo.scopes import parse_scopes, revalidate_scopes, validate_scopes


@pytest.fixture
def role(builder):
    app = builder().scope("read", "write", "admin").with_role("editor", ["read", "write"]).build()
    return app.role


def test_parse_scopes_keeps_order_and_drops_duplicates():
    assert parse_scopes("write read  write ") == ["write", "read"]
    assert parse_scopes("") == []
    assert parse_scopes(None) == []


def test_blank_request_grants_everything_the_role_has(role):
    assert set(validate_scopes(None, role)) == {"read", "write"}
    assert set(validate_scopes("  ", role)) == {"read", "write"}


def test_subset_request(role):
    granted = validate_scopes("read", role)
    assert list(granted) == ["read"]
    assert granted["read"] is role.scopes["read"]


def test_escalation_rejected(role):
    with pytest.raises(InvalidScope):
        validate_scopes("read admin", role)


def test_unknown_scope_rejected(role):
    with pytest.raises(InvalidScope):
        validate_scopes("nonexistent", role)


def test_no_role():
    assert validate_scopes(None, None) == {}
    with pytest.raises(InvalidScope):
        validate_scopes("read", None)


def test_revalidate_keeps_prior_when_omitted(role):
    prior = {"read": role.scopes["read"]}
    assert revalidate_scopes(None, prior, role) == prior


def test_revalidate_narrows(role):
    prior = dict(role.scopes)
    assert list(revalidate_scopes("write", prior, role)) == ["write"]


def test_revalidate_cannot_widen(role):
    prior = {"read": role.scopes["read"]}
    with pytest.raises(InvalidScope):
        revalidate_scopes("read write", prior, role)


def test_revalidate_drops_scopes_the_role_lost(role, db):
    prior = dict(role.scopes)
    del role.scopes["write"]
    db.commit()
    with pytest.raises(InvalidScope):
        revalidate_scopes("write", prior, role)
