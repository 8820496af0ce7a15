"""Tests for redirect URI matching and registration rules."""
import pytest

from kangaroo.redirects import is_registrable, validate_redirect

ALLOWED = ["https://app.example/cb", "http://localhost:8080/callback"]


def test_exact_match():
    assert validate_redirect("https://app.example/cb", ALLOWED) == "https://app.example/cb"


def test_query_string_is_kept():
    assert validate_redirect("https://app.example/cb?x=1", ALLOWED) == "https://app.example/cb?x=1"


def test_scheme_and_host_are_case_insensitive():
    assert validate_redirect("HTTPS://App.Example/cb", ALLOWED) == "HTTPS://App.Example/cb"


def test_default_port_matches():
    assert validate_redirect("https://app.example:443/cb", ALLOWED) == "https://app.example:443/cb"


@pytest.mark.parametrize(
    "uri",
    [
        "https://app.example/other",
        "http://app.example/cb",
        "https://evil.example/cb",
        "https://app.example:8443/cb",
        "https://app.example/cb#frag",
        "/cb",
        "not a uri",
    ],
)
def test_mismatch_is_rejected(uri):
    assert validate_redirect(uri, ALLOWED) is None


def test_missing_redirect_uses_the_only_registered_one():
    assert validate_redirect(None, ["https://app.example/cb"]) == "https://app.example/cb"
    assert validate_redirect("", ["https://app.example/cb"]) == "https://app.example/cb"


def test_missing_redirect_is_ambiguous_with_several():
    assert validate_redirect(None, ALLOWED) is None
    assert validate_redirect(None, []) is None


def test_validation_is_idempotent():
    first = validate_redirect("https://app.example/cb?x=1", ALLOWED)
    assert validate_redirect(first, ALLOWED) == first


def test_is_registrable():
    assert is_registrable("https://app.example/cb")
    assert is_registrable("http://localhost:8080/callback?x=1")
    assert not is_registrable("https://app.example/cb#frag")
    assert not is_registrable("/relative")
    assert not is_registrable("")
    assert not is_registrable(None)
