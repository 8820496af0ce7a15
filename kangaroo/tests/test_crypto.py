"""Tests for ids, secrets and password hashing."""
import pytest

from kangaroo.crypto import (
    MalformedId,
    decode_id,
    encode_id,
    equal_secret,
    hash_password,
    new_id,
    new_secret,
    verify_password,
)


def test_encode_id_is_32_lowercase_hex():
    value = encode_id(0xABC)
    assert len(value) == 32
    assert value == value.lower()
    assert value.endswith("abc")


def test_decode_encode_round_trip_for_new_ids():
    for _ in range(20):
        value = new_id()
        assert decode_id(encode_id(value)) == value


def test_decode_accepts_uppercase_and_encode_lowercases():
    s = "0123456789ABCDEF0123456789ABCDEF"
    assert encode_id(decode_id(s)) == s.lower()


@pytest.mark.parametrize("value", [None, "", "   "])
def test_decode_blank_is_none(value):
    assert decode_id(value) is None


@pytest.mark.parametrize("value", ["abc", "g" * 32, "0" * 31, "0" * 33, "0x" + "0" * 30])
def test_decode_malformed_raises(value):
    with pytest.raises(MalformedId):
        decode_id(value)


def test_equal_secret():
    assert equal_secret("s3cret", "s3cret")
    assert not equal_secret("s3cret", "s3cre")
    assert not equal_secret(None, "s3cret")
    assert not equal_secret("s3cret", None)
    assert not equal_secret(None, None)


def test_new_secret_is_random_hex():
    a, b = new_secret(), new_secret()
    assert a != b
    assert len(a) == 32
    int(a, 16)


def test_password_hash_verifies():
    hashed = hash_password("pw")
    assert hashed != "pw"
    assert verify_password("pw", hashed)
    assert not verify_password("other", hashed)


def test_verify_without_hash_fails():
    assert not verify_password("pw", None)
    assert not verify_password("pw", "not-a-hash")
