"""
Identifiers and secrets. Ids are 128-bit opaque integers rendered as 32 lowercase hex chars.
"""
import hmac
import re
import secrets

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHash, VerificationError

_ID_BITS = 127
_ID_PATTERN = re.compile(r"^[0-9a-fA-F]{32}$")

_hasher = PasswordHasher()
# Verified against when a login is unknown so response time does not reveal it
_DUMMY_HASH = _hasher.hash("kangaroo-dummy-password")


class MalformedId(ValueError):
    """Raised when a string is not a 32-character hex identifier."""


def new_id() -> int:
    return secrets.randbits(_ID_BITS)


def encode_id(value: int) -> str:
    return format(value, "032x")


def decode_id(value: str | None) -> int | None:
    """Parse a 32-hex id. Empty or blank input yields None; anything else malformed raises."""
    if value is None or not value.strip():
        return None
    if not _ID_PATTERN.match(value):
        raise MalformedId(value)
    return int(value, 16)


def equal_secret(a: str | None, b: str | None) -> bool:
    """Constant-time string comparison. None never matches."""
    if a is None or b is None:
        return False
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


def new_secret() -> str:
    return secrets.token_hex(16)


def hash_password(password: str) -> str:
    return _hasher.hash(password)


def verify_password(plain: str, hashed: str | None) -> bool:
    """argon2id verification; an absent hash still spends the same work."""
    try:
        return _hasher.verify(hashed or _DUMMY_HASH, plain) and hashed is not None
    except (VerificationError, InvalidHash):
        return False
