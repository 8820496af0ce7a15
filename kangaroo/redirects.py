"""
Redirect URI matching (RFC 6749 section 3.1.2). A requested URI matches a registered one when
scheme, host, port and path agree; the requested query string is kept.
"""
import logging
from collections.abc import Iterable
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)

_DEFAULT_PORTS = {"http": 80, "https": 443}


def _key(uri: str) -> tuple[str, str, int | None, str] | None:
    """(scheme, host, port, path) for an absolute URI, or None when it cannot be a redirect."""
    try:
        parts = urlsplit(uri)
        port = parts.port
    except ValueError:
        return None
    if not parts.scheme or not parts.hostname or parts.fragment:
        return None
    scheme = parts.scheme.lower()
    if port is None:
        port = _DEFAULT_PORTS.get(scheme)
    return (scheme, parts.hostname.lower(), port, parts.path)


def validate_redirect(requested: str | None, allowed: Iterable[str]) -> str | None:
    """
    Return the redirect to use, or None when the request does not match a registered URI.
    With nothing requested, a client with exactly one registered URI gets that URI.
    """
    allowed = list(allowed)
    if requested is None or not requested.strip():
        if len(allowed) == 1:
            return allowed[0]
        return None
    requested = requested.strip()
    wanted = _key(requested)
    if wanted is None:
        logger.debug("Unusable redirect_uri rejected")
        return None
    for candidate in allowed:
        if _key(candidate) == wanted:
            return requested
    logger.debug("redirect_uri not registered for client")
    return None


def is_registrable(uri: str | None) -> bool:
    """Absolute, with a host and no fragment: the only URIs a client may register."""
    return bool(uri) and _key(uri) is not None
