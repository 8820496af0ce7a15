"""
Client authentication at the token endpoint. RFC 6749 section 2.3.1.
Credentials via Authorization: Basic base64(client_id:client_secret) or client_id + client_secret in form.
"""
import base64
import binascii
import logging
from urllib.parse import unquote

from fastapi import Request
from sqlalchemy.orm import Session

from kangaroo.crypto import MalformedId, decode_id, equal_secret
from kangaroo.errors import InvalidClient
from kangaroo.models import Client

logger = logging.getLogger(__name__)

_CHALLENGE = {"WWW-Authenticate": 'Basic realm="kangaroo"'}


def _parse_basic(header_value: str) -> tuple[str, str] | None:
    """Parse 'Basic <base64(client_id:client_secret)>'. Returns (client_id, client_secret) or None."""
    if not header_value or not header_value.strip().lower().startswith("basic "):
        return None
    try:
        encoded = header_value.strip()[6:].strip()
        decoded = base64.b64decode(encoded, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None
    if ":" not in decoded:
        return None
    client_id, _, client_secret = decoded.partition(":")
    # Both halves are form-urlencoded before encoding (RFC 6749 section 2.3.1)
    return (unquote(client_id.strip()), unquote(client_secret))


def load_client(db: Session, client_id: str | None) -> Client | None:
    """Client for a hex id string; malformed or unknown ids give None."""
    try:
        value = decode_id(client_id)
    except MalformedId:
        return None
    if value is None:
        return None
    return db.get(Client, value)


def require_client_auth(
    db: Session,
    request: Request,
    client_id_form: str | None,
    client_secret_form: str | None,
) -> Client:
    """
    Resolve and authenticate the client. Confidential clients must present their secret;
    public clients must present only their id. Anything else raises 401 invalid_client.
    """
    auth_header = request.headers.get("Authorization")
    basic = _parse_basic(auth_header) if auth_header else None
    if auth_header and basic is None:
        raise InvalidClient("Malformed Authorization header.", headers=_CHALLENGE)

    if basic:
        client_id, client_secret = basic
        if client_id_form and client_id_form.strip() != client_id:
            raise InvalidClient("client_id does not match the Authorization header.", headers=_CHALLENGE)
    else:
        client_id = client_id_form.strip() if client_id_form else None
        client_secret = client_secret_form

    if not client_id:
        raise InvalidClient("client_id is required.", headers=_CHALLENGE)
    client = load_client(db, client_id)
    if client is None:
        logger.debug("Token request from unknown client")
        raise InvalidClient("Unknown client.", headers=_CHALLENGE)

    if client.is_confidential:
        if not equal_secret(client_secret, client.client_secret):
            logger.debug("Bad secret for client_id=%x", client.id)
            raise InvalidClient("Invalid client credentials.", headers=_CHALLENGE)
    elif basic is not None or client_secret:
        # A public client has no secret to present
        raise InvalidClient("Public clients may not authenticate with a secret.", headers=_CHALLENGE)
    return client
