"""
Grant handlers for POST /token. Each takes the authenticated client and the form and returns the token response.
"""
import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from kangaroo.authenticators import get_driver
from kangaroo.crypto import MalformedId, decode_id, encode_id
from kangaroo.errors import InvalidGrant, InvalidRequest, UnauthorizedClient
from kangaroo.models import AuthenticatorType, Client, ClientType, OAuthToken, OAuthTokenType
from kangaroo.redirects import validate_redirect
from kangaroo.scopes import revalidate_scopes, validate_scopes
from kangaroo.tokens import TokenStore

logger = logging.getLogger(__name__)


@dataclass
class TokenRequest:
    grant_type: str | None = None
    code: str | None = None
    redirect_uri: str | None = None
    scope: str | None = None
    username: str | None = None
    password: str | None = None
    refresh_token: str | None = None
    state: str | None = None


def token_response(access: OAuthToken, refresh: OAuthToken | None = None, state: str | None = None) -> dict:
    body = {
        "access_token": encode_id(access.id),
        "token_type": "Bearer",
        "expires_in": access.expires_in,
        "scope": access.scope_string,
    }
    if refresh is not None:
        body["refresh_token"] = encode_id(refresh.id)
    if state:
        body["state"] = state
    return body


def _grant_id(value: str | None, name: str) -> int:
    if not value:
        raise InvalidRequest(f"{name} is required.")
    try:
        return decode_id(value)
    except MalformedId:
        raise InvalidGrant()


def authorization_code(db: Session, client: Client, form: TokenRequest) -> dict:
    if client.type != ClientType.AuthorizationGrant:
        raise UnauthorizedClient()
    store = TokenStore(db)
    code = store.find_active(_grant_id(form.code, "code"), OAuthTokenType.Authorization, client)
    if code is None:
        logger.debug("Unknown, expired or consumed code for client_id=%x", client.id)
        raise InvalidGrant()

    redirect = form.redirect_uri or validate_redirect(None, client.get_redirect_uris_list())
    if redirect != code.redirect:
        raise InvalidGrant("redirect_uri does not match the authorization request.")

    identity = code.identity
    scopes = dict(code.scopes)
    if not store.consume(code.id, OAuthTokenType.Authorization):
        raise InvalidGrant()
    access = store.issue_bearer(client, identity, scopes)
    refresh = store.issue_refresh(client, identity, scopes, access)
    logger.info("authorization_code grant: tokens issued for client_id=%x", client.id)
    return token_response(access, refresh, form.state)


def password(db: Session, client: Client, form: TokenRequest) -> dict:
    if client.type != ClientType.OwnerCredentials:
        raise UnauthorizedClient()
    if not form.username or not form.password:
        raise InvalidRequest("username and password are required.")
    driver = get_driver(AuthenticatorType.Password)
    identity = driver.authenticate(db, client, None, {"login": form.username, "password": form.password}, "")
    if identity is None:
        raise InvalidGrant("Invalid resource owner credentials.")
    scopes = validate_scopes(form.scope, identity.user.role)
    store = TokenStore(db)
    access = store.issue_bearer(client, identity, scopes)
    refresh = store.issue_refresh(client, identity, scopes, access)
    logger.info("password grant: tokens issued for client_id=%x", client.id)
    return token_response(access, refresh, form.state)


def client_credentials(db: Session, client: Client, form: TokenRequest) -> dict:
    if client.type != ClientType.ClientCredentials or not client.is_confidential:
        raise UnauthorizedClient()
    scopes = validate_scopes(form.scope, client.application.default_role)
    access = TokenStore(db).issue_bearer(client, None, scopes)
    logger.info("client_credentials grant: token issued for client_id=%x", client.id)
    return token_response(access, None, form.state)


def refresh_token(db: Session, client: Client, form: TokenRequest) -> dict:
    if client.type not in (ClientType.OwnerCredentials, ClientType.AuthorizationGrant):
        raise InvalidGrant("This client may not refresh tokens.")
    store = TokenStore(db)
    old = store.find_active(_grant_id(form.refresh_token, "refresh_token"), OAuthTokenType.Refresh, client)
    if old is None:
        raise InvalidGrant()
    identity = old.identity
    role = identity.user.role if identity is not None else None
    scopes = revalidate_scopes(form.scope, dict(old.scopes), role)
    access, refresh = store.swap_refresh(
        old,
        store.new_bearer(client, identity, scopes),
        store.new_refresh(client, identity, scopes),
    )
    return token_response(access, refresh, form.state)


GRANTS = {
    "authorization_code": authorization_code,
    "password": password,
    "client_credentials": client_credentials,
    "refresh_token": refresh_token,
}
