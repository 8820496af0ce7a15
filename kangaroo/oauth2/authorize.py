"""
Authorization endpoint (RFC 6749 section 4.1.1 / 4.2.1) and the return leg from the authenticator.
GET /authorize: validate client and redirect, park the request in an AuthenticatorState, send the browser to the IdP.
GET|POST /authorize/callback: resolve the identity, issue a code (or implicit token), redirect back to the client.
"""
import logging
from collections.abc import Mapping

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from kangaroo.authenticators import get_driver
from kangaroo.authenticators.state import consume_state, create_state, find_state
from kangaroo.crypto import encode_id
from kangaroo.database import get_db
from kangaroo.errors import (
    AccessDenied,
    InvalidRequest,
    OAuthError,
    RedirectingError,
    UnsupportedResponseType,
    append_to_redirect,
)
from kangaroo.models import Authenticator, AuthenticatorType, Client, ClientType
from kangaroo.oauth2.client_auth import load_client
from kangaroo.redirects import validate_redirect
from kangaroo.scopes import validate_scopes
from kangaroo.tokens import TokenStore

logger = logging.getLogger(__name__)
router = APIRouter()

RESPONSE_TYPES = {
    "code": ClientType.AuthorizationGrant,
    "token": ClientType.Implicit,
}


def select_authenticator(client: Client, name: str | None) -> Authenticator | None:
    """
    The client's authenticator of the named type. Without a name: the only one, else the Password one.
    """
    configured = list(client.authenticators)
    if not name:
        if len(configured) == 1:
            return configured[0]
        return next((a for a in configured if a.type == AuthenticatorType.Password), None)
    try:
        wanted = AuthenticatorType(name)
    except ValueError:
        return None
    # Every driver is private: it must be configured on this client
    match = next((a for a in configured if a.type == wanted), None)
    if match is None:
        logger.debug("Authenticator %s not configured on client_id=%x", wanted.value, client.id)
    return match


def callback_url(request: Request) -> str:
    return str(request.url_for("authorize_callback"))


@router.get("/authorize")
def authorize(
    request: Request,
    response_type: str | None = None,
    client_id: str | None = None,
    redirect_uri: str | None = None,
    scope: str | None = None,
    state: str | None = None,
    authenticator: str | None = None,
    db: Session = Depends(get_db),
):
    """
    Errors before the redirect is trusted are 400 JSON; after it, they travel on the redirect.
    """
    client = load_client(db, client_id)
    if client is None:
        raise InvalidRequest("Unknown client.")
    if not response_type:
        raise InvalidRequest("response_type is required.")
    if RESPONSE_TYPES.get(response_type) != client.type:
        raise UnsupportedResponseType()

    redirect = validate_redirect(redirect_uri, client.get_redirect_uris_list())
    if redirect is None:
        raise InvalidRequest("redirect_uri is not registered for this client.")

    selected = select_authenticator(client, authenticator)
    if selected is None:
        raise RedirectingError(InvalidRequest("Unknown authenticator."), redirect, client.type, state)

    pending = create_state(db, client, selected, redirect, client_state=state, client_scope=scope)
    location = get_driver(selected.type).delegate(selected, pending, callback_url(request))
    db.commit()
    logger.debug("Delegating client_id=%x to %s", client.id, selected.type.value)
    return RedirectResponse(url=location, status_code=302)


def _complete(request: Request, db: Session, params: Mapping[str, str]) -> RedirectResponse:
    pending = find_state(db, params.get("state"))
    if pending is None:
        raise InvalidRequest("Unknown or expired authentication state.")
    client = pending.client
    redirect = pending.client_redirect
    client_state = pending.client_state
    authenticator = pending.authenticator
    scope = pending.client_scope

    def on_redirect(error: OAuthError) -> RedirectingError:
        return RedirectingError(error, redirect, client.type, client_state)

    if not consume_state(db, pending):
        raise InvalidRequest("Authentication state already used.")
    if params.get("error"):
        logger.debug("IdP returned error for client_id=%x", client.id)
        raise on_redirect(AccessDenied())

    try:
        identity = get_driver(authenticator.type).authenticate(
            db, client, authenticator, params, callback_url(request)
        )
    except OAuthError as e:
        raise on_redirect(e)
    if identity is None:
        raise on_redirect(AccessDenied())

    try:
        scopes = validate_scopes(scope, identity.user.role)
    except OAuthError as e:
        raise on_redirect(e)

    store = TokenStore(db)
    if client.type == ClientType.Implicit:
        token = store.issue_bearer(client, identity, scopes)
        values = {
            "access_token": encode_id(token.id),
            "token_type": "bearer",
            "expires_in": str(token.expires_in),
        }
        if client_state:
            values["state"] = client_state
        values["scope"] = token.scope_string
        location = append_to_redirect(redirect, values, in_fragment=True)
    else:
        code = store.issue_authorization(client, identity, scopes, redirect)
        values = {"code": encode_id(code.id)}
        if client_state:
            values["state"] = client_state
        location = append_to_redirect(redirect, values)
    db.commit()
    logger.info("Authorization issued for client_id=%x", client.id)
    return RedirectResponse(url=location, status_code=302)


@router.get("/authorize/callback", name="authorize_callback")
def authorize_callback(request: Request, db: Session = Depends(get_db)):
    return _complete(request, db, dict(request.query_params))


@router.post("/authorize/callback")
def authorize_callback_post(
    request: Request,
    state: str | None = Form(None),
    login: str | None = Form(None),
    password: str | None = Form(None),
    remote_id: str | None = Form(None),
    code: str | None = Form(None),
    error: str | None = Form(None),
    db: Session = Depends(get_db),
):
    """Same as GET, with credentials posted by a login form."""
    params = dict(request.query_params)
    posted = {
        "state": state,
        "login": login,
        "password": password,
        "remote_id": remote_id,
        "code": code,
        "error": error,
    }
    params.update({k: v for k, v in posted.items() if v is not None})
    return _complete(request, db, params)
