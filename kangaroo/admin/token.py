"""
/v1/token: direct management of issued OAuth tokens. Created tokens obey the same
shape rules the grants produce; on update only expiresIn and redirect may change.
"""
import logging

from fastapi import APIRouter, Body, Depends, Request, Response
from sqlalchemy import String, cast, select
from sqlalchemy.orm import Session

from kangaroo.admin.auth import AdminContext, require_scopes
from kangaroo.admin.listing import (
    Page,
    browse_params,
    check_body_id,
    check_new,
    created,
    paginate,
    path_id,
    same_ref,
    search_params,
)
from kangaroo.admin.schemas import TokenIn, token_json
from kangaroo.admin.scopes import TOKEN
from kangaroo.database import get_db
from kangaroo.errors import BadRequest, InvalidScope
from kangaroo.models import (
    Application,
    Client,
    ClientType,
    OAuthToken,
    OAuthTokenType,
    UserIdentity,
    utc_now,
)
from kangaroo.redirects import validate_redirect
from kangaroo.scopes import validate_scopes
from kangaroo.search import search
from kangaroo.tokens import TokenStore

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/token", tags=["token"])

SORT_FIELDS = {
    "id": OAuthToken.id,
    "createdDate": OAuthToken.created_date,
    "modifiedDate": OAuthToken.modified_date,
    "issuedAt": OAuthToken.issued_at,
    "expiresIn": OAuthToken.expires_in,
    "tokenType": OAuthToken.token_type,
}

# Which token types each client type may hold
ALLOWED_TYPES = {
    ClientType.AuthorizationGrant: {OAuthTokenType.Authorization, OAuthTokenType.Bearer, OAuthTokenType.Refresh},
    ClientType.OwnerCredentials: {OAuthTokenType.Bearer, OAuthTokenType.Refresh},
    ClientType.Implicit: {OAuthTokenType.Bearer},
    ClientType.ClientCredentials: {OAuthTokenType.Bearer},
}


def _query(
    ctx: AdminContext,
    db: Session,
    owner: str | None,
    client: str | None,
    identity: str | None,
    type: OAuthTokenType | None,
):
    stmt = (
        select(OAuthToken)
        .join(Client, OAuthToken.client_id == Client.id)
        .join(Application, Client.application_id == Application.id)
    )
    owner_id = ctx.resolve_owner_filter(db, owner)
    if owner_id is not None:
        stmt = stmt.where(Application.owner_id == owner_id)
    by_client = ctx.require_entity_input(db, Client, client, required=False)
    if by_client is not None:
        stmt = stmt.where(OAuthToken.client_id == by_client.id)
    by_identity = ctx.require_entity_input(db, UserIdentity, identity, required=False)
    if by_identity is not None:
        stmt = stmt.where(OAuthToken.identity_id == by_identity.id)
    if type is not None:
        stmt = stmt.where(OAuthToken.token_type == type)
    return stmt


def validate_input(ctx: AdminContext, db: Session, body: TokenIn) -> dict:
    """Resolve and cross-check every reference in a token body."""
    if body.expires_in < 1:
        raise BadRequest("expiresIn must be at least 1.")
    client = ctx.require_entity_input(db, Client, body.client)
    ctx.assert_mutable(client)
    if body.token_type not in ALLOWED_TYPES[client.type]:
        raise BadRequest(f"{client.type.value} clients cannot hold {body.token_type.value} tokens.")

    identity = None
    if client.type == ClientType.ClientCredentials:
        if body.identity is not None:
            raise BadRequest("Client credentials tokens have no identity.")
    else:
        identity = ctx.require_entity_input(db, UserIdentity, body.identity)
        if identity.user.application_id != client.application_id:
            raise BadRequest("Identity and client belong to different applications.")

    auth_token = None
    if body.token_type == OAuthTokenType.Refresh:
        auth_token = ctx.require_entity_input(db, OAuthToken, body.auth_token)
        if auth_token.token_type != OAuthTokenType.Bearer or auth_token.identity_id != identity.id:
            raise BadRequest("A refresh token must renew a bearer token of the same identity.")
    elif body.auth_token is not None:
        raise BadRequest("Only refresh tokens link to an auth token.")

    redirect = None
    if body.token_type == OAuthTokenType.Authorization:
        redirect = validate_redirect(body.redirect, client.get_redirect_uris_list())
        if redirect is None:
            raise BadRequest("The redirect is not registered for this client.")
    elif body.redirect is not None:
        raise BadRequest("Only authorization tokens carry a redirect.")

    role = identity.user.role if identity is not None else client.application.default_role
    try:
        scopes = validate_scopes(" ".join(body.scopes), role) if body.scopes else {}
    except InvalidScope:
        raise BadRequest("Requested scopes exceed the role.", error="invalid_scope")

    return {
        "client": client,
        "identity": identity,
        "auth_token": auth_token,
        "redirect": redirect,
        "scopes": scopes,
    }


@router.get("")
def browse_tokens(
    page: Page = Depends(browse_params),
    owner: str | None = None,
    client: str | None = None,
    identity: str | None = None,
    type: OAuthTokenType | None = None,
    ctx: AdminContext = require_scopes(TOKEN),
    db: Session = Depends(get_db),
):
    stmt = _query(ctx, db, owner, client, identity, type)
    return paginate(db, stmt, OAuthToken, page, SORT_FIELDS, token_json)


@router.get("/search")
def search_tokens(
    q: str = "",
    page: Page = Depends(search_params),
    owner: str | None = None,
    client: str | None = None,
    identity: str | None = None,
    type: OAuthTokenType | None = None,
    ctx: AdminContext = require_scopes(TOKEN),
    db: Session = Depends(get_db),
):
    matching = search(
        select(UserIdentity.id),
        q,
        [UserIdentity.remote_id, cast(UserIdentity.claims, String)],
    )
    stmt = _query(ctx, db, owner, client, identity, type)
    if q.strip():
        stmt = stmt.where(OAuthToken.identity_id.in_(matching))
    return paginate(db, stmt, OAuthToken, page, SORT_FIELDS, token_json)


@router.get("/{id}")
def read_token(id: str, ctx: AdminContext = require_scopes(TOKEN), db: Session = Depends(get_db)):
    return token_json(ctx.assert_can_access(db.get(OAuthToken, path_id(id))))


@router.post("")
def create_token(
    request: Request,
    body: TokenIn | None = Body(None),
    ctx: AdminContext = require_scopes(TOKEN),
    db: Session = Depends(get_db),
):
    check_new(body)
    refs = validate_input(ctx, db, body)
    token = OAuthToken(
        client=refs["client"],
        identity=refs["identity"],
        token_type=body.token_type,
        expires_in=body.expires_in,
        issued_at=utc_now(),
        redirect=refs["redirect"],
        auth_token=refs["auth_token"],
    )
    token.scopes = refs["scopes"]
    TokenStore(db).create(token)
    db.commit()
    logger.info("Admin created %s token for client_id=%x", body.token_type.value, token.client_id)
    return created(request, token.id, token_json(token))


@router.put("/{id}")
def update_token(
    id: str,
    body: TokenIn | None = Body(None),
    ctx: AdminContext = require_scopes(TOKEN),
    db: Session = Depends(get_db),
):
    token = ctx.assert_can_access(db.get(OAuthToken, path_id(id)))
    ctx.assert_mutable(token)
    if body is None:
        raise BadRequest("A request body is required.")
    check_body_id(body.id, token.id)
    unchanged = (
        same_ref(body.client, token.client_id)
        and same_ref(body.identity, token.identity_id)
        and same_ref(body.auth_token, token.auth_token_id)
        and body.token_type == token.token_type
    )
    if not unchanged:
        raise BadRequest("Only expiresIn and redirect may change.")
    refs = validate_input(ctx, db, body)
    token.expires_in = body.expires_in
    token.redirect = refs["redirect"]
    db.commit()
    return token_json(token)


@router.delete("/{id}")
def delete_token(id: str, ctx: AdminContext = require_scopes(TOKEN), db: Session = Depends(get_db)):
    token = ctx.assert_can_access(db.get(OAuthToken, path_id(id)))
    ctx.assert_mutable(token)
    TokenStore(db).delete(token.id)
    db.commit()
    return Response(status_code=204)
