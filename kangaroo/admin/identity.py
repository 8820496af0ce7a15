"""
/v1/identity: the (type, remoteId) projections of external logins onto users.
Password hashes are accepted on write and never returned.
"""
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
from kangaroo.admin.schemas import IdentityIn, identity_json
from kangaroo.admin.scopes import IDENTITY
from kangaroo.authenticators.base import find_identity
from kangaroo.crypto import hash_password
from kangaroo.database import get_db
from kangaroo.errors import BadRequest, Conflict
from kangaroo.models import Application, AuthenticatorType, User, UserIdentity
from kangaroo.search import search

router = APIRouter(prefix="/identity", tags=["identity"])

SORT_FIELDS = {
    "id": UserIdentity.id,
    "createdDate": UserIdentity.created_date,
    "modifiedDate": UserIdentity.modified_date,
    "remoteId": UserIdentity.remote_id,
    "type": UserIdentity.type,
}


def _query(ctx: AdminContext, db: Session, owner: str | None, user: str | None, type: AuthenticatorType | None):
    stmt = (
        select(UserIdentity)
        .join(User, UserIdentity.user_id == User.id)
        .join(Application, User.application_id == Application.id)
    )
    owner_id = ctx.resolve_owner_filter(db, owner)
    if owner_id is not None:
        stmt = stmt.where(Application.owner_id == owner_id)
    parent = ctx.require_entity_input(db, User, user, required=False)
    if parent is not None:
        stmt = stmt.where(UserIdentity.user_id == parent.id)
    if type is not None:
        stmt = stmt.where(UserIdentity.type == type)
    return stmt


def _check_unique(db: Session, user: User, type: AuthenticatorType, remote_id: str, current=None) -> None:
    existing = find_identity(db, user.application, type, remote_id)
    if existing is not None and existing is not current:
        raise Conflict("This identity already exists in the application.")


def _password(body: IdentityIn) -> str | None:
    if body.password is None:
        return None
    if body.type != AuthenticatorType.Password:
        raise BadRequest("Only Password identities carry a password.")
    return hash_password(body.password)


@router.get("")
def browse_identities(
    page: Page = Depends(browse_params),
    owner: str | None = None,
    user: str | None = None,
    type: AuthenticatorType | None = None,
    ctx: AdminContext = require_scopes(IDENTITY),
    db: Session = Depends(get_db),
):
    return paginate(db, _query(ctx, db, owner, user, type), UserIdentity, page, SORT_FIELDS, identity_json)


@router.get("/search")
def search_identities(
    q: str = "",
    page: Page = Depends(search_params),
    owner: str | None = None,
    user: str | None = None,
    type: AuthenticatorType | None = None,
    ctx: AdminContext = require_scopes(IDENTITY),
    db: Session = Depends(get_db),
):
    stmt = search(
        _query(ctx, db, owner, user, type),
        q,
        [UserIdentity.remote_id, cast(UserIdentity.claims, String)],
    )
    return paginate(db, stmt, UserIdentity, page, SORT_FIELDS, identity_json)


@router.get("/{id}")
def read_identity(id: str, ctx: AdminContext = require_scopes(IDENTITY), db: Session = Depends(get_db)):
    return identity_json(ctx.assert_can_access(db.get(UserIdentity, path_id(id))))


@router.post("")
def create_identity(
    request: Request,
    body: IdentityIn | None = Body(None),
    ctx: AdminContext = require_scopes(IDENTITY),
    db: Session = Depends(get_db),
):
    check_new(body)
    user = ctx.require_entity_input(db, User, body.user)
    ctx.assert_mutable(user)
    _check_unique(db, user, body.type, body.remote_id)
    identity = UserIdentity(
        user=user,
        type=body.type,
        remote_id=body.remote_id,
        claims=dict(body.claims),
        password=_password(body),
    )
    db.add(identity)
    db.flush()
    db.commit()
    return created(request, identity.id, identity_json(identity))


@router.put("/{id}")
def update_identity(
    id: str,
    body: IdentityIn | None = Body(None),
    ctx: AdminContext = require_scopes(IDENTITY),
    db: Session = Depends(get_db),
):
    identity = ctx.assert_can_access(db.get(UserIdentity, path_id(id)))
    ctx.assert_mutable(identity)
    if body is None:
        raise BadRequest("A request body is required.")
    check_body_id(body.id, identity.id)
    if body.user is not None and not same_ref(body.user, identity.user_id):
        raise BadRequest("An identity cannot move between users.")
    if body.type != identity.type:
        raise BadRequest("The type of an identity cannot change.")
    if body.remote_id != identity.remote_id:
        _check_unique(db, identity.user, body.type, body.remote_id, current=identity)
        identity.remote_id = body.remote_id
    identity.claims = dict(body.claims)
    password = _password(body)
    if password is not None:
        identity.password = password
    db.commit()
    return identity_json(identity)


@router.delete("/{id}")
def delete_identity(id: str, ctx: AdminContext = require_scopes(IDENTITY), db: Session = Depends(get_db)):
    identity = ctx.assert_can_access(db.get(UserIdentity, path_id(id)))
    ctx.assert_mutable(identity)
    db.delete(identity)
    db.commit()
    return Response(status_code=204)
