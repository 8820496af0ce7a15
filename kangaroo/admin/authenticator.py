"""
/v1/authenticator: per-client IdP bindings. Configuration is checked by the driver for the type.
"""
from fastapi import APIRouter, Body, Depends, Request, Response
from sqlalchemy import select
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
from kangaroo.admin.schemas import AuthenticatorIn, authenticator_json
from kangaroo.admin.scopes import AUTHENTICATOR
from kangaroo.authenticators import get_driver
from kangaroo.database import get_db
from kangaroo.errors import BadRequest, Conflict
from kangaroo.models import Application, Authenticator, AuthenticatorType, Client

router = APIRouter(prefix="/authenticator", tags=["authenticator"])

SORT_FIELDS = {
    "id": Authenticator.id,
    "createdDate": Authenticator.created_date,
    "modifiedDate": Authenticator.modified_date,
    "type": Authenticator.type,
}


def _query(ctx: AdminContext, db: Session, owner: str | None, client: str | None, type: AuthenticatorType | None):
    stmt = (
        select(Authenticator)
        .join(Client, Authenticator.client_id == Client.id)
        .join(Application, Client.application_id == Application.id)
    )
    owner_id = ctx.resolve_owner_filter(db, owner)
    if owner_id is not None:
        stmt = stmt.where(Application.owner_id == owner_id)
    parent = ctx.require_entity_input(db, Client, client, required=False)
    if parent is not None:
        stmt = stmt.where(Authenticator.client_id == parent.id)
    if type is not None:
        stmt = stmt.where(Authenticator.type == type)
    return stmt


@router.get("")
def browse_authenticators(
    page: Page = Depends(browse_params),
    owner: str | None = None,
    client: str | None = None,
    type: AuthenticatorType | None = None,
    ctx: AdminContext = require_scopes(AUTHENTICATOR),
    db: Session = Depends(get_db),
):
    stmt = _query(ctx, db, owner, client, type)
    return paginate(db, stmt, Authenticator, page, SORT_FIELDS, authenticator_json)


@router.get("/search")
def search_authenticators(
    q: str = "",
    page: Page = Depends(search_params),
    owner: str | None = None,
    client: str | None = None,
    type: AuthenticatorType | None = None,
    ctx: AdminContext = require_scopes(AUTHENTICATOR),
    db: Session = Depends(get_db),
):
    # The only text an authenticator has is its type name
    stmt = _query(ctx, db, owner, client, type)
    text = q.strip().lower()
    if text:
        matches = [t for t in AuthenticatorType if text in t.value.lower()]
        stmt = stmt.where(Authenticator.type.in_(matches))
    return paginate(db, stmt, Authenticator, page, SORT_FIELDS, authenticator_json)


@router.get("/{id}")
def read_authenticator(id: str, ctx: AdminContext = require_scopes(AUTHENTICATOR), db: Session = Depends(get_db)):
    return authenticator_json(ctx.assert_can_access(db.get(Authenticator, path_id(id))))


@router.post("")
def create_authenticator(
    request: Request,
    body: AuthenticatorIn | None = Body(None),
    ctx: AdminContext = require_scopes(AUTHENTICATOR),
    db: Session = Depends(get_db),
):
    check_new(body)
    client = ctx.require_entity_input(db, Client, body.client)
    ctx.assert_mutable(client)
    get_driver(body.type).validate_config(body.configuration)
    if any(a.type == body.type for a in client.authenticators):
        raise Conflict("This client already has an authenticator of this type.")
    authenticator = Authenticator(client=client, type=body.type, configuration=dict(body.configuration))
    db.add(authenticator)
    db.flush()
    db.commit()
    return created(request, authenticator.id, authenticator_json(authenticator))


@router.put("/{id}")
def update_authenticator(
    id: str,
    body: AuthenticatorIn | None = Body(None),
    ctx: AdminContext = require_scopes(AUTHENTICATOR),
    db: Session = Depends(get_db),
):
    authenticator = ctx.assert_can_access(db.get(Authenticator, path_id(id)))
    ctx.assert_mutable(authenticator)
    if body is None:
        raise BadRequest("A request body is required.")
    check_body_id(body.id, authenticator.id)
    if body.client is not None and not same_ref(body.client, authenticator.client_id):
        raise BadRequest("An authenticator cannot move between clients.")
    if body.type != authenticator.type:
        raise BadRequest("The type of an authenticator cannot change.")
    get_driver(body.type).validate_config(body.configuration)
    authenticator.configuration = dict(body.configuration)
    db.commit()
    return authenticator_json(authenticator)


@router.delete("/{id}")
def delete_authenticator(id: str, ctx: AdminContext = require_scopes(AUTHENTICATOR), db: Session = Depends(get_db)):
    authenticator = ctx.assert_can_access(db.get(Authenticator, path_id(id)))
    ctx.assert_mutable(authenticator)
    db.delete(authenticator)
    db.commit()
    return Response(status_code=204)
