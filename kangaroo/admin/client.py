"""
/v1/client: OAuth relying parties within an application.
"""
import logging

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
from kangaroo.admin.schemas import ClientIn, client_json
from kangaroo.admin.scopes import CLIENT
from kangaroo.database import get_db
from kangaroo.errors import BadRequest
from kangaroo.models import Application, Client, ClientType
from kangaroo.search import search
from kangaroo.tokens import TokenStore

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/client", tags=["client"])

SORT_FIELDS = {
    "id": Client.id,
    "createdDate": Client.created_date,
    "modifiedDate": Client.modified_date,
    "name": Client.name,
    "type": Client.type,
}

LIFETIME_KEYS = ("access_token_expires_in", "refresh_token_expires_in", "authorization_code_expires_in")


def validate_configuration(configuration: dict[str, str]) -> dict[str, str]:
    for key in LIFETIME_KEYS:
        if key in configuration:
            try:
                valid = int(configuration[key]) >= 1
            except ValueError:
                valid = False
            if not valid:
                raise BadRequest(f"{key} must be a positive integer.")
    return dict(configuration)


def _query(ctx: AdminContext, db: Session, owner: str | None, application: str | None, type: ClientType | None):
    stmt = select(Client).join(Application, Client.application_id == Application.id)
    owner_id = ctx.resolve_owner_filter(db, owner)
    if owner_id is not None:
        stmt = stmt.where(Application.owner_id == owner_id)
    parent = ctx.require_entity_input(db, Application, application, required=False)
    if parent is not None:
        stmt = stmt.where(Client.application_id == parent.id)
    if type is not None:
        stmt = stmt.where(Client.type == type)
    return stmt


@router.get("")
def browse_clients(
    page: Page = Depends(browse_params),
    owner: str | None = None,
    application: str | None = None,
    type: ClientType | None = None,
    ctx: AdminContext = require_scopes(CLIENT),
    db: Session = Depends(get_db),
):
    stmt = _query(ctx, db, owner, application, type)
    return paginate(db, stmt, Client, page, SORT_FIELDS, client_json)


@router.get("/search")
def search_clients(
    q: str = "",
    page: Page = Depends(search_params),
    owner: str | None = None,
    application: str | None = None,
    type: ClientType | None = None,
    ctx: AdminContext = require_scopes(CLIENT),
    db: Session = Depends(get_db),
):
    stmt = search(_query(ctx, db, owner, application, type), q, [Client.name])
    return paginate(db, stmt, Client, page, SORT_FIELDS, client_json)


@router.get("/{id}")
def read_client(id: str, ctx: AdminContext = require_scopes(CLIENT), db: Session = Depends(get_db)):
    return client_json(ctx.assert_can_access(db.get(Client, path_id(id))))


@router.post("")
def create_client(
    request: Request,
    body: ClientIn | None = Body(None),
    ctx: AdminContext = require_scopes(CLIENT),
    db: Session = Depends(get_db),
):
    check_new(body)
    application = ctx.require_entity_input(db, Application, body.application)
    ctx.assert_mutable(application)
    client = Client(
        application=application,
        name=body.name,
        client_secret=body.client_secret or None,
        type=body.type,
        configuration=validate_configuration(body.configuration),
    )
    db.add(client)
    db.flush()
    db.commit()
    logger.info("Created client_id=%x type=%s", client.id, client.type.value)
    return created(request, client.id, client_json(client))


@router.put("/{id}")
def update_client(
    id: str,
    body: ClientIn | None = Body(None),
    ctx: AdminContext = require_scopes(CLIENT),
    db: Session = Depends(get_db),
):
    client = ctx.assert_can_access(db.get(Client, path_id(id)))
    ctx.assert_mutable(client)
    if body is None:
        raise BadRequest("A request body is required.")
    check_body_id(body.id, client.id)
    if body.application is not None and not same_ref(body.application, client.application_id):
        raise BadRequest("A client cannot move between applications.")
    client.name = body.name
    client.client_secret = body.client_secret or None
    client.type = body.type
    client.configuration = validate_configuration(body.configuration)
    db.commit()
    return client_json(client)


@router.delete("/{id}")
def delete_client(id: str, ctx: AdminContext = require_scopes(CLIENT), db: Session = Depends(get_db)):
    client = ctx.assert_can_access(db.get(Client, path_id(id)))
    ctx.assert_mutable(client)
    TokenStore(db).delete_all_for_client(client.id)
    db.delete(client)
    db.commit()
    return Response(status_code=204)
