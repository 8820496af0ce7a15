"""
/v1/client/{client_id}/redirect and /v1/client/{client_id}/referrer: a client's registered URIs.
Both are guarded by the client scopes and behave identically.
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
)
from kangaroo.admin.schemas import UriIn, uri_json
from kangaroo.admin.scopes import CLIENT
from kangaroo.database import get_db
from kangaroo.errors import BadRequest, Conflict, NotFound
from kangaroo.models import Client, ClientRedirect, ClientReferrer
from kangaroo.redirects import is_registrable

logger = logging.getLogger(__name__)


def build_router(name: str, model) -> APIRouter:
    router = APIRouter(prefix="/client/{client_id}/" + name, tags=[name])
    sort_fields = {
        "id": model.id,
        "createdDate": model.created_date,
        "modifiedDate": model.modified_date,
        "uri": model.uri,
    }

    def _client(ctx: AdminContext, db: Session, client_id: str) -> Client:
        return ctx.assert_can_access(db.get(Client, path_id(client_id)))

    def _child(ctx: AdminContext, db: Session, client_id: str, id: str):
        client = _client(ctx, db, client_id)
        child = db.get(model, path_id(id))
        if child is None or child.client_id != client.id:
            raise NotFound()
        return client, child

    def _check_uri(client: Client, uri: str, current=None) -> str:
        uri = uri.strip()
        if not is_registrable(uri):
            raise BadRequest("URI must be absolute and carry no fragment.")
        if any(c.uri == uri and c is not current for c in getattr(client, name + "s")):
            raise Conflict(f"This {name} is already registered.")
        return uri

    @router.get("")
    def browse(
        client_id: str,
        page: Page = Depends(browse_params),
        ctx: AdminContext = require_scopes(CLIENT),
        db: Session = Depends(get_db),
    ):
        client = _client(ctx, db, client_id)
        stmt = select(model).where(model.client_id == client.id)
        return paginate(db, stmt, model, page, sort_fields, uri_json)

    @router.get("/{id}")
    def read(client_id: str, id: str, ctx: AdminContext = require_scopes(CLIENT), db: Session = Depends(get_db)):
        _, child = _child(ctx, db, client_id, id)
        return uri_json(child)

    @router.post("")
    def create(
        request: Request,
        client_id: str,
        body: UriIn | None = Body(None),
        ctx: AdminContext = require_scopes(CLIENT),
        db: Session = Depends(get_db),
    ):
        client = _client(ctx, db, client_id)
        ctx.assert_mutable(client)
        check_new(body)
        if body.client is not None and not same_ref(body.client, client.id):
            raise BadRequest("Body client does not match the path.")
        child = model(client=client, uri=_check_uri(client, body.uri))
        db.add(child)
        db.flush()
        db.commit()
        logger.info("Registered %s for client_id=%x", name, client.id)
        return created(request, child.id, uri_json(child))

    @router.put("/{id}")
    def update(
        client_id: str,
        id: str,
        body: UriIn | None = Body(None),
        ctx: AdminContext = require_scopes(CLIENT),
        db: Session = Depends(get_db),
    ):
        client, child = _child(ctx, db, client_id, id)
        ctx.assert_mutable(child)
        if body is None:
            raise BadRequest("A request body is required.")
        check_body_id(body.id, child.id)
        if body.client is not None and not same_ref(body.client, client.id):
            raise BadRequest(f"A {name} cannot move between clients.")
        child.uri = _check_uri(client, body.uri, current=child)
        db.commit()
        return uri_json(child)

    @router.delete("/{id}")
    def delete(client_id: str, id: str, ctx: AdminContext = require_scopes(CLIENT), db: Session = Depends(get_db)):
        _, child = _child(ctx, db, client_id, id)
        ctx.assert_mutable(child)
        db.delete(child)
        db.commit()
        return Response(status_code=204)

    return router


redirect_router = build_router("redirect", ClientRedirect)
referrer_router = build_router("referrer", ClientReferrer)
