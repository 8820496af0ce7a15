"""
/v1/scope: the capability names an application can grant.
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
from kangaroo.admin.schemas import ScopeIn, scope_json
from kangaroo.admin.scopes import SCOPE
from kangaroo.database import get_db
from kangaroo.errors import BadRequest, Conflict
from kangaroo.models import Application, ApplicationScope
from kangaroo.search import search

router = APIRouter(prefix="/scope", tags=["scope"])

SORT_FIELDS = {
    "id": ApplicationScope.id,
    "createdDate": ApplicationScope.created_date,
    "modifiedDate": ApplicationScope.modified_date,
    "name": ApplicationScope.name,
}


def _query(ctx: AdminContext, db: Session, owner: str | None, application: str | None):
    stmt = select(ApplicationScope).join(Application, ApplicationScope.application_id == Application.id)
    owner_id = ctx.resolve_owner_filter(db, owner)
    if owner_id is not None:
        stmt = stmt.where(Application.owner_id == owner_id)
    parent = ctx.require_entity_input(db, Application, application, required=False)
    if parent is not None:
        stmt = stmt.where(ApplicationScope.application_id == parent.id)
    return stmt


@router.get("")
def browse_scopes(
    page: Page = Depends(browse_params),
    owner: str | None = None,
    application: str | None = None,
    ctx: AdminContext = require_scopes(SCOPE),
    db: Session = Depends(get_db),
):
    return paginate(db, _query(ctx, db, owner, application), ApplicationScope, page, SORT_FIELDS, scope_json)


@router.get("/search")
def search_scopes(
    q: str = "",
    page: Page = Depends(search_params),
    owner: str | None = None,
    application: str | None = None,
    ctx: AdminContext = require_scopes(SCOPE),
    db: Session = Depends(get_db),
):
    stmt = search(_query(ctx, db, owner, application), q, [ApplicationScope.name])
    return paginate(db, stmt, ApplicationScope, page, SORT_FIELDS, scope_json)


@router.get("/{id}")
def read_scope(id: str, ctx: AdminContext = require_scopes(SCOPE), db: Session = Depends(get_db)):
    return scope_json(ctx.assert_can_access(db.get(ApplicationScope, path_id(id))))


@router.post("")
def create_scope(
    request: Request,
    body: ScopeIn | None = Body(None),
    ctx: AdminContext = require_scopes(SCOPE),
    db: Session = Depends(get_db),
):
    check_new(body)
    application = ctx.require_entity_input(db, Application, body.application)
    ctx.assert_mutable(application)
    if body.name in application.scopes:
        raise Conflict("A scope with this name already exists.")
    scope = ApplicationScope(name=body.name, application=application)
    db.add(scope)
    db.flush()
    db.commit()
    return created(request, scope.id, scope_json(scope))


@router.put("/{id}")
def update_scope(
    id: str,
    body: ScopeIn | None = Body(None),
    ctx: AdminContext = require_scopes(SCOPE),
    db: Session = Depends(get_db),
):
    scope = ctx.assert_can_access(db.get(ApplicationScope, path_id(id)))
    ctx.assert_mutable(scope)
    if body is None:
        raise BadRequest("A request body is required.")
    check_body_id(body.id, scope.id)
    if body.application is not None and not same_ref(body.application, scope.application_id):
        raise BadRequest("A scope cannot move between applications.")
    if body.name != scope.name:
        if body.name in scope.application.scopes:
            raise Conflict("A scope with this name already exists.")
        # Name-keyed collections pick up the new key when reloaded after commit
        scope.name = body.name
    db.commit()
    return scope_json(scope)


@router.delete("/{id}")
def delete_scope(id: str, ctx: AdminContext = require_scopes(SCOPE), db: Session = Depends(get_db)):
    scope = ctx.assert_can_access(db.get(ApplicationScope, path_id(id)))
    ctx.assert_mutable(scope)
    db.delete(scope)
    db.commit()
    return Response(status_code=204)
