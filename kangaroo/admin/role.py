"""
/v1/role: named scope bundles, and /v1/role/{role_id}/scope/{scope_id} to link scopes into them.
"""
import logging

from fastapi import APIRouter, Body, Depends, Request, Response
from fastapi.responses import JSONResponse
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
from kangaroo.admin.schemas import RoleIn, role_json
from kangaroo.admin.scopes import ROLE, SCOPE, admin_scope
from kangaroo.database import get_db
from kangaroo.errors import BadRequest, Conflict, NotFound
from kangaroo.models import Application, ApplicationScope, Role
from kangaroo.search import search

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/role", tags=["role"])

SORT_FIELDS = {
    "id": Role.id,
    "createdDate": Role.created_date,
    "modifiedDate": Role.modified_date,
    "name": Role.name,
}


def _query(ctx: AdminContext, db: Session, owner: str | None, application: str | None):
    stmt = select(Role).join(Application, Role.application_id == Application.id)
    owner_id = ctx.resolve_owner_filter(db, owner)
    if owner_id is not None:
        stmt = stmt.where(Application.owner_id == owner_id)
    parent = ctx.require_entity_input(db, Application, application, required=False)
    if parent is not None:
        stmt = stmt.where(Role.application_id == parent.id)
    return stmt


@router.get("")
def browse_roles(
    page: Page = Depends(browse_params),
    owner: str | None = None,
    application: str | None = None,
    ctx: AdminContext = require_scopes(ROLE),
    db: Session = Depends(get_db),
):
    return paginate(db, _query(ctx, db, owner, application), Role, page, SORT_FIELDS, role_json)


@router.get("/search")
def search_roles(
    q: str = "",
    page: Page = Depends(search_params),
    owner: str | None = None,
    application: str | None = None,
    ctx: AdminContext = require_scopes(ROLE),
    db: Session = Depends(get_db),
):
    stmt = search(_query(ctx, db, owner, application), q, [Role.name])
    return paginate(db, stmt, Role, page, SORT_FIELDS, role_json)


@router.get("/{id}")
def read_role(id: str, ctx: AdminContext = require_scopes(ROLE), db: Session = Depends(get_db)):
    return role_json(ctx.assert_can_access(db.get(Role, path_id(id))))


@router.post("")
def create_role(
    request: Request,
    body: RoleIn | None = Body(None),
    ctx: AdminContext = require_scopes(ROLE),
    db: Session = Depends(get_db),
):
    check_new(body)
    application = ctx.require_entity_input(db, Application, body.application)
    ctx.assert_mutable(application)
    role = Role(application=application, name=body.name)
    db.add(role)
    db.flush()
    db.commit()
    return created(request, role.id, role_json(role))


@router.put("/{id}")
def update_role(
    id: str,
    body: RoleIn | None = Body(None),
    ctx: AdminContext = require_scopes(ROLE),
    db: Session = Depends(get_db),
):
    role = ctx.assert_can_access(db.get(Role, path_id(id)))
    ctx.assert_mutable(role)
    if body is None:
        raise BadRequest("A request body is required.")
    check_body_id(body.id, role.id)
    if body.application is not None and not same_ref(body.application, role.application_id):
        raise BadRequest("A role cannot move between applications.")
    role.name = body.name
    db.commit()
    return role_json(role)


@router.delete("/{id}")
def delete_role(id: str, ctx: AdminContext = require_scopes(ROLE), db: Session = Depends(get_db)):
    role = ctx.assert_can_access(db.get(Role, path_id(id)))
    ctx.assert_mutable(role)
    if role.application.default_role_id == role.id:
        raise BadRequest("The default role of an application cannot be deleted.")
    for user in list(role.users):
        user.role = None
    db.delete(role)
    db.commit()
    return Response(status_code=204)


def _link_target(ctx: AdminContext, db: Session, role_id: str, scope_id: str) -> tuple[Role, ApplicationScope]:
    role = ctx.assert_can_access(db.get(Role, path_id(role_id)))
    scope = db.get(ApplicationScope, path_id(scope_id))
    if scope is None:
        raise NotFound()
    # Linking also touches the scope, so the token must be allowed to manage scopes
    if not ctx.has_scope(SCOPE) and not ctx.has_scope(admin_scope(SCOPE)):
        raise BadRequest("Managing role scopes requires scope permission.", error="invalid_scope")
    if scope.application_id != role.application_id:
        raise BadRequest("Scope and role belong to different applications.")
    ctx.assert_mutable(role)
    return role, scope


@router.post("/{role_id}/scope/{scope_id}")
def link_scope(
    request: Request,
    role_id: str,
    scope_id: str,
    ctx: AdminContext = require_scopes(ROLE),
    db: Session = Depends(get_db),
):
    role, scope = _link_target(ctx, db, role_id, scope_id)
    if scope.name in role.scopes:
        raise Conflict("Scope already linked.")
    role.scopes[scope.name] = scope
    db.commit()
    logger.info("Linked scope_id=%x into role_id=%x", scope.id, role.id)
    return JSONResponse(role_json(role), status_code=201, headers={"Location": str(request.url)})


@router.delete("/{role_id}/scope/{scope_id}")
def unlink_scope(role_id: str, scope_id: str, ctx: AdminContext = require_scopes(ROLE), db: Session = Depends(get_db)):
    role, scope = _link_target(ctx, db, role_id, scope_id)
    if role.scopes.get(scope.name) is not scope:
        raise NotFound()
    del role.scopes[scope.name]
    db.commit()
    return Response(status_code=204)
