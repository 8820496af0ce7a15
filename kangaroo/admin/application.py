"""
/v1/application: tenants. Owners see their own; application.admin sees all.
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
    ref_id,
    same_ref,
    search_params,
)
from kangaroo.admin.schemas import ApplicationIn, application_json
from kangaroo.admin.scopes import APPLICATION
from kangaroo.database import get_db
from kangaroo.errors import BadRequest
from kangaroo.models import Application, Role, User
from kangaroo.search import search

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/application", tags=["application"])

SORT_FIELDS = {
    "id": Application.id,
    "createdDate": Application.created_date,
    "modifiedDate": Application.modified_date,
    "name": Application.name,
}


def _query(ctx: AdminContext, db: Session, owner: str | None):
    stmt = select(Application)
    owner_id = ctx.resolve_owner_filter(db, owner)
    if owner_id is not None:
        stmt = stmt.where(Application.owner_id == owner_id)
    return stmt


@router.get("")
def browse_applications(
    page: Page = Depends(browse_params),
    owner: str | None = None,
    ctx: AdminContext = require_scopes(APPLICATION),
    db: Session = Depends(get_db),
):
    return paginate(db, _query(ctx, db, owner), Application, page, SORT_FIELDS, application_json)


@router.get("/search")
def search_applications(
    q: str = "",
    page: Page = Depends(search_params),
    owner: str | None = None,
    ctx: AdminContext = require_scopes(APPLICATION),
    db: Session = Depends(get_db),
):
    stmt = search(_query(ctx, db, owner), q, [Application.name])
    return paginate(db, stmt, Application, page, SORT_FIELDS, application_json)


@router.get("/{id}")
def read_application(id: str, ctx: AdminContext = require_scopes(APPLICATION), db: Session = Depends(get_db)):
    return application_json(ctx.assert_can_access(db.get(Application, path_id(id))))


def _resolve_owner(ctx: AdminContext, db: Session, value: str | None) -> User:
    """Only admins may hand an application to someone else; everyone else owns what they create."""
    owner_id = ref_id(value)
    user = ctx.user
    if owner_id is None:
        if user is None:
            raise BadRequest("An owner is required.")
        return user
    if not ctx.is_admin:
        if user is None or owner_id != user.id:
            raise BadRequest("Only admins may assign another owner.")
        return user
    owner = db.get(User, owner_id)
    if owner is None:
        raise BadRequest("Unknown owner.")
    return owner


@router.post("")
def create_application(
    request: Request,
    body: ApplicationIn | None = Body(None),
    ctx: AdminContext = require_scopes(APPLICATION),
    db: Session = Depends(get_db),
):
    check_new(body)
    if body.default_role is not None:
        raise BadRequest("A new application has no roles to default to.")
    application = Application(name=body.name, owner=_resolve_owner(ctx, db, body.owner))
    db.add(application)
    db.flush()
    db.commit()
    logger.info("Created application_id=%x", application.id)
    return created(request, application.id, application_json(application))


@router.put("/{id}")
def update_application(
    id: str,
    body: ApplicationIn | None = Body(None),
    ctx: AdminContext = require_scopes(APPLICATION),
    db: Session = Depends(get_db),
):
    application = ctx.assert_can_access(db.get(Application, path_id(id)))
    ctx.assert_mutable(application)
    if body is None:
        raise BadRequest("A request body is required.")
    check_body_id(body.id, application.id)
    if body.owner is not None and not same_ref(body.owner, application.owner_id):
        raise BadRequest("The owner of an application cannot change.")

    if not same_ref(body.default_role, application.default_role_id):
        role_id = ref_id(body.default_role)
        if role_id is None:
            raise BadRequest("The default role cannot be cleared.")
        role = db.get(Role, role_id)
        if role is None or role.application_id != application.id:
            raise BadRequest("The default role must belong to this application.")
        application.default_role = role

    application.name = body.name
    db.commit()
    return application_json(application)


@router.delete("/{id}")
def delete_application(id: str, ctx: AdminContext = require_scopes(APPLICATION), db: Session = Depends(get_db)):
    application = ctx.assert_can_access(db.get(Application, path_id(id)))
    ctx.assert_mutable(application)
    db.delete(application)
    db.commit()
    logger.info("Deleted application_id=%x", path_id(id))
    return Response(status_code=204)
