"""
/v1/user: people inside an application, each with an optional role.
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
    ref_id,
    same_ref,
    search_params,
)
from kangaroo.admin.schemas import UserIn, user_json
from kangaroo.admin.scopes import USER
from kangaroo.database import get_db
from kangaroo.errors import BadRequest
from kangaroo.models import Application, Role, User, UserIdentity
from kangaroo.search import search

router = APIRouter(prefix="/user", tags=["user"])

SORT_FIELDS = {
    "id": User.id,
    "createdDate": User.created_date,
    "modifiedDate": User.modified_date,
}


def _query(ctx: AdminContext, db: Session, owner: str | None, application: str | None, role: str | None):
    stmt = select(User).join(Application, User.application_id == Application.id)
    owner_id = ctx.resolve_owner_filter(db, owner)
    if owner_id is not None:
        stmt = stmt.where(Application.owner_id == owner_id)
    parent = ctx.require_entity_input(db, Application, application, required=False)
    if parent is not None:
        stmt = stmt.where(User.application_id == parent.id)
    by_role = ctx.require_entity_input(db, Role, role, required=False)
    if by_role is not None:
        stmt = stmt.where(User.role_id == by_role.id)
    return stmt


def _role_for(db: Session, application: Application, value: str | None) -> Role | None:
    role_id = ref_id(value)
    if role_id is None:
        return None
    role = db.get(Role, role_id)
    if role is None or role.application_id != application.id:
        raise BadRequest("The role must belong to the user's application.")
    return role


@router.get("")
def browse_users(
    page: Page = Depends(browse_params),
    owner: str | None = None,
    application: str | None = None,
    role: str | None = None,
    ctx: AdminContext = require_scopes(USER),
    db: Session = Depends(get_db),
):
    return paginate(db, _query(ctx, db, owner, application, role), User, page, SORT_FIELDS, user_json)


@router.get("/search")
def search_users(
    q: str = "",
    page: Page = Depends(search_params),
    owner: str | None = None,
    application: str | None = None,
    role: str | None = None,
    ctx: AdminContext = require_scopes(USER),
    db: Session = Depends(get_db),
):
    # Users have no text of their own; match on their identities
    matching = search(
        select(UserIdentity.user_id),
        q,
        [UserIdentity.remote_id, cast(UserIdentity.claims, String)],
    )
    stmt = _query(ctx, db, owner, application, role)
    if q.strip():
        stmt = stmt.where(User.id.in_(matching))
    return paginate(db, stmt, User, page, SORT_FIELDS, user_json)


@router.get("/{id}")
def read_user(id: str, ctx: AdminContext = require_scopes(USER), db: Session = Depends(get_db)):
    return user_json(ctx.assert_can_access(db.get(User, path_id(id))))


@router.post("")
def create_user(
    request: Request,
    body: UserIn | None = Body(None),
    ctx: AdminContext = require_scopes(USER),
    db: Session = Depends(get_db),
):
    check_new(body)
    application = ctx.require_entity_input(db, Application, body.application)
    ctx.assert_mutable(application)
    user = User(application=application, role=_role_for(db, application, body.role))
    db.add(user)
    db.flush()
    db.commit()
    return created(request, user.id, user_json(user))


@router.put("/{id}")
def update_user(
    id: str,
    body: UserIn | None = Body(None),
    ctx: AdminContext = require_scopes(USER),
    db: Session = Depends(get_db),
):
    user = ctx.assert_can_access(db.get(User, path_id(id)))
    ctx.assert_mutable(user)
    if body is None:
        raise BadRequest("A request body is required.")
    check_body_id(body.id, user.id)
    if body.application is not None and not same_ref(body.application, user.application_id):
        raise BadRequest("A user cannot move between applications.")
    user.role = _role_for(db, user.application, body.role)
    db.commit()
    return user_json(user)


@router.delete("/{id}")
def delete_user(id: str, ctx: AdminContext = require_scopes(USER), db: Session = Depends(get_db)):
    user = ctx.assert_can_access(db.get(User, path_id(id)))
    ctx.assert_mutable(user)
    if user.owned_applications:
        raise BadRequest("This user still owns applications.")
    db.delete(user)
    db.commit()
    return Response(status_code=204)
