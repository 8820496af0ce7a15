"""
Paging, sorting and the shared helpers every admin resource uses.
"""
from dataclasses import dataclass
from typing import Literal

from fastapi import Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from kangaroo.config import LIST_LIMIT_DEFAULT, LIST_LIMIT_MAX
from kangaroo.crypto import MalformedId, decode_id, encode_id
from kangaroo.errors import BadRequest, NotFound


@dataclass
class Page:
    offset: int
    limit: int
    sort: str = "createdDate"
    order: str = "asc"


def browse_params(
    offset: int = Query(0, ge=0),
    limit: int = Query(LIST_LIMIT_DEFAULT, ge=1, le=LIST_LIMIT_MAX),
    sort: str = Query("createdDate"),
    order: Literal["asc", "desc"] = Query("asc"),
) -> Page:
    return Page(offset=offset, limit=limit, sort=sort, order=order)


def search_params(
    offset: int = Query(0, ge=0),
    limit: int = Query(LIST_LIMIT_DEFAULT, ge=1, le=LIST_LIMIT_MAX),
) -> Page:
    return Page(offset=offset, limit=limit)


def paginate(db: Session, stmt, model, page: Page, sort_fields: dict, serialize) -> dict:
    """Run stmt as a list response: {total, offset, limit, sort, order, results}."""
    column = sort_fields.get(page.sort)
    if column is None:
        raise BadRequest(f"Cannot sort by {page.sort}.")
    total = db.scalar(select(func.count()).select_from(stmt.subquery()))
    ordering = column.desc() if page.order == "desc" else column.asc()
    rows = db.scalars(stmt.order_by(ordering, model.id).offset(page.offset).limit(page.limit)).all()
    return {
        "total": total,
        "offset": page.offset,
        "limit": page.limit,
        "sort": page.sort,
        "order": page.order,
        "results": [serialize(row) for row in rows],
    }


def path_id(value: str) -> int:
    """Ids in the path that cannot exist are simply not found."""
    try:
        entity_id = decode_id(value)
    except MalformedId:
        raise NotFound()
    if entity_id is None:
        raise NotFound()
    return entity_id


def check_body_id(body_id: str | None, entity_id: int) -> None:
    try:
        if decode_id(body_id) != entity_id:
            raise BadRequest("Body id does not match the path.")
    except MalformedId:
        raise BadRequest("Malformed id.")


def check_new(body) -> None:
    if body is None:
        raise BadRequest("A request body is required.")
    if body.id is not None:
        raise BadRequest("New entities may not carry an id.")


def created(request: Request, entity_id: int, body: dict) -> JSONResponse:
    location = f"{str(request.url).split('?', 1)[0].rstrip('/')}/{encode_id(entity_id)}"
    return JSONResponse(body, status_code=201, headers={"Location": location})


def ref_id(value: str | None) -> int | None:
    """Id referenced from a body or filter; malformed references are 400."""
    try:
        return decode_id(value)
    except MalformedId:
        raise BadRequest("Malformed reference.")


def same_ref(value: str | None, current_id: int | None) -> bool:
    """Whether a body reference names the entity already set."""
    try:
        return decode_id(value) == current_id
    except MalformedId:
        return False
