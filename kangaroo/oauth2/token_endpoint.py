"""
Token endpoint (POST /token). Dispatches on grant_type after client authentication.
"""
import logging

from fastapi import APIRouter, Depends, Form, Request, Response
from sqlalchemy.orm import Session

from kangaroo.database import get_db
from kangaroo.errors import InvalidRequest, UnsupportedGrantType
from kangaroo.oauth2.client_auth import require_client_auth
from kangaroo.oauth2.grants import GRANTS, TokenRequest

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/token")
def token(
    request: Request,
    response: Response,
    grant_type: str | None = Form(None),
    code: str | None = Form(None),
    redirect_uri: str | None = Form(None),
    scope: str | None = Form(None),
    username: str | None = Form(None),
    password: str | None = Form(None),
    refresh_token: str | None = Form(None),
    state: str | None = Form(None),
    client_id: str | None = Form(None),
    client_secret: str | None = Form(None),
    db: Session = Depends(get_db),
):
    """
    authorization_code, password, client_credentials and refresh_token grants.
    Everything a grant writes commits together or not at all.
    """
    client = require_client_auth(db, request, client_id, client_secret)
    if not grant_type:
        raise InvalidRequest("grant_type is required.")
    handler = GRANTS.get(grant_type)
    if handler is None:
        raise UnsupportedGrantType()

    form = TokenRequest(
        grant_type=grant_type,
        code=code,
        redirect_uri=redirect_uri,
        scope=scope,
        username=username,
        password=password,
        refresh_token=refresh_token,
        state=state,
    )
    body = handler(db, client, form)
    db.commit()
    response.headers["Cache-Control"] = "no-store"
    response.headers["Pragma"] = "no-cache"
    return body
