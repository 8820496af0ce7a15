"""
Admin authorization gate. Every admin route declares (access_scope, admin_scope);
the bearer token must come from an admin-application client and hold one of them.
"""
import logging
from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from kangaroo.admin.scopes import admin_scope as admin_scope_for
from kangaroo.crypto import MalformedId, decode_id
from kangaroo.database import get_db
from kangaroo.errors import BadRequest, Forbidden, NotFound, Unauthorized
from kangaroo.models import OAuthToken, OAuthTokenType, User, application_of, owner_of

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

_CHALLENGE = {"WWW-Authenticate": "Bearer"}


@dataclass
class AdminContext:
    token: OAuthToken
    access_scope: str
    admin_scope: str
    admin_application_id: int | None

    @property
    def is_admin(self) -> bool:
        return self.admin_scope in self.token.scopes

    @property
    def user(self) -> User | None:
        identity = self.token.identity
        return identity.user if identity is not None else None

    def has_scope(self, name: str) -> bool:
        return name in self.token.scopes

    def can_access(self, entity) -> bool:
        if entity is None:
            return False
        if self.is_admin:
            return True
        owner = owner_of(entity)
        user = self.user
        return owner is not None and user is not None and owner.id == user.id

    def assert_can_access(self, entity):
        """Invisible and missing look the same: 404."""
        if not self.can_access(entity):
            raise NotFound()
        return entity

    def is_admin_application(self, entity) -> bool:
        application = application_of(entity)
        return application is not None and application.id == self.admin_application_id

    def assert_mutable(self, entity) -> None:
        if self.is_admin_application(entity):
            raise Forbidden()

    def require_entity_input(self, db: Session, model, value: str | None, required: bool = True):
        """Resolve an id referenced from a request body or filter; unusable references are 400."""
        try:
            entity_id = decode_id(value) if isinstance(value, str) else None
        except MalformedId:
            raise BadRequest(f"Malformed {model.__name__} reference.")
        if entity_id is None:
            if required:
                raise BadRequest(f"{model.__name__} is required.")
            return None
        entity = db.get(model, entity_id)
        if not self.can_access(entity):
            raise BadRequest(f"Unknown {model.__name__}.")
        return entity

    def resolve_owner_filter(self, db: Session, owner: str | None) -> int | None:
        """
        Owner id to filter lists by. Non-admins always see only their own entities
        and may not name anyone else.
        """
        try:
            requested = decode_id(owner)
        except MalformedId:
            raise BadRequest("Malformed owner.")
        if self.is_admin:
            if requested is not None and db.get(User, requested) is None:
                raise BadRequest("Unknown owner.")
            return requested
        user = self.user
        if user is None:
            # No user, nothing owned; matches no row
            return -1
        if requested is not None and requested != user.id:
            raise BadRequest("Only admins may filter by another owner.")
        return user.id


def _load_token(db: Session, credentials: HTTPAuthorizationCredentials | None) -> OAuthToken:
    if credentials is None:
        raise Unauthorized(headers=_CHALLENGE)
    try:
        token_id = decode_id(credentials.credentials)
    except MalformedId:
        raise Unauthorized(headers=_CHALLENGE)
    token = db.get(OAuthToken, token_id) if token_id is not None else None
    if token is None or token.token_type != OAuthTokenType.Bearer or token.is_expired():
        raise Unauthorized(headers=_CHALLENGE)
    return token


def require_scopes(access_scope: str, admin_scope: str | None = None):
    """Dependency factory: a valid admin bearer holding access_scope or its admin variant."""
    admin_scope = admin_scope or admin_scope_for(access_scope)

    def _check(
        request: Request,
        credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
        db: Annotated[Session, Depends(get_db)],
    ) -> AdminContext:
        token = _load_token(db, credentials)
        admin_application_id = getattr(request.app.state, "admin_application_id", None)
        if token.client.application_id != admin_application_id:
            logger.debug("Admin call with a token from a non-admin application")
            raise Unauthorized(headers=_CHALLENGE)
        if access_scope not in token.scopes and admin_scope not in token.scopes:
            logger.debug("Admin call lacking %s / %s", access_scope, admin_scope)
            raise Unauthorized(headers=_CHALLENGE)
        return AdminContext(
            token=token,
            access_scope=access_scope,
            admin_scope=admin_scope,
            admin_application_id=admin_application_id,
        )

    return Depends(_check)
