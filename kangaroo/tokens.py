"""
Token store and lifecycle. Codes and refresh tokens are consumed by conditional DELETE:
the first writer sees one row gone, every later one sees none.
"""
import logging
from datetime import datetime

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from kangaroo.errors import InvalidGrant
from kangaroo.models import (
    ApplicationScope,
    Client,
    OAuthToken,
    OAuthTokenType,
    UserIdentity,
    token_scopes,
    utc_now,
)

logger = logging.getLogger(__name__)


class TokenStore:
    def __init__(self, db: Session):
        self.db = db

    def create(self, token: OAuthToken) -> OAuthToken:
        self.db.add(token)
        self.db.flush()
        return token

    def get(self, token_id: int | None, lock: bool = False) -> OAuthToken | None:
        """Load a token by id; lock=True takes a row lock where the database supports it."""
        if token_id is None:
            return None
        stmt = select(OAuthToken).where(OAuthToken.id == token_id)
        if lock:
            stmt = stmt.with_for_update()
        return self.db.scalars(stmt).first()

    def find_active(
        self,
        token_id: int | None,
        token_type: OAuthTokenType,
        client: Client,
        now: datetime | None = None,
    ) -> OAuthToken | None:
        """An unexpired token of the given type issued to client, locked for this transaction."""
        token = self.get(token_id, lock=True)
        if token is None or token.token_type != token_type or token.client_id != client.id:
            return None
        if token.is_expired(now):
            return None
        return token

    def _delete_where(self, *criteria) -> int:
        ids = select(OAuthToken.id).where(*criteria).scalar_subquery()
        self.db.execute(delete(token_scopes).where(token_scopes.c.token_id.in_(ids)))
        self.db.execute(
            update(OAuthToken)
            .where(OAuthToken.auth_token_id.in_(ids))
            .values(auth_token_id=None)
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(
            delete(OAuthToken).where(*criteria).execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    def delete(self, token_id: int) -> bool:
        return self._delete_where(OAuthToken.id == token_id) == 1

    def consume(self, token_id: int, token_type: OAuthTokenType) -> bool:
        """Single-use removal: True only for the caller that actually deleted the row."""
        return self._delete_where(OAuthToken.id == token_id, OAuthToken.token_type == token_type) == 1

    def delete_all_for_client(self, client_id: int) -> int:
        count = self._delete_where(OAuthToken.client_id == client_id)
        logger.info("Revoked %s tokens for client_id=%x", count, client_id)
        return count

    def delete_expired(self, now: datetime | None = None) -> int:
        now = now or utc_now()
        rows = self.db.scalars(select(OAuthToken)).all()
        expired = [t.id for t in rows if t.is_expired(now)]
        if not expired:
            return 0
        return self._delete_where(OAuthToken.id.in_(expired))

    def swap_refresh(self, old: OAuthToken, new_access: OAuthToken, new_refresh: OAuthToken) -> tuple[OAuthToken, OAuthToken]:
        """
        Replace a refresh token and the bearer it renews with a new pair, inside the caller's transaction.
        Raises InvalidGrant if another request consumed old first.
        """
        old_id = old.id
        old_bearer_id = old.auth_token_id
        if not self.consume(old_id, OAuthTokenType.Refresh):
            logger.debug("Refresh token already consumed")
            raise InvalidGrant("The refresh token has already been used.")
        if old_bearer_id is not None:
            self.delete(old_bearer_id)
        self.create(new_access)
        new_refresh.auth_token = new_access
        self.create(new_refresh)
        logger.info("Refresh rotated for client_id=%x", new_access.client_id)
        return new_access, new_refresh

    def _build(
        self,
        token_type: OAuthTokenType,
        client: Client,
        identity: UserIdentity | None,
        scopes: dict[str, ApplicationScope],
        expires_in: int,
        redirect: str | None = None,
        auth_token: OAuthToken | None = None,
    ) -> OAuthToken:
        token = OAuthToken(
            client=client,
            identity=identity,
            token_type=token_type,
            expires_in=expires_in,
            issued_at=utc_now(),
            redirect=redirect,
            auth_token=auth_token,
        )
        token.scopes = dict(scopes)
        return token

    def new_bearer(self, client, identity, scopes) -> OAuthToken:
        """Build, without persisting, a Bearer token with the client's access lifetime."""
        return self._build(OAuthTokenType.Bearer, client, identity, scopes, client.access_token_expires_in)

    def new_refresh(self, client, identity, scopes) -> OAuthToken:
        return self._build(OAuthTokenType.Refresh, client, identity, scopes, client.refresh_token_expires_in)

    def issue_bearer(self, client: Client, identity: UserIdentity | None, scopes) -> OAuthToken:
        return self.create(self.new_bearer(client, identity, scopes))

    def issue_refresh(self, client: Client, identity: UserIdentity | None, scopes, auth_token: OAuthToken) -> OAuthToken:
        token = self.new_refresh(client, identity, scopes)
        token.auth_token = auth_token
        return self.create(token)

    def issue_authorization(self, client: Client, identity: UserIdentity, scopes, redirect: str) -> OAuthToken:
        token = self._build(
            OAuthTokenType.Authorization,
            client,
            identity,
            scopes,
            client.authorization_code_expires_in,
            redirect=redirect,
        )
        return self.create(token)
