"""
Pending logins. A state row carries the /authorize request across the IdP round trip and is used once.
"""
import logging
import secrets
from datetime import datetime

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from kangaroo.models import Authenticator, AuthenticatorState, Client, utc_now

logger = logging.getLogger(__name__)


def create_state(
    db: Session,
    client: Client,
    authenticator: Authenticator,
    redirect: str,
    client_state: str | None = None,
    client_scope: str | None = None,
) -> AuthenticatorState:
    state = AuthenticatorState(
        client=client,
        authenticator=authenticator,
        client_state=client_state,
        client_scope=client_scope,
        client_redirect=redirect,
        client_nonce=secrets.token_urlsafe(16),
        authenticator_state=secrets.token_urlsafe(32),
        authenticator_nonce=secrets.token_urlsafe(32),
    )
    db.add(state)
    db.flush()
    return state


def find_state(db: Session, value: str | None, now: datetime | None = None) -> AuthenticatorState | None:
    """The live state for an authenticator_state value; expired rows are treated as absent."""
    if not value:
        return None
    stmt = select(AuthenticatorState).where(AuthenticatorState.authenticator_state == value).with_for_update()
    state = db.scalars(stmt).first()
    if state is None:
        return None
    if state.is_expired(now):
        logger.debug("Authenticator state expired for client_id=%x", state.client_id)
        return None
    return state


def consume_state(db: Session, state: AuthenticatorState) -> bool:
    """Delete-if-exists; only the request that removes the row may continue."""
    result = db.execute(
        delete(AuthenticatorState)
        .where(AuthenticatorState.id == state.id)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def delete_expired_states(db: Session, now: datetime | None = None) -> int:
    now = now or utc_now()
    expired = [s.id for s in db.scalars(select(AuthenticatorState)).all() if s.is_expired(now)]
    if not expired:
        return 0
    result = db.execute(
        delete(AuthenticatorState)
        .where(AuthenticatorState.id.in_(expired))
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount
