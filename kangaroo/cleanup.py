"""
Periodic purge of expired tokens and authenticator states. Expiry is always checked on read;
this only keeps the tables small.
"""
import asyncio
import logging

from sqlalchemy.exc import SQLAlchemyError

from kangaroo.authenticators.state import delete_expired_states
from kangaroo.database import SessionLocal
from kangaroo.tokens import TokenStore

logger = logging.getLogger(__name__)


def purge_expired() -> tuple[int, int]:
    """Delete expired tokens and states. Returns (tokens, states) removed."""
    db = SessionLocal()
    try:
        tokens = TokenStore(db).delete_expired()
        states = delete_expired_states(db)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    finally:
        db.close()
    if tokens or states:
        logger.info("Purged %s expired tokens and %s expired authenticator states", tokens, states)
    return tokens, states


async def run_cleanup(interval: int) -> None:
    """Run purge_expired every interval seconds until cancelled."""
    while True:
        await asyncio.sleep(interval)
        try:
            await asyncio.to_thread(purge_expired)
        except SQLAlchemyError:
            logger.exception("Expired record cleanup failed; retrying in %ss", interval)
