"""
Common driver contract and identity provisioning shared by every authenticator.
"""
import logging
from collections.abc import Mapping

from sqlalchemy import select
from sqlalchemy.orm import Session

from kangaroo.errors import BadRequest
from kangaroo.models import (
    Application,
    Authenticator,
    AuthenticatorState,
    AuthenticatorType,
    Client,
    User,
    UserIdentity,
)

logger = logging.getLogger(__name__)


class MisconfiguredAuthenticator(BadRequest):
    error = "misconfigured_authenticator"
    description = "The authenticator configuration is not valid for this type."


class AuthenticatorDriver:
    """
    One per AuthenticatorType. Drivers hold no per-request state.
    A private driver is only usable by clients that configure it.
    """

    type: AuthenticatorType
    private = True
    required_config: frozenset[str] = frozenset()
    optional_config: frozenset[str] = frozenset()

    def validate_config(self, configuration: Mapping[str, str] | None) -> None:
        configuration = configuration or {}
        missing = [k for k in self.required_config if not configuration.get(k)]
        unknown = [k for k in configuration if k not in self.required_config | self.optional_config]
        if missing or unknown:
            logger.debug("Rejected %s configuration: missing=%s unknown=%s", self.type.value, missing, unknown)
            raise MisconfiguredAuthenticator()

    def delegate(self, authenticator: Authenticator, state: AuthenticatorState, callback: str) -> str:
        """URL the browser is sent to so the user can authenticate."""
        raise NotImplementedError

    def authenticate(
        self,
        db: Session,
        client: Client,
        authenticator: Authenticator | None,
        params: Mapping[str, str],
        callback: str,
    ) -> UserIdentity | None:
        """Resolve the returning user to an identity in the client's application, or None."""
        raise NotImplementedError


def find_identity(db: Session, application: Application, type: AuthenticatorType, remote_id: str) -> UserIdentity | None:
    stmt = (
        select(UserIdentity)
        .join(User, UserIdentity.user_id == User.id)
        .where(
            User.application_id == application.id,
            UserIdentity.type == type,
            UserIdentity.remote_id == remote_id,
        )
    )
    return db.scalars(stmt).first()


def upsert_identity(
    db: Session,
    application: Application,
    type: AuthenticatorType,
    remote_id: str,
    claims: Mapping[str, str] | None = None,
) -> UserIdentity:
    """
    Find the (type, remote_id) identity in application, refreshing its claims,
    or provision a new User with the application's default role.
    """
    identity = find_identity(db, application, type, remote_id)
    if identity is not None:
        if claims:
            identity.claims = dict(claims)
        db.flush()
        return identity
    user = User(application=application, role=application.default_role)
    identity = UserIdentity(user=user, type=type, remote_id=remote_id, claims=dict(claims or {}))
    db.add_all([user, identity])
    db.flush()
    logger.info("Provisioned %s identity for application_id=%x", type.value, application.id)
    return identity
