"""
Admin application bootstrap. Ensures the application that governs the admin API exists,
and optionally seeds its first user from the environment. No hardcoded credentials.
Optional: set KANGAROO_SEED_USER + KANGAROO_SEED_PASSWORD.
"""
import logging
import os

from sqlalchemy import select
from sqlalchemy.orm import Session

from kangaroo.admin.scopes import ALL_SCOPES, USER_SCOPES
from kangaroo.authenticators.base import find_identity
from kangaroo.config import ADMIN_APPLICATION_ID, ADMIN_APPLICATION_NAME
from kangaroo.crypto import decode_id, hash_password
from kangaroo.models import (
    Application,
    ApplicationScope,
    Authenticator,
    AuthenticatorType,
    Client,
    ClientType,
    Role,
    User,
    UserIdentity,
)

logger = logging.getLogger(__name__)

ADMIN_ROLE = "admin"
MEMBER_ROLE = "member"


def _create_admin_application(db: Session, application_id: int | None) -> Application:
    application = Application(name=ADMIN_APPLICATION_NAME)
    if application_id is not None:
        application.id = application_id
    db.add(application)
    db.add_all([ApplicationScope(name=name, application=application) for name in ALL_SCOPES])

    admin = Role(name=ADMIN_ROLE, application=application)
    admin.scopes = dict(application.scopes)
    member = Role(name=MEMBER_ROLE, application=application)
    member.scopes = {name: application.scopes[name] for name in USER_SCOPES}
    db.add_all([admin, member])
    db.flush()
    application.default_role = member

    client = Client(name=f"{ADMIN_APPLICATION_NAME} Admin", type=ClientType.Implicit, application=application)
    db.add(client)
    db.add(Authenticator(type=AuthenticatorType.Password, client=client))
    db.flush()
    logger.info("Bootstrapped admin application_id=%x", application.id)
    return application


def _seed_user(db: Session, application: Application) -> None:
    """Create one admin user from env if set; the first one owns the admin application."""
    seed_user = os.environ.get("KANGAROO_SEED_USER")
    seed_password = os.environ.get("KANGAROO_SEED_PASSWORD")
    if not seed_user or not seed_password:
        return
    if find_identity(db, application, AuthenticatorType.Password, seed_user) is not None:
        logger.debug("Seed user already exists: %s", seed_user)
        return
    admin_role = next((r for r in application.roles if r.name == ADMIN_ROLE), None)
    user = User(application=application, role=admin_role)
    db.add(user)
    db.add(UserIdentity(
        user=user,
        type=AuthenticatorType.Password,
        remote_id=seed_user,
        password=hash_password(seed_password),
    ))
    # Insert the user before it becomes the owner
    db.flush()
    if application.owner is None:
        application.owner = user
        db.flush()
    logger.info("Seeded admin user: %s", seed_user)


def bootstrap(db: Session) -> Application:
    """Find (or create) the admin application and return it."""
    application_id = decode_id(ADMIN_APPLICATION_ID) if ADMIN_APPLICATION_ID else None
    if application_id is not None:
        application = db.get(Application, application_id)
    else:
        stmt = (
            select(Application)
            .where(Application.name == ADMIN_APPLICATION_NAME)
            .order_by(Application.created_date)
        )
        application = db.scalars(stmt).first()
    if application is None:
        application = _create_admin_application(db, application_id)
    _seed_user(db, application)
    db.commit()
    return application
