"""
Admin API (/v1): CRUD over every entity kind, gated by bearer token, scope and ownership.
"""
from fastapi import APIRouter

from kangaroo.admin.application import router as application_router
from kangaroo.admin.authenticator import router as authenticator_router
from kangaroo.admin.client import router as client_router
from kangaroo.admin.identity import router as identity_router
from kangaroo.admin.redirect import redirect_router, referrer_router
from kangaroo.admin.role import router as role_router
from kangaroo.admin.scope import router as scope_router
from kangaroo.admin.token import router as token_router
from kangaroo.admin.user import router as user_router

router = APIRouter()
for _router in (
    application_router,
    authenticator_router,
    redirect_router,
    referrer_router,
    client_router,
    identity_router,
    role_router,
    scope_router,
    token_router,
    user_router,
):
    router.include_router(_router)
