"""
Kangaroo authorization server.
OAuth 2.0 endpoints at /authorize, /authorize/callback and /token; the admin API under /v1.
"""
import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from kangaroo import __version__
from kangaroo.admin import router as admin_router
from kangaroo.cleanup import run_cleanup
from kangaroo.config import ADMIN_PREFIX, CLEANUP_INTERVAL, POWERED_BY, bind_address
from kangaroo.database import SessionLocal, init_db
from kangaroo.errors import register_exception_handlers
from kangaroo.oauth2.authorize import router as authorize_router
from kangaroo.oauth2.token_endpoint import router as token_router
from kangaroo.seed import bootstrap

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables, bootstrap the admin application, start the cleanup task."""
    init_db()
    db = SessionLocal()
    try:
        app.state.admin_application_id = bootstrap(db).id
    finally:
        db.close()

    task = asyncio.create_task(run_cleanup(CLEANUP_INTERVAL)) if CLEANUP_INTERVAL > 0 else None
    yield
    if task is not None:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task


app = FastAPI(title="Kangaroo", version=__version__, lifespan=lifespan)
register_exception_handlers(app)
app.include_router(authorize_router, tags=["authorize"])
app.include_router(token_router, tags=["token"])
app.include_router(admin_router, prefix=ADMIN_PREFIX)


@app.middleware("http")
async def powered_by(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Powered-By"] = POWERED_BY
    return response


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "ok", "service": "kangaroo"}


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    host, port = bind_address()
    uvicorn.run("kangaroo.main:app", host=host, port=port)
