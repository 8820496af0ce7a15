"""
Error taxonomy (RFC 6749 section 4.1.2.1 / 5.2 plus admin errors) and the handlers that render them.
OAuth errors are {error, error_description}; admin errors are {httpStatus, errorCode, errorMessage};
errors after redirect validation at /authorize travel back to the client on its redirect.
"""
import logging
import uuid
from urllib.parse import urlencode

from fastapi import FastAPI, HTTPException, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.exc import OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

from kangaroo.config import ADMIN_PREFIX, POWERED_BY
from kangaroo.models import ClientType

logger = logging.getLogger(__name__)


class KangarooError(HTTPException):
    """Base for every error this server renders on purpose."""

    status_code = 500
    error = "server_error"
    description = "The server encountered an unexpected condition."

    def __init__(self, description: str | None = None, headers: dict[str, str] | None = None):
        super().__init__(
            status_code=type(self).status_code,
            detail=description or type(self).description,
            headers=headers,
        )
        self.description = self.detail


# --- OAuth 2.0 protocol errors ---


class OAuthError(KangarooError):
    pass


class InvalidRequest(OAuthError):
    status_code = 400
    error = "invalid_request"
    description = "The request is missing a required parameter or is otherwise malformed."


class InvalidClient(OAuthError):
    status_code = 401
    error = "invalid_client"
    description = "Client authentication failed."


class InvalidGrant(OAuthError):
    status_code = 400
    error = "invalid_grant"
    description = "The provided authorization grant is invalid, expired, or revoked."


class UnauthorizedClient(OAuthError):
    status_code = 400
    error = "unauthorized_client"
    description = "The client is not authorized to use this grant type."


class UnsupportedGrantType(OAuthError):
    status_code = 400
    error = "unsupported_grant_type"
    description = "The authorization grant type is not supported."


class UnsupportedResponseType(OAuthError):
    status_code = 400
    error = "unsupported_response_type"
    description = "The response type is not supported for this client."


class InvalidScope(OAuthError):
    status_code = 400
    error = "invalid_scope"
    description = "The requested scope is invalid, unknown, or exceeds what was granted."


class AccessDenied(OAuthError):
    status_code = 403
    error = "access_denied"
    description = "The resource owner or authorization server denied the request."


class ServerError(OAuthError):
    status_code = 500
    error = "server_error"


class TemporarilyUnavailable(OAuthError):
    status_code = 503
    error = "temporarily_unavailable"
    description = "The server is temporarily unable to handle the request."


# --- Admin API errors ---


class AdminError(KangarooError):
    def __init__(self, description: str | None = None, headers: dict[str, str] | None = None, error: str | None = None):
        super().__init__(description, headers)
        if error:
            self.error = error


class BadRequest(AdminError):
    status_code = 400
    error = "bad_request"
    description = "The request could not be processed."


class Unauthorized(AdminError):
    status_code = 401
    error = "unauthorized"
    description = "Valid bearer credentials with sufficient scope are required."


class Forbidden(AdminError):
    status_code = 403
    error = "forbidden"
    description = "This resource may not be modified."


class NotFound(AdminError):
    status_code = 404
    error = "not_found"
    description = "The requested resource was not found."


class Conflict(AdminError):
    status_code = 409
    error = "conflict"
    description = "The resource conflicts with an existing one."


_ADMIN_CODES = {
    400: BadRequest,
    401: Unauthorized,
    403: Forbidden,
    404: NotFound,
    409: Conflict,
}


class RedirectingError(Exception):
    """An OAuth error to be delivered on an already validated client redirect."""

    def __init__(self, error: OAuthError, redirect: str, client_type: ClientType, state: str | None = None):
        super().__init__(error.error)
        self.error = error
        self.redirect = redirect
        self.client_type = client_type
        self.state = state


def append_to_redirect(redirect: str, params: dict[str, str], in_fragment: bool = False) -> str:
    """Attach params to a redirect URI, in the query (keeping any existing one) or in the fragment."""
    encoded = urlencode(params)
    if in_fragment:
        return f"{redirect.split('#', 1)[0]}#{encoded}"
    base = redirect.split("#", 1)[0]
    separator = "&" if "?" in base else "?"
    return f"{base}{separator}{encoded}"


def error_redirect_url(exc: RedirectingError) -> str:
    params = {"error": exc.error.error, "error_description": exc.error.description}
    if exc.state:
        params["state"] = exc.state
    return append_to_redirect(exc.redirect, params, in_fragment=exc.client_type == ClientType.Implicit)


def _is_admin_request(request: Request) -> bool:
    path = request.url.path
    return path == ADMIN_PREFIX or path.startswith(ADMIN_PREFIX + "/")


def oauth_error_body(exc: OAuthError) -> dict:
    return {"error": exc.error, "error_description": exc.description}


def admin_error_body(exc: KangarooError) -> dict:
    return {"httpStatus": exc.status_code, "errorCode": exc.error, "errorMessage": exc.description}


async def oauth_error_handler(request: Request, exc: OAuthError) -> JSONResponse:
    if _is_admin_request(request):
        return JSONResponse(admin_error_body(exc), status_code=exc.status_code, headers=exc.headers)
    return JSONResponse(oauth_error_body(exc), status_code=exc.status_code, headers=exc.headers)


async def admin_error_handler(request: Request, exc: AdminError) -> JSONResponse:
    return JSONResponse(admin_error_body(exc), status_code=exc.status_code, headers=exc.headers)


async def redirecting_error_handler(request: Request, exc: RedirectingError) -> RedirectResponse:
    logger.debug("Redirecting %s to client redirect", exc.error.error)
    return RedirectResponse(url=error_redirect_url(exc), status_code=302)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.debug("Request validation failed on %s: %s", request.url.path, exc.errors())
    if _is_admin_request(request):
        return await admin_error_handler(request, BadRequest())
    return await oauth_error_handler(request, InvalidRequest())


async def starlette_error_handler(request: Request, exc: StarletteHTTPException):
    """Framework errors (unknown route, wrong method) in the admin API use the admin body."""
    if _is_admin_request(request) and exc.status_code in _ADMIN_CODES:
        return await admin_error_handler(request, _ADMIN_CODES[exc.status_code]())
    return await http_exception_handler(request, exc)


async def store_unavailable_handler(request: Request, exc: OperationalError) -> JSONResponse:
    logger.warning("Store unavailable on %s: %s", request.url.path, type(exc).__name__)
    return await oauth_error_handler(request, TemporarilyUnavailable())


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    correlation_id = uuid.uuid4().hex
    logger.exception("Unhandled error on %s (correlation_id=%s)", request.url.path, correlation_id)
    error = ServerError()
    body = admin_error_body(error) if _is_admin_request(request) else oauth_error_body(error)
    # Runs outside the middleware stack, so the header is set here
    return JSONResponse(
        body,
        status_code=500,
        headers={"X-Powered-By": POWERED_BY, "X-Correlation-Id": correlation_id},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(OAuthError, oauth_error_handler)
    app.add_exception_handler(AdminError, admin_error_handler)
    app.add_exception_handler(RedirectingError, redirecting_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, starlette_error_handler)
    app.add_exception_handler(OperationalError, store_unavailable_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
