"""
Kangaroo configuration. Process-wide values come from the environment.
No secrets in this file; credentials come from env or DB.
"""
import os

# admin.application.id: hex id of the admin Application. Unset = bootstrap finds or creates it.
ADMIN_APPLICATION_ID = os.environ.get("KANGAROO_ADMIN_APPLICATION_ID", "").strip() or None

# Name of the admin Application when bootstrapped
ADMIN_APPLICATION_NAME = os.environ.get("KANGAROO_ADMIN_APPLICATION_NAME", "Kangaroo")

# authenticator.state.ttl: lifetime (seconds) of a pending third-party login
AUTHENTICATOR_STATE_TTL = int(os.environ.get("KANGAROO_AUTHENTICATOR_STATE_TTL", "600"))

# http.bind: host:port for the development server
HTTP_BIND = os.environ.get("KANGAROO_HTTP_BIND", "127.0.0.1:8080")

# clock.skew.tolerance: seconds of grace applied to authenticator state expiry
CLOCK_SKEW_TOLERANCE = int(os.environ.get("KANGAROO_CLOCK_SKEW_TOLERANCE", "5"))

# SQLite for development; any SQLAlchemy URL works
DATABASE_URL = os.environ.get("KANGAROO_DATABASE_URL", "sqlite:///./kangaroo.db")

# Deadline (seconds) for every outbound call to a third-party IdP
IDP_TIMEOUT = float(os.environ.get("KANGAROO_IDP_TIMEOUT", "10"))

# Expired token/state purge interval (seconds). 0 disables the background task.
CLEANUP_INTERVAL = int(os.environ.get("KANGAROO_CLEANUP_INTERVAL", "300"))

# Default client token lifetimes (seconds), overridable per client configuration
ACCESS_TOKEN_EXPIRES = 600
REFRESH_TOKEN_EXPIRES = 60 * 60 * 24 * 30
AUTHORIZATION_CODE_EXPIRES = 600

# Admin list paging
LIST_LIMIT_DEFAULT = 10
LIST_LIMIT_MAX = 100


def bind_address() -> tuple[str, int]:
    """Split HTTP_BIND into (host, port)."""
    host, _, port = HTTP_BIND.rpartition(":")
    return (host or "127.0.0.1", int(port))


# Mount point of the admin API; keeps /v1/token apart from the OAuth /token endpoint
ADMIN_PREFIX = "/v1"

POWERED_BY = "Kangaroo"
