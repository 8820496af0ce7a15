"""
Admin API scopes. Each entity kind has an owner-level scope and an .admin scope that waives ownership.
"""
APPLICATION = "application"
AUTHENTICATOR = "authenticator"
CLIENT = "client"
IDENTITY = "identity"
ROLE = "role"
SCOPE = "scope"
TOKEN = "token"
USER = "user"

KINDS = (APPLICATION, AUTHENTICATOR, CLIENT, IDENTITY, ROLE, SCOPE, TOKEN, USER)


def admin_scope(kind: str) -> str:
    return f"{kind}.admin"


USER_SCOPES = list(KINDS)
ADMIN_SCOPES = [admin_scope(kind) for kind in KINDS]
ALL_SCOPES = USER_SCOPES + ADMIN_SCOPES
