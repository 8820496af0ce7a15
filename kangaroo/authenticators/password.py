"""
Local login/password authenticator. Hashes live on Password identities.
"""
import logging
from urllib.parse import urlencode

from kangaroo.authenticators.base import AuthenticatorDriver, find_identity
from kangaroo.crypto import verify_password
from kangaroo.models import AuthenticatorType

logger = logging.getLogger(__name__)


class PasswordDriver(AuthenticatorDriver):
    type = AuthenticatorType.Password

    def delegate(self, authenticator, state, callback):
        # No external IdP; credentials come straight to the callback
        return f"{callback}?{urlencode({'state': state.authenticator_state})}"

    def authenticate(self, db, client, authenticator, params, callback):
        login = params.get("login") or params.get("username")
        password = params.get("password")
        if not login or not password:
            return None
        identity = find_identity(db, client.application, AuthenticatorType.Password, login)
        # Always run the hash check so an unknown login costs the same as a wrong password
        if not verify_password(password, identity.password if identity else None):
            logger.debug("Password login failed for client_id=%x", client.id)
            return None
        return identity
