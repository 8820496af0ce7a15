"""
Development authenticator: trusts whatever remote_id it is given.
"""
from urllib.parse import urlencode

from kangaroo.authenticators.base import AuthenticatorDriver, upsert_identity
from kangaroo.models import AuthenticatorType

DEFAULT_REMOTE_ID = "dev_user"


class EchoDriver(AuthenticatorDriver):
    type = AuthenticatorType.Test

    def delegate(self, authenticator, state, callback):
        return f"{callback}?{urlencode({'state': state.authenticator_state})}"

    def authenticate(self, db, client, authenticator, params, callback):
        remote_id = params.get("remote_id") or DEFAULT_REMOTE_ID
        return upsert_identity(db, client.application, AuthenticatorType.Test, remote_id)
