from kangaroo.authenticators.oauth2 import OAuth2Driver
from kangaroo.models import AuthenticatorType


class GoogleDriver(OAuth2Driver):
    type = AuthenticatorType.Google
    authorize_url = "https://accounts.google.com/o/oauth2/v2/auth"
    token_url = "https://oauth2.googleapis.com/token"
    profile_url = "https://openidconnect.googleapis.com/v1/userinfo"
    scope = "openid email profile"
    claim_keys = ("email", "name", "given_name", "family_name", "picture")

    def remote_id(self, profile):
        return profile.get("sub")
