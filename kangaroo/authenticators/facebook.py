from kangaroo.authenticators.oauth2 import OAuth2Driver
from kangaroo.models import AuthenticatorType


class FacebookDriver(OAuth2Driver):
    type = AuthenticatorType.Facebook
    authorize_url = "https://www.facebook.com/v2.10/dialog/oauth"
    token_url = "https://graph.facebook.com/v2.10/oauth/access_token"
    profile_url = "https://graph.facebook.com/v2.10/me"
    scope = "public_profile email"
    profile_params = {"fields": "id,name,email"}

    def remote_id(self, profile):
        return profile.get("id")
