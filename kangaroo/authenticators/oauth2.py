"""
Authorization-code login against a third-party IdP: redirect out, exchange the code, read the profile.
"""
import logging
from urllib.parse import urlencode

import httpx

from kangaroo.authenticators.base import AuthenticatorDriver, upsert_identity
from kangaroo.config import IDP_TIMEOUT
from kangaroo.errors import AccessDenied, TemporarilyUnavailable

logger = logging.getLogger(__name__)


class OAuth2Driver(AuthenticatorDriver):
    """Subclasses name the IdP endpoints, the requested scope and how a profile maps to an identity."""

    authorize_url: str
    token_url: str
    profile_url: str
    scope: str
    profile_params: dict[str, str] = {}
    claim_keys: tuple[str, ...] = ("email", "name")

    required_config = frozenset({"client_id", "client_secret"})
    optional_config = frozenset({"authorize_url", "token_url", "profile_url"})

    def _endpoint(self, authenticator, name: str) -> str:
        return (authenticator.configuration or {}).get(name) or getattr(self, name)

    def delegate(self, authenticator, state, callback):
        params = {
            "client_id": authenticator.configuration["client_id"],
            "redirect_uri": callback,
            "response_type": "code",
            "scope": self.scope,
            "state": state.authenticator_state,
            "nonce": state.authenticator_nonce,
        }
        return f"{self._endpoint(authenticator, 'authorize_url')}?{urlencode(params)}"

    def remote_id(self, profile: dict) -> str | None:
        raise NotImplementedError

    def claims(self, profile: dict) -> dict[str, str]:
        return {key: str(profile[key]) for key in self.claim_keys if profile.get(key) is not None}

    def _exchange_code(self, authenticator, code: str, callback: str) -> str:
        configuration = authenticator.configuration
        try:
            r = httpx.post(
                self._endpoint(authenticator, "token_url"),
                data={
                    "grant_type": "authorization_code",
                    "code": code,
                    "redirect_uri": callback,
                    "client_id": configuration["client_id"],
                    "client_secret": configuration["client_secret"],
                },
                headers={"Accept": "application/json"},
                timeout=IDP_TIMEOUT,
            )
        except httpx.HTTPError as e:
            logger.warning("%s token exchange failed: %s", self.type.value, type(e).__name__)
            raise TemporarilyUnavailable("The identity provider could not be reached.")
        if r.status_code != 200:
            logger.warning("%s rejected code exchange: status=%s", self.type.value, r.status_code)
            raise AccessDenied("The identity provider rejected the login.")
        try:
            access_token = r.json().get("access_token")
        except ValueError:
            access_token = None
        if not access_token:
            logger.warning("%s token response had no access_token", self.type.value)
            raise AccessDenied("The identity provider rejected the login.")
        return access_token

    def _fetch_profile(self, authenticator, access_token: str) -> dict:
        try:
            r = httpx.get(
                self._endpoint(authenticator, "profile_url"),
                params=self.profile_params or None,
                headers={"Authorization": f"Bearer {access_token}", "Accept": "application/json"},
                timeout=IDP_TIMEOUT,
            )
        except httpx.HTTPError as e:
            logger.warning("%s profile fetch failed: %s", self.type.value, type(e).__name__)
            raise TemporarilyUnavailable("The identity provider could not be reached.")
        if r.status_code != 200:
            logger.warning("%s rejected profile request: status=%s", self.type.value, r.status_code)
            raise AccessDenied("The identity provider rejected the login.")
        try:
            return r.json()
        except ValueError:
            raise AccessDenied("The identity provider returned an unreadable profile.")

    def authenticate(self, db, client, authenticator, params, callback):
        code = params.get("code")
        if not code:
            return None
        access_token = self._exchange_code(authenticator, code, callback)
        profile = self._fetch_profile(authenticator, access_token)
        remote_id = self.remote_id(profile)
        if not remote_id:
            logger.warning("%s profile had no subject", self.type.value)
            return None
        return upsert_identity(db, client.application, self.type, str(remote_id), self.claims(profile))
