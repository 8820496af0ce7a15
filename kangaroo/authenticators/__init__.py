"""
Authenticator broker: one driver per AuthenticatorType.
"""
from kangaroo.authenticators.base import AuthenticatorDriver, MisconfiguredAuthenticator
from kangaroo.authenticators.facebook import FacebookDriver
from kangaroo.authenticators.google import GoogleDriver
from kangaroo.authenticators.password import PasswordDriver
from kangaroo.authenticators.testing import EchoDriver
from kangaroo.models import AuthenticatorType

DRIVERS: dict[AuthenticatorType, AuthenticatorDriver] = {
    AuthenticatorType.Password: PasswordDriver(),
    AuthenticatorType.Test: EchoDriver(),
    AuthenticatorType.Google: GoogleDriver(),
    AuthenticatorType.Facebook: FacebookDriver(),
}


def get_driver(type: AuthenticatorType) -> AuthenticatorDriver:
    return DRIVERS[type]


__all__ = ["DRIVERS", "AuthenticatorDriver", "MisconfiguredAuthenticator", "get_driver"]
