"""
Admin JSON: pydantic input bodies (camelCase, unknown fields ignored) and output serializers
(ids as 32-hex, times as UNIX seconds).
"""
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from kangaroo.crypto import encode_id
from kangaroo.models import (
    Application,
    ApplicationScope,
    Authenticator,
    AuthenticatorType,
    Client,
    ClientType,
    OAuthToken,
    OAuthTokenType,
    Role,
    User,
    UserIdentity,
    unix_time,
)


class EntityIn(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    id: str | None = None


class ApplicationIn(EntityIn):
    name: str = Field(min_length=1, max_length=255)
    owner: str | None = None
    default_role: str | None = None


class ClientIn(EntityIn):
    application: str | None = None
    name: str = Field(min_length=1, max_length=255)
    client_secret: str | None = None
    type: ClientType
    configuration: dict[str, str] = Field(default_factory=dict)


class UriIn(EntityIn):
    client: str | None = None
    uri: str = Field(min_length=1)


class AuthenticatorIn(EntityIn):
    client: str | None = None
    type: AuthenticatorType
    configuration: dict[str, str] = Field(default_factory=dict)


class RoleIn(EntityIn):
    application: str | None = None
    name: str = Field(min_length=1, max_length=255)


class ScopeIn(EntityIn):
    application: str | None = None
    name: str = Field(min_length=1, max_length=255, pattern=r"^\S+$")


class UserIn(EntityIn):
    application: str | None = None
    role: str | None = None


class IdentityIn(EntityIn):
    user: str | None = None
    type: AuthenticatorType
    remote_id: str = Field(min_length=1, max_length=255)
    claims: dict[str, str] = Field(default_factory=dict)
    # Password identities only; write-only
    password: str | None = None


class TokenIn(EntityIn):
    client: str | None = None
    identity: str | None = None
    token_type: OAuthTokenType
    expires_in: int
    redirect: str | None = None
    auth_token: str | None = None
    scopes: list[str] | None = None


def _ref(entity_id: int | None) -> str | None:
    return encode_id(entity_id) if entity_id is not None else None


def _audited(entity) -> dict:
    return {
        "id": encode_id(entity.id),
        "createdDate": unix_time(entity.created_date),
        "modifiedDate": unix_time(entity.modified_date),
    }


def application_json(a: Application) -> dict:
    return {**_audited(a), "name": a.name, "owner": _ref(a.owner_id), "defaultRole": _ref(a.default_role_id)}


def client_json(c: Client) -> dict:
    return {
        **_audited(c),
        "application": _ref(c.application_id),
        "name": c.name,
        "clientSecret": c.client_secret,
        "type": c.type.value,
        "configuration": dict(c.configuration or {}),
    }


def uri_json(r) -> dict:
    return {**_audited(r), "client": _ref(r.client_id), "uri": r.uri}


def authenticator_json(a: Authenticator) -> dict:
    return {
        **_audited(a),
        "client": _ref(a.client_id),
        "type": a.type.value,
        "configuration": dict(a.configuration or {}),
    }


def role_json(r: Role) -> dict:
    return {
        **_audited(r),
        "application": _ref(r.application_id),
        "name": r.name,
        "scopes": sorted(encode_id(s.id) for s in r.scopes.values()),
    }


def scope_json(s: ApplicationScope) -> dict:
    return {**_audited(s), "application": _ref(s.application_id), "name": s.name}


def user_json(u: User) -> dict:
    return {**_audited(u), "application": _ref(u.application_id), "role": _ref(u.role_id)}


def identity_json(i: UserIdentity) -> dict:
    return {
        **_audited(i),
        "user": _ref(i.user_id),
        "type": i.type.value,
        "remoteId": i.remote_id,
        "claims": dict(i.claims or {}),
    }


def token_json(t: OAuthToken) -> dict:
    return {
        **_audited(t),
        "client": _ref(t.client_id),
        "identity": _ref(t.identity_id),
        "tokenType": t.token_type.value,
        "expiresIn": t.expires_in,
        "issuedAt": unix_time(t.issued_at),
        "redirect": t.redirect,
        "authToken": _ref(t.auth_token_id),
        "scopes": sorted(t.scopes),
    }
