"""
SQLAlchemy models for the authorization server: applications and everything they own.
Entities hold parent ids; reverse lookups are ORM back-references.
"""
import enum
from datetime import datetime, timedelta, timezone

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, attribute_keyed_dict, mapped_column, relationship
from sqlalchemy.types import TypeDecorator

from kangaroo import config
from kangaroo.crypto import decode_id, encode_id, new_id


def utc_now() -> datetime:
    """Current UTC time at second precision."""
    return datetime.now(timezone.utc).replace(microsecond=0)


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def unix_time(value: datetime | None) -> int | None:
    if value is None:
        return None
    return int(as_utc(value).timestamp())


class HexId(TypeDecorator):
    """128-bit id: Python int in memory, 32 lowercase hex chars in the database."""

    impl = String(32)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return encode_id(value)

    def process_result_value(self, value, dialect):
        return decode_id(value)


class ClientType(str, enum.Enum):
    AuthorizationGrant = "AuthorizationGrant"
    Implicit = "Implicit"
    OwnerCredentials = "OwnerCredentials"
    ClientCredentials = "ClientCredentials"


class OAuthTokenType(str, enum.Enum):
    Authorization = "Authorization"
    Bearer = "Bearer"
    Refresh = "Refresh"


class AuthenticatorType(str, enum.Enum):
    Password = "Password"
    Test = "Test"
    Google = "Google"
    Facebook = "Facebook"


class Base(DeclarativeBase):
    pass


class AuditedMixin:
    id: Mapped[int] = mapped_column(HexId, primary_key=True, default=new_id)
    created_date: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)
    modified_date: Mapped[datetime] = mapped_column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)


role_scopes = Table(
    "role_scopes",
    Base.metadata,
    Column("role_id", HexId, ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    Column("scope_id", HexId, ForeignKey("application_scopes.id", ondelete="CASCADE"), primary_key=True),
)

token_scopes = Table(
    "token_scopes",
    Base.metadata,
    Column("token_id", HexId, ForeignKey("oauth_tokens.id", ondelete="CASCADE"), primary_key=True),
    Column("scope_id", HexId, ForeignKey("application_scopes.id", ondelete="CASCADE"), primary_key=True),
)


class Application(AuditedMixin, Base):
    __tablename__ = "applications"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    owner_id: Mapped[int | None] = mapped_column(
        HexId, ForeignKey("users.id", use_alter=True, ondelete="SET NULL"), nullable=True, index=True
    )
    default_role_id: Mapped[int | None] = mapped_column(
        HexId, ForeignKey("roles.id", use_alter=True, ondelete="SET NULL"), nullable=True
    )

    owner: Mapped["User | None"] = relationship(
        "User", foreign_keys=[owner_id], post_update=True, back_populates="owned_applications"
    )
    default_role: Mapped["Role | None"] = relationship("Role", foreign_keys=[default_role_id], post_update=True)
    clients: Mapped[list["Client"]] = relationship(
        "Client", back_populates="application", cascade="all, delete-orphan", order_by="Client.created_date"
    )
    users: Mapped[list["User"]] = relationship(
        "User",
        back_populates="application",
        cascade="all, delete-orphan",
        foreign_keys="User.application_id",
    )
    roles: Mapped[list["Role"]] = relationship(
        "Role",
        back_populates="application",
        cascade="all, delete-orphan",
        foreign_keys="Role.application_id",
    )
    scopes: Mapped[dict[str, "ApplicationScope"]] = relationship(
        "ApplicationScope",
        back_populates="application",
        cascade="all, delete-orphan",
        collection_class=attribute_keyed_dict("name"),
    )


class User(AuditedMixin, Base):
    __tablename__ = "users"

    application_id: Mapped[int] = mapped_column(
        HexId, ForeignKey("applications.id", ondelete="CASCADE"), nullable=False, index=True
    )
    role_id: Mapped[int | None] = mapped_column(
        HexId, ForeignKey("roles.id", ondelete="SET NULL"), nullable=True, index=True
    )

    application: Mapped["Application"] = relationship(
        "Application", foreign_keys=[application_id], back_populates="users"
    )
    role: Mapped["Role | None"] = relationship("Role", foreign_keys=[role_id], back_populates="users")
    identities: Mapped[list["UserIdentity"]] = relationship(
        "UserIdentity", back_populates="user", cascade="all, delete-orphan", order_by="UserIdentity.created_date"
    )
    owned_applications: Mapped[list["Application"]] = relationship(
        "Application",
        foreign_keys="Application.owner_id",
        back_populates="owner",
        post_update=True,
        passive_deletes=True,
    )

    @property
    def owner(self) -> "User | None":
        return self.application.owner if self.application else None


class UserIdentity(AuditedMixin, Base):
    __tablename__ = "user_identities"

    user_id: Mapped[int] = mapped_column(HexId, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type: Mapped[AuthenticatorType] = mapped_column(Enum(AuthenticatorType, native_enum=False), nullable=False)
    remote_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    # argon2id hash, Password identities only; never serialized
    password: Mapped[str | None] = mapped_column(String(255), nullable=True)
    claims: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)

    user: Mapped["User"] = relationship("User", back_populates="identities")
    tokens: Mapped[list["OAuthToken"]] = relationship(
        "OAuthToken", back_populates="identity", cascade="all, delete-orphan"
    )

    @property
    def owner(self) -> "User | None":
        return self.user.owner if self.user else None


class Role(AuditedMixin, Base):
    __tablename__ = "roles"

    application_id: Mapped[int] = mapped_column(
        HexId, ForeignKey("applications.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    application: Mapped["Application"] = relationship(
        "Application", foreign_keys=[application_id], back_populates="roles"
    )
    scopes: Mapped[dict[str, "ApplicationScope"]] = relationship(
        "ApplicationScope",
        secondary=role_scopes,
        back_populates="roles",
        collection_class=attribute_keyed_dict("name"),
    )
    users: Mapped[list["User"]] = relationship("User", foreign_keys="User.role_id", back_populates="role")

    @property
    def owner(self) -> "User | None":
        return self.application.owner if self.application else None


class ApplicationScope(AuditedMixin, Base):
    __tablename__ = "application_scopes"
    __table_args__ = (UniqueConstraint("application_id", "name", name="uq_application_scope_name"),)

    application_id: Mapped[int] = mapped_column(
        HexId, ForeignKey("applications.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    application: Mapped["Application"] = relationship("Application", back_populates="scopes")
    roles: Mapped[list["Role"]] = relationship("Role", secondary=role_scopes, back_populates="scopes")
    tokens: Mapped[list["OAuthToken"]] = relationship("OAuthToken", secondary=token_scopes, back_populates="scopes")

    @property
    def owner(self) -> "User | None":
        return self.application.owner if self.application else None


class Client(AuditedMixin, Base):
    __tablename__ = "clients"

    application_id: Mapped[int] = mapped_column(
        HexId, ForeignKey("applications.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    # Presence makes this a confidential client
    client_secret: Mapped[str | None] = mapped_column(String(255), nullable=True)
    type: Mapped[ClientType] = mapped_column(Enum(ClientType, native_enum=False), nullable=False)
    configuration: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)

    application: Mapped["Application"] = relationship("Application", back_populates="clients")
    redirects: Mapped[list["ClientRedirect"]] = relationship(
        "ClientRedirect", back_populates="client", cascade="all, delete-orphan", order_by="ClientRedirect.created_date"
    )
    referrers: Mapped[list["ClientReferrer"]] = relationship(
        "ClientReferrer", back_populates="client", cascade="all, delete-orphan", order_by="ClientReferrer.created_date"
    )
    authenticators: Mapped[list["Authenticator"]] = relationship(
        "Authenticator", back_populates="client", cascade="all, delete-orphan", order_by="Authenticator.created_date"
    )
    tokens: Mapped[list["OAuthToken"]] = relationship(
        "OAuthToken", back_populates="client", cascade="all, delete-orphan"
    )
    states: Mapped[list["AuthenticatorState"]] = relationship(
        "AuthenticatorState", back_populates="client", cascade="all, delete-orphan"
    )

    @property
    def is_confidential(self) -> bool:
        return self.client_secret is not None and len(self.client_secret) > 0

    def _lifetime(self, key: str, default: int) -> int:
        value = (self.configuration or {}).get(key)
        try:
            return int(value) if value is not None else default
        except (TypeError, ValueError):
            return default

    @property
    def access_token_expires_in(self) -> int:
        return self._lifetime("access_token_expires_in", config.ACCESS_TOKEN_EXPIRES)

    @property
    def refresh_token_expires_in(self) -> int:
        return self._lifetime("refresh_token_expires_in", config.REFRESH_TOKEN_EXPIRES)

    @property
    def authorization_code_expires_in(self) -> int:
        return self._lifetime("authorization_code_expires_in", config.AUTHORIZATION_CODE_EXPIRES)

    def get_redirect_uris_list(self) -> list[str]:
        return [r.uri for r in self.redirects]

    @property
    def owner(self) -> "User | None":
        return self.application.owner if self.application else None


class ClientRedirect(AuditedMixin, Base):
    __tablename__ = "client_redirects"
    __table_args__ = (UniqueConstraint("client_id", "uri", name="uq_client_redirect_uri"),)

    client_id: Mapped[int] = mapped_column(HexId, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    uri: Mapped[str] = mapped_column(Text, nullable=False)

    client: Mapped["Client"] = relationship("Client", back_populates="redirects")

    @property
    def owner(self) -> "User | None":
        return self.client.owner if self.client else None


class ClientReferrer(AuditedMixin, Base):
    __tablename__ = "client_referrers"
    __table_args__ = (UniqueConstraint("client_id", "uri", name="uq_client_referrer_uri"),)

    client_id: Mapped[int] = mapped_column(HexId, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    uri: Mapped[str] = mapped_column(Text, nullable=False)

    client: Mapped["Client"] = relationship("Client", back_populates="referrers")

    @property
    def owner(self) -> "User | None":
        return self.client.owner if self.client else None


class Authenticator(AuditedMixin, Base):
    __tablename__ = "authenticators"
    __table_args__ = (UniqueConstraint("client_id", "type", name="uq_client_authenticator_type"),)

    client_id: Mapped[int] = mapped_column(HexId, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    type: Mapped[AuthenticatorType] = mapped_column(Enum(AuthenticatorType, native_enum=False), nullable=False)
    configuration: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)

    client: Mapped["Client"] = relationship("Client", back_populates="authenticators")
    states: Mapped[list["AuthenticatorState"]] = relationship(
        "AuthenticatorState", back_populates="authenticator", cascade="all, delete-orphan"
    )

    @property
    def owner(self) -> "User | None":
        return self.client.owner if self.client else None


class AuthenticatorState(AuditedMixin, Base):
    """Pending third-party login: everything needed to finish /authorize after the IdP returns."""

    __tablename__ = "authenticator_states"

    client_id: Mapped[int] = mapped_column(HexId, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    authenticator_id: Mapped[int] = mapped_column(
        HexId, ForeignKey("authenticators.id", ondelete="CASCADE"), nullable=False
    )
    client_state: Mapped[str | None] = mapped_column(Text, nullable=True)
    client_nonce: Mapped[str | None] = mapped_column(String(255), nullable=True)
    client_scope: Mapped[str | None] = mapped_column(Text, nullable=True)
    client_redirect: Mapped[str] = mapped_column(Text, nullable=False)
    authenticator_state: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    authenticator_nonce: Mapped[str] = mapped_column(String(64), nullable=False)

    client: Mapped["Client"] = relationship("Client", back_populates="states")
    authenticator: Mapped["Authenticator"] = relationship("Authenticator", back_populates="states")

    def is_expired(self, now: datetime | None = None) -> bool:
        now = now or utc_now()
        ttl = timedelta(seconds=config.AUTHENTICATOR_STATE_TTL + config.CLOCK_SKEW_TOLERANCE)
        return now >= as_utc(self.created_date) + ttl

    @property
    def owner(self) -> "User | None":
        return self.client.owner if self.client else None


class OAuthToken(AuditedMixin, Base):
    __tablename__ = "oauth_tokens"

    client_id: Mapped[int] = mapped_column(HexId, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    # Absent iff the client is a ClientCredentials client
    identity_id: Mapped[int | None] = mapped_column(
        HexId, ForeignKey("user_identities.id", ondelete="CASCADE"), nullable=True, index=True
    )
    token_type: Mapped[OAuthTokenType] = mapped_column(Enum(OAuthTokenType, native_enum=False), nullable=False)
    expires_in: Mapped[int] = mapped_column(Integer, nullable=False)
    issued_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)
    # Authorization tokens only
    redirect: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Refresh tokens only: the Bearer this refresh token renews
    auth_token_id: Mapped[int | None] = mapped_column(
        HexId, ForeignKey("oauth_tokens.id", ondelete="SET NULL"), nullable=True
    )

    client: Mapped["Client"] = relationship("Client", back_populates="tokens")
    identity: Mapped["UserIdentity | None"] = relationship("UserIdentity", back_populates="tokens")
    auth_token: Mapped["OAuthToken | None"] = relationship("OAuthToken", remote_side="OAuthToken.id")
    scopes: Mapped[dict[str, "ApplicationScope"]] = relationship(
        "ApplicationScope",
        secondary=token_scopes,
        back_populates="tokens",
        collection_class=attribute_keyed_dict("name"),
    )

    def is_expired(self, now: datetime | None = None) -> bool:
        now = now or utc_now()
        issued = as_utc(self.issued_at)
        return now >= issued + timedelta(seconds=self.expires_in)

    @property
    def scope_string(self) -> str:
        """Space-separated scope names in name order; the link table keeps no position."""
        return " ".join(sorted(self.scopes))

    @property
    def owner(self) -> "User | None":
        return self.client.owner if self.client else None


def application_of(entity) -> Application | None:
    """Walk parent pointers up to the owning Application."""
    if entity is None:
        return None
    if isinstance(entity, Application):
        return entity
    if isinstance(entity, (Client, Role, ApplicationScope, User)):
        return entity.application
    if isinstance(entity, UserIdentity):
        return entity.user.application
    if isinstance(entity, (ClientRedirect, ClientReferrer, Authenticator, AuthenticatorState, OAuthToken)):
        return entity.client.application
    raise TypeError(f"Not an application entity: {type(entity).__name__}")


def owner_of(entity) -> User | None:
    """The User owning an entity: its Application's owner."""
    application = application_of(entity)
    return application.owner if application is not None else None
