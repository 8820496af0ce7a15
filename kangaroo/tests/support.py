"""
Test helpers: an application builder, admin bearer tokens and redirect parsing.
"""
from urllib.parse import parse_qs, urlsplit

from kangaroo.crypto import encode_id, hash_password
from kangaroo.models import (
    Application,
    ApplicationScope,
    Authenticator,
    AuthenticatorType,
    Client,
    ClientRedirect,
    ClientType,
    OAuthToken,
    OAuthTokenType,
    Role,
    User,
    UserIdentity,
    utc_now,
)


class ApplicationBuilder:
    """Compose an application and its children for a test. Call build() to commit."""

    def __init__(self, db, name: str = "Test Application", application: Application | None = None):
        self.db = db
        if application is None:
            application = Application(name=name)
            db.add(application)
        self.application = application
        self.client: Client | None = application.clients[0] if application.clients else None
        self.role: Role | None = None
        self.user: User | None = None
        self.identity: UserIdentity | None = None
        self.authenticator: Authenticator | None = None

    def scope(self, *names: str) -> "ApplicationBuilder":
        self.db.add_all([ApplicationScope(name=name, application=self.application) for name in names])
        return self

    def with_role(self, name: str, scopes=(), default: bool = False) -> "ApplicationBuilder":
        self.role = Role(name=name, application=self.application)
        self.role.scopes = {n: self.application.scopes[n] for n in scopes}
        self.db.add(self.role)
        if default:
            self.application.default_role = self.role
        return self

    def with_client(self, type: ClientType, secret: str | None = None, redirects=(), configuration=None) -> "ApplicationBuilder":
        self.client = Client(
            name=f"{type.value} client",
            type=type,
            client_secret=secret,
            configuration=configuration or {},
            application=self.application,
        )
        self.db.add(self.client)
        self.db.add_all([ClientRedirect(uri=uri, client=self.client) for uri in redirects])
        return self

    def with_authenticator(self, type: AuthenticatorType, configuration=None) -> "ApplicationBuilder":
        self.authenticator = Authenticator(type=type, configuration=configuration or {}, client=self.client)
        self.db.add(self.authenticator)
        return self

    def with_user(self, role: Role | None = None) -> "ApplicationBuilder":
        self.user = User(application=self.application, role=role or self.role)
        self.db.add(self.user)
        return self

    def with_identity(self, remote_id: str, password: str | None = None, type=AuthenticatorType.Password) -> "ApplicationBuilder":
        self.identity = UserIdentity(
            user=self.user,
            type=type,
            remote_id=remote_id,
            password=hash_password(password) if password else None,
            claims={},
        )
        self.db.add(self.identity)
        return self

    def owned_by(self, user: User) -> "ApplicationBuilder":
        self.application.owner = user
        return self

    def token(
        self,
        token_type: OAuthTokenType = OAuthTokenType.Bearer,
        scopes=(),
        expires_in: int = 600,
        issued_at=None,
        redirect: str | None = None,
        auth_token: OAuthToken | None = None,
        identity: UserIdentity | None = None,
    ) -> OAuthToken:
        token = OAuthToken(
            client=self.client,
            identity=identity or self.identity,
            token_type=token_type,
            expires_in=expires_in,
            issued_at=issued_at or utc_now(),
            redirect=redirect,
            auth_token=auth_token,
        )
        token.scopes = {n: self.application.scopes[n] for n in scopes}
        self.db.add(token)
        return token

    def build(self) -> "ApplicationBuilder":
        self.db.commit()
        return self


def admin_user(db, admin_application: Application, scopes, owns=()):
    """
    A new user of the admin application holding a live bearer from the admin client.
    Returns (user, bearer id); applications in owns are handed to the user.
    """
    admin = ApplicationBuilder(db, application=admin_application).with_user()
    admin.with_identity(f"admin-{len(admin_application.users)}", "pw")
    token = admin.token(scopes=scopes)
    for application in owns:
        application.owner = admin.user
    db.commit()
    return admin.user, encode_id(token.id)


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def query_of(location: str) -> dict:
    return {k: v[0] for k, v in parse_qs(urlsplit(location).query).items()}


def fragment_of(location: str) -> dict:
    return {k: v[0] for k, v in parse_qs(urlsplit(location).fragment).items()}


def start_login(client, params: dict) -> str:
    """GET /authorize and return the authenticator state from the delegate redirect."""
    r = client.get("/authorize", params=params, follow_redirects=False)
    assert r.status_code == 302, r.text
    return query_of(r.headers["location"])["state"]


def password_login(client, params: dict, login: str, password: str):
    state = start_login(client, params)
    return client.post(
        "/authorize/callback",
        data={"state": state, "login": login, "password": password},
        follow_redirects=False,
    )
