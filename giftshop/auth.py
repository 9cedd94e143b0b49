# giftshop/auth.py
"""Identity, profiles and the per-caller session context.

The identity provider (a hosted GoTrue-style service, or ``MemoryIdentity``)
issues opaque access tokens and tells subscribers when a session changes.
Profiles are our own rows in ``profiles``, keyed by the identity user id and
created on first sight of a session.
"""
import hashlib
import logging
import secrets
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
from pydantic import BaseModel, Field

from .database import Database, eq
from .errors import AuthorizationError, RemoteServiceError
from .models import Profile, UserRole

logger = logging.getLogger(__name__)

SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"
TOKEN_REFRESHED = "TOKEN_REFRESHED"
USER_UPDATED = "USER_UPDATED"

STAFF_ROLES = (UserRole.ADMIN.value, UserRole.STAFF.value)


class AuthUser(BaseModel):
    id: str
    email: Optional[str] = None
    user_metadata: Dict[str, Any] = Field(default_factory=dict)


class AuthSession(BaseModel):
    access_token: str
    user: AuthUser


class SignUpResult(BaseModel):
    user: Optional[AuthUser] = None
    session: Optional[AuthSession] = None
    needs_email_confirmation: bool = False


AuthListener = Callable[[str, Optional[AuthSession]], Awaitable[None]]


class IdentityService:
    def __init__(self):
        self._listeners: List[AuthListener] = []

    def on_auth_state_change(self, listener: AuthListener) -> Callable[[], None]:
        """Subscribe to session changes; returns the unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    async def _emit(self, event: str, session: Optional[AuthSession]):
        for listener in list(self._listeners):
            await listener(event, session)

    async def get_session(self, access_token: Optional[str]) -> Optional[AuthSession]:
        raise NotImplementedError

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        raise NotImplementedError

    async def sign_up(self, email: str, password: str, metadata: Optional[Dict[str, Any]] = None) -> SignUpResult:
        raise NotImplementedError

    async def update_user(self, access_token: str, metadata: Dict[str, Any]) -> AuthUser:
        raise NotImplementedError

    async def sign_out(self, access_token: str):
        raise NotImplementedError

    async def aclose(self):
        pass


def _hash_password(password: str, salt: str) -> str:
    return hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), 100_000).hex()


class MemoryIdentity(IdentityService):
    def __init__(self, require_email_confirmation: bool = False):
        super().__init__()
        self.require_email_confirmation = require_email_confirmation
        self.users: Dict[str, Dict[str, Any]] = {}  # by email
        self.tokens: Dict[str, str] = {}  # access token -> email

    def _user(self, record: Dict[str, Any]) -> AuthUser:
        return AuthUser(id=record["id"], email=record["email"], user_metadata=record["metadata"])

    def _issue(self, email: str) -> AuthSession:
        token = secrets.token_urlsafe(32)
        self.tokens[token] = email
        return AuthSession(access_token=token, user=self._user(self.users[email]))

    def confirm_email(self, email: str):
        self.users[email.lower()]["confirmed"] = True

    async def get_session(self, access_token):
        email = self.tokens.get(access_token) if access_token else None
        if email is None:
            return None
        return AuthSession(access_token=access_token, user=self._user(self.users[email]))

    async def sign_in_with_password(self, email, password):
        record = self.users.get(email.lower())
        if record is None or record["password"] != _hash_password(password, record["salt"]):
            raise AuthorizationError("Invalid login credentials")
        if not record["confirmed"]:
            raise AuthorizationError("Email not confirmed")
        session = self._issue(record["email"])
        await self._emit(SIGNED_IN, session)
        return session

    async def sign_up(self, email, password, metadata=None):
        email = email.lower()
        if email in self.users:
            raise AuthorizationError("User already registered", status_code=400)
        salt = secrets.token_hex(8)
        self.users[email] = {
            "id": uuid.uuid4().hex,
            "email": email,
            "salt": salt,
            "password": _hash_password(password, salt),
            "metadata": dict(metadata or {}),
            "confirmed": not self.require_email_confirmation,
        }
        user = self._user(self.users[email])
        if self.require_email_confirmation:
            return SignUpResult(user=user, needs_email_confirmation=True)
        session = self._issue(email)
        await self._emit(SIGNED_IN, session)
        return SignUpResult(user=user, session=session)

    async def update_user(self, access_token, metadata):
        email = self.tokens.get(access_token)
        if email is None:
            raise AuthorizationError()
        self.users[email]["metadata"].update(metadata)
        session = AuthSession(access_token=access_token, user=self._user(self.users[email]))
        await self._emit(USER_UPDATED, session)
        return session.user

    async def sign_out(self, access_token):
        email = self.tokens.pop(access_token, None)
        if email is not None:
            await self._emit(SIGNED_OUT, AuthSession(access_token=access_token, user=self._user(self.users[email])))


def _error_message(r: httpx.Response, default: str) -> str:
    try:
        body = r.json()
    except ValueError:
        return default
    if not isinstance(body, dict):
        return default
    return body.get("msg") or body.get("error_description") or default


class RestIdentity(IdentityService):
    def __init__(self, base_url: str, api_key: Optional[str] = None, timeout: float = 10.0,
                 client: Optional[httpx.AsyncClient] = None):
        super().__init__()
        headers = {"apikey": api_key} if api_key else {}
        self.client = client or httpx.AsyncClient(base_url=f"{base_url.rstrip('/')}/auth/v1",
                                                  headers=headers, timeout=timeout)

    async def _post(self, operation: str, path: str, **kwargs) -> httpx.Response:
        try:
            return await self.client.post(path, **kwargs)
        except httpx.HTTPError as e:
            raise RemoteServiceError(operation, e) from e

    @staticmethod
    def _session(body: Dict[str, Any]) -> Optional[AuthSession]:
        if not body.get("access_token"):
            return None
        return AuthSession(access_token=body["access_token"], user=AuthUser(**body["user"]))

    async def get_session(self, access_token):
        if not access_token:
            return None
        try:
            r = await self.client.get("/user", headers={"Authorization": f"Bearer {access_token}"})
        except httpx.HTTPError as e:
            raise RemoteServiceError("get session", e) from e
        if r.status_code in (401, 403):
            return None
        if r.is_error:
            raise RemoteServiceError("get session")
        return AuthSession(access_token=access_token, user=AuthUser(**r.json()))

    async def sign_in_with_password(self, email, password):
        r = await self._post("sign in", "/token", params={"grant_type": "password"},
                             json={"email": email, "password": password})
        if r.status_code in (400, 401):
            raise AuthorizationError(_error_message(r, "Invalid login credentials"))
        if r.is_error:
            raise RemoteServiceError("sign in")
        session = self._session(r.json())
        await self._emit(SIGNED_IN, session)
        return session

    async def sign_up(self, email, password, metadata=None):
        r = await self._post("sign up", "/signup", json={"email": email, "password": password, "data": metadata or {}})
        if r.status_code in (400, 422):
            raise AuthorizationError(_error_message(r, "Sign up rejected"), status_code=400)
        if r.is_error:
            raise RemoteServiceError("sign up")
        body = r.json()
        session = self._session(body)
        if session is None:
            # confirmation mail sent; the body is the bare user
            user = AuthUser(**(body.get("user") or body))
            return SignUpResult(user=user, needs_email_confirmation=True)
        await self._emit(SIGNED_IN, session)
        return SignUpResult(user=session.user, session=session)

    async def update_user(self, access_token, metadata):
        try:
            r = await self.client.put("/user", json={"data": metadata},
                                      headers={"Authorization": f"Bearer {access_token}"})
        except httpx.HTTPError as e:
            raise RemoteServiceError("update user", e) from e
        if r.status_code in (401, 403):
            raise AuthorizationError()
        if r.is_error:
            raise RemoteServiceError("update user")
        user = AuthUser(**r.json())
        await self._emit(USER_UPDATED, AuthSession(access_token=access_token, user=user))
        return user

    async def sign_out(self, access_token):
        r = await self._post("sign out", "/logout", headers={"Authorization": f"Bearer {access_token}"})
        if r.is_error and r.status_code not in (401, 403):
            raise RemoteServiceError("sign out")
        session = AuthSession(access_token=access_token, user=AuthUser(id=""))
        await self._emit(SIGNED_OUT, session)

    async def aclose(self):
        await self.client.aclose()


# ---------------------------
# Profiles
# ---------------------------
async def ensure_profile(db: Database, user: AuthUser) -> Optional[Profile]:
    """Create the caller's profile on first sight, then read it back.

    The insert is an upsert that ignores an existing row, so two first logins
    racing each other still leave exactly one profile with its original role.
    """
    meta = user.user_metadata or {}
    await db.upsert("profiles", {
        "id": user.id,
        "full_name": meta.get("full_name") or "",
        "phone": meta.get("phone"),
        "role": UserRole.CUSTOMER.value,
    }, ignore_duplicates=True)
    rows = await db.select("profiles", [eq("id", user.id)], limit=1)
    return Profile(**rows[0]) if rows else None


async def bootstrap_admin(identity: IdentityService, db: Database, email: str, password: str,
                          full_name: str = "Administrator") -> Profile:
    """Make sure an admin account exists; safe to run on every start."""
    try:
        user = (await identity.sign_in_with_password(email, password)).user
    except AuthorizationError:
        result = await identity.sign_up(email, password, {"full_name": full_name})
        user = result.user
    row = await db.upsert("profiles", {"id": user.id, "full_name": full_name, "role": UserRole.ADMIN.value})
    logger.info("Admin account ready for %s", email)
    return Profile(**row)


# ---------------------------
# Session context
# ---------------------------
class SessionContext:
    """Identity and profile of one caller, passed explicitly to whoever needs them.

    Lifecycle: ``initialize`` on startup, refreshed by identity notifications for
    the same user, ``teardown`` on sign-out.
    """

    def __init__(self, identity: IdentityService, db: Database):
        self.identity = identity
        self.db = db
        self.session: Optional[AuthSession] = None
        self.profile: Optional[Profile] = None
        self.loading = True
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def user(self) -> Optional[AuthUser]:
        return self.session.user if self.session else None

    @property
    def access_token(self) -> Optional[str]:
        return self.session.access_token if self.session else None

    @property
    def role(self) -> Optional[str]:
        return self.profile.role.value if self.profile else None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

    @property
    def is_staff(self) -> bool:
        return self.role == UserRole.STAFF.value

    async def initialize(self, access_token: Optional[str] = None):
        if self._unsubscribe is None:
            self._unsubscribe = self.identity.on_auth_state_change(self.handle_auth_change)
        self.session = await self.identity.get_session(access_token) if access_token else None
        await self._load_profile()

    async def handle_auth_change(self, event: str, session: Optional[AuthSession]):
        if self.session is None or session is None:
            return
        if event == SIGNED_OUT:
            if session.access_token == self.session.access_token:
                self._clear()
            return
        # a fresh SIGNED_IN elsewhere is a different session, not ours
        if event in (TOKEN_REFRESHED, USER_UPDATED) and session.user.id == self.session.user.id:
            self.session = session
            await self._load_profile()

    async def _load_profile(self):
        self.loading = True
        try:
            self.profile = await ensure_profile(self.db, self.session.user) if self.session else None
        except RemoteServiceError:
            logger.exception("Profile fetch error")
            self.profile = None
        finally:
            self.loading = False

    async def sign_in(self, email: str, password: str) -> AuthSession:
        session = await self.identity.sign_in_with_password(email, password)
        self.session = session
        self.db = self.db.for_session(session.access_token)
        await self._load_profile()
        return session

    async def sign_up(self, email: str, password: str, full_name: str, phone: Optional[str] = None) -> SignUpResult:
        result = await self.identity.sign_up(email, password, {"full_name": full_name, "phone": phone})
        if result.session is not None:
            self.session = result.session
            self.db = self.db.for_session(result.session.access_token)
            await self._load_profile()
        return result

    async def sign_out(self):
        if self.session is not None:
            await self.identity.sign_out(self.session.access_token)
        self.teardown()

    def _clear(self):
        self.session = None
        self.profile = None
        self.loading = False

    def teardown(self):
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._clear()

    def require_role(self, *roles: str) -> Profile:
        if self.session is None or self.profile is None:
            raise AuthorizationError()
        if self.profile.role.value not in roles:
            raise AuthorizationError("insufficient role", status_code=403)
        return self.profile
