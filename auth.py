"""
Auth provider.

Email/password accounts kept in the document store (``accounts/<email>``),
bcrypt password hashes, and HS256 bearer tokens for the REST facade. Session
changes are pushed to subscribers through cancellable subscriptions so the
storefront can react to sign-in and sign-out without polling.
"""

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from bson import ObjectId
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel, EmailStr, Field, ValidationError

from config import Settings
from database import ACCOUNTS, DocumentStore
from errors import AuthError
from schemas import Account, Identity

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

SessionCallback = Callable[[Optional[Identity]], None]


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


class Credentials(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH)


class Subscription:
    """Handle returned by AuthProvider.on_session_change."""

    def __init__(self, provider: "AuthProvider", callback: SessionCallback):
        self._provider = provider
        self.callback = callback
        self.active = True

    def cancel(self) -> None:
        if self.active:
            self.active = False
            self._provider._remove(self)


class AuthProvider:
    def __init__(self, store: DocumentStore, settings: Settings):
        self.store = store
        self.settings = settings
        self._current: Optional[Identity] = None
        self._subscriptions: List[Subscription] = []
        self._lock = threading.Lock()

    @property
    def current(self) -> Optional[Identity]:
        return self._current

    # Tokens

    def create_access_token(self, uid: str, email: str, expires_delta: Optional[timedelta] = None) -> str:
        expire = datetime.now(timezone.utc) + (
            expires_delta or timedelta(minutes=self.settings.access_token_expire_minutes)
        )
        to_encode = {"sub": uid, "email": email, "exp": expire}
        return jwt.encode(to_encode, self.settings.jwt_secret, algorithm=self.settings.jwt_algorithm)

    def identity_from_token(self, token: str) -> Identity:
        try:
            payload = jwt.decode(token, self.settings.jwt_secret, algorithms=[self.settings.jwt_algorithm])
        except JWTError:
            raise AuthError("Invalid or expired token")
        uid = payload.get("sub")
        if not uid:
            raise AuthError("Invalid token")
        return Identity(uid=uid, email=payload.get("email", ""), token=token)

    # Sessions

    def sign_up(self, email: str, password: str) -> Identity:
        creds = _check_credentials(email, password)
        key = creds.email.lower()
        if self.store.get(ACCOUNTS, key):
            raise AuthError("Email already registered")
        uid = str(ObjectId())
        account = Account(uid=uid, email=key, password_hash=hash_password(creds.password))
        self.store.set(ACCOUNTS, key, account.model_dump())
        logger.info("Registered account %s", uid)
        return self._start_session(uid, key)

    def sign_in(self, email: str, password: str) -> Identity:
        key = (email or "").strip().lower()
        account = self.store.get(ACCOUNTS, key) if key else None
        if not account or not verify_password(password or "", account.get("password_hash", "")):
            raise AuthError("Invalid email or password")
        return self._start_session(account["uid"], key)

    def sign_out(self) -> None:
        self._set_current(None)

    def on_session_change(self, callback: SessionCallback) -> Subscription:
        sub = Subscription(self, callback)
        with self._lock:
            self._subscriptions.append(sub)
        self._deliver(sub, self._current)
        return sub

    def _start_session(self, uid: str, email: str) -> Identity:
        identity = Identity(uid=uid, email=email, token=self.create_access_token(uid, email))
        self._set_current(identity)
        return identity

    def _set_current(self, identity: Optional[Identity]) -> None:
        self._current = identity
        with self._lock:
            subs = list(self._subscriptions)
        for sub in subs:
            self._deliver(sub, identity)

    def _deliver(self, sub: Subscription, identity: Optional[Identity]) -> None:
        if not sub.active:
            return
        try:
            sub.callback(identity)
        except Exception:
            logger.exception("Session change listener failed")

    def _remove(self, sub: Subscription) -> None:
        with self._lock:
            if sub in self._subscriptions:
                self._subscriptions.remove(sub)


def _check_credentials(email: str, password: str) -> Credentials:
    try:
        return Credentials(email=email, password=password)
    except ValidationError as e:
        fields = {err["loc"][0] for err in e.errors() if err.get("loc")}
        if "email" in fields:
            raise AuthError("Invalid email address")
        raise AuthError(f"Password should be at least {MIN_PASSWORD_LENGTH} characters")
