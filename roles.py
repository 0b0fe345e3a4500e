"""
Role and session gate.

Profiles live in ``users/<uid>`` and are created lazily with the ``user``
role. Anything that goes wrong while reading a role degrades to ``user``;
nothing in here raises on an authorization decision.
"""

import logging
from enum import Enum
from typing import Optional, Union

from database import USERS, DocumentStore
from errors import StoreError
from schemas import Role, UserProfile, utcnow

logger = logging.getLogger(__name__)

TIERS = {Role.USER: 1, Role.ADMIN: 2}


class View(str, Enum):
    PRODUCTS = "products"
    PRODUCT_DETAIL = "productDetail"
    CART = "cart"
    LOGIN = "login"
    SIGNUP = "signup"
    ADMIN = "admin"
    PROFILE = "profile"
    ACCESS_DENIED = "access_denied"


def _coerce_role(value: Union[Role, str, None]) -> Optional[Role]:
    if value is None:
        return None
    try:
        return Role(value)
    except ValueError:
        return None


def resolve_role(store: DocumentStore, uid: str, email: Optional[str] = None) -> Role:
    try:
        doc = store.get(USERS, uid)
        if doc is None:
            store.set(USERS, uid, UserProfile(email=email).to_document())
            logger.info("Created profile for %s with role user", uid)
            return Role.USER
        if not doc.get("role"):
            store.set(USERS, uid, {"role": Role.USER.value}, merge=True)
            return Role.USER
        role = _coerce_role(doc["role"])
        if role is None:
            logger.warning("Unknown role %r on profile %s; treating as user", doc["role"], uid)
            return Role.USER
        return role
    except StoreError:
        logger.warning("Failed to load role for %s; defaulting to user", uid, exc_info=True)
        return Role.USER


def is_authorized(role: Union[Role, str, None], required: Union[Role, str]) -> bool:
    have = _coerce_role(role)
    need = _coerce_role(required)
    if have is None or need is None:
        return False
    return TIERS[have] >= TIERS[need]


def gate_view(view: Union[View, str], role: Union[Role, str, None]) -> View:
    """Return the view to render, substituting ACCESS_DENIED for admin pages."""
    view = View(view)
    if view == View.ADMIN and not is_authorized(role, Role.ADMIN):
        return View.ACCESS_DENIED
    return view


def load_profile(store: DocumentStore, uid: str, email: Optional[str] = None) -> UserProfile:
    doc = store.get(USERS, uid)
    if doc is None:
        profile = UserProfile(email=email)
        store.set(USERS, uid, profile.to_document())
        return profile
    doc = dict(doc)
    doc["role"] = _coerce_role(doc.get("role")) or Role.USER
    return UserProfile.model_validate(doc)


def update_profile(
    store: DocumentStore,
    uid: str,
    email: Optional[str],
    name: str,
    nickname: str,
    avatar: Optional[str] = None,
) -> UserProfile:
    if store.get(USERS, uid) is None:
        store.set(USERS, uid, UserProfile(email=email).to_document())
    changes = {"name": name, "nickname": nickname, "updatedAt": utcnow()}
    # email always comes from the auth provider, never from the form
    if email:
        changes["email"] = email
    if avatar is not None:
        changes["avatar"] = avatar
    store.set(USERS, uid, changes, merge=True)
    return load_profile(store, uid, email)
