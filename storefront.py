"""
Storefront session.

Holds the per-session state a presentation layer renders (current page,
products, cart, role, messages) and turns user intents into cart, catalog
and profile operations. Sign-in and sign-out arrive through the auth
provider's session subscription.
"""

import logging
from typing import Any, Dict, List, Optional

from auth import AuthProvider
from cart import CartRepository, add_item, cart_count, compute_subtotal, decrement_item, remove_item
from catalog_import import import_catalog
from database import PRODUCTS, DocumentStore
from errors import AuthenticationRequired, CatalogValidationError, StoreError, StorefrontError
from roles import View, gate_view, is_authorized, load_profile, resolve_role, update_profile
from schemas import CartTotals, Identity, ImportReport, Product, Role, UserProfile

logger = logging.getLogger(__name__)


class Storefront:
    def __init__(self, store: DocumentStore, auth: AuthProvider):
        self.store = store
        self.auth = auth
        self.carts = CartRepository(store)

        self.identity: Optional[Identity] = None
        self.role: Optional[Role] = None
        self.cart: Dict[str, int] = {}
        self.products: List[Dict[str, Any]] = []
        self.current_page: View = View.PRODUCTS
        self.selected_product: Optional[Dict[str, Any]] = None
        self.error: Optional[str] = None
        self.auth_message: Optional[str] = None
        self.form_message: Optional[Dict[str, str]] = None

        self._subscription = auth.on_session_change(self._on_session_change)

    def close(self) -> None:
        self._subscription.cancel()

    # Session

    def _on_session_change(self, identity: Optional[Identity]) -> None:
        self.identity = identity
        if identity is None:
            self.cart = {}
            self.role = None
            return
        self._load_cart(identity.uid)
        self.role = resolve_role(self.store, identity.uid, identity.email)
        self.auth_message = None

    def _load_cart(self, uid: str) -> None:
        # never carry the previous identity's items over
        self.cart = {}
        try:
            self.cart = self.carts.load(uid)
        except StoreError:
            logger.error("Failed to load cart for %s", uid, exc_info=True)
            self.error = "Failed to load cart."

    def sign_up(self, email: str, password: str) -> bool:
        try:
            self.auth.sign_up(email, password)
        except StorefrontError as e:
            self.error = str(e)
            return False
        self.error = None
        return True

    def log_in(self, email: str, password: str) -> bool:
        try:
            self.auth.sign_in(email, password)
        except StorefrontError as e:
            self.error = str(e)
            return False
        self.error = None
        return True

    def log_out(self) -> None:
        self.auth.sign_out()
        self.current_page = View.PRODUCTS

    @property
    def is_admin(self) -> bool:
        return is_authorized(self.role, Role.ADMIN)

    # Navigation

    def navigate(self, page: str) -> None:
        self.error = None
        self.auth_message = None
        try:
            self.current_page = View(page)
        except ValueError:
            self.current_page = View.PRODUCTS

    def render_view(self) -> View:
        return gate_view(self.current_page, self.role)

    def view_product(self, product: Dict[str, Any]) -> None:
        self.selected_product = product
        self.navigate(View.PRODUCT_DETAIL)

    # Catalog

    def fetch_products(self) -> List[Dict[str, Any]]:
        try:
            self.products = self.store.list_all(PRODUCTS)
        except StoreError:
            logger.error("Failed to fetch products", exc_info=True)
            self.error = "Failed to fetch products."
        return self.products

    def add_product(self, data: Dict[str, Any]) -> bool:
        self.form_message = None
        try:
            product = Product.model_validate(data)
            self.store.add(PRODUCTS, product.to_document())
        except (ValueError, StoreError):
            logger.error("Failed to add product", exc_info=True)
            self.form_message = {"type": "error", "text": "Failed to add product. Please try again."}
            return False
        self.fetch_products()
        self.form_message = {"type": "success", "text": "Product added successfully!"}
        return True

    def import_catalog(self, raw_text: str) -> Optional[ImportReport]:
        self.form_message = None
        try:
            report = import_catalog(
                raw_text,
                writer=lambda doc: self.store.add(PRODUCTS, doc),
                refresh=self.fetch_products,
            )
        except CatalogValidationError as e:
            self.form_message = {"type": "error", "text": str(e)}
            return None
        kind = "success" if report.status == "success" else "error"
        self.form_message = {"type": kind, "text": report.message}
        return report

    # Cart

    @property
    def cart_count(self) -> int:
        return cart_count(self.cart)

    def cart_totals(self) -> CartTotals:
        return compute_subtotal(self.cart, self.products)

    def add_to_cart(self, product_id: str) -> bool:
        try:
            new_cart = add_item(self.cart, product_id, self.identity)
        except AuthenticationRequired as e:
            self.auth_message = str(e)
            self.current_page = View.LOGIN
            return False
        self._apply(new_cart)
        return True

    def remove_from_cart(self, product_id: str) -> None:
        self._apply(decrement_item(self.cart, product_id))

    def delete_from_cart(self, product_id: str) -> None:
        self._apply(remove_item(self.cart, product_id))

    def _apply(self, new_cart: Dict[str, int]) -> None:
        self.cart = new_cart
        if self.identity is None:
            return
        try:
            with self.carts.lock(self.identity.uid):
                self.carts.persist(new_cart, self.identity.uid)
        except StoreError:
            logger.warning("Failed to save cart for %s", self.identity.uid, exc_info=True)
            self.error = "Failed to save cart."

    # Profile

    def load_profile(self) -> Optional[UserProfile]:
        if self.identity is None:
            return None
        try:
            return load_profile(self.store, self.identity.uid, self.identity.email)
        except StoreError:
            logger.error("Error loading user profile", exc_info=True)
            self.form_message = {"type": "error", "text": "Failed to load profile data."}
            return None

    def save_profile(self, name: str, nickname: str, avatar: Optional[str] = None) -> Optional[UserProfile]:
        if self.identity is None:
            return None
        try:
            profile = update_profile(self.store, self.identity.uid, self.identity.email, name, nickname, avatar)
        except StoreError:
            logger.error("Error saving profile", exc_info=True)
            self.form_message = {"type": "error", "text": "Failed to update profile. Please try again."}
            return None
        self.form_message = {"type": "success", "text": "Profile updated successfully!"}
        return profile
