"""
Cart engine.

A cart is a plain ``{product_id: quantity}`` mapping. Mutations never touch
their argument; they return the replacement mapping, which the caller keeps
in memory and writes through with CartRepository.persist. No entry ever holds
a quantity below 1.
"""

import logging
import threading
import weakref
from contextlib import contextmanager
from typing import Any, Dict, Iterable, Iterator, Mapping, Optional, Union

from database import CARTS, DocumentStore
from errors import AuthenticationRequired
from schemas import CartDocument, CartTotals, Identity

logger = logging.getLogger(__name__)

Cart = Dict[str, int]
Catalog = Union[Mapping[str, Mapping[str, Any]], Iterable[Mapping[str, Any]]]


def add_item(cart: Mapping[str, int], product_id: str, identity: Optional[Identity]) -> Cart:
    if identity is None:
        raise AuthenticationRequired("Please log in to add items to your cart.")
    new_cart = dict(cart)
    new_cart[product_id] = new_cart.get(product_id, 0) + 1
    return new_cart


def decrement_item(cart: Mapping[str, int], product_id: str) -> Cart:
    new_cart = dict(cart)
    quantity = new_cart.get(product_id)
    if quantity is None:
        return new_cart
    if quantity > 1:
        new_cart[product_id] = quantity - 1
    else:
        del new_cart[product_id]
    return new_cart


def remove_item(cart: Mapping[str, int], product_id: str) -> Cart:
    new_cart = dict(cart)
    new_cart.pop(product_id, None)
    return new_cart


def cart_count(cart: Mapping[str, int]) -> int:
    return sum(cart.values())


def _index_catalog(catalog: Catalog) -> Mapping[str, Mapping[str, Any]]:
    if isinstance(catalog, Mapping):
        return catalog
    return {p["id"]: p for p in catalog if p.get("id")}


def compute_subtotal(cart: Mapping[str, int], catalog: Catalog) -> CartTotals:
    """Sum ``price * quantity`` over the entries the catalog can resolve.

    Entries whose product is missing from the catalog are left out of the
    subtotal but still count towards ``cart_count``.
    """
    products = _index_catalog(catalog)
    subtotal = 0.0
    for product_id, quantity in cart.items():
        product = products.get(product_id)
        if product is None:
            continue
        subtotal += float(product.get("price", 0)) * quantity
    return CartTotals(subtotal=round(subtotal, 2), cart_count=cart_count(cart))


class CartRepository:
    """Loads and persists whole carts keyed by identity."""

    def __init__(self, store: DocumentStore):
        self.store = store
        # entries disappear once no caller holds or waits on the lock
        self._locks: "weakref.WeakValueDictionary[str, threading.Lock]" = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    @contextmanager
    def lock(self, uid: str) -> Iterator[None]:
        """Serialize load/mutate/persist cycles for one identity."""
        with self._locks_guard:
            lock = self._locks.get(uid)
            if lock is None:
                lock = threading.Lock()
                self._locks[uid] = lock
        with lock:
            yield

    def load(self, uid: str) -> Cart:
        doc = self.store.get(CARTS, uid)
        if not doc:
            return {}
        items = doc.get("items") or {}
        return {pid: int(qty) for pid, qty in items.items() if int(qty) >= 1}

    def persist(self, cart: Mapping[str, int], uid: str) -> None:
        # full overwrite, never an item-by-item merge
        document = CartDocument(items=dict(cart))
        self.store.set(CARTS, uid, document.model_dump(), merge=False)
        logger.debug("Persisted cart for %s (%d items)", uid, len(cart))
