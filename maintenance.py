"""
One-off maintenance commands for the storefront database.

    python maintenance.py seed
    python maintenance.py grant-admin user@example.com
    python maintenance.py backfill-vendors
"""

import argparse
import logging
from typing import Dict, List, Optional, Tuple

from config import Settings
from database import PRODUCTS, USERS, DocumentStore
from schemas import Product, Role

logger = logging.getLogger(__name__)

UNKNOWN_VENDOR = "Unknown Vendor"

SAMPLE_PRODUCTS = [
    Product(
        name="Laptop Pro",
        description="A high-performance laptop for all your professional needs. Features a stunning display and blazing-fast processor.",
        price=1299.99,
        image_url="https://placehold.co/600x600/3498db/ffffff?text=Laptop+Pro",
    ),
    Product(
        name="Wireless Headphones",
        description="Immerse yourself in crystal-clear audio with these noise-cancelling wireless headphones. Long-lasting battery life.",
        price=199.99,
        image_url="https://placehold.co/600x600/9b59b6/ffffff?text=Headphones",
    ),
    Product(
        name="Smart Watch",
        description="Stay connected and track your fitness goals with this sleek and stylish smart watch. Syncs with your smartphone.",
        price=249.50,
        image_url="https://placehold.co/600x600/e74c3c/ffffff?text=Smart+Watch",
    ),
    Product(
        name="Coffee Maker",
        description="Brew the perfect cup of coffee every morning. Programmable and easy to clean.",
        price=89.99,
        image_url="https://placehold.co/600x600/1abc9c/ffffff?text=Coffee+Maker",
    ),
    Product(
        name="Gaming Mouse",
        description="Get the competitive edge with this ergonomic gaming mouse, featuring customizable buttons and RGB lighting.",
        price=79.99,
        image_url="https://placehold.co/600x600/f1c40f/ffffff?text=Gaming+Mouse",
    ),
    Product(
        name="Mechanical Keyboard",
        description="A durable and responsive mechanical keyboard for typing and gaming. Satisfying tactile feedback.",
        price=120.00,
        image_url="https://placehold.co/600x600/2ecc71/ffffff?text=Keyboard",
    ),
    Product(
        name="4K Monitor",
        description="Experience stunning visuals with this 27-inch 4K UHD monitor. Perfect for creative work and entertainment.",
        price=450.00,
        image_url="https://placehold.co/600x600/34495e/ffffff?text=4K+Monitor",
    ),
    Product(
        name="Portable SSD",
        description="1TB of lightning-fast storage in a compact design. Transfer large files in seconds.",
        price=150.00,
        image_url="https://placehold.co/600x600/e67e22/ffffff?text=Portable+SSD",
    ),
]

DEFAULT_VENDORS = {
    "Laptop Pro": "TechCorp",
    "Wireless Headphones": "AudioMax",
    "Smart Watch": "SmartTech",
    "Coffee Maker": "HomeBrew",
    "Gaming Mouse": "GamingPro",
    "Mechanical Keyboard": "KeyMaster",
    "4K Monitor": "DisplayTech",
    "Portable SSD": "StoragePlus",
}


def seed_products(store: DocumentStore, products: Optional[List[Product]] = None) -> int:
    """Create the sample catalog if the products collection is empty"""
    if store.list_all(PRODUCTS):
        logger.info("Products already exist; nothing to seed")
        return 0
    products = SAMPLE_PRODUCTS if products is None else products
    for p in products:
        store.add(PRODUCTS, p.to_document())
    logger.info("Added %d sample products", len(products))
    return len(products)


def grant_admin(store: DocumentStore, email: str) -> bool:
    email = email.strip().lower()
    for profile in store.list_all(USERS):
        if (profile.get("email") or "").lower() == email:
            store.set(USERS, profile["id"], {"role": Role.ADMIN.value}, merge=True)
            logger.info("User %s has been granted admin privileges", email)
            return True
    logger.warning("User with email %s not found; they must sign in at least once", email)
    return False


def backfill_vendors(store: DocumentStore, defaults: Optional[Dict[str, str]] = None) -> Tuple[int, int]:
    defaults = DEFAULT_VENDORS if defaults is None else defaults
    updated = skipped = 0
    for product in store.list_all(PRODUCTS):
        if product.get("vendor"):
            skipped += 1
            continue
        vendor = defaults.get(product.get("name"), UNKNOWN_VENDOR)
        store.set(PRODUCTS, product["id"], {"vendor": vendor}, merge=True)
        logger.info("Updated %r with vendor: %s", product.get("name"), vendor)
        updated += 1
    return updated, skipped


def main(argv: Optional[List[str]] = None, store: Optional[DocumentStore] = None) -> int:
    parser = argparse.ArgumentParser(description="Storefront maintenance commands")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("seed", help="add the sample catalog to an empty database")
    grant = sub.add_parser("grant-admin", help="give a user the admin role")
    grant.add_argument("email")
    sub.add_parser("backfill-vendors", help="set a vendor on products that lack one")
    args = parser.parse_args(argv)

    settings = Settings.from_env()
    logging.basicConfig(level=settings.log_level)
    owned = store is None
    if owned:
        store = DocumentStore.from_settings(settings)
    try:
        if args.command == "seed":
            print(f"Created {seed_products(store)} products")
        elif args.command == "grant-admin":
            if not grant_admin(store, args.email):
                return 1
        elif args.command == "backfill-vendors":
            updated, skipped = backfill_vendors(store)
            print(f"Updated: {updated} products")
            print(f"Skipped: {skipped} products (already had vendor)")
    finally:
        if owned:
            store.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
