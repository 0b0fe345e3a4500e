import pytest

from database import CARTS, PRODUCTS, USERS
from roles import View
from schemas import Role
from storefront import Storefront

PASSWORD = "secret1"


@pytest.fixture
def products(store):
    return {
        "laptop": store.add(PRODUCTS, {"name": "Laptop Pro", "description": "Fast", "price": 1299.99, "imageUrl": ""}),
        "mouse": store.add(PRODUCTS, {"name": "Gaming Mouse", "description": "RGB", "price": 79.99, "imageUrl": ""}),
    }


@pytest.fixture
def shop(store, auth, products):
    sf = Storefront(store, auth)
    sf.fetch_products()
    yield sf
    sf.close()


def test_starts_signed_out(shop):
    assert shop.identity is None
    assert shop.role is None
    assert shop.cart == {}
    assert shop.render_view() == View.PRODUCTS
    assert len(shop.products) == 2


def test_add_to_cart_signed_out_redirects_to_login(shop, products):
    assert shop.add_to_cart(products["laptop"]) is False
    assert shop.current_page == View.LOGIN
    assert shop.auth_message == "Please log in to add items to your cart."
    assert shop.cart == {}
    assert shop.error is None


def test_sign_up_resolves_role_and_empty_cart(shop, store):
    assert shop.sign_up("alice@example.com", PASSWORD)
    assert shop.identity.email == "alice@example.com"
    assert shop.role == Role.USER
    assert shop.cart == {}
    assert store.get(USERS, shop.identity.uid)["role"] == "user"


def test_sign_up_error_is_reported(shop):
    assert shop.sign_up("alice@example.com", "123") is False
    assert "at least 6" in shop.error
    assert shop.identity is None


def test_cart_mutations_write_through(shop, store, products):
    shop.sign_up("alice@example.com", PASSWORD)
    uid = shop.identity.uid
    shop.add_to_cart(products["laptop"])
    shop.add_to_cart(products["laptop"])
    shop.add_to_cart(products["mouse"])
    assert store.get(CARTS, uid)["items"] == {products["laptop"]: 2, products["mouse"]: 1}

    shop.remove_from_cart(products["laptop"])
    shop.delete_from_cart(products["mouse"])
    assert shop.cart == {products["laptop"]: 1}
    assert store.get(CARTS, uid)["items"] == {products["laptop"]: 1}
    assert shop.cart_count == 1


def test_sign_out_clears_cart_and_sign_in_restores_it(shop, products):
    shop.sign_up("alice@example.com", PASSWORD)
    shop.add_to_cart(products["mouse"])
    shop.navigate("cart")
    shop.log_out()
    assert shop.cart == {}
    assert shop.role is None
    assert shop.current_page == View.PRODUCTS

    assert shop.log_in("alice@example.com", PASSWORD)
    assert shop.cart == {products["mouse"]: 1}


def test_sign_in_replaces_cart_with_persisted_copy(shop, store, products):
    shop.sign_up("alice@example.com", PASSWORD)
    uid = shop.identity.uid
    shop.add_to_cart(products["mouse"])
    shop.log_out()
    store.set(CARTS, uid, {"items": {products["laptop"]: 3}})
    shop.log_in("alice@example.com", PASSWORD)
    assert shop.cart == {products["laptop"]: 3}


def test_bad_login_sets_error(shop):
    assert shop.log_in("nobody@example.com", PASSWORD) is False
    assert shop.error == "Invalid email or password"


def test_persist_failure_keeps_optimistic_state(shop, store, products):
    shop.sign_up("alice@example.com", PASSWORD)
    store.fail_on.add(("set", CARTS))
    assert shop.add_to_cart(products["laptop"])
    assert shop.cart == {products["laptop"]: 1}
    assert shop.error == "Failed to save cart."
    assert store.get(CARTS, shop.identity.uid) is None


def test_cart_totals_skip_missing_products(shop, products):
    shop.sign_up("alice@example.com", PASSWORD)
    shop.add_to_cart(products["mouse"])
    shop.add_to_cart(products["mouse"])
    shop.add_to_cart("discontinued")
    totals = shop.cart_totals()
    assert totals.subtotal == pytest.approx(159.98)
    assert totals.cart_count == 3


def test_admin_view_requires_admin(shop, store):
    shop.navigate("admin")
    assert shop.render_view() == View.ACCESS_DENIED

    shop.sign_up("alice@example.com", PASSWORD)
    assert shop.render_view() == View.ACCESS_DENIED

    store.set(USERS, shop.identity.uid, {"role": "admin"}, merge=True)
    shop.log_out()
    shop.log_in("alice@example.com", PASSWORD)
    assert shop.is_admin
    shop.navigate("admin")
    assert shop.render_view() == View.ADMIN


def test_unknown_page_falls_back_to_products(shop):
    shop.navigate("checkout")
    assert shop.render_view() == View.PRODUCTS


def test_view_product(shop):
    shop.view_product(shop.products[0])
    assert shop.selected_product == shop.products[0]
    assert shop.render_view() == View.PRODUCT_DETAIL


def test_fetch_products_failure_sets_error(shop, store):
    store.fail_on.add(("list_all", PRODUCTS))
    shop.fetch_products()
    assert shop.error == "Failed to fetch products."
    assert len(shop.products) == 2


def test_add_product_refreshes_catalog(shop):
    assert shop.add_product({"name": "Smart Watch", "description": "Tracks", "price": 249.5, "imageUrl": ""})
    assert len(shop.products) == 3
    assert shop.form_message["type"] == "success"


def test_add_product_failure_reports_message(shop, store):
    store.fail_on.add(("add", PRODUCTS))
    assert shop.add_product({"name": "Smart Watch", "description": "Tracks", "price": 249.5}) is False
    assert shop.form_message["type"] == "error"


def test_import_catalog_refreshes_products(shop):
    report = shop.import_catalog("name,description,price,origincountry\nWidget,A nice widget,9.99,USA\n")
    assert report.imported == 1
    assert len(shop.products) == 3
    assert shop.form_message == {"type": "success", "text": "Successfully imported 1 products."}


def test_import_catalog_validation_error(shop):
    assert shop.import_catalog("name,description,price\nWidget,A nice widget,9.99\n") is None
    assert shop.form_message["type"] == "error"
    assert "origincountry" in shop.form_message["text"]
    assert len(shop.products) == 2


def test_profile_round_trip(shop):
    assert shop.load_profile() is None
    shop.sign_up("alice@example.com", PASSWORD)
    assert shop.load_profile().name == ""
    profile = shop.save_profile("Alice", "al", "https://img.example.com/a.png")
    assert profile.nickname == "al"
    assert profile.email == "alice@example.com"
    assert shop.load_profile().avatar == "https://img.example.com/a.png"


def test_close_stops_session_updates(store, auth):
    sf = Storefront(store, auth)
    sf.close()
    auth.sign_up("alice@example.com", PASSWORD)
    assert sf.identity is None


def test_failed_cart_load_on_switch_drops_previous_cart(shop, store, products):
    shop.sign_up("bob@example.com", PASSWORD)
    bob = shop.identity.uid
    shop.log_out()
    shop.sign_up("alice@example.com", PASSWORD)
    shop.add_to_cart(products["laptop"])
    shop.add_to_cart(products["laptop"])

    store.fail_on.add(("get", CARTS))
    assert shop.log_in("bob@example.com", PASSWORD)
    assert shop.identity.uid == bob
    assert shop.cart == {}

    store.fail_on.clear()
    shop.add_to_cart(products["mouse"])
    assert store.get(CARTS, bob)["items"] == {products["mouse"]: 1}
