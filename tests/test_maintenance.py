from database import PRODUCTS, USERS
from maintenance import SAMPLE_PRODUCTS, UNKNOWN_VENDOR, backfill_vendors, grant_admin, main, seed_products


def test_seed_only_into_empty_catalog(store):
    assert seed_products(store) == len(SAMPLE_PRODUCTS)
    assert seed_products(store) == 0
    names = {p["name"] for p in store.list_all(PRODUCTS)}
    assert "Laptop Pro" in names


def test_grant_admin(store):
    store.set(USERS, "u1", {"role": "user", "email": "Boss@Example.com"})
    assert grant_admin(store, "boss@example.com") is True
    assert store.get(USERS, "u1")["role"] == "admin"
    assert store.get(USERS, "u1")["email"] == "Boss@Example.com"


def test_grant_admin_unknown_email(store):
    assert grant_admin(store, "ghost@example.com") is False


def test_backfill_vendors(store):
    known = store.add(PRODUCTS, {"name": "Gaming Mouse", "price": 1})
    other = store.add(PRODUCTS, {"name": "Mystery Box", "price": 1})
    store.add(PRODUCTS, {"name": "Coffee Maker", "price": 1, "vendor": "Acme"})

    assert backfill_vendors(store) == (2, 1)
    assert store.get(PRODUCTS, known)["vendor"] == "GamingPro"
    assert store.get(PRODUCTS, other)["vendor"] == UNKNOWN_VENDOR


def test_cli_commands(store, capsys):
    assert main(["seed"], store=store) == 0
    assert "Created" in capsys.readouterr().out
    assert main(["grant-admin", "ghost@example.com"], store=store) == 1
    assert main(["backfill-vendors"], store=store) == 0
    assert f"Updated: {len(SAMPLE_PRODUCTS)} products" in capsys.readouterr().out
    assert all(p["vendor"] != UNKNOWN_VENDOR for p in store.list_all(PRODUCTS))
