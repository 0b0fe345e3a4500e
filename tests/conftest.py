import mongomock
import pytest
from fastapi.testclient import TestClient

from auth import AuthProvider
from config import Settings
from database import DocumentStore
from errors import StoreError
from main import create_app


class FlakyStore(DocumentStore):
    """DocumentStore that raises StoreError for the operations listed in fail_on.

    Entries are either an operation name ("get", "set", "add", "list_all",
    "ping") or an (operation, collection) pair.
    """

    def __init__(self, db):
        super().__init__(db)
        self.fail_on = set()

    def _check(self, op, collection):
        if op in self.fail_on or (op, collection) in self.fail_on:
            raise StoreError(f"{op} {collection} unavailable")

    def get(self, collection, key):
        self._check("get", collection)
        return super().get(collection, key)

    def set(self, collection, key, document, merge=False):
        self._check("set", collection)
        return super().set(collection, key, document, merge=merge)

    def add(self, collection, document):
        self._check("add", collection)
        return super().add(collection, document)

    def list_all(self, collection):
        self._check("list_all", collection)
        return super().list_all(collection)

    def ping(self):
        self._check("ping", None)
        return super().ping()


@pytest.fixture
def settings():
    return Settings(jwt_secret="test-secret", database_name="storefront_test")


@pytest.fixture
def store():
    return FlakyStore(mongomock.MongoClient()["storefront_test"])


@pytest.fixture
def auth(store, settings):
    return AuthProvider(store, settings)


@pytest.fixture
def client(settings, store):
    with TestClient(create_app(settings, store)) as c:
        yield c
