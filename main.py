import logging
import math
from contextlib import asynccontextmanager
from typing import Any, Callable, Dict, Optional

from fastapi import APIRouter, Body, Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, EmailStr, ValidationError

from auth import AuthProvider
from cart import Cart, CartRepository, add_item, compute_subtotal, decrement_item, remove_item
from catalog_import import import_catalog
from config import Settings
from database import PRODUCTS, DocumentStore
from errors import AuthError, CatalogValidationError, StoreError
from roles import is_authorized, load_profile, resolve_role, update_profile
from schemas import Identity, Product, Role

logger = logging.getLogger(__name__)

router = APIRouter()


# Dependencies

def get_store(request: Request) -> DocumentStore:
    return request.app.state.store


def get_carts(request: Request) -> CartRepository:
    return request.app.state.carts


def get_auth(request: Request) -> AuthProvider:
    # one provider per request so session state is never shared between callers
    return AuthProvider(request.app.state.store, request.app.state.settings)


def get_current_identity(
    authorization: Optional[str] = Header(default=None),
    auth: AuthProvider = Depends(get_auth),
) -> Identity:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Not authenticated")
    token = authorization.split(" ", 1)[1]
    try:
        return auth.identity_from_token(token)
    except AuthError as e:
        raise HTTPException(status_code=401, detail=str(e))


def require_admin(
    identity: Identity = Depends(get_current_identity),
    store: DocumentStore = Depends(get_store),
) -> Identity:
    role = resolve_role(store, identity.uid, identity.email)
    if not is_authorized(role, Role.ADMIN):
        raise HTTPException(status_code=403, detail="Admins only")
    return identity


def store_failure(action: str) -> HTTPException:
    logger.error("Error %s", action, exc_info=True)
    return HTTPException(status_code=500, detail="Internal Server Error")


# Auth models
class RegisterInput(BaseModel):
    email: EmailStr
    password: str
    name: Optional[str] = None


class LoginInput(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: Dict[str, Any]


class ProfileUpdate(BaseModel):
    name: str = ""
    nickname: str = ""
    avatar: Optional[str] = None


def _user_payload(store: DocumentStore, identity: Identity) -> Dict[str, Any]:
    role = resolve_role(store, identity.uid, identity.email)
    return {"id": identity.uid, "email": identity.email, "role": role.value}


# Routes
@router.get("/")
def read_root():
    return {"message": "Storefront API"}


@router.get("/test")
def test_database(request: Request):
    store: DocumentStore = request.app.state.store
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        response["database_name"] = store.name
        store.ping()
        response["collections"] = store.collection_names()
        response["database"] = "✅ Available"
        response["connection_status"] = "Connected"
    except StoreError as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response


# Auth
@router.post("/auth/register", response_model=TokenResponse)
def register(payload: RegisterInput, auth: AuthProvider = Depends(get_auth)):
    try:
        identity = auth.sign_up(payload.email, payload.password)
        if payload.name:
            update_profile(auth.store, identity.uid, identity.email, payload.name, "")
        user = _user_payload(auth.store, identity)
    except AuthError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StoreError:
        raise store_failure("registering account")
    return TokenResponse(access_token=identity.token, user=user)


@router.post("/auth/login", response_model=TokenResponse)
def login(payload: LoginInput, auth: AuthProvider = Depends(get_auth)):
    try:
        identity = auth.sign_in(payload.email, payload.password)
    except AuthError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StoreError:
        raise store_failure("signing in")
    return TokenResponse(access_token=identity.token, user=_user_payload(auth.store, identity))


@router.get("/auth/me")
def me(identity: Identity = Depends(get_current_identity), store: DocumentStore = Depends(get_store)):
    return _user_payload(store, identity)


# Products
@router.get("/api/products")
def list_products(store: DocumentStore = Depends(get_store)):
    try:
        products = store.list_all(PRODUCTS)
    except StoreError:
        raise store_failure("fetching products")
    if not products:
        raise HTTPException(status_code=404, detail="No products found")
    return products


@router.get("/api/products/{product_id}")
def get_product(product_id: str, store: DocumentStore = Depends(get_store)):
    try:
        product = store.get(PRODUCTS, product_id)
    except StoreError:
        raise store_failure("fetching product")
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@router.post("/api/products", status_code=201)
def create_product(payload: Dict[str, Any] = Body(...), store: DocumentStore = Depends(get_store)):
    if not all(payload.get(f) for f in ("name", "description", "price")):
        raise HTTPException(status_code=400, detail="Missing required fields: name, description, price")
    try:
        price = float(payload["price"])
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail="Price must be a number")
    if not math.isfinite(price):
        raise HTTPException(status_code=400, detail="Price must be a number")
    try:
        product = Product(
            name=payload["name"],
            description=payload["description"],
            price=price,
            image_url=payload.get("imageUrl") or "",
            origin_country=payload.get("originCountry"),
            vendor=payload.get("vendor"),
        )
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.errors()[0]["msg"])
    document = product.to_document()
    try:
        new_id = store.add(PRODUCTS, document)
    except StoreError:
        raise store_failure("adding product")
    return {"id": new_id, **document}


@router.post("/api/products/import")
async def import_products(
    request: Request,
    identity: Identity = Depends(require_admin),
    store: DocumentStore = Depends(get_store),
):
    try:
        raw_text = (await request.body()).decode("utf-8-sig")
    except UnicodeDecodeError:
        raise HTTPException(status_code=400, detail="CSV must be UTF-8 encoded")
    writer = lambda doc: store.add(PRODUCTS, doc)  # noqa: E731
    products = []

    def refresh():
        products[:] = store.list_all(PRODUCTS)

    try:
        report = await run_in_threadpool(import_catalog, raw_text, writer, refresh)
    except CatalogValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    logger.info("Catalog import by %s: %s", identity.uid, report.message)
    return {**report.model_dump(), "products": products}


# Cart
def _cart_response(cart: Cart, store: DocumentStore) -> Dict[str, Any]:
    totals = compute_subtotal(cart, store.list_all(PRODUCTS))
    return {"items": cart, "subtotal": totals.subtotal, "cart_count": totals.cart_count}


def _mutate_cart(identity: Identity, store: DocumentStore, carts: CartRepository, change: Callable[[Cart], Cart]):
    try:
        with carts.lock(identity.uid):
            cart = change(carts.load(identity.uid))
            carts.persist(cart, identity.uid)
        return _cart_response(cart, store)
    except StoreError:
        raise store_failure("saving cart")


@router.get("/api/cart")
def get_cart(
    identity: Identity = Depends(get_current_identity),
    store: DocumentStore = Depends(get_store),
    carts: CartRepository = Depends(get_carts),
):
    try:
        return _cart_response(carts.load(identity.uid), store)
    except StoreError:
        raise store_failure("loading cart")


@router.post("/api/cart/{product_id}")
def add_to_cart(
    product_id: str,
    identity: Identity = Depends(get_current_identity),
    store: DocumentStore = Depends(get_store),
    carts: CartRepository = Depends(get_carts),
):
    try:
        product = store.get(PRODUCTS, product_id)
    except StoreError:
        raise store_failure("fetching product")
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return _mutate_cart(identity, store, carts, lambda cart: add_item(cart, product_id, identity))


@router.post("/api/cart/{product_id}/decrement")
def decrement_cart_item(
    product_id: str,
    identity: Identity = Depends(get_current_identity),
    store: DocumentStore = Depends(get_store),
    carts: CartRepository = Depends(get_carts),
):
    return _mutate_cart(identity, store, carts, lambda cart: decrement_item(cart, product_id))


@router.delete("/api/cart/{product_id}")
def delete_cart_item(
    product_id: str,
    identity: Identity = Depends(get_current_identity),
    store: DocumentStore = Depends(get_store),
    carts: CartRepository = Depends(get_carts),
):
    return _mutate_cart(identity, store, carts, lambda cart: remove_item(cart, product_id))


# Profile
@router.get("/api/profile")
def get_profile(identity: Identity = Depends(get_current_identity), store: DocumentStore = Depends(get_store)):
    try:
        profile = load_profile(store, identity.uid, identity.email)
    except StoreError:
        raise store_failure("loading user profile")
    return {"id": identity.uid, **profile.to_document()}


@router.patch("/api/profile")
def patch_profile(
    payload: ProfileUpdate,
    identity: Identity = Depends(get_current_identity),
    store: DocumentStore = Depends(get_store),
):
    try:
        profile = update_profile(store, identity.uid, identity.email, payload.name, payload.nickname, payload.avatar)
    except StoreError:
        raise store_failure("saving profile")
    return {"id": identity.uid, **profile.to_document()}


def create_app(settings: Optional[Settings] = None, store: Optional[DocumentStore] = None) -> FastAPI:
    if settings is None:
        settings = Settings.from_env()
    if store is None:
        store = DocumentStore.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        app.state.store.close()

    app = FastAPI(title="Storefront API", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.carts = CartRepository(store)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(level=app.state.settings.log_level)
    uvicorn.run(app, host="0.0.0.0", port=app.state.settings.port)
