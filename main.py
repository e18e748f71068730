from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

import auth
import cart
import catalog
import database
import errors
import orders
import users
from logger import get_logger
from schemas import (
    AddToCartRequest,
    CategoryRequest,
    CreateOrderRequest,
    LoginRequest,
    ProductRequest,
    ProfileUpdateRequest,
    RoleUpdateRequest,
    SignupRequest,
    UpdateCartItemRequest,
    UpdatePaymentRequest,
    UpdateStatusRequest,
)
from security import TokenClaims, app_settings, current_user, require_admin
from settings import DEV_JWT_SECRET, Settings, get_settings

_logger = get_logger("api")

router = APIRouter()


# Error envelopes

def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def _validation_message(exc: RequestValidationError) -> str:
    problems = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        field = ".".join(loc)
        problems.append(f"{field}: {err.get('msg')}" if field else str(err.get("msg")))
    return "; ".join(problems) or "Invalid request"


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(errors.ShopError)
    async def shop_error_handler(request: Request, exc: errors.ShopError):
        if exc.status_code >= 500:
            _logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return _error(exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return _error(400, _validation_message(exc))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        _logger.exception(f"{request.method} {request.url.path} raised {type(exc).__name__}")
        return _error(500, "Server Error")


# Routes
@router.get("/")
def root():
    return {"success": True, "message": "Shop API running"}


# Auth
@router.post("/api/auth/signup", status_code=201)
def signup(payload: SignupRequest, settings: Settings = Depends(app_settings)):
    token, user = auth.signup(payload, settings)
    return {"success": True, "token": token, "user": user}


@router.post("/api/auth/login")
def login(payload: LoginRequest, settings: Settings = Depends(app_settings)):
    token, user = auth.login(payload, settings)
    return {"success": True, "token": token, "user": user}


@router.get("/api/auth/profile")
def get_profile(claims: TokenClaims = Depends(current_user)):
    return {"success": True, "user": auth.get_profile(claims.user_id)}


@router.put("/api/auth/update-profile")
def update_profile(payload: ProfileUpdateRequest, claims: TokenClaims = Depends(current_user)):
    return {"success": True, "user": auth.update_profile(claims.user_id, payload)}


# Categories
@router.get("/api/categories")
def list_categories():
    categories = catalog.list_categories()
    return {"success": True, "count": len(categories), "categories": categories}


@router.post("/api/categories", status_code=201)
def create_category(payload: CategoryRequest, _: TokenClaims = Depends(require_admin)):
    return {"success": True, "category": catalog.create_category(payload)}


@router.put("/api/categories/{category_id}")
def update_category(category_id: str, payload: CategoryRequest, _: TokenClaims = Depends(require_admin)):
    return {"success": True, "category": catalog.update_category(category_id, payload)}


@router.delete("/api/categories/{category_id}")
def delete_category(category_id: str, _: TokenClaims = Depends(require_admin)):
    catalog.delete_category(category_id)
    return {"success": True, "message": "Category deleted successfully"}


# Products
@router.get("/api/products")
def list_products():
    products = catalog.list_products()
    return {"success": True, "count": len(products), "products": products}


@router.get("/api/products/{product_id}")
def get_product(product_id: str):
    return {"success": True, "product": catalog.get_product(product_id)}


@router.post("/api/products", status_code=201)
def create_product(payload: ProductRequest, _: TokenClaims = Depends(require_admin)):
    return {"success": True, "product": catalog.create_product(payload)}


@router.put("/api/products/{product_id}")
def update_product(product_id: str, payload: ProductRequest, _: TokenClaims = Depends(require_admin)):
    return {"success": True, "product": catalog.update_product(product_id, payload)}


@router.delete("/api/products/{product_id}")
def delete_product(product_id: str, _: TokenClaims = Depends(require_admin)):
    catalog.delete_product(product_id)
    return {"success": True, "message": "Product deleted successfully"}


# Cart
@router.get("/api/cart")
def get_cart(claims: TokenClaims = Depends(current_user)):
    return {"success": True, "data": cart.get_or_create(claims.user_id)}


@router.post("/api/cart")
def add_to_cart(payload: AddToCartRequest, claims: TokenClaims = Depends(current_user)):
    return {"success": True, "data": cart.add_item(claims.user_id, payload.product_id, payload.quantity)}


@router.delete("/api/cart")
def clear_cart(claims: TokenClaims = Depends(current_user)):
    return {"success": True, "data": cart.clear(claims.user_id)}


@router.put("/api/cart/{item_id}")
def update_cart_item(item_id: str, payload: UpdateCartItemRequest, claims: TokenClaims = Depends(current_user)):
    return {"success": True, "data": cart.update_item_quantity(claims.user_id, item_id, payload.quantity)}


@router.delete("/api/cart/{item_id}")
def remove_cart_item(item_id: str, claims: TokenClaims = Depends(current_user)):
    return {"success": True, "data": cart.remove_item(claims.user_id, item_id)}


# Orders
@router.post("/api/orders", status_code=201)
def create_order(
    payload: CreateOrderRequest,
    claims: TokenClaims = Depends(current_user),
    settings: Settings = Depends(app_settings),
):
    return {"success": True, "order": orders.create_order(claims.user_id, payload, settings)}


@router.get("/api/orders")
def list_orders(claims: TokenClaims = Depends(current_user)):
    found = orders.list_orders(claims.user_id, claims.role)
    return {"success": True, "count": len(found), "orders": found}


@router.get("/api/orders/{order_id}")
def get_order(order_id: str, claims: TokenClaims = Depends(current_user)):
    return {"success": True, "order": orders.get_order(order_id, claims.user_id, claims.role)}


@router.put("/api/orders/{order_id}/cancel")
def cancel_order(order_id: str, claims: TokenClaims = Depends(current_user)):
    return {"success": True, "order": orders.cancel_order(order_id, claims.user_id, claims.role)}


@router.put("/api/orders/{order_id}/status")
def update_order_status(
    order_id: str,
    payload: UpdateStatusRequest,
    _: TokenClaims = Depends(require_admin),
    settings: Settings = Depends(app_settings),
):
    return {"success": True, "order": orders.update_status(order_id, payload, settings)}


@router.put("/api/orders/{order_id}/pay")
def update_payment_status(
    order_id: str,
    payload: Optional[UpdatePaymentRequest] = None,
    _: TokenClaims = Depends(require_admin),
):
    return {"success": True, "order": orders.update_payment_status(order_id, payload or UpdatePaymentRequest())}


# Users (admin)
@router.get("/api/users")
def list_users(_: TokenClaims = Depends(require_admin)):
    found = users.list_users()
    return {"success": True, "count": len(found), "users": found}


@router.get("/api/users/{user_id}")
def get_user(user_id: str, _: TokenClaims = Depends(require_admin)):
    return {"success": True, "user": users.get_user(user_id)}


@router.delete("/api/users/{user_id}")
def delete_user(user_id: str, admin: TokenClaims = Depends(require_admin)):
    users.delete_user(user_id, admin.user_id)
    return {"success": True, "message": "User deleted successfully"}


@router.put("/api/users/{user_id}/role")
def update_user_role(user_id: str, payload: RoleUpdateRequest, admin: TokenClaims = Depends(require_admin)):
    return {"success": True, "user": users.update_role(user_id, payload.role, admin.user_id)}


# App

@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    if settings.jwt_secret == DEV_JWT_SECRET:
        _logger.warning("JWT_SECRET is not set; using the development signing key")

    opened = False
    if database.db is None:
        database.connect(settings)
        opened = True
    yield
    if opened:
        database.close()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(title="Shop API", lifespan=lifespan)
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app)
    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=app.state.settings.port)
