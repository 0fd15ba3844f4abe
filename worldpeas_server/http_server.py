"""HTTP server exposing the World Peas storefront as a REST API."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .cart import format_money
from .checkout import Step
from .config import Config
from .errors import (
    EmptyCartError,
    IncompleteCustomerInfoError,
    InvalidTransitionError,
    StorefrontError,
)
from .models import CustomerInfo
from .storefront import Storefront

logger = logging.getLogger("worldpeas-http-server")

VERSION = "0.1.0"


# Request Models
class LoginRequest(BaseModel):
    email: str
    password: str


class SignupRequest(BaseModel):
    full_name: str
    email: str
    password: str
    confirm_password: str


class AddToCartRequest(BaseModel):
    product_id: Optional[str] = None
    quantity: int = 1


class UpdateQuantityRequest(BaseModel):
    product_id: str
    quantity: int


class OpenProductRequest(BaseModel):
    product_id: str


class NavigateRequest(BaseModel):
    screen: Step


def get_storefront(request: Request) -> Storefront:
    return request.app.state.storefront


def _cart_payload(storefront: Storefront) -> dict:
    cart = storefront.cart
    notice = cart.notifier.current
    return {
        "items": [line.to_wire() for line in cart.lines()],
        "count": cart.count(),
        "total": format_money(cart.total()),
        "notification": notice.to_wire() if notice else None,
    }


def _checkout_payload(storefront: Storefront) -> dict:
    pipeline = storefront.pipeline
    return {
        "step": pipeline.step.value,
        "cartCount": pipeline.cart_count,
        "customerInfo": pipeline.customer_info.to_wire(),
        "selectedProduct": pipeline.selected_product.to_wire() if pipeline.selected_product else None,
        "lastOrder": pipeline.last_order.to_wire() if pipeline.last_order else None,
        "lastSubmissionOk": pipeline.last_submission_ok,
    }


def _status_code_for(exc: Exception) -> int:
    if isinstance(exc, (EmptyCartError, InvalidTransitionError)):
        return 409
    if isinstance(exc, ValueError):
        return 400
    return 500


def create_app(storefront: Optional[Storefront] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        storefront: Pre-built storefront; when omitted one is created from the
            environment. Either way it is bootstrapped at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan context manager for startup and shutdown."""
        logger.info("Starting World Peas HTTP Server...")
        sf = storefront if storefront is not None else Storefront(Config.from_env())
        app.state.storefront = sf
        await sf.bootstrap()

        yield

        logger.info("Shutting down World Peas HTTP Server...")
        if storefront is None:
            await sf.close()

    app = FastAPI(
        title="World Peas Storefront",
        description="HTTP API for browsing, cart and checkout on the World Peas storefront",
        version=VERSION,
        lifespan=lifespan,
    )

    async def handle_error(request: Request, exc: Exception) -> JSONResponse:
        status_code = _status_code_for(exc)
        if status_code == 500:
            logger.error(f"Request error: {exc}", exc_info=exc)
        body: dict = {"error": str(exc)}
        if isinstance(exc, IncompleteCustomerInfoError):
            body["missing"] = exc.missing
        return JSONResponse(status_code=status_code, content=body)

    app.add_exception_handler(StorefrontError, handle_error)
    app.add_exception_handler(ValueError, handle_error)

    @app.get("/")
    async def root(sf: Storefront = Depends(get_storefront)):
        """Root endpoint with API information."""
        return {
            "name": sf.content.settings.title,
            "description": sf.content.settings.description,
            "version": VERSION,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "products": {"list": "GET /products", "get": "GET /products/{id}"},
                "cart": {"get": "GET /cart", "add": "POST /cart/add", "update": "POST /cart/update"},
                "checkout": {"state": "GET /checkout", "actions": "POST /checkout/{action}"},
                "auth": {"login": "POST /auth/login", "signup": "POST /auth/signup", "status": "GET /auth/status"},
            },
        }

    @app.get("/health")
    async def health_check(sf: Storefront = Depends(get_storefront)):
        """Health check endpoint."""
        return {
            "status": "healthy",
            "gateway": await sf.gateway.health(),
            "authenticated": sf.auth.is_authenticated(),
        }

    # Catalog endpoints
    @app.get("/products")
    async def list_products(
        search: Optional[str] = None,
        category: Optional[str] = None,
        sort: Optional[str] = None,
        sf: Storefront = Depends(get_storefront),
    ):
        """List products, updating whichever browsing filters are given."""
        if search is not None:
            sf.catalog.set_search_term(search)
        if category is not None:
            sf.catalog.set_category(category)
        if sort is not None:
            sf.catalog.set_sort_option(sort)

        products = sf.catalog.visible_products()
        return {
            "count": len(products),
            "products": [p.to_wire() for p in products],
            "loading": sf.catalog.loading,
        }

    @app.get("/products/{product_id}")
    async def get_product(product_id: str, sf: Storefront = Depends(get_storefront)):
        product = sf.catalog.get_product(product_id)
        if product is None:
            raise HTTPException(status_code=404, detail="Product not found")
        return {**product.to_wire(), "favorite": sf.catalog.is_favorite(product_id)}

    @app.get("/categories")
    async def list_categories(sf: Storefront = Depends(get_storefront)):
        return {"categories": [c.to_wire() for c in sf.catalog.categories]}

    @app.post("/favorites/{product_id}")
    async def toggle_favorite(product_id: str, sf: Storefront = Depends(get_storefront)):
        if sf.catalog.get_product(product_id) is None:
            raise HTTPException(status_code=404, detail="Product not found")
        return {"productId": product_id, "favorite": sf.catalog.toggle_favorite(product_id)}

    # Cart endpoints
    @app.get("/cart")
    async def get_cart(sf: Storefront = Depends(get_storefront)):
        """Get current shopping cart."""
        return _cart_payload(sf)

    @app.post("/cart/add")
    async def add_to_cart(request: AddToCartRequest, sf: Storefront = Depends(get_storefront)):
        """Add a product to the cart."""
        line = sf.pipeline.add_to_cart(request.product_id, request.quantity)
        if line is None:
            raise HTTPException(status_code=404, detail="Product not found")
        return _cart_payload(sf)

    @app.post("/cart/update")
    async def update_cart(request: UpdateQuantityRequest, sf: Storefront = Depends(get_storefront)):
        """Set a line's quantity; 0 removes it."""
        if not sf.pipeline.update_quantity(request.product_id, request.quantity):
            raise HTTPException(status_code=404, detail="Product not in cart")
        return _cart_payload(sf)

    # Checkout endpoints
    @app.get("/checkout")
    async def checkout_state(sf: Storefront = Depends(get_storefront)):
        return _checkout_payload(sf)

    @app.post("/checkout/open-product")
    async def open_product(request: OpenProductRequest, sf: Storefront = Depends(get_storefront)):
        if sf.pipeline.open_product(request.product_id) is None:
            raise HTTPException(status_code=404, detail="Product not found")
        return _checkout_payload(sf)

    @app.post("/checkout/open-cart")
    async def open_cart(sf: Storefront = Depends(get_storefront)):
        sf.pipeline.open_cart()
        return _checkout_payload(sf)

    @app.post("/checkout/start")
    async def start_checkout(sf: Storefront = Depends(get_storefront)):
        sf.pipeline.go_to_checkout()
        return _checkout_payload(sf)

    @app.post("/checkout/customer-info")
    async def submit_customer_info(info: CustomerInfo, sf: Storefront = Depends(get_storefront)):
        sf.pipeline.proceed_to_payment(info)
        return _checkout_payload(sf)

    @app.post("/checkout/payment")
    async def confirm_payment(sf: Storefront = Depends(get_storefront)):
        sf.pipeline.proceed_to_confirmation()
        return _checkout_payload(sf)

    @app.post("/checkout/complete")
    async def complete_purchase(sf: Storefront = Depends(get_storefront)):
        await sf.pipeline.complete_purchase()
        return _checkout_payload(sf)

    @app.post("/checkout/continue")
    async def continue_shopping(sf: Storefront = Depends(get_storefront)):
        sf.pipeline.continue_shopping()
        return _checkout_payload(sf)

    @app.post("/checkout/back")
    async def go_back(sf: Storefront = Depends(get_storefront)):
        sf.pipeline.back()
        return _checkout_payload(sf)

    @app.post("/navigate")
    async def navigate(request: NavigateRequest, sf: Storefront = Depends(get_storefront)):
        sf.pipeline.navigate(request.screen)
        return _checkout_payload(sf)

    # Site content endpoints
    @app.get("/settings")
    async def get_settings(sf: Storefront = Depends(get_storefront)):
        return sf.content.settings.to_wire()

    @app.get("/pages/{name}")
    async def get_page(name: str, sf: Storefront = Depends(get_storefront)):
        try:
            page = sf.page(name)
        except ValueError:
            raise HTTPException(status_code=404, detail="Page not found")
        return page.to_wire()

    # Authentication endpoints
    @app.post("/auth/login")
    async def login(request: LoginRequest, sf: Storefront = Depends(get_storefront)):
        """Log in with email and password."""
        if await sf.login(request.email, request.password):
            return {"success": True, "message": f"Successfully logged in as {request.email}"}
        return {"success": False, "message": sf.auth.last_error or "Login failed"}

    @app.post("/auth/signup")
    async def signup(request: SignupRequest, sf: Storefront = Depends(get_storefront)):
        success = await sf.signup(
            request.full_name, request.email, request.password, request.confirm_password
        )
        if success:
            return {"success": True, "message": f"Account created for {request.email}"}
        return {"success": False, "message": sf.auth.last_error or "Signup failed"}

    @app.post("/auth/logout")
    async def logout(sf: Storefront = Depends(get_storefront)):
        sf.logout()
        return {"success": True, "message": "Successfully logged out"}

    @app.get("/auth/status")
    async def auth_status(sf: Storefront = Depends(get_storefront)):
        """Get authentication status."""
        identity = sf.auth.identity
        return {
            "authenticated": identity is not None,
            "user": identity.to_wire() if identity else None,
        }

    # Order outbox endpoints
    @app.get("/orders/pending")
    async def pending_orders(sf: Storefront = Depends(get_storefront)):
        pending = sf.outbox.pending()
        return {"count": len(pending), "orders": [p.to_wire() for p in pending]}

    @app.post("/orders/retry")
    async def retry_orders(sf: Storefront = Depends(get_storefront)):
        sent = await sf.retry_pending_orders()
        return {"sent": len(sent), "pending": len(sf.outbox.pending())}

    return app


def run_http_server(host: str = "0.0.0.0", port: int = 8000, reload: bool = False):
    """
    Run the HTTP server.

    Args:
        host: Host to bind to (default: 0.0.0.0)
        port: Port to bind to (default: 8000)
        reload: Enable hot reloading (default: False)
    """
    import uvicorn

    config = Config.from_env()
    logging.basicConfig(level=config.log_level.upper())
    logger.info(f"Starting server on {host}:{port} (reload={'enabled' if reload else 'disabled'})")

    if reload:
        # the reloader needs an import string; create_app is the factory
        uvicorn.run(
            "worldpeas_server.http_server:create_app",
            factory=True,
            host=host,
            port=port,
            reload=True,
            reload_dirs=["worldpeas_server"],
            log_level=config.log_level.lower(),
        )
    else:
        uvicorn.run(create_app(), host=host, port=port, log_level=config.log_level.lower())


if __name__ == "__main__":
    run_http_server()
