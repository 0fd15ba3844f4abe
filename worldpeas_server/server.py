"""MCP Server for the World Peas storefront."""

import asyncio
import json
import logging
from typing import Any

from mcp.server import Server
from mcp.types import Resource, TextContent, Tool
from pydantic import AnyUrl

from .cart import format_money
from .checkout import Step
from .config import Config
from .models import CustomerInfo, Product
from .storefront import PAGE_NAMES, Storefront

logger = logging.getLogger("worldpeas-mcp-server")

# Initialize server
app = Server("worldpeas-mcp-server")

# Global state
storefront: Storefront


def _text(text: str) -> list[TextContent]:
    return [TextContent(type="text", text=text)]


def _format_product(product: Product, index: int) -> list[str]:
    lines = [f"\n{index}. {product.name}", f"   ID: {product.id}"]
    lines.append(f"   Price: {product.price or format_money(product.price_value)}")
    if product.category:
        lines.append(f"   Category: {product.category}")
    if product.farm:
        origin = f" ({product.location})" if product.location else ""
        lines.append(f"   Farm: {product.farm}{origin}")
    if product.dietary:
        lines.append(f"   Dietary: {', '.join(product.dietary)}")
    if storefront.catalog.is_favorite(product.id):
        lines.append("   ★ Favorite")
    return lines


def _format_cart() -> str:
    cart = storefront.cart
    if cart.is_empty:
        return "Your cart is empty"

    result_lines = [f"Shopping Cart ({cart.count()} items):\n"]
    for i, line in enumerate(cart.lines(), 1):
        result_lines.append(f"\n{i}. {line.name}")
        result_lines.append(f"   Product ID: {line.id}")
        result_lines.append(f"   Price: {line.price or format_money(line.price_value)}")
        result_lines.append(f"   Quantity: {line.quantity}")
        result_lines.append(f"   Subtotal: {format_money(line.subtotal)}")

    result_lines.append(f"\n{'=' * 50}")
    result_lines.append(f"Total: {format_money(cart.total())}")
    return "\n".join(result_lines)


def _format_status() -> str:
    pipeline = storefront.pipeline
    lines = [
        f"Step: {pipeline.step.value}",
        f"Cart: {pipeline.cart_count} item(s)",
    ]
    if pipeline.selected_product:
        lines.append(f"Viewing: {pipeline.selected_product.name} ({pipeline.selected_product.id})")
    notice = storefront.cart.notifier.current
    if notice:
        lines.append(f"Just added: {notice.name} x{notice.quantity}")
    identity = storefront.auth.identity
    lines.append(f"User: {identity.full_name} <{identity.email}>" if identity else "User: not logged in")
    return "\n".join(lines)


async def ensure_authenticated() -> bool:
    """Ensure a session exists, auto-login with configured credentials if needed."""
    if storefront.auth.is_authenticated():
        return True

    credentials = storefront.config.credentials
    if credentials:
        logger.info("Auto-logging in with configured credentials...")
        if await storefront.login(credentials.email, credentials.password):
            logger.info("Auto-login successful")
            return True
        logger.warning(f"Auto-login failed: {storefront.auth.last_error}")

    return False


@app.list_resources()
async def list_resources() -> list[Resource]:
    """List available resources."""
    return [
        Resource(
            uri=AnyUrl("worldpeas://cart"),
            name="Shopping Cart",
            mimeType="application/json",
            description="Current shopping cart lines and total",
        ),
        Resource(
            uri=AnyUrl("worldpeas://catalog"),
            name="Catalog",
            mimeType="application/json",
            description="Products for the current search, category and sort option",
        ),
        Resource(
            uri=AnyUrl("worldpeas://settings"),
            name="Site Settings",
            mimeType="application/json",
            description="Site title and description",
        ),
    ]


@app.read_resource()
async def read_resource(uri: AnyUrl) -> str:
    """Read a resource by URI."""
    uri_str = str(uri)

    if uri_str == "worldpeas://cart":
        cart = storefront.cart
        return json.dumps(
            {
                "items": [line.to_wire() for line in cart.lines()],
                "count": cart.count(),
                "total": format_money(cart.total()),
            },
            indent=2,
            ensure_ascii=False,
        )

    elif uri_str == "worldpeas://catalog":
        products = storefront.catalog.visible_products()
        return json.dumps([p.to_wire() for p in products], indent=2, ensure_ascii=False)

    elif uri_str == "worldpeas://settings":
        return storefront.content.settings.model_dump_json(indent=2, by_alias=True)

    raise ValueError(f"Unknown resource: {uri}")


@app.list_tools()
async def list_tools() -> list[Tool]:
    """List available tools."""
    product_id = {"type": "string", "description": "Product ID from the product list"}
    empty = {"type": "object", "properties": {}}
    return [
        Tool(
            name="worldpeas_list_products",
            description="List products, optionally changing the search term, category filter or sort option",
            inputSchema={
                "type": "object",
                "properties": {
                    "search": {"type": "string", "description": "Matches product name or category"},
                    "category": {"type": "string", "description": "Category name, empty for all"},
                    "sort": {"type": "string", "enum": ["default", "price"]},
                },
            },
        ),
        Tool(
            name="worldpeas_list_categories",
            description="List product categories",
            inputSchema=empty,
        ),
        Tool(
            name="worldpeas_view_product",
            description="Open a product's detail view",
            inputSchema={
                "type": "object",
                "properties": {"product_id": product_id},
                "required": ["product_id"],
            },
        ),
        Tool(
            name="worldpeas_toggle_favorite",
            description="Mark or unmark a product as favorite",
            inputSchema={
                "type": "object",
                "properties": {"product_id": product_id},
                "required": ["product_id"],
            },
        ),
        Tool(
            name="worldpeas_add_to_cart",
            description="Add a product to the cart (defaults to the product in the detail view)",
            inputSchema={
                "type": "object",
                "properties": {
                    "product_id": product_id,
                    "quantity": {"type": "integer", "description": "Quantity to add", "default": 1},
                },
            },
        ),
        Tool(
            name="worldpeas_update_cart_quantity",
            description="Set a cart line's quantity (0 removes it)",
            inputSchema={
                "type": "object",
                "properties": {
                    "product_id": product_id,
                    "quantity": {"type": "integer", "minimum": 0},
                },
                "required": ["product_id", "quantity"],
            },
        ),
        Tool(
            name="worldpeas_get_cart",
            description="Get current shopping cart contents",
            inputSchema=empty,
        ),
        Tool(
            name="worldpeas_open_cart",
            description="Go to the cart view",
            inputSchema=empty,
        ),
        Tool(
            name="worldpeas_checkout",
            description="Start checkout from the cart view",
            inputSchema=empty,
        ),
        Tool(
            name="worldpeas_submit_customer_info",
            description="Enter shipping details and proceed to payment",
            inputSchema={
                "type": "object",
                "properties": {
                    field: {"type": "string"}
                    for field in ("full_name", "address", "city", "state", "zip_code", "country")
                },
                "required": ["full_name", "address", "city", "state", "zip_code", "country"],
            },
        ),
        Tool(
            name="worldpeas_confirm_payment",
            description="Proceed from payment to order confirmation",
            inputSchema=empty,
        ),
        Tool(
            name="worldpeas_complete_purchase",
            description="Submit the order; the cart is emptied afterwards",
            inputSchema=empty,
        ),
        Tool(
            name="worldpeas_continue_shopping",
            description="Leave the order confirmation and start a new order",
            inputSchema=empty,
        ),
        Tool(
            name="worldpeas_back",
            description="Go back one step",
            inputSchema=empty,
        ),
        Tool(
            name="worldpeas_navigate",
            description="Open a menu destination",
            inputSchema={
                "type": "object",
                "properties": {
                    "screen": {
                        "type": "string",
                        "enum": ["browsing", "cart", "newsstand", "about", "profile", "login", "signup"],
                    },
                },
                "required": ["screen"],
            },
        ),
        Tool(
            name="worldpeas_status",
            description="Show the current step, cart badge and logged-in user",
            inputSchema=empty,
        ),
        Tool(
            name="worldpeas_get_page",
            description="Read a static page",
            inputSchema={
                "type": "object",
                "properties": {"name": {"type": "string", "enum": list(PAGE_NAMES)}},
                "required": ["name"],
            },
        ),
        Tool(
            name="worldpeas_login",
            description="Log in. Uses WORLDPEAS_EMAIL/WORLDPEAS_PASSWORD if not provided.",
            inputSchema={
                "type": "object",
                "properties": {
                    "email": {"type": "string"},
                    "password": {"type": "string"},
                },
            },
        ),
        Tool(
            name="worldpeas_signup",
            description="Create an account and log in",
            inputSchema={
                "type": "object",
                "properties": {
                    "full_name": {"type": "string"},
                    "email": {"type": "string"},
                    "password": {"type": "string"},
                    "confirm_password": {"type": "string"},
                },
                "required": ["full_name", "email", "password", "confirm_password"],
            },
        ),
        Tool(
            name="worldpeas_logout",
            description="Log out and clear the stored session",
            inputSchema=empty,
        ),
        Tool(
            name="worldpeas_retry_pending_orders",
            description="Resubmit orders whose submission failed earlier",
            inputSchema=empty,
        ),
    ]


@app.call_tool()
async def call_tool(name: str, arguments: Any) -> list[TextContent]:
    """Handle tool calls."""
    arguments = arguments or {}
    catalog = storefront.catalog
    pipeline = storefront.pipeline

    try:
        if name == "worldpeas_list_products":
            if "search" in arguments:
                catalog.set_search_term(arguments["search"])
            if "category" in arguments:
                catalog.set_category(arguments["category"])
            if "sort" in arguments:
                catalog.set_sort_option(arguments["sort"])

            products = catalog.visible_products()
            if not products:
                return _text("No products found")

            result_lines = [f"Found {len(products)} product(s):\n"]
            for i, product in enumerate(products, 1):
                result_lines.extend(_format_product(product, i))
            return _text("\n".join(result_lines))

        elif name == "worldpeas_list_categories":
            if not catalog.categories:
                return _text("No categories")
            return _text("\n".join(f"- {c.name}" for c in catalog.categories))

        elif name == "worldpeas_view_product":
            product = pipeline.open_product(arguments["product_id"])
            if product is None:
                return _text(f"Product {arguments['product_id']} not found")

            result_lines = _format_product(product, 1)[1:]
            if product.description:
                result_lines.append(f"\n{product.description}")
            return _text("\n".join([product.name, *result_lines]))

        elif name == "worldpeas_toggle_favorite":
            product_id = arguments["product_id"]
            if catalog.get_product(product_id) is None:
                return _text(f"Product {product_id} not found")
            favorite = catalog.toggle_favorite(product_id)
            return _text(f"Product {product_id} {'added to' if favorite else 'removed from'} favorites")

        elif name == "worldpeas_add_to_cart":
            quantity = arguments.get("quantity", 1)
            line = pipeline.add_to_cart(arguments.get("product_id"), quantity)
            if line is None:
                return _text(f"Product {arguments.get('product_id')} not found")
            return _text(
                f"Added {line.name} (quantity: {quantity}) to cart\n"
                f"Cart: {pipeline.cart_count} item(s)"
            )

        elif name == "worldpeas_update_cart_quantity":
            product_id = arguments["product_id"]
            quantity = arguments["quantity"]
            if not pipeline.update_quantity(product_id, quantity):
                return _text(f"Product {product_id} is not in the cart")
            if quantity == 0:
                return _text(f"Removed product {product_id} from cart")
            return _text(f"Updated product {product_id} to quantity {quantity}")

        elif name == "worldpeas_get_cart":
            return _text(_format_cart())

        elif name == "worldpeas_open_cart":
            pipeline.open_cart()
            return _text(_format_cart())

        elif name == "worldpeas_checkout":
            pipeline.go_to_checkout()
            info = pipeline.customer_info
            if info.is_complete():
                return _text(f"Checkout started. Shipping to {info.full_name}, {info.city} (edit or confirm)")
            return _text("Checkout started. Please enter shipping details.")

        elif name == "worldpeas_submit_customer_info":
            info = CustomerInfo(**{k: arguments.get(k, "") for k in CustomerInfo.model_fields})
            pipeline.proceed_to_payment(info)
            return _text("Shipping details saved. Proceed to payment.")

        elif name == "worldpeas_confirm_payment":
            pipeline.proceed_to_confirmation()
            return _text(f"Please confirm your order:\n\n{_format_cart()}")

        elif name == "worldpeas_complete_purchase":
            order = await pipeline.complete_purchase()
            info = order.customer_info
            text = (
                f"✅ Order placed for {info.full_name}\n"
                f"Ship to: {info.address}, {info.city}, {info.state} {info.zip_code}, {info.country}\n"
                f"Total: {format_money(order.total)}"
            )
            if not pipeline.last_submission_ok:
                text += "\n(Order could not be sent yet and will be retried)"
            return _text(text)

        elif name == "worldpeas_continue_shopping":
            pipeline.continue_shopping()
            return _text("Back to the product list")

        elif name == "worldpeas_back":
            step = pipeline.back()
            return _text(f"Now at: {step.value}")

        elif name == "worldpeas_navigate":
            pipeline.navigate(Step(arguments["screen"]))
            return _text(f"Now at: {pipeline.step.value}")

        elif name == "worldpeas_status":
            return _text(_format_status())

        elif name == "worldpeas_get_page":
            page = storefront.page(arguments["name"])
            return _text(f"{page.title}\n\n{page.content}")

        elif name == "worldpeas_login":
            email = arguments.get("email")
            password = arguments.get("password")

            # Fall back to environment credentials
            if not email or not password:
                credentials = storefront.config.credentials
                if not credentials:
                    return _text(
                        "Error: No credentials provided and WORLDPEAS_EMAIL/WORLDPEAS_PASSWORD not configured."
                    )
                email = email or credentials.email
                password = password or credentials.password

            if await storefront.login(email, password):
                return _text(f"Successfully logged in as {storefront.auth.identity.full_name}")
            return _text(f"Login failed: {storefront.auth.last_error}")

        elif name == "worldpeas_signup":
            success = await storefront.signup(
                arguments["full_name"],
                arguments["email"],
                arguments["password"],
                arguments["confirm_password"],
            )
            if success:
                return _text(f"Account created, logged in as {arguments['email']}")
            return _text(f"Signup failed: {storefront.auth.last_error}")

        elif name == "worldpeas_logout":
            storefront.logout()
            return _text("Successfully logged out")

        elif name == "worldpeas_retry_pending_orders":
            sent = await storefront.retry_pending_orders()
            remaining = len(storefront.outbox.pending())
            return _text(f"Resubmitted {len(sent)} order(s), {remaining} still pending")

        else:
            return _text(f"Unknown tool: {name}")

    except Exception as e:
        logger.error(f"Error executing tool {name}: {e}", exc_info=True)
        return _text(f"Error: {str(e)}")


async def main() -> None:
    """Main entry point for the MCP server."""
    global storefront

    config = Config.from_env()
    logging.basicConfig(level=config.log_level.upper())

    storefront = Storefront(config)
    await storefront.bootstrap()

    if config.credentials:
        logger.info(f"Credentials loaded from environment for: {config.credentials.email}")
        await ensure_authenticated()
    elif not storefront.auth.is_authenticated():
        logger.info("Not logged in; use the worldpeas_login tool to sign in")

    logger.info("Starting World Peas MCP Server...")

    from mcp.server.stdio import stdio_server

    try:
        async with stdio_server() as (read_stream, write_stream):
            await app.run(
                read_stream,
                write_stream,
                app.create_initialization_options(),
            )
    finally:
        await storefront.close()


if __name__ == "__main__":
    asyncio.run(main())
