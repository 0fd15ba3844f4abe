"""World Peas storefront client exposed as an MCP server and a REST API."""

__version__ = "0.1.0"
