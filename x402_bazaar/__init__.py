# x402_bazaar/__init__.py
"""x402 Bazaar command line client and MCP server."""
