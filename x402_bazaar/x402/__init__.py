# x402_bazaar/x402/__init__.py
"""
x402 payment flow for marketplace calls.

Key components:
- engine: request, detect 402, pay, retry once with proof
- challenge: tolerant parser for 402 response bodies
- keys: funding key resolution (flag, environment, wallet file)
- budget: per-session spending ceiling for the MCP server
- errors: exception taxonomy and failure kinds
- amounts: USDC decimal and base unit conversion

Configuration is loaded from environment variables via x402_bazaar.core.config.
"""
