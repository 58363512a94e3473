# x402_bazaar/commands/mcp.py
from decimal import Decimal

import click

from x402_bazaar.mcp.server import run_server
from x402_bazaar.services.usdc import NETWORKS
from x402_bazaar.x402.amounts import parse_usdc

MAX_SESSION_BUDGET = Decimal("100")


def validate_budget(ctx, param, value):
    """Budget must be a USDC amount in (0, 100]."""
    if value is None:
        return None
    try:
        budget = parse_usdc(value)
    except ValueError as e:
        raise click.BadParameter(str(e))
    if budget <= 0 or budget > MAX_SESSION_BUDGET:
        raise click.BadParameter(f"must be greater than 0 and at most {MAX_SESSION_BUDGET} USDC")
    return budget


@click.command("mcp")
@click.option("--server-url", default=None, help="Marketplace URL (default: X402_SERVER_URL).")
@click.option("--network", type=click.Choice(list(NETWORKS)), default=None,
              help="Payment network (default: NETWORK setting).")
@click.option("--budget", default=None, callback=validate_budget,
              help="Session spending limit in USDC (default: MAX_BUDGET_USDC).")
def mcp_command(server_url, network, budget):
    """Run the x402 Bazaar MCP server on stdio."""
    run_server(server_url=server_url, network=network, budget=budget)
