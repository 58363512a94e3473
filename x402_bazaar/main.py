# x402_bazaar/main.py
import logging
import sys

import click

from x402_bazaar.commands.browse import list_command, search_command
from x402_bazaar.commands.call import call_command
from x402_bazaar.commands.mcp import mcp_command
from x402_bazaar.commands.status import status_command
from x402_bazaar.commands.wallet import wallet_command
from x402_bazaar.core.config import settings
from x402_bazaar.core.version import VERSION


@click.group()
@click.version_option(version=VERSION, prog_name="x402-bazaar")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Debug logging on stderr.")
def cli(verbose):
    """x402 Bazaar - AI agent marketplace with pay-per-call APIs on Base."""
    # Logs go to stderr; stdout carries command output (and the MCP transport)
    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.LOG_LEVEL,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


cli.add_command(list_command)
cli.add_command(search_command)
cli.add_command(call_command)
cli.add_command(status_command)
cli.add_command(wallet_command)
cli.add_command(mcp_command)


if __name__ == "__main__":
    cli()
