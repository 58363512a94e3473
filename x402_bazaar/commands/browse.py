# x402_bazaar/commands/browse.py
"""list and search commands."""
import sys
from typing import List

import click
from requests.exceptions import ConnectionError as RequestConnectionError, RequestException, Timeout

from x402_bazaar.core.config import settings
from x402_bazaar.models.service import CATEGORIES, ServiceInfo
from x402_bazaar.services import marketplace_api
from x402_bazaar.utils import console

server_url_option = click.option(
    "--server-url",
    default=None,
    help="Marketplace URL (default: X402_SERVER_URL or https://x402-api.onrender.com).",
)


def report_request_error(e: RequestException, server_url: str) -> None:
    """Explain a failed marketplace request and exit 1."""
    if isinstance(e, Timeout):
        console.error("Request timeout, the server may be sleeping (Render free tier)")
        console.dim("  Try again in 30 seconds or check status: x402-bazaar status")
    elif isinstance(e, RequestConnectionError):
        console.error("Cannot connect to server")
        console.dim(f"  Server URL: {server_url}")
        console.dim("  Check your internet connection or try: x402-bazaar status")
    else:
        console.error(str(e))
    console.blank()
    sys.exit(1)


def _print_results(services: List[ServiceInfo], noun: str) -> None:
    console.separator()
    console.blank()
    console.print_services(services)
    console.separator()
    console.blank()
    console.info(f"Total: {click.style(console.plural(len(services), noun), bold=True)}")


@click.command("list")
@click.option("--chain", default=None, help="Only services on this chain (base, skale).")
@click.option("--category", default=None, type=click.Choice(CATEGORIES, case_sensitive=False),
              help="Only services in this category.")
@click.option("--free", is_flag=True, default=False, help="Only free services.")
@server_url_option
def list_command(chain, category, free, server_url):
    """List services available on the marketplace."""
    server_url = server_url or settings.server_url

    console.banner()
    console.info(f"Fetching services from {click.style('x402 Bazaar', bold=True)}")
    console.blank()

    try:
        services = marketplace_api.list_services(
            chain=chain, category=category, free=free, server_url=server_url
        )
    except RequestException as e:
        console.error("Failed to fetch services")
        report_request_error(e, server_url)
        return

    console.success(f"Found {console.plural(len(services), 'service')}")
    console.blank()

    if not services:
        console.warn("No services found with these filters.")
        console.dim("  Try: x402-bazaar list --category ai")
        console.blank()
        return

    _print_results(services, "service")

    if chain or category or free:
        console.blank()
        console.dim("  Active filters:")
        if chain:
            console.dim(f"    Chain: {chain}")
        if category:
            console.dim(f"    Category: {category}")
        if free:
            console.dim("    Price: free only")
        console.dim("  Run without options to see all services")
    console.blank()


@click.command("search")
@click.argument("query")
@server_url_option
def search_command(query, server_url):
    """Search marketplace services by keyword."""
    if not query.strip():
        console.error("Search query is required")
        console.dim("  Usage: x402-bazaar search <query>")
        console.dim('  Example: x402-bazaar search "weather API"')
        console.blank()
        sys.exit(1)

    server_url = server_url or settings.server_url

    console.banner()
    console.info(f"Searching for: {click.style(query, bold=True)}")
    console.blank()

    try:
        services = marketplace_api.search_services(query, server_url=server_url)
    except RequestException as e:
        console.error("Search failed")
        report_request_error(e, server_url)
        return

    if not services:
        console.warn(f'No services match "{query}"')
        console.dim("  Tips:")
        console.dim("    - Check your spelling")
        console.dim('    - Try broader keywords (e.g., "AI" instead of "GPT-4")')
        console.dim("    - Browse all services: x402-bazaar list")
        console.blank()
        return

    console.success(f"Found {console.plural(len(services), 'result')}")
    console.blank()
    _print_results(services, "result")
    console.blank()
