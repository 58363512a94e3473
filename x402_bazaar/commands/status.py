# x402_bazaar/commands/status.py
import sys

import click

from x402_bazaar.commands.browse import server_url_option
from x402_bazaar.core.config import settings
from x402_bazaar.services.status import check_marketplace_status
from x402_bazaar.utils import console


@click.command("status")
@server_url_option
def status_command(server_url):
    """Check that the marketplace server is reachable."""
    server_url = server_url or settings.server_url

    console.banner()
    console.info(f"Checking connection to {click.style(server_url, bold=True)}")
    console.separator()
    console.blank()

    report = check_marketplace_status(server_url)

    if not report["online"]:
        for message in report["errors"]:
            console.error(message)
        console.dim("  Make sure the server is running and the URL is correct.")
        console.blank()
        sys.exit(1)

    console.success(f"Server is online, network: {click.style(str(report['network']), bold=True)}")
    if report["name"] is not None:
        console.success(f"{report['name']}: {click.style(str(report['total_services']), bold=True)} services")

    stats = report["stats"]
    if stats:
        console.success("Stats loaded")
        console.blank()
        console.dim(f"    Total services:  {stats.get('totalServices')}")
        console.dim(f"    Total payments:  {stats.get('totalPayments')}")
        console.dim(f"    Total revenue:   {stats.get('totalRevenue')} USDC")
        if stats.get("walletBalance") is not None:
            console.dim(f"    Wallet balance:  {stats.get('walletBalance')} USDC")
        console.dim(f"    Network:         {stats.get('network')}")

    for message in report["warnings"]:
        console.warn(message)

    console.blank()
    console.separator()
    console.success(click.style("x402 Bazaar is operational!", bold=True))
    console.dim(f"  Dashboard: {server_url}/dashboard")
    console.blank()
