# x402_bazaar/commands/call.py
"""call command: request a marketplace endpoint, paying a 402 challenge if needed."""
import logging
import sys

import click

from x402_bazaar.commands.browse import server_url_option
from x402_bazaar.core.config import settings
from x402_bazaar.services.marketplace_api import build_call_url, normalize_endpoint, parse_params
from x402_bazaar.services.usdc import NETWORKS, UsdcPaymentGateway, get_network
from x402_bazaar.utils import console
from x402_bazaar.x402.engine import CallResult, PaidRequest, PaymentRetryEngine
from x402_bazaar.x402.errors import FailureKind
from x402_bazaar.x402.keys import FundingKeyResolver

logger = logging.getLogger(__name__)


def build_engine(key, network) -> PaymentRetryEngine:
    return PaymentRetryEngine(
        gateway=UsdcPaymentGateway(network=network),
        resolver=FundingKeyResolver(),
        explicit_key=key,
        timeout=settings.CALL_TIMEOUT_SECONDS,
    )


def _print_funding_help(result: CallResult) -> None:
    challenge = result.challenge
    console.warn(click.style("Payment Required (HTTP 402)", bold=True))
    console.blank()
    console.info(f"Price: {click.style(f'{challenge.amount} USDC', fg='cyan')}")
    console.info(f"Payment address: {click.style(challenge.recipient, fg='green')}")
    if challenge.message:
        console.dim(f"  {challenge.message}")
    console.blank()
    console.separator()
    console.blank()
    console.info("No funding key is configured. To pay automatically, either:")
    console.dim("  1. Pass a key: x402-bazaar call <endpoint> --key 0x...")
    console.dim(f"  2. Set the {settings.FUNDING_KEY_ENV_VAR} environment variable")
    console.dim(f"  3. Store it as privateKey in {settings.WALLET_FILE_PATH}")
    console.blank()


def _print_failure(result: CallResult, network=None) -> None:
    failure = result.failure
    if failure.kind is FailureKind.INSUFFICIENT_FUNDS:
        console.error("Insufficient USDC balance")
        console.dim(f"  Available: {failure.details['available']} USDC")
        console.dim(f"  Required:  {failure.details['required']} USDC")
    elif failure.kind is FailureKind.TIMEOUT:
        console.error(f"Request timeout: {failure.message}")
        console.dim("  Try again or check status: x402-bazaar status")
    else:
        console.error(failure.message)

    pending_hash = None
    if result.proof is None and failure.kind in (FailureKind.TIMEOUT, FailureKind.NETWORK_ERROR):
        pending_hash = failure.details.get("transaction_hash")
    if pending_hash:
        console.warn("The USDC transfer was submitted and may still confirm.")
        console.dim(f"  Transaction: {pending_hash}")
        console.dim(f"  Explorer: {get_network(network).tx_url(pending_hash)}")
        console.dim("  Check the transaction before calling again to avoid paying twice.")

    if result.proof is not None:
        console.dim(f"  Payment transaction: {result.proof.transaction_hash}")
        if result.proof.explorer_url:
            console.dim(f"  Explorer: {result.proof.explorer_url}")
    console.blank()


def _print_response(response) -> None:
    content_type = response.headers.get("content-type", "")
    console.separator()
    console.blank()
    if "application/json" in content_type:
        try:
            data = response.json()
        except ValueError:
            data = None
        if data is not None:
            console.info("Response (JSON):")
            console.blank()
            click.echo(console.highlight_json(data))
        else:
            console.info("Response:")
            console.blank()
            click.echo(response.text)
    else:
        console.info("Response:")
        console.blank()
        click.echo(response.text)
    console.blank()
    console.separator()
    console.blank()


@click.command("call")
@click.argument("endpoint")
@click.option("--param", "-p", "params", multiple=True, metavar="KEY=VALUE",
              help="Query parameter, repeatable.")
@click.option("--key", default=None, help="Funding private key (overrides environment and wallet file).")
@click.option("--network", type=click.Choice(list(NETWORKS)), default=None,
              help="Payment network (default: NETWORK setting).")
@server_url_option
def call_command(endpoint, params, key, network, server_url):
    """Call a marketplace endpoint, paying in USDC when it answers 402."""
    if not endpoint.strip():
        console.error("Endpoint is required")
        console.dim("  Usage: x402-bazaar call <endpoint> [--param key=value...]")
        console.dim("  Example: x402-bazaar call /api/weather --param city=Paris")
        console.blank()
        sys.exit(1)

    server_url = server_url or settings.server_url
    endpoint = normalize_endpoint(endpoint)

    console.banner()
    console.info(f"Calling endpoint: {click.style(endpoint, bold=True)}")
    console.blank()

    query, invalid = parse_params(params)
    for raw in invalid:
        console.warn(f"Invalid param format: {raw} (expected key=value)")
    if query:
        console.info("Parameters:")
        for k, v in query.items():
            console.dim(f"  {k}: {v}")
        console.blank()

    url = build_call_url(server_url, endpoint, query)
    engine = build_engine(key, network)
    result = engine.execute(PaidRequest(url=url, endpoint=endpoint, headers={"Accept": "application/json"}))

    if result.failure is not None:
        if result.failure.kind is FailureKind.NO_FUNDING_CONFIGURED:
            _print_funding_help(result)
            return
        _print_failure(result, network)
        sys.exit(1)

    response = result.response
    if result.paid:
        console.success(f"Paid {result.proof.amount} USDC to {console.mask_address(result.proof.recipient)}")
        console.dim(f"  Transaction: {result.proof.transaction_hash}")
        if result.proof.explorer_url:
            console.dim(f"  Explorer: {result.proof.explorer_url}")
        console.blank()

    if not response.ok:
        console.error(f"HTTP {response.status_code}: {response.reason}")
        if response.text:
            console.blank()
            console.dim("Response:")
            click.echo(click.style(response.text, fg="red"))
        console.blank()
        sys.exit(1)

    console.success(f"{click.style(str(response.status_code), bold=True)} {response.reason}")
    console.blank()
    _print_response(response)
