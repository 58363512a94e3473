# x402_bazaar/commands/wallet.py
import sys
from decimal import Decimal

import click

from x402_bazaar.core.config import settings
from x402_bazaar.services.usdc import NETWORKS, UsdcPaymentGateway, is_valid_address
from x402_bazaar.utils import console
from x402_bazaar.x402.errors import InvalidKeyError, NetworkError, NetworkTimeout
from x402_bazaar.x402.keys import FundingKeyResolver, KeyStatus

LOW_BALANCE_USDC = Decimal("0.1")
AVERAGE_CALL_PRICE_USDC = Decimal("0.02")


def funding_tips(balance: Decimal) -> dict:
    """
    Advice for a wallet balance.

    Returns:
        Dict with `level` (empty, low, funded) and, for funded wallets,
        `estimated_calls` at the average call price.
    """
    if balance == 0:
        return {"level": "empty", "estimated_calls": 0}
    if balance < LOW_BALANCE_USDC:
        return {"level": "low", "estimated_calls": int(balance // AVERAGE_CALL_PRICE_USDC)}
    return {"level": "funded", "estimated_calls": int(balance // AVERAGE_CALL_PRICE_USDC)}


def _print_usage_help() -> None:
    console.info("Check the USDC balance of a wallet on Base.")
    console.blank()
    console.dim("  Usage:")
    console.dim("    x402-bazaar wallet --address 0xYourAddress")
    console.blank()
    console.dim("  Without --address, the address of the configured funding key is used:")
    console.dim(f"    {settings.FUNDING_KEY_ENV_VAR} environment variable, or")
    console.dim(f"    privateKey in {settings.WALLET_FILE_PATH}")
    console.blank()


@click.command("wallet")
@click.option("--address", default=None, help="Wallet address to check (default: funding key address).")
@click.option("--network", type=click.Choice(list(NETWORKS)), default=None,
              help="Network to query (default: NETWORK setting).")
def wallet_command(address, network):
    """Show the USDC balance of a wallet."""
    console.banner()
    gateway = UsdcPaymentGateway(network=network)

    if address is None:
        resolution = FundingKeyResolver().resolve()
        if resolution.status is KeyStatus.INVALID:
            console.error(f"Funding key from {resolution.source.value} is malformed")
            console.dim("  Expected: 0x followed by 64 hexadecimal characters")
            console.blank()
            sys.exit(1)
        if resolution.status is KeyStatus.ABSENT:
            _print_usage_help()
            return
        try:
            address = gateway.address_of(resolution.key)
        except InvalidKeyError as e:
            console.error(f"Funding key from {resolution.source.value} is not a usable private key")
            console.dim(f"  {e}")
            console.blank()
            sys.exit(1)
    else:
        address = address.strip()
        if not is_valid_address(address):
            console.error("Invalid Ethereum address format")
            console.dim("  Expected: 0x followed by 40 hexadecimal characters")
            console.dim(f"  Got: {address}")
            console.blank()
            sys.exit(1)

    console.info(f"Checking wallet: {click.style(console.mask_address(address), bold=True)}")
    console.blank()

    try:
        balance = gateway.balance_of(address)
    except NetworkTimeout:
        console.error("Request timeout, Base RPC may be slow")
        console.dim("  Try again in a few seconds")
        console.blank()
        sys.exit(1)
    except NetworkError as e:
        console.error(f"Failed to fetch balance: {e}")
        console.dim("  Check your internet connection")
        console.blank()
        sys.exit(1)

    net = gateway.network
    console.separator()
    console.blank()
    console.info(f"Address:  {click.style(console.mask_address(address), fg='green')}")
    console.info(f"Network:  {click.style(net.name, fg='blue', bold=True)} (Chain ID: {net.chain_id})")
    console.info(f"Balance:  {click.style(f'{balance:.6f}', fg='cyan', bold=True)} USDC")
    console.blank()
    console.separator()
    console.blank()
    console.dim(f"  Explorer:  {net.explorer_url}/address/{address}")
    console.blank()

    tips = funding_tips(balance)
    if tips["level"] == "empty":
        console.warn("This wallet has no USDC.")
        console.dim("  To fund it:")
        console.dim(f"    1. Send USDC on {net.name} to this address")
        console.dim("    2. Send a tiny amount of ETH for gas (~$0.01)")
    elif tips["level"] == "low":
        console.warn("Low balance, consider adding more USDC.")
        console.dim("  Most x402 Bazaar APIs cost $0.005-$0.05 per call.")
    else:
        console.success("Wallet is funded and ready!")
        console.dim(f"  Estimated API calls: ~{tips['estimated_calls']} (at avg $0.02/call)")
    console.blank()
