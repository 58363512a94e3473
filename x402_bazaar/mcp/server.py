# x402_bazaar/mcp/server.py
"""
MCP server exposing the x402 Bazaar marketplace to AI clients over stdio.

One PaymentRetryEngine with one SessionBudget lives for the whole process,
so the spending ceiling (MAX_BUDGET_USDC) covers every call_api invocation
made by the connected agent. Stdout is the MCP transport; logs go to stderr.
"""
import logging
import sys
from decimal import Decimal
from typing import Any, Dict, Optional

from mcp.server.fastmcp import FastMCP

from x402_bazaar.core.config import settings
from x402_bazaar.services import marketplace_api
from x402_bazaar.services.usdc import PaymentGateway, UsdcPaymentGateway
from x402_bazaar.x402.budget import SessionBudget
from x402_bazaar.x402.engine import PaidRequest, PaymentRetryEngine
from x402_bazaar.x402.errors import FailureKind, InvalidKeyError, NetworkError
from x402_bazaar.x402.keys import FundingKeyResolver, KeyStatus

logger = logging.getLogger(__name__)

INSTRUCTIONS = """x402 Bazaar MCP Server - pay-per-call APIs for AI agents.

- discover_marketplace: marketplace name, service count and stats
- list_services / search_services: find APIs and their USDC prices
- call_api: call an endpoint; HTTP 402 challenges are paid automatically in
  USDC on Base, within the session budget
- get_wallet_balance / get_budget_status: funding and spending overview
"""


class BazaarTools:
    """
    Implementation of the MCP tools. Holds the process-wide engine and budget.

    Args:
        server_url: Marketplace URL
        network: "mainnet" or "testnet"
        budget_limit: Session spending ceiling in USDC
        gateway: Payment gateway (UsdcPaymentGateway for `network` by default)
        resolver: Funding key resolver
    """

    def __init__(
        self,
        server_url: Optional[str] = None,
        network: Optional[str] = None,
        budget_limit: Optional[Decimal] = None,
        gateway: Optional[PaymentGateway] = None,
        resolver: Optional[FundingKeyResolver] = None,
    ):
        self.server_url = (server_url or settings.server_url).rstrip("/")
        self.gateway = gateway or UsdcPaymentGateway(network=network)
        self.resolver = resolver or FundingKeyResolver()
        self.budget = SessionBudget(budget_limit or settings.MAX_BUDGET_USDC)
        self.engine = PaymentRetryEngine(
            gateway=self.gateway,
            resolver=self.resolver,
            budget=self.budget,
            timeout=settings.CALL_TIMEOUT_SECONDS,
        )

    def discover_marketplace(self) -> Dict[str, Any]:
        """Describe the marketplace: name, number of services and usage stats."""
        info = marketplace_api.get_marketplace_info(self.server_url)
        stats = marketplace_api.get_stats(self.server_url)
        return {
            "server_url": self.server_url,
            "name": info.get("name") if isinstance(info, dict) else None,
            "total_services": info.get("total_services") if isinstance(info, dict) else None,
            "stats": stats,
        }

    def search_services(self, query: str) -> Dict[str, Any]:
        """Search marketplace services by keyword."""
        services = marketplace_api.search_services(query, server_url=self.server_url)
        return {"query": query, "count": len(services), "services": [s.to_dict() for s in services]}

    def list_services(
        self,
        category: Optional[str] = None,
        chain: Optional[str] = None,
        free: bool = False,
    ) -> Dict[str, Any]:
        """List marketplace services, optionally filtered by category, chain or price."""
        services = marketplace_api.list_services(
            chain=chain, category=category, free=free, server_url=self.server_url
        )
        return {"count": len(services), "services": [s.to_dict() for s in services]}

    def call_api(self, endpoint: str, params: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        """
        Call a marketplace endpoint. A 402 challenge is paid once in USDC and the
        request retried with the transaction hash.
        """
        endpoint = marketplace_api.normalize_endpoint(endpoint)
        url = marketplace_api.build_call_url(self.server_url, endpoint, params or None)
        result = self.engine.execute(PaidRequest(url=url, endpoint=endpoint, headers={"Accept": "application/json"}))

        payload: Dict[str, Any] = {
            "endpoint": endpoint,
            "success": result.ok,
            "budget": {"spent": str(self.budget.spent), "remaining": str(self.budget.remaining),
                       "limit": str(self.budget.limit)},
        }
        if result.proof is not None:
            payload["payment"] = result.proof.to_dict()
        if result.response is not None and result.failure is None:
            payload["status"] = result.response.status_code
            try:
                payload["data"] = result.response.json()
            except ValueError:
                payload["data"] = result.response.text

        if result.failure is not None:
            payload["error"] = result.failure.to_dict()
            if result.failure.kind is FailureKind.NO_FUNDING_CONFIGURED:
                payload["remediation"] = (
                    f"Set {settings.FUNDING_KEY_ENV_VAR} in the MCP server environment or store "
                    f"privateKey in {settings.WALLET_FILE_PATH}, then restart the server."
                )
            elif result.failure.kind is FailureKind.BUDGET_EXCEEDED:
                payload["remediation"] = (
                    "Session budget exhausted. Raise MAX_BUDGET_USDC and restart the server."
                )
            elif (
                result.failure.kind in (FailureKind.TIMEOUT, FailureKind.NETWORK_ERROR)
                and result.failure.details.get("transaction_hash")
            ):
                tx_hash = result.failure.details["transaction_hash"]
                payload["pending_transaction"] = tx_hash
                payload["remediation"] = (
                    f"The USDC transfer {tx_hash} was submitted but not confirmed and has been "
                    "charged to the session budget. Check it on the explorer before calling "
                    "this endpoint again to avoid paying twice."
                )
        return payload

    def get_wallet_balance(self) -> Dict[str, Any]:
        """USDC balance of the funding wallet plus the session budget."""
        resolution = self.resolver.resolve()
        payload: Dict[str, Any] = {"configured": resolution.found, "budget": self.budget.summary()}
        if resolution.status is KeyStatus.INVALID:
            payload["error"] = f"Funding key from {resolution.source.value} is malformed"
            return payload
        if resolution.status is KeyStatus.ABSENT:
            payload["error"] = "No funding key configured"
            return payload

        try:
            address = self.gateway.address_of(resolution.key)
        except InvalidKeyError as e:
            payload["error"] = f"Funding key from {resolution.source.value} is not a usable private key: {e}"
            return payload
        payload["address"] = address
        try:
            payload["balance_usdc"] = str(self.gateway.balance_of(address))
        except NetworkError as e:
            logger.warning(f"Balance lookup failed: {e}")
            payload["error"] = str(e)
        return payload

    def get_budget_status(self) -> Dict[str, Any]:
        """Spending limit, amount spent and payment ledger of this session."""
        return self.budget.summary()


def create_server(tools: BazaarTools) -> FastMCP:
    """Register the tools on a new FastMCP server."""
    mcp = FastMCP(name="x402-bazaar", instructions=INSTRUCTIONS)
    mcp.tool(name="discover_marketplace")(tools.discover_marketplace)
    mcp.tool(name="search_services")(tools.search_services)
    mcp.tool(name="list_services")(tools.list_services)
    mcp.tool(name="call_api")(tools.call_api)
    mcp.tool(name="get_wallet_balance")(tools.get_wallet_balance)
    mcp.tool(name="get_budget_status")(tools.get_budget_status)
    return mcp


def run_server(
    server_url: Optional[str] = None,
    network: Optional[str] = None,
    budget: Optional[Decimal] = None,
) -> None:
    """Run the MCP server on stdio until the client disconnects."""
    # No-op when the CLI already configured logging (also on stderr)
    logging.basicConfig(level=settings.LOG_LEVEL, stream=sys.stderr)

    tools = BazaarTools(server_url=server_url, network=network, budget_limit=budget)
    logger.info(
        f"Starting MCP server for {tools.server_url} on {tools.gateway.network.name}, "
        f"budget {tools.budget.limit} USDC"
    )
    create_server(tools).run(transport="stdio")
