# x402_bazaar/services/usdc.py
"""
USDC payments on Base.

This module provides the payment gateway used by the retry engine:
- address_of: derive the address of a funding key (offline)
- balance_of: USDC balance of an address via JSON-RPC eth_call
- pay: ERC-20 transfer signed locally and submitted through web3

Network selection (mainnet / testnet) and the RPC endpoint come from
app settings (NETWORK, BASE_RPC_URL).
"""
import logging
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Optional, Protocol, runtime_checkable

import requests
from eth_account import Account
from web3 import Web3
from web3.exceptions import TimeExhausted, Web3Exception

from x402_bazaar.core.config import settings
from x402_bazaar.models.payment import PaymentProof
from x402_bazaar.x402.amounts import parse_usdc, units_to_usdc, usdc_to_units
from x402_bazaar.x402.errors import (
    InsufficientFundsError,
    InvalidKeyError,
    NetworkError,
    NetworkTimeout,
    PaymentError,
)
from x402_bazaar.x402.keys import normalize_key

logger = logging.getLogger(__name__)

ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")

# ERC-20 balanceOf(address)
BALANCE_OF_SELECTOR = "0x70a08231"

USDC_ABI = [
    {
        "name": "transfer",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "outputs": [{"name": "", "type": "bool"}],
    },
    {
        "name": "balanceOf",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "account", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
]


@dataclass(frozen=True)
class NetworkConfig:
    name: str
    chain_id: int
    rpc_url: str
    usdc_address: str
    explorer_url: str

    def tx_url(self, tx_hash: str) -> str:
        return f"{self.explorer_url}/tx/{tx_hash}"


NETWORKS: Dict[str, NetworkConfig] = {
    "mainnet": NetworkConfig(
        name="Base",
        chain_id=8453,
        rpc_url="https://mainnet.base.org",
        usdc_address="0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
        explorer_url="https://basescan.org",
    ),
    "testnet": NetworkConfig(
        name="Base Sepolia",
        chain_id=84532,
        rpc_url="https://sepolia.base.org",
        usdc_address="0x036CbD53842c5426634e7929541eC2318f3dCF7e",
        explorer_url="https://sepolia.basescan.org",
    ),
}


def get_network(name: Optional[str] = None) -> NetworkConfig:
    """
    Look up a network by name.

    Raises:
        ValueError: If the name is neither mainnet nor testnet
    """
    name = name or settings.NETWORK
    if name not in NETWORKS:
        raise ValueError(f"Unknown network '{name}'. Use one of: {', '.join(NETWORKS)}")
    return NETWORKS[name]


def is_valid_address(address: Optional[str]) -> bool:
    return isinstance(address, str) and bool(ADDRESS_RE.match(address))


@runtime_checkable
class PaymentGateway(Protocol):
    """Contract between the retry engine and an on-chain payment service."""

    def address_of(self, key: str) -> str:
        ...

    def balance_of(self, address: str) -> Decimal:
        ...

    def pay(self, key: str, to: str, amount: Decimal) -> PaymentProof:
        ...


class UsdcPaymentGateway:
    """
    PaymentGateway backed by the USDC contract on Base.

    Args:
        network: "mainnet" or "testnet" (settings.NETWORK by default)
        rpc_url: RPC endpoint (settings.BASE_RPC_URL, else the network default)
        query_timeout: Timeout for balance queries in seconds
        confirmation_timeout: Timeout for the transfer receipt in seconds
        web3: Preconfigured Web3 instance (created lazily otherwise)
    """

    def __init__(
        self,
        network: Optional[str] = None,
        rpc_url: Optional[str] = None,
        query_timeout: Optional[float] = None,
        confirmation_timeout: Optional[float] = None,
        web3: Optional[Web3] = None,
    ):
        self.network = get_network(network)
        self.rpc_url = rpc_url or settings.BASE_RPC_URL or self.network.rpc_url
        self.query_timeout = query_timeout or settings.QUERY_TIMEOUT_SECONDS
        self.confirmation_timeout = confirmation_timeout or settings.CONFIRMATION_TIMEOUT_SECONDS
        self._web3 = web3

    @property
    def web3(self) -> Web3:
        if self._web3 is None:
            self._web3 = Web3(Web3.HTTPProvider(
                self.rpc_url,
                request_kwargs={"timeout": self.query_timeout},
            ))
        return self._web3

    def address_of(self, key: str) -> str:
        """
        Derive the checksummed address of a private key. No network access.

        Raises:
            InvalidKeyError: If the key is malformed or not a valid secp256k1 key
        """
        normalized = normalize_key(key)
        if normalized is None:
            raise InvalidKeyError("Invalid private key format (expected 0x followed by 64 hex characters)")
        try:
            return Account.from_key(normalized).address
        except ValueError as e:
            raise InvalidKeyError(f"Invalid private key: {e}") from e

    def _rpc_call(self, method: str, params: list) -> str:
        """
        Send a JSON-RPC request to the configured node.

        Raises:
            NetworkTimeout: If the node does not answer in time
            NetworkError: On transport failures and RPC errors
        """
        try:
            response = requests.post(
                self.rpc_url,
                json={"jsonrpc": "2.0", "method": method, "params": params, "id": 1},
                timeout=self.query_timeout,
            )
            response.raise_for_status()
            result = response.json()
        except requests.exceptions.Timeout as e:
            logger.error(f"RPC {method} timed out after {self.query_timeout}s")
            raise NetworkTimeout(f"RPC request timed out after {self.query_timeout}s") from e
        except requests.exceptions.RequestException as e:
            logger.error(f"RPC {method} failed: {e}")
            raise NetworkError(f"RPC request failed: {e}") from e
        except ValueError as e:
            raise NetworkError(f"Invalid RPC response: {e}") from e

        if "error" in result:
            raise NetworkError(f"RPC error: {result['error']}")
        if "result" not in result:
            raise NetworkError("Invalid RPC response: missing 'result' field")
        return result["result"]

    def balance_of(self, address: str) -> Decimal:
        """
        USDC balance of an address.

        Args:
            address: 0x-prefixed 20-byte hex address

        Returns:
            Balance in USDC

        Raises:
            ValueError: If the address is malformed
            NetworkError: If the RPC query fails
        """
        if not is_valid_address(address):
            raise ValueError(f"Invalid address: {address}")

        data = BALANCE_OF_SELECTOR + address[2:].lower().rjust(64, "0")
        result = self._rpc_call("eth_call", [{"to": self.network.usdc_address, "data": data}, "latest"])

        units = int(result, 16) if result and result != "0x" else 0
        balance = units_to_usdc(units)
        logger.debug(f"USDC balance of {address} on {self.network.name}: {balance}")
        return balance

    def pay(self, key: str, to: str, amount: Decimal) -> PaymentProof:
        """
        Transfer `amount` USDC from the key's address to `to` and wait for one
        confirmation.

        Args:
            key: Funding private key
            to: Recipient address
            amount: Amount in USDC

        Returns:
            PaymentProof with the transaction hash

        Raises:
            InvalidKeyError: If the key is malformed
            InsufficientFundsError: If the balance is below `amount`
            NetworkTimeout: If the confirmation wait times out; `transaction_hash`
                carries the submitted transfer, which may still confirm
            NetworkError: On transport failures
            PaymentError: If the transaction is rejected or reverts
        """
        amount = parse_usdc(amount)
        sender = self.address_of(key)

        balance = self.balance_of(sender)
        if balance < amount:
            raise InsufficientFundsError(available=balance, required=amount)

        w3 = self.web3
        account = Account.from_key(normalize_key(key))
        contract = w3.eth.contract(
            address=Web3.to_checksum_address(self.network.usdc_address),
            abi=USDC_ABI,
        )

        # Set once the transfer is on the wire; later errors report it as pending
        tx_hash = None
        try:
            nonce = w3.eth.get_transaction_count(sender)
            tx = contract.functions.transfer(
                Web3.to_checksum_address(to),
                usdc_to_units(amount),
            ).build_transaction({
                "chainId": self.network.chain_id,
                "from": sender,
                "nonce": nonce,
            })
            signed = account.sign_transaction(tx)
            tx_hash = w3.to_hex(w3.eth.send_raw_transaction(signed.raw_transaction))
            logger.info(f"Submitted USDC transfer of {amount} to {to} on {self.network.name}: {tx_hash}")

            receipt = w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.confirmation_timeout)
        except TimeExhausted as e:
            logger.error(f"Payment {tx_hash} not confirmed after {self.confirmation_timeout}s")
            raise NetworkTimeout(
                f"Payment {tx_hash} not confirmed within {self.confirmation_timeout}s",
                transaction_hash=tx_hash,
            ) from e
        except requests.exceptions.Timeout as e:
            raise NetworkTimeout(f"RPC request timed out: {e}", transaction_hash=tx_hash) from e
        except requests.exceptions.RequestException as e:
            raise NetworkError(f"RPC request failed: {e}", transaction_hash=tx_hash) from e
        except (Web3Exception, ValueError) as e:
            logger.error(f"USDC transfer rejected: {e}")
            raise PaymentError(f"USDC transfer failed: {e}", transaction_hash=tx_hash) from e

        if receipt.get("status") != 1:
            raise PaymentError(f"USDC transfer reverted: {tx_hash}", transaction_hash=tx_hash)

        logger.info(f"USDC transfer confirmed in block {receipt.get('blockNumber')}")
        return PaymentProof(
            transaction_hash=tx_hash,
            amount=amount,
            recipient=to,
            explorer_url=self.network.tx_url(tx_hash),
        )
