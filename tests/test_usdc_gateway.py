# tests/test_usdc_gateway.py
"""
Unit tests for the USDC payment gateway.

RPC traffic is mocked: balance queries patch requests.post, transfers use a
MagicMock Web3 instance. Transaction signing is real (offline).
"""
import json
import secrets
import pytest
import requests
from decimal import Decimal
from unittest.mock import patch, MagicMock

from web3.exceptions import TimeExhausted

from x402_bazaar.services.usdc import (
    BALANCE_OF_SELECTOR,
    NETWORKS,
    PaymentGateway,
    UsdcPaymentGateway,
    get_network,
    is_valid_address,
)
from x402_bazaar.x402.budget import SessionBudget
from x402_bazaar.x402.engine import PaidRequest, PaymentRetryEngine
from x402_bazaar.x402.errors import (
    FailureKind,
    InsufficientFundsError,
    InvalidKeyError,
    NetworkError,
    NetworkTimeout,
    PaymentError,
)
from x402_bazaar.x402.keys import FundingKeyResolver

KNOWN_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
KNOWN_ADDRESS = "0x2c7536E3605D9C16a7a3D7b1898e529396a65c23"
RECIPIENT = "0x" + "a" * 36 + "1111"
RPC_URL = "https://rpc.example.org"
TX_HASH = "0x" + "ab" * 32


def rpc_result(units):
    response = MagicMock()
    response.json.return_value = {"jsonrpc": "2.0", "id": 1, "result": hex(units)}
    response.raise_for_status.return_value = None
    return response


def make_web3(receipt_status=1):
    w3 = MagicMock()
    w3.eth.get_transaction_count.return_value = 7
    w3.eth.contract.return_value.functions.transfer.return_value.build_transaction.return_value = {
        "chainId": 8453,
        "nonce": 7,
        "gas": 100000,
        "maxFeePerGas": 2_000_000_000,
        "maxPriorityFeePerGas": 1_000_000_000,
        "to": NETWORKS["mainnet"].usdc_address,
        "value": 0,
        "data": "0xa9059cbb",
    }
    w3.eth.send_raw_transaction.return_value = bytes.fromhex("ab" * 32)
    w3.to_hex.return_value = TX_HASH
    w3.eth.wait_for_transaction_receipt.return_value = {"status": receipt_status, "blockNumber": 123}
    return w3


def make_402_response(amount="0.01"):
    response = requests.Response()
    response.status_code = 402
    response._content = json.dumps({"amount": amount, "recipient": RECIPIENT}).encode()
    response.headers["Content-Type"] = "application/json"
    return response


def make_gateway(web3=None, network="mainnet"):
    return UsdcPaymentGateway(
        network=network,
        rpc_url=RPC_URL,
        query_timeout=15,
        confirmation_timeout=60,
        web3=web3 or make_web3(),
    )


class TestNetworks:
    """Test network configuration."""

    def test_mainnet(self):
        """Mainnet is Base with the native USDC contract."""
        net = get_network("mainnet")
        assert net.chain_id == 8453
        assert net.usdc_address == "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"
        assert net.tx_url("0x1") == "https://basescan.org/tx/0x1"

    def test_testnet(self):
        """Testnet is Base Sepolia."""
        net = get_network("testnet")
        assert net.chain_id == 84532
        assert net.explorer_url == "https://sepolia.basescan.org"

    def test_unknown_network(self):
        """Unknown names raise ValueError."""
        with pytest.raises(ValueError):
            get_network("polygon")

    def test_satisfies_protocol(self):
        """The USDC gateway implements the PaymentGateway contract."""
        assert isinstance(make_gateway(), PaymentGateway)

    def test_address_validation(self):
        """Addresses are 0x plus 40 hex characters."""
        assert is_valid_address(KNOWN_ADDRESS) is True
        assert is_valid_address("0x1234") is False
        assert is_valid_address(None) is False


class TestAddressOf:
    """Test key to address derivation."""

    def test_known_vector(self):
        """A known key derives the known checksummed address."""
        assert make_gateway().address_of(KNOWN_KEY) == KNOWN_ADDRESS

    def test_unprefixed_key(self):
        """Keys without 0x derive the same address."""
        assert make_gateway().address_of(KNOWN_KEY[2:]) == KNOWN_ADDRESS

    def test_deterministic_over_random_keys(self):
        """Repeated derivation of the same key is stable."""
        gateway = make_gateway()
        for _ in range(25):
            key = "0x" + secrets.token_hex(32)
            first = gateway.address_of(key)
            assert gateway.address_of(key) == first
            assert gateway.address_of(key.upper().replace("0X", "0x")) == first
            assert is_valid_address(first)

    @pytest.mark.parametrize("key", ["", "0x1234", "0x" + "zz" * 32])
    def test_invalid_keys(self, key):
        """Malformed keys raise InvalidKeyError."""
        with pytest.raises(InvalidKeyError):
            make_gateway().address_of(key)

    def test_no_network_access(self):
        """Derivation does not touch the RPC node."""
        web3 = make_web3()
        with patch("x402_bazaar.services.usdc.requests.post") as mock_post:
            make_gateway(web3).address_of(KNOWN_KEY)
        mock_post.assert_not_called()
        web3.eth.get_transaction_count.assert_not_called()


class TestBalanceOf:
    """Test USDC balance queries."""

    @patch("x402_bazaar.services.usdc.requests.post")
    def test_balance(self, mock_post):
        """balanceOf result is converted from 6-decimal units."""
        mock_post.return_value = rpc_result(1_250_000)
        assert make_gateway().balance_of(KNOWN_ADDRESS) == Decimal("1.25")

        payload = mock_post.call_args.kwargs["json"]
        assert payload["method"] == "eth_call"
        call = payload["params"][0]
        assert call["to"] == NETWORKS["mainnet"].usdc_address
        assert call["data"] == BALANCE_OF_SELECTOR + KNOWN_ADDRESS[2:].lower().rjust(64, "0")
        assert mock_post.call_args.kwargs["timeout"] == 15

    @patch("x402_bazaar.services.usdc.requests.post")
    def test_empty_result_is_zero(self, mock_post):
        """A bare 0x result means zero balance."""
        response = rpc_result(0)
        response.json.return_value["result"] = "0x"
        mock_post.return_value = response
        assert make_gateway().balance_of(KNOWN_ADDRESS) == Decimal("0")

    @patch("x402_bazaar.services.usdc.requests.post")
    def test_timeout(self, mock_post):
        """RPC timeouts raise NetworkTimeout."""
        mock_post.side_effect = requests.exceptions.Timeout("slow")
        with pytest.raises(NetworkTimeout):
            make_gateway().balance_of(KNOWN_ADDRESS)

    @patch("x402_bazaar.services.usdc.requests.post")
    def test_connection_error(self, mock_post):
        """Connection failures raise NetworkError but not NetworkTimeout."""
        mock_post.side_effect = requests.exceptions.ConnectionError("refused")
        with pytest.raises(NetworkError) as exc_info:
            make_gateway().balance_of(KNOWN_ADDRESS)
        assert not isinstance(exc_info.value, NetworkTimeout)

    @patch("x402_bazaar.services.usdc.requests.post")
    def test_rpc_error(self, mock_post):
        """JSON-RPC errors raise NetworkError."""
        response = MagicMock()
        response.json.return_value = {"jsonrpc": "2.0", "id": 1, "error": {"message": "bad"}}
        mock_post.return_value = response
        with pytest.raises(NetworkError, match="RPC error"):
            make_gateway().balance_of(KNOWN_ADDRESS)

    def test_invalid_address(self):
        """Malformed addresses are rejected before any request."""
        with pytest.raises(ValueError):
            make_gateway().balance_of("0x1234")


class TestPay:
    """Test USDC transfers."""

    @patch("x402_bazaar.services.usdc.requests.post")
    def test_successful_transfer(self, mock_post):
        """A funded key transfers the amount and returns a proof."""
        mock_post.return_value = rpc_result(1_000_000)
        web3 = make_web3()
        proof = make_gateway(web3).pay(KNOWN_KEY, RECIPIENT, Decimal("0.01"))

        assert proof.transaction_hash == TX_HASH
        assert proof.amount == Decimal("0.01")
        assert proof.recipient == RECIPIENT
        assert proof.explorer_url == f"https://basescan.org/tx/{TX_HASH}"

        transfer = web3.eth.contract.return_value.functions.transfer
        _, units = transfer.call_args.args
        assert units == 10_000
        web3.eth.send_raw_transaction.assert_called_once()
        assert web3.eth.wait_for_transaction_receipt.call_args.kwargs["timeout"] == 60

    @patch("x402_bazaar.services.usdc.requests.post")
    def test_insufficient_balance_checked_first(self, mock_post):
        """Balance below the amount raises before anything is submitted."""
        mock_post.return_value = rpc_result(5_000)
        web3 = make_web3()
        with pytest.raises(InsufficientFundsError) as exc_info:
            make_gateway(web3).pay(KNOWN_KEY, RECIPIENT, Decimal("0.01"))

        assert exc_info.value.available == Decimal("0.005")
        assert exc_info.value.required == Decimal("0.01")
        assert "need 0.01 USDC" in str(exc_info.value)
        web3.eth.send_raw_transaction.assert_not_called()

    @patch("x402_bazaar.services.usdc.requests.post")
    def test_reverted_transfer(self, mock_post):
        """A receipt with status 0 raises PaymentError."""
        mock_post.return_value = rpc_result(1_000_000)
        with pytest.raises(PaymentError):
            make_gateway(make_web3(receipt_status=0)).pay(KNOWN_KEY, RECIPIENT, Decimal("0.01"))

    @patch("x402_bazaar.services.usdc.requests.post")
    def test_confirmation_timeout(self, mock_post):
        """No receipt within the confirmation timeout raises NetworkTimeout."""
        mock_post.return_value = rpc_result(1_000_000)
        web3 = make_web3()
        web3.eth.wait_for_transaction_receipt.side_effect = TimeExhausted("no receipt")
        with pytest.raises(NetworkTimeout) as exc_info:
            make_gateway(web3).pay(KNOWN_KEY, RECIPIENT, Decimal("0.01"))
        assert exc_info.value.transaction_hash == TX_HASH
        assert TX_HASH in str(exc_info.value)

    @patch("x402_bazaar.services.usdc.requests.post")
    def test_confirmation_timeout_through_engine(self, mock_post):
        """The engine reports the pending hash and keeps it charged to the budget."""
        mock_post.return_value = rpc_result(1_000_000)
        web3 = make_web3()
        web3.eth.wait_for_transaction_receipt.side_effect = TimeExhausted("no receipt")
        session = MagicMock()
        session.request.return_value = make_402_response()
        budget = SessionBudget("1.00")
        engine = PaymentRetryEngine(
            gateway=make_gateway(web3),
            resolver=FundingKeyResolver(environ={"AGENT_PRIVATE_KEY": KNOWN_KEY}, env_var="AGENT_PRIVATE_KEY",
                                        wallet_path="/nonexistent/wallet.json"),
            session=session,
            budget=budget,
        )

        result = engine.execute(PaidRequest(url="https://bazaar.example.com/api/weather"))

        assert result.failure.kind is FailureKind.TIMEOUT
        assert result.failure.details["transaction_hash"] == TX_HASH
        assert result.proof is None
        assert session.request.call_count == 1
        assert budget.spent == Decimal("0.01")

    @patch("x402_bazaar.services.usdc.requests.post")
    def test_reverted_transfer_carries_hash(self, mock_post):
        """A reverted receipt still reports the transaction hash."""
        mock_post.return_value = rpc_result(1_000_000)
        with pytest.raises(PaymentError) as exc_info:
            make_gateway(make_web3(receipt_status=0)).pay(KNOWN_KEY, RECIPIENT, Decimal("0.01"))
        assert exc_info.value.transaction_hash == TX_HASH

    @patch("x402_bazaar.services.usdc.requests.post")
    def test_submission_connection_error(self, mock_post):
        """Transport failures during submission raise NetworkError without a hash."""
        mock_post.return_value = rpc_result(1_000_000)
        web3 = make_web3()
        web3.eth.send_raw_transaction.side_effect = requests.exceptions.ConnectionError("reset")
        with pytest.raises(NetworkError) as exc_info:
            make_gateway(web3).pay(KNOWN_KEY, RECIPIENT, Decimal("0.01"))
        assert exc_info.value.transaction_hash is None

    def test_invalid_key(self):
        """A malformed key raises InvalidKeyError before any query."""
        with patch("x402_bazaar.services.usdc.requests.post") as mock_post:
            with pytest.raises(InvalidKeyError):
                make_gateway().pay("0xbad", RECIPIENT, Decimal("0.01"))
        mock_post.assert_not_called()
