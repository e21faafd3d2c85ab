"""Pytest configuration and fixtures."""

import os
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from eth_account import Account

# Set test environment
os.environ["CHAIN_ID"] = "1"
os.environ["RPC_URL"] = "http://localhost:8545"
os.environ["TOKEN_A_ADDRESS"] = "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2"
os.environ["TOKEN_B_ADDRESS"] = "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"
os.environ["DEBUG"] = "true"

from swaploop.config import DEFAULT_ROUTER_ADDRESS, Settings, Wallet
from swaploop.routing.base import Quote
from swaploop.swap.chain import ChainClient

CHAIN_ID = 1
TOKEN_A = "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2"
TOKEN_B = "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"
ROUTER = DEFAULT_ROUTER_ADDRESS
SPENDER_TOKEN = "0xdAC17F958D2ee523a2206206994597C13D831ec7"

# Well-known development key (hardhat account #0)
TEST_PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
TEST_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
# Hardhat account #1
OTHER_PRIVATE_KEY = "0x59c6995e998f97a5a0044966f0945389dc9e86dae88c7a8412f4603b6b78690d"


def make_quote_payload(dest_amount, trade_to=ROUTER, with_approval=False) -> dict:
    """Aggregator-shaped quote entry."""
    trade = []
    if with_approval:
        trade.append(
            {
                "title": "approval",
                "txdata": {"to": TOKEN_A, "data": "0x095ea7b3", "value": "0x0"},
            }
        )
    trade.append(
        {
            "title": "trade",
            "txdata": {"to": trade_to, "data": "0x12aa3caf", "value": "0"},
        }
    )
    return {"quote": {"destTokenAmount": str(dest_amount)}, "trade": trade}


def make_quote(dest_amount, trade_to=ROUTER, with_approval=False) -> Quote:
    return Quote.from_api(make_quote_payload(dest_amount, trade_to, with_approval))


@pytest.fixture
def account():
    """Local signing account for the test key."""
    return Account.from_key(TEST_PRIVATE_KEY)


@pytest.fixture
def wallet() -> Wallet:
    return Wallet(address=TEST_ADDRESS, private_key=TEST_PRIVATE_KEY)


@pytest.fixture
def settings() -> Settings:
    """Settings with small minimums and no .env file."""
    return Settings(
        _env_file=None,
        chain_id=CHAIN_ID,
        rpc_url="http://localhost:8545",
        token_a_address=TOKEN_A,
        token_b_address=TOKEN_B,
        token_a_min_swap=Decimal("1"),
        token_b_min_swap=Decimal("1"),
        delay_seconds_min=45,
        delay_seconds_max=90,
    )


@pytest.fixture
def chain():
    """ChainClient double with async RPC methods."""
    mock = MagicMock(spec=ChainClient)
    mock.to_checksum_address.side_effect = ChainClient.to_checksum_address
    mock.get_chain_id = AsyncMock(return_value=CHAIN_ID)
    mock.has_code = AsyncMock(return_value=True)
    mock.get_native_balance = AsyncMock(return_value=10**18)
    mock.get_token_balance = AsyncMock(return_value=0)
    mock.estimate_gas = AsyncMock(return_value=100_000)
    mock.get_fee_data = AsyncMock(
        return_value={"maxFeePerGas": 30 * 10**9, "maxPriorityFeePerGas": 10**9}
    )
    mock.get_gas_price = AsyncMock(return_value=20 * 10**9)
    mock.get_nonce = AsyncMock(return_value=0)
    mock.send_raw_transaction = AsyncMock(return_value="0x" + "11" * 32)
    mock.get_block_number = AsyncMock(return_value=101)
    mock.get_transaction_receipt = AsyncMock(return_value={"blockNumber": 100, "status": 1})
    mock.wait_for_receipt = AsyncMock(return_value={"blockNumber": 100, "status": 1})
    return mock
