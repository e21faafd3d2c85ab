"""On-chain RPC surface used by the swap engine.

A thin async wrapper around web3.py. One instance is shared read-only by
every wallet; all writes go through pre-signed raw transactions.
"""

import asyncio
import logging
from typing import Any, Optional, Union

from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import TransactionNotFound

logger = logging.getLogger(__name__)

# Minimal ERC-20 ABI (balanceOf / decimals)
ERC20_ABI = [
    {
        "constant": True,
        "inputs": [{"name": "owner", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "constant": True,
        "inputs": [],
        "name": "decimals",
        "outputs": [{"name": "", "type": "uint8"}],
        "stateMutability": "view",
        "type": "function",
    },
]

RECEIPT_POLL_SECONDS = 1.5


def hex_string(value: Union[bytes, str]) -> str:
    """Render tx hashes and raw bytes as 0x-prefixed hex."""
    if isinstance(value, (bytes, bytearray)):
        text = bytes(value).hex()
    else:
        text = str(value)
    return text if text.startswith("0x") else f"0x{text}"


class ChainClient:
    """Async JSON-RPC client for one EVM chain."""

    def __init__(self, rpc_url: Optional[str] = None, web3: Optional[AsyncWeb3] = None):
        """Initialize the client.

        Args:
            rpc_url: JSON-RPC endpoint (ignored when `web3` is given)
            web3: Pre-built AsyncWeb3 instance
        """
        if web3 is None:
            if not rpc_url:
                raise ValueError("rpc_url or web3 is required")
            web3 = AsyncWeb3(AsyncHTTPProvider(rpc_url))
        self.rpc_url = rpc_url
        self.web3 = web3

    @staticmethod
    def to_checksum_address(address: str) -> str:
        return AsyncWeb3.to_checksum_address(address)

    async def get_chain_id(self) -> int:
        return int(await self.web3.eth.chain_id)

    async def has_code(self, address: str) -> bool:
        """Check whether an address holds contract code."""
        code = await self.web3.eth.get_code(self.to_checksum_address(address))
        return bool(code) and hex_string(code) != "0x"

    async def get_native_balance(self, address: str) -> int:
        return int(await self.web3.eth.get_balance(self.to_checksum_address(address)))

    async def get_token_balance(self, token: str, owner: str) -> int:
        contract = self.web3.eth.contract(address=self.to_checksum_address(token), abi=ERC20_ABI)
        return int(await contract.functions.balanceOf(self.to_checksum_address(owner)).call())

    async def estimate_gas(self, tx: dict) -> int:
        return int(await self.web3.eth.estimate_gas(tx))

    async def get_fee_data(self) -> dict:
        """Live EIP-1559 fee estimate.

        maxFeePerGas is twice the latest base fee plus the suggested priority
        fee. Fields the node cannot provide are None.
        """
        block = await self.web3.eth.get_block("latest")
        base_fee = block.get("baseFeePerGas")

        try:
            priority_fee = int(await self.web3.eth.max_priority_fee)
        except Exception as e:
            logger.debug(f"eth_maxPriorityFeePerGas unavailable: {e}")
            priority_fee = None

        max_fee = None
        if base_fee is not None:
            max_fee = 2 * int(base_fee) + (priority_fee or 0)

        return {"maxFeePerGas": max_fee, "maxPriorityFeePerGas": priority_fee}

    async def get_gas_price(self) -> int:
        return int(await self.web3.eth.gas_price)

    async def get_nonce(self, address: str) -> int:
        """Next sequence number, counting pending transactions."""
        return int(
            await self.web3.eth.get_transaction_count(self.to_checksum_address(address), "pending")
        )

    async def send_raw_transaction(self, raw_tx: str) -> str:
        tx_hash = await self.web3.eth.send_raw_transaction(raw_tx)
        return hex_string(tx_hash)

    async def get_block_number(self) -> int:
        return int(await self.web3.eth.block_number)

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Any]:
        """Receipt for a mined transaction, or None while pending."""
        try:
            return await self.web3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return None

    async def wait_for_receipt(self, tx_hash: str, poll_interval: float = RECEIPT_POLL_SECONDS) -> Any:
        """Block until the transaction is mined. There is no overall timeout."""
        while True:
            receipt = await self.get_transaction_receipt(tx_hash)
            if receipt is not None:
                return receipt
            await asyncio.sleep(poll_interval)
