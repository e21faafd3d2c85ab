"""Direct submission: broadcast a signed transaction and wait for confirmations."""

import asyncio
import logging
from typing import Any

from swaploop.errors import TransactionRevertedError
from swaploop.swap.builder import SignedTransaction
from swaploop.swap.chain import ChainClient

logger = logging.getLogger(__name__)

DEFAULT_CONFIRMATIONS = 2
CONFIRMATION_POLL_SECONDS = 1.5


class DirectSubmitter:
    """Broadcasts straight to the RPC node and waits for finality."""

    def __init__(
        self,
        chain: ChainClient,
        confirmations: int = DEFAULT_CONFIRMATIONS,
        poll_interval: float = CONFIRMATION_POLL_SECONDS,
    ):
        self.chain = chain
        self.confirmations = confirmations
        self.poll_interval = poll_interval

    async def wait_for_confirmations(self, tx_hash: str) -> Any:
        """Wait until the transaction is mined and `confirmations` blocks deep.

        Blocks until mined with no overall timeout. Returns the receipt
        re-fetched after the confirmation depth is reached.
        """
        receipt = await self.chain.wait_for_receipt(tx_hash, poll_interval=self.poll_interval)
        mined_block = int(receipt["blockNumber"])

        while True:
            head = await self.chain.get_block_number()
            current = head - mined_block + 1
            if current >= self.confirmations:
                break
            await asyncio.sleep(self.poll_interval)

        final = await self.chain.get_transaction_receipt(tx_hash)
        return final if final is not None else receipt

    async def submit(self, signed: SignedTransaction, label: str = "tx") -> Any:
        """Broadcast a signed transaction and return its confirmed receipt.

        Raises:
            TransactionRevertedError: If the transaction was mined with status 0
        """
        tx_hash = await self.chain.send_raw_transaction(signed.raw)
        logger.info(f"{label.capitalize()} sent: {tx_hash}")

        receipt = await self.wait_for_confirmations(tx_hash)
        block_number = receipt["blockNumber"]
        if receipt.get("status", 1) == 0:
            raise TransactionRevertedError(tx_hash, block_number)

        logger.info(f"{label.capitalize()} confirmed in block {block_number}")
        return receipt
