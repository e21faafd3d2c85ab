"""Swap leg execution.

One leg = quote fetch -> selection -> router check -> fee overrides ->
build and sign -> submit (direct or relayed), wrapped in the retry policy.
Every retry starts again from a fresh quote.
"""

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Awaitable, Callable, Optional

from eth_account.signers.local import LocalAccount

from swaploop.routing.aggregator import QuoteSource
from swaploop.routing.base import SwapDirection, SwapRequest, TransactionStep
from swaploop.routing.selection import ensure_router_safety, pick_best_quote
from swaploop.swap.builder import SignedTransaction, TransactionBuilder
from swaploop.swap.chain import ChainClient
from swaploop.swap.fees import build_gas_overrides
from swaploop.swap.relay import RelaySubmitter
from swaploop.swap.retry import MAX_SWAP_ATTEMPTS, is_retriable_swap_error, retry_delay_seconds
from swaploop.swap.submitters import DirectSubmitter

logger = logging.getLogger(__name__)

BATCH_FALLBACK_GAS_LIMIT = 900_000


@dataclass
class SwapResult:
    """Result of one leg."""

    success: bool
    direction: SwapDirection
    amount_human: Decimal
    attempts: int = 0
    tx_hash: Optional[str] = None
    approval_tx_hash: Optional[str] = None
    dest_token_amount: Optional[int] = None
    error: Optional[str] = None
    status: str = "pending"


class SwapExecutor:
    """Executes single legs for any wallet on one chain."""

    def __init__(
        self,
        chain: ChainClient,
        quote_source: QuoteSource,
        chain_id: int,
        router_address: str,
        max_gas_price_gwei: Optional[Decimal] = None,
        relay: Optional[RelaySubmitter] = None,
        direct: Optional[DirectSubmitter] = None,
        max_attempts: int = MAX_SWAP_ATTEMPTS,
        batch_fallback_gas_limit: int = BATCH_FALLBACK_GAS_LIMIT,
        debug: bool = False,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the executor.

        Args:
            chain: Shared RPC client
            quote_source: Aggregator client
            chain_id: Chain id for quotes (source and destination)
            router_address: The only contract a trade step may target
            max_gas_price_gwei: Optional fee cap
            relay: Relay submitter; when set, every leg goes through the relay
            direct: Direct submitter (built from `chain` when omitted)
            max_attempts: Attempts per leg
            batch_fallback_gas_limit: Gas limit when estimation fails in a batch
            debug: Log populated transaction fields
            sleep: Awaitable sleep, replaced in tests
        """
        self.chain = chain
        self.quote_source = quote_source
        self.chain_id = chain_id
        self.router_address = router_address
        self.max_gas_price_gwei = max_gas_price_gwei
        self.relay = relay
        self.direct = direct or DirectSubmitter(chain)
        self.max_attempts = max_attempts
        self.batch_fallback_gas_limit = batch_fallback_gas_limit
        self.debug = debug
        self._sleep = sleep

    async def perform_swap(self, account: LocalAccount, request: SwapRequest) -> SwapResult:
        """Execute one leg with retries.

        Returns:
            SwapResult; success=False with status "no_quote" when the
            aggregator has nothing for this leg

        Raises:
            Exception: Any non-retriable error, or the last error once
                attempts are exhausted
        """
        address = account.address
        direction = request.direction.value

        for attempt in range(1, self.max_attempts + 1):
            logger.info(
                f"Fetching quotes for {direction} amount {request.source_amount_human}... "
                f"(attempt {attempt}/{self.max_attempts})"
            )
            quotes = await self.quote_source.fetch_quotes(request, address, self.chain_id)
            best = pick_best_quote(quotes)
            if best is None:
                logger.warning("No quotes returned")
                return SwapResult(
                    success=False,
                    direction=request.direction,
                    amount_human=request.source_amount_human,
                    attempts=attempt,
                    status="no_quote",
                )

            try:
                trade = ensure_router_safety(best, self.router_address)
                gas_overrides = await build_gas_overrides(self.chain, self.max_gas_price_gwei)
                builder = TransactionBuilder(self.chain, account, debug=self.debug)

                if self.relay is not None:
                    tx_hash, approval_hash = await self._execute_relayed(
                        builder, best.approval_step, trade, gas_overrides
                    )
                else:
                    tx_hash, approval_hash = await self._execute_direct(
                        builder, best.approval_step, trade, gas_overrides
                    )

                return SwapResult(
                    success=True,
                    direction=request.direction,
                    amount_human=request.source_amount_human,
                    attempts=attempt,
                    tx_hash=tx_hash,
                    approval_tx_hash=approval_hash,
                    dest_token_amount=best.dest_token_amount,
                    status="completed",
                )

            except Exception as e:
                logger.warning(f"Swap attempt {attempt} failed: {e}")
                if attempt < self.max_attempts and is_retriable_swap_error(e):
                    wait_seconds = retry_delay_seconds()
                    logger.info(f"Retrying after {wait_seconds}s with fresh quote...")
                    await self._sleep(wait_seconds)
                    continue
                raise

        # Unreachable: the last attempt either returns or raises
        raise RuntimeError("swap attempts exhausted")

    async def _execute_direct(
        self,
        builder: TransactionBuilder,
        approval: Optional[TransactionStep],
        trade: TransactionStep,
        gas_overrides: dict,
    ) -> tuple[str, Optional[str]]:
        """Approval (if any) then trade, each broadcast and confirmed."""
        approval_hash = None
        if approval is not None:
            logger.info("Sending approval tx...")
            signed_approval = await builder.build(approval.to_request(), gas_overrides)
            receipt = await self.direct.submit(signed_approval, label="approval")
            approval_hash = signed_approval.tx_hash
            logger.debug(f"Approval receipt block {receipt['blockNumber']}")

        # Built only after the approval is mined: nonce and estimate depend on it
        logger.info("Sending trade tx...")
        signed_trade = await builder.build(trade.to_request(), gas_overrides)
        await self.direct.submit(signed_trade, label="trade")
        return signed_trade.tx_hash, approval_hash

    async def _execute_relayed(
        self,
        builder: TransactionBuilder,
        approval: Optional[TransactionStep],
        trade: TransactionStep,
        gas_overrides: dict,
    ) -> tuple[str, Optional[str]]:
        """Single trade, or approval + trade as one batch with consecutive nonces."""
        if approval is None:
            signed_trade = await builder.build(trade.to_request(), gas_overrides)
            mined_hash = await self.relay.submit_single(signed_trade)
            return mined_hash, None

        # The trade cannot be estimated before the approval lands, hence the fallback
        nonce = await self.chain.get_nonce(builder.address)
        signed: list[SignedTransaction] = []
        for offset, step in enumerate((approval, trade)):
            signed.append(
                await builder.build(
                    step.to_request(),
                    gas_overrides,
                    fallback_gas_limit=self.batch_fallback_gas_limit,
                    nonce=nonce + offset,
                )
            )
        mined_hash = await self.relay.submit_batch(signed)
        return mined_hash, signed[0].tx_hash
