"""Tests for the retry policy and single-leg execution."""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from conftest import CHAIN_ID, ROUTER, TOKEN_A, TOKEN_B, make_quote
from swaploop.errors import (
    MissingTradeStepError,
    SettlementFailureError,
    TransactionRevertedError,
    UnsafeRouterError,
)
from swaploop.routing.base import SwapDirection, SwapRequest
from swaploop.swap.executor import SwapExecutor
from swaploop.swap.retry import (
    RETRIABLE_ERROR_FRAGMENTS,
    error_message,
    is_retriable_swap_error,
    retry_delay_seconds,
)

OTHER_CONTRACT = "0x1111111254EEB25477B68fb85Ed929f73A960582"


def make_request() -> SwapRequest:
    return SwapRequest(
        direction=SwapDirection.A_TO_B,
        source_token=TOKEN_A,
        dest_token=TOKEN_B,
        source_amount_human=Decimal("5"),
        source_decimals=18,
        slippage=Decimal("0.01"),
    )


def make_quote_source(*responses):
    """Quote source double returning each response on successive calls."""
    source = MagicMock()
    if len(responses) == 1:
        source.fetch_quotes = AsyncMock(return_value=responses[0])
    else:
        source.fetch_quotes = AsyncMock(side_effect=list(responses))
    return source


def make_executor(chain, quote_source, **kwargs):
    direct = MagicMock()
    direct.submit = AsyncMock(return_value={"blockNumber": 100, "status": 1})
    params = dict(
        chain=chain,
        quote_source=quote_source,
        chain_id=CHAIN_ID,
        router_address=ROUTER,
        direct=direct,
        sleep=AsyncMock(),
    )
    params.update(kwargs)
    return SwapExecutor(**params)


class TestRetryPolicy:
    """Tests for retry classification."""

    def test_execution_reverted_is_retriable(self):
        assert is_retriable_swap_error(ValueError("execution reverted: 0x"))

    def test_each_fragment_is_retriable(self):
        for fragment in RETRIABLE_ERROR_FRAGMENTS:
            assert is_retriable_swap_error(RuntimeError(f"provider said: {fragment.upper()}"))

    def test_insufficient_funds_is_not_retriable(self):
        assert not is_retriable_swap_error(ValueError("insufficient funds for gas * price + value"))

    def test_transport_errors_not_retriable(self):
        assert not is_retriable_swap_error(httpx.ConnectError("connection refused"))

    def test_safety_errors_never_retried(self):
        assert not is_retriable_swap_error(UnsafeRouterError(ROUTER, "0xexecution reverted"))
        assert not is_retriable_swap_error(MissingTradeStepError())

    def test_reason_attribute_is_considered(self):
        exc = RuntimeError("call failed")
        exc.reason = "Return amount is not enough"
        assert "return amount is not enough" in error_message(exc)
        assert is_retriable_swap_error(exc)

    def test_relay_revert_reason_is_retriable(self):
        assert is_retriable_swap_error(SettlementFailureError("u-1", "execution reverted"))
        assert not is_retriable_swap_error(SettlementFailureError("u-1", "underpriced"))

    def test_delay_bounds(self):
        for _ in range(50):
            assert 2 <= retry_delay_seconds() <= 5


class TestSwapExecutorDirect:
    """Tests for legs submitted directly."""

    @pytest.mark.asyncio
    async def test_trade_only(self, chain, account):
        executor = make_executor(chain, make_quote_source([make_quote(100), make_quote(300)]))

        result = await executor.perform_swap(account, make_request())

        assert result.success
        assert result.status == "completed"
        assert result.attempts == 1
        assert result.dest_token_amount == 300
        assert result.approval_tx_hash is None
        assert result.tx_hash.startswith("0x")
        executor.direct.submit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_approval_then_trade(self, chain, account):
        executor = make_executor(chain, make_quote_source([make_quote(100, with_approval=True)]))

        result = await executor.perform_swap(account, make_request())

        assert result.success
        assert result.approval_tx_hash is not None
        labels = [call.kwargs["label"] for call in executor.direct.submit.await_args_list]
        assert labels == ["approval", "trade"]
        # Each step gets a fresh nonce lookup after the previous one is mined
        assert chain.get_nonce.await_count == 2

    @pytest.mark.asyncio
    async def test_quote_source_sees_wallet_and_chain(self, chain, account):
        source = make_quote_source([make_quote(1)])
        executor = make_executor(chain, source)
        request = make_request()

        await executor.perform_swap(account, request)

        source.fetch_quotes.assert_awaited_once_with(request, account.address, CHAIN_ID)

    @pytest.mark.asyncio
    async def test_no_quotes_skips_leg(self, chain, account):
        executor = make_executor(chain, make_quote_source([]))

        result = await executor.perform_swap(account, make_request())

        assert not result.success
        assert result.status == "no_quote"
        chain.estimate_gas.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_revert_retries_with_fresh_quote(self, chain, account):
        chain.estimate_gas = AsyncMock(side_effect=[ValueError("execution reverted"), 150_000])
        source = make_quote_source([make_quote(100)], [make_quote(90)])
        executor = make_executor(chain, source)

        result = await executor.perform_swap(account, make_request())

        assert result.success
        assert result.attempts == 2
        assert result.dest_token_amount == 90
        assert source.fetch_quotes.await_count == 2
        executor._sleep.assert_awaited_once()
        assert 2 <= executor._sleep.await_args.args[0] <= 5

    @pytest.mark.asyncio
    async def test_mined_revert_retries(self, chain, account):
        executor = make_executor(chain, make_quote_source([make_quote(100)]))
        executor.direct.submit = AsyncMock(
            side_effect=[TransactionRevertedError("0xdead", 100), {"blockNumber": 101, "status": 1}]
        )

        result = await executor.perform_swap(account, make_request())

        assert result.success
        assert result.attempts == 2

    @pytest.mark.asyncio
    async def test_non_retriable_error_aborts(self, chain, account):
        chain.estimate_gas = AsyncMock(side_effect=ValueError("insufficient funds for transfer"))
        source = make_quote_source([make_quote(100)])
        executor = make_executor(chain, source)

        with pytest.raises(ValueError, match="insufficient funds"):
            await executor.perform_swap(account, make_request())

        assert source.fetch_quotes.await_count == 1
        executor._sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unsafe_router_aborts_without_signing(self, chain, account):
        source = make_quote_source([make_quote(100, trade_to=OTHER_CONTRACT)])
        executor = make_executor(chain, source)

        with pytest.raises(UnsafeRouterError):
            await executor.perform_swap(account, make_request())

        assert source.fetch_quotes.await_count == 1
        chain.estimate_gas.assert_not_awaited()
        executor.direct.submit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_attempts_exhausted_raises_last_error(self, chain, account):
        chain.estimate_gas = AsyncMock(side_effect=ValueError("execution reverted"))
        source = make_quote_source([make_quote(100)])
        executor = make_executor(chain, source, max_attempts=3)

        with pytest.raises(ValueError, match="execution reverted"):
            await executor.perform_swap(account, make_request())

        assert source.fetch_quotes.await_count == 3
        assert executor._sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_quote_fetch_error_propagates(self, chain, account):
        source = MagicMock()
        source.fetch_quotes = AsyncMock(side_effect=httpx.ReadTimeout("timed out"))
        executor = make_executor(chain, source)

        with pytest.raises(httpx.ReadTimeout):
            await executor.perform_swap(account, make_request())

    @pytest.mark.asyncio
    async def test_gas_cap_applied(self, chain, account):
        chain.get_fee_data = AsyncMock(
            return_value={"maxFeePerGas": 100 * 10**9, "maxPriorityFeePerGas": 3 * 10**9}
        )
        executor = make_executor(
            chain, make_quote_source([make_quote(1)]), max_gas_price_gwei=Decimal("2")
        )

        await executor.perform_swap(account, make_request())

        signed = executor.direct.submit.await_args.args[0]
        assert signed.populated["maxFeePerGas"] == 2 * 10**9
        assert signed.populated["maxPriorityFeePerGas"] == 2 * 10**9


class TestSwapExecutorRelayed:
    """Tests for legs submitted through the relay."""

    def make_relay(self, mined="0xmined"):
        relay = MagicMock()
        relay.submit_single = AsyncMock(return_value=mined)
        relay.submit_batch = AsyncMock(return_value=mined)
        return relay

    @pytest.mark.asyncio
    async def test_trade_only_uses_single_submission(self, chain, account):
        relay = self.make_relay()
        executor = make_executor(chain, make_quote_source([make_quote(1)]), relay=relay)

        result = await executor.perform_swap(account, make_request())

        assert result.tx_hash == "0xmined"
        relay.submit_single.assert_awaited_once()
        relay.submit_batch.assert_not_awaited()
        executor.direct.submit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_approval_and_trade_batched_with_consecutive_nonces(self, chain, account):
        chain.get_nonce = AsyncMock(return_value=7)
        # Neither step can be estimated before the approval is mined
        chain.estimate_gas = AsyncMock(side_effect=ValueError("execution reverted"))
        relay = self.make_relay()
        executor = make_executor(
            chain, make_quote_source([make_quote(1, with_approval=True)]), relay=relay
        )

        result = await executor.perform_swap(account, make_request())

        assert result.success
        signed = relay.submit_batch.await_args.args[0]
        assert [tx.nonce for tx in signed] == [7, 8]
        assert [tx.populated["gas"] for tx in signed] == [1_080_000, 1_080_000]
        assert signed[0].populated["to"].lower() == TOKEN_A.lower()
        assert signed[1].populated["to"].lower() == ROUTER.lower()
        assert result.approval_tx_hash == signed[0].tx_hash
        chain.get_nonce.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_settlement_failure_not_retried(self, chain, account):
        relay = self.make_relay()
        relay.submit_single = AsyncMock(side_effect=SettlementFailureError("u-1", "underpriced"))
        source = make_quote_source([make_quote(1)])
        executor = make_executor(chain, source, relay=relay)

        with pytest.raises(SettlementFailureError):
            await executor.perform_swap(account, make_request())

        assert source.fetch_quotes.await_count == 1
