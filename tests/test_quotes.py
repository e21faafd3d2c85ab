"""Tests for quote parsing, the quote source, selection and router safety."""

from decimal import Decimal

import httpx
import pytest

from conftest import CHAIN_ID, ROUTER, TEST_ADDRESS, TOKEN_A, TOKEN_B, make_quote, make_quote_payload
from swaploop.errors import MissingTradeStepError, UnsafeRouterError
from swaploop.routing.aggregator import QuoteSource
from swaploop.routing.base import Quote, SwapDirection, SwapRequest, TransactionStep, parse_quotes
from swaploop.routing.selection import ensure_router_safety, pick_best_quote


def make_request(amount="1.23456789", decimals=6) -> SwapRequest:
    return SwapRequest(
        direction=SwapDirection.B_TO_A,
        source_token=TOKEN_B,
        dest_token=TOKEN_A,
        source_amount_human=Decimal(amount),
        source_decimals=decimals,
        slippage=Decimal("0.01"),
    )


class TestParseQuotes:
    """Tests for parsing aggregator responses."""

    def test_parses_steps_and_amount(self):
        quotes = parse_quotes([make_quote_payload(1000, with_approval=True)])

        assert len(quotes) == 1
        quote = quotes[0]
        assert quote.dest_token_amount == 1000
        assert quote.approval_step.to == TOKEN_A
        assert quote.trade_step.to == ROUTER
        assert quote.trade_step.value == 0

    def test_hex_value(self):
        step = TransactionStep.from_api({"title": "trade", "txdata": {"to": ROUTER, "value": "0x10"}})
        assert step.value == 16
        assert step.data == "0x"

    def test_non_list_body_yields_nothing(self):
        assert parse_quotes({"error": "rate limited"}) == []
        assert parse_quotes(None) == []

    def test_invalid_entries_skipped(self):
        """Entries without destTokenAmount are dropped, order of the rest kept."""
        payload = [
            make_quote_payload(1),
            {"quote": {}, "trade": []},
            "garbage",
            make_quote_payload(2),
        ]
        quotes = parse_quotes(payload)
        assert [q.dest_token_amount for q in quotes] == [1, 2]

    def test_big_amount_stays_exact(self):
        amount = 10**40 + 1
        quote = Quote.from_api(make_quote_payload(amount))
        assert quote.dest_token_amount == amount

    def test_step_title_case_insensitive(self):
        quote = Quote.from_api(
            {
                "quote": {"destTokenAmount": "5"},
                "trade": [{"title": "Trade", "txdata": {"to": ROUTER, "data": "0x"}}],
            }
        )
        assert quote.trade_step is not None


class TestQuoteSource:
    """Tests for the fetch-quotes client."""

    def test_build_params(self):
        source = QuoteSource("https://quotes.example/")
        params = source.build_params(make_request(), TEST_ADDRESS, CHAIN_ID)

        assert params["walletAddress"] == TEST_ADDRESS
        assert params["destWalletAddress"] == TEST_ADDRESS
        assert params["srcChainId"] == CHAIN_ID
        assert params["destChainId"] == CHAIN_ID
        assert params["srcTokenAddress"] == TOKEN_B
        assert params["destTokenAddress"] == TOKEN_A
        assert params["srcTokenAmount"] == "1234567"
        assert params["insufficientBal"] == "false"
        assert params["resetApproval"] == "false"
        assert params["gasIncluded"] == "true"
        assert params["slippage"] == "0.01"

    @pytest.mark.asyncio
    async def test_fetch_quotes(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json=[make_quote_payload(5), make_quote_payload(9)])

        source = QuoteSource("https://quotes.example", transport=httpx.MockTransport(handler))
        quotes = await source.fetch_quotes(make_request(), TEST_ADDRESS, CHAIN_ID)

        assert seen["path"] == "/fetch-quotes"
        assert seen["params"]["srcTokenAmount"] == "1234567"
        assert [q.dest_token_amount for q in quotes] == [5, 9]

    @pytest.mark.asyncio
    async def test_non_array_body_is_empty(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"message": "no routes"})

        source = QuoteSource("https://quotes.example", transport=httpx.MockTransport(handler))
        assert await source.fetch_quotes(make_request(), TEST_ADDRESS, CHAIN_ID) == []

    @pytest.mark.asyncio
    async def test_http_error_propagates(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502, text="bad gateway")

        source = QuoteSource("https://quotes.example", transport=httpx.MockTransport(handler))
        with pytest.raises(httpx.HTTPStatusError):
            await source.fetch_quotes(make_request(), TEST_ADDRESS, CHAIN_ID)


class TestPickBestQuote:
    """Tests for quote selection."""

    def test_empty(self):
        assert pick_best_quote([]) is None

    def test_largest_wins_regardless_of_order(self):
        low, high = make_quote(100), make_quote(200)
        assert pick_best_quote([low, high]) is high
        assert pick_best_quote([high, low]) is high

    def test_tie_keeps_first(self):
        first, second = make_quote(500), make_quote(500)
        assert pick_best_quote([first, second]) is first
        assert pick_best_quote([make_quote(1), first, second]) is first

    def test_integer_comparison_on_huge_amounts(self):
        """Amounts that collapse to the same float still compare correctly."""
        a = make_quote(10**30)
        b = make_quote(10**30 + 1)
        assert float(a.dest_token_amount) == float(b.dest_token_amount)
        assert pick_best_quote([a, b]) is b


class TestRouterSafety:
    """Tests for ensure_router_safety."""

    def test_accepts_expected_router(self):
        quote = make_quote(1)
        assert ensure_router_safety(quote, ROUTER) is quote.trade_step

    def test_case_only_difference_accepted(self):
        quote = make_quote(1, trade_to=ROUTER.lower())
        assert ensure_router_safety(quote, ROUTER.upper().replace("0X", "0x")) is quote.trade_step

    def test_single_character_difference_rejected(self):
        tampered = ROUTER[:-1] + ("7" if ROUTER[-1] != "7" else "8")
        quote = make_quote(1, trade_to=tampered)

        with pytest.raises(UnsafeRouterError) as exc_info:
            ensure_router_safety(quote, ROUTER)
        assert exc_info.value.actual == tampered

    def test_missing_trade_step(self):
        quote = Quote.from_api(
            {
                "quote": {"destTokenAmount": "1"},
                "trade": [{"title": "approval", "txdata": {"to": TOKEN_A}}],
            }
        )
        with pytest.raises(MissingTradeStepError):
            ensure_router_safety(quote, ROUTER)
