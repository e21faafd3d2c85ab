"""Quote aggregator client.

Fetches candidate quotes for a leg from the aggregator's fetch-quotes
endpoint. Ordering is whatever the aggregator returns; selection happens
in swaploop.routing.selection.
"""

import logging
from typing import Optional

import httpx

from swaploop.routing.base import Quote, SwapRequest, parse_quotes
from swaploop.utils.amounts import to_units

logger = logging.getLogger(__name__)

QUOTE_TIMEOUT_SECONDS = 60.0


def _flag(value: bool) -> str:
    return "true" if value else "false"


class QuoteSource:
    """Client for the aggregator's /fetch-quotes endpoint."""

    def __init__(
        self,
        api_base: str,
        timeout: float = QUOTE_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the quote source.

        Args:
            api_base: Aggregator base URL
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def build_params(
        self,
        request: SwapRequest,
        wallet_address: str,
        chain_id: int,
        dest_chain_id: Optional[int] = None,
        insufficient_balance: bool = False,
    ) -> dict:
        """Build the fetch-quotes query parameters for a leg."""
        return {
            "walletAddress": wallet_address,
            "destWalletAddress": wallet_address,
            "srcChainId": chain_id,
            "destChainId": dest_chain_id if dest_chain_id is not None else chain_id,
            "srcTokenAddress": request.source_token,
            "destTokenAddress": request.dest_token,
            "srcTokenAmount": str(to_units(request.source_amount_human, request.source_decimals)),
            "insufficientBal": _flag(insufficient_balance),
            "resetApproval": _flag(request.reset_approval),
            "gasIncluded": _flag(request.gas_included),
            "slippage": str(request.slippage),
        }

    async def fetch_quotes(
        self,
        request: SwapRequest,
        wallet_address: str,
        chain_id: int,
        dest_chain_id: Optional[int] = None,
    ) -> list[Quote]:
        """Fetch quotes for a leg.

        Returns:
            Quotes in aggregator order; empty when the body is not a list

        Raises:
            httpx.HTTPError: On transport errors, timeouts and non-2xx statuses
        """
        params = self.build_params(request, wallet_address, chain_id, dest_chain_id)
        url = f"{self.api_base}/fetch-quotes"
        logger.debug(f"GET {url} srcTokenAmount={params['srcTokenAmount']}")

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.get(url, params=params)
            response.raise_for_status()
            try:
                payload = response.json()
            except ValueError:
                logger.warning(f"Aggregator returned a non-JSON body ({len(response.content)} bytes)")
                return []

        quotes = parse_quotes(payload)
        logger.debug(f"Aggregator returned {len(quotes)} quote(s)")
        return quotes
