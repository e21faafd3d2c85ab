"""Quote selection and router safety checks."""

import logging
from typing import Optional, Sequence

from swaploop.errors import MissingTradeStepError, UnsafeRouterError
from swaploop.routing.base import Quote, TransactionStep

logger = logging.getLogger(__name__)


def pick_best_quote(quotes: Sequence[Quote]) -> Optional[Quote]:
    """Pick the quote with the highest destination amount.

    Amounts compare as Python ints, so there is no precision loss. The sort
    is stable: on a tie the quote seen first wins.
    """
    if not quotes:
        return None
    ranked = sorted(quotes, key=lambda q: q.dest_token_amount, reverse=True)
    return ranked[0]


def ensure_router_safety(quote: Quote, router_address: str) -> TransactionStep:
    """Check that the quote's trade step targets the expected router.

    Returns:
        The trade step

    Raises:
        MissingTradeStepError: If the quote has no trade step
        UnsafeRouterError: If the trade step targets any other address
    """
    trade = quote.trade_step
    if trade is None:
        raise MissingTradeStepError()

    if (trade.to or "").lower() != router_address.lower():
        logger.error(f"Rejecting quote: trade step targets {trade.to}, expected {router_address}")
        raise UnsafeRouterError(router_address, trade.to)
    return trade
