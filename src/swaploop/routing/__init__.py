"""Quote acquisition, selection and router validation."""

from swaploop.routing.aggregator import QuoteSource
from swaploop.routing.base import (
    Quote,
    SwapDirection,
    SwapRequest,
    TransactionStep,
    parse_quotes,
)
from swaploop.routing.selection import ensure_router_safety, pick_best_quote

__all__ = [
    "Quote",
    "QuoteSource",
    "SwapDirection",
    "SwapRequest",
    "TransactionStep",
    "ensure_router_safety",
    "parse_quotes",
    "pick_best_quote",
]
