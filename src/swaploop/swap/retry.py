"""Retry classification for swap attempts.

Retriable errors are recognised by message fragments. The aggregator and
the RPC node report stale-quote reverts only as free text, so the set below
is the whole contract: extend it here when a provider changes its wording.
"""

import random

from swaploop.errors import MissingTradeStepError, UnsafeRouterError

MAX_SWAP_ATTEMPTS = 5
RETRY_DELAY_MIN_SECONDS = 2
RETRY_DELAY_MAX_SECONDS = 5

RETRIABLE_ERROR_FRAGMENTS = (
    # Router output fell below the quote's minimum (price moved)
    "return amount is not enough",
    # Gas estimation failed, usually because the call would revert
    "cannot estimate gas",
    "always failing transaction",
    # Generic revert from estimation, simulation or a mined status-0 tx
    "execution reverted",
)

NEVER_RETRY = (UnsafeRouterError, MissingTradeStepError)


def error_message(exc: BaseException) -> str:
    """Best human-readable message for an exception, lower-cased."""
    for attr in ("reason", "message"):
        value = getattr(exc, attr, None)
        if isinstance(value, str) and value:
            return f"{value} {exc}".lower()
    return str(exc).lower()


def is_retriable_swap_error(exc: BaseException) -> bool:
    """Check whether a failed attempt should be retried with a fresh quote."""
    if isinstance(exc, NEVER_RETRY):
        return False
    message = error_message(exc)
    if not message:
        return False
    return any(fragment in message for fragment in RETRIABLE_ERROR_FRAGMENTS)


def retry_delay_seconds() -> int:
    """Jittered wait before the next attempt."""
    return random.randint(RETRY_DELAY_MIN_SECONDS, RETRY_DELAY_MAX_SECONDS)
