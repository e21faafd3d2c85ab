"""Error taxonomy for the swap loop.

Validation errors are fatal at startup (or for one wallet). Safety errors
abort the current leg and are never retried. Settlement errors end the
current relay attempt.
"""

from typing import Optional


class SwapLoopError(Exception):
    """Base class for all swap loop errors."""

    pass


class ConfigurationError(SwapLoopError):
    """Raised when settings or the wallet file are unusable."""

    pass


class EnvironmentValidationError(SwapLoopError):
    """Raised when the chain, router or token contracts do not check out."""

    pass


class WalletKeyMismatchError(SwapLoopError):
    """Raised when a private key does not derive the wallet's address."""

    def __init__(self, address: str):
        self.address = address
        super().__init__(f"Private key does not match address for {address}")


class MissingTradeStepError(SwapLoopError):
    """Raised when a quote carries no step titled "trade"."""

    def __init__(self):
        super().__init__("Quote has no trade step")


class UnsafeRouterError(SwapLoopError):
    """Raised when a quote's trade step targets an unexpected contract."""

    def __init__(self, expected: str, actual: Optional[str]):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Unsafe router: expected {expected}, got {actual}")


class TransactionRevertedError(SwapLoopError):
    """Raised when a broadcast transaction is mined with status 0."""

    def __init__(self, tx_hash: str, block_number: Optional[int] = None):
        self.tx_hash = tx_hash
        self.block_number = block_number
        super().__init__(
            f"transaction execution reverted (tx {tx_hash}, block {block_number})"
        )


class RelaySubmissionError(SwapLoopError):
    """Raised when the relay accepts a submission without a tracking id."""

    pass


class SettlementFailureError(SwapLoopError):
    """Raised when a relayed batch settles with anything but success."""

    def __init__(self, tracking_id: str, reason: str):
        self.tracking_id = tracking_id
        self.reason = reason
        super().__init__(f"Relay batch {tracking_id} failed: {reason}")


class SettlementTimeoutError(SwapLoopError):
    """Raised when a relayed batch does not settle before the deadline."""

    def __init__(self, tracking_id: str, timeout: float):
        self.tracking_id = tracking_id
        self.timeout = timeout
        super().__init__(f"Relay batch {tracking_id} did not settle within {timeout:.0f}s")


class RewardsAuthError(SwapLoopError):
    """Raised when neither rewards login nor opt-in yields a session."""

    pass
