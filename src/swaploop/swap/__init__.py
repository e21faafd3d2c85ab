"""Swap execution: building, signing and submitting transactions.

Provides:
- SwapExecutor: one leg with retries
- TransactionBuilder: estimate, populate and sign
- DirectSubmitter / RelaySubmitter: the two submission paths
"""

from swaploop.swap.builder import SignedTransaction, TransactionBuilder
from swaploop.swap.chain import ChainClient
from swaploop.swap.executor import SwapExecutor, SwapResult
from swaploop.swap.fees import build_gas_overrides
from swaploop.swap.relay import BatchSubmission, RelayClient, RelaySubmitter
from swaploop.swap.retry import RETRIABLE_ERROR_FRAGMENTS, is_retriable_swap_error
from swaploop.swap.submitters import DirectSubmitter

__all__ = [
    "BatchSubmission",
    "ChainClient",
    "DirectSubmitter",
    "RETRIABLE_ERROR_FRAGMENTS",
    "RelayClient",
    "RelaySubmitter",
    "SignedTransaction",
    "SwapExecutor",
    "SwapResult",
    "TransactionBuilder",
    "build_gas_overrides",
    "is_retriable_swap_error",
]
