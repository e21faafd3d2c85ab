"""Wallet cycle orchestration and the rewards side step."""

from swaploop.services.cycle import CycleState, WalletCycle, validate_environment
from swaploop.services.rewards import RewardsClient, submit_proof

__all__ = [
    "CycleState",
    "RewardsClient",
    "WalletCycle",
    "submit_proof",
    "validate_environment",
]
