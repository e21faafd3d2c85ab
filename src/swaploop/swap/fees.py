"""Network fee overrides with an optional gas price cap."""

import logging
from decimal import Decimal
from typing import Optional

from web3 import Web3

from swaploop.swap.chain import ChainClient

logger = logging.getLogger(__name__)


def gwei_to_wei(amount_gwei: Decimal) -> int:
    return int(Web3.to_wei(amount_gwei, "gwei"))


async def build_gas_overrides(chain: ChainClient, max_gas_price_gwei: Optional[Decimal]) -> dict:
    """Compute fee overrides for the next transactions.

    Without a cap, returns {} and the network's default fee calculation
    applies. With a cap, both EIP-1559 fields are clamped to it; if the live
    estimate cannot be fetched, both fields are set to the cap.
    """
    if max_gas_price_gwei is None:
        return {}

    cap = gwei_to_wei(max_gas_price_gwei)
    try:
        fee = await chain.get_fee_data()
    except Exception as e:
        logger.warning(f"Fee estimate failed ({e}); using cap {max_gas_price_gwei} gwei")
        return {"maxFeePerGas": cap, "maxPriorityFeePerGas": cap}

    max_fee = fee.get("maxFeePerGas")
    max_priority = fee.get("maxPriorityFeePerGas")
    max_fee = cap if max_fee is None else min(int(max_fee), cap)
    max_priority = cap if max_priority is None else min(int(max_priority), cap)

    logger.debug(f"Gas overrides: maxFeePerGas={max_fee} maxPriorityFeePerGas={max_priority} (cap {cap})")
    return {"maxFeePerGas": max_fee, "maxPriorityFeePerGas": max_priority}
