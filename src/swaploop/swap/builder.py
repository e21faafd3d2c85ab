"""Transaction construction and signing.

Every submission attempt builds its transactions from scratch: a previous
attempt may already have consumed the nonce it was built with, and fee
fields go stale.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from eth_account.signers.local import LocalAccount

from swaploop.swap.chain import ChainClient, hex_string

logger = logging.getLogger(__name__)

GAS_BUFFER_NUMERATOR = 120
GAS_BUFFER_DENOMINATOR = 100
EIP1559_TX_TYPE = 2


@dataclass(frozen=True)
class SignedTransaction:
    """A signed raw transaction plus the fields it was populated with."""

    raw: str
    tx_hash: str
    populated: dict = field(default_factory=dict)

    @property
    def nonce(self) -> int:
        return self.populated["nonce"]


def apply_gas_buffer(gas: int) -> int:
    """Add the fixed +20% safety margin to a gas limit."""
    return (int(gas) * GAS_BUFFER_NUMERATOR) // GAS_BUFFER_DENOMINATOR


class TransactionBuilder:
    """Estimates, populates and signs transactions for one account."""

    def __init__(self, chain: ChainClient, account: LocalAccount, debug: bool = False):
        self.chain = chain
        self.account = account
        self.debug = debug

    @property
    def address(self) -> str:
        return self.account.address

    async def _resolve_gas_limit(self, base_tx: dict, fallback_gas_limit: Optional[int]) -> int:
        try:
            estimated = await self.chain.estimate_gas({"from": self.address, **base_tx})
        except Exception as e:
            if not fallback_gas_limit:
                raise
            logger.warning(
                f"estimate_gas failed ({e}); using fallback gas limit {fallback_gas_limit}"
            )
            estimated = fallback_gas_limit
        return apply_gas_buffer(estimated)

    async def _resolve_fees(self, gas_overrides: Optional[dict]) -> dict:
        fees = dict(gas_overrides or {})
        if "maxFeePerGas" in fees and "maxPriorityFeePerGas" in fees:
            return fees

        live = await self.chain.get_fee_data()
        if live.get("maxFeePerGas") is None or live.get("maxPriorityFeePerGas") is None:
            gas_price = await self.chain.get_gas_price()
            live = {
                "maxFeePerGas": live.get("maxFeePerGas") or gas_price,
                "maxPriorityFeePerGas": live.get("maxPriorityFeePerGas") or gas_price,
            }
        return {**live, **fees}

    async def build(
        self,
        base_request: dict,
        gas_overrides: Optional[dict] = None,
        fallback_gas_limit: Optional[int] = None,
        nonce: Optional[int] = None,
    ) -> SignedTransaction:
        """Build and sign a transaction.

        Args:
            base_request: {to, data, value} from a quote step
            gas_overrides: Fee fields from the fee policy (may be empty)
            fallback_gas_limit: Gas limit to use when estimation fails
            nonce: Explicit nonce (consecutive transactions of one batch)

        Returns:
            SignedTransaction with raw bytes and populated fields

        Raises:
            Exception: The estimation error when no fallback gas limit is given
        """
        base_tx = {
            "to": self.chain.to_checksum_address(base_request["to"]),
            "data": base_request.get("data") or "0x",
            "value": int(base_request.get("value") or 0),
        }

        gas_limit = await self._resolve_gas_limit(base_tx, fallback_gas_limit)
        if nonce is None:
            nonce = await self.chain.get_nonce(self.address)
        chain_id = await self.chain.get_chain_id()
        fees = await self._resolve_fees(gas_overrides)

        populated = {
            **base_tx,
            "gas": gas_limit,
            "nonce": nonce,
            "chainId": chain_id,
            "type": EIP1559_TX_TYPE,
            "maxFeePerGas": int(fees["maxFeePerGas"]),
            "maxPriorityFeePerGas": int(fees["maxPriorityFeePerGas"]),
        }

        if self.debug:
            logger.debug(
                f"Tx build: to={populated['to']} valueWei={populated['value']} "
                f"dataLen={len(populated['data'])} gasLimit={gas_limit}"
            )
            logger.debug(
                f"Tx fees: maxFeePerGas={populated['maxFeePerGas']} "
                f"maxPriorityFeePerGas={populated['maxPriorityFeePerGas']} nonce={nonce}"
            )

        signed = self.account.sign_transaction(populated)
        # eth-account >= 0.13 uses raw_transaction, older versions rawTransaction
        raw_tx = getattr(signed, "raw_transaction", None) or signed.rawTransaction
        return SignedTransaction(raw=hex_string(raw_tx), tx_hash=hex_string(signed.hash), populated=populated)
