"""Wallet cycle orchestration.

Each pass over a wallet reads its balances and runs at most two legs:
A -> B with the full A balance, then (after a randomized delay) B -> A with
the refreshed B balance. Wallets are processed strictly one after another.
"""

import asyncio
import logging
import random
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Awaitable, Callable, Optional, Sequence

from eth_account import Account
from eth_account.signers.local import LocalAccount

from swaploop.config import Settings, Wallet
from swaploop.errors import EnvironmentValidationError, WalletKeyMismatchError
from swaploop.routing.base import SwapDirection, SwapRequest
from swaploop.services.rewards import (
    RewardsClient,
    caip19_erc20,
    caip19_native,
    season_name,
    season_points,
    submit_proof,
)
from swaploop.swap.chain import ChainClient
from swaploop.swap.executor import SwapExecutor, SwapResult
from swaploop.utils.amounts import from_units, to_units

logger = logging.getLogger(__name__)


async def validate_environment(chain: ChainClient, settings: Settings) -> None:
    """Check the RPC chain id and that router and tokens are contracts.

    Raises:
        EnvironmentValidationError: On the first check that fails
    """
    chain_id = await chain.get_chain_id()
    if chain_id != settings.chain_id:
        raise EnvironmentValidationError(
            f"Chain mismatch: RPC reports {chain_id}, expected {settings.chain_id}"
        )

    contracts = (
        ("Router", settings.router_address),
        (settings.token_a_symbol, settings.token_a_address),
        (settings.token_b_symbol, settings.token_b_address),
    )
    for name, address in contracts:
        if not await chain.has_code(address):
            raise EnvironmentValidationError(f"{name} {address} has no code on chain {chain_id}")

    logger.info(f"Environment OK: chain {chain_id}, router {settings.router_address}")


@dataclass
class Balances:
    """Balances of one wallet in human units."""

    native: Decimal
    token_a: Decimal
    token_b: Decimal


@dataclass
class CycleState:
    """What happened during one wallet's pass."""

    address: str
    leg_one_executed: bool = False
    balance_b_after_leg_one: Optional[Decimal] = None
    results: list[SwapResult] = field(default_factory=list)


class WalletCycle:
    """Runs the two-leg swap cycle for a list of wallets."""

    def __init__(
        self,
        chain: ChainClient,
        executor: SwapExecutor,
        settings: Settings,
        rewards: Optional[RewardsClient] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.chain = chain
        self.executor = executor
        self.settings = settings
        self.rewards = rewards
        self._sleep = sleep

    async def get_token_balance(self, token: str, decimals: int, owner: str) -> Decimal:
        raw = await self.chain.get_token_balance(token, owner)
        return from_units(raw, decimals)

    async def get_balances(self, address: str) -> Balances:
        """Native, A and B balances, read concurrently."""
        s = self.settings
        native_raw, token_a, token_b = await asyncio.gather(
            self.chain.get_native_balance(address),
            self.get_token_balance(s.token_a_address, s.token_a_decimals, address),
            self.get_token_balance(s.token_b_address, s.token_b_decimals, address),
        )
        return Balances(native=from_units(native_raw, 18), token_a=token_a, token_b=token_b)

    def build_request(self, direction: SwapDirection, amount: Decimal) -> SwapRequest:
        s = self.settings
        if direction is SwapDirection.A_TO_B:
            source, dest, decimals = s.token_a_address, s.token_b_address, s.token_a_decimals
        else:
            source, dest, decimals = s.token_b_address, s.token_a_address, s.token_b_decimals
        return SwapRequest(
            direction=direction,
            source_token=source,
            dest_token=dest,
            source_amount_human=amount,
            source_decimals=decimals,
            slippage=s.slippage,
            reset_approval=s.reset_approval,
            gas_included=s.gas_included,
        )

    def leg_delay_seconds(self) -> int:
        low = self.settings.delay_seconds_min
        high = max(low, self.settings.delay_seconds_max)
        return random.randint(low, high)

    async def _run_leg(self, account: LocalAccount, request: SwapRequest) -> SwapResult:
        source, dest = self._symbols(request.direction)
        logger.info(f"Swapping {request.source_amount_human} {source} -> {dest}")
        if self.rewards is not None:
            await self._estimate_points(account.address, request)

        result = await self.executor.perform_swap(account, request)
        if result.success:
            logger.info(f"Swap {source} -> {dest} mined: {result.tx_hash}")
            if self.settings.proof_api_base:
                await self._submit_proof(result.tx_hash)
        else:
            logger.warning(f"Swap {source} -> {dest} skipped ({result.status})")
        return result

    def _symbols(self, direction: SwapDirection) -> tuple[str, str]:
        a, b = self.settings.token_a_symbol, self.settings.token_b_symbol
        return (a, b) if direction is SwapDirection.A_TO_B else (b, a)

    async def run_wallet(self, wallet: Wallet) -> CycleState:
        """One pass over one wallet.

        Raises:
            WalletKeyMismatchError: If the key does not derive the address
            Exception: Whatever a leg raises
        """
        account: LocalAccount = Account.from_key(wallet.private_key)
        if account.address.lower() != wallet.address.lower():
            raise WalletKeyMismatchError(wallet.address)

        address = account.address
        state = CycleState(address=address)
        s = self.settings

        if self.rewards is not None:
            await self._rewards_status(account)

        balances = await self.get_balances(address)
        logger.info(
            f"{address} balances: native {balances.native}, "
            f"{s.token_a_symbol} {balances.token_a}, {s.token_b_symbol} {balances.token_b}"
        )
        if balances.native < s.gas_min_reserve:
            logger.warning(f"{address} native balance {balances.native} is below {s.gas_min_reserve}")

        if balances.token_a >= s.token_a_min_swap:
            state.leg_one_executed = True
            result = await self._run_leg(
                account, self.build_request(SwapDirection.A_TO_B, balances.token_a)
            )
            state.results.append(result)

            delay = self.leg_delay_seconds()
            logger.info(f"Waiting {delay}s before {s.token_b_symbol} -> {s.token_a_symbol}")
            await self._sleep(delay)

            balance_b = await self.get_token_balance(s.token_b_address, s.token_b_decimals, address)
            state.balance_b_after_leg_one = balance_b
            if balance_b >= s.token_b_min_swap:
                result = await self._run_leg(
                    account, self.build_request(SwapDirection.B_TO_A, balance_b)
                )
                state.results.append(result)
            else:
                logger.info(f"{s.token_b_symbol} balance {balance_b} below minimum, no second leg")

        elif balances.token_b >= s.token_b_min_swap:
            result = await self._run_leg(
                account, self.build_request(SwapDirection.B_TO_A, balances.token_b)
            )
            state.results.append(result)

        else:
            logger.info(f"{address}: nothing to swap this cycle")

        return state

    async def run_cycle(self, wallets: Sequence[Wallet]) -> list[Optional[CycleState]]:
        """Process every wallet once. A failed wallet yields None."""
        states: list[Optional[CycleState]] = []
        for wallet in wallets:
            logger.info(f"=== Wallet {wallet.address} ===")
            try:
                states.append(await self.run_wallet(wallet))
            except Exception as e:
                logger.error(f"Wallet {wallet.address} failed: {e}")
                states.append(None)
        return states

    async def run_forever(self, wallets: Sequence[Wallet]) -> None:
        cycle = 0
        while True:
            cycle += 1
            logger.info(f"Starting cycle {cycle} over {len(wallets)} wallet(s)")
            await self.run_cycle(wallets)
            logger.info(f"Cycle {cycle} done, sleeping {self.settings.cycle_delay_seconds}s")
            await self._sleep(self.settings.cycle_delay_seconds)

    async def _rewards_status(self, account: LocalAccount) -> None:
        try:
            session = await self.rewards.ensure_session(account, account.address)
            season = await self.rewards.get_current_season(session.session_id)
            logger.info(
                f"Rewards {account.address}: season {season_name(season)}, "
                f"points {season_points(season)}"
            )
        except Exception as e:
            logger.warning(f"Rewards status failed for {account.address}: {e}")

    async def _estimate_points(self, address: str, request: SwapRequest) -> None:
        chain_id = self.settings.chain_id
        try:
            estimate = await self.rewards.estimate_swap_points(
                chain_id=chain_id,
                address=address,
                src_asset_id=caip19_erc20(chain_id, request.source_token),
                dest_asset_id=caip19_erc20(chain_id, request.dest_token),
                fee_asset_id=caip19_native(chain_id),
                src_amount=to_units(request.source_amount_human, request.source_decimals),
            )
            logger.info(f"Rewards estimate: {estimate}")
        except Exception as e:
            logger.warning(f"Rewards estimate failed: {e}")

    async def _submit_proof(self, tx_hash: str) -> None:
        try:
            await submit_proof(self.settings.proof_api_base, tx_hash, self.settings.chain_id)
            logger.info(f"Proof submitted for {tx_hash}")
        except Exception as e:
            logger.warning(f"Proof submission failed for {tx_hash}: {e}")
