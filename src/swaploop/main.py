"""Main entry point - validates the environment and runs the swap loop."""

import argparse
import asyncio
import logging
import signal
import sys
from typing import Optional, Sequence

import aiohttp
from pydantic import ValidationError
from web3.exceptions import Web3Exception

from swaploop.config import Settings, get_settings, load_wallets
from swaploop.errors import ConfigurationError, EnvironmentValidationError
from swaploop.routing.aggregator import QuoteSource
from swaploop.services.cycle import WalletCycle, validate_environment
from swaploop.services.rewards import RewardsClient
from swaploop.swap.chain import ChainClient
from swaploop.swap.executor import SwapExecutor
from swaploop.swap.relay import RelayClient, RelaySubmitter
from swaploop.swap.submitters import DirectSubmitter

# Errors an unreachable or misbehaving RPC endpoint raises during startup checks
RPC_STARTUP_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, OSError, Web3Exception)

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="swaploop", description="Recurring two-leg token swaps")
    parser.add_argument("--env-file", default=None, help="Load settings from this .env file")
    parser.add_argument("--wallets", default=None, help="Wallet JSON file (overrides WALLETS_PATH)")
    parser.add_argument("--once", action="store_true", help="Run a single cycle and exit")
    return parser.parse_args(argv)


def configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    # web3 and httpx are chatty at DEBUG
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("web3").setLevel(logging.INFO)


def build_cycle(settings: Settings, chain: ChainClient) -> WalletCycle:
    """Wire the swap engine from settings."""
    quote_source = QuoteSource(settings.quote_api_base)

    relay = None
    if settings.use_relay:
        relay = RelaySubmitter(
            RelayClient(
                settings.tx_submit_base,
                settings.chain_id,
                settings.stx_controller_version,
                debug=settings.debug,
            ),
            poll_interval=settings.relay_poll_interval,
            single_timeout=settings.relay_single_timeout,
            batch_timeout=settings.relay_batch_timeout,
        )

    executor = SwapExecutor(
        chain=chain,
        quote_source=quote_source,
        chain_id=settings.chain_id,
        router_address=settings.router_address,
        max_gas_price_gwei=settings.gas_price_max_gwei,
        relay=relay,
        direct=DirectSubmitter(chain, confirmations=settings.confirmations),
        max_attempts=settings.max_swap_attempts,
        batch_fallback_gas_limit=settings.batch_fallback_gas_limit,
        debug=settings.debug,
    )

    rewards = None
    if settings.rewards_enabled:
        rewards = RewardsClient(
            settings.rewards_api_url,
            client_id=settings.rewards_client_id,
            sessions_path=settings.rewards_sessions_path,
            language=settings.rewards_language,
            referral_code=settings.rewards_referral_code,
        )

    return WalletCycle(chain, executor, settings, rewards=rewards)


class Application:
    """Swap loop process: startup checks, then cycles until shutdown."""

    def __init__(self, settings: Settings, wallets_path: Optional[str] = None, once: bool = False):
        self.settings = settings
        self.wallets_path = wallets_path or settings.wallets_path
        self.once = once
        self._shutdown_event = asyncio.Event()

    async def start(self) -> int:
        """Run until shutdown, a finished single cycle, or a startup failure."""
        logger.info("Starting swaploop...")
        for key, value in self.settings.get_safe_dict().items():
            logger.info(f"  {key}: {value}")

        chain = ChainClient(self.settings.rpc_url)
        try:
            await validate_environment(chain, self.settings)
            wallets = load_wallets(self.wallets_path)
        except (EnvironmentValidationError, ConfigurationError) as e:
            logger.error(f"Startup failed: {e}")
            return 1
        except RPC_STARTUP_ERRORS as e:
            logger.error(f"Startup failed: RPC {self.settings.rpc_url} unreachable: {e}")
            return 1

        logger.info(f"Loaded {len(wallets)} wallet(s) from {self.wallets_path}")
        cycle = build_cycle(self.settings, chain)

        if self.once:
            runner = asyncio.create_task(cycle.run_cycle(wallets))
        else:
            runner = asyncio.create_task(cycle.run_forever(wallets))
        waiter = asyncio.create_task(self._shutdown_event.wait())

        done, _ = await asyncio.wait({runner, waiter}, return_when=asyncio.FIRST_COMPLETED)
        for task in (runner, waiter):
            if task not in done:
                task.cancel()
        await asyncio.gather(runner, waiter, return_exceptions=True)

        if runner in done and runner.exception() is not None:
            logger.error(f"Swap loop crashed: {runner.exception()}")
            return 1
        logger.info("Stopped")
        return 0

    def shutdown(self):
        """Signal shutdown."""
        logger.info("Shutdown requested")
        self._shutdown_event.set()


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    try:
        settings = Settings(_env_file=args.env_file) if args.env_file else get_settings()
    except ValidationError as e:
        logging.basicConfig(level=logging.INFO)
        logger.error(f"Invalid configuration: {e}")
        return 1

    configure_logging(settings.debug)
    app = Application(settings, wallets_path=args.wallets, once=args.once)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, app.shutdown)

    try:
        return loop.run_until_complete(app.start())
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
        return 130
    finally:
        loop.close()


if __name__ == "__main__":
    sys.exit(main())
