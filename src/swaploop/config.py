"""Application configuration using pydantic-settings.

Settings come from the environment (and an optional .env file); the wallet
list comes from a JSON file of {address, privateKey} entries.
"""

import json
from dataclasses import dataclass
from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from swaploop.errors import ConfigurationError

DEFAULT_QUOTE_API_BASE = "https://api-metamask.xto.lol"
DEFAULT_ROUTER_ADDRESS = "0x9dDA6Ef3D919c9bC8885D5560999A3640431e8e6"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        # KEY= in a .env template means "use the default"
        env_ignore_empty=True,
    )

    # ======================
    # Chain
    # ======================
    chain_id: int = Field(..., description="Expected chain id of the RPC endpoint")
    rpc_url: str = Field(..., description="JSON-RPC endpoint URL")

    # ======================
    # Quotes
    # ======================
    quote_api_base: str = Field(
        default=DEFAULT_QUOTE_API_BASE, description="Quote aggregator base URL"
    )
    slippage: Decimal = Field(default=Decimal("0.01"), ge=0, le=1, description="Slippage fraction")
    gas_included: bool = Field(default=True, description="Ask for gas-included quotes")
    reset_approval: bool = Field(default=False, description="Ask for approval reset steps")
    router_address: str = Field(
        default=DEFAULT_ROUTER_ADDRESS, description="Only router a trade step may target"
    )

    # ======================
    # Assets (A = leg one source, B = leg two source)
    # ======================
    token_a_symbol: str = Field(default="WETH")
    token_a_address: str = Field(
        ...,
        validation_alias=AliasChoices("token_a_address", "weth_address"),
        description="Asset A token contract",
    )
    token_a_decimals: int = Field(default=18, ge=0)
    token_a_min_swap: Decimal = Field(
        default=Decimal("0.001"),
        validation_alias=AliasChoices("token_a_min_swap", "eth_min_swap"),
        description="Minimum A balance to swap",
    )

    token_b_symbol: str = Field(default="USDC")
    token_b_address: str = Field(
        ...,
        validation_alias=AliasChoices("token_b_address", "usdc_address"),
        description="Asset B token contract",
    )
    token_b_decimals: int = Field(default=6, ge=0)
    token_b_min_swap: Decimal = Field(
        default=Decimal("1"),
        validation_alias=AliasChoices("token_b_min_swap", "usdc_min_swap"),
        description="Minimum B balance to swap",
    )

    gas_min_reserve: Decimal = Field(
        default=Decimal("0.0002"), description="Native balance below which a warning is logged"
    )

    # ======================
    # Fees & timing
    # ======================
    gas_price_max_gwei: Optional[Decimal] = Field(
        default=None, description="Cap for maxFeePerGas / maxPriorityFeePerGas in gwei"
    )
    delay_seconds_min: int = Field(default=45, ge=0, description="Minimum delay between legs")
    delay_seconds_max: int = Field(default=90, ge=0, description="Maximum delay between legs")
    cycle_delay_seconds: float = Field(default=60, ge=0, description="Delay between cycles")
    max_swap_attempts: int = Field(default=5, ge=1, description="Attempts per leg")
    confirmations: int = Field(default=2, ge=1, description="Confirmations for direct submission")

    # ======================
    # Relay (smart transactions)
    # ======================
    tx_submit_base: Optional[str] = Field(
        default=None, description="Relay API base; direct broadcast when unset"
    )
    stx_controller_version: str = Field(default="1", description="Relay controller version")
    relay_poll_interval: float = Field(default=1.5, gt=0)
    relay_single_timeout: float = Field(default=120, gt=0)
    relay_batch_timeout: float = Field(default=180, gt=0)
    batch_fallback_gas_limit: int = Field(default=900_000, gt=0)

    # ======================
    # Rewards (optional)
    # ======================
    rewards_api_url: Optional[str] = Field(default=None, description="Rewards API base URL")
    rewards_client_id: str = Field(default="mobile-7.50.0", description="rewards-client-id header")
    rewards_language: str = Field(default="en-US")
    rewards_referral_code: Optional[str] = Field(default=None)
    rewards_sessions_path: str = Field(default="data/rewards_sessions.json")
    proof_api_base: Optional[str] = Field(default=None, description="submit-proof API base")

    # ======================
    # Runtime
    # ======================
    wallets_path: str = Field(default="wallets.json")
    debug: bool = Field(default=False, description="Enable debug logging")

    @field_validator(
        "tx_submit_base", "rewards_api_url", "proof_api_base", "gas_price_max_gwei", mode="before"
    )
    @classmethod
    def _blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("router_address", mode="before")
    @classmethod
    def _default_router(cls, value):
        if value is None or (isinstance(value, str) and not value.strip()):
            return DEFAULT_ROUTER_ADDRESS
        return value.strip()

    @property
    def use_relay(self) -> bool:
        """Check if transactions go through the relay."""
        return bool(self.tx_submit_base)

    @property
    def rewards_enabled(self) -> bool:
        """Check if the rewards side step is configured."""
        return bool(self.rewards_api_url)

    def get_safe_dict(self) -> dict:
        """Return settings dict for the startup log (no secrets live here)."""
        return {
            "chain_id": self.chain_id,
            "rpc_url": self.rpc_url,
            "slippage": str(self.slippage),
            "gas_included": self.gas_included,
            "reset_approval": self.reset_approval,
            "router_address": self.router_address,
            "token_a": f"{self.token_a_symbol} {self.token_a_address} (min {self.token_a_min_swap})",
            "token_b": f"{self.token_b_symbol} {self.token_b_address} (min {self.token_b_min_swap})",
            "gas_price_max_gwei": str(self.gas_price_max_gwei) if self.gas_price_max_gwei else "(none)",
            "delay_seconds": f"{self.delay_seconds_min}-{self.delay_seconds_max}",
            "relay": self.tx_submit_base or "(direct broadcast)",
            "stx_controller_version": self.stx_controller_version,
            "rewards": self.rewards_api_url or "(disabled)",
            "debug": self.debug,
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


@dataclass(frozen=True)
class Wallet:
    """A wallet the loop swaps for."""

    address: str
    private_key: str

    def __repr__(self) -> str:
        return f"Wallet(address={self.address!r})"


def load_wallets(path: str) -> list[Wallet]:
    """Load wallets from a JSON array of {address, privateKey} objects."""
    wallet_file = Path(path)
    if not wallet_file.exists():
        raise ConfigurationError(f"{path} not found")

    try:
        data = json.loads(wallet_file.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"{path} is not valid JSON: {e}") from e

    if not isinstance(data, list):
        raise ConfigurationError(f"{path} must be an array")

    wallets = []
    for index, entry in enumerate(data):
        if not isinstance(entry, dict) or not entry.get("address") or not entry.get("privateKey"):
            raise ConfigurationError(f"{path}[{index}] needs address and privateKey")
        wallets.append(Wallet(address=str(entry["address"]), private_key=str(entry["privateKey"])))
    return wallets
