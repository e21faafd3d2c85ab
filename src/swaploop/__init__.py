"""swaploop - recurring two-leg token swaps for EVM wallets."""

__version__ = "0.1.0"
