"""Swap request and quote types.

Quotes arrive from the aggregator as loosely shaped JSON. They are parsed
into pydantic models here so the rest of the engine only sees validated,
typed data.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

STEP_APPROVAL = "approval"
STEP_TRADE = "trade"


class SwapDirection(str, Enum):
    """Direction of a leg between asset A and asset B."""

    A_TO_B = "A_TO_B"
    B_TO_A = "B_TO_A"


@dataclass(frozen=True)
class SwapRequest:
    """Everything needed to quote one leg. Immutable across attempts."""

    direction: SwapDirection
    source_token: str
    dest_token: str
    source_amount_human: Decimal
    source_decimals: int
    slippage: Decimal
    reset_approval: bool = False
    gas_included: bool = True


def _parse_int(value: Any) -> int:
    """Parse an integer that may arrive as int, decimal string or hex string."""
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        raise ValueError("boolean is not an amount")
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if text.lower().startswith("0x"):
        return int(text, 16)
    return int(text)


class TransactionStep(BaseModel):
    """One on-chain transaction inside a quote (approval or trade)."""

    model_config = ConfigDict(frozen=True)

    title: str = Field(default="", description="Step role as sent upstream")
    to: str = Field(..., min_length=1, description="Target contract")
    data: str = Field(default="0x", description="Call data")
    value: int = Field(default=0, ge=0, description="Value in wei")

    @field_validator("value", mode="before")
    @classmethod
    def _value_to_int(cls, value):
        return _parse_int(value)

    @field_validator("data", mode="before")
    @classmethod
    def _default_data(cls, value):
        return value or "0x"

    @property
    def kind(self) -> str:
        """Lower-cased step title (approval / trade)."""
        return (self.title or "").lower()

    def to_request(self) -> dict:
        """Base transaction request for gas estimation and signing."""
        return {"to": self.to, "data": self.data, "value": self.value}

    @classmethod
    def from_api(cls, payload: dict) -> "TransactionStep":
        """Build a step from the upstream {title, txdata:{to,data,value}} shape."""
        txdata = payload.get("txdata") or {}
        return cls(
            title=payload.get("title") or "",
            to=txdata.get("to") or "",
            data=txdata.get("data"),
            value=txdata.get("value"),
        )


class Quote(BaseModel):
    """A quote from the aggregator: output amount plus the steps to execute it."""

    model_config = ConfigDict(frozen=True)

    dest_token_amount: int = Field(..., ge=0, description="Output in destination smallest units")
    steps: tuple[TransactionStep, ...] = Field(default_factory=tuple)

    @field_validator("dest_token_amount", mode="before")
    @classmethod
    def _amount_to_int(cls, value):
        if value is None or value == "":
            raise ValueError("destTokenAmount is required")
        return _parse_int(value)

    def find_step(self, kind: str) -> Optional[TransactionStep]:
        """First step whose title matches `kind` (case-insensitive)."""
        kind = kind.lower()
        for step in self.steps:
            if step.kind == kind:
                return step
        return None

    @property
    def approval_step(self) -> Optional[TransactionStep]:
        return self.find_step(STEP_APPROVAL)

    @property
    def trade_step(self) -> Optional[TransactionStep]:
        return self.find_step(STEP_TRADE)

    @classmethod
    def from_api(cls, payload: dict) -> "Quote":
        """Build a quote from the upstream {quote:{destTokenAmount}, trade:[...]} shape."""
        quote_info = payload.get("quote") or {}
        raw_steps = payload.get("trade") or []
        if not isinstance(raw_steps, list):
            raise ValueError("trade must be a list")
        return cls(
            dest_token_amount=quote_info.get("destTokenAmount"),
            steps=tuple(TransactionStep.from_api(step) for step in raw_steps if isinstance(step, dict)),
        )


def parse_quotes(payload: Any) -> list[Quote]:
    """Parse an aggregator response body into quotes, preserving order.

    A body that is not a list yields no quotes. Entries that fail validation
    are skipped with a warning.
    """
    if not isinstance(payload, list):
        return []

    quotes = []
    for index, entry in enumerate(payload):
        if not isinstance(entry, dict):
            logger.warning(f"Skipping quote #{index}: not an object")
            continue
        try:
            quotes.append(Quote.from_api(entry))
        except (ValidationError, ValueError) as e:
            logger.warning(f"Skipping quote #{index}: {e}")
    return quotes
