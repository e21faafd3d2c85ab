"""Relayed batch submission ("smart transactions").

Signed raw transactions are posted to the relay in one request. The relay
answers with a tracking id (uuid) and reports settlement asynchronously on
its batchStatus endpoint, which is polled until settled or a deadline.

A batch has a single outcome per tracking id. A batch that settles with
anything other than a mined success, including a partial success across
several transactions, is a settlement failure.
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from swaploop.errors import (
    RelaySubmissionError,
    SettlementFailureError,
    SettlementTimeoutError,
)
from swaploop.swap.builder import SignedTransaction

logger = logging.getLogger(__name__)

SUBMIT_TIMEOUT_SECONDS = 60.0
STATUS_TIMEOUT_SECONDS = 30.0
POLL_INTERVAL_SECONDS = 1.5
SINGLE_SETTLE_TIMEOUT_SECONDS = 120.0
BATCH_SETTLE_TIMEOUT_SECONDS = 180.0
MINED_SUCCESS = "success"


class BatchStatusEntry(BaseModel):
    """Relay status for one tracking id."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    is_settled: bool = Field(default=False, alias="isSettled")
    mined_tx: Optional[str] = Field(default=None, alias="minedTx")
    mined_hash: Optional[str] = Field(default=None, alias="minedHash")
    would_revert_message: Optional[str] = Field(default=None, alias="wouldRevertMessage")
    cancellation_reason: Optional[str] = Field(default=None, alias="cancellationReason")

    @property
    def succeeded(self) -> bool:
        return self.is_settled and self.mined_tx == MINED_SUCCESS and bool(self.mined_hash)

    @property
    def failure_reason(self) -> str:
        return self.would_revert_message or self.cancellation_reason or "failed"


class SettlementOutcome(str, Enum):
    """Terminal state of a relayed submission."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass
class BatchSubmission:
    """One relayed submission, from submit until resolution. Never retried."""

    tracking_id: str
    raw_transactions: list[str]
    settled: bool = False
    outcome: SettlementOutcome = SettlementOutcome.PENDING
    mined_hash: Optional[str] = None
    reason: Optional[str] = None
    polls: int = field(default=0, repr=False)

    def resolve(self, entry: BatchStatusEntry) -> None:
        """Record a settled status entry."""
        self.settled = True
        if entry.succeeded:
            self.outcome = SettlementOutcome.SUCCESS
            self.mined_hash = entry.mined_hash
        else:
            self.outcome = SettlementOutcome.FAILURE
            self.reason = entry.failure_reason


class RelayClient:
    """HTTP client for the relay's submit and status endpoints."""

    def __init__(
        self,
        api_base: str,
        chain_id: int,
        controller_version: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        debug: bool = False,
    ):
        self.api_base = api_base.rstrip("/")
        self.chain_id = chain_id
        self.controller_version = controller_version
        self.debug = debug
        self._transport = transport

    @property
    def submit_url(self) -> str:
        return f"{self.api_base}/networks/{self.chain_id}/submitTransactions"

    @property
    def status_url(self) -> str:
        return f"{self.api_base}/networks/{self.chain_id}/batchStatus"

    async def submit_transactions(self, raw_txs: Sequence[str]) -> str:
        """Submit signed raw transactions and return the tracking id.

        Raises:
            httpx.HTTPError: On transport errors and non-2xx statuses
            RelaySubmissionError: If the response carries no uuid
        """
        payload = {"rawTxs": list(raw_txs), "rawCancelTxs": []}
        params = {"stxControllerVersion": self.controller_version}
        logger.debug(
            f"POST {self.submit_url}?stxControllerVersion={self.controller_version} rawTxs={len(raw_txs)}"
        )
        if self.debug:
            logger.debug(f"Submit payload: {json.dumps(payload)}")

        async with httpx.AsyncClient(timeout=SUBMIT_TIMEOUT_SECONDS, transport=self._transport) as client:
            response = await client.post(self.submit_url, params=params, json=payload)
            if response.is_error:
                logger.debug(f"Submit error status={response.status_code} body={response.text}")
            response.raise_for_status()
            try:
                data = response.json()
            except ValueError:
                data = None

        logger.debug(f"Submit response: {data}")
        uuid = data.get("uuid") if isinstance(data, dict) else None
        if not uuid:
            raise RelaySubmissionError("Relay submit: missing uuid")
        return str(uuid)

    async def get_batch_status(self, tracking_id: str) -> Optional[BatchStatusEntry]:
        """Fetch the status entry for a tracking id, None if not reported yet."""
        async with httpx.AsyncClient(timeout=STATUS_TIMEOUT_SECONDS, transport=self._transport) as client:
            response = await client.get(self.status_url, params={"uuids": tracking_id})
            response.raise_for_status()
            data = response.json()

        entry = data.get(tracking_id) if isinstance(data, dict) else None
        if not isinstance(entry, dict):
            return None
        try:
            return BatchStatusEntry.model_validate(entry)
        except ValidationError as e:
            logger.warning(f"Ignoring malformed status for {tracking_id}: {e}")
            return None


class RelaySubmitter:
    """Submits through the relay and polls until settlement."""

    def __init__(
        self,
        client: RelayClient,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        single_timeout: float = SINGLE_SETTLE_TIMEOUT_SECONDS,
        batch_timeout: float = BATCH_SETTLE_TIMEOUT_SECONDS,
    ):
        self.client = client
        self.poll_interval = poll_interval
        self.single_timeout = single_timeout
        self.batch_timeout = batch_timeout

    async def poll_until_settled(self, submission: BatchSubmission, timeout: float) -> BatchSubmission:
        """Poll the status endpoint until the submission settles.

        Raises:
            SettlementTimeoutError: If nothing settles before the deadline.
                The relay may still settle it later.
        """
        deadline = time.monotonic() + timeout

        while time.monotonic() < deadline:
            entry = await self.client.get_batch_status(submission.tracking_id)
            submission.polls += 1
            if entry is not None:
                logger.debug(
                    f"Poll #{submission.polls}: isSettled={entry.is_settled} "
                    f"minedTx={entry.mined_tx} minedHash={entry.mined_hash or ''}"
                )
                if entry.is_settled:
                    submission.resolve(entry)
                    return submission
            await asyncio.sleep(self.poll_interval)

        raise SettlementTimeoutError(submission.tracking_id, timeout)

    async def _submit(self, signed_txs: Sequence[SignedTransaction], timeout: float) -> str:
        raws = [tx.raw for tx in signed_txs]
        tracking_id = await self.client.submit_transactions(raws)
        logger.info(f"Relay accepted {len(raws)} tx(s), uuid {tracking_id}")

        submission = BatchSubmission(tracking_id=tracking_id, raw_transactions=raws)
        await self.poll_until_settled(submission, timeout)

        if submission.outcome is not SettlementOutcome.SUCCESS:
            raise SettlementFailureError(tracking_id, submission.reason or "failed")

        logger.info(f"Relay batch {tracking_id} mined: {submission.mined_hash}")
        return submission.mined_hash

    async def submit_single(self, signed: SignedTransaction) -> str:
        """Submit one transaction; returns the mined hash."""
        return await self._submit([signed], self.single_timeout)

    async def submit_batch(self, signed_txs: Sequence[SignedTransaction]) -> str:
        """Submit several transactions in one request; returns the mined hash."""
        if not signed_txs:
            raise ValueError("signed_txs is empty")
        return await self._submit(signed_txs, self.batch_timeout)
