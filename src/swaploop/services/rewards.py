"""Rewards-points API client.

Optional side step around each wallet pass: keep a rewards session per
address, report the current season's points, and estimate the points a
swap would earn. Nothing here gates swap execution.
"""

import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import httpx
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount

from swaploop.errors import RewardsAuthError

logger = logging.getLogger(__name__)

REWARDS_TIMEOUT_SECONDS = 30.0
LOGIN_PATH = "/auth/mobile-login"
OPTIN_PATH = "/auth/mobile-optin"


def caip10(chain_id: int, address: str) -> str:
    """CAIP-10 account id."""
    return f"eip155:{int(chain_id)}:{address}"


def caip19_native(chain_id: int) -> str:
    """CAIP-19 id of the chain's native ETH (slip44:60)."""
    return f"eip155:{int(chain_id)}/slip44:60"


def caip19_erc20(chain_id: int, token: str) -> str:
    """CAIP-19 id of an ERC-20 token."""
    return f"eip155:{int(chain_id)}/erc20:{token}"


@dataclass(frozen=True)
class RewardsSession:
    session_id: str
    subscription_id: Optional[str] = None


class SessionStore:
    """JSON file of rewards sessions keyed by wallet address."""

    def __init__(self, path: str):
        self.path = Path(path)

    def load(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable rewards session file {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, address: str) -> Optional[RewardsSession]:
        entry = self.load().get(address)
        if isinstance(entry, dict) and entry.get("sessionId"):
            return RewardsSession(entry["sessionId"], entry.get("subscriptionId"))
        return None

    def save(self, address: str, session: RewardsSession) -> None:
        data = self.load()
        data[address] = {"sessionId": session.session_id, "subscriptionId": session.subscription_id}
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")


class RewardsClient:
    """Client for the rewards API."""

    def __init__(
        self,
        base_url: str,
        client_id: str,
        sessions_path: str,
        language: Optional[str] = None,
        referral_code: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.client_id = client_id
        self.language = language
        self.referral_code = referral_code
        self.sessions = SessionStore(sessions_path)
        self._transport = transport

    def _headers(self, session_id: Optional[str] = None) -> dict:
        headers = {"Content-Type": "application/json", "rewards-client-id": self.client_id}
        if session_id:
            headers["rewards-access-token"] = session_id
        if self.language:
            headers["Accept-Language"] = self.language
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        session_id: Optional[str] = None,
        json_body: Optional[dict] = None,
        params: Optional[dict] = None,
    ) -> Any:
        url = f"{self.base_url}{path}"
        logger.debug(f"{method} {url}")
        async with httpx.AsyncClient(timeout=REWARDS_TIMEOUT_SECONDS, transport=self._transport) as client:
            response = await client.request(
                method, url, headers=self._headers(session_id), json=json_body, params=params
            )
            response.raise_for_status()
            return response.json()

    @staticmethod
    def sign_auth_message(account: LocalAccount, address: str, timestamp: int) -> str:
        """EIP-191 personal signature over "rewards,{address},{timestamp}"."""
        message = encode_defunct(text=f"rewards,{address},{timestamp}")
        signature = account.sign_message(message).signature
        text = signature.hex()
        return text if text.startswith("0x") else f"0x{text}"

    async def _auth_attempt(self, path: str, account: LocalAccount, address: str, timestamp: int) -> dict:
        """One login/opt-in call.

        A rejected call whose body carries serverTimestamp (clock skew) is
        returned as {"serverTimestamp": ...} so the caller can retry with it.
        """
        body = {
            "account": address,
            "timestamp": timestamp,
            "signature": self.sign_auth_message(account, address, timestamp),
        }
        if path == OPTIN_PATH and self.referral_code:
            body["referralCode"] = self.referral_code

        try:
            data = await self._request("POST", path, json_body=body)
        except httpx.HTTPStatusError as e:
            try:
                error_body = e.response.json()
            except ValueError:
                error_body = {}
            logger.debug(f"Rewards auth error: {e.response.status_code} {error_body}")
            server_ts = error_body.get("serverTimestamp") if isinstance(error_body, dict) else None
            if server_ts:
                return {"serverTimestamp": server_ts}
            raise
        return data if isinstance(data, dict) else {}

    async def _auth_with_skew_retry(self, path: str, account: LocalAccount, address: str) -> dict:
        result = await self._auth_attempt(path, account, address, int(time.time()))
        if result.get("serverTimestamp"):
            server_seconds = int(result["serverTimestamp"]) // 1000
            result = await self._auth_attempt(path, account, address, server_seconds)
        return result

    async def login_or_opt_in(self, account: LocalAccount, address: str) -> dict:
        """Log in, falling back to opt-in for addresses not yet enrolled.

        Raises:
            RewardsAuthError: If neither yields a sessionId
        """
        result = await self._auth_with_skew_retry(LOGIN_PATH, account, address)
        if result.get("sessionId"):
            return result

        result = await self._auth_with_skew_retry(OPTIN_PATH, account, address)
        if result.get("sessionId"):
            return result
        raise RewardsAuthError(f"Rewards auth failed for {address}")

    async def ensure_session(self, account: LocalAccount, address: str) -> RewardsSession:
        """Cached session for the address, logging in when there is none."""
        cached = self.sessions.get(address)
        if cached is not None:
            return cached

        data = await self.login_or_opt_in(account, address)
        subscription = data.get("subscription") or {}
        session = RewardsSession(
            session_id=data["sessionId"],
            subscription_id=subscription.get("id") if isinstance(subscription, dict) else None,
        )
        self.sessions.save(address, session)
        logger.info(f"Rewards session created for {address}")
        return session

    async def get_current_season(self, session_id: str) -> dict:
        return await self._request("GET", "/seasons/current/status", session_id=session_id)

    async def get_points_last_updated(self, session_id: str, season_id: str) -> dict:
        """When the season's points events were last refreshed."""
        return await self._request(
            "GET", f"/seasons/{season_id}/points-events/last-updated", session_id=session_id
        )

    async def get_points_events(
        self, session_id: str, season_id: str, cursor: Optional[str] = None
    ) -> dict:
        params = {"cursor": cursor} if cursor else None
        return await self._request(
            "GET", f"/seasons/{season_id}/points-events", session_id=session_id, params=params
        )

    async def estimate_swap_points(
        self,
        chain_id: int,
        address: str,
        src_asset_id: str,
        dest_asset_id: str,
        fee_asset_id: str,
        src_amount: int,
        dest_amount: int = 0,
        fee_amount: int = 0,
    ) -> dict:
        """Estimate points for a swap. Returns {pointsEstimate, bonusBips}."""
        body = {
            "activityType": "SWAP",
            "account": caip10(chain_id, address),
            "activityContext": {
                "swapContext": {
                    "srcAsset": {"id": src_asset_id, "amount": str(src_amount)},
                    "destAsset": {"id": dest_asset_id, "amount": str(dest_amount)},
                    "feeAsset": {"id": fee_asset_id, "amount": str(fee_amount)},
                }
            },
        }
        logger.debug(f"Rewards estimation payload: {json.dumps(body)}")
        return await self._request("POST", "/points-estimation", json_body=body)


def season_points(season: Any) -> Optional[Any]:
    """Total points from a season status payload, if present."""
    if not isinstance(season, dict):
        return None
    balance = season.get("balance") or {}
    if balance.get("total") is not None:
        return balance["total"]
    return balance.get("points")


def season_name(season: Any) -> str:
    info = season.get("season") if isinstance(season, dict) else None
    if isinstance(info, dict):
        return str(info.get("name") or info.get("id") or "current")
    return "current"


async def submit_proof(
    api_base: str,
    tx_hash: str,
    chain_id: int,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Any:
    """Post a mined swap's hash to the proof endpoint."""
    if not api_base:
        raise ValueError("submit-proof: missing api_base")
    if not tx_hash:
        raise ValueError("submit-proof: missing tx_hash")

    url = f"{api_base.rstrip('/')}/submit-proof"
    async with httpx.AsyncClient(timeout=REWARDS_TIMEOUT_SECONDS, transport=transport) as client:
        response = await client.post(url, json={"txhash": tx_hash, "chainId": int(chain_id)})
        response.raise_for_status()
        return response.json()
