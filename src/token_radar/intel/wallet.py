"""Wallet population intelligence.

Buyers of a token are classified as "old" (long-lived or busy wallets) and
heuristically "profitable". The aggregate adjusts risk and confidence only;
it never decides whether a candidate qualifies.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import aiohttp

from ..core.enums import Chain, SignalConfidence
from ..core.errors import UpstreamUnavailable
from ..core.models import WalletClassification, WalletIntelligence
from ..core.policy import Policy
from ..core.throttle import RequestPacer, TimedCache

logger = logging.getLogger(__name__)

EXPLORER_APIS = {
    Chain.ETHEREUM: "https://api.etherscan.io/api",
    Chain.BASE: "https://api.basescan.org/api",
    Chain.BSC: "https://api.bscscan.com/api",
}

DEFAULT_SOLANA_RPC = "https://api.mainnet-beta.solana.com"
SAMPLE_LIMIT = 100
PROFITABLE_MIN_EVM_TXNS = 20
PROFITABLE_MIN_SOLANA_SIGNATURES = 50
BOT_HEAVY_MIN_BUYERS = 50


def _epoch(value: Any) -> Optional[datetime]:
    try:
        seconds = int(value)
    except (TypeError, ValueError):
        return None
    return datetime.fromtimestamp(seconds, tz=timezone.utc) if seconds > 0 else None


def classify_evm_activity(address: str, txns: List[Dict[str, Any]], now: datetime,
                          policy: Policy) -> WalletClassification:
    """Classify from an ascending explorer transaction list."""
    first_activity = _epoch(txns[0].get("timeStamp")) if txns else None
    contracts = {str(tx.get("to")).lower() for tx in txns if tx.get("to")}

    is_old = len(txns) >= policy.old_wallet_min_txns or len(contracts) >= policy.old_wallet_min_contracts
    if first_activity is not None and (now - first_activity).total_seconds() >= policy.old_wallet_min_age:
        is_old = True

    has_token_activity = any(
        len(tx.get("input") or "") > 10 and tx.get("input") != "0x" for tx in txns
    )
    return WalletClassification(
        address=address,
        is_old=is_old,
        is_profitable=is_old and has_token_activity and len(txns) > PROFITABLE_MIN_EVM_TXNS,
        sample_size=len(txns),
        first_activity=first_activity,
        distinct_contracts=len(contracts),
    )


def classify_solana_activity(address: str, signatures: List[Dict[str, Any]], now: datetime,
                             policy: Policy) -> WalletClassification:
    """Classify from a newest-first signature list."""
    first_activity = _epoch(signatures[-1].get("blockTime")) if signatures else None

    is_old = len(signatures) >= policy.old_wallet_min_txns
    if first_activity is not None and (now - first_activity).total_seconds() >= policy.old_wallet_min_age:
        is_old = True

    return WalletClassification(
        address=address,
        is_old=is_old,
        is_profitable=is_old and len(signatures) > PROFITABLE_MIN_SOLANA_SIGNATURES,
        sample_size=len(signatures),
        first_activity=first_activity,
    )


class WalletSource:
    """Block-explorer and Solana RPC client.

    Explorer requests wait for the pacing interval instead of being skipped,
    so every sampled wallet is eventually classified.
    """

    def __init__(
        self,
        explorer_keys: Optional[Dict[Chain, str]] = None,
        solana_rpc_url: str = DEFAULT_SOLANA_RPC,
        pacer: Optional[RequestPacer] = None,
        timeout: float = 30,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.explorer_keys = {k: v for k, v in (explorer_keys or {}).items() if v}
        self.solana_rpc_url = solana_rpc_url or DEFAULT_SOLANA_RPC
        self.pacer = pacer or RequestPacer(min_interval=0.2)
        self.timeout = timeout
        self._session = session
        logger.info(f"Wallet source initialized with {len(self.explorer_keys)} explorer API key(s)")

    def supports(self, chain: Chain) -> bool:
        return chain == Chain.SOLANA or chain in self.explorer_keys

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self._session

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()

    async def _request(self, method: str, url: str, pace_key: str, **kwargs) -> Any:
        await self.pacer.acquire(pace_key)
        session = await self._get_session()
        try:
            async with session.request(method, url, **kwargs) as response:
                if response.status != 200:
                    raise UpstreamUnavailable(pace_key, f"HTTP {response.status}")
                return await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise UpstreamUnavailable(pace_key, f"{type(e).__name__}: {e}") from e

    async def _explorer(self, chain: Chain, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        query = {**params, "apikey": self.explorer_keys[chain]}
        data = await self._request("GET", EXPLORER_APIS[chain], chain.value, params=query)
        result = (data or {}).get("result")
        if not isinstance(result, list):
            # Explorers report errors as a string result
            raise UpstreamUnavailable(chain.value, str(result or data))
        return result if str(data.get("status")) == "1" else []

    async def fetch_transactions(self, address: str, chain: Chain) -> List[Dict[str, Any]]:
        return await self._explorer(chain, {
            "module": "account",
            "action": "txlist",
            "address": address,
            "startblock": 0,
            "endblock": 99999999,
            "page": 1,
            "offset": SAMPLE_LIMIT,
            "sort": "asc",
        })

    async def fetch_signatures(self, address: str) -> List[Dict[str, Any]]:
        payload = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "getSignaturesForAddress",
            "params": [address, {"limit": SAMPLE_LIMIT}],
        }
        data = await self._request("POST", self.solana_rpc_url, Chain.SOLANA.value, json=payload)
        result = (data or {}).get("result")
        if not isinstance(result, list):
            raise UpstreamUnavailable(Chain.SOLANA.value, str((data or {}).get("error") or "malformed RPC response"))
        return result

    async def classify(self, address: str, chain: Chain, now: datetime,
                       policy: Policy) -> Optional[WalletClassification]:
        """Classify one wallet, or None when the chain has no configured explorer."""
        if not self.supports(chain):
            return None
        if chain == Chain.SOLANA:
            signatures = await self.fetch_signatures(address)
            return classify_solana_activity(address, signatures, now, policy)
        txns = await self.fetch_transactions(address, chain)
        return classify_evm_activity(address, txns, now, policy)

    async def recent_buyers(self, token_address: str, chain: Chain, limit: int = 50) -> List[str]:
        """Distinct recent receivers of the token (EVM explorers only)."""
        if chain == Chain.SOLANA or chain not in self.explorer_keys:
            return []
        transfers = await self._explorer(chain, {
            "module": "account",
            "action": "tokentx",
            "contractaddress": token_address,
            "page": 1,
            "offset": SAMPLE_LIMIT,
            "sort": "desc",
        })
        buyers: List[str] = []
        seen = set()
        for transfer in transfers:
            receiver = str(transfer.get("to") or "").lower()
            if receiver and receiver not in seen:
                seen.add(receiver)
                buyers.append(receiver)
            if len(buyers) >= limit:
                break
        return buyers


class WalletClassifier:
    """Cached per-wallet classification and buyer-population aggregation."""

    def __init__(self, source: Optional[WalletSource] = None, policy: Optional[Policy] = None,
                 cache: Optional[TimedCache] = None):
        self.source = source or WalletSource()
        self.policy = policy or Policy()
        if cache is None:
            cache = TimedCache(ttl=self.policy.wallet_cache_seconds, maxsize=10_000)
        self.cache = cache

    async def classify_wallet(self, address: str, chain: Chain, now: datetime) -> Optional[WalletClassification]:
        cache_key = f"{chain.value}-{address}"
        cached = self.cache.get(cache_key, max_age=self.policy.wallet_cache_seconds)
        if cached is not None:
            return cached
        try:
            classification = await self.source.classify(address, chain, now, self.policy)
        except UpstreamUnavailable as e:
            logger.warning(f"Wallet classification failed for {address} on {chain.value}: {e}")
            return None
        if classification is not None:
            self.cache.set(cache_key, classification)
        return classification

    async def analyze_buyers(self, chain: Chain, buyers: List[str], now: datetime) -> WalletIntelligence:
        """Classify a bounded sample of buyers and aggregate the population."""
        sample = buyers[: self.policy.max_wallets_per_analysis]
        classifications: List[WalletClassification] = []
        for buyer in sample:
            classification = await self.classify_wallet(buyer, chain, now)
            if classification is not None:
                classifications.append(classification)
        intel = self.aggregate(classifications, len(buyers), now)
        logger.debug(
            f"Wallet intel on {chain.value}: {intel.classified_count}/{len(sample)} classified, "
            f"{intel.old_wallet_percent:.0f}% old, {intel.profitable_wallet_percent:.0f}% profitable"
        )
        return intel

    @staticmethod
    def aggregate(classifications: List[WalletClassification], total_buyers: int,
                  now: datetime) -> WalletIntelligence:
        old = [c.address for c in classifications if c.is_old]
        profitable = [c.address for c in classifications if c.is_profitable]
        classified = len(classifications)
        old_pct = len(old) / classified * 100 if classified else 0.0
        profitable_pct = len(profitable) / classified * 100 if classified else 0.0
        return WalletIntelligence(
            total_buyers=total_buyers,
            classified_count=classified,
            old_wallet_count=len(old),
            profitable_wallet_count=len(profitable),
            old_wallet_percent=old_pct,
            profitable_wallet_percent=profitable_pct,
            # Count-based approximation; no per-trade amounts are inspected
            volume_share_from_old=old_pct,
            volume_share_from_profitable=profitable_pct,
            analyzed_at=now,
            sample_old_wallets=old,
            sample_profitable_wallets=profitable,
        )

    @staticmethod
    def is_bot_heavy(intel: WalletIntelligence) -> bool:
        return (intel.total_buyers >= BOT_HEAVY_MIN_BUYERS
                and intel.old_wallet_count == 0
                and intel.profitable_wallet_count == 0)

    async def quick_classify(self, address: str, chain: Chain, now: datetime) -> Dict[str, Any]:
        classification = await self.classify_wallet(address, chain, now)
        if classification is None:
            return {"is_old": False, "is_profitable": False, "confidence": SignalConfidence.LOW}
        confidence = SignalConfidence.HIGH if classification.sample_size > 50 else SignalConfidence.MEDIUM
        return {
            "is_old": classification.is_old,
            "is_profitable": classification.is_profitable,
            "confidence": confidence,
        }
