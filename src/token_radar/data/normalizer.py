"""Candidate normalization: safe defaults, identity checks and deduplication."""

import logging
import math
import re
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Union

from ..core.enums import Chain, EVM_CHAINS
from ..core.errors import InvalidInputError
from ..core.models import Candidate

logger = logging.getLogger(__name__)

_CHAIN_ALIASES = {
    "base": Chain.BASE,
    "ethereum": Chain.ETHEREUM,
    "eth": Chain.ETHEREUM,
    "bsc": Chain.BSC,
    "solana": Chain.SOLANA,
}

_EVM_ADDRESS = re.compile(r"^0x[0-9a-fA-F]{40}$")
_SOLANA_ADDRESS = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")

_PRICE_FIELDS = ("price_change_1h", "price_change_6h", "price_change_24h")
_AMOUNT_FIELDS = ("price_usd", "volume_24h", "liquidity", "fdv")
_COUNT_FIELDS = ("buys_24h", "sells_24h")


def normalize_chain(chain_id: Any) -> Chain:
    """Map an upstream chain id to a supported chain (unknown ids map to ethereum)."""
    if isinstance(chain_id, Chain):
        return chain_id
    return _CHAIN_ALIASES.get(str(chain_id or "").strip().lower(), Chain.ETHEREUM)


def validate_chain(chain: Any) -> Chain:
    """Strict chain parsing for caller input."""
    if isinstance(chain, Chain):
        return chain
    resolved = _CHAIN_ALIASES.get(str(chain or "").strip().lower())
    if resolved is None:
        raise InvalidInputError(f"Unsupported chain: {chain!r}")
    return resolved


def validate_address(address: Any, chain: Optional[Chain] = None) -> str:
    """Check address format for *chain* (or for any supported format when chain is None)."""
    if not isinstance(address, str) or not address.strip():
        raise InvalidInputError("Token address is required")
    address = address.strip()
    is_evm = bool(_EVM_ADDRESS.match(address))
    is_solana = bool(_SOLANA_ADDRESS.match(address))

    if chain is None:
        valid = is_evm or is_solana
    elif chain in EVM_CHAINS:
        valid = is_evm
    else:
        valid = is_solana

    if not valid:
        target = chain.value if chain else "any supported chain"
        raise InvalidInputError(f"Malformed address for {target}: {address!r}")
    return address


def _to_float(value: Any) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError):
        return 0.0
    return result if math.isfinite(result) else 0.0


def _to_count(value: Any) -> int:
    return max(0, int(_to_float(value)))


def _to_datetime(value: Any) -> Optional[datetime]:
    """Accept datetimes, epoch seconds/milliseconds or ISO strings; return aware UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        if not math.isfinite(value) or value <= 0:
            return None
        seconds = value / 1000 if value > 1e11 else value
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


class CandidateNormalizer:
    """Turns partial source records into complete candidates.

    Missing or malformed numeric fields become zero, which lowers confidence
    downstream instead of failing the scan. Computed fields (scores, signals,
    flags) are never carried over; they are rebuilt on every evaluation.
    """

    def normalize(self, raw: Union[Dict[str, Any], Candidate], now: datetime) -> Optional[Candidate]:
        if isinstance(raw, Candidate):
            raw = raw.model_dump(exclude={"scores", "signals", "flags", "social", "wallet_intel"})

        address = str(raw.get("address") or "").strip()
        if not address:
            logger.debug("Dropping source record without address")
            return None

        fields: Dict[str, Any] = {}
        for name in _PRICE_FIELDS:
            fields[name] = _to_float(raw.get(name))
        for name in _AMOUNT_FIELDS:
            fields[name] = max(0.0, _to_float(raw.get(name)))
        for name in _COUNT_FIELDS:
            fields[name] = _to_count(raw.get(name))

        # Sources that only report counts stand in for unique participants
        unique_buyers = raw.get("unique_buyers_24h")
        unique_sellers = raw.get("unique_sellers_24h")
        fields["unique_buyers_24h"] = _to_count(unique_buyers) if unique_buyers is not None else fields["buys_24h"]
        fields["unique_sellers_24h"] = _to_count(unique_sellers) if unique_sellers is not None else fields["sells_24h"]

        return Candidate(
            chain=normalize_chain(raw.get("chain")),
            address=address,
            symbol=str(raw.get("symbol") or "UNKNOWN"),
            name=str(raw.get("name") or "Unknown"),
            pair_address=raw.get("pair_address") or None,
            pair_created_at=_to_datetime(raw.get("pair_created_at")),
            discovered_at=_to_datetime(raw.get("discovered_at")) or now,
            last_updated=now,
            **fields,
        )

    def normalize_many(self, records: Iterable[Dict[str, Any]], now: datetime) -> List[Candidate]:
        result: List[Candidate] = []
        for record in records:
            candidate = self.normalize(record, now)
            if candidate is not None:
                result.append(candidate)
        return result


def dedupe_by_volume(candidates: Iterable[Candidate]) -> List[Candidate]:
    """Keep one candidate per chain+address, preferring the highest 24h volume."""
    seen: Dict[str, Candidate] = {}
    for candidate in candidates:
        current = seen.get(candidate.key)
        if current is None or candidate.volume_24h > current.volume_24h:
            seen[candidate.key] = candidate
    return list(seen.values())
