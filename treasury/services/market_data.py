"""Market data fetching.

Prices come from DexScreener's token endpoint. When the token trades in
several pools, the pool with the deepest USD liquidity is used.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import httpx

logger = logging.getLogger(__name__)


class MarketDataError(RuntimeError):
    """Upstream returned no usable market data."""


@dataclass
class MarketSnapshot:
    """Normalized market data for one tick. Absent upstream fields are 0, never None."""
    price: float = 0.0
    price_native: float = 0.0
    market_cap: float = 0.0
    liquidity_usd: float = 0.0
    volume_24h: float = 0.0
    volume_1h: float = 0.0
    price_change_1h: float = 0.0
    price_change_6h: float = 0.0
    price_change_24h: float = 0.0
    tx_count_24h: int = 0
    dex: str = ""
    pair_address: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "price": self.price,
            "liquidity_usd": self.liquidity_usd,
            "volume_24h": self.volume_24h,
            "volume_1h": self.volume_1h,
            "price_change": {
                "h1": self.price_change_1h,
                "h6": self.price_change_6h,
                "h24": self.price_change_24h,
            },
            "tx_count_24h": self.tx_count_24h,
            "dex": self.dex,
            "timestamp": self.timestamp.isoformat(),
        }


async def fetch_market_snapshot(
    mint: str,
    base_url: str,
    timeout: float = 10.0,
) -> MarketSnapshot | None:
    """Fetch the current snapshot for `mint`.

    Returns None on timeout, non-200 responses, a malformed body or an empty
    pair list, so the caller can skip the tick and retry on the next interval.
    A snapshot without a usable price is also skipped by the tick.
    """
    url = f"{base_url.rstrip('/')}/{mint}"
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            resp = await client.get(url, headers={"Accept": "application/json"})
        if resp.status_code != 200:
            raise MarketDataError(f"DexScreener API error: {resp.status_code}")
        return parse_pairs(resp.json())
    except httpx.TimeoutException:
        logger.error(f"Market data fetch timed out after {timeout}s")
        return None
    except (httpx.HTTPError, MarketDataError, ValueError) as e:
        logger.error(f"Market data fetch error: {e}")
        return None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _num(value: Any) -> float:
    """Parse a number that may be missing, null or a string. Anything unusable is 0."""
    if value is None:
        return 0.0
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return 0.0
    if parsed != parsed or parsed in (float("inf"), float("-inf")):
        return 0.0
    return parsed


def _get(obj: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(obj, dict):
            return None
        obj = obj.get(key)
    return obj


def parse_pairs(payload: Any, now: datetime | None = None) -> MarketSnapshot:
    """Parse a DexScreener token response into a MarketSnapshot.

    Response shape: {"pairs": [{"priceUsd": "0.0012", "liquidity": {"usd": 5000},
                                "volume": {"h24": 900, "h1": 40}, "priceChange": {...},
                                "txns": {"h24": {"buys": 10, "sells": 4}}, ...}]}
    """
    pairs = _get(payload, "pairs") or []
    if not isinstance(pairs, list):
        raise MarketDataError(f"Unexpected DexScreener pairs payload: {type(pairs).__name__}")
    pairs = [p for p in pairs if isinstance(p, dict)]
    if not pairs:
        raise MarketDataError("No pairs found on DexScreener")

    pair = max(pairs, key=lambda p: _num(_get(p, "liquidity", "usd")))

    buys = _num(_get(pair, "txns", "h24", "buys"))
    sells = _num(_get(pair, "txns", "h24", "sells"))

    return MarketSnapshot(
        price=max(_num(pair.get("priceUsd")), 0.0),
        price_native=max(_num(pair.get("priceNative")), 0.0),
        market_cap=_num(pair.get("marketCap")),
        liquidity_usd=_num(_get(pair, "liquidity", "usd")),
        volume_24h=_num(_get(pair, "volume", "h24")),
        volume_1h=_num(_get(pair, "volume", "h1")),
        price_change_1h=_num(_get(pair, "priceChange", "h1")),
        price_change_6h=_num(_get(pair, "priceChange", "h6")),
        price_change_24h=_num(_get(pair, "priceChange", "h24")),
        tx_count_24h=int(buys + sells),
        dex=str(pair.get("dexId") or ""),
        pair_address=str(pair.get("pairAddress") or ""),
        timestamp=now or datetime.now(timezone.utc),
    )
