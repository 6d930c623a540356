"""Market prices for the tracked asset types.

Prices are quoted in major units (TRY per unit) as the upstream APIs return
them. Results are cached for ten minutes; when a fetch fails the last known
prices (or the built-in fallbacks) stay in effect.
"""

from __future__ import annotations

import json
import logging
import time
import urllib.request
from typing import TYPE_CHECKING, Callable

from kasa.money import to_minor_units

if TYPE_CHECKING:
    from kasa.storage.repository import Repository

logger = logging.getLogger(__name__)

CACHE_TTL_SECONDS = 600
REQUEST_TIMEOUT = 10
TROY_OUNCE_GRAMS = 31.1035

FALLBACK_PRICES = {
    "gram-altin": 7550.00,
    "usd": 43.30,
    "eur": 53.20,
    "btc": 0,
}

COINGECKO_URL = (
    "https://api.coingecko.com/api/v3/simple/price"
    "?ids=tether,pax-gold,bitcoin&vs_currencies=try"
)
FRANKFURTER_URL = "https://api.frankfurter.app/latest?from=EUR&to=TRY"

MARKET_DATA_KEY = "market_data"
LAST_FETCH_KEY = "last_market_fetch"


def _get_json(url: str) -> dict:
    with urllib.request.urlopen(url, timeout=REQUEST_TIMEOUT) as resp:
        return json.loads(resp.read().decode("utf-8"))


def fetch_upstream(get_json: Callable[[str], dict] = _get_json) -> dict[str, float]:
    """Query CoinGecko (USDT, PAXG, BTC) and Frankfurter (EUR) for TRY prices."""
    cg = get_json(COINGECKO_URL)
    ff = get_json(FRANKFURTER_URL)
    prices: dict[str, float] = {}
    if cg.get("tether", {}).get("try"):
        prices["usd"] = float(cg["tether"]["try"])
    if cg.get("bitcoin", {}).get("try"):
        prices["btc"] = float(cg["bitcoin"]["try"])
    if cg.get("pax-gold", {}).get("try"):
        prices["gram-altin"] = float(cg["pax-gold"]["try"]) / TROY_OUNCE_GRAMS
    if ff.get("rates", {}).get("TRY"):
        prices["eur"] = float(ff["rates"]["TRY"])
    return prices


class MarketPrices:
    """Cached price lookup.

    Args:
        fetcher: Callable returning {asset_type: price}; defaults to the public APIs.
        repo: Optional store used to persist prices and the last fetch time.
        clock: Seconds-since-epoch clock.
    """

    def __init__(
        self,
        fetcher: Callable[[], dict[str, float]] | None = None,
        repo: Repository | None = None,
        clock: Callable[[], float] = time.time,
        ttl: float = CACHE_TTL_SECONDS,
    ):
        self.fetcher = fetcher or fetch_upstream
        self.repo = repo
        self.clock = clock
        self.ttl = ttl
        self.prices: dict[str, float] = dict(FALLBACK_PRICES)
        self.last_fetch: float | None = None
        if repo is not None:
            self.prices.update(repo.get(MARKET_DATA_KEY) or {})
            self.last_fetch = repo.get(LAST_FETCH_KEY)

    def is_fresh(self) -> bool:
        return self.last_fetch is not None and self.clock() - self.last_fetch < self.ttl

    def refresh(self, force: bool = False) -> bool:
        """Fetch new prices unless the cache is fresh. Returns True if fetched."""
        if not force and self.is_fresh():
            logger.debug("Market data is fresh, skipping fetch")
            return False
        try:
            fetched = self.fetcher()
        except Exception as e:
            logger.warning("Market data fetch failed, using last known prices: %s", e)
            return False
        self.prices.update({k: float(v) for k, v in fetched.items()})
        self.last_fetch = self.clock()
        if self.repo is not None:
            self.repo.set(MARKET_DATA_KEY, self.prices)
            self.repo.set(LAST_FETCH_KEY, self.last_fetch)
        logger.info("Fetched market data for %s", ", ".join(sorted(fetched)))
        return True

    def price(self, asset_type: str) -> float:
        return float(self.prices.get(asset_type, 0))

    def price_minor(self, asset_type: str) -> int:
        return to_minor_units(self.price(asset_type))
