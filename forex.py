"""
Balance Snapshot - Forex Rates
Current USD -> EUR/CHF conversion, derived from a USD stablecoin's quote.
Falls back to fixed approximate rates; never raises.
"""
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

import config
from coingecko_client import coingecko_get

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FxRates:
    eur: float
    chf: float
    source: str


_cache: Dict[str, Dict[str, Any]] = {}


def fallback_rates() -> FxRates:
    return FxRates(
        eur=config.FALLBACK_FX_RATES['eur'],
        chf=config.FALLBACK_FX_RATES['chf'],
        source="fallback",
    )


def _fetch_rates() -> Optional[FxRates]:
    coin = config.FOREX_REFERENCE_COIN
    response = coingecko_get("simple/price", {"ids": coin, "vs_currencies": "usd,eur,chf"})
    if response.status_code != 200:
        logger.warning("Forex lookup failed: HTTP %s", response.status_code)
        return None

    quote = (response.json() or {}).get(coin) or {}
    usd = float(quote.get("usd") or 0)
    eur = float(quote.get("eur") or 0)
    chf = float(quote.get("chf") or 0)
    if usd <= 0 or eur <= 0 or chf <= 0:
        logger.warning("Forex lookup returned incomplete quote: %s", quote)
        return None
    return FxRates(eur=eur / usd, chf=chf / usd, source="coingecko")


def get_fx_rates(force_refresh: bool = False) -> FxRates:
    """USD -> EUR/CHF multipliers, cached for FX_CACHE_TTL_SECONDS"""
    now = time.time()
    c = _cache.get("fx")
    if not force_refresh and c and (now - c.get("t", 0) < config.FX_CACHE_TTL_SECONDS):
        return c["v"]

    try:
        rates = _fetch_rates()
    except (requests.exceptions.RequestException, ValueError, TypeError, AttributeError) as e:
        logger.warning("Forex lookup error: %s", e)
        rates = None

    if rates is None:
        rates = fallback_rates()
        logger.warning("Using fallback forex rates EUR=%s CHF=%s", rates.eur, rates.chf)
        return rates

    _cache["fx"] = {"t": now, "v": rates}
    return rates


def clear_cache():
    _cache.clear()
