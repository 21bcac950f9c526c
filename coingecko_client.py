"""
Balance Snapshot - CoinGecko HTTP client
"""
import logging
from typing import Any, Dict, Optional

import requests

import config

logger = logging.getLogger(__name__)


def _headers() -> Dict[str, str]:
    headers = {"accept": "application/json"}
    if config.COINGECKO_API_KEY:
        headers["x-cg-demo-api-key"] = config.COINGECKO_API_KEY
    return headers


def coingecko_get(path: str, params: Optional[Dict[str, Any]] = None) -> requests.Response:
    """
    GET {COINGECKO_BASE_URL}/{path}. Returns the raw response; callers decide
    what a non-2xx status means. Transport errors propagate as
    requests.exceptions.RequestException.
    """
    url = f"{config.COINGECKO_BASE_URL.rstrip('/')}/{path.lstrip('/')}"
    response = requests.get(url, params=params, headers=_headers(), timeout=config.REQUEST_TIMEOUT)
    if response.status_code == 429:
        logger.warning("CoinGecko rate limit reached (%s)", path)
    elif response.status_code != 200:
        logger.debug("CoinGecko %s -> HTTP %s", path, response.status_code)
    return response
