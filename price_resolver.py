"""
Balance Snapshot - Historical Price Resolver
Price of one unit of a token on a calendar date, in USD / EUR / CHF.

Pricing strategy is chosen once per asset identity:
  1. OracleAssetStrategy  - on-chain price feed for the one unlisted asset
  2. StablecoinStrategy   - known USD stablecoins at 1 USD
  3. CoinGeckoStrategy    - exact-date history, then current price
Successful quotes are memoized; a repeated (asset, date) never hits the network.
"""
import logging
from typing import Callable, Dict, Optional, Tuple

import requests

import config
from coingecko_client import coingecko_get
from config import Chain, chain_slug, get_chain_config, parse_chain
from date_utils import DateLike, ensure_not_future, format_dd_mm_yyyy
from errors import PriceUnavailable, UnsupportedChain
from forex import FxRates, get_fx_rates
from memo_store import MemoStore, get_store
from models import Asset, PriceQuote
from web3_utils import call_contract, get_web3

logger = logging.getLogger(__name__)

PRICE_FEED_ABI = [
    {
        "inputs": [],
        "name": "getPrice",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function"
    }
]

VS_CURRENCIES = "usd,eur,chf"

# (quote, cacheable)
StrategyResult = Tuple[PriceQuote, bool]


def _convert_usd(usd: float, rates: FxRates) -> PriceQuote:
    return PriceQuote(usd=usd, eur=usd * rates.eur, chf=usd * rates.chf)


class OracleAssetStrategy:
    """Reads the asset's price from its on-chain feed (18-decimal fixed point,
    USD reference stable). A failed read values the asset at par."""

    name = "oracle"

    def __init__(self, oracle_asset: Dict, web3_provider: Callable = get_web3,
                 fx_provider: Callable[[], FxRates] = get_fx_rates):
        self.oracle_asset = oracle_asset
        self.web3_provider = web3_provider
        self.fx_provider = fx_provider

    def cache_key(self, asset: Asset, chain: Chain, formatted_date: str) -> str:
        return f"oracle-price-{asset.address_key}-{formatted_date}"

    def _read_price(self, w3, chain: Chain) -> float:
        contract = w3.eth.contract(address=self.oracle_asset['price_feed'], abi=PRICE_FEED_ABI)
        raw = call_contract(chain, contract.functions.getPrice())
        price = int(raw) / (10 ** self.oracle_asset['decimals'])
        if price < 0:
            raise ValueError(f"negative oracle price {raw}")
        return price

    def fetch(self, asset: Asset, chain: Chain, formatted_date: str) -> StrategyResult:
        rates = self.fx_provider()
        # ConfigurationError from endpoint resolution must propagate
        w3 = self.web3_provider(chain)
        try:
            usd = self._read_price(w3, chain)
            authoritative = True
        except Exception as e:
            # Any on-chain failure (revert, decode, transport) degrades to par
            logger.warning("Price feed read for %s failed (%s), valuing at par", asset.contract_address, e)
            usd = 1.0
            authoritative = False

        logger.info("Oracle price for %s on %s: %s USD (fx=%s)", asset.contract_address, formatted_date, usd, rates.source)
        return _convert_usd(usd, rates), authoritative and rates.source != "fallback"


class StablecoinStrategy:
    """USD stablecoins are valued at exactly 1 USD."""

    name = "stablecoin"

    def __init__(self, fx_provider: Callable[[], FxRates] = get_fx_rates):
        self.fx_provider = fx_provider

    def cache_key(self, asset: Asset, chain: Chain, formatted_date: str) -> str:
        return generic_price_cache_key(asset, chain, formatted_date)

    def fetch(self, asset: Asset, chain: Chain, formatted_date: str) -> StrategyResult:
        rates = self.fx_provider()
        return _convert_usd(1.0, rates), rates.source != "fallback"


class CoinGeckoStrategy:
    """Exact-date history, falling back to the current price when the date has
    no data (e.g. before listing) or the history endpoint is unreachable."""

    name = "coingecko"

    def cache_key(self, asset: Asset, chain: Chain, formatted_date: str) -> str:
        return generic_price_cache_key(asset, chain, formatted_date)

    def _endpoints(self, asset: Asset, chain: Chain) -> Tuple[str, str, Dict[str, str]]:
        """(history path, current-price path, current-price params)"""
        cfg = get_chain_config(chain)
        if asset.is_native:
            coin_id = cfg['native_coin']
            if not coin_id:
                raise UnsupportedChain(f"Unsupported blockchain for native pricing: {chain.value}")
            return (
                f"coins/{coin_id}/history",
                "simple/price",
                {"ids": coin_id, "vs_currencies": VS_CURRENCIES},
            )

        platform = cfg['platform']
        if not platform:
            raise UnsupportedChain(f"Unsupported blockchain: {chain.value}")
        address = asset.address_key
        return (
            f"coins/{platform}/contract/{address}/history",
            f"simple/token_price/{platform}",
            {"contract_addresses": address, "vs_currencies": VS_CURRENCIES},
        )

    def _historical(self, path: str, formatted_date: str) -> Optional[PriceQuote]:
        """None when the source has no data for the date or is unreachable"""
        try:
            response = coingecko_get(path, {"date": formatted_date})
        except requests.exceptions.RequestException as e:
            logger.warning("Historical price request failed (%s): %s", path, e)
            return None

        if response.status_code != 200:
            logger.warning("Historical price for %s on %s unavailable (HTTP %s)", path, formatted_date, response.status_code)
            return None

        try:
            data = response.json()
        except ValueError:
            logger.warning("Historical price response for %s is not JSON", path)
            return None

        market_data = data.get("market_data") if isinstance(data, dict) else None
        current_price = market_data.get("current_price") if isinstance(market_data, dict) else None
        if not current_price or not isinstance(current_price, dict):
            logger.warning("Historical price data not available for %s on %s", path, formatted_date)
            return None
        try:
            return PriceQuote.from_mapping(current_price)
        except (TypeError, ValueError) as e:
            logger.warning("Historical price for %s on %s is malformed: %s", path, formatted_date, e)
            return None

    def _current(self, path: str, params: Dict[str, str], lookup_key: str) -> PriceQuote:
        try:
            response = coingecko_get(path, params)
        except requests.exceptions.RequestException as e:
            raise PriceUnavailable(f"Failed to fetch price data: {e}") from e

        if response.status_code != 200:
            raise PriceUnavailable(f"Failed to fetch price data (HTTP {response.status_code})")

        try:
            data = response.json()
        except ValueError as e:
            raise PriceUnavailable("Failed to fetch price data: malformed response") from e

        token_data = data.get(lookup_key) if isinstance(data, dict) else None
        if not token_data or not isinstance(token_data, dict):
            raise PriceUnavailable("Token price not found")
        try:
            return PriceQuote.from_mapping(token_data)
        except (TypeError, ValueError) as e:
            raise PriceUnavailable(f"Failed to fetch price data: malformed price {token_data}") from e

    def fetch(self, asset: Asset, chain: Chain, formatted_date: str) -> StrategyResult:
        history_path, current_path, current_params = self._endpoints(asset, chain)

        quote = self._historical(history_path, formatted_date)
        if quote is not None:
            return quote, True

        logger.warning("Falling back to current price for %s (%s)", asset.contract_address or f"native {chain.value}", formatted_date)
        lookup_key = current_params.get("ids") or asset.address_key
        return self._current(current_path, current_params, lookup_key), True


def generic_price_cache_key(asset: Asset, chain: Chain, formatted_date: str) -> str:
    if asset.is_native:
        return f"price-native-{chain_slug(chain)}-{formatted_date}"
    return f"price-{asset.address_key}-{formatted_date}"


class HistoricalPriceResolver:
    def __init__(self, store: Optional[MemoStore] = None, web3_provider: Callable = get_web3,
                 fx_provider: Callable[[], FxRates] = get_fx_rates, oracle_asset: Optional[Dict] = None,
                 use_configured_oracle_asset: bool = True):
        self.store = store if store is not None else get_store()
        if oracle_asset is None and use_configured_oracle_asset:
            oracle_asset = config.get_oracle_asset()
        self.oracle_asset = oracle_asset

        self._oracle_strategy = (
            OracleAssetStrategy(oracle_asset, web3_provider=web3_provider, fx_provider=fx_provider)
            if oracle_asset else None
        )
        self._stablecoin_strategy = StablecoinStrategy(fx_provider=fx_provider)
        self._coingecko_strategy = CoinGeckoStrategy()
        self._selected: Dict[Tuple[Chain, Optional[str]], object] = {}

    def _is_oracle_asset(self, asset: Asset, chain: Chain) -> bool:
        if not self.oracle_asset or asset.is_native:
            return False
        return chain == self.oracle_asset["chain"] and asset.address_key == self.oracle_asset["address"].lower()

    def select_strategy(self, asset: Asset, chain: Chain):
        identity = (chain, asset.address_key)
        strategy = self._selected.get(identity)
        if strategy is None:
            if self._is_oracle_asset(asset, chain):
                strategy = self._oracle_strategy
            elif asset.address_key and asset.address_key in config.STABLECOINS.get(chain, set()):
                strategy = self._stablecoin_strategy
            else:
                strategy = self._coingecko_strategy
            self._selected[identity] = strategy
        return strategy

    def resolve_price(self, asset: Asset, chain, day: DateLike) -> PriceQuote:
        """
        Price of one whole unit of asset on day (YYYY-MM-DD).

        Raises UnsupportedChain when the chain has no price-index mapping and
        PriceUnavailable when every tier failed.
        """
        chain = parse_chain(chain)
        if asset.chain != chain:
            raise ValueError(f"Asset is on {asset.chain.value}, not {chain.value}")
        formatted_date = format_dd_mm_yyyy(ensure_not_future(day))

        strategy = self.select_strategy(asset, chain)
        key = strategy.cache_key(asset, chain, formatted_date)
        cached = self.store.get(key)
        if cached is not None:
            logger.debug("Price cache hit %s", key)
            return PriceQuote.from_json(cached)

        quote, cacheable = strategy.fetch(asset, chain, formatted_date)
        if cacheable:
            self.store.put(key, quote.to_json())
        else:
            logger.info("Not caching degraded %s quote for %s", strategy.name, key)
        return quote


_resolver: Optional[HistoricalPriceResolver] = None


def get_price_resolver() -> HistoricalPriceResolver:
    """Singleton resolver using the default store, web3 and forex providers"""
    global _resolver
    if _resolver is None:
        _resolver = HistoricalPriceResolver()
    return _resolver
