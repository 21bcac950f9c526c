"""Tests for HistoricalPriceResolver and its pricing strategies."""

from unittest.mock import MagicMock, patch

import pytest
import requests
from web3 import Web3

from config import Chain
from errors import ConfigurationError, FutureDate, PriceUnavailable, UnsupportedChain
from forex import FxRates
from models import Asset, PriceQuote
from price_resolver import (
    CoinGeckoStrategy, HistoricalPriceResolver, OracleAssetStrategy, StablecoinStrategy,
)

USDC = "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"
LINK = "0x514910771AF9Ca656af840dff83E8264EcF986CA"
HAQQ_TOKEN = Web3.to_checksum_address("0x" + "ab" * 20)
HAQQ_FEED = Web3.to_checksum_address("0x" + "cd" * 20)

LIVE_RATES = FxRates(eur=0.9, chf=0.8, source="coingecko")
FALLBACK_RATES = FxRates(eur=0.92, chf=0.88, source="fallback")


class FakeResponse:
    def __init__(self, status_code=200, payload=None, json_error=False):
        self.status_code = status_code
        self._payload = payload
        self._json_error = json_error

    def json(self):
        if self._json_error:
            raise ValueError("No JSON object could be decoded")
        return self._payload


def history_payload(usd, eur, chf):
    return {"market_data": {"current_price": {"usd": usd, "eur": eur, "chf": chf}}}


@pytest.fixture
def resolver(memo_store):
    return HistoricalPriceResolver(
        store=memo_store,
        web3_provider=MagicMock(),
        fx_provider=lambda: LIVE_RATES,
        use_configured_oracle_asset=False,
    )


@pytest.fixture
def feed_w3():
    w3 = MagicMock()
    w3.eth.contract.return_value.functions.getPrice.return_value.call.return_value = 2 * 10**18
    return w3


def oracle_resolver(store, w3, rates=LIVE_RATES):
    return HistoricalPriceResolver(
        store=store,
        web3_provider=lambda chain: w3,
        fx_provider=lambda: rates,
        oracle_asset={"chain": Chain.HAQQ, "address": HAQQ_TOKEN, "price_feed": HAQQ_FEED, "decimals": 18},
    )


class TestCoinGeckoTier:

    def test_history_hit(self, resolver, memo_store):
        asset = Asset(chain=Chain.ETH, contract_address=LINK)
        with patch("price_resolver.coingecko_get", return_value=FakeResponse(payload=history_payload(14.5, 13.3, 12.7))) as get:
            quote = resolver.resolve_price(asset, Chain.ETH, "2024-01-15")

        assert quote == PriceQuote(usd=14.5, eur=13.3, chf=12.7)
        get.assert_called_once_with(f"coins/ethereum/contract/{LINK.lower()}/history", {"date": "15-01-2024"})
        assert memo_store.get(f"price-{LINK.lower()}-15-01-2024") == '{"usd":14.5,"eur":13.3,"chf":12.7}'

    def test_cached_quote_skips_network(self, resolver):
        asset = Asset(chain=Chain.ETH, contract_address=LINK)
        with patch("price_resolver.coingecko_get", return_value=FakeResponse(payload=history_payload(14.5, 13.3, 12.7))) as get:
            first = resolver.resolve_price(asset, Chain.ETH, "2024-01-15")
            second = resolver.resolve_price(asset, Chain.ETH, "2024-01-15")

        assert first == second
        assert get.call_count == 1

    def test_falls_back_to_current_price(self, resolver, memo_store):
        """Date before listing: history has no market data, current price is used"""
        asset = Asset(chain=Chain.BSC, contract_address=LINK)
        responses = [
            FakeResponse(payload={"id": "chainlink"}),
            FakeResponse(payload={LINK.lower(): {"usd": 0.5, "eur": 0.46, "chf": 0.44}}),
        ]
        with patch("price_resolver.coingecko_get", side_effect=responses) as get:
            quote = resolver.resolve_price(asset, Chain.BSC, "2019-01-01")

        assert quote == PriceQuote(usd=0.5, eur=0.46, chf=0.44)
        current_call = get.call_args_list[1]
        assert current_call.args[0] == "simple/token_price/binance-smart-chain"
        assert current_call.args[1]["contract_addresses"] == LINK.lower()
        assert memo_store.get(f"price-{LINK.lower()}-01-01-2019") is not None

    @pytest.mark.parametrize("history", [
        FakeResponse(status_code=429),
        FakeResponse(json_error=True),
        requests.exceptions.ConnectionError("down"),
    ])
    def test_history_failure_falls_through(self, resolver, history):
        asset = Asset(chain=Chain.ETH, contract_address=LINK)
        current = FakeResponse(payload={LINK.lower(): {"usd": 15.0}})
        with patch("price_resolver.coingecko_get", side_effect=[history, current]):
            quote = resolver.resolve_price(asset, Chain.ETH, "2024-01-15")

        assert quote == PriceQuote(usd=15.0, eur=0.0, chf=0.0)

    @pytest.mark.parametrize("payload", [
        ["unexpected"],
        {"market_data": ["usd", 1]},
        {"market_data": {"current_price": ["usd", 1]}},
        {"market_data": {"current_price": {"usd": "n/a"}}},
        {"market_data": {"current_price": {"usd": -3.0, "eur": 1.0, "chf": 1.0}}},
    ])
    def test_malformed_history_falls_through(self, resolver, memo_store, payload):
        asset = Asset(chain=Chain.ETH, contract_address=LINK)
        current = FakeResponse(payload={LINK.lower(): {"usd": 15.0, "eur": 13.8, "chf": 13.2}})
        with patch("price_resolver.coingecko_get", side_effect=[FakeResponse(payload=payload), current]) as get:
            quote = resolver.resolve_price(asset, Chain.ETH, "2024-01-15")

        assert get.call_count == 2
        assert quote == PriceQuote(usd=15.0, eur=13.8, chf=13.2)

    @pytest.mark.parametrize("payload", [
        ["unexpected"],
        {LINK.lower(): ["usd", 1]},
        {LINK.lower(): {"usd": "n/a"}},
        {LINK.lower(): {"usd": -1.0}},
    ])
    def test_malformed_current_price(self, resolver, memo_store, payload):
        asset = Asset(chain=Chain.ETH, contract_address=LINK)
        with patch("price_resolver.coingecko_get", side_effect=[FakeResponse(status_code=404), FakeResponse(payload=payload)]):
            with pytest.raises(PriceUnavailable):
                resolver.resolve_price(asset, Chain.ETH, "2024-01-15")
        assert len(memo_store) == 0

    def test_token_not_listed(self, resolver, memo_store):
        asset = Asset(chain=Chain.ETH, contract_address=LINK)
        with patch("price_resolver.coingecko_get", side_effect=[FakeResponse(status_code=404), FakeResponse(payload={})]):
            with pytest.raises(PriceUnavailable, match="Token price not found"):
                resolver.resolve_price(asset, Chain.ETH, "2024-01-15")
        assert len(memo_store) == 0

    def test_current_price_unreachable(self, resolver):
        asset = Asset(chain=Chain.ETH, contract_address=LINK)
        with patch("price_resolver.coingecko_get",
                   side_effect=[FakeResponse(status_code=500), requests.exceptions.Timeout("slow")]):
            with pytest.raises(PriceUnavailable, match="Failed to fetch price data"):
                resolver.resolve_price(asset, Chain.ETH, "2024-01-15")

    def test_chain_without_platform(self, resolver):
        """Haqq token that is not the oracle-priced asset"""
        asset = Asset(chain=Chain.HAQQ, contract_address=LINK)
        with patch("price_resolver.coingecko_get") as get:
            with pytest.raises(UnsupportedChain, match="Haqq"):
                resolver.resolve_price(asset, Chain.HAQQ, "2024-01-15")
        get.assert_not_called()

    def test_native_asset_uses_coin_id(self, resolver, memo_store):
        asset = Asset(chain=Chain.POLYGON)
        with patch("price_resolver.coingecko_get", return_value=FakeResponse(payload=history_payload(0.8, 0.74, 0.7))) as get:
            resolver.resolve_price(asset, Chain.POLYGON, "2024-01-15")

        get.assert_called_once_with("coins/polygon-ecosystem-token/history", {"date": "15-01-2024"})
        assert memo_store.get("price-native-polygon-15-01-2024") is not None

    def test_native_fallback_looks_up_coin_id(self, resolver):
        asset = Asset(chain=Chain.ARB)
        responses = [FakeResponse(payload={}), FakeResponse(payload={"ethereum": {"usd": 3000, "eur": 2760, "chf": 2640}})]
        with patch("price_resolver.coingecko_get", side_effect=responses) as get:
            quote = resolver.resolve_price(asset, Chain.ARB, "2024-01-15")

        assert quote.usd == 3000
        assert get.call_args_list[1].args == ("simple/price", {"ids": "ethereum", "vs_currencies": "usd,eur,chf"})


class TestStablecoinTier:

    def test_priced_at_one_usd(self, resolver):
        asset = Asset(chain=Chain.ETH, contract_address=USDC, decimals=6)
        with patch("price_resolver.coingecko_get") as get:
            quote = resolver.resolve_price(asset, Chain.ETH, "2024-01-15")

        get.assert_not_called()
        assert quote == PriceQuote(usd=1.0, eur=0.9, chf=0.8)

    def test_fallback_fx_is_not_cached(self, memo_store):
        resolver = HistoricalPriceResolver(store=memo_store, fx_provider=lambda: FALLBACK_RATES,
                                           use_configured_oracle_asset=False)
        quote = resolver.resolve_price(Asset(chain=Chain.ETH, contract_address=USDC), Chain.ETH, "2024-01-15")

        assert quote == PriceQuote(usd=1.0, eur=0.92, chf=0.88)
        assert len(memo_store) == 0

    def test_stablecoin_only_on_its_chain(self, resolver):
        assert isinstance(resolver.select_strategy(Asset(chain=Chain.ETH, contract_address=USDC), Chain.ETH),
                          StablecoinStrategy)
        assert isinstance(resolver.select_strategy(Asset(chain=Chain.BSC, contract_address=USDC), Chain.BSC),
                          CoinGeckoStrategy)


class TestOracleTier:

    def test_reads_price_feed(self, memo_store, feed_w3):
        resolver = oracle_resolver(memo_store, feed_w3)
        asset = Asset(chain=Chain.HAQQ, contract_address=HAQQ_TOKEN.lower())

        with patch("price_resolver.coingecko_get") as get:
            quote = resolver.resolve_price(asset, Chain.HAQQ, "2024-01-15")

        get.assert_not_called()
        assert quote == PriceQuote(usd=2.0, eur=1.8, chf=1.6)
        feed_w3.eth.contract.assert_called_once()
        assert feed_w3.eth.contract.call_args.kwargs["address"] == HAQQ_FEED
        assert memo_store.get(f"oracle-price-{HAQQ_TOKEN.lower()}-15-01-2024") is not None

    def test_feed_failure_values_at_par(self, memo_store, feed_w3):
        """Feed unreachable and forex unavailable: par value at fallback rates, nothing cached"""
        feed_w3.eth.contract.return_value.functions.getPrice.return_value.call.side_effect = \
            requests.exceptions.ConnectionError("down")
        resolver = oracle_resolver(memo_store, feed_w3, rates=FALLBACK_RATES)

        quote = resolver.resolve_price(Asset(chain=Chain.HAQQ, contract_address=HAQQ_TOKEN), Chain.HAQQ, "2024-01-15")

        assert quote == PriceQuote(usd=1.0, eur=0.92, chf=0.88)
        assert len(memo_store) == 0

    def test_missing_credential_is_not_priced_at_par(self, memo_store):
        def unconfigured(chain):
            raise ConfigurationError("ALCHEMY_API_KEY is required for Haqq")

        resolver = HistoricalPriceResolver(
            store=memo_store,
            web3_provider=unconfigured,
            fx_provider=lambda: LIVE_RATES,
            oracle_asset={"chain": Chain.HAQQ, "address": HAQQ_TOKEN, "price_feed": HAQQ_FEED, "decimals": 18},
        )

        with pytest.raises(ConfigurationError):
            resolver.resolve_price(Asset(chain=Chain.HAQQ, contract_address=HAQQ_TOKEN), Chain.HAQQ, "2024-01-15")
        assert len(memo_store) == 0

    def test_strategy_is_chosen_once_per_asset(self, memo_store, feed_w3):
        resolver = oracle_resolver(memo_store, feed_w3)
        asset = Asset(chain=Chain.HAQQ, contract_address=HAQQ_TOKEN)

        first = resolver.select_strategy(asset, Chain.HAQQ)
        second = resolver.select_strategy(Asset(chain=Chain.HAQQ, contract_address=HAQQ_TOKEN.lower()), Chain.HAQQ)

        assert isinstance(first, OracleAssetStrategy)
        assert first is second

    def test_same_address_on_other_chain_is_not_oracle_priced(self, memo_store, feed_w3):
        resolver = oracle_resolver(memo_store, feed_w3)
        strategy = resolver.select_strategy(Asset(chain=Chain.ETH, contract_address=HAQQ_TOKEN), Chain.ETH)

        assert isinstance(strategy, CoinGeckoStrategy)


class TestValidation:

    def test_future_date(self, resolver):
        with pytest.raises(FutureDate):
            resolver.resolve_price(Asset(chain=Chain.ETH, contract_address=LINK), Chain.ETH, "2999-01-01")

    def test_asset_chain_mismatch(self, resolver):
        with pytest.raises(ValueError):
            resolver.resolve_price(Asset(chain=Chain.ETH, contract_address=LINK), Chain.BSC, "2024-01-15")
