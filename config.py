"""
Balance Snapshot - Centralized Configuration
Single source of truth for chains, endpoints, price sources and settings
"""
import os
from enum import Enum
from typing import Dict, Optional

from web3 import Web3

from errors import ConfigurationError, UnsupportedChain


class Chain(str, Enum):
    """Supported EVM networks. Values are the names used by the frontend."""
    ETH = "Ethereum"
    BSC = "BinanceSmartChain"
    OPT = "Optimism"
    ARB = "Arbitrum"
    POLYGON = "Polygon"
    BASE = "Base"
    HAQQ = "Haqq"
    GNOSIS = "Gnosis"


# ========== OPTIONAL API KEYS (from environment) ==========
# You can set these in a .env file or as environment variables
ALCHEMY_API_KEY = os.environ.get('ALCHEMY_API_KEY', '')
COINGECKO_API_KEY = os.environ.get('COINGECKO_API_KEY', '')

# When set, chains served by Alchemy refuse to start without ALCHEMY_API_KEY
REQUIRE_ALCHEMY_KEY = os.environ.get('REQUIRE_ALCHEMY_KEY', '').lower() in ('1', 'true', 'yes')

# ========== MULTI-CHAIN CONFIGURATION ==========
CHAINS = {
    Chain.ETH: {
        'slug': 'ethereum',
        'alchemy': 'eth-mainnet',
        'rpc': [
            "https://ethereum.publicnode.com",
            "https://eth.llamarpc.com",
        ],
        'platform': 'ethereum',
        'native_coin': 'ethereum',
    },
    Chain.BSC: {
        'slug': 'bsc',
        'alchemy': 'bnb-mainnet',
        'rpc': [
            "https://bsc-dataseed.bnbchain.org",
            "https://bsc.publicnode.com",
        ],
        'platform': 'binance-smart-chain',
        'native_coin': 'binancecoin',
    },
    Chain.OPT: {
        'slug': 'optimism',
        'alchemy': 'opt-mainnet',
        'rpc': [
            "https://mainnet.optimism.io",
            "https://optimism.publicnode.com",
        ],
        'platform': 'optimistic-ethereum',
        'native_coin': 'ethereum',
    },
    Chain.ARB: {
        'slug': 'arbitrum',
        'alchemy': 'arb-mainnet',
        'rpc': [
            "https://arb1.arbitrum.io/rpc",
            "https://arbitrum-one.publicnode.com",
        ],
        'platform': 'arbitrum-one',
        'native_coin': 'ethereum',
    },
    Chain.POLYGON: {
        'slug': 'polygon',
        'alchemy': 'polygon-mainnet',
        'rpc': [
            "https://polygon-rpc.com",
            "https://polygon-bor.publicnode.com",
        ],
        'platform': 'polygon-pos',
        'native_coin': 'polygon-ecosystem-token',
    },
    Chain.BASE: {
        'slug': 'base',
        'alchemy': 'base-mainnet',
        'rpc': [
            "https://mainnet.base.org",
            "https://base.publicnode.com",
        ],
        'platform': 'base',
        'native_coin': 'ethereum',
    },
    Chain.HAQQ: {
        'slug': 'haqq',
        'alchemy': None,
        'rpc': [
            "https://rpc.eth.haqq.network",
        ],
        # CoinGecko lists no token platform for Haqq
        'platform': None,
        'native_coin': 'islamic-coin',
    },
    Chain.GNOSIS: {
        'slug': 'gnosis',
        'alchemy': 'gnosis-mainnet',
        'rpc': [
            "https://rpc.gnosischain.com",
            "https://gnosis.publicnode.com",
        ],
        'platform': 'xdai',
        'native_coin': 'xdai',
    },
}


def parse_chain(name) -> Chain:
    """Accept a Chain, its value ("Ethereum"), its name ("ETH") or its slug ("ethereum")."""
    if isinstance(name, Chain):
        return name
    key = (name or '').strip().lower()
    for chain, cfg in CHAINS.items():
        if key in (chain.value.lower(), chain.name.lower(), cfg['slug']):
            return chain
    raise UnsupportedChain(f"Unsupported blockchain: {name}")


def get_chain_config(chain) -> Dict:
    """Get the static configuration entry for a chain"""
    return CHAINS[parse_chain(chain)]


def chain_slug(chain) -> str:
    return get_chain_config(chain)['slug']


def endpoint_for(chain) -> str:
    """
    Resolve the RPC endpoint for a chain.

    Order: RPC_URL_<SLUG> override, Alchemy (if key present), first public node.
    Raises ConfigurationError when a required credential is missing; callers
    treat that as fatal.
    """
    chain = parse_chain(chain)
    cfg = CHAINS[chain]

    override = os.environ.get(f"RPC_URL_{cfg['slug'].upper()}")
    if override:
        return override

    if cfg['alchemy']:
        if ALCHEMY_API_KEY:
            return f"https://{cfg['alchemy']}.g.alchemy.com/v2/{ALCHEMY_API_KEY}"
        if REQUIRE_ALCHEMY_KEY:
            raise ConfigurationError(
                f"ALCHEMY_API_KEY is required for {chain.value} (REQUIRE_ALCHEMY_KEY is set)"
            )

    if not cfg['rpc']:
        raise ConfigurationError(f"No RPC endpoint configured for {chain.value}")
    return cfg['rpc'][0]


# ========== PRICE SOURCES ==========
COINGECKO_BASE_URL = os.environ.get('COINGECKO_BASE_URL', 'https://api.coingecko.com/api/v3')

# Coin used to derive USD -> EUR/CHF rates
FOREX_REFERENCE_COIN = 'tether'

# Approximate rates used when the forex lookup is unavailable
FALLBACK_FX_RATES = {
    'eur': 0.92,
    'chf': 0.88,
}

# USD stablecoins valued at 1 USD (lowercase addresses)
STABLECOINS = {
    Chain.ETH: {
        '0xdac17f958d2ee523a2206206994597c13d831ec7',  # USDT
        '0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48',  # USDC
        '0x4fabb145d64652a948d72533023f6e7a623c7c53',  # BUSD
        '0x6b175474e89094c44da98b954eedeac495271d0f',  # DAI
    },
}

# ========== ORACLE-PRICED ASSET ==========
# One asset has no listing on the price index; its price is read from an
# on-chain feed reporting 18-decimal values in a USD reference stable.
ORACLE_ASSET_CHAIN = os.environ.get('ORACLE_ASSET_CHAIN', Chain.HAQQ.value)
ORACLE_ASSET_ADDRESS = os.environ.get('ORACLE_ASSET_ADDRESS', '')
ORACLE_ASSET_PRICE_FEED = os.environ.get('ORACLE_ASSET_PRICE_FEED', '')
ORACLE_PRICE_DECIMALS = 18


def get_oracle_asset() -> Optional[Dict]:
    """Return the configured oracle-priced asset or None when not configured"""
    if not ORACLE_ASSET_ADDRESS or not ORACLE_ASSET_PRICE_FEED:
        return None
    return {
        'chain': parse_chain(ORACLE_ASSET_CHAIN),
        'address': Web3.to_checksum_address(ORACLE_ASSET_ADDRESS),
        'price_feed': Web3.to_checksum_address(ORACLE_ASSET_PRICE_FEED),
        'decimals': ORACLE_PRICE_DECIMALS,
    }


# ========== NETWORK SETTINGS ==========
REQUEST_TIMEOUT = int(os.environ.get('REQUEST_TIMEOUT', '15'))
FX_CACHE_TTL_SECONDS = 60

# ========== STORAGE SETTINGS ==========
DATA_DIR = "data"
MEMO_CACHE_FILE = os.environ.get('MEMO_CACHE_FILE', os.path.join(DATA_DIR, "memo_cache.json"))
