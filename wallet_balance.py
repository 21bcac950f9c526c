"""
Balance Snapshot - Wallet Balance at a Block
Native or ERC-20 balance of a wallet as of a historical block.
"""
import logging
from typing import Callable, Optional

from web3 import Web3

from block_resolver import TemporalBlockResolver, get_block_resolver
from config import parse_chain
from date_utils import DateLike
from errors import OracleUnavailable
from models import Asset, TokenBalance
from web3_utils import call_contract, get_web3

logger = logging.getLogger(__name__)

ERC20_BALANCE_ABI = [
    {"inputs": [{"internalType": "address", "name": "owner", "type": "address"}], "name": "balanceOf", "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}], "stateMutability": "view", "type": "function"},
]


def _checksum(address: str, what: str) -> str:
    if not address or not Web3.is_address(address):
        raise ValueError(f"Invalid {what} address: {address}")
    return Web3.to_checksum_address(address)


def get_balance(chain, wallet: str, asset: Asset, block_number: int,
                web3_provider: Callable = get_web3) -> TokenBalance:
    """
    Raw balance of wallet at block_number.

    Native assets use eth_getBalance, tokens call balanceOf with the block as
    block_identifier. Any RPC failure raises OracleUnavailable.
    """
    chain = parse_chain(chain)
    wallet_cs = _checksum(wallet, "wallet")
    token_cs = None if asset.is_native else _checksum(asset.contract_address, "token")

    w3 = web3_provider(chain)
    try:
        if token_cs is None:
            raw = w3.eth.get_balance(wallet_cs, block_identifier=block_number)
        else:
            contract = w3.eth.contract(address=token_cs, abi=ERC20_BALANCE_ABI)
            raw = call_contract(chain, contract.functions.balanceOf(wallet_cs), block_identifier=block_number)
    except Exception as e:
        logger.warning("Balance lookup failed on %s at block %s: %s", chain.value, block_number, e)
        raise OracleUnavailable(f"Blockchain error: {e}") from e

    balance = TokenBalance(raw=int(raw), decimals=asset.decimals, block_number=block_number)
    logger.debug("Balance %s %s @ %s = %s", wallet_cs, token_cs or "native", block_number, balance.amount)
    return balance


def get_balance_on_date(chain, wallet: str, asset: Asset, day: DateLike,
                        resolver: Optional[TemporalBlockResolver] = None,
                        web3_provider: Callable = get_web3) -> TokenBalance:
    """Balance at the last block of day (UTC)"""
    resolver = resolver if resolver is not None else get_block_resolver()
    resolved = resolver.resolve_block_for_date(chain, day)
    return get_balance(chain, wallet, asset, resolved.block_number, web3_provider=web3_provider)
