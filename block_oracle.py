"""
Balance Snapshot - Block Timestamp Oracle
Thin RPC wrapper: current block height and per-block timestamps.
Every call is one network round-trip; nothing is cached here.
"""
import logging
from typing import Callable, Optional

from web3.exceptions import BlockNotFound as Web3BlockNotFound

from config import parse_chain
from errors import BlockNotFound, OracleUnavailable
from models import BlockTimestampSample
from web3_utils import get_web3

logger = logging.getLogger(__name__)


def _to_int(value) -> Optional[int]:
    """Normalize an RPC quantity (int or 0x-hex string) to int, None if malformed"""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value, 16) if value.startswith(("0x", "0X")) else int(value)
        except ValueError:
            return None
    return None


class BlockTimestampOracle:
    def __init__(self, web3_provider: Callable = get_web3):
        self._web3_provider = web3_provider

    def current_height(self, chain) -> int:
        chain = parse_chain(chain)
        w3 = self._web3_provider(chain)
        try:
            raw = w3.eth.block_number
        except Exception as e:
            logger.warning("eth_blockNumber failed on %s: %s", chain.value, e)
            raise OracleUnavailable(f"{chain.value} RPC unavailable: {e}") from e

        height = _to_int(raw)
        if height is None or height < 0:
            raise OracleUnavailable(f"{chain.value} RPC returned malformed block number: {raw!r}")
        logger.debug("%s current height %s", chain.value, height)
        return height

    def timestamp_of(self, chain, block_number: int) -> int:
        return self.sample(chain, block_number).timestamp

    def sample(self, chain, block_number: int) -> BlockTimestampSample:
        chain = parse_chain(chain)
        w3 = self._web3_provider(chain)
        try:
            block = w3.eth.get_block(block_number)
        except Web3BlockNotFound as e:
            raise BlockNotFound(f"Block {block_number} not found on {chain.value}") from e
        except Exception as e:
            logger.warning("eth_getBlockByNumber(%s) failed on %s: %s", block_number, chain.value, e)
            raise OracleUnavailable(f"{chain.value} RPC unavailable: {e}") from e

        if block is None:
            raise BlockNotFound(f"Block {block_number} not found on {chain.value}")

        try:
            raw_ts = block["timestamp"]
        except (KeyError, TypeError):
            raw_ts = None
        timestamp = _to_int(raw_ts)
        if timestamp is None or timestamp < 0:
            raise OracleUnavailable(
                f"{chain.value} RPC returned malformed timestamp for block {block_number}: {raw_ts!r}"
            )
        return BlockTimestampSample(block_number=block_number, timestamp=timestamp)
