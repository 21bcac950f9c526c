"""
Balance Snapshot - Temporal Block Resolver
Find the block that represents the ledger state "as of" a point in time.
"""
import logging
from typing import Optional

from block_oracle import BlockTimestampOracle
from config import chain_slug, parse_chain
from date_utils import DateLike, ensure_past_end_of_day
from errors import InvalidRange
from memo_store import MemoStore, get_store
from models import ResolvedBlock

logger = logging.getLogger(__name__)

GENESIS_ADJACENT_BLOCK = 1


def block_cache_key(chain, target_timestamp: int) -> str:
    return f"block-{chain_slug(chain)}-{target_timestamp}"


class TemporalBlockResolver:
    """Binary search over block timestamps, memoized per (chain, target)."""

    def __init__(self, oracle: Optional[BlockTimestampOracle] = None, store: Optional[MemoStore] = None):
        self.oracle = oracle if oracle is not None else BlockTimestampOracle()
        self.store = store if store is not None else get_store()

    def resolve_block(self, chain, target_timestamp: int) -> int:
        """
        Highest block whose timestamp does not exceed target_timestamp.

        A target before block 1 clamps to block 1. A target after the chain
        head yields the current height. Oracle errors propagate unchanged and
        nothing is cached for a failed search.
        """
        chain = parse_chain(chain)
        if isinstance(target_timestamp, bool) or not isinstance(target_timestamp, int) or target_timestamp < 0:
            raise ValueError(f"target_timestamp must be a non-negative int, got {target_timestamp!r}")

        key = block_cache_key(chain, target_timestamp)
        cached = self.store.get(key)
        if cached is not None:
            logger.debug("Block cache hit %s -> %s", key, cached)
            return int(cached)

        current_height = self.oracle.current_height(chain)
        if current_height < GENESIS_ADJACENT_BLOCK:
            raise InvalidRange(f"{chain.value} reports height {current_height}, nothing to search")

        best_block = self._search(chain, target_timestamp, GENESIS_ADJACENT_BLOCK, current_height)

        self.store.put(key, str(best_block))
        return best_block

    def _search(self, chain, target_timestamp: int, low: int, high: int) -> int:
        logger.info("Binary searching %s blocks %s to %s for ts %s", chain.value, f"{low:,}", f"{high:,}", target_timestamp)

        # None until some probe lands at or before the target
        best_block = None
        iterations = 0
        while low <= high:
            iterations += 1
            mid = (low + high) // 2
            block_ts = self.oracle.timestamp_of(chain, mid)

            if block_ts <= target_timestamp:
                best_block = mid
                low = mid + 1
            else:
                high = mid - 1

        if best_block is None:
            logger.warning("Target ts %s predates block %s on %s, clamping", target_timestamp, GENESIS_ADJACENT_BLOCK, chain.value)
            best_block = GENESIS_ADJACENT_BLOCK

        logger.info("Found %s block %s (%s iterations)", chain.value, f"{best_block:,}", iterations)
        return best_block

    def resolve_block_for_date(self, chain, day: DateLike, now: Optional[float] = None) -> ResolvedBlock:
        """Resolve the last block of a calendar day (UTC)"""
        chain = parse_chain(chain)
        target = ensure_past_end_of_day(day, now=now)
        return ResolvedBlock(chain=chain, block_number=self.resolve_block(chain, target), target_timestamp=target)


_resolver: Optional[TemporalBlockResolver] = None


def get_block_resolver() -> TemporalBlockResolver:
    """Singleton resolver using the default oracle and store"""
    global _resolver
    if _resolver is None:
        _resolver = TemporalBlockResolver()
    return _resolver
