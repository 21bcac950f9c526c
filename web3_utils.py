"""
Balance Snapshot - Web3 Connection Utilities
One cached Web3 connection per chain, with RPC call statistics
"""
from web3 import Web3
from typing import Dict, Optional
from collections import defaultdict, deque
import logging
import threading
import time

from config import Chain, endpoint_for, parse_chain, REQUEST_TIMEOUT

logger = logging.getLogger(__name__)

# Global RPC tracking (shared across all modules)
_rpc_call_success = defaultdict(int)
_rpc_call_errors = defaultdict(int)
_rpc_response_times = defaultdict(lambda: deque(maxlen=100))
_stats_lock = threading.Lock()


def _provider_label(url: str) -> str:
    # Strip path so API keys embedded in URLs never reach logs or stats
    return url.split('/')[2] if url.count('/') >= 2 else url[:30]


def track_rpc_success(chain: Chain, response_time: float):
    """Track successful RPC call"""
    with _stats_lock:
        _rpc_call_success[chain] += 1
        _rpc_response_times[chain].append(response_time)


def track_rpc_error(chain: Chain):
    """Track failed RPC call"""
    with _stats_lock:
        _rpc_call_errors[chain] += 1


class TrackedWeb3:
    """Web3 wrapper that tracks all RPC calls for statistics"""
    def __init__(self, web3_instance: Web3, chain: Chain):
        self._web3 = web3_instance
        self._chain = chain

    def __getattr__(self, name):
        attr = getattr(self._web3, name)
        if name == 'eth':
            return TrackedEth(attr, self._chain)
        return attr


class TrackedEth:
    """Wrapper for web3.eth that tracks all method calls and RPC-backed properties"""

    # Local factories; the node is only hit by the contract call itself (see call_contract)
    LOCAL_ATTRIBUTES = frozenset({'contract'})

    def __init__(self, eth_module, chain: Chain):
        self._eth = eth_module
        self._chain = chain

    def __getattr__(self, name):
        if name in self.LOCAL_ATTRIBUTES:
            return getattr(self._eth, name)
        start_time = time.time()
        try:
            # Properties like block_number hit the node on access
            attr = getattr(self._eth, name)
        except Exception:
            track_rpc_error(self._chain)
            raise
        if not callable(attr):
            track_rpc_success(self._chain, time.time() - start_time)
            return attr

        def tracked_call(*args, **kwargs):
            call_start = time.time()
            try:
                result = attr(*args, **kwargs)
            except Exception:
                track_rpc_error(self._chain)
                raise
            track_rpc_success(self._chain, time.time() - call_start)
            return result
        return tracked_call


def call_contract(chain: Chain, contract_function, **call_kwargs):
    """Run contract_function.call(**call_kwargs) and record it in the RPC stats"""
    start_time = time.time()
    try:
        result = contract_function.call(**call_kwargs)
    except Exception:
        track_rpc_error(chain)
        raise
    track_rpc_success(chain, time.time() - start_time)
    return result


def get_rpc_stats() -> Dict:
    """Get global RPC statistics per chain"""
    stats = []
    with _stats_lock:
        chains = set(_rpc_call_success) | set(_rpc_call_errors)
        for chain in chains:
            success = _rpc_call_success[chain]
            errors = _rpc_call_errors[chain]
            total = success + errors
            times = _rpc_response_times[chain]

            stats.append({
                'chain': chain.value,
                'success': success,
                'errors': errors,
                'total': total,
                'success_rate': (success / total * 100) if total > 0 else 0,
                'avg_response_time': sum(times) / len(times) if times else 0,
            })
        total_success = sum(_rpc_call_success.values())
        total_errors = sum(_rpc_call_errors.values())

    # Sort by total requests (descending), then by success rate (descending)
    stats.sort(key=lambda x: (-x['total'], -x['success_rate'], x['avg_response_time']))

    return {
        'stats': stats,
        'total_requests': total_success + total_errors,
        'total_success': total_success,
        'total_errors': total_errors,
    }


def reset_rpc_stats():
    with _stats_lock:
        _rpc_call_success.clear()
        _rpc_call_errors.clear()
        _rpc_response_times.clear()


_connections: Dict[Chain, TrackedWeb3] = {}
_connections_lock = threading.Lock()


def get_web3(chain, timeout: Optional[int] = None, force_new: bool = False) -> TrackedWeb3:
    """
    Get the Web3 instance for a chain.

    The endpoint comes from config.endpoint_for, so a missing required
    credential raises ConfigurationError here. No connectivity probe is made;
    transport failures surface on the first real call.

    Args:
        chain: Chain or chain name
        timeout: Request timeout in seconds (default config.REQUEST_TIMEOUT)
        force_new: Ignore the cached connection
    """
    chain = parse_chain(chain)
    with _connections_lock:
        if not force_new and chain in _connections:
            return _connections[chain]

        url = endpoint_for(chain)
        timeout = timeout or REQUEST_TIMEOUT
        logger.info("Connecting to %s via %s (timeout=%ss)", chain.value, _provider_label(url), timeout)
        w3 = Web3(Web3.HTTPProvider(url, request_kwargs={"timeout": timeout}))
        tracked = TrackedWeb3(w3, chain)
        _connections[chain] = tracked
        return tracked
