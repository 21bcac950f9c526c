"""Shared pytest fixtures."""

import os
import sys

import pytest

ROOT = os.path.dirname(os.path.abspath(__file__))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

import forex  # noqa: E402
import web3_utils  # noqa: E402
from memo_store import MemoStore  # noqa: E402


@pytest.fixture
def memo_store(tmp_path):
    """Fresh, empty store in a per-test directory."""
    return MemoStore(str(tmp_path / "memo_cache.json"))


@pytest.fixture(autouse=True)
def _reset_module_state():
    forex.clear_cache()
    web3_utils.reset_rpc_stats()
    yield
    forex.clear_cache()
    web3_utils.reset_rpc_stats()
