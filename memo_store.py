"""
Balance Snapshot - Memoization Store
Durable, file-backed key/value cache for resolved blocks and prices.

Entries never expire: a resolved block or a historical price for a given key
does not change, so a key is written once and kept forever.
"""
import json
import logging
import os
import tempfile
import threading
from typing import Dict, Optional

import portalocker

import config

logger = logging.getLogger(__name__)


class MemoStore:
    """JSON file store. Writes are atomic (tmp file + os.replace) and serialized
    through an exclusive portalocker lock, so concurrent threads and processes
    never see or produce a half-written file."""

    def __init__(self, path: str):
        self.path = path
        self.lock_path = path + ".lock"
        self._thread_lock = threading.Lock()

    def _ensure_dir(self):
        dirname = os.path.dirname(self.path)
        if dirname:
            os.makedirs(dirname, exist_ok=True)

    def _read_all(self) -> Dict[str, str]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            # Corrupt file; move it aside and start fresh
            logger.error("Memo store %s unreadable (%s), moving to .bad", self.path, e)
            try:
                os.replace(self.path, self.path + ".bad")
            except OSError as move_error:
                logger.warning("Could not move %s aside: %s", self.path, move_error)
            return {}
        if not isinstance(data, dict):
            logger.warning("Memo store %s has unexpected format, ignoring", self.path)
            return {}
        return data

    def _write_all(self, data: Dict[str, str]):
        dirn = os.path.dirname(self.path) or "."
        fd, tmp_path = tempfile.mkstemp(prefix="memo_tmp_", suffix=".json", dir=dirn)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, separators=(',', ':'))
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        finally:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)

    def get(self, key: str) -> Optional[str]:
        """Return the stored value or None. Absence is not an error."""
        value = self._read_all().get(key)
        logger.debug("Memo %s: %s", "hit" if value is not None else "miss", key)
        return value

    def put(self, key: str, value: str) -> None:
        """Store value under key. Durable on disk before returning."""
        if not isinstance(value, str):
            raise TypeError(f"Memo values must be strings, got {type(value).__name__}")
        self._ensure_dir()
        with self._thread_lock:
            with open(self.lock_path, "a", encoding="utf-8") as lf:
                portalocker.lock(lf, portalocker.LockFlags.EXCLUSIVE)
                try:
                    data = self._read_all()
                    existing = data.get(key)
                    if existing is not None:
                        if existing != value:
                            logger.warning("Memo key %s already holds a different value, keeping first", key)
                        return
                    data[key] = value
                    self._write_all(data)
                    logger.debug("Memo stored: %s", key)
                finally:
                    portalocker.unlock(lf)

    def __contains__(self, key: str) -> bool:
        return key in self._read_all()

    def __len__(self) -> int:
        return len(self._read_all())

    def clear(self):
        """Remove all entries (for testing/reset)"""
        with self._thread_lock:
            if os.path.exists(self.path):
                os.remove(self.path)
                logger.info("Cleared memo store %s", self.path)


# Global instance
_store: Optional[MemoStore] = None


def get_store() -> MemoStore:
    """Process-wide store at config.MEMO_CACHE_FILE"""
    global _store
    if _store is None:
        _store = MemoStore(config.MEMO_CACHE_FILE)
    return _store
