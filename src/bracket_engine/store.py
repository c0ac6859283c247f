"""
Persistence port for tournament state.

State lives under slash-separated paths ("tournaments/t1/bracket"). Writers go
through ``with_transaction``: read the value with its version, let the updater
build a new value, then compare-and-write. A version mismatch means another
writer committed first; the updater is re-run against the fresh value up to a
bounded number of times.
"""
import copy
import logging
import os
import threading
from collections import defaultdict
from typing import Any, Callable, Optional, Tuple

import yaml
from filelock import FileLock

from .errors import EntityNotFound, TransactionConflict

logger = logging.getLogger(__name__)

DEFAULT_RETRIES = 5


class SubscriptionHub:
    """Subscribe to committed values by path. Delivery is synchronous and in-process."""

    def __init__(self):
        self._subscribers = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, path: str, callback: Callable[[str, Any], None]) -> Callable[[], None]:
        with self._lock:
            self._subscribers[path].append(callback)

        def unsubscribe():
            self.unsubscribe(path, callback)
        return unsubscribe

    def unsubscribe(self, path: str, callback) -> None:
        with self._lock:
            callbacks = self._subscribers.get(path, [])
            if callback in callbacks:
                callbacks.remove(callback)

    def publish(self, path: str, value: Any) -> int:
        with self._lock:
            callbacks = list(self._subscribers.get(path, []))
        for callback in callbacks:
            try:
                callback(path, value)
            except Exception:
                logger.exception(f"Subscriber for {path} failed")
        return len(callbacks)


class TransactionPort:
    """Optimistic read-modify-write over versioned values."""

    def __init__(self, retries: int = DEFAULT_RETRIES, hub: Optional[SubscriptionHub] = None):
        self.retries = retries
        self.hub = hub or SubscriptionHub()
        self._locks = {}
        self._locks_guard = threading.Lock()

    def lock_for(self, path: str):
        """Exclusive lock for a path, held across multi-step operations."""
        with self._locks_guard:
            return self._locks.setdefault(path, threading.RLock())

    def read(self, path: str) -> Tuple[Any, int]:
        """Return (value, version); a missing path is (None, 0)."""
        raise NotImplementedError

    def compare_and_set(self, path: str, expected_version: int, value: Any) -> bool:
        raise NotImplementedError

    def get(self, path: str, required: bool = False):
        value, _ = self.read(path)
        if value is None and required:
            raise EntityNotFound(f"Nothing stored at {path}", path=path)
        return copy.deepcopy(value)

    def with_transaction(self, path: str, updater: Callable[[Any], Any]):
        """
        Apply ``updater`` to the current value and commit the result.

        The updater receives a private copy and returns the new value (None
        aborts without writing). It may run more than once, so it must not
        have side effects outside its return value. Raises TransactionConflict
        when every attempt lost the race.
        """
        for attempt in range(1, self.retries + 1):
            value, version = self.read(path)
            new_value = updater(copy.deepcopy(value))
            if new_value is None:
                return value
            if self.compare_and_set(path, version, new_value):
                self.hub.publish(path, new_value)
                return new_value
            logger.warning(f"Write conflict on {path} (attempt {attempt}/{self.retries}), retrying")

        raise TransactionConflict(f"Could not commit {path} after {self.retries} attempts",
                                  path=path, attempts=self.retries)


class MemoryStore(TransactionPort):
    def __init__(self, retries: int = DEFAULT_RETRIES, hub: Optional[SubscriptionHub] = None):
        super().__init__(retries, hub)
        self._values = {}
        self._lock = threading.Lock()

    def read(self, path):
        with self._lock:
            version, value = self._values.get(path, (0, None))
            return copy.deepcopy(value), version

    def compare_and_set(self, path, expected_version, value):
        with self._lock:
            version, _ = self._values.get(path, (0, None))
            if version != expected_version:
                return False
            self._values[path] = (version + 1, copy.deepcopy(value))
            return True


class YamlStore(TransactionPort):
    """One YAML file per path under ``root``; writes are guarded by a file lock."""

    def __init__(self, root: str, retries: int = DEFAULT_RETRIES, lock_timeout: float = 10,
                 hub: Optional[SubscriptionHub] = None):
        super().__init__(retries, hub)
        self.root = root
        self.lock_timeout = lock_timeout

    def _file_path(self, path: str) -> str:
        parts = [p for p in path.strip('/').split('/') if p]
        if not parts or any(p in ('.', '..') for p in parts):
            raise EntityNotFound(f"Invalid store path: {path}", path=path)
        return os.path.join(self.root, *parts) + '.yaml'

    def _load(self, file_path):
        if not os.path.exists(file_path):
            return None, 0
        with open(file_path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
        return data.get('value'), data.get('version', 0)

    def lock_for(self, path: str) -> FileLock:
        lock_path = self._file_path(path) + '.lock'
        os.makedirs(os.path.dirname(lock_path), exist_ok=True)
        return FileLock(lock_path, timeout=self.lock_timeout)

    def read(self, path):
        return self._load(self._file_path(path))

    def compare_and_set(self, path, expected_version, value):
        file_path = self._file_path(path)
        os.makedirs(os.path.dirname(file_path), exist_ok=True)
        with self.lock_for(path):
            _, version = self._load(file_path)
            if version != expected_version:
                return False
            tmp_path = file_path + '.tmp'
            with open(tmp_path, 'w', encoding='utf-8') as f:
                yaml.dump({'version': version + 1, 'value': value}, f, default_flow_style=False)
            os.replace(tmp_path, file_path)
        return True
