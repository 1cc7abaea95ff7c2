"""
Persistent key-value store for cached balance data and encrypted history.

Everything is stored as strings under owner-namespaced keys. Losing the
store degrades the cached amount but never the derivation chain.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from abc import ABC, abstractmethod

logger = logging.getLogger("gtx_privacy.store")

BALANCE_PREFIX = "gtx_priv_bal_"
ORIGIN_PREFIX = "gtx_priv_origin_"
STAKED_PREFIX = "gtx_priv_staked_"
HISTORY_PREFIX = "gtx_priv_history_"
OFFERS_PREFIX = "gtx_priv_offers_"
CLAIMS_PREFIX = "gtx_priv_claims_"


def namespaced(prefix: str, owner: str) -> str:
    return f"{prefix}{owner}"


class KeyValueStore(ABC):

    @abstractmethod
    def get(self, key: str) -> str | None:
        ...

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        ...

    def get_json(self, key: str, default):
        raw = self.get(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Discarding unparseable value under {key}")
            return default

    def set_json(self, key: str, value) -> None:
        self.set(key, json.dumps(value))


class MemoryStore(KeyValueStore):
    """Process-local store."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def __len__(self) -> int:
        return len(self._data)


class JsonFileStore(KeyValueStore):
    """
    Store backed by a single JSON file, rewritten atomically on each change.

    Args:
        path: File location. Created on first write.
    """

    def __init__(self, path: str) -> None:
        self.path = path
        self._lock = threading.Lock()
        self._data: dict[str, str] = {}
        if os.path.exists(path):
            with open(path, encoding="utf-8") as f:
                self._data = json.load(f)

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value
            self._flush()

    def delete(self, key: str) -> None:
        with self._lock:
            if self._data.pop(key, None) is not None:
                self._flush()

    def _flush(self) -> None:
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(self._data, f)
        os.replace(tmp_path, self.path)
