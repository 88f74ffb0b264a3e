import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_TTL = 3600  # 1 hour


class CacheBackend(ABC):
    """Key/value cache injected into the ledger services.

    Values are derived data (balances, settlement suggestions, expense pages);
    a miss always falls back to recomputation.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        pass

    @abstractmethod
    def set(self, key: str, value: Any, ttl: int = DEFAULT_TTL) -> None:
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        pass

    @abstractmethod
    def invalidate_prefix(self, prefix: str) -> int:
        """Remove every key starting with prefix and return how many were removed."""


class InMemoryCache(CacheBackend):
    """Process-local TTL cache, safe to share between threads"""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[str, Tuple[float, Any]] = {}

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None

            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None

            return value

    def set(self, key: str, value: Any, ttl: int = DEFAULT_TTL) -> None:
        with self._lock:
            self._entries[key] = (self._clock() + ttl, value)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def invalidate_prefix(self, prefix: str) -> int:
        with self._lock:
            keys = [key for key in self._entries if key.startswith(prefix)]
            for key in keys:
                del self._entries[key]

        if keys:
            logger.debug(f"Invalidated {len(keys)} cache entries with prefix '{prefix}'")
        return len(keys)


def group_prefix(group_id: str) -> str:
    return f"group:{group_id}:"


def balances_key(group_id: str) -> str:
    return f"{group_prefix(group_id)}balances"


def settlements_key(group_id: str, strategy: str) -> str:
    return f"{group_prefix(group_id)}settlements:{strategy}"


def expenses_page_key(group_id: str, page: int, limit: int) -> str:
    return f"{group_prefix(group_id)}expenses:page:{page}:limit:{limit}"


def user_groups_key(user_id: str) -> str:
    return f"user:{user_id}:groups"


def invalidate_group(cache: Optional[CacheBackend], group_id: str) -> None:
    """Drop every derived value cached for a group after a mutation"""
    if cache is not None:
        cache.invalidate_prefix(group_prefix(group_id))
