"""
tokens.py — Bearer Token Cache with Single-Flight Refresh

Token-based couriers issue short-lived access tokens. The cache keeps one entry
per provider and refreshes it shortly before expiry. When several dispatch
threads find the token stale at the same time, only one of them calls the
provider; the others wait on its in-flight future.
"""

import logging
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

log = logging.getLogger(__name__)

REFRESH_MARGIN_SECONDS = 60
INFLIGHT_WAIT_SECONDS = 30


@dataclass(frozen=True)
class CachedToken:
    token: str
    expires_at: float

    def is_fresh(self, now: float, margin: float) -> bool:
        return now < self.expires_at - margin


class TokenCache:
    """
    One provider's token.

    Args:
        refresh_margin (float): Seconds before expiry at which the token counts as stale.
        clock (Callable): Monotonic time source, injectable for tests.
    """

    def __init__(self, refresh_margin: float = REFRESH_MARGIN_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.refresh_margin = refresh_margin
        self.clock = clock
        self._lock = threading.Lock()
        self._entry: Optional[CachedToken] = None
        self._inflight: Optional[Future] = None

    def get(self, fetch: Callable[[], Tuple[str, float]]) -> str:
        """
        Returns a fresh token, calling `fetch` at most once per refresh.

        Args:
            fetch: Returns (token, lifetime in seconds). Exceptions propagate to every waiter.
        """
        with self._lock:
            entry = self._entry
            if entry is not None and entry.is_fresh(self.clock(), self.refresh_margin):
                return entry.token
            future = self._inflight
            leader = future is None
            if leader:
                future = self._inflight = Future()

        if not leader:
            return future.result(timeout=INFLIGHT_WAIT_SECONDS)

        try:
            token, lifetime = fetch()
        except BaseException as e:
            with self._lock:
                self._inflight = None
            future.set_exception(e)
            raise

        with self._lock:
            self._entry = CachedToken(token=token, expires_at=self.clock() + lifetime)
            self._inflight = None
        future.set_result(token)
        return token

    def invalidate(self):
        with self._lock:
            self._entry = None


_caches: Dict[str, TokenCache] = {}
_caches_lock = threading.Lock()


def token_cache_for(key: str) -> TokenCache:
    """Process-wide cache per provider id."""
    with _caches_lock:
        cache = _caches.get(key)
        if cache is None:
            cache = _caches[key] = TokenCache()
        return cache


def reset_token_caches():
    with _caches_lock:
        _caches.clear()
