import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from order_pipeline.couriers.tokens import TokenCache, reset_token_caches, token_cache_for


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def test_concurrent_callers_share_one_fetch():
    cache = TokenCache()
    calls = []
    release = threading.Event()

    def fetch():
        calls.append(1)
        release.wait(timeout=5)
        return "tok", 3600

    with ThreadPoolExecutor(max_workers=8) as pool:
        futures = [pool.submit(cache.get, fetch) for _ in range(8)]
        time.sleep(0.2)
        release.set()
        tokens = [f.result(timeout=5) for f in futures]

    assert tokens == ["tok"] * 8
    assert len(calls) == 1


def test_token_refreshed_within_margin_of_expiry():
    clock = FakeClock()
    cache = TokenCache(refresh_margin=60, clock=clock)
    issued = iter(["first", "second"])

    def fetch():
        return next(issued), 3600

    assert cache.get(fetch) == "first"
    clock.now += 3500
    assert cache.get(fetch) == "first"
    clock.now += 50
    assert cache.get(fetch) == "second"


def test_failed_fetch_propagates_and_next_call_retries():
    cache = TokenCache()

    def broken():
        raise RuntimeError("auth down")

    with pytest.raises(RuntimeError):
        cache.get(broken)
    assert cache.get(lambda: ("tok", 3600)) == "tok"


def test_invalidate_forces_refetch():
    cache = TokenCache()
    issued = iter(["first", "second"])
    fetch = lambda: (next(issued), 3600)

    cache.get(fetch)
    cache.invalidate()

    assert cache.get(fetch) == "second"


def test_registry_is_per_provider():
    assert token_cache_for("a") is token_cache_for("a")
    assert token_cache_for("a") is not token_cache_for("b")
    first = token_cache_for("a")
    reset_token_caches()
    assert token_cache_for("a") is not first
