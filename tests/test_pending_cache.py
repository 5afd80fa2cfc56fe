import asyncio

import pytest

from fairguard.cache.pending_cache import TTLCache


class _Monotonic:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def mono() -> _Monotonic:
    return _Monotonic()


def test_set_get_without_running_loop(mono) -> None:
    cache: TTLCache[str] = TTLCache(10, clock=mono)

    deadline = cache.set("k", "v")

    assert deadline == 1010.0
    assert cache.get("k") == "v"
    assert cache.has("k")
    assert len(cache) == 1


def test_lazy_expiry_fires_hook_once(mono) -> None:
    expired = []
    cache: TTLCache[str] = TTLCache(10, on_expire=lambda k, v: expired.append((k, v)), clock=mono)
    cache.set("k", "v")

    mono.now += 10

    assert cache.get("k") is None
    assert cache.get("k") is None
    assert expired == [("k", "v")]


def test_pop_is_consuming(mono) -> None:
    cache: TTLCache[str] = TTLCache(10, clock=mono)
    cache.set("k", "v")

    assert cache.pop("k") == "v"
    assert cache.pop("k") is None
    assert not cache.has("k")


def test_pop_of_expired_entry_returns_none(mono) -> None:
    expired = []
    cache: TTLCache[str] = TTLCache(10, on_expire=lambda k, v: expired.append(k), clock=mono)
    cache.set("k", "v")
    mono.now += 11

    assert cache.pop("k") is None
    assert expired == ["k"]


def test_cleanup_removes_only_expired(mono) -> None:
    expired = []
    cache: TTLCache[str] = TTLCache(10, on_expire=lambda k, v: expired.append(k), clock=mono)
    cache.set("old", "a", ttl=5)
    cache.set("new", "b", ttl=50)
    mono.now += 6

    assert cache.cleanup() == 1
    assert cache.cleanup() == 0
    assert expired == ["old"]
    assert cache.get("new") == "b"


def test_delete_and_clear_do_not_fire_hook(mono) -> None:
    expired = []
    cache: TTLCache[str] = TTLCache(10, on_expire=lambda k, v: expired.append(k), clock=mono)
    cache.set("a", "1")
    cache.set("b", "2")

    assert cache.delete("a") is True
    assert cache.delete("a") is False
    cache.clear()

    assert len(cache) == 0
    assert expired == []


@pytest.mark.asyncio
async def test_timer_expires_entry_with_running_loop() -> None:
    expired = []
    cache: TTLCache[str] = TTLCache(0.01, on_expire=lambda k, v: expired.append((k, v)))
    cache.set("k", "v")

    await asyncio.sleep(0.05)

    assert expired == [("k", "v")]
    assert len(cache) == 0


@pytest.mark.asyncio
async def test_replacing_a_key_cancels_the_old_timer() -> None:
    expired = []
    cache: TTLCache[str] = TTLCache(0.01, on_expire=lambda k, v: expired.append(v))
    cache.set("k", "first")
    cache.set("k", "second", ttl=60)

    await asyncio.sleep(0.05)

    assert expired == []
    assert cache.get("k") == "second"
    cache.clear()


@pytest.mark.asyncio
async def test_async_hook_failure_is_contained(mono) -> None:
    seen = []

    async def hook(key, value):
        seen.append(key)
        raise RuntimeError("notification failed")

    cache: TTLCache[str] = TTLCache(10, on_expire=hook, clock=mono)
    cache.set("k", "v")
    mono.now += 10

    assert cache.cleanup() == 1
    await cache.drain_callbacks()

    assert seen == ["k"]
    cache.clear()


@pytest.mark.asyncio
async def test_concurrent_consumers_get_the_value_exactly_once(mono) -> None:
    cache: TTLCache[str] = TTLCache(10, clock=mono)
    cache.set("k", "v")

    async def consume():
        await asyncio.sleep(0)
        return cache.pop("k")

    results = await asyncio.gather(*(consume() for _ in range(10)))

    assert results.count("v") == 1
    assert results.count(None) == 9
