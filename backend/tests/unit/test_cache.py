from __future__ import annotations

from unittest.mock import patch

import anyio
import pytest

from orgchart.core.cache import TTLCache


def test_set_and_get_until_expiry():
    cache = TTLCache()
    with patch("orgchart.core.cache.time.time", return_value=1000.0):
        cache.set("k", "v", ttl=60)
    with patch("orgchart.core.cache.time.time", return_value=1059.0):
        assert cache.get("k") == "v"
    with patch("orgchart.core.cache.time.time", return_value=1060.0):
        assert cache.get("k") is None
        assert cache.peek("k") == "v"


def test_invalidate_prefix_only_removes_matching_keys():
    cache = TTLCache()
    cache.set("orgchart:all", [1], ttl=60)
    cache.set("orgchart:dept:Eng", [2], ttl=60)
    cache.set("jwks:tenant", {"keys": []}, ttl=60)

    assert cache.invalidate_prefix("orgchart") == 2
    assert cache.get("orgchart:all") is None
    assert cache.get("orgchart:dept:Eng") is None
    assert cache.get("jwks:tenant") == {"keys": []}


@pytest.mark.anyio
async def test_get_or_compute_caches_result():
    cache = TTLCache()
    calls = 0

    async def compute():
        nonlocal calls
        calls += 1
        return ["node"]

    assert await cache.get_or_compute("k", 60, compute) == ["node"]
    assert await cache.get_or_compute("k", 60, compute) == ["node"]
    assert calls == 1


@pytest.mark.anyio
async def test_concurrent_misses_compute_once():
    cache = TTLCache()
    calls = 0
    results = []

    async def compute():
        nonlocal calls
        calls += 1
        await anyio.sleep(0.01)
        return calls

    async def worker():
        results.append(await cache.get_or_compute("k", 60, compute))

    async with anyio.create_task_group() as tg:
        for _ in range(5):
            tg.start_soon(worker)

    assert calls == 1
    assert results == [1] * 5


@pytest.mark.anyio
async def test_failed_compute_is_not_cached():
    cache = TTLCache()

    async def boom():
        raise RuntimeError("store down")

    async def ok():
        return "fresh"

    with pytest.raises(RuntimeError):
        await cache.get_or_compute("k", 60, boom)
    assert await cache.get_or_compute("k", 60, ok) == "fresh"


@pytest.mark.anyio
async def test_invalidation_during_compute_drops_stale_result():
    cache = TTLCache()
    source = {"value": "old"}
    started = anyio.Event()
    release = anyio.Event()

    async def slow_compute():
        value = source["value"]
        started.set()
        await release.wait()
        return value

    async def fast_compute():
        return source["value"]

    results = []

    async def reader():
        results.append(await cache.get_or_compute("orgchart:all", 60, slow_compute))

    async with anyio.create_task_group() as tg:
        tg.start_soon(reader)
        await started.wait()
        source["value"] = "new"
        cache.invalidate_prefix("orgchart")
        release.set()

    assert results == ["old"]
    assert cache.get("orgchart:all") is None
    assert await cache.get_or_compute("orgchart:all", 60, fast_compute) == "new"


@pytest.mark.anyio
async def test_unrelated_invalidation_keeps_computed_result():
    cache = TTLCache()

    async def compute():
        cache.invalidate_prefix("jwks")
        return "nodes"

    await cache.get_or_compute("orgchart:all", 60, compute)
    assert cache.get("orgchart:all") == "nodes"
