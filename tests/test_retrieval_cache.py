"""
Retrieval cache tests.
"""

import pytest
from sqlalchemy import select

from app.models import RetrievalCacheEntry
from app.services.retrieval_cache import RetrievalCache, build_key

VECTOR = [0.1, 0.2, 0.3, 0.4]


def test_build_key_is_stable_and_normalized():
    key = build_key("u1", "  remote leadership  ", "educativo")
    assert key == build_key("u1", "remote leadership", "educativo")
    assert len(key) == 32
    assert key != build_key("u2", "remote leadership", "educativo")
    assert build_key("u1", "topic", None) == build_key("u1", "topic", "all")


@pytest.mark.asyncio
async def test_put_then_get_round_trip(retrieval_cache: RetrievalCache):
    key = build_key("u1", "remote leadership", "educativo")
    write = await retrieval_cache.put(key, "u1", VECTOR, ["p1", "p2"], ["v1"])
    assert write.ok

    hit = await retrieval_cache.get(key, "u1")

    assert hit is not None
    assert hit.user_post_ids == ["p1", "p2"]
    assert hit.viral_post_ids == ["v1"]
    assert hit.query_embedding == VECTOR
    assert hit.hit_count == 1
    assert hit.viral_fallback is False


@pytest.mark.asyncio
async def test_fallback_marker_round_trips(retrieval_cache: RetrievalCache):
    key = build_key("u1", "topic", "promocional")
    await retrieval_cache.put(key, "u1", VECTOR, [], ["v1", "v2"], viral_fallback=True)

    hit = await retrieval_cache.get(key, "u1")
    assert hit.viral_fallback is True

    await retrieval_cache.put(key, "u1", VECTOR, [], ["v3"])
    assert (await retrieval_cache.get(key, "u1")).viral_fallback is False


@pytest.mark.asyncio
async def test_entry_expires_after_ttl(retrieval_cache: RetrievalCache, clock):
    key = build_key("u1", "topic", None)
    await retrieval_cache.put(key, "u1", VECTOR, ["p1"], [])

    clock.advance(hours=23, minutes=59)
    assert await retrieval_cache.get(key, "u1") is not None

    clock.advance(minutes=1)
    assert await retrieval_cache.get(key, "u1") is None


@pytest.mark.asyncio
async def test_overwrite_resets_hit_count(retrieval_cache: RetrievalCache, session_factory):
    key = build_key("u1", "topic", "educativo")
    await retrieval_cache.put(key, "u1", VECTOR, ["p1"], [])
    await retrieval_cache.get(key, "u1")
    await retrieval_cache.get(key, "u1")

    await retrieval_cache.put(key, "u1", VECTOR, ["p9"], ["v9"])

    async with session_factory() as session:
        entry = await session.get(RetrievalCacheEntry, key)
    assert entry.hit_count == 0
    assert entry.top_user_posts == ["p9"]


@pytest.mark.asyncio
async def test_expired_entries_evicted_on_next_write(
    retrieval_cache: RetrievalCache, session_factory, clock
):
    old_key = build_key("u1", "old topic", None)
    await retrieval_cache.put(old_key, "u1", VECTOR, ["p1"], [])

    clock.advance(hours=25)
    new_key = build_key("u1", "new topic", None)
    await retrieval_cache.put(new_key, "u1", VECTOR, ["p2"], [])

    async with session_factory() as session:
        keys = set(await session.scalars(select(RetrievalCacheEntry.query_hash)))
    assert keys == {new_key}


@pytest.mark.asyncio
async def test_other_users_cannot_read_entry(retrieval_cache: RetrievalCache):
    key = build_key("u1", "topic", None)
    await retrieval_cache.put(key, "u1", VECTOR, ["p1"], [])
    assert await retrieval_cache.get(key, "u2") is None


@pytest.mark.asyncio
async def test_storage_errors_are_swallowed(clock):
    def broken_factory():
        raise RuntimeError("database down")

    cache = RetrievalCache(broken_factory, ttl_hours=24, clock=clock)

    assert await cache.get("abc", "u1") is None
    result = await cache.put("abc", "u1", VECTOR, [], [])
    assert not result.ok
    assert result.operation == "cache_write"
    assert "database down" in result.error
