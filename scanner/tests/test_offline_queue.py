import asyncio
import re

import pytest

from scanner.errors import StorageUnavailable
from scanner.offline_queue import CachedStudent, OfflineQueue, new_local_id


def test_local_ids_are_timestamped_and_distinct():
    ids = {new_local_id() for _ in range(500)}
    assert len(ids) == 500
    assert all(re.fullmatch(r"offline_\d{13}_[0-9a-z]{9}", i) for i in ids)


def test_init_is_idempotent(queue):
    async def scenario():
        await queue.init()
        await queue.init()
        return await queue.list_unsynced()

    assert asyncio.run(scenario()) == []
    assert queue.db_path.exists()


def test_enqueue_lists_in_arrival_order(queue):
    async def scenario():
        first = await queue.enqueue("IEEE-1", "One")
        second = await queue.enqueue("IEEE-2", "Two")
        third = await queue.enqueue("IEEE-3", "Three", timestamp="2026-10-17T09:00:00.000+00:00")
        return [first, second, third], await queue.list_unsynced()

    ids, pending = asyncio.run(scenario())
    assert [p.id for p in pending] == ids
    assert [p.code for p in pending] == ["IEEE-1", "IEEE-2", "IEEE-3"]
    assert all(p.synced is False for p in pending)
    assert pending[2].timestamp == "2026-10-17T09:00:00.000+00:00"


def test_mark_synced_is_idempotent(queue):
    async def scenario():
        keep = await queue.enqueue("IEEE-1", "One")
        done = await queue.enqueue("IEEE-2", "Two")
        await queue.mark_synced(done)
        after_first = await queue.list_unsynced()
        await queue.mark_synced(done)
        await queue.mark_synced("offline_0_doesnotexist")
        after_second = await queue.list_unsynced()
        return keep, after_first, after_second

    keep, after_first, after_second = asyncio.run(scenario())
    assert [p.id for p in after_first] == [keep]
    assert after_second == after_first


def test_entries_survive_a_new_queue_instance(tmp_path):
    path = tmp_path / "offline.db"

    async def write():
        return await OfflineQueue(path).enqueue("IEEE-9", "Nine")

    async def read():
        return await OfflineQueue(path).list_unsynced()

    local_id = asyncio.run(write())
    assert [p.id for p in asyncio.run(read())] == [local_id]


def test_roster_cache_lookup(queue):
    async def scenario():
        await queue.store_roster(
            [CachedStudent("IEEE-1", "One"), CachedStudent("IEEE-2", "Two", section="B")]
        )
        hit = await queue.find_student("IEEE-2")
        miss = await queue.find_student("IEEE-3")
        listed = await queue.list_students()
        await queue.store_roster([CachedStudent("IEEE-3", "Three")])
        replaced = await queue.find_student("IEEE-1")
        return hit, miss, listed, replaced, await queue.list_students()

    hit, miss, listed, replaced, after = asyncio.run(scenario())
    assert hit == CachedStudent("IEEE-2", "Two", "", "", "B")
    assert miss is None
    assert [s.qr_id for s in listed] == ["IEEE-1", "IEEE-2"]
    assert replaced is None
    assert [s.name for s in after] == ["Three"]


def test_unusable_storage_raises_storage_unavailable(tmp_path):
    # A directory cannot be opened as a database file.
    broken = OfflineQueue(tmp_path)

    with pytest.raises(StorageUnavailable):
        asyncio.run(broken.enqueue("IEEE-1", "One"))
    with pytest.raises(StorageUnavailable):
        asyncio.run(broken.list_unsynced())
    with pytest.raises(StorageUnavailable):
        asyncio.run(broken.mark_synced("offline_1_abc"))
