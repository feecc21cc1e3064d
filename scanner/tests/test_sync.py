import asyncio

import database.db as db
from scanner.client import MarkResponse
from scanner.connectivity import ConnectivityMonitor
from scanner.dispatcher import ScanDispatcher
from scanner.errors import TransportError
from scanner.offline_queue import OfflineQueue
from scanner.sync import DrainResult, SyncEngine


class Notes:
    def __init__(self):
        self.seen: list[tuple[str, str]] = []

    def __call__(self, title, message):
        self.seen.append((title, message))

    @property
    def titles(self):
        return [title for title, _ in self.seen]


def test_offline_scans_reach_the_server_after_reconnect(store, make_client, queue):
    for i in range(3):
        db.add_student(f"Student {i}", f"IEEE-60{i}")
    notes = Notes()

    async def scenario():
        async with make_client() as client:
            monitor = ConnectivityMonitor(online=False)
            dispatcher = ScanDispatcher(client, queue, monitor)
            engine = SyncEngine(client, queue, notify=notes)
            for i in range(3):
                outcome = await dispatcher.submit(f"IEEE-60{i}")
                assert outcome.offline is True
            assert [r.attendance for r in store.read_roster()] == ["Absent"] * 3

            monitor.set_online(True)
            result = await engine.drain()
            return result, await queue.count_unsynced()

    result, remaining = asyncio.run(scenario())
    assert result == DrainResult(succeeded=3, failed=0)
    assert remaining == 0
    assert [r.attendance for r in store.read_roster()] == ["Present"] * 3
    assert [e.code for e in store.read_audit()] == ["IEEE-600", "IEEE-601", "IEEE-602"]
    assert notes.seen == [("Sync Complete", "Successfully synced 3 attendance records.")]


def test_drain_against_server_handles_duplicate_and_unknown(store, make_client, queue):
    db.add_student("Already Here", "IEEE-700", attendance="Present")
    notes = Notes()

    async def scenario():
        await queue.enqueue("IEEE-700", "Already Here")
        await queue.enqueue("IEEE-799", "Unknown (offline)")
        async with make_client() as client:
            result = await SyncEngine(client, queue, notify=notes).drain()
        return result, await queue.count_unsynced()

    result, remaining = asyncio.run(scenario())
    assert result == DrainResult(succeeded=1, failed=1)
    assert remaining == 0
    assert notes.seen == [
        ("Scan Rejected", "Unknown (offline) (IEEE-799): Student not found"),
        ("Sync Complete", "Successfully synced 1 attendance records."),
    ]


def test_transport_failure_leaves_item_queued_and_batch_continues(fake_client, queue):
    fake_client.answers["A"] = MarkResponse(True, "Student marked present successfully", {"qrId": "A"})
    fake_client.answers["B"] = TransportError("timed out")
    fake_client.answers["C"] = MarkResponse(False, "Student already marked present", {"qrId": "C"})
    notes = Notes()

    async def scenario():
        for code in ("A", "B", "C"):
            await queue.enqueue(code, code)
        result = await SyncEngine(fake_client, queue, notify=notes).drain()
        return result, await queue.list_unsynced()

    result, pending = asyncio.run(scenario())
    assert fake_client.calls == ["A", "B", "C"]
    assert result == DrainResult(succeeded=2, failed=1)
    assert [p.code for p in pending] == ["B"]
    assert notes.seen == []


def test_server_write_failure_is_retried_later(fake_client, queue):
    fake_client.answers["A"] = MarkResponse(False, "Failed to update attendance")

    async def scenario():
        await queue.enqueue("A", "A")
        engine = SyncEngine(fake_client, queue, notify=Notes())
        first = await engine.drain()
        fake_client.answers["A"] = MarkResponse(True, "Student marked present successfully", {"qrId": "A"})
        second = await engine.drain()
        return first, second, await queue.count_unsynced()

    first, second, remaining = asyncio.run(scenario())
    assert first == DrainResult(succeeded=0, failed=1)
    assert second == DrainResult(succeeded=1, failed=0)
    assert remaining == 0


def test_empty_queue_does_not_notify(fake_client, queue):
    notes = Notes()
    result = asyncio.run(SyncEngine(fake_client, queue, notify=notes).drain())
    assert result == DrainResult(0, 0)
    assert notes.seen == []


def test_concurrent_drain_is_skipped(fake_client, queue):
    release = asyncio.Event()

    async def slow_answer():
        await release.wait()
        return MarkResponse(True, "Student marked present successfully", {"qrId": "A"})

    fake_client.answers["A"] = slow_answer

    async def scenario():
        await queue.enqueue("A", "A")
        engine = SyncEngine(fake_client, queue, notify=Notes())
        first = asyncio.create_task(engine.drain())
        while not fake_client.calls:
            await asyncio.sleep(0.01)
        assert engine.draining is True
        second = await engine.drain()
        release.set()
        return await first, second

    first, second = asyncio.run(scenario())
    assert second == DrainResult(0, 0, skipped=True)
    assert first == DrainResult(1, 0)
    assert fake_client.calls == ["A"]


def test_automatic_drains_are_throttled(fake_client, queue):
    now = [100.0]

    async def scenario():
        engine = SyncEngine(fake_client, queue, notify=Notes(), min_interval=30, clock=lambda: now[0])
        first = await engine.maybe_drain()
        second = await engine.maybe_drain()
        now[0] += 31
        third = await engine.maybe_drain()
        forced = await engine.drain()
        return first, second, third, forced

    first, second, third, forced = asyncio.run(scenario())
    assert first == DrainResult(0, 0)
    assert second is None
    assert third == DrainResult(0, 0)
    assert forced == DrainResult(0, 0)


def test_unavailable_storage_notifies_operator(fake_client, tmp_path):
    notes = Notes()
    engine = SyncEngine(fake_client, OfflineQueue(tmp_path), notify=notes)

    assert asyncio.run(engine.maybe_drain()) is None
    assert notes.titles == ["Sync Failed"]


def test_watch_drains_when_connectivity_returns(fake_client, queue):
    fake_client.answers["A"] = MarkResponse(True, "Student marked present successfully", {"qrId": "A"})
    notes = Notes()

    async def scenario():
        await queue.enqueue("A", "A")
        monitor = ConnectivityMonitor(online=False)
        engine = SyncEngine(fake_client, queue, notify=notes, min_interval=0)
        watcher = asyncio.create_task(engine.watch(monitor))
        await asyncio.sleep(0)
        monitor.poll()
        monitor.set_online(True)
        for _ in range(100):
            if await queue.count_unsynced() == 0:
                break
            await asyncio.sleep(0.01)
        monitor.close()
        await asyncio.wait_for(watcher, timeout=1)
        return await queue.count_unsynced()

    assert asyncio.run(scenario()) == 0
    assert fake_client.calls == ["A"]
    assert notes.titles == ["Sync Complete"]


def test_all_rejected_batch_reports_no_success(fake_client, queue):
    fake_client.answers["X"] = MarkResponse(False, "Student not found")
    notes = Notes()

    async def scenario():
        await queue.enqueue("X", "Someone")
        return await SyncEngine(fake_client, queue, notify=notes).drain()

    assert asyncio.run(scenario()) == DrainResult(succeeded=0, failed=1)
    assert notes.titles == ["Scan Rejected"]
