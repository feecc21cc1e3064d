import asyncio

from scanner.connectivity import ConnectivityMonitor, link_state
from scanner.events import EventChannel


def _drain(sub):
    async def collect():
        events = []
        async for event in sub:
            events.append(event)
        return events

    return collect()


def test_only_real_transitions_are_published():
    async def scenario():
        monitor = ConnectivityMonitor(online=True)
        sub = monitor.subscribe()
        monitor.set_online(True)
        monitor.set_online(False)
        monitor.set_online(False)
        monitor.poll()
        monitor.set_online(True)
        queued = sub.pending()
        monitor.unsubscribe(sub)
        return await _drain(sub), monitor.is_online(), queued

    events, online, queued = asyncio.run(scenario())
    assert queued == 3
    assert [(e.kind, e.online) for e in events] == [
        ("offline", False),
        ("poll", False),
        ("online", True),
    ]
    assert online is True


def test_each_subscriber_sees_every_event_once():
    async def scenario():
        monitor = ConnectivityMonitor(online=False)
        first = monitor.subscribe()
        monitor.set_online(True)
        second = monitor.subscribe()
        monitor.set_online(False)
        monitor.close()
        return await _drain(first), await _drain(second)

    first, second = asyncio.run(scenario())
    assert [e.kind for e in first] == ["online", "offline"]
    assert [e.kind for e in second] == ["offline"]


def test_unsubscribed_stream_gets_nothing_new():
    async def scenario():
        channel: EventChannel[int] = EventChannel()
        sub = channel.subscribe()
        channel.publish(1)
        sub.close()
        channel.publish(2)
        sub.close()
        return await _drain(sub), channel.subscriber_count

    events, count = asyncio.run(scenario())
    assert events == [1]
    assert count == 0


def test_run_emits_poll_ticks_until_stopped():
    async def scenario():
        monitor = ConnectivityMonitor(online=True, poll_interval=0.01)
        sub = monitor.subscribe()
        stop = asyncio.Event()
        task = asyncio.create_task(monitor.run(stop))
        await asyncio.sleep(0.05)
        stop.set()
        await asyncio.wait_for(task, timeout=1)
        monitor.unsubscribe(sub)
        return await _drain(sub)

    events = asyncio.run(scenario())
    assert len(events) >= 1
    assert all(e.kind == "poll" and e.online for e in events)


def _fake_sysfs(root, **states):
    for name, state in states.items():
        (root / name).mkdir(parents=True)
        (root / name / "operstate").write_text(f"{state}\n")
    return root


def test_link_state_reads_interface_operstate(tmp_path):
    assert link_state(_fake_sysfs(tmp_path / "a", lo="unknown", eth0="down")) is False
    assert link_state(_fake_sysfs(tmp_path / "b", lo="unknown", eth0="down", wlan0="up")) is True
    assert link_state(_fake_sysfs(tmp_path / "c", wg0="unknown")) is True
    assert link_state(tmp_path / "missing") is None


def test_check_link_follows_the_link_signal():
    async def scenario():
        states = iter([None, False, True])
        monitor = ConnectivityMonitor(online=True, link=lambda: next(states))
        sub = monitor.subscribe()
        monitor.check_link()
        unchanged = monitor.is_online()
        monitor.check_link()
        monitor.check_link()
        monitor.close()
        return unchanged, [e.kind for e in await _drain(sub)]

    unchanged, kinds = asyncio.run(scenario())
    assert unchanged is True
    assert kinds == ["offline", "online"]
