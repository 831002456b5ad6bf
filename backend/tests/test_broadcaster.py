"""Broadcaster worker: ordering, snapshot semantics, lifecycle."""

import asyncio

from models import Broadcaster, ListenerRegistry


def _run(coro):
    return asyncio.run(coro)


def _drain(listener):
    items = []
    while not listener.queue.empty():
        items.append(listener.queue.get_nowait())
    return items


class FlakyRegistry(ListenerRegistry):
    """Fails the first fan-out, then behaves."""

    def __init__(self):
        super().__init__()
        self.failed = False

    def fan_out(self, message):
        if not self.failed:
            self.failed = True
            raise RuntimeError("boom")
        return super().fan_out(message)


class TestBroadcaster:

    def test_every_listener_gets_every_message_in_order(self):

        async def _test():
            registry = ListenerRegistry()
            broadcaster = Broadcaster(registry)
            listeners = [registry.add_listener() for _ in range(4)]
            broadcaster.start()
            messages = [f"payload-{i}" for i in range(25)]
            for message in messages:
                await broadcaster.publish(message)
            await asyncio.wait_for(broadcaster.join(), timeout=1)
            await broadcaster.stop()
            return listeners, messages, broadcaster

        listeners, messages, broadcaster = _run(_test())
        for listener in listeners:
            assert _drain(listener) == messages
        assert broadcaster.published == 25
        assert broadcaster.delivered == 100

    def test_listener_added_later_misses_earlier_messages(self):

        async def _test():
            registry = ListenerRegistry()
            broadcaster = Broadcaster(registry)
            broadcaster.start()
            early = registry.add_listener()
            await broadcaster.publish("first")
            await asyncio.wait_for(broadcaster.join(), timeout=1)
            late = registry.add_listener()
            await broadcaster.publish("second")
            await asyncio.wait_for(broadcaster.join(), timeout=1)
            await broadcaster.stop()
            return early, late

        early, late = _run(_test())
        assert _drain(early) == ["first", "second"]
        assert _drain(late) == ["second"]

    def test_removed_listener_misses_later_messages(self):

        async def _test():
            registry = ListenerRegistry()
            broadcaster = Broadcaster(registry)
            broadcaster.start()
            listener = registry.add_listener()
            registry.remove_listener(listener.idx)
            await broadcaster.publish("after removal")
            await asyncio.wait_for(broadcaster.join(), timeout=1)
            await broadcaster.stop()
            return listener

        assert _drain(_run(_test())) == []

    def test_publish_without_listeners_is_dropped(self):

        async def _test():
            broadcaster = Broadcaster(ListenerRegistry())
            broadcaster.start()
            await broadcaster.publish("hello")
            await asyncio.wait_for(broadcaster.join(), timeout=1)
            await broadcaster.stop()
            return broadcaster

        broadcaster = _run(_test())
        assert broadcaster.published == 1
        assert broadcaster.delivered == 0

    def test_start_is_idempotent(self):

        async def _test():
            broadcaster = Broadcaster(ListenerRegistry())
            first = broadcaster.start()
            second = broadcaster.start()
            running = broadcaster.running
            await broadcaster.stop()
            return first, second, running, broadcaster.running

        first, second, running, after_stop = _run(_test())
        assert first is second
        assert running
        assert not after_stop

    def test_stop_without_start(self):

        async def _test():
            broadcaster = Broadcaster(ListenerRegistry())
            await broadcaster.stop()
            return broadcaster.running

        assert _run(_test()) is False

    def test_fan_out_error_does_not_kill_the_worker(self):

        async def _test():
            registry = FlakyRegistry()
            broadcaster = Broadcaster(registry)
            listener = registry.add_listener()
            broadcaster.start()
            await broadcaster.publish("lost")
            await broadcaster.publish("kept")
            await asyncio.wait_for(broadcaster.join(), timeout=1)
            running = broadcaster.running
            await broadcaster.stop()
            return listener, running

        listener, running = _run(_test())
        assert running
        assert _drain(listener) == ["kept"]

    def test_publish_waits_while_inbound_queue_is_full(self):

        async def _test():
            broadcaster = Broadcaster(ListenerRegistry(), maxsize=1)
            await broadcaster.publish("fills the queue")
            blocked = asyncio.create_task(broadcaster.publish("waits"))
            await asyncio.sleep(0.05)
            was_blocked = not blocked.done()
            broadcaster.start()
            await asyncio.wait_for(blocked, timeout=1)
            await asyncio.wait_for(broadcaster.join(), timeout=1)
            await broadcaster.stop()
            return was_blocked, broadcaster.published

        was_blocked, published = _run(_test())
        assert was_blocked
        assert published == 2

    def test_reader_wakes_when_listener_is_closed(self):

        async def _test():
            registry = ListenerRegistry()
            listener = registry.add_listener()
            reader = asyncio.create_task(listener.queue.get())
            await asyncio.sleep(0)
            registry.close_all()
            return await asyncio.wait_for(reader, timeout=1)

        assert _run(_test()) is None
