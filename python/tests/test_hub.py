"""Tests for the in-process WebSocket hub.

Tests cover:
- Broadcast to every client of a conversation, and only that conversation
- Broadcast and notify return without waiting on any socket
- Failing, slow or backed-up clients are closed and unregistered without
  failing the sender
- Notification table: latest registration wins, stale unregister is a no-op
- close_all closes every socket with 1001
- Reader-writer lock: readers share, writers wait
"""

import asyncio
import time

from kivendi.realtime.hub import ChatHub, HubClient, ReadWriteLock
from tests.support.fakes import FakeSocket


def make_client(
    user_id: int, conversation_id: int | None = None, queue_size: int = 64, **socket_kwargs
):
    socket = FakeSocket(**socket_kwargs)
    client = HubClient(
        socket,
        user_id,
        conversation_id=conversation_id,
        send_timeout_s=0.2,
        queue_size=queue_size,
    )
    return socket, client


# =============================================================================
# Conversation table
# =============================================================================


class TestBroadcast:
    """Tests for conversation fan-out."""

    async def test_reaches_every_client(self):
        hub = ChatHub()
        tab, tab_client = make_client(1, 10)
        phone, phone_client = make_client(1, 10)
        other, other_client = make_client(2, 10)
        for client in (tab_client, phone_client, other_client):
            await hub.register(10, client)

        queued = await hub.broadcast(10, {"type": "message", "id": 1})

        assert queued == 3
        for socket in (tab, phone, other):
            assert await socket.wait_for_frames(1) == [{"type": "message", "id": 1}]

    async def test_frames_keep_their_order(self):
        hub = ChatHub()
        socket, client = make_client(1, 10)
        await hub.register(10, client)

        for i in range(5):
            await hub.broadcast(10, {"type": "message", "id": i})

        frames = await socket.wait_for_frames(5)
        assert [f["id"] for f in frames] == [0, 1, 2, 3, 4]

    async def test_other_conversations_untouched(self):
        hub = ChatHub()
        socket, client = make_client(1, 11)
        await hub.register(11, client)

        queued = await hub.broadcast(10, {"type": "message"})
        await asyncio.sleep(0.02)

        assert queued == 0
        assert socket.frames == []

    async def test_stalled_peer_does_not_hold_up_broadcast(self):
        hub = ChatHub()
        fast, fast_client = make_client(1, 9)
        stalled, stalled_client = make_client(2, 9, send_delay_s=1.5)
        stalled_client.send_timeout_s = 5.0
        await hub.register(9, fast_client)
        await hub.register(9, stalled_client)

        started = time.monotonic()
        queued = await hub.broadcast(9, {"type": "message", "text": "Bonjour"})
        elapsed = time.monotonic() - started

        assert elapsed < 0.5
        assert queued == 2
        assert await fast.wait_for_frames(1) == [{"type": "message", "text": "Bonjour"}]
        assert stalled.frames == []
        await hub.close_all()

    async def test_registration_not_held_up_by_stalled_peer(self):
        hub = ChatHub()
        _, stalled_client = make_client(2, 9, send_delay_s=1.5)
        await hub.register(9, stalled_client)
        await hub.broadcast(9, {"type": "message"})

        late, late_client = make_client(3, 9)
        await asyncio.wait_for(hub.register(9, late_client), timeout=0.5)
        await hub.broadcast(9, {"type": "message", "id": 2})

        assert await late.wait_for_frames(1) == [{"type": "message", "id": 2}]
        await hub.close_all()

    async def test_failing_client_dropped(self):
        hub = ChatHub()
        good, good_client = make_client(1, 10)
        bad, bad_client = make_client(2, 10, fail_sends=True)
        await hub.register(10, good_client)
        await hub.register(10, bad_client)

        await hub.broadcast(10, {"type": "message", "id": 1})

        assert await bad.wait_closed() == 1000
        assert await good.wait_for_frames(1) == [{"type": "message", "id": 1}]
        assert await hub.broadcast(10, {"type": "message", "id": 2}) == 1

    async def test_slow_client_times_out(self):
        """A client slower than send_timeout_s is closed and removed."""
        hub = ChatHub()
        fast, fast_client = make_client(1, 10)
        slow, slow_client = make_client(2, 10, send_delay_s=1.0)
        await hub.register(10, fast_client)
        await hub.register(10, slow_client)

        await hub.broadcast(10, {"type": "message"})

        assert await slow.wait_closed() == 1000
        assert slow.frames == []
        assert await hub.broadcast(10, {"type": "message"}) == 1
        assert len(await fast.wait_for_frames(2)) == 2

    async def test_full_queue_drops_client(self):
        hub = ChatHub()
        fast, fast_client = make_client(1, 10)
        backed_up, backed_up_client = make_client(2, 10, queue_size=1, send_delay_s=1.0)
        await hub.register(10, fast_client)
        await hub.register(10, backed_up_client)

        results = [await hub.broadcast(10, {"type": "message", "id": i}) for i in range(3)]

        assert results[0] == 2
        assert results[-1] == 1
        assert backed_up.close_code == 1000
        assert len(await fast.wait_for_frames(3)) == 3

    async def test_unregister_last_client_removes_room(self):
        hub = ChatHub()
        socket, client = make_client(1, 10)
        await hub.register(10, client)

        await hub.unregister(10, client)
        await hub.unregister(10, client)

        assert await hub.broadcast(10, {"type": "message"}) == 0
        assert socket.close_code is None


# =============================================================================
# Notification table
# =============================================================================


class TestNotificationTable:
    """Tests for per-user notification sockets."""

    async def test_notify_without_client(self):
        hub = ChatHub()

        assert await hub.notify(5, {"type": "new_message"}) is False

    async def test_latest_registration_wins(self):
        hub = ChatHub()
        old, old_client = make_client(5)
        new, new_client = make_client(5)
        await hub.register_user(5, old_client)

        await hub.register_user(5, new_client)
        sent = await hub.notify(5, {"type": "new_message"})

        assert sent is True
        assert old.close_code == 1000
        assert await new.wait_for_frames(1) == [{"type": "new_message"}]
        assert old.frames == []

    async def test_stale_unregister_is_noop(self):
        """The replaced socket's cleanup must not remove its successor."""
        hub = ChatHub()
        _, old_client = make_client(5)
        new, new_client = make_client(5)
        await hub.register_user(5, old_client)
        await hub.register_user(5, new_client)

        await hub.unregister_user(5, old_client)

        assert await hub.notify(5, {"type": "new_message"}) is True
        assert await new.wait_for_frames(1) == [{"type": "new_message"}]

    async def test_failed_notify_unregisters(self):
        hub = ChatHub()
        socket, client = make_client(5, fail_sends=True)
        await hub.register_user(5, client)

        await hub.notify(5, {"type": "new_message"})

        assert await socket.wait_closed() == 1000
        assert await hub.notify(5, {"type": "new_message"}) is False

    async def test_notify_does_not_wait_on_socket(self):
        hub = ChatHub()
        socket, client = make_client(5, send_delay_s=1.5)
        client.send_timeout_s = 5.0
        await hub.register_user(5, client)

        started = time.monotonic()
        sent = await hub.notify(5, {"type": "new_message"})

        assert sent is True
        assert time.monotonic() - started < 0.5
        assert socket.frames == []
        await hub.close_all()


# =============================================================================
# Lifecycle and locking
# =============================================================================


class TestCloseAll:
    async def test_closes_everything_going_away(self):
        hub = ChatHub()
        room_socket, room_client = make_client(1, 10)
        user_socket, user_client = make_client(1)
        await hub.register(10, room_client)
        await hub.register_user(1, user_client)

        await hub.close_all()

        assert room_socket.close_code == 1001
        assert user_socket.close_code == 1001
        assert await hub.broadcast(10, {"type": "message"}) == 0
        assert await hub.notify(1, {"type": "new_message"}) is False

    async def test_client_closes_once(self):
        socket, client = make_client(1)

        await client.close(code=1001)
        await client.close(code=1000)

        assert socket.close_code == 1001
        assert client.enqueue({"type": "message"}) is False

    async def test_stopped_client_leaves_socket_open(self):
        socket, client = make_client(1)

        client.stop()

        assert client.enqueue({"type": "message"}) is False
        assert socket.close_code is None


class TestReadWriteLock:
    async def test_readers_share(self):
        lock = ReadWriteLock()
        inside = 0
        peak = 0

        async def reader():
            nonlocal inside, peak
            async with lock.read():
                inside += 1
                peak = max(peak, inside)
                await asyncio.sleep(0.01)
                inside -= 1

        await asyncio.gather(reader(), reader(), reader())

        assert peak == 3

    async def test_writer_waits_for_readers(self):
        lock = ReadWriteLock()
        order = []

        async def reader():
            async with lock.read():
                await asyncio.sleep(0.02)
                order.append("read")

        async def writer():
            await asyncio.sleep(0.005)
            async with lock.write():
                order.append("write")

        await asyncio.gather(reader(), writer())

        assert order == ["read", "write"]
