"""Tests for BroadcastHub."""

import asyncio

import pytest

from pluto.market.hub import BroadcastHub, new_viewer_id
from pluto.market.protocol import Message, MessageType, active_tickers_message


def _hub(clock, **kwargs) -> BroadcastHub:
    return BroadcastHub(
        snapshot=lambda: active_tickers_message(["BTCUSD", "ETHUSD"]),
        clock=clock,
        **kwargs,
    )


@pytest.mark.asyncio
class TestBroadcastHub:
    """Unit tests for viewer registration, fan-out and heartbeat eviction."""

    async def test_register_sends_snapshot(self, clock, make_channel):
        """Test that a new viewer receives the active tickers first."""
        hub = _hub(clock)
        channel = make_channel()
        viewer = await hub.register(channel)

        assert viewer.id in hub
        assert channel.messages()[0]["type"] == "activeTickers"
        assert channel.messages()[0]["data"] == ["BTCUSD", "ETHUSD"]

    async def test_viewer_ids_are_unique(self):
        """Test the viewer id format."""
        first, second = new_viewer_id(), new_viewer_id()
        assert first.startswith("client_")
        assert first != second

    async def test_unregister_is_idempotent(self, clock, make_channel):
        """Test that unregistering twice is harmless."""
        hub = _hub(clock)
        viewer = await hub.register(make_channel())

        assert await hub.unregister(viewer.id) is True
        assert await hub.unregister(viewer.id) is False
        assert len(hub) == 0

    async def test_broadcast_reaches_everyone(self, clock, make_channel):
        """Test that every registered viewer gets the message."""
        hub = BroadcastHub(clock=clock)
        channels = [make_channel() for _ in range(5)]
        for channel in channels:
            await hub.register(channel)

        delivered = await hub.broadcast(Message(MessageType.PRICES, []))

        assert delivered == 5
        assert all(channel.types() == ["prices"] for channel in channels)

    async def test_broadcast_with_no_viewers(self, clock):
        """Test that broadcasting to nobody is a no-op."""
        hub = BroadcastHub(clock=clock)
        assert await hub.broadcast(Message(MessageType.PRICES, [])) == 0

    async def test_failed_send_evicts_viewer(self, clock, make_channel):
        """Test that a broken viewer is dropped and the others still receive."""
        hub = BroadcastHub(clock=clock)
        good = make_channel()
        broken = make_channel(fail=True)
        await hub.register(good)
        bad_viewer = await hub.register(broken)

        delivered = await hub.broadcast(Message(MessageType.PRICES, []))

        assert delivered == 1
        assert bad_viewer.id not in hub
        assert broken.closed is True
        assert good.types() == ["prices"]

    async def test_slow_viewer_is_evicted(self, clock, make_channel):
        """Test that a send exceeding the timeout drops only that viewer."""
        hub = BroadcastHub(clock=clock, send_timeout=0.05)
        fast = make_channel()
        slow = make_channel(hang=True)
        await hub.register(fast)
        slow_viewer = await hub.register(slow)

        delivered = await asyncio.wait_for(hub.broadcast(Message(MessageType.PRICES, [])), 1.0)

        assert delivered == 1
        assert slow_viewer.id not in hub
        assert fast.types() == ["prices"]

    async def test_send_to_unknown_viewer(self, clock):
        """Test that sending to an unregistered id returns False."""
        hub = BroadcastHub(clock=clock)
        assert await hub.send("client_0_missing", Message(MessageType.PONG)) is False

    async def test_ping_gets_pong(self, clock, make_channel):
        """Test that a viewer ping is answered and counts as an acknowledgment."""
        hub = _hub(clock)
        channel = make_channel()
        viewer = await hub.register(channel)
        clock.advance(50)

        await hub.handle_message(viewer.id, '{"type": "ping", "timestamp": 1}')

        assert channel.types()[-1] == "pong"
        assert viewer.last_ack == clock()

    async def test_pong_acknowledges(self, clock, make_channel):
        """Test that a pong refreshes the viewer's last acknowledgment."""
        hub = _hub(clock)
        channel = make_channel()
        viewer = await hub.register(channel)
        clock.advance(50)

        await hub.handle_message(viewer.id, '{"type": "pong"}')

        assert viewer.last_ack == clock()
        assert channel.types() == ["activeTickers"]

    async def test_get_tickers(self, clock, make_channel):
        """Test that getTickers resends the active ticker list."""
        hub = _hub(clock)
        channel = make_channel()
        viewer = await hub.register(channel)

        await hub.handle_message(viewer.id, '{"type": "getTickers"}')

        assert channel.types() == ["activeTickers", "activeTickers"]

    async def test_malformed_message_gets_error(self, clock, make_channel):
        """Test that invalid JSON is answered with an error and the viewer stays."""
        hub = _hub(clock)
        channel = make_channel()
        viewer = await hub.register(channel)

        await hub.handle_message(viewer.id, "{not json")

        last = channel.messages()[-1]
        assert last["type"] == "error"
        assert last["data"] == {"message": "Invalid message format"}
        assert viewer.id in hub

    async def test_unknown_type_is_ignored(self, clock, make_channel):
        """Test that an unknown message type gets no reply."""
        hub = _hub(clock)
        channel = make_channel()
        viewer = await hub.register(channel)

        await hub.handle_message(viewer.id, '{"type": "subscribe", "data": ["BTCUSD"]}')

        assert channel.types() == ["activeTickers"]
        assert viewer.id in hub

    async def test_heartbeat_pings_live_viewers(self, clock, make_channel):
        """Test that a heartbeat probes every viewer within the timeout."""
        hub = BroadcastHub(clock=clock, client_timeout=120)
        channel = make_channel()
        await hub.register(channel)
        clock.advance(60)

        assert await hub.heartbeat() == []
        assert channel.types() == ["ping"]

    async def test_heartbeat_evicts_silent_viewer(self, clock, make_channel):
        """Test that a viewer silent past the timeout is closed even if writable."""
        hub = BroadcastHub(clock=clock, client_timeout=120)
        silent = make_channel()
        chatty = make_channel()
        silent_viewer = await hub.register(silent)
        chatty_viewer = await hub.register(chatty)

        clock.advance(100)
        await hub.handle_message(chatty_viewer.id, '{"type": "pong"}')
        clock.advance(21)

        evicted = await hub.heartbeat()

        assert evicted == [silent_viewer.id]
        assert silent.closed is True
        assert silent.close_code == 1011
        assert chatty_viewer.id in hub

    async def test_heartbeat_boundary(self, clock, make_channel):
        """Test that a viewer exactly at the timeout is kept."""
        hub = BroadcastHub(clock=clock, client_timeout=120)
        viewer = await hub.register(make_channel())
        clock.advance(120)

        assert await hub.heartbeat() == []
        assert viewer.id in hub

    async def test_heartbeat_send_failure_evicts(self, clock, make_channel):
        """Test that a viewer whose ping cannot be written is evicted."""
        hub = BroadcastHub(clock=clock)
        viewer = await hub.register(make_channel(fail=True))

        assert await hub.heartbeat() == [viewer.id]
        assert len(hub) == 0

    async def test_heartbeat_loop(self, make_channel):
        """Test that the background loop pings on its interval."""
        hub = BroadcastHub(heartbeat_interval=0.03)
        channel = make_channel()
        await hub.register(channel)

        await hub.start()
        assert hub.is_running
        await asyncio.sleep(0.1)
        await hub.stop()
        assert not hub.is_running

        assert channel.types().count("ping") >= 2

    async def test_close_all(self, clock, make_channel):
        """Test that shutdown closes every viewer with going-away."""
        hub = BroadcastHub(clock=clock)
        channels = [make_channel(), make_channel()]
        for channel in channels:
            await hub.register(channel)

        await hub.close_all()

        assert len(hub) == 0
        assert all(channel.close_code == 1001 for channel in channels)

    async def test_snapshot_precedes_concurrent_broadcast(self, clock, make_channel):
        """Test that a tick racing a new viewer's snapshot is delivered after it."""
        hub = _hub(clock)
        channel = make_channel()
        gate = asyncio.Event()
        write = channel.send_text

        async def slow_snapshot(data: str) -> None:
            if '"activeTickers"' in data:
                await gate.wait()
            await write(data)

        channel.send_text = slow_snapshot
        joining = asyncio.create_task(hub.register(channel))
        while len(hub) == 0:
            await asyncio.sleep(0)

        ticking = asyncio.create_task(hub.broadcast(Message(MessageType.PRICES, [])))
        await asyncio.sleep(0.01)
        assert channel.sent == []

        gate.set()
        viewer = await joining
        assert await ticking == 1
        assert channel.types() == ["activeTickers", "prices"]
        assert viewer.id in hub

    async def test_register_with_broken_channel_evicts(self, clock, make_channel):
        """Test that a viewer whose snapshot cannot be written is dropped and closed."""
        hub = _hub(clock)
        channel = make_channel(fail=True)

        viewer = await hub.register(channel)

        assert viewer.id not in hub
        assert channel.closed is True
        assert channel.close_code == 1011
