"""Tests for the server-push channel manager."""

import asyncio
import json

import pytest

from gateway.push import KEEPALIVE_FRAME, PushChannelManager, format_event


def _drain(manager: PushChannelManager, connection_id: str) -> list[str]:
    channel = manager._channels[connection_id]
    frames = []
    while not channel.queue.empty():
        frames.append(channel.queue.get_nowait())
    return frames


class TestFormatEvent:
    """Tests for event framing."""

    def test_frame_layout(self):
        """Test the event/data/blank-line layout."""
        frame = format_event("message", {"a": 1})

        assert frame == 'event: message\ndata: {"a": 1}\n\n'


class TestPushChannelManager:
    """Tests for connection lifecycle."""

    @pytest.mark.asyncio
    async def test_open_emits_connection_frame(self):
        """Test that the first frame identifies the connection."""
        manager = PushChannelManager(keepalive_interval=60)

        connection_id = await manager.open()
        frames = _drain(manager, connection_id)

        assert len(frames) == 1
        assert frames[0].startswith("event: open\n")
        data = json.loads(frames[0].split("data: ", 1)[1])
        assert data == {"type": "connection", "id": connection_id}
        assert manager._channels[connection_id].connection.opened_at.tzinfo is not None

        await manager.close(connection_id)

    @pytest.mark.asyncio
    async def test_keepalive_and_close(self):
        """Scenario E: one keep-alive per interval, then clean deregistration."""
        manager = PushChannelManager(keepalive_interval=0.2)
        before = manager.size

        connection_id = await manager.open()
        assert manager.size == before + 1

        await asyncio.sleep(0.3)
        frames = _drain(manager, connection_id)
        assert frames.count(KEEPALIVE_FRAME) == 1

        channel = manager._channels[connection_id]
        await manager.close(connection_id)
        await asyncio.sleep(0)

        assert manager.size == before
        assert channel.keepalive.cancelled() or channel.keepalive.done()

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        """Test that closing twice is harmless."""
        manager = PushChannelManager(keepalive_interval=60)
        connection_id = await manager.open()

        await manager.close(connection_id)
        await manager.close(connection_id)

        assert manager.size == 0

    @pytest.mark.asyncio
    async def test_send_to_unknown_connection(self):
        """Test that sending to a closed connection is a no-op."""
        manager = PushChannelManager(keepalive_interval=60)

        assert await manager.send("missing", {"hello": "world"}) is False

    @pytest.mark.asyncio
    async def test_send_and_broadcast(self):
        """Test targeted and broadcast delivery."""
        manager = PushChannelManager(keepalive_interval=60)
        first = await manager.open()
        second = await manager.open()
        _drain(manager, first)
        _drain(manager, second)

        assert await manager.send(first, {"n": 1}) is True
        assert await manager.broadcast({"n": 2}) == 2

        assert _drain(manager, first) == [format_event("message", {"n": 1}), format_event("message", {"n": 2})]
        assert _drain(manager, second) == [format_event("message", {"n": 2})]

        await manager.shutdown()
        assert manager.size == 0

    @pytest.mark.asyncio
    async def test_full_queue_drops_frames(self):
        """Test that a slow consumer loses frames instead of blocking senders."""
        manager = PushChannelManager(keepalive_interval=60, queue_size=1)
        connection_id = await manager.open()

        assert await manager.send(connection_id, {"n": 1}) is False

        await manager.close(connection_id)

    @pytest.mark.asyncio
    async def test_stream_yields_until_closed(self):
        """Test that the stream ends when the connection is closed elsewhere."""
        manager = PushChannelManager(keepalive_interval=60)
        connection_id = await manager.open()
        await manager.send(connection_id, {"n": 1})

        received = []

        async def consume():
            async for frame in manager.stream(connection_id):
                received.append(frame)

        consumer = asyncio.create_task(consume())
        await asyncio.sleep(0.05)
        await manager.close(connection_id)
        await asyncio.wait_for(consumer, timeout=1)

        assert received[0].startswith("event: open\n")
        assert received[1] == format_event("message", {"n": 1})
        assert manager.size == 0

    @pytest.mark.asyncio
    async def test_close_ends_stream_with_full_queue(self):
        """Test that a server-side close ends a stream whose queue is full."""
        manager = PushChannelManager(keepalive_interval=60, queue_size=2)
        connection_id = await manager.open()
        stream = manager.stream(connection_id)

        first = await stream.__anext__()
        await manager.send(connection_id, {"n": 1})
        await manager.send(connection_id, {"n": 2})
        assert await manager.send(connection_id, {"n": 3}) is False

        await manager.close(connection_id)

        async def drain():
            return [frame async for frame in stream]

        remaining = await asyncio.wait_for(drain(), timeout=1)

        assert first.startswith("event: open\n")
        assert remaining == [format_event("message", {"n": 2})]
        assert manager.size == 0

    @pytest.mark.asyncio
    async def test_stream_cleanup_on_consumer_exit(self):
        """Test that abandoning the stream deregisters the connection."""
        manager = PushChannelManager(keepalive_interval=60)
        connection_id = await manager.open()

        stream = manager.stream(connection_id)
        first = await stream.__anext__()
        await stream.aclose()

        assert first.startswith("event: open\n")
        assert manager.size == 0
