"""Server-push channel manager.

Keeps the set of live event-stream connections, each with its own frame
queue and keep-alive task. The connection table is the only mutable state
shared between requests and sits behind a single lock.
"""

import asyncio
import json
import uuid
from dataclasses import dataclass
from typing import Any, AsyncIterator, Optional

from shared.logging import get_logger
from shared.models import PushConnection

logger = get_logger(__name__)

KEEPALIVE_FRAME = ":ping\n\n"

# Wakes a stream whose connection was closed elsewhere
_CLOSED = None


def format_event(event: str, data: Any) -> str:
    """Frame one server-sent event."""
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"


@dataclass
class _Channel:
    connection: PushConnection
    queue: "asyncio.Queue[Optional[str]]"
    keepalive: Optional["asyncio.Task[None]"] = None


class PushChannelManager:
    """
    Manages long-lived server-to-client connections.

    - open: register, emit the connection frame, start keep-alives
    - send / broadcast: enqueue frames (unknown ids are ignored)
    - close: cancel keep-alives and deregister, atomically
    """

    def __init__(self, keepalive_interval: float = 30.0, queue_size: int = 100) -> None:
        self.keepalive_interval = keepalive_interval
        self.queue_size = queue_size
        self._channels: dict[str, _Channel] = {}
        self._lock = asyncio.Lock()

    @property
    def size(self) -> int:
        return len(self._channels)

    async def open(self) -> str:
        """
        Register a new connection.

        Returns:
            The connection id
        """
        connection = PushConnection(id=uuid.uuid4().hex)
        channel = _Channel(connection=connection, queue=asyncio.Queue(maxsize=self.queue_size))

        async with self._lock:
            self._channels[connection.id] = channel
            self._enqueue(channel, format_event("open", {"type": "connection", "id": connection.id}))
            channel.keepalive = asyncio.create_task(self._keepalive(channel))

        logger.info("Push connection opened", connection_id=connection.id, connections=self.size)
        return connection.id

    async def close(self, connection_id: str) -> None:
        """Cancel keep-alives and deregister. Safe to call more than once."""
        async with self._lock:
            channel = self._channels.pop(connection_id, None)
            if channel is None:
                return
            if channel.keepalive is not None:
                channel.keepalive.cancel()
            if channel.queue.full():
                # Make room for the sentinel; the oldest pending frame is lost
                channel.queue.get_nowait()
            channel.queue.put_nowait(_CLOSED)

        logger.info("Push connection closed", connection_id=connection_id, connections=self.size)

    async def send(self, connection_id: str, message: Any, event: str = "message") -> bool:
        """
        Push a message to one connection.

        Returns:
            False if the connection is already gone
        """
        async with self._lock:
            channel = self._channels.get(connection_id)
            if channel is None:
                return False
            return self._enqueue(channel, format_event(event, message))

    async def broadcast(self, message: Any, event: str = "message") -> int:
        """
        Push a message to every live connection.

        Returns:
            Number of connections the frame was queued for
        """
        frame = format_event(event, message)
        async with self._lock:
            snapshot = list(self._channels.values())

        delivered = 0
        for channel in snapshot:
            if self._enqueue(channel, frame):
                delivered += 1
        return delivered

    async def stream(self, connection_id: str) -> AsyncIterator[str]:
        """
        Yield frames for a connection until it is closed.

        The connection is deregistered however the consumer stops.
        """
        channel = self._channels.get(connection_id)
        if channel is None:
            return

        try:
            while True:
                frame = await channel.queue.get()
                if frame is _CLOSED:
                    break
                yield frame
        finally:
            await self.close(connection_id)

    async def shutdown(self) -> None:
        """Close all connections."""
        async with self._lock:
            ids = list(self._channels)
        for connection_id in ids:
            await self.close(connection_id)

    def _enqueue(self, channel: _Channel, frame: str) -> bool:
        try:
            channel.queue.put_nowait(frame)
            return True
        except asyncio.QueueFull:
            logger.warning("Push queue full, frame dropped", connection_id=channel.connection.id)
            return False

    async def _keepalive(self, channel: _Channel) -> None:
        while True:
            await asyncio.sleep(self.keepalive_interval)
            self._enqueue(channel, KEEPALIVE_FRAME)
