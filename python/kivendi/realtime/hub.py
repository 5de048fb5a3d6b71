"""In-process WebSocket multiplexer.

The hub keeps two routing tables:

- conversation table: conversation_id -> set of clients. A user may hold
  several clients (tabs, devices) on the same conversation.
- notification table: user_id -> one client. The latest registration wins;
  the previous client is closed.

Frames are opaque JSON-serializable dicts. The hub never inspects them:
persistence and policy are decided by kivendi.services.chat before a frame
reaches Broadcast or Notify.

Delivery:
- Both tables share one reader-writer lock. Registration takes the write
  side, Broadcast and Notify take the read side.
- Broadcast and Notify only enqueue. Each client owns a bounded queue that
  its writer task drains in order, so frames never interleave on one socket
  and a slow peer never holds up the caller.
- A client whose queue is full, or whose writer failed or timed out, is
  closed and unregistered.

Single-process only. Every hub method must run on the event loop that
created the hub (the application lifespan).
"""

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from functools import partial
from typing import Any, Protocol

from kivendi.logging import get_logger

logger = get_logger(__name__)

DEFAULT_SEND_TIMEOUT_S = 5.0
DEFAULT_QUEUE_SIZE = 64


class FrameSocket(Protocol):
    """The subset of starlette.websockets.WebSocket the hub needs."""

    async def send_json(self, data: Any, mode: str = "text") -> None: ...

    async def close(self, code: int = 1000, reason: str | None = None) -> None: ...


class ReadWriteLock:
    """Asyncio reader-writer lock. Readers share; a writer is exclusive."""

    def __init__(self) -> None:
        self._cond = asyncio.Condition()
        self._readers = 0
        self._writer = False

    @asynccontextmanager
    async def read(self) -> AsyncIterator[None]:
        async with self._cond:
            await self._cond.wait_for(lambda: not self._writer)
            self._readers += 1
        try:
            yield
        finally:
            async with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @asynccontextmanager
    async def write(self) -> AsyncIterator[None]:
        async with self._cond:
            await self._cond.wait_for(lambda: not self._writer and self._readers == 0)
            self._writer = True
        try:
            yield
        finally:
            async with self._cond:
                self._writer = False
                self._cond.notify_all()


class HubClient:
    """One socket, bound to a user and optionally a conversation.

    Frames go through enqueue(). The writer task is started by the first
    frame and lives until the client is closed or a send fails. On a failed
    send it closes the client and calls on_failure, which the hub sets at
    registration to remove the client from its table.
    """

    def __init__(
        self,
        socket: FrameSocket,
        user_id: int,
        *,
        conversation_id: int | None = None,
        send_timeout_s: float = DEFAULT_SEND_TIMEOUT_S,
        queue_size: int = DEFAULT_QUEUE_SIZE,
    ):
        self.socket = socket
        self.user_id = user_id
        self.conversation_id = conversation_id
        self.send_timeout_s = send_timeout_s
        self.closed = False
        self.on_failure: Callable[[HubClient], Awaitable[None]] | None = None
        self._queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=queue_size)
        self._writer: asyncio.Task | None = None

    def __repr__(self) -> str:
        return (
            f"HubClient(user_id={self.user_id}, conversation_id={self.conversation_id}, "
            f"closed={self.closed})"
        )

    def enqueue(self, frame: dict[str, Any]) -> bool:
        """Queue one frame for the writer without waiting.

        Returns:
            False if the frame was dropped: the client is closed, its
            writer has stopped, or its queue is full.
        """
        if self.closed or (self._writer is not None and self._writer.done()):
            return False
        try:
            self._queue.put_nowait(frame)
        except asyncio.QueueFull:
            logger.warning(
                "hub_client_queue_full",
                user_id=self.user_id,
                conversation_id=self.conversation_id,
                queued=self._queue.qsize(),
            )
            return False
        if self._writer is None:
            self._writer = asyncio.get_running_loop().create_task(self._write_loop())
        return True

    async def _write_loop(self) -> None:
        while True:
            frame = await self._queue.get()
            try:
                await asyncio.wait_for(self.socket.send_json(frame), timeout=self.send_timeout_s)
            except Exception as e:
                logger.warning(
                    "hub_client_send_failed",
                    user_id=self.user_id,
                    conversation_id=self.conversation_id,
                    error=repr(e),
                )
                break
        await self.close()
        if self.on_failure is not None:
            await self.on_failure(self)

    def stop(self) -> None:
        """Stop writing without closing the socket, for a peer that already left."""
        self.closed = True
        writer = self._writer
        if writer is not None and not writer.done() and writer is not asyncio.current_task():
            writer.cancel()

    async def close(self, code: int = 1000) -> None:
        """Stop the writer and close the socket, once. Queued frames are dropped."""
        if self.closed:
            return
        self.stop()
        try:
            await self.socket.close(code=code)
        except Exception as e:
            logger.debug("hub_client_close_failed", user_id=self.user_id, error=str(e))


class ChatHub:
    """Conversation and notification routing tables."""

    def __init__(self) -> None:
        self._lock = ReadWriteLock()
        self._conversations: dict[int, set[HubClient]] = {}
        self._notifications: dict[int, HubClient] = {}

    # =========================================================================
    # Conversation table
    # =========================================================================

    async def register(self, conversation_id: int, client: HubClient) -> None:
        client.on_failure = partial(self.unregister, conversation_id)
        async with self._lock.write():
            self._conversations.setdefault(conversation_id, set()).add(client)
            count = len(self._conversations[conversation_id])
        logger.info(
            "hub_client_registered",
            conversation_id=conversation_id,
            user_id=client.user_id,
            clients=count,
        )

    async def unregister(self, conversation_id: int, client: HubClient) -> None:
        async with self._lock.write():
            clients = self._conversations.get(conversation_id)
            if clients is None or client not in clients:
                return
            clients.discard(client)
            if not clients:
                del self._conversations[conversation_id]
        logger.info(
            "hub_client_unregistered", conversation_id=conversation_id, user_id=client.user_id
        )

    async def broadcast(self, conversation_id: int, frame: dict[str, Any]) -> int:
        """Queue frame for every client of a conversation.

        Returns:
            Number of clients the frame was queued for.
        """
        async with self._lock.read():
            clients = list(self._conversations.get(conversation_id, ()))
            dropped = [client for client in clients if not client.enqueue(frame)]

        for client in dropped:
            logger.warning(
                "hub_broadcast_client_dropped",
                conversation_id=conversation_id,
                user_id=client.user_id,
            )
            await client.close()
            await self.unregister(conversation_id, client)

        return len(clients) - len(dropped)

    # =========================================================================
    # Notification table
    # =========================================================================

    async def register_user(self, user_id: int, client: HubClient) -> None:
        """Make client the user's notification socket, closing any previous one."""
        client.on_failure = partial(self.unregister_user, user_id)
        async with self._lock.write():
            previous = self._notifications.get(user_id)
            self._notifications[user_id] = client
        logger.info("hub_notification_client_registered", user_id=user_id)
        if previous is not None and previous is not client:
            await previous.close()

    async def unregister_user(self, user_id: int, client: HubClient) -> None:
        """Remove client, unless a newer registration already replaced it."""
        async with self._lock.write():
            if self._notifications.get(user_id) is client:
                del self._notifications[user_id]
                logger.info("hub_notification_client_unregistered", user_id=user_id)

    async def notify(self, user_id: int, frame: dict[str, Any]) -> bool:
        """Queue frame for the user's notification socket, if any.

        Returns:
            True if the frame was queued.
        """
        async with self._lock.read():
            client = self._notifications.get(user_id)
            if client is None:
                return False
            if client.enqueue(frame):
                return True

        logger.warning("hub_notify_client_dropped", user_id=user_id)
        await client.close()
        await self.unregister_user(user_id, client)
        return False

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def close_all(self) -> None:
        """Close every socket. Called on shutdown."""
        async with self._lock.write():
            clients = {c for group in self._conversations.values() for c in group}
            clients.update(self._notifications.values())
            self._conversations.clear()
            self._notifications.clear()
        for client in clients:
            await client.close(code=1001)
        logger.info("hub_closed", clients=len(clients))
