"""
Pub/sub канал, ключ - строка канала ("combat:<session_id>").

publish() синхронный и потокобезопасный: sync-роуты FastAPI крутятся в
threadpool, а подписчики (WebSocket-хендлеры) живут в event loop.
Гарантий доставки нет: отвалившийся подписчик просто выкидывается.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, AsyncIterator, Dict, List, Protocol, Tuple

logger = logging.getLogger(__name__)

Message = Tuple[str, Dict[str, Any]]


class PubSub(Protocol):
    def publish(self, channel: str, event_name: str, payload: Dict[str, Any]) -> int: ...

    def subscribe(self, channel: str) -> "Subscription": ...


class Subscription:
    def __init__(
        self, broker: "InMemoryBroker", channel: str, loop: asyncio.AbstractEventLoop
    ) -> None:
        self.broker = broker
        self.channel = channel
        self.loop = loop
        self.queue: asyncio.Queue[Message] = asyncio.Queue()
        self.closed = False

    def deliver(self, message: Message) -> None:
        # RuntimeError, если loop подписчика уже закрыт
        self.loop.call_soon_threadsafe(self.queue.put_nowait, message)

    async def get(self) -> Message:
        return await self.queue.get()

    def __aiter__(self) -> AsyncIterator[Message]:
        return self

    async def __anext__(self) -> Message:
        if self.closed:
            raise StopAsyncIteration
        return await self.get()

    def close(self) -> None:
        self.closed = True
        self.broker.unsubscribe(self)


class InMemoryBroker:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._channels: Dict[str, List[Subscription]] = {}

    def subscribe(self, channel: str) -> Subscription:
        """Вызывать из работающего event loop: очередь привязана к нему."""
        sub = Subscription(self, channel, asyncio.get_running_loop())
        with self._lock:
            self._channels.setdefault(channel, []).append(sub)
        logger.debug("subscribed to %s", channel)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            subs = self._channels.get(sub.channel)
            if subs and sub in subs:
                subs.remove(sub)
            if subs is not None and not subs:
                self._channels.pop(sub.channel, None)

    def subscriber_count(self, channel: str) -> int:
        with self._lock:
            return len(self._channels.get(channel, ()))

    def publish(self, channel: str, event_name: str, payload: Dict[str, Any]) -> int:
        with self._lock:
            subs = list(self._channels.get(channel, ()))

        delivered = 0
        for sub in subs:
            try:
                sub.deliver((event_name, payload))
                delivered += 1
            except RuntimeError:
                # повторно не шлём: переподключившийся клиент перечитает состояние
                logger.warning("dropping dead subscriber on %s", channel)
                sub.closed = True
                self.unsubscribe(sub)
        return delivered
