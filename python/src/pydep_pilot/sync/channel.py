"""
View State Channel

One-directional push channel from the coordinator to display surfaces.
Every subscriber receives every message in publish order.
"""

import asyncio
from collections import deque

from ..config import pilot_logger
from .messages import MessageType, ViewMessage


class ViewStateChannel:
    """Fan-out queue of outbound view messages."""

    def __init__(self, history_size: int = 1000):
        self.history: deque = deque(maxlen=history_size)
        self._subscribers: list[asyncio.Queue] = []

    def publish(self, message: ViewMessage):
        """Deliver a message to all subscribers without waiting."""
        self.history.append(message)
        for queue in self._subscribers:
            queue.put_nowait(message)
        pilot_logger.debug(f"Published {message.type.value} to {len(self._subscribers)} subscribers")

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue):
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def messages(self, message_type: MessageType | None = None) -> list[ViewMessage]:
        """Published messages still in history, optionally of one kind."""
        if message_type is None:
            return list(self.history)
        return [m for m in self.history if m.type == message_type]
