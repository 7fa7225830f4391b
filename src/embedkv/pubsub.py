"""In-process publish/subscribe.

Channels live outside the keyspace. Delivery is fire-and-forget: a message
published while nobody listens is lost.
"""

import asyncio
import fnmatch
import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from embedkv.observability import emit_counter, get_logger
from embedkv.structures.base import Value, check_value

logger = get_logger(__name__)

Listener = Callable[["Message"], Awaitable[None] | None]

_CLOSED = object()


@dataclass(frozen=True)
class Message:
    """A published message as seen by a subscriber."""

    channel: str
    data: Value
    pattern: str | None = None


class Subscription:
    """Queue of messages for a set of channels and patterns.

    Example:
        sub = pubsub.subscribe("my-channel")
        await pubsub.publish("my-channel", "Hello World : 0")
        message = await sub.get(timeout=1)
        await sub.close()
    """

    def __init__(
        self,
        broker: "PubSub",
        channels: tuple[str, ...],
        patterns: tuple[str, ...],
        max_pending: int = 0,
    ) -> None:
        self.channels = channels
        self.patterns = patterns
        self._broker = broker
        self.max_pending = max_pending
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self.closed = False
        self.dropped = 0

    def _deliver(self, message: Message) -> bool:
        if self.max_pending and self._queue.qsize() >= self.max_pending:
            self.dropped += 1
            return False
        self._queue.put_nowait(message)
        return True

    async def _next(self, timeout: float | None) -> Any:
        message = await asyncio.wait_for(self._queue.get(), timeout)
        if message is _CLOSED:
            # Left in place so every other reader stops too
            self._queue.put_nowait(_CLOSED)
        return message

    async def get(self, timeout: float | None = None) -> Message | None:
        """Next message, or None on timeout or once closed and drained."""
        try:
            message = await self._next(timeout)
        except asyncio.TimeoutError:
            return None
        if message is _CLOSED:
            return None
        return message

    def pending(self) -> int:
        return self._queue.qsize() - (1 if self.closed else 0)

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._broker._detach(self)
            self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> Message:
        message = await self._next(None)
        if message is _CLOSED:
            raise StopAsyncIteration
        return message

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()


class PubSub:
    """Channel and glob-pattern subscriptions."""

    def __init__(self, max_pending: int = 0) -> None:
        """Initialize broker.

        Args:
            max_pending: Per-subscription queue bound, 0 for unbounded
        """
        self.max_pending = max_pending
        self._subscriptions: list[Subscription] = []
        self._listeners: dict[str, list[Listener]] = {}

    def subscribe(self, *channels: str) -> Subscription:
        if not channels:
            raise ValueError("At least one channel is required")
        return self._attach(Subscription(self, channels, (), self.max_pending))

    def psubscribe(self, *patterns: str) -> Subscription:
        """Subscribe to every channel matching glob ``patterns``."""
        if not patterns:
            raise ValueError("At least one pattern is required")
        return self._attach(Subscription(self, (), patterns, self.max_pending))

    def add_listener(self, channel: str, listener: Listener) -> None:
        """Call ``listener(message)`` for every message on ``channel``."""
        self._listeners.setdefault(channel, []).append(listener)

    def remove_listener(self, channel: str, listener: Listener) -> bool:
        listeners = self._listeners.get(channel, [])
        if listener not in listeners:
            return False
        listeners.remove(listener)
        if not listeners:
            del self._listeners[channel]
        return True

    def _attach(self, subscription: Subscription) -> Subscription:
        self._subscriptions.append(subscription)
        return subscription

    def _detach(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    def channels(self) -> set[str]:
        """Channels with at least one direct subscriber or listener."""
        names = {c for sub in self._subscriptions for c in sub.channels}
        return names | set(self._listeners)

    async def publish(self, channel: str, message: Value) -> int:
        """Send a message. Returns how many receivers got it."""
        check_value(message)
        received = 0
        for sub in list(self._subscriptions):
            if channel in sub.channels:
                received += sub._deliver(Message(channel=channel, data=message))
            for pattern in sub.patterns:
                if fnmatch.fnmatchcase(channel, pattern):
                    received += sub._deliver(
                        Message(channel=channel, data=message, pattern=pattern)
                    )

        for listener in list(self._listeners.get(channel, [])):
            try:
                result = listener(Message(channel=channel, data=message))
                if inspect.isawaitable(result):
                    await result
                received += 1
            except Exception as e:
                logger.error(
                    "Pub/sub listener failed", context={"channel": channel}, error=e
                )

        emit_counter("pubsub.publish", {"channel": channel, "receivers": received})
        return received
