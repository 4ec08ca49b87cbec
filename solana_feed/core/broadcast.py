from __future__ import annotations

import asyncio
import itertools
import logging

from solana_feed.constants import BUILD_TAG
from solana_feed.core.models import FeedEvent, HelloEvent, MarketCapEvent
from solana_feed.core.state import PipelineState


class Subscriber:
    """One open /events connection; frames are drained by its HTTP handler."""

    _ids = itertools.count(1)

    def __init__(self, queue_size: int) -> None:
        self.id = next(self._ids)
        self.queue: asyncio.Queue[bytes] = asyncio.Queue(maxsize=queue_size)
        self.dropped = 0

    def offer(self, frame: bytes) -> bool:
        try:
            self.queue.put_nowait(frame)
            return True
        except asyncio.QueueFull:
            self.dropped += 1
            return False

    async def next_frame(self) -> bytes:
        return await self.queue.get()

    def close(self) -> None:
        """Replace anything pending with the empty end-of-stream frame."""
        while not self.queue.empty():
            self.queue.get_nowait()
        self.queue.put_nowait(b"")

    def __repr__(self) -> str:
        return f"Subscriber(id={self.id}, pending={self.queue.qsize()})"


class BroadcastHub:
    """
    Fans feed events out to every connected subscriber.

    New subscribers get a hello frame and, when a market cap is already
    known, a market cap replay so they don't wait for the next poll.
    Publishing never awaits: each frame goes into the subscriber's own
    queue, so one slow or dead connection cannot hold up the others.
    """

    def __init__(self, state: PipelineState, queue_size: int = 256) -> None:
        self.state = state
        self.queue_size = queue_size
        self.logger = logging.getLogger("solana_feed.broadcast")
        self._subscribers: list[Subscriber] = []
        self.dropped_count = 0

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> Subscriber:
        subscriber = Subscriber(self.queue_size)
        subscriber.offer(HelloEvent(message="connected", build=BUILD_TAG).to_sse())
        if self.state.last_mc and self.state.last_mc > 0:
            subscriber.offer(MarketCapEvent(mc=self.state.last_mc).to_sse())
        self._subscribers.append(subscriber)
        self.logger.info("👋 Subscriber %d connected (%d total)", subscriber.id, len(self._subscribers))
        return subscriber

    def unsubscribe(self, subscriber: Subscriber) -> None:
        if subscriber not in self._subscribers:
            return
        self._subscribers = [s for s in self._subscribers if s is not subscriber]
        self.logger.info("Subscriber %d disconnected (%d total)", subscriber.id, len(self._subscribers))

    def publish(self, event: FeedEvent) -> int:
        """
        Queue an event for every current subscriber.

        Returns:
            Number of subscribers the frame was queued for.
        """
        frame = event.to_sse()
        delivered = 0
        for subscriber in tuple(self._subscribers):
            if subscriber.offer(frame):
                delivered += 1
                continue
            self.dropped_count += 1
            # Only log every 50 dropped frames to reduce spam
            if self.dropped_count % 50 == 1:
                self.logger.warning(
                    "Subscriber %d queue full, dropped %d frames so far",
                    subscriber.id, self.dropped_count,
                )
        return delivered

    def close_all(self) -> None:
        for subscriber in tuple(self._subscribers):
            subscriber.close()
