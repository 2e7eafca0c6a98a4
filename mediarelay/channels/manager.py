from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from ..config import ProgressEventType, TERMINAL_EVENTS
from ..log_config import verbose_log


@dataclass(frozen=True)
class ProgressEvent:
    """One ordered message on a job's progress channel."""

    event: str
    job_id: str
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def terminal(self) -> bool:
        return self.event in TERMINAL_EVENTS

    def payload(self) -> Dict[str, Any]:
        return {"job_id": self.job_id, **self.data}

    def to_message(self) -> Dict[str, Any]:
        return {"event": self.event, "payload": self.payload()}

    @classmethod
    def progress(cls, job_id: str, progress: int) -> "ProgressEvent":
        return cls(ProgressEventType.PROGRESS.value, job_id, {"progress": progress})

    @classmethod
    def stage(cls, job_id: str, stage: str) -> "ProgressEvent":
        return cls(ProgressEventType.STAGE.value, job_id, {"stage": stage})

    @classmethod
    def ready(
        cls, job_id: str, artifact: str, filename: Optional[str]
    ) -> "ProgressEvent":
        return cls(
            ProgressEventType.READY.value,
            job_id,
            {"artifact": artifact, "filename": filename},
        )

    @classmethod
    def error(cls, job_id: str, message: str, reason: str) -> "ProgressEvent":
        return cls(
            ProgressEventType.ERROR.value,
            job_id,
            {"message": message, "reason": reason},
        )


class _EndOfStream:
    pass


_END = _EndOfStream()


class Subscription:
    """A single subscriber's ordered view of one job channel.

    Events are handed over from worker threads with
    ``loop.call_soon_threadsafe`` so they reach the queue in publication order.
    """

    def __init__(
        self,
        manager: "ChannelManager",
        job_id: str,
        loop: asyncio.AbstractEventLoop,
    ) -> None:
        self.job_id = job_id
        self._manager = manager
        self._loop = loop
        self._queue: asyncio.Queue[ProgressEvent | _EndOfStream] = asyncio.Queue()
        self._lock = threading.Lock()
        self._closed = False
        self._finished = False

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    def deliver(self, event: ProgressEvent) -> bool:
        """Queue ``event`` for the subscriber. Returns False once the subscriber is gone."""
        with self._lock:
            if self._closed:
                return False
            if event.terminal:
                self._closed = True
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, event)
            if event.terminal:
                self._loop.call_soon_threadsafe(self._queue.put_nowait, _END)
        except RuntimeError:
            with self._lock:
                self._closed = True
            return False
        return True

    def close(self) -> None:
        with self._lock:
            already_closed = self._closed
            self._closed = True
        if not already_closed:
            try:
                self._loop.call_soon_threadsafe(self._queue.put_nowait, _END)
            except RuntimeError:
                pass
        self._manager.unsubscribe(self)

    async def next(self, timeout: Optional[float] = None) -> ProgressEvent:
        """Wait for the next event.

        Raises ``asyncio.TimeoutError`` when nothing arrives within ``timeout``
        and ``StopAsyncIteration`` once the stream has ended.
        """
        if self._finished:
            raise StopAsyncIteration
        if timeout is None:
            item = await self._queue.get()
        else:
            item = await asyncio.wait_for(self._queue.get(), timeout)
        if isinstance(item, _EndOfStream):
            self._finished = True
            raise StopAsyncIteration
        return item

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> ProgressEvent:
        return await self.next()


class ChannelManager:
    """Fans out job events to every open subscription of that job."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._channels: Dict[str, List[Subscription]] = {}
        self._shutting_down = False

    def subscribe(
        self, job_id: str, loop: asyncio.AbstractEventLoop
    ) -> Subscription:
        subscription = Subscription(self, job_id, loop)
        with self._lock:
            if self._shutting_down:
                subscription.close()
                return subscription
            self._channels.setdefault(job_id, []).append(subscription)
        verbose_log("channel_subscribed", {"job_id": job_id})
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            subscribers = self._channels.get(subscription.job_id)
            if not subscribers:
                return
            if subscription in subscribers:
                subscribers.remove(subscription)
                verbose_log("channel_unsubscribed", {"job_id": subscription.job_id})
            if not subscribers:
                self._channels.pop(subscription.job_id, None)

    def publish(self, event: ProgressEvent) -> None:
        with self._lock:
            if self._shutting_down:
                return
            targets = list(self._channels.get(event.job_id, ()))
        dropped: List[Subscription] = []
        for subscription in targets:
            if not subscription.deliver(event):
                dropped.append(subscription)
        for subscription in dropped:
            self.unsubscribe(subscription)
        if event.terminal:
            self.close_channel(event.job_id)

    def close_channel(self, job_id: str) -> None:
        with self._lock:
            subscribers = self._channels.pop(job_id, [])
        for subscription in subscribers:
            subscription.close()

    def subscriber_count(self, job_id: str) -> int:
        with self._lock:
            return len(self._channels.get(job_id, ()))

    def has_subscribers(self, job_id: str) -> bool:
        return self.subscriber_count(job_id) > 0

    async def aclose(self) -> None:
        """Close every subscription and refuse further publications."""
        with self._lock:
            if self._shutting_down:
                return
            self._shutting_down = True
            subscribers: Set[Subscription] = set()
            for channel in self._channels.values():
                subscribers.update(channel)
            self._channels.clear()
        for subscription in subscribers:
            subscription.close()


__all__ = ["ChannelManager", "ProgressEvent", "Subscription"]
