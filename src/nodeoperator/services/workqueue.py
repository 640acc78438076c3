"""Keyed work queue for node reconciliation."""

import asyncio
from datetime import timedelta

from ..models.domain.kubernetes import ObjectKey

__all__ = ["WorkQueue"]


class WorkQueue:
    """Queue of node keys waiting to be reconciled.

    A key is queued at most once no matter how many times it is added. A key
    that is added while a worker is processing it is queued again once the
    worker calls `done`, so at most one worker handles a given key at a
    time while no change is ever lost.

    Parameters
    ----------
    base_delay
        Delay of the first rate-limited retry of a key.
    max_delay
        Upper bound on the delay of rate-limited retries.
    """

    def __init__(
        self,
        *,
        base_delay: timedelta = timedelta(seconds=1),
        max_delay: timedelta = timedelta(minutes=5),
    ) -> None:
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._queue: asyncio.Queue[ObjectKey] = asyncio.Queue()
        self._queued: set[ObjectKey] = set()
        self._processing: set[ObjectKey] = set()
        self._dirty: set[ObjectKey] = set()
        self._failures: dict[ObjectKey, int] = {}
        self._timers: dict[ObjectKey, asyncio.TimerHandle] = {}
        self._closed = False

    def __len__(self) -> int:
        return self._queue.qsize()

    def add(self, key: ObjectKey) -> None:
        """Queue a key for processing.

        Parameters
        ----------
        key
            Key of the node.
        """
        if self._closed or key in self._queued:
            return
        if key in self._processing:
            self._dirty.add(key)
            return
        self._queued.add(key)
        self._queue.put_nowait(key)

    def add_after(self, key: ObjectKey, delay: timedelta) -> None:
        """Queue a key after a delay.

        If the key is already waiting on an earlier timer, the earlier timer
        wins.

        Parameters
        ----------
        key
            Key of the node.
        delay
            How long to wait before queuing the key.
        """
        if self._closed:
            return
        seconds = delay.total_seconds()
        if seconds <= 0:
            self.add(key)
            return
        loop = asyncio.get_running_loop()
        when = loop.time() + seconds
        if timer := self._timers.get(key):
            if timer.when() <= when:
                return
            timer.cancel()
        self._timers[key] = loop.call_at(when, self._fire, key)

    def add_rate_limited(self, key: ObjectKey) -> timedelta:
        """Queue a key after a delay that doubles on every consecutive call.

        Parameters
        ----------
        key
            Key of the node.

        Returns
        -------
        datetime.timedelta
            Delay used.
        """
        failures = self._failures.get(key, 0)
        self._failures[key] = failures + 1
        delay = min(self._base_delay * 2**failures, self._max_delay)
        self.add_after(key, delay)
        return delay

    def close(self) -> None:
        """Stop accepting keys and cancel all delayed adds."""
        self._closed = True
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()

    def done(self, key: ObjectKey) -> None:
        """Mark processing of a key as finished.

        Parameters
        ----------
        key
            Key returned by `get`.
        """
        self._processing.discard(key)
        if key in self._dirty:
            self._dirty.discard(key)
            self.add(key)

    def forget(self, key: ObjectKey) -> None:
        """Reset the rate-limited retry delay of a key."""
        self._failures.pop(key, None)

    async def get(self) -> ObjectKey:
        """Wait for a key and claim it for processing.

        The caller must call `done` with the key once it has finished.

        Returns
        -------
        ObjectKey
            Key of the node to process.
        """
        key = await self._queue.get()
        self._queued.discard(key)
        self._processing.add(key)
        return key

    def _fire(self, key: ObjectKey) -> None:
        del self._timers[key]
        self.add(key)
