"""Tests for the keyed work queue."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from nodeoperator.models.domain.kubernetes import ObjectKey
from nodeoperator.services.workqueue import WorkQueue


@pytest.mark.asyncio
async def test_deduplicate() -> None:
    queue = WorkQueue()
    key = ObjectKey("topo", "node-a")
    other = ObjectKey("topo", "node-b")
    queue.add(key)
    queue.add(other)
    queue.add(key)
    assert len(queue) == 2

    assert await queue.get() == key
    assert await queue.get() == other
    assert len(queue) == 0


@pytest.mark.asyncio
async def test_add_while_processing() -> None:
    queue = WorkQueue()
    key = ObjectKey("topo", "node-a")
    queue.add(key)
    assert await queue.get() == key

    # Adding a key that a worker holds must not hand it to a second worker,
    # but it must come back once the first worker is done.
    queue.add(key)
    queue.add(key)
    assert len(queue) == 0
    queue.done(key)
    assert len(queue) == 1
    assert await queue.get() == key
    queue.done(key)
    assert len(queue) == 0


@pytest.mark.asyncio
async def test_add_after() -> None:
    queue = WorkQueue()
    key = ObjectKey("topo", "node-a")
    queue.add_after(key, timedelta(milliseconds=50))
    queue.add_after(key, timedelta(seconds=10))
    assert len(queue) == 0

    result = await asyncio.wait_for(queue.get(), timeout=1)
    assert result == key
    queue.done(key)

    # The later timer was dropped in favor of the earlier one.
    await asyncio.sleep(0.1)
    assert len(queue) == 0


@pytest.mark.asyncio
async def test_add_after_zero() -> None:
    queue = WorkQueue()
    key = ObjectKey("topo", "node-a")
    queue.add_after(key, timedelta(0))
    assert len(queue) == 1


@pytest.mark.asyncio
async def test_rate_limited() -> None:
    queue = WorkQueue(
        base_delay=timedelta(milliseconds=10),
        max_delay=timedelta(milliseconds=30),
    )
    key = ObjectKey("topo", "node-a")
    delays = []
    for _ in range(4):
        delays.append(queue.add_rate_limited(key))
        assert await asyncio.wait_for(queue.get(), timeout=1) == key
        queue.done(key)
    assert delays == [
        timedelta(milliseconds=10),
        timedelta(milliseconds=20),
        timedelta(milliseconds=30),
        timedelta(milliseconds=30),
    ]

    queue.forget(key)
    assert queue.add_rate_limited(key) == timedelta(milliseconds=10)


@pytest.mark.asyncio
async def test_close() -> None:
    queue = WorkQueue()
    key = ObjectKey("topo", "node-a")
    queue.add_after(key, timedelta(milliseconds=20))
    queue.close()
    queue.add(key)
    await asyncio.sleep(0.05)
    assert len(queue) == 0
