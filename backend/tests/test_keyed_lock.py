import asyncio

import pytest

from timetracker.utils.keyed_lock import KeyedLock


@pytest.mark.asyncio
async def test_same_key_is_serialized():
    lock = KeyedLock()
    events = []

    async def work(name):
        async with lock.acquire((1, 1)):
            events.append(f"{name} start")
            await asyncio.sleep(0.01)
            events.append(f"{name} end")

    await asyncio.gather(work("a"), work("b"))

    assert events == ["a start", "a end", "b start", "b end"]
    assert len(lock) == 0


@pytest.mark.asyncio
async def test_different_keys_run_concurrently():
    lock = KeyedLock()
    other_started = asyncio.Event()

    async def first():
        async with lock.acquire((1, 1)):
            await asyncio.wait_for(other_started.wait(), timeout=1)

    async def second():
        async with lock.acquire((2, 1)):
            other_started.set()

    await asyncio.gather(first(), second())


@pytest.mark.asyncio
async def test_lock_released_on_error():
    lock = KeyedLock()

    with pytest.raises(RuntimeError):
        async with lock.acquire("key"):
            assert lock.locked("key")
            raise RuntimeError("boom")

    assert not lock.locked("key")
    assert len(lock) == 0
