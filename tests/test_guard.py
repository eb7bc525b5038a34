import asyncio

import pytest

from menuchat.guard import ConnectionGuard


@pytest.mark.asyncio
async def test_open_is_idempotent_while_running():
    guard = ConnectionGuard()
    started = []
    release = asyncio.Event()

    async def reader():
        started.append(1)
        await release.wait()

    assert guard.open("s1", reader)
    assert not guard.open("s1", reader)
    await asyncio.sleep(0)
    assert started == [1]
    assert guard.active_ids() == ["s1"]

    release.set()
    await guard.wait("s1")
    assert not guard.is_active("s1")


@pytest.mark.asyncio
async def test_open_again_after_finish():
    guard = ConnectionGuard()
    runs = []

    async def reader():
        runs.append(1)

    guard.open("s1", reader)
    await guard.wait("s1")
    assert guard.open("s1", reader)
    await guard.wait("s1")
    assert runs == [1, 1]


@pytest.mark.asyncio
async def test_cancel_is_marked_deliberate():
    guard = ConnectionGuard()
    observed = []

    async def reader():
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            observed.append(guard.is_deliberate("s1"))
            raise

    guard.open("s1", reader)
    await asyncio.sleep(0)
    assert guard.cancel("s1")
    await guard.wait("s1")
    assert observed == [True]
    assert not guard.cancel("s1")
    assert not guard.is_deliberate("s1")


@pytest.mark.asyncio
async def test_reopen_clears_deliberate_flag():
    guard = ConnectionGuard()

    async def reader():
        await asyncio.sleep(10)

    guard.open("s1", reader)
    await asyncio.sleep(0)
    guard.cancel("s1")
    await guard.wait("s1")
    guard.open("s1", reader)
    assert not guard.is_deliberate("s1")
    await guard.close()


@pytest.mark.asyncio
async def test_close_cancels_everything():
    guard = ConnectionGuard()
    observed = {}

    def reader_for(sid):
        async def reader():
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                observed[sid] = guard.is_deliberate(sid)
                raise
        return reader

    for sid in ("a", "b", "c"):
        guard.open(sid, reader_for(sid))
    await asyncio.sleep(0)
    await guard.close()
    assert guard.active_ids() == []
    assert observed == {"a": True, "b": True, "c": True}


@pytest.mark.asyncio
async def test_deliberate_flags_do_not_outlive_their_reader():
    guard = ConnectionGuard()

    async def reader():
        await asyncio.sleep(10)

    for i in range(50):
        guard.open(f"s{i}", reader)
    await asyncio.sleep(0)
    await guard.close()
    assert not any(guard.is_deliberate(f"s{i}") for i in range(50))


@pytest.mark.asyncio
async def test_wait_unknown_session_returns():
    await ConnectionGuard().wait("nope")
