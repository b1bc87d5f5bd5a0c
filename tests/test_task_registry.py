import asyncio

import pytest

from core.errors import RequestAborted, RequestTimeout


class TestTimers:
    @pytest.mark.asyncio
    async def test_call_later_fires_and_deregisters(self, registry):
        fired = []
        registry.call_later(0.01, fired.append, "x")
        assert registry.pending_timers == 1

        await asyncio.sleep(0.05)
        assert fired == ["x"]
        assert registry.pending_timers == 0

    @pytest.mark.asyncio
    async def test_cancel_timer(self, registry):
        fired = []
        handle = registry.call_later(0.01, fired.append, "x")
        registry.cancel_timer(handle)
        registry.cancel_timer(None)

        await asyncio.sleep(0.05)
        assert fired == []
        assert registry.pending_timers == 0

    @pytest.mark.asyncio
    async def test_sleep_is_registered_until_woken(self, registry):
        task = asyncio.ensure_future(registry.sleep(0.02))
        await asyncio.sleep(0)
        assert registry.pending_timers == 1

        await task
        assert registry.pending_timers == 0


class TestFetch:
    @pytest.mark.asyncio
    async def test_returns_result(self, registry):
        async def work():
            return 42

        assert await registry.fetch(work(), timeout=1) == 42
        assert registry.pending_timers == 0
        assert registry.pending_tasks == 0

    @pytest.mark.asyncio
    async def test_timeout(self, registry):
        async def slow():
            await asyncio.sleep(5)

        with pytest.raises(RequestTimeout):
            await registry.fetch(slow(), timeout=0.02)
        assert registry.pending_timers == 0

    @pytest.mark.asyncio
    async def test_errors_propagate(self, registry):
        async def broken():
            raise ValueError("bad body")

        with pytest.raises(ValueError):
            await registry.fetch(broken(), timeout=1)

    @pytest.mark.asyncio
    async def test_cancel_all_aborts_request(self, registry):
        async def slow():
            await asyncio.sleep(5)

        async def caller():
            try:
                await registry.fetch(slow(), timeout=10)
            except RequestAborted as e:
                return e

        outer = asyncio.ensure_future(caller())
        await asyncio.sleep(0.01)
        # only the inner request is tracked, the caller is not
        assert registry.cancel_all() == 2

        error = await outer
        assert isinstance(error, RequestAborted)
        assert not isinstance(error, RequestTimeout)


class TestSpawn:
    @pytest.mark.asyncio
    async def test_failed_task_is_dropped(self, registry, drain):
        async def broken():
            raise RuntimeError("boom")

        task = registry.spawn(broken(), name="broken")
        await drain(registry)
        assert task.done()
        assert registry.pending_tasks == 0

    @pytest.mark.asyncio
    async def test_cancel_all_terminates_everything(self, registry):
        registry.call_later(10, lambda: None)
        task = registry.spawn(asyncio.sleep(10))
        sleeper = registry.spawn(registry.sleep(10))
        await asyncio.sleep(0)

        assert registry.cancel_all() == 4
        await asyncio.sleep(0.01)
        assert task.cancelled()
        assert sleeper.cancelled()
        assert registry.pending_timers == 0
        assert registry.pending_tasks == 0


class TestClose:
    @pytest.mark.asyncio
    async def test_cancel_all_aborts_untracked_sleep(self, registry):
        sleeper = asyncio.ensure_future(registry.sleep(10))
        await asyncio.sleep(0)

        registry.cancel_all()
        with pytest.raises(RequestAborted):
            await asyncio.wait_for(sleeper, 1)

    @pytest.mark.asyncio
    async def test_closed_registry_refuses_work(self, registry):
        async def work():
            return 42

        registry.cancel_all()
        assert registry.closed

        assert registry.spawn(work(), name="late") is None
        with pytest.raises(RequestAborted):
            await registry.fetch(work(), timeout=1)
        with pytest.raises(RequestAborted):
            await registry.sleep(0.01)
        with pytest.raises(RequestAborted):
            registry.call_later(0.01, lambda: None)

        assert registry.pending_tasks == 0
        assert registry.pending_timers == 0
