import asyncio
import logging

import pytest

from skillswap.core.scheduler import expire_stale_swaps, run_scheduled_tasks
from skillswap.schemas.swap import SwapStatus


class BrokenSwapService:
    def __init__(self):
        self.calls = 0

    async def expire_stale_swaps(self):
        self.calls += 1
        raise RuntimeError("store offline")


def test_expire_stale_swaps_logs_and_returns_swept(services, clock, caplog):
    async def scenario():
        swap = await services.swaps.create_swap("alice", "bob", "Spanish", "Photoshop")
        clock.advance(days=8)
        with caplog.at_level(logging.INFO, logger="scheduler"):
            swept = await expire_stale_swaps(services.swaps)
        assert [s.id for s in swept] == [swap.id]
        assert (await services.store.get_swap(swap.id)).status == SwapStatus.REJECTED
        assert "1 swaps expired" in caplog.text

    asyncio.run(scenario())


def test_run_scheduled_tasks_sweeps_until_cancelled(services, clock):
    async def scenario():
        swap = await services.swaps.create_swap("alice", "bob", "Spanish", "Photoshop")
        clock.advance(days=8)
        task = asyncio.create_task(run_scheduled_tasks(services.swaps, interval_seconds=3600))
        await asyncio.sleep(0)
        assert (await services.store.get_swap(swap.id)).status == SwapStatus.REJECTED

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())


def test_run_scheduled_tasks_survives_errors(caplog):
    broken = BrokenSwapService()

    async def scenario():
        task = asyncio.create_task(run_scheduled_tasks(broken, interval_seconds=3600))
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    with caplog.at_level(logging.ERROR, logger="scheduler"):
        asyncio.run(scenario())
    assert broken.calls == 1
    assert "Error in scheduled tasks" in caplog.text
