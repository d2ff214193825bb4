import asyncio
import logging
from typing import List
from ..schemas.swap import Swap
from ..services.swap_service import SwapService

logger = logging.getLogger("scheduler")

async def expire_stale_swaps(swap_service: SwapService) -> List[Swap]:
    """
    Reconcile pending swaps whose response deadline has passed.

    Nothing in the swap lifecycle expires a request on its own; this task is
    the only place an overdue pending swap is moved to a terminal state.
    """
    logger.info("Starting stale swap sweep")
    swept = await swap_service.expire_stale_swaps()
    logger.info(f"Completed stale swap sweep: {len(swept)} swaps expired")
    return swept

async def run_scheduled_tasks(swap_service: SwapService, interval_seconds: int = 3600):
    """
    Run all scheduled tasks periodically.
    """
    while True:
        try:
            await expire_stale_swaps(swap_service)
            await asyncio.sleep(interval_seconds)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Error in scheduled tasks")
            await asyncio.sleep(60)  # Wait a minute before retrying
