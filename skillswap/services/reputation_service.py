"""
Materialized reputation for each user.

``average_rating``/``total_ratings`` on the user record are a view over the
ratings that user has received. The canonical value is always the aggregate
of their approved, public ratings; the incremental update for a fresh rating
is an optimisation that must land on the same number.

Rating writes for a reviewee and the matching reputation update happen while
holding that reviewee's lock (see :meth:`ReputationService.lock`), so the
running average can never interleave with a concurrent recompute.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional

from ..core.exceptions import NotFoundError
from ..core.store import SwapStore
from ..schemas.rating import Rating
from ..schemas.user import ReputationAudit, ReputationSnapshot

logger = logging.getLogger("reputation")

TOLERANCE = 1e-9

class ReputationService:
    def __init__(self, store: SwapStore):
        self.store = store
        self._locks: Dict[str, asyncio.Lock] = {}
        self._waiters: Dict[str, int] = {}

    @asynccontextmanager
    async def lock(self, user_id: str) -> AsyncIterator[None]:
        """
        Hold the lock serialising every reputation-affecting write for ``user_id``.

        The entry is dropped once no task holds or waits on it, so the table
        only ever covers users with a write in flight.
        """
        lock = self._locks.setdefault(user_id, asyncio.Lock())
        self._waiters[user_id] = self._waiters.get(user_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[user_id] -= 1
            if not self._waiters[user_id]:
                del self._waiters[user_id]
                del self._locks[user_id]

    async def apply(self, user_id: str, added: Optional[Rating] = None) -> ReputationSnapshot:
        """
        Bring ``user_id``'s materialized reputation up to date.

        With ``added`` (a rating just inserted) this is the incremental
        ``(avg * n + r) / (n + 1)`` step; without it, a full recompute.
        Callers must hold :meth:`lock` for ``user_id``.
        """
        if added is None:
            return await self._store_snapshot(await self.canonical(user_id))

        user = await self.store.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found", field="reviewee_id")
        if not added.counts_toward_reputation:
            return ReputationSnapshot(
                user_id=user_id, average_rating=user.average_rating, total_ratings=user.total_ratings
            )

        count = user.total_ratings + 1
        average = (user.average_rating * user.total_ratings + added.rating) / count
        return await self._store_snapshot(
            ReputationSnapshot(user_id=user_id, average_rating=average, total_ratings=count)
        )

    async def canonical(self, user_id: str) -> ReputationSnapshot:
        """Aggregate every approved, public rating ``user_id`` has received."""
        ratings = await self.store.select_ratings(
            {"reviewee_id": user_id, "is_approved": True, "is_public": True}
        )
        if not ratings:
            return ReputationSnapshot(user_id=user_id, average_rating=0.0, total_ratings=0)
        total = sum(rating.rating for rating in ratings)
        return ReputationSnapshot(
            user_id=user_id, average_rating=total / len(ratings), total_ratings=len(ratings)
        )

    async def recompute(self, user_id: str) -> ReputationSnapshot:
        """Rebuild the materialized reputation from the ledger and persist it."""
        async with self.lock(user_id):
            return await self.apply(user_id)

    async def materialized(self, user_id: str) -> ReputationSnapshot:
        user = await self.store.get_user(user_id)
        if user is None:
            raise NotFoundError("User not found", field="user_id")
        return ReputationSnapshot(
            user_id=user_id, average_rating=user.average_rating, total_ratings=user.total_ratings
        )

    async def verify(self, user_id: str) -> ReputationAudit:
        materialized = await self.materialized(user_id)
        canonical = await self.canonical(user_id)
        consistent = (
            materialized.total_ratings == canonical.total_ratings
            and abs(materialized.average_rating - canonical.average_rating) <= TOLERANCE * max(1, canonical.total_ratings)
        )
        if not consistent:
            logger.warning(
                f"Reputation drift for {user_id}: materialized {materialized.average_rating:.4f}/"
                f"{materialized.total_ratings}, canonical {canonical.average_rating:.4f}/{canonical.total_ratings}"
            )
        return ReputationAudit(
            user_id=user_id, materialized=materialized, canonical=canonical, consistent=consistent
        )

    async def _store_snapshot(self, snapshot: ReputationSnapshot) -> ReputationSnapshot:
        await self.store.set_reputation(snapshot.user_id, snapshot.average_rating, snapshot.total_ratings)
        logger.info(
            f"Reputation for {snapshot.user_id}: {snapshot.average_rating:.2f} over {snapshot.total_ratings} ratings"
        )
        return snapshot
