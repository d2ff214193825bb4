"""
Storage interface for swaps, ratings and the user reputation fields.

Every write is a conditional, id-scoped operation so concurrent callers can
never silently overwrite each other: swap transitions compare-and-set on the
expected prior status, swap inserts re-check the one-pending-swap-per-pair
rule, and rating inserts enforce one rating per (swap, reviewer).
"""

import copy
import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from .exceptions import DuplicateRatingError, NotEligibleError
from ..schemas.rating import Rating
from ..schemas.swap import Swap, SwapStatus
from ..schemas.user import UserProfile

logger = logging.getLogger("store")

class SwapStore(ABC):
    # Users (owned externally; only reputation fields and swap counts are written)
    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[UserProfile]:
        ...

    @abstractmethod
    async def increment_total_swaps(self, user_id: str) -> None:
        ...

    @abstractmethod
    async def set_reputation(self, user_id: str, average_rating: float, total_ratings: int) -> None:
        ...

    # Swaps
    @abstractmethod
    async def insert_swap(self, swap: Swap) -> Swap:
        """Insert ``swap``; raise :class:`NotEligibleError` if the pair already has a pending swap."""

    @abstractmethod
    async def get_swap(self, swap_id: str) -> Optional[Swap]:
        ...

    @abstractmethod
    async def update_swap(
        self, swap_id: str, expected_status: SwapStatus, changes: Dict[str, Any]
    ) -> Optional[Swap]:
        """Apply ``changes`` only if the stored status is still ``expected_status``.

        Returns the updated swap, or ``None`` when the swap is missing or its
        status moved on.
        """

    @abstractmethod
    async def select_swaps(self, filters: Optional[Dict[str, Any]] = None) -> List[Swap]:
        """Return swaps matching all equality ``filters``, newest first."""

    @abstractmethod
    async def select_swaps_for_user(
        self, user_id: str, status: Optional[SwapStatus] = None, skip: int = 0, limit: Optional[int] = None
    ) -> Tuple[List[Swap], int]:
        """Return one page of swaps where ``user_id`` is either participant, plus the total count."""

    @abstractmethod
    async def select_swaps_between(self, user_a: str, user_b: str) -> List[Swap]:
        ...

    @abstractmethod
    async def select_expired_pending(self, now: datetime) -> List[Swap]:
        ...

    # Ratings
    @abstractmethod
    async def insert_rating(self, rating: Rating) -> Rating:
        """Insert ``rating``; raise :class:`DuplicateRatingError` on a second (swap, reviewer)."""

    @abstractmethod
    async def get_rating(self, rating_id: str) -> Optional[Rating]:
        ...

    @abstractmethod
    async def update_rating(self, rating_id: str, changes: Dict[str, Any]) -> Optional[Rating]:
        ...

    @abstractmethod
    async def delete_rating(self, rating_id: str) -> bool:
        ...

    @abstractmethod
    async def select_ratings(self, filters: Optional[Dict[str, Any]] = None) -> List[Rating]:
        """Return ratings matching all equality ``filters``, newest first."""

class InMemoryStore(SwapStore):
    """
    Process-local store used by default and in tests.

    A single lock guards every read-modify-write so each conditional write is
    atomic with respect to other threads and coroutines. Records are copied on
    the way in and out so callers never hold a live reference to stored state.
    """

    def __init__(self, users: Optional[List[UserProfile]] = None):
        self._lock = threading.Lock()
        self._users: Dict[str, UserProfile] = {}
        self._swaps: Dict[str, Swap] = {}
        self._ratings: Dict[str, Rating] = {}
        for user in users or []:
            self.add_user(user)

    def add_user(self, user: UserProfile) -> None:
        with self._lock:
            self._users[user.id] = user.model_copy(deep=True)

    # ------------------------------------------------------------------
    # Users
    async def get_user(self, user_id: str) -> Optional[UserProfile]:
        with self._lock:
            user = self._users.get(user_id)
            return user.model_copy(deep=True) if user else None

    async def increment_total_swaps(self, user_id: str) -> None:
        with self._lock:
            user = self._users.get(user_id)
            if user is not None:
                user.total_swaps += 1

    async def set_reputation(self, user_id: str, average_rating: float, total_ratings: int) -> None:
        with self._lock:
            user = self._users.get(user_id)
            if user is not None:
                user.average_rating = average_rating
                user.total_ratings = total_ratings

    # ------------------------------------------------------------------
    # Swaps
    async def insert_swap(self, swap: Swap) -> Swap:
        with self._lock:
            for existing in self._swaps.values():
                if existing.status == SwapStatus.PENDING and existing.involves_pair(
                    swap.requester_id, swap.receiver_id
                ):
                    raise NotEligibleError(
                        "A pending swap already exists between you and this user",
                        field="receiver_id",
                    )
            self._swaps[swap.id] = swap.model_copy(deep=True)
            return swap.model_copy(deep=True)

    async def get_swap(self, swap_id: str) -> Optional[Swap]:
        with self._lock:
            swap = self._swaps.get(swap_id)
            return swap.model_copy(deep=True) if swap else None

    async def update_swap(
        self, swap_id: str, expected_status: SwapStatus, changes: Dict[str, Any]
    ) -> Optional[Swap]:
        with self._lock:
            swap = self._swaps.get(swap_id)
            if swap is None or swap.status != expected_status:
                return None
            updated = swap.model_copy(update=copy.deepcopy(changes))
            self._swaps[swap_id] = updated
            return updated.model_copy(deep=True)

    async def select_swaps(self, filters: Optional[Dict[str, Any]] = None) -> List[Swap]:
        with self._lock:
            swaps = [s for s in self._swaps.values() if _matches(s, filters)]
            return _newest_first([s.model_copy(deep=True) for s in swaps])

    async def select_swaps_for_user(
        self, user_id: str, status: Optional[SwapStatus] = None, skip: int = 0, limit: Optional[int] = None
    ) -> Tuple[List[Swap], int]:
        with self._lock:
            swaps = [
                s.model_copy(deep=True)
                for s in self._swaps.values()
                if s.is_participant(user_id) and (status is None or s.status == status)
            ]
        swaps = _newest_first(swaps)
        end = None if limit is None else skip + limit
        return swaps[skip:end], len(swaps)

    async def select_swaps_between(self, user_a: str, user_b: str) -> List[Swap]:
        with self._lock:
            swaps = [s.model_copy(deep=True) for s in self._swaps.values() if s.involves_pair(user_a, user_b)]
        return _newest_first(swaps)

    async def select_expired_pending(self, now: datetime) -> List[Swap]:
        with self._lock:
            swaps = [s.model_copy(deep=True) for s in self._swaps.values() if s.is_expired(now)]
        return _newest_first(swaps)

    # ------------------------------------------------------------------
    # Ratings
    async def insert_rating(self, rating: Rating) -> Rating:
        with self._lock:
            for existing in self._ratings.values():
                if existing.swap_id == rating.swap_id and existing.reviewer_id == rating.reviewer_id:
                    raise DuplicateRatingError("You have already rated this swap", field="swap_id")
            self._ratings[rating.id] = rating.model_copy(deep=True)
            return rating.model_copy(deep=True)

    async def get_rating(self, rating_id: str) -> Optional[Rating]:
        with self._lock:
            rating = self._ratings.get(rating_id)
            return rating.model_copy(deep=True) if rating else None

    async def update_rating(self, rating_id: str, changes: Dict[str, Any]) -> Optional[Rating]:
        with self._lock:
            rating = self._ratings.get(rating_id)
            if rating is None:
                return None
            updated = rating.model_copy(update=copy.deepcopy(changes))
            self._ratings[rating_id] = updated
            return updated.model_copy(deep=True)

    async def delete_rating(self, rating_id: str) -> bool:
        with self._lock:
            return self._ratings.pop(rating_id, None) is not None

    async def select_ratings(self, filters: Optional[Dict[str, Any]] = None) -> List[Rating]:
        with self._lock:
            ratings = [r.model_copy(deep=True) for r in self._ratings.values() if _matches(r, filters)]
        return _newest_first(ratings)

def _matches(record, filters: Optional[Dict[str, Any]]) -> bool:
    if not filters:
        return True
    return all(getattr(record, key) == value for key, value in filters.items())

def _newest_first(records: list) -> list:
    return sorted(records, key=lambda record: record.created_at, reverse=True)
