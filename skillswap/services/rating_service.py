"""
Rating ledger: one rating per participant per completed swap.

Every write that can change a reviewee's reputation (submit, edit, flag,
approve, delete) runs under that reviewee's reputation lock and finishes by
calling :meth:`ReputationService.apply`, so the materialized average is never
left behind the ledger.
"""

import logging
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from ..core.config import Settings, get_settings
from ..core.exceptions import (
    DuplicateRatingError,
    ForbiddenError,
    NotEligibleError,
    NotFoundError,
    NotParticipantError,
    ValidationError,
    WrongRevieweeError,
)
from ..core.store import SwapStore
from ..schemas.rating import (
    CATEGORY_NAMES,
    CategoryAverages,
    Rating,
    RatingCreate,
    RatingFlag,
    RatingStats,
    RatingTrend,
    RatingUpdate,
)
from ..schemas.swap import SwapStatus
from .pagination import check_page, paginate
from .reputation_service import ReputationService

logger = logging.getLogger("ratings")

# Fields that may be cleared with an explicit None on edit
CLEARABLE_FIELDS = {"feedback"}

def utc_now() -> datetime:
    return datetime.now(timezone.utc)

def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)

class RatingService:
    def __init__(
        self,
        store: SwapStore,
        reputation: ReputationService,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.reputation = reputation
        self.settings = settings or get_settings()
        self.clock = clock or utc_now

    @property
    def edit_window(self) -> timedelta:
        return timedelta(hours=self.settings.rating_edit_window_hours)

    # ------------------------------------------------------------------
    # Writes
    async def submit_rating(
        self,
        swap_id: str,
        reviewer_id: str,
        reviewee_id: str,
        rating: int,
        feedback: Optional[str] = None,
        categories: Optional[Dict[str, Any]] = None,
        would_recommend: bool = True,
        is_public: bool = True,
        is_anonymous: bool = False,
        skill_taught: Optional[str] = None,
        skill_learned: Optional[str] = None,
    ) -> Rating:
        data = {
            "swap_id": swap_id,
            "reviewee_id": reviewee_id,
            "rating": rating,
            "feedback": feedback,
            "would_recommend": would_recommend,
            "is_public": is_public,
            "is_anonymous": is_anonymous,
            "skill_taught": skill_taught,
            "skill_learned": skill_learned,
        }
        if categories is not None:
            data["categories"] = categories
        try:
            payload = RatingCreate(**data)
        except PydanticValidationError as e:
            raise ValidationError.from_pydantic(e) from e

        swap = await self.store.get_swap(payload.swap_id)
        if swap is None:
            raise NotFoundError("Swap not found", field="swap_id")
        if swap.status != SwapStatus.COMPLETED:
            raise NotEligibleError("Can only rate completed swaps", field="swap_id")
        if not swap.is_participant(reviewer_id):
            raise NotParticipantError("You can only rate swaps you participated in", field="reviewer_id")
        if payload.reviewee_id != swap.other_participant(reviewer_id):
            raise WrongRevieweeError(
                "You can only rate the other participant in the swap", field="reviewee_id"
            )

        existing = await self.store.select_ratings({"swap_id": swap.id, "reviewer_id": reviewer_id})
        if existing:
            raise DuplicateRatingError("You have already rated this swap", field="swap_id")

        now = self.clock()
        new_rating = Rating(
            id=str(uuid.uuid4()),
            reviewer_id=reviewer_id,
            **payload.model_dump(exclude={"categories"}),
            categories=payload.categories,
            created_at=now,
            updated_at=now,
        )
        async with self.reputation.lock(payload.reviewee_id):
            if await self.store.get_user(payload.reviewee_id) is None:
                raise NotFoundError("User not found", field="reviewee_id")
            # The store enforces (swap, reviewer) uniqueness even if two submits race past the check above.
            stored = await self.store.insert_rating(new_rating)
            await self.reputation.apply(payload.reviewee_id, added=stored)

        logger.info(f"Rating {stored.id} ({stored.rating}) on swap {swap.id}: {reviewer_id} -> {payload.reviewee_id}")
        return stored

    async def edit_rating(self, rating_id: str, actor_id: str, new_values: Dict[str, Any]) -> Rating:
        try:
            payload = RatingUpdate(**new_values)
        except PydanticValidationError as e:
            raise ValidationError.from_pydantic(e) from e

        rating = await self._get(rating_id)
        if rating.reviewer_id != actor_id:
            raise ForbiddenError("You can only update your own ratings", field="reviewer_id")
        if not self._within_edit_window(rating):
            raise NotEligibleError(
                f"Ratings can only be edited within {self.settings.rating_edit_window_hours} hours of creation",
                field="created_at",
            )

        changes = {
            name: getattr(payload, name)
            for name in payload.model_fields_set
            if getattr(payload, name) is not None or name in CLEARABLE_FIELDS
        }
        changes["updated_at"] = self.clock()

        updated = await self._write_and_recompute(rating, changes)
        logger.info(f"Rating {rating_id} edited by {actor_id}")
        return updated

    async def flag_rating(self, rating_id: str, actor_id: str, reason: str, is_admin: bool = False) -> Rating:
        try:
            payload = RatingFlag(reason=reason)
        except PydanticValidationError as e:
            raise ValidationError.from_pydantic(e) from e

        rating = await self._get(rating_id)
        if rating.reviewer_id == actor_id:
            raise ForbiddenError("You cannot flag your own rating", field="reviewer_id")
        if not is_admin:
            swap = await self.store.get_swap(rating.swap_id)
            if swap is None or not swap.is_participant(actor_id):
                raise NotParticipantError("Only swap participants can flag this rating", field="actor_id")

        changes = {
            "is_flagged": True,
            "is_approved": False,
            "flag_reason": payload.reason.strip(),
            "updated_at": self.clock(),
        }
        updated = await self._write_and_recompute(rating, changes)
        logger.warning(f"Rating {rating_id} flagged by {actor_id}: {payload.reason}")
        return updated

    async def approve_rating(
        self, rating_id: str, actor_id: str, is_admin: bool = False, admin_notes: Optional[str] = None
    ) -> Rating:
        if not is_admin:
            raise ForbiddenError("Only admins can approve ratings", field="actor_id")
        rating = await self._get(rating_id)
        changes = {"is_approved": True, "admin_reviewed": True, "updated_at": self.clock()}
        if admin_notes is not None:
            changes["admin_notes"] = admin_notes
        updated = await self._write_and_recompute(rating, changes)
        logger.info(f"Rating {rating_id} approved by {actor_id}")
        return updated

    async def delete_rating(self, rating_id: str, actor_id: str, is_admin: bool = False) -> None:
        rating = await self._get(rating_id)
        if not is_admin:
            if rating.reviewer_id != actor_id:
                raise ForbiddenError("You can only delete your own ratings", field="reviewer_id")
            if not self._within_edit_window(rating):
                raise NotEligibleError(
                    f"Ratings can only be deleted within {self.settings.rating_edit_window_hours} hours of creation",
                    field="created_at",
                )

        async with self.reputation.lock(rating.reviewee_id):
            if not await self.store.delete_rating(rating_id):
                raise NotFoundError("Rating not found", field="rating_id")
            await self.reputation.apply(rating.reviewee_id)
        logger.info(f"Rating {rating_id} deleted by {actor_id}")

    # ------------------------------------------------------------------
    # Reads
    async def get_rating(self, rating_id: str, actor_id: Optional[str] = None, is_admin: bool = False) -> Rating:
        rating = await self._get(rating_id)
        can_view = (
            rating.is_public
            or is_admin
            or actor_id in (rating.reviewer_id, rating.reviewee_id)
        )
        if not can_view:
            raise ForbiddenError("You do not have permission to view this rating", field="rating_id")
        return rating

    async def list_user_ratings(
        self, user_id: str, page: int = 1, limit: Optional[int] = None
    ) -> Tuple[List[Rating], int]:
        """Public, approved ratings a user has received, newest first."""
        limit = check_page(self.settings, page, limit)
        await self._require_user(user_id)
        ratings = await self.store.select_ratings({"reviewee_id": user_id, "is_public": True, "is_approved": True})
        return paginate(ratings, page, limit)

    async def list_ratings_given(
        self, user_id: str, page: int = 1, limit: Optional[int] = None
    ) -> Tuple[List[Rating], int]:
        limit = check_page(self.settings, page, limit)
        return paginate(await self.store.select_ratings({"reviewer_id": user_id}), page, limit)

    async def list_ratings_received(
        self, user_id: str, page: int = 1, limit: Optional[int] = None
    ) -> Tuple[List[Rating], int]:
        limit = check_page(self.settings, page, limit)
        return paginate(await self.store.select_ratings({"reviewee_id": user_id}), page, limit)

    async def list_swap_ratings(self, swap_id: str, actor_id: str, is_admin: bool = False) -> List[Rating]:
        swap = await self.store.get_swap(swap_id)
        if swap is None:
            raise NotFoundError("Swap not found", field="swap_id")
        if not is_admin and not swap.is_participant(actor_id):
            raise NotParticipantError(
                "You don't have permission to view ratings for this swap", field="swap_id"
            )
        return await self.store.select_ratings({"swap_id": swap_id})

    async def list_ratings_for_review(
        self, flagged: bool = False, unreviewed: bool = False, limit: int = 50
    ) -> List[Rating]:
        filters = {}
        if flagged:
            filters["is_flagged"] = True
        if unreviewed:
            filters["admin_reviewed"] = False
        return (await self.store.select_ratings(filters))[:limit]

    async def get_user_rating_stats(self, user_id: str) -> RatingStats:
        await self._require_user(user_id)
        ratings = await self.store.select_ratings({"reviewee_id": user_id, "is_public": True, "is_approved": True})
        if not ratings:
            return RatingStats()

        distribution = {score: 0 for score in range(1, 6)}
        for rating in ratings:
            distribution[rating.rating] += 1

        averages = {}
        for name in CATEGORY_NAMES:
            scores = [getattr(r.categories, name) for r in ratings if getattr(r.categories, name) is not None]
            averages[name] = round(sum(scores) / len(scores), 2) if scores else None

        recommended = sum(1 for rating in ratings if rating.would_recommend)
        return RatingStats(
            average_rating=round(sum(r.rating for r in ratings) / len(ratings), 2),
            total_ratings=len(ratings),
            rating_distribution=distribution,
            category_averages=CategoryAverages(**averages),
            recommendation_rate=round(recommended / len(ratings), 2),
        )

    async def rating_trends(self, start: date, end: date) -> List[RatingTrend]:
        """Daily average and count of approved ratings created between ``start`` and ``end`` inclusive."""
        if start > end:
            raise ValidationError("Start date must not be after end date", field="start_date")
        buckets: Dict[date, List[int]] = {}
        for rating in await self.store.select_ratings({"is_approved": True}):
            day = _aware(rating.created_at).date()
            if start <= day <= end:
                buckets.setdefault(day, []).append(rating.rating)
        return [
            RatingTrend(day=day, average_rating=round(sum(scores) / len(scores), 2), total_ratings=len(scores))
            for day, scores in sorted(buckets.items())
        ]

    # ------------------------------------------------------------------
    # Helpers
    async def _get(self, rating_id: str) -> Rating:
        rating = await self.store.get_rating(rating_id)
        if rating is None:
            raise NotFoundError("Rating not found", field="rating_id")
        return rating

    async def _require_user(self, user_id: str) -> None:
        if await self.store.get_user(user_id) is None:
            raise NotFoundError("User not found", field="user_id")

    def _within_edit_window(self, rating: Rating) -> bool:
        return self.clock() - _aware(rating.created_at) < self.edit_window

    async def _write_and_recompute(self, rating: Rating, changes: Dict[str, Any]) -> Rating:
        async with self.reputation.lock(rating.reviewee_id):
            updated = await self.store.update_rating(rating.id, changes)
            if updated is None:
                raise NotFoundError("Rating not found", field="rating_id")
            await self.reputation.apply(rating.reviewee_id)
        return updated
