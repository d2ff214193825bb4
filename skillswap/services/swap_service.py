"""
Swap lifecycle management.

A swap starts ``pending`` and moves only forward::

    pending  -> accepted | rejected | cancelled
    accepted -> completed | cancelled

Each transition is a compare-and-set on the swap's prior status, so two
callers racing on the same swap produce exactly one winner; the loser gets a
:class:`ConflictError` and nothing it intended is written.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, FrozenSet, List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from ..core.config import Settings, get_settings
from ..core.exceptions import (
    ConflictError,
    ForbiddenError,
    NotEligibleError,
    NotFoundError,
    NotParticipantError,
    ValidationError,
)
from ..core.store import SwapStore
from ..schemas.swap import (
    STATUS_TIMESTAMP_FIELDS,
    Eligibility,
    Swap,
    SwapAction,
    SwapCreate,
    SwapDetailsUpdate,
    SwapStats,
    SwapStatus,
)
from .eligibility import check_eligibility, raise_for_eligibility
from .pagination import check_page

logger = logging.getLogger("swaps")

@dataclass(frozen=True)
class TransitionRule:
    target: SwapStatus
    allowed_from: FrozenSet[SwapStatus]
    actor_role: str  # "requester" | "receiver" | "participant"
    forbidden_message: str
    wrong_status_message: str

def build_transition_rules(allow_cancel_after_accept: bool = True) -> Dict[SwapAction, TransitionRule]:
    cancellable = {SwapStatus.PENDING}
    if allow_cancel_after_accept:
        cancellable.add(SwapStatus.ACCEPTED)
    return {
        SwapAction.ACCEPT: TransitionRule(
            target=SwapStatus.ACCEPTED,
            allowed_from=frozenset({SwapStatus.PENDING}),
            actor_role="receiver",
            forbidden_message="Only the receiver can accept the swap",
            wrong_status_message="This swap is no longer pending",
        ),
        SwapAction.REJECT: TransitionRule(
            target=SwapStatus.REJECTED,
            allowed_from=frozenset({SwapStatus.PENDING}),
            actor_role="receiver",
            forbidden_message="Only the receiver can reject the swap",
            wrong_status_message="This swap is no longer pending",
        ),
        SwapAction.CANCEL: TransitionRule(
            target=SwapStatus.CANCELLED,
            allowed_from=frozenset(cancellable),
            actor_role="requester",
            forbidden_message="Only the requester can cancel the swap",
            wrong_status_message="This swap can no longer be cancelled",
        ),
        SwapAction.COMPLETE: TransitionRule(
            target=SwapStatus.COMPLETED,
            allowed_from=frozenset({SwapStatus.ACCEPTED}),
            actor_role="participant",
            forbidden_message="You do not have permission to complete this swap",
            wrong_status_message="Swap must be accepted before it can be completed",
        ),
    }

def utc_now() -> datetime:
    return datetime.now(timezone.utc)

class SwapService:
    def __init__(
        self,
        store: SwapStore,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store
        self.settings = settings or get_settings()
        self.clock = clock or utc_now
        self.rules = build_transition_rules(self.settings.allow_cancel_after_accept)

    def _check_proposed_date(self, proposed_date: Optional[datetime]) -> None:
        if proposed_date is not None and proposed_date <= self.clock():
            raise ValidationError("Proposed date must be in the future", field="proposed_date")

    # ------------------------------------------------------------------
    # Creation
    async def check_eligibility(
        self, requester_id: str, receiver_id: str, requested_skill: str, offered_skill: str
    ) -> Eligibility:
        """Advisory check; :meth:`create_swap` re-validates at write time."""
        requester = await self.store.get_user(requester_id)
        if requester is None:
            return Eligibility(ok=False, kind=NotFoundError.kind, reason="Requester not found", field="requester_id")
        receiver = await self.store.get_user(receiver_id)
        existing = await self.store.select_swaps_between(requester_id, receiver_id)
        return check_eligibility(requester, receiver, requested_skill, offered_skill, existing)

    async def create_swap(
        self,
        requester_id: str,
        receiver_id: str,
        requested_skill: str,
        offered_skill: str,
        message: Optional[str] = None,
        meeting_type: Optional[str] = None,
        proposed_date: Optional[datetime] = None,
        location: Optional[str] = None,
        duration: Optional[str] = None,
    ) -> Swap:
        data = {
            "receiver_id": receiver_id,
            "requested_skill": requested_skill,
            "offered_skill": offered_skill,
            "message": message,
            "proposed_date": proposed_date,
            "location": location,
            "duration": duration,
        }
        if meeting_type is not None:
            data["meeting_type"] = meeting_type
        try:
            payload = SwapCreate(**data)
        except PydanticValidationError as e:
            raise ValidationError.from_pydantic(e) from e
        self._check_proposed_date(payload.proposed_date)

        eligibility = await self.check_eligibility(
            requester_id, payload.receiver_id, payload.requested_skill, payload.offered_skill
        )
        raise_for_eligibility(eligibility)

        now = self.clock()
        swap = Swap(
            id=str(uuid.uuid4()),
            requester_id=requester_id,
            **payload.model_dump(),
            status=SwapStatus.PENDING,
            response_deadline=now + timedelta(days=self.settings.response_window_days),
            created_at=now,
            updated_at=now,
        )
        # The store re-checks the one-pending-swap-per-pair rule atomically.
        created = await self.store.insert_swap(swap)
        logger.info(f"Created swap {created.id}: {requester_id} -> {payload.receiver_id}")
        return created

    # ------------------------------------------------------------------
    # Reads
    async def get_swap(self, swap_id: str, actor_id: Optional[str] = None, is_admin: bool = False) -> Swap:
        swap = await self.store.get_swap(swap_id)
        if swap is None:
            raise NotFoundError("Swap not found", field="swap_id")
        if actor_id is not None and not is_admin and not swap.is_participant(actor_id):
            raise NotParticipantError("You do not have permission to view this swap", field="swap_id")
        return swap

    async def list_swaps(
        self, user_id: str, status: Optional[SwapStatus] = None, page: int = 1, limit: Optional[int] = None
    ) -> Tuple[List[Swap], int]:
        limit = check_page(self.settings, page, limit)
        return await self.store.select_swaps_for_user(user_id, status=status, skip=(page - 1) * limit, limit=limit)

    async def get_swap_stats(self, user_id: str) -> SwapStats:
        swaps, total = await self.store.select_swaps_for_user(user_id)
        counts = {status.value: 0 for status in SwapStatus}
        for swap in swaps:
            counts[swap.status.value] += 1
        return SwapStats(total=total, **counts)

    def is_expired(self, swap: Swap) -> bool:
        return swap.is_expired(self.clock())

    # ------------------------------------------------------------------
    # Mutations
    async def update_swap_details(self, swap_id: str, actor_id: str, updates: dict) -> Swap:
        """Let the requester amend descriptive details while the swap is still pending."""
        try:
            payload = SwapDetailsUpdate(**updates)
        except PydanticValidationError as e:
            raise ValidationError.from_pydantic(e) from e
        self._check_proposed_date(payload.proposed_date)

        swap = await self.get_swap(swap_id)
        if swap.requester_id != actor_id:
            raise ForbiddenError("Only the requester can update swap details", field="requester_id")
        if swap.status != SwapStatus.PENDING:
            raise NotEligibleError(
                "Cannot update swap details after it has been responded to", field="status"
            )

        changes = payload.model_dump(exclude_unset=True)
        changes["updated_at"] = self.clock()
        updated = await self.store.update_swap(swap_id, SwapStatus.PENDING, changes)
        if updated is None:
            raise ConflictError("Swap was responded to while updating its details", field="status")
        return updated

    async def transition_swap(self, swap_id: str, actor_id: str, action) -> Swap:
        try:
            action = SwapAction(action)
        except ValueError as e:
            raise ValidationError(f"Unknown swap action: {action}", field="action") from e
        rule = self.rules[action]

        swap = await self.store.get_swap(swap_id)
        if swap is None:
            raise NotFoundError("Swap not found", field="swap_id")

        self._authorize(swap, actor_id, rule)
        if swap.status not in rule.allowed_from:
            if swap.status == SwapStatus.COMPLETED and action == SwapAction.CANCEL:
                raise NotEligibleError("Cannot cancel completed swap", field="status")
            raise NotEligibleError(rule.wrong_status_message, field="status")

        now = self.clock()
        changes = {"status": rule.target, "updated_at": now}
        timestamp_field = STATUS_TIMESTAMP_FIELDS[rule.target]
        if getattr(swap, timestamp_field) is None:
            changes[timestamp_field] = now

        updated = await self.store.update_swap(swap_id, swap.status, changes)
        if updated is None:
            current = await self.store.get_swap(swap_id)
            if current is None:
                raise NotFoundError("Swap not found", field="swap_id")
            logger.warning(
                f"Conflict on swap {swap_id}: {action.value} expected {swap.status.value}, found {current.status.value}"
            )
            raise ConflictError(
                f"Swap is now {current.status.value}; {action.value} was not applied", field="status"
            )

        if rule.target == SwapStatus.COMPLETED:
            await self.store.increment_total_swaps(updated.requester_id)
            await self.store.increment_total_swaps(updated.receiver_id)

        logger.info(f"Swap {swap_id} {swap.status.value} -> {updated.status.value} by {actor_id}")
        return updated

    async def accept(self, swap_id: str, actor_id: str) -> Swap:
        return await self.transition_swap(swap_id, actor_id, SwapAction.ACCEPT)

    async def reject(self, swap_id: str, actor_id: str) -> Swap:
        return await self.transition_swap(swap_id, actor_id, SwapAction.REJECT)

    async def cancel(self, swap_id: str, actor_id: str) -> Swap:
        return await self.transition_swap(swap_id, actor_id, SwapAction.CANCEL)

    async def complete(self, swap_id: str, actor_id: str) -> Swap:
        return await self.transition_swap(swap_id, actor_id, SwapAction.COMPLETE)

    async def expire_stale_swaps(self) -> List[Swap]:
        """
        Reconcile pending swaps past their response deadline by rejecting them.

        Uses the same compare-and-set as :meth:`transition_swap`, so a receiver
        accepting at the same moment either wins outright or sees a conflict.
        """
        now = self.clock()
        expired = await self.store.select_expired_pending(now)
        swept = []
        for swap in expired:
            updated = await self.store.update_swap(
                swap.id,
                SwapStatus.PENDING,
                {"status": SwapStatus.REJECTED, "rejected_at": now, "updated_at": now},
            )
            if updated is None:
                logger.info(f"Swap {swap.id} changed before it could be expired; skipping")
                continue
            swept.append(updated)
        if swept:
            logger.info(f"Expired {len(swept)} stale pending swaps")
        return swept

    # ------------------------------------------------------------------
    # Helpers
    def _authorize(self, swap: Swap, actor_id: str, rule: TransitionRule) -> None:
        if not swap.is_participant(actor_id):
            raise NotParticipantError(rule.forbidden_message, field="actor_id")
        if rule.actor_role == "receiver" and actor_id != swap.receiver_id:
            raise ForbiddenError(rule.forbidden_message, field="actor_id")
        if rule.actor_role == "requester" and actor_id != swap.requester_id:
            raise ForbiddenError(rule.forbidden_message, field="actor_id")
