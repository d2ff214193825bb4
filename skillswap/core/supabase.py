"""
Supabase-backed implementation of :class:`SwapStore`.

Expected schema (Postgres)::

    create table swaps (
        id uuid primary key,
        requester_id uuid not null references users(id),
        receiver_id uuid not null references users(id),
        requested_skill text not null,
        offered_skill text not null,
        message text,
        status text not null default 'pending',
        meeting_type text not null default 'online',
        location text,
        proposed_date timestamptz,
        duration text,
        response_deadline timestamptz not null,
        accepted_at timestamptz,
        rejected_at timestamptz,
        cancelled_at timestamptz,
        completed_at timestamptz,
        created_at timestamptz not null,
        updated_at timestamptz not null,
        check (requester_id <> receiver_id)
    );
    -- one pending swap per unordered pair
    create unique index swaps_one_pending_per_pair
        on swaps (least(requester_id, receiver_id), greatest(requester_id, receiver_id))
        where status = 'pending';

    create table ratings (
        id uuid primary key,
        swap_id uuid not null references swaps(id),
        reviewer_id uuid not null references users(id),
        reviewee_id uuid not null references users(id),
        rating smallint not null check (rating between 1 and 5),
        feedback text,
        categories jsonb not null default '{}',
        skill_taught text,
        skill_learned text,
        would_recommend boolean not null default true,
        is_public boolean not null default true,
        is_anonymous boolean not null default false,
        is_approved boolean not null default true,
        is_flagged boolean not null default false,
        flag_reason text,
        admin_reviewed boolean not null default false,
        admin_notes text,
        created_at timestamptz not null,
        updated_at timestamptz not null,
        unique (swap_id, reviewer_id)
    );

    create function increment_total_swaps(user_id uuid) returns void as $$
        update users set total_swaps = total_swaps + 1 where id = user_id;
    $$ language sql;

Connection or HTTP failures are never caught here: they propagate to the
caller unchanged so a lost write can never be mistaken for a success.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from postgrest.exceptions import APIError
from pydantic import BaseModel
from supabase import Client, create_client

from .config import get_settings
from .exceptions import DuplicateRatingError, NotEligibleError
from .store import SwapStore
from ..schemas.rating import Rating
from ..schemas.swap import Swap, SwapStatus
from ..schemas.user import UserProfile

logger = logging.getLogger("supabase")

UNIQUE_VIOLATION = "23505"

def get_supabase_client() -> Client:
    """Create a Supabase client from the configured URL and key."""
    settings = get_settings()
    if not settings.supabase_url or not settings.supabase_key:
        raise ValueError(
            "SUPABASE_URL and SUPABASE_KEY must be set in environment variables"
        )
    return create_client(settings.supabase_url, settings.supabase_key)

def _serialize(data: Dict[str, Any]) -> Dict[str, Any]:
    serialized = {}
    for key, value in data.items():
        if isinstance(value, Enum):
            serialized[key] = value.value
        elif isinstance(value, datetime):
            serialized[key] = value.isoformat()
        elif isinstance(value, BaseModel):
            serialized[key] = value.model_dump(mode="json")
        else:
            serialized[key] = value
    return serialized

class SupabaseStore(SwapStore):
    def __init__(self, client: Optional[Client] = None):
        self.client = client or get_supabase_client()

    # ------------------------------------------------------------------
    # Users
    async def get_user(self, user_id: str) -> Optional[UserProfile]:
        result = self.client.table("users").select("*").eq("id", user_id).execute()
        if not result.data:
            return None
        return UserProfile.model_validate(result.data[0])

    async def increment_total_swaps(self, user_id: str) -> None:
        self.client.rpc("increment_total_swaps", {"user_id": user_id}).execute()

    async def set_reputation(self, user_id: str, average_rating: float, total_ratings: int) -> None:
        self.client.table("users").update(
            {"average_rating": average_rating, "total_ratings": total_ratings}
        ).eq("id", user_id).execute()

    # ------------------------------------------------------------------
    # Swaps
    async def insert_swap(self, swap: Swap) -> Swap:
        try:
            result = self.client.table("swaps").insert(swap.model_dump(mode="json")).execute()
        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                logger.warning(f"Rejected duplicate pending swap {swap.requester_id} -> {swap.receiver_id}")
                raise NotEligibleError(
                    "A pending swap already exists between you and this user",
                    field="receiver_id",
                ) from e
            raise
        return Swap.model_validate(result.data[0])

    async def get_swap(self, swap_id: str) -> Optional[Swap]:
        result = self.client.table("swaps").select("*").eq("id", swap_id).execute()
        if not result.data:
            return None
        return Swap.model_validate(result.data[0])

    async def update_swap(
        self, swap_id: str, expected_status: SwapStatus, changes: Dict[str, Any]
    ) -> Optional[Swap]:
        result = (
            self.client.table("swaps")
            .update(_serialize(changes))
            .eq("id", swap_id)
            .eq("status", expected_status.value)
            .execute()
        )
        if not result.data:
            return None
        return Swap.model_validate(result.data[0])

    async def select_swaps(self, filters: Optional[Dict[str, Any]] = None) -> List[Swap]:
        query = self.client.table("swaps").select("*")
        for key, value in _serialize(filters or {}).items():
            query = query.eq(key, value)
        result = query.order("created_at", desc=True).execute()
        return [Swap.model_validate(row) for row in result.data]

    async def select_swaps_for_user(
        self, user_id: str, status: Optional[SwapStatus] = None, skip: int = 0, limit: Optional[int] = None
    ) -> Tuple[List[Swap], int]:
        query = (
            self.client.table("swaps")
            .select("*", count="exact")
            .or_(f"requester_id.eq.{user_id},receiver_id.eq.{user_id}")
        )
        if status is not None:
            query = query.eq("status", status.value)
        query = query.order("created_at", desc=True)
        if limit is not None:
            query = query.range(skip, skip + limit - 1)
        result = query.execute()
        return [Swap.model_validate(row) for row in result.data], result.count or 0

    async def select_swaps_between(self, user_a: str, user_b: str) -> List[Swap]:
        result = (
            self.client.table("swaps")
            .select("*")
            .or_(
                f"and(requester_id.eq.{user_a},receiver_id.eq.{user_b}),"
                f"and(requester_id.eq.{user_b},receiver_id.eq.{user_a})"
            )
            .order("created_at", desc=True)
            .execute()
        )
        return [Swap.model_validate(row) for row in result.data]

    async def select_expired_pending(self, now: datetime) -> List[Swap]:
        result = (
            self.client.table("swaps")
            .select("*")
            .eq("status", SwapStatus.PENDING.value)
            .lt("response_deadline", now.isoformat())
            .execute()
        )
        return [Swap.model_validate(row) for row in result.data]

    # ------------------------------------------------------------------
    # Ratings
    async def insert_rating(self, rating: Rating) -> Rating:
        try:
            result = self.client.table("ratings").insert(rating.model_dump(mode="json")).execute()
        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                raise DuplicateRatingError("You have already rated this swap", field="swap_id") from e
            raise
        return Rating.model_validate(result.data[0])

    async def get_rating(self, rating_id: str) -> Optional[Rating]:
        result = self.client.table("ratings").select("*").eq("id", rating_id).execute()
        if not result.data:
            return None
        return Rating.model_validate(result.data[0])

    async def update_rating(self, rating_id: str, changes: Dict[str, Any]) -> Optional[Rating]:
        result = self.client.table("ratings").update(_serialize(changes)).eq("id", rating_id).execute()
        if not result.data:
            return None
        return Rating.model_validate(result.data[0])

    async def delete_rating(self, rating_id: str) -> bool:
        result = self.client.table("ratings").delete().eq("id", rating_id).execute()
        return bool(result.data)

    async def select_ratings(self, filters: Optional[Dict[str, Any]] = None) -> List[Rating]:
        query = self.client.table("ratings").select("*")
        for key, value in _serialize(filters or {}).items():
            query = query.eq(key, value)
        result = query.order("created_at", desc=True).execute()
        return [Rating.model_validate(row) for row in result.data]
