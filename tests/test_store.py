import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from skillswap.core.exceptions import DuplicateRatingError, NotEligibleError
from skillswap.schemas.rating import Rating
from skillswap.schemas.swap import Swap, SwapStatus

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _swap(swap_id, requester="alice", receiver="bob", status=SwapStatus.PENDING):
    return Swap(
        id=swap_id,
        requester_id=requester,
        receiver_id=receiver,
        requested_skill="Spanish",
        offered_skill="Photoshop",
        status=status,
        response_deadline=NOW + timedelta(days=7),
        created_at=NOW,
        updated_at=NOW,
    )


def _rating(rating_id, reviewer="alice", reviewee="bob", swap_id="s1"):
    return Rating(
        id=rating_id,
        swap_id=swap_id,
        reviewer_id=reviewer,
        reviewee_id=reviewee,
        rating=4,
        created_at=NOW,
        updated_at=NOW,
    )


def test_insert_swap_rejects_second_pending_swap_for_pair(store):
    async def scenario():
        await store.insert_swap(_swap("s1"))

        with pytest.raises(NotEligibleError) as exc:
            await store.insert_swap(_swap("s2", "bob", "alice"))
        assert exc.value.field == "receiver_id"
        with pytest.raises(NotEligibleError):
            await store.insert_swap(_swap("s3"))

        await store.insert_swap(_swap("s4", "carol", "bob"))
        assert {s.id for s in await store.select_swaps()} == {"s1", "s4"}

    asyncio.run(scenario())


def test_insert_swap_allowed_once_pair_is_no_longer_pending(store):
    async def scenario():
        await store.insert_swap(_swap("s1"))
        await store.update_swap("s1", SwapStatus.PENDING, {"status": SwapStatus.REJECTED})
        await store.insert_swap(_swap("s2", "bob", "alice"))
        assert len(await store.select_swaps({"status": SwapStatus.PENDING})) == 1

    asyncio.run(scenario())


def test_insert_rating_rejects_second_rating_per_reviewer(store):
    async def scenario():
        await store.insert_rating(_rating("r1"))

        with pytest.raises(DuplicateRatingError) as exc:
            await store.insert_rating(_rating("r2"))
        assert exc.value.field == "swap_id"

        await store.insert_rating(_rating("r3", "bob", "alice"))
        await store.insert_rating(_rating("r4", swap_id="s2"))
        assert {r.id for r in await store.select_ratings()} == {"r1", "r3", "r4"}

    asyncio.run(scenario())


def test_store_hands_out_copies(store):
    async def scenario():
        await store.insert_rating(_rating("r1"))
        fetched = await store.get_rating("r1")
        fetched.rating = 1
        assert (await store.get_rating("r1")).rating == 4

        user = await store.get_user("bob")
        user.total_ratings = 99
        assert (await store.get_user("bob")).total_ratings == 0

    asyncio.run(scenario())
