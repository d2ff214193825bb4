import asyncio
from datetime import date

import pytest

from skillswap.core.exceptions import (
    DuplicateRatingError,
    ForbiddenError,
    NotEligibleError,
    NotFoundError,
    NotParticipantError,
    ValidationError,
    WrongRevieweeError,
)
from skillswap.schemas.rating import RatingResponse


def test_complete_then_duplicate_rating(services, complete_swap):
    async def scenario():
        swap = await complete_swap()
        rating = await services.ratings.submit_rating(
            swap.id, "alice", "bob", 5, feedback=" Great tutor ", categories={"communication": 5}
        )
        assert rating.feedback == "Great tutor"
        assert rating.is_approved and not rating.is_flagged

        with pytest.raises(DuplicateRatingError) as exc:
            await services.ratings.submit_rating(swap.id, "alice", "bob", 4)
        assert exc.value.field == "swap_id"

        # The other participant still gets exactly one rating of their own
        await services.ratings.submit_rating(swap.id, "bob", "alice", 4)
        ratings = await services.store.select_ratings({"swap_id": swap.id})
        assert len(ratings) == 2
        assert {r.reviewer_id for r in ratings} == {"alice", "bob"}

        bob = await services.store.get_user("bob")
        assert (bob.average_rating, bob.total_ratings) == (5.0, 1)

    asyncio.run(scenario())


def test_submit_rating_rejections(services, complete_swap):
    async def scenario():
        pending = await services.swaps.create_swap("carol", "bob", "Guitar", "Cooking")
        with pytest.raises(NotEligibleError) as exc:
            await services.ratings.submit_rating(pending.id, "carol", "bob", 5)
        assert exc.value.detail == "Can only rate completed swaps"

        swap = await complete_swap()
        with pytest.raises(NotParticipantError):
            await services.ratings.submit_rating(swap.id, "carol", "bob", 5)
        with pytest.raises(WrongRevieweeError) as exc:
            await services.ratings.submit_rating(swap.id, "alice", "alice", 5)
        assert exc.value.field == "reviewee_id"
        with pytest.raises(WrongRevieweeError):
            await services.ratings.submit_rating(swap.id, "alice", "carol", 5)
        with pytest.raises(NotFoundError):
            await services.ratings.submit_rating("missing", "alice", "bob", 5)

        with pytest.raises(ValidationError) as exc:
            await services.ratings.submit_rating(swap.id, "alice", "bob", 6)
        assert exc.value.field == "rating"
        with pytest.raises(ValidationError) as exc:
            await services.ratings.submit_rating(swap.id, "alice", "bob", 4, categories={"punctuality": 0})
        assert exc.value.field == "categories.punctuality"

        assert await services.store.select_ratings() == []
        assert (await services.store.get_user("bob")).total_ratings == 0

    asyncio.run(scenario())


def test_missing_reviewee_profile_stores_nothing(services, store, complete_swap):
    async def scenario():
        swap = await complete_swap()
        bob = await store.get_user("bob")
        store._users.pop("bob")

        with pytest.raises(NotFoundError) as exc:
            await services.ratings.submit_rating(swap.id, "alice", "bob", 5)
        assert exc.value.field == "reviewee_id"
        assert await store.select_ratings() == []

        # Once the profile is back, the same submit goes through
        store.add_user(bob)
        rating = await services.ratings.submit_rating(swap.id, "alice", "bob", 5)
        assert [r.id for r in await store.select_ratings()] == [rating.id]
        assert (await store.get_user("bob")).total_ratings == 1

    asyncio.run(scenario())


def test_edit_window(services, complete_swap, clock):
    async def scenario():
        swap = await complete_swap()
        rating = await services.ratings.submit_rating(swap.id, "alice", "bob", 3)

        clock.advance(hours=23)
        edited = await services.ratings.edit_rating(rating.id, "alice", {"rating": 5})
        assert edited.rating == 5
        assert edited.updated_at == clock.now
        bob = await services.store.get_user("bob")
        assert (bob.average_rating, bob.total_ratings) == (5.0, 1)

        clock.advance(hours=2)
        with pytest.raises(NotEligibleError) as exc:
            await services.ratings.edit_rating(rating.id, "alice", {"rating": 1})
        assert exc.value.field == "created_at"
        assert (await services.store.get_rating(rating.id)).rating == 5

    asyncio.run(scenario())


def test_edit_rating_fields(services, complete_swap):
    async def scenario():
        swap = await complete_swap()
        rating = await services.ratings.submit_rating(
            swap.id, "alice", "bob", 4, feedback="Good", categories={"skill_level": 4}
        )

        with pytest.raises(ForbiddenError):
            await services.ratings.edit_rating(rating.id, "bob", {"rating": 1})
        with pytest.raises(ValidationError):
            await services.ratings.edit_rating(rating.id, "alice", {"reviewee_id": "carol"})

        edited = await services.ratings.edit_rating(
            rating.id, "alice", {"feedback": None, "categories": {"helpfulness": 5}, "rating": None}
        )
        assert edited.feedback is None
        assert edited.rating == 4
        assert edited.categories.helpfulness == 5
        assert edited.categories.skill_level is None

        edited = await services.ratings.edit_rating(rating.id, "alice", {"feedback": "  Clear and patient  "})
        assert edited.feedback == "Clear and patient"

        hidden = await services.ratings.edit_rating(rating.id, "alice", {"is_public": False})
        assert not hidden.is_public
        bob = await services.store.get_user("bob")
        assert (bob.average_rating, bob.total_ratings) == (0.0, 0)

    asyncio.run(scenario())


def test_flag_and_approve(services, complete_swap):
    async def scenario():
        swap = await complete_swap()
        rating = await services.ratings.submit_rating(swap.id, "alice", "bob", 1)

        with pytest.raises(ForbiddenError):
            await services.ratings.flag_rating(rating.id, "alice", "changed my mind")
        with pytest.raises(NotParticipantError):
            await services.ratings.flag_rating(rating.id, "carol", "spam")
        with pytest.raises(ValidationError):
            await services.ratings.flag_rating(rating.id, "bob", "")

        flagged = await services.ratings.flag_rating(rating.id, "bob", "  Abusive  ")
        assert flagged.is_flagged and not flagged.is_approved
        assert flagged.flag_reason == "Abusive"
        assert (await services.store.get_user("bob")).total_ratings == 0

        queue = await services.ratings.list_ratings_for_review(flagged=True)
        assert [r.id for r in queue] == [rating.id]

        with pytest.raises(ForbiddenError):
            await services.ratings.approve_rating(rating.id, "bob")

        approved = await services.ratings.approve_rating(rating.id, "admin", is_admin=True, admin_notes="Fair")
        assert approved.is_approved and approved.admin_reviewed
        assert approved.admin_notes == "Fair"
        bob = await services.store.get_user("bob")
        assert (bob.average_rating, bob.total_ratings) == (1.0, 1)

        assert await services.ratings.list_ratings_for_review(unreviewed=True) == []

    asyncio.run(scenario())


def test_admin_may_flag(services, complete_swap):
    async def scenario():
        swap = await complete_swap()
        rating = await services.ratings.submit_rating(swap.id, "alice", "bob", 2)
        flagged = await services.ratings.flag_rating(rating.id, "moderator", "Off topic", is_admin=True)
        assert flagged.is_flagged

    asyncio.run(scenario())


def test_delete_rating(services, complete_swap, clock):
    async def scenario():
        swap = await complete_swap()
        rating = await services.ratings.submit_rating(swap.id, "alice", "bob", 2)
        other = await services.ratings.submit_rating(swap.id, "bob", "alice", 5)

        with pytest.raises(ForbiddenError):
            await services.ratings.delete_rating(rating.id, "bob")

        await services.ratings.delete_rating(rating.id, "alice")
        assert await services.store.get_rating(rating.id) is None
        assert (await services.store.get_user("bob")).total_ratings == 0

        clock.advance(hours=25)
        with pytest.raises(NotEligibleError):
            await services.ratings.delete_rating(other.id, "bob")
        await services.ratings.delete_rating(other.id, "admin", is_admin=True)
        assert (await services.store.get_user("alice")).total_ratings == 0

        with pytest.raises(NotFoundError):
            await services.ratings.delete_rating(other.id, "admin", is_admin=True)

    asyncio.run(scenario())


def test_rating_reads(services, complete_swap, clock):
    async def scenario():
        swap = await complete_swap()
        public = await services.ratings.submit_rating(swap.id, "alice", "bob", 5)
        private = await services.ratings.submit_rating(swap.id, "bob", "alice", 3, is_public=False)

        ratings, total = await services.ratings.list_user_ratings("bob")
        assert (total, ratings[0].id) == (1, public.id)
        ratings, total = await services.ratings.list_user_ratings("alice")
        assert total == 0
        with pytest.raises(NotFoundError):
            await services.ratings.list_user_ratings("ghost")

        given, total = await services.ratings.list_ratings_given("bob")
        assert [r.id for r in given] == [private.id]
        received, total = await services.ratings.list_ratings_received("alice")
        assert [r.id for r in received] == [private.id]

        assert (await services.ratings.get_rating(private.id, actor_id="alice")).id == private.id
        assert (await services.ratings.get_rating(private.id, actor_id="carol", is_admin=True)).id == private.id
        with pytest.raises(ForbiddenError):
            await services.ratings.get_rating(private.id, actor_id="carol")

        assert len(await services.ratings.list_swap_ratings(swap.id, "alice")) == 2
        with pytest.raises(NotParticipantError):
            await services.ratings.list_swap_ratings(swap.id, "carol")

    asyncio.run(scenario())


def test_user_rating_stats(services, complete_swap):
    async def scenario():
        first = await complete_swap()
        await services.ratings.submit_rating(
            first.id, "alice", "bob", 5, categories={"communication": 5, "punctuality": 4}
        )
        second = await complete_swap("carol", "bob", "Guitar", "Cooking")
        await services.ratings.submit_rating(
            second.id, "carol", "bob", 4, categories={"communication": 3}, would_recommend=False
        )

        stats = await services.ratings.get_user_rating_stats("bob")
        assert stats.average_rating == 4.5
        assert stats.total_ratings == 2
        assert stats.rating_distribution == {1: 0, 2: 0, 3: 0, 4: 1, 5: 1}
        assert stats.category_averages.communication == 4.0
        assert stats.category_averages.punctuality == 4.0
        assert stats.category_averages.helpfulness is None
        assert stats.recommendation_rate == 0.5

        empty = await services.ratings.get_user_rating_stats("carol")
        assert empty.total_ratings == 0
        assert empty.rating_distribution == {1: 0, 2: 0, 3: 0, 4: 0, 5: 0}

    asyncio.run(scenario())


def test_rating_trends(services, complete_swap, clock):
    async def scenario():
        first = await complete_swap()
        await services.ratings.submit_rating(first.id, "alice", "bob", 4)
        await services.ratings.submit_rating(first.id, "bob", "alice", 2)
        clock.advance(days=1)
        second = await complete_swap("carol", "bob", "Guitar", "Cooking")
        await services.ratings.submit_rating(second.id, "carol", "bob", 5)

        trends = await services.ratings.rating_trends(date(2026, 3, 1), date(2026, 3, 2))
        assert [(t.day, t.average_rating, t.total_ratings) for t in trends] == [
            (date(2026, 3, 1), 3.0, 2),
            (date(2026, 3, 2), 5.0, 1),
        ]
        assert await services.ratings.rating_trends(date(2026, 3, 3), date(2026, 3, 4)) == []
        with pytest.raises(ValidationError):
            await services.ratings.rating_trends(date(2026, 3, 2), date(2026, 3, 1))

    asyncio.run(scenario())


def test_anonymous_reviewer_hidden_from_others(services, complete_swap):
    async def scenario():
        swap = await complete_swap()
        rating = await services.ratings.submit_rating(
            swap.id, "alice", "bob", 4, is_anonymous=True, categories={"communication": 4, "helpfulness": 5}
        )

        seen_by_bob = RatingResponse.for_viewer(rating, viewer_id="bob")
        assert seen_by_bob.reviewer_id is None
        assert seen_by_bob.category_average == 4.5

        assert RatingResponse.for_viewer(rating, viewer_id="alice").reviewer_id == "alice"
        assert RatingResponse.for_viewer(rating, viewer_id="carol", is_admin=True).reviewer_id == "alice"

    asyncio.run(scenario())
