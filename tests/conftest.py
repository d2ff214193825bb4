import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from skillswap.core.config import Settings
from skillswap.core.dependencies import Services
from skillswap.core.store import InMemoryStore
from skillswap.schemas.user import UserProfile


class FixedClock:
    """Deterministic clock the services read instead of the wall clock."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class YieldingStore(InMemoryStore):
    """Hands control back to the loop after every read so concurrent callers interleave."""

    async def get_swap(self, swap_id):
        swap = await super().get_swap(swap_id)
        await asyncio.sleep(0)
        return swap

    async def get_user(self, user_id):
        user = await super().get_user(user_id)
        await asyncio.sleep(0)
        return user

    async def select_ratings(self, filters=None):
        ratings = await super().select_ratings(filters)
        await asyncio.sleep(0)
        return ratings

    async def select_swaps_between(self, user_a, user_b):
        swaps = await super().select_swaps_between(user_a, user_b)
        await asyncio.sleep(0)
        return swaps


def make_users():
    return [
        UserProfile(id="alice", name="Alice", skills_offered={"Photoshop"}, skills_wanted={"Spanish"}),
        UserProfile(id="bob", name="Bob", skills_offered={"Spanish", "Guitar"}, skills_wanted={"Photoshop"}),
        UserProfile(id="carol", name="Carol", skills_offered={"Italian Cooking"}, skills_wanted={"Guitar"}),
        UserProfile(id="dave", name="Dave", skills_offered={"Chess"}, is_banned=True),
        UserProfile(id="erin", name="Erin", skills_offered={"Pottery"}, is_active=False),
    ]


@pytest.fixture
def clock():
    return FixedClock(datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def settings():
    return Settings(storage_backend="memory", jwt_secret="test-secret")


@pytest.fixture
def users():
    return make_users()


@pytest.fixture
def store(users):
    return InMemoryStore(users)


@pytest.fixture
def services(store, settings, clock):
    return Services(store, settings=settings, clock=clock)


@pytest.fixture
def yielding_services(users, settings, clock):
    return Services(YieldingStore(users), settings=settings, clock=clock)


def swap_completer(services):
    """Factory driving a fresh alice -> bob swap through to ``completed``."""

    async def _complete(requester="alice", receiver="bob", requested="Spanish", offered="Photoshop"):
        swap = await services.swaps.create_swap(requester, receiver, requested, offered)
        await services.swaps.accept(swap.id, receiver)
        return await services.swaps.complete(swap.id, requester)

    return _complete


@pytest.fixture
def complete_swap(services):
    return swap_completer(services)


@pytest.fixture
def complete_yielding_swap(yielding_services):
    return swap_completer(yielding_services)
