from datetime import datetime
from typing import Callable, Optional
from fastapi import Request
from .config import Settings, get_settings
from .store import InMemoryStore, SwapStore
from ..services.rating_service import RatingService
from ..services.reputation_service import ReputationService
from ..services.swap_service import SwapService

class Services:
    """The swap core wired around a single store."""

    def __init__(
        self,
        store: SwapStore,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.settings = settings or get_settings()
        self.store = store
        self.reputation = ReputationService(store)
        self.swaps = SwapService(store, settings=self.settings, clock=clock)
        self.ratings = RatingService(store, self.reputation, settings=self.settings, clock=clock)

def build_store(settings: Optional[Settings] = None) -> SwapStore:
    settings = settings or get_settings()
    if settings.storage_backend == "supabase":
        # Imported lazily so the in-memory backend does not need Supabase credentials
        from .supabase import SupabaseStore
        return SupabaseStore()
    if settings.storage_backend == "memory":
        return InMemoryStore()
    raise ValueError(f"Unknown storage backend: {settings.storage_backend}")

def get_services(request: Request) -> Services:
    return request.app.state.services
