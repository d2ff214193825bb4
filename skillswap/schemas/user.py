from pydantic import BaseModel, Field
from typing import Set

class UserProfile(BaseModel):
    """
    The slice of an externally owned user record the swap core works with.

    Skill sets and account flags are read for eligibility; only the
    reputation fields and ``total_swaps`` are ever written back.
    """
    id: str
    name: str = ""
    skills_offered: Set[str] = Field(default_factory=set)
    skills_wanted: Set[str] = Field(default_factory=set)
    average_rating: float = Field(0.0, ge=0, le=5)
    total_ratings: int = Field(0, ge=0)
    total_swaps: int = Field(0, ge=0)
    is_banned: bool = False
    is_active: bool = True

class ReputationSnapshot(BaseModel):
    user_id: str
    average_rating: float
    total_ratings: int

class ReputationAudit(BaseModel):
    user_id: str
    materialized: ReputationSnapshot
    canonical: ReputationSnapshot
    consistent: bool
