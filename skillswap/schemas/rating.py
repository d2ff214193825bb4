from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, List, Dict
from datetime import datetime, date

CATEGORY_NAMES = ("communication", "skill_level", "punctuality", "helpfulness")

class RatingCategories(BaseModel):
    communication: Optional[int] = Field(None, ge=1, le=5)
    skill_level: Optional[int] = Field(None, ge=1, le=5)
    punctuality: Optional[int] = Field(None, ge=1, le=5)
    helpfulness: Optional[int] = Field(None, ge=1, le=5)

    def present(self) -> Dict[str, int]:
        return {name: value for name, value in self.model_dump().items() if value is not None}

class RatingBase(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    feedback: Optional[str] = Field(None, max_length=1000)
    categories: RatingCategories = Field(default_factory=RatingCategories)
    skill_taught: Optional[str] = Field(None, max_length=100)
    skill_learned: Optional[str] = Field(None, max_length=100)
    would_recommend: bool = True
    is_public: bool = True
    is_anonymous: bool = False

    @field_validator("feedback", "skill_taught", "skill_learned", mode="before")
    @classmethod
    def _strip_text(cls, value):
        if isinstance(value, str):
            return value.strip()
        return value

class RatingCreate(RatingBase):
    swap_id: str = Field(..., min_length=1)
    reviewee_id: str = Field(..., min_length=1)

class RatingUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    rating: Optional[int] = Field(None, ge=1, le=5)
    feedback: Optional[str] = Field(None, max_length=1000)
    categories: Optional[RatingCategories] = None
    would_recommend: Optional[bool] = None
    is_public: Optional[bool] = None
    is_anonymous: Optional[bool] = None

    @field_validator("feedback", mode="before")
    @classmethod
    def _strip_feedback(cls, value):
        if isinstance(value, str):
            return value.strip()
        return value

class RatingFlag(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)

class Rating(RatingBase):
    id: str
    swap_id: str
    reviewer_id: str
    reviewee_id: str
    is_approved: bool = True
    is_flagged: bool = False
    flag_reason: Optional[str] = None
    admin_reviewed: bool = False
    admin_notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @property
    def counts_toward_reputation(self) -> bool:
        return self.is_approved and self.is_public

    def average_category_score(self) -> Optional[float]:
        present = self.categories.present()
        if not present:
            return None
        return round(sum(present.values()) / len(present), 1)

class RatingResponse(Rating):
    reviewer_id: Optional[str] = None
    category_average: Optional[float] = None

    @classmethod
    def for_viewer(cls, rating: Rating, viewer_id: Optional[str] = None, is_admin: bool = False) -> "RatingResponse":
        """Render ``rating``, hiding the reviewer of an anonymous rating from everyone but them and admins."""
        data = rating.model_dump()
        if rating.is_anonymous and not is_admin and viewer_id != rating.reviewer_id:
            data["reviewer_id"] = None
        return cls(**data, category_average=rating.average_category_score())

class RatingPage(BaseModel):
    ratings: List[RatingResponse]
    total: int
    page: int
    limit: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool

class CategoryAverages(BaseModel):
    communication: Optional[float] = None
    skill_level: Optional[float] = None
    punctuality: Optional[float] = None
    helpfulness: Optional[float] = None

class RatingStats(BaseModel):
    average_rating: float = 0.0
    total_ratings: int = 0
    rating_distribution: Dict[int, int] = Field(default_factory=lambda: {score: 0 for score in range(1, 6)})
    category_averages: CategoryAverages = Field(default_factory=CategoryAverages)
    recommendation_rate: float = 0.0

class RatingTrend(BaseModel):
    day: date
    average_rating: float
    total_ratings: int
