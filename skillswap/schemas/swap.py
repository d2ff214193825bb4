from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, List
from datetime import datetime, timezone
from enum import Enum

class SwapStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    COMPLETED = "completed"

class SwapAction(str, Enum):
    ACCEPT = "accept"
    REJECT = "reject"
    CANCEL = "cancel"
    COMPLETE = "complete"

class MeetingType(str, Enum):
    ONLINE = "online"
    IN_PERSON = "in-person"
    HYBRID = "hybrid"

# Timestamp column stamped on first entry into each non-initial status
STATUS_TIMESTAMP_FIELDS = {
    SwapStatus.ACCEPTED: "accepted_at",
    SwapStatus.REJECTED: "rejected_at",
    SwapStatus.CANCELLED: "cancelled_at",
    SwapStatus.COMPLETED: "completed_at",
}

def _ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value

class SwapDetails(BaseModel):
    message: Optional[str] = Field(None, max_length=500)
    meeting_type: MeetingType = MeetingType.ONLINE
    location: Optional[str] = Field(None, max_length=200)
    proposed_date: Optional[datetime] = None
    duration: Optional[str] = Field(None, max_length=100)

    @field_validator("message", "location", "duration", mode="before")
    @classmethod
    def _strip_text(cls, value):
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("proposed_date")
    @classmethod
    def _proposed_date_aware(cls, value):
        return _ensure_aware(value)

class SwapCreate(SwapDetails):
    receiver_id: str = Field(..., min_length=1)
    requested_skill: str = Field(..., min_length=1, max_length=100)
    offered_skill: str = Field(..., min_length=1, max_length=100)

    @field_validator("requested_skill", "offered_skill", mode="before")
    @classmethod
    def _strip_skill(cls, value):
        if isinstance(value, str):
            return value.strip()
        return value

class SwapDetailsUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    message: Optional[str] = Field(None, max_length=500)
    meeting_type: Optional[MeetingType] = None
    location: Optional[str] = Field(None, max_length=200)
    proposed_date: Optional[datetime] = None
    duration: Optional[str] = Field(None, max_length=100)

    @field_validator("proposed_date")
    @classmethod
    def _proposed_date_aware(cls, value):
        return _ensure_aware(value)

class Swap(BaseModel):
    id: str
    requester_id: str
    receiver_id: str
    requested_skill: str
    offered_skill: str
    message: Optional[str] = None
    status: SwapStatus = SwapStatus.PENDING
    meeting_type: MeetingType = MeetingType.ONLINE
    location: Optional[str] = None
    proposed_date: Optional[datetime] = None
    duration: Optional[str] = None
    response_deadline: datetime
    accepted_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    def is_participant(self, user_id: str) -> bool:
        return user_id in (self.requester_id, self.receiver_id)

    def other_participant(self, user_id: str) -> Optional[str]:
        if user_id == self.requester_id:
            return self.receiver_id
        if user_id == self.receiver_id:
            return self.requester_id
        return None

    def involves_pair(self, user_a: str, user_b: str) -> bool:
        return {self.requester_id, self.receiver_id} == {user_a, user_b}

    def is_expired(self, now: datetime) -> bool:
        """Advisory: a pending swap whose response deadline has passed."""
        return self.status == SwapStatus.PENDING and now > _ensure_aware(self.response_deadline)

class SwapPage(BaseModel):
    swaps: List[Swap]
    total: int
    page: int
    limit: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool

class SwapStats(BaseModel):
    total: int = 0
    pending: int = 0
    accepted: int = 0
    rejected: int = 0
    cancelled: int = 0
    completed: int = 0

class Eligibility(BaseModel):
    """Outcome of an eligibility check: ``ok`` or a specific failure reason."""
    ok: bool
    reason: Optional[str] = None
    kind: Optional[str] = None
    field: Optional[str] = None
