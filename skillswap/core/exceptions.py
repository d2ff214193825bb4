from typing import Optional

class SkillSwapError(Exception):
    """
    Base class for recoverable domain errors.

    Every error carries a machine-readable ``kind``, a human-readable ``detail``
    and, where one exists, the offending ``field`` so callers can render a
    specific message instead of a generic failure.
    """

    kind = "error"
    status_code = 400

    def __init__(self, detail: str, field: Optional[str] = None):
        super().__init__(detail)
        self.detail = detail
        self.field = field

    def to_dict(self) -> dict:
        return {"detail": self.detail, "kind": self.kind, "field": self.field}

class ValidationError(SkillSwapError):
    """Malformed input, rejected before touching stored state."""
    kind = "validation_error"
    status_code = 422

    @classmethod
    def from_pydantic(cls, error) -> "ValidationError":
        """Build from a :class:`pydantic.ValidationError`, naming the first offending field."""
        first = error.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or None
        return cls(first.get("msg", "Invalid input"), field=field)

class NotEligibleError(SkillSwapError):
    """Business-rule violation: self-swap, skill mismatch, duplicate pending swap or wrong status."""
    kind = "not_eligible"
    status_code = 400

class NotParticipantError(SkillSwapError):
    kind = "not_participant"
    status_code = 403

class ForbiddenError(SkillSwapError):
    kind = "forbidden"
    status_code = 403

class WrongRevieweeError(SkillSwapError):
    kind = "wrong_reviewee"
    status_code = 400

class DuplicateRatingError(SkillSwapError):
    kind = "duplicate_rating"
    status_code = 409

class ConflictError(SkillSwapError):
    """Optimistic-concurrency loss: the record changed between read and write."""
    kind = "conflict"
    status_code = 409

class NotFoundError(SkillSwapError):
    kind = "not_found"
    status_code = 404
