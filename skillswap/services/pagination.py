import math
from typing import List, Optional, Tuple, TypeVar
from ..core.config import Settings
from ..core.exceptions import ValidationError

T = TypeVar("T")

def check_page(settings: Settings, page: int, limit: Optional[int]) -> int:
    """Validate ``page``/``limit`` and return the effective limit."""
    limit = settings.default_page_size if limit is None else limit
    if page < 1:
        raise ValidationError("Page must be at least 1", field="page")
    if limit < 1 or limit > settings.max_page_size:
        raise ValidationError(f"Limit must be between 1 and {settings.max_page_size}", field="limit")
    return limit

def paginate(records: List[T], page: int, limit: int) -> Tuple[List[T], int]:
    skip = (page - 1) * limit
    return records[skip:skip + limit], len(records)

def page_info(total: int, page: int, limit: int) -> dict:
    pages = math.ceil(total / limit) if limit else 0
    return {
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": pages,
        "has_next_page": page < pages,
        "has_prev_page": page > 1,
    }
