from fastapi import APIRouter, status, Depends, Path, Query
from typing import List, Optional
from datetime import date
from ....core.dependencies import Services, get_services
from ....core.security import CurrentUser, get_current_user, require_admin
from ....schemas.rating import (
    RatingCreate,
    RatingFlag,
    RatingPage,
    RatingResponse,
    RatingStats,
    RatingTrend,
    RatingUpdate,
)
from ....schemas.user import ReputationAudit, ReputationSnapshot
from ....services.pagination import check_page, page_info

router = APIRouter(tags=["ratings"])

def _page(ratings, total, page, limit, current_user=None) -> RatingPage:
    viewer_id = current_user.id if current_user else None
    is_admin = current_user.is_admin if current_user else False
    return RatingPage(
        ratings=[RatingResponse.for_viewer(r, viewer_id, is_admin) for r in ratings],
        **page_info(total, page, limit),
    )

@router.post("/", response_model=RatingResponse, status_code=status.HTTP_201_CREATED)
async def create_rating(
    rating: RatingCreate,
    current_user: CurrentUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """
    Rate the other participant of a completed swap.
    """
    created = await services.ratings.submit_rating(
        swap_id=rating.swap_id,
        reviewer_id=current_user.id,
        reviewee_id=rating.reviewee_id,
        rating=rating.rating,
        feedback=rating.feedback,
        categories=rating.categories.model_dump(),
        would_recommend=rating.would_recommend,
        is_public=rating.is_public,
        is_anonymous=rating.is_anonymous,
        skill_taught=rating.skill_taught,
        skill_learned=rating.skill_learned,
    )
    return RatingResponse.for_viewer(created, current_user.id, current_user.is_admin)

@router.get("/user/{user_id}", response_model=RatingPage)
async def get_user_ratings(
    user_id: str = Path(...),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None),
    services: Services = Depends(get_services),
):
    """
    Get the public, approved ratings a user has received.
    """
    limit = check_page(services.settings, page, limit)
    ratings, total = await services.ratings.list_user_ratings(user_id, page=page, limit=limit)
    return _page(ratings, total, page, limit)

@router.get("/user/{user_id}/stats", response_model=RatingStats)
async def get_user_rating_stats(
    user_id: str = Path(...),
    services: Services = Depends(get_services),
):
    return await services.ratings.get_user_rating_stats(user_id)

@router.get("/given", response_model=RatingPage)
async def get_ratings_given(
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None),
    current_user: CurrentUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    limit = check_page(services.settings, page, limit)
    ratings, total = await services.ratings.list_ratings_given(current_user.id, page=page, limit=limit)
    return _page(ratings, total, page, limit, current_user)

@router.get("/received", response_model=RatingPage)
async def get_ratings_received(
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None),
    current_user: CurrentUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    limit = check_page(services.settings, page, limit)
    ratings, total = await services.ratings.list_ratings_received(current_user.id, page=page, limit=limit)
    return _page(ratings, total, page, limit, current_user)

@router.get("/review", response_model=List[RatingResponse])
async def get_ratings_for_review(
    flagged: bool = False,
    unreviewed: bool = False,
    limit: Optional[int] = Query(None),
    admin: CurrentUser = Depends(require_admin),
    services: Services = Depends(get_services),
):
    """
    Admin moderation queue, newest first.
    """
    limit = check_page(services.settings, 1, limit)
    ratings = await services.ratings.list_ratings_for_review(flagged=flagged, unreviewed=unreviewed, limit=limit)
    return [RatingResponse.for_viewer(r, admin.id, True) for r in ratings]

@router.get("/trends", response_model=List[RatingTrend])
async def get_rating_trends(
    start_date: date,
    end_date: date,
    admin: CurrentUser = Depends(require_admin),
    services: Services = Depends(get_services),
):
    return await services.ratings.rating_trends(start_date, end_date)

@router.get("/reputation/{user_id}/audit", response_model=ReputationAudit)
async def audit_reputation(
    user_id: str = Path(...),
    admin: CurrentUser = Depends(require_admin),
    services: Services = Depends(get_services),
):
    """
    Compare a user's stored reputation with the value recomputed from their ratings.
    """
    return await services.reputation.verify(user_id)

@router.post("/reputation/{user_id}/recompute", response_model=ReputationSnapshot)
async def recompute_reputation(
    user_id: str = Path(...),
    admin: CurrentUser = Depends(require_admin),
    services: Services = Depends(get_services),
):
    return await services.reputation.recompute(user_id)

@router.get("/swap/{swap_id}", response_model=List[RatingResponse])
async def get_swap_ratings(
    swap_id: str = Path(...),
    current_user: CurrentUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """
    Get all ratings for a specific swap.
    """
    ratings = await services.ratings.list_swap_ratings(swap_id, current_user.id, current_user.is_admin)
    return [RatingResponse.for_viewer(r, current_user.id, current_user.is_admin) for r in ratings]

@router.get("/{rating_id}", response_model=RatingResponse)
async def get_rating(
    rating_id: str = Path(...),
    current_user: CurrentUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    rating = await services.ratings.get_rating(rating_id, current_user.id, current_user.is_admin)
    return RatingResponse.for_viewer(rating, current_user.id, current_user.is_admin)

@router.put("/{rating_id}", response_model=RatingResponse)
async def update_rating(
    rating_update: RatingUpdate,
    rating_id: str = Path(...),
    current_user: CurrentUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """
    Edit your own rating within 24 hours of creating it.
    """
    updated = await services.ratings.edit_rating(
        rating_id, current_user.id, rating_update.model_dump(exclude_unset=True)
    )
    return RatingResponse.for_viewer(updated, current_user.id, current_user.is_admin)

@router.delete("/{rating_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_rating(
    rating_id: str = Path(...),
    current_user: CurrentUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    await services.ratings.delete_rating(rating_id, current_user.id, is_admin=current_user.is_admin)

@router.post("/{rating_id}/flag", response_model=RatingResponse)
async def flag_rating(
    flag: RatingFlag,
    rating_id: str = Path(...),
    current_user: CurrentUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """
    Flag a rating as inappropriate; it stops counting toward reputation until an admin approves it.
    """
    flagged = await services.ratings.flag_rating(
        rating_id, current_user.id, flag.reason, is_admin=current_user.is_admin
    )
    return RatingResponse.for_viewer(flagged, current_user.id, current_user.is_admin)

@router.post("/{rating_id}/approve", response_model=RatingResponse)
async def approve_rating(
    rating_id: str = Path(...),
    admin: CurrentUser = Depends(require_admin),
    services: Services = Depends(get_services),
):
    approved = await services.ratings.approve_rating(rating_id, admin.id, is_admin=True)
    return RatingResponse.for_viewer(approved, admin.id, True)
