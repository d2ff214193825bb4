from fastapi import APIRouter, status, Depends, Path, Query
from typing import Optional
from ....core.dependencies import Services, get_services
from ....core.security import CurrentUser, get_current_user
from ....schemas.swap import (
    Eligibility,
    Swap,
    SwapAction,
    SwapCreate,
    SwapDetailsUpdate,
    SwapPage,
    SwapStats,
    SwapStatus,
)
from ....services.pagination import check_page, page_info

router = APIRouter(tags=["swaps"])

@router.post("/", response_model=Swap, status_code=status.HTTP_201_CREATED)
async def create_swap_request(
    swap: SwapCreate,
    current_user: CurrentUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """
    Create a new swap request.

    The receiver must offer the requested skill, the requester must offer the
    offered skill, and no pending swap may already exist between the two users.
    """
    return await services.swaps.create_swap(
        requester_id=current_user.id,
        receiver_id=swap.receiver_id,
        requested_skill=swap.requested_skill,
        offered_skill=swap.offered_skill,
        message=swap.message,
        meeting_type=swap.meeting_type,
        proposed_date=swap.proposed_date,
        location=swap.location,
        duration=swap.duration,
    )

@router.get("/", response_model=SwapPage)
async def get_swaps(
    status: Optional[SwapStatus] = None,
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None),
    current_user: CurrentUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """
    Get the current user's swaps, as requester or receiver, newest first.
    """
    limit = check_page(services.settings, page, limit)
    swaps, total = await services.swaps.list_swaps(current_user.id, status=status, page=page, limit=limit)
    return SwapPage(swaps=swaps, **page_info(total, page, limit))

@router.get("/stats", response_model=SwapStats)
async def get_swap_stats(
    current_user: CurrentUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return await services.swaps.get_swap_stats(current_user.id)

@router.get("/eligibility", response_model=Eligibility)
async def check_swap_eligibility(
    receiver_id: str = Query(..., min_length=1),
    requested_skill: str = Query(..., min_length=1, max_length=100),
    offered_skill: str = Query(..., min_length=1, max_length=100),
    current_user: CurrentUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """
    Check whether a swap request would be accepted, without creating it.

    The answer is advisory: the create call re-validates at write time.
    """
    return await services.swaps.check_eligibility(current_user.id, receiver_id, requested_skill, offered_skill)

@router.get("/{swap_id}", response_model=Swap)
async def get_swap(
    swap_id: str = Path(...),
    current_user: CurrentUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    return await services.swaps.get_swap(swap_id, actor_id=current_user.id, is_admin=current_user.is_admin)

@router.patch("/{swap_id}", response_model=Swap)
async def update_swap_details(
    swap_update: SwapDetailsUpdate,
    swap_id: str = Path(...),
    current_user: CurrentUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """
    Update message, meeting type, location, proposed date or duration of a pending swap.
    """
    return await services.swaps.update_swap_details(
        swap_id, current_user.id, swap_update.model_dump(exclude_unset=True)
    )

@router.delete("/{swap_id}", response_model=Swap)
async def cancel_swap(
    swap_id: str = Path(...),
    current_user: CurrentUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """
    Cancel a swap request. Swaps are never deleted; they move to ``cancelled``.
    """
    return await services.swaps.cancel(swap_id, current_user.id)

@router.put("/{swap_id}/{action}", response_model=Swap)
async def transition_swap(
    action: SwapAction,
    swap_id: str = Path(...),
    current_user: CurrentUser = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """
    Accept, reject, cancel or complete a swap.

    Fails with 409 if another request changed the swap's status first.
    """
    return await services.swaps.transition_swap(swap_id, current_user.id, action)
