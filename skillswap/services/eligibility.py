from typing import Iterable, Optional
from ..core.exceptions import NotEligibleError, NotFoundError
from ..schemas.swap import Eligibility, Swap, SwapStatus
from ..schemas.user import UserProfile

def offers_skill(user: UserProfile, skill: str) -> bool:
    """True if any of ``user``'s offered skills contains ``skill``, ignoring case."""
    wanted = skill.strip().lower()
    if not wanted:
        return False
    return any(wanted in offered.strip().lower() for offered in user.skills_offered)

def check_eligibility(
    requester: UserProfile,
    receiver: Optional[UserProfile],
    requested_skill: str,
    offered_skill: str,
    existing_swaps: Iterable[Swap] = (),
) -> Eligibility:
    """
    Decide whether ``requester`` may open a swap with ``receiver``.

    The checks run in a fixed order and the first failure wins, so the
    returned reason always names the most fundamental problem.
    """
    if receiver is None:
        return Eligibility(ok=False, kind=NotFoundError.kind, reason="Receiver not found", field="receiver_id")

    if receiver.is_banned or not receiver.is_active:
        return Eligibility(
            ok=False,
            kind=NotEligibleError.kind,
            reason="Cannot create swap with inactive user",
            field="receiver_id",
        )

    if requester.id == receiver.id:
        return Eligibility(
            ok=False,
            kind=NotEligibleError.kind,
            reason="Cannot create swap with yourself",
            field="receiver_id",
        )

    if not offers_skill(receiver, requested_skill):
        return Eligibility(
            ok=False,
            kind=NotEligibleError.kind,
            reason="Receiver does not offer the requested skill",
            field="requested_skill",
        )

    if not offers_skill(requester, offered_skill):
        return Eligibility(
            ok=False,
            kind=NotEligibleError.kind,
            reason="You do not offer the specified skill",
            field="offered_skill",
        )

    for swap in existing_swaps:
        if swap.status == SwapStatus.PENDING and swap.involves_pair(requester.id, receiver.id):
            return Eligibility(
                ok=False,
                kind=NotEligibleError.kind,
                reason="A pending swap already exists between you and this user",
                field="receiver_id",
            )

    return Eligibility(ok=True)

def raise_for_eligibility(result: Eligibility) -> None:
    """Turn a failed :class:`Eligibility` into the matching domain error."""
    if result.ok:
        return
    if result.kind == NotFoundError.kind:
        raise NotFoundError(result.reason, field=result.field)
    raise NotEligibleError(result.reason, field=result.field)
