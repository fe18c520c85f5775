"""Verification review router.

Admin-only queue of submitted ID documents with approve and reject actions.
Each decision is broadcast by the profile store, so a signed-in client sees
the new state without re-authenticating.
"""

from fastapi import APIRouter, Depends

from app.auth.dependencies import require_admin
from app.core.constants import CommonResponses, Routes
from app.core.deps import ProfileStoreDep
from app.profile.models import VerificationStatus
from app.profile.schemas import VerificationRejection, VerificationReviewRead

router = APIRouter(
    prefix=Routes.VERIFICATION.prefix,
    tags=[Routes.VERIFICATION.tag],
    dependencies=[Depends(require_admin)],
    responses={
        **CommonResponses.UNAUTHORIZED,
        **CommonResponses.FORBIDDEN,
    },
)

_REVIEW_RESPONSES = {**CommonResponses.NOT_FOUND, **CommonResponses.CONFLICT}


@router.get("", response_model=list[VerificationReviewRead])
async def list_verifications(
    store: ProfileStoreDep,
    status: VerificationStatus | None = VerificationStatus.pending,
):
    """List profiles by verification status (pending by default)."""
    profiles = await store.list_by_verification_status(status)
    return [VerificationReviewRead.from_snapshot(p) for p in profiles]


@router.post(
    "/{user_id}/approve",
    response_model=VerificationReviewRead,
    responses=_REVIEW_RESPONSES,
)
async def approve_verification(user_id: str, store: ProfileStoreDep):
    profile = await store.approve(user_id)
    return VerificationReviewRead.from_snapshot(profile)


@router.post(
    "/{user_id}/reject",
    response_model=VerificationReviewRead,
    responses=_REVIEW_RESPONSES,
)
async def reject_verification(
    user_id: str, rejection: VerificationRejection, store: ProfileStoreDep
):
    """Reject with a reason that the user sees on the upload screen."""
    profile = await store.reject(user_id, rejection.reason)
    return VerificationReviewRead.from_snapshot(profile)
