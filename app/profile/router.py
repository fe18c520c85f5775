"""Profile domain router.

Self-service routes for the authenticated user: read the resolved identity
state, provision the profile, edit it, and submit an ID document for review.
"""

from fastapi import APIRouter

from app.auth.dependencies import CurrentProfileDep, TokenClaimsDep
from app.auth.service import Session
from app.core.constants import CommonResponses, Routes
from app.core.deps import ProfileStoreDep
from app.identity.schemas import IdentityRead
from app.identity.states import derive_nickname, state_from_profile
from app.profile.schemas import ProfileRead, ProfileUpdateMe, VerificationSubmission

router = APIRouter(
    prefix=Routes.PROFILE.prefix,
    tags=[Routes.PROFILE.tag],
    responses={
        **CommonResponses.UNAUTHORIZED,
        **CommonResponses.SERVICE_UNAVAILABLE,
    },
)


@router.get("/me", response_model=IdentityRead)
async def read_me(claims: TokenClaimsDep, store: ProfileStoreDep):
    """Return the caller's identity state, screen and profile.

    A user without a profile row gets the provisioning state and no profile.
    """
    profile = await store.fetch(claims.uid)
    return IdentityRead.from_state(state_from_profile(profile), profile)


@router.post("/me", response_model=IdentityRead)
async def provision_me(claims: TokenClaimsDep, store: ProfileStoreDep):
    """Create the caller's profile if missing (idempotent create-or-fetch)."""
    session = Session(
        user_id=claims.uid,
        email=claims.email,
        provider_metadata={"name": claims.name} if claims.name else {},
    )
    profile = await store.ensure_profile_exists(
        claims.uid, derive_nickname(session), email=claims.email
    )
    return IdentityRead.from_state(state_from_profile(profile), profile)


@router.patch(
    "/me", response_model=ProfileRead, responses={**CommonResponses.NOT_FOUND}
)
async def update_me(
    profile: CurrentProfileDep, update: ProfileUpdateMe, store: ProfileStoreDep
):
    """Update nickname and phone.

    Verification fields and the admin flag cannot be changed here.
    """
    changes = update.model_dump(exclude_unset=True)
    updated = await store.update_profile(profile.user_id, **changes)
    return ProfileRead.from_snapshot(updated)


@router.post(
    "/me/verification",
    response_model=ProfileRead,
    responses={**CommonResponses.NOT_FOUND, **CommonResponses.CONFLICT},
)
async def submit_verification(
    profile: CurrentProfileDep,
    submission: VerificationSubmission,
    store: ProfileStoreDep,
):
    """Record an uploaded ID image and put the profile back into review."""
    updated = await store.submit_verification(
        profile.user_id, submission.id_image_url, submission.id_type
    )
    return ProfileRead.from_snapshot(updated)
