"""Pure mapping from identity state to the screen that renders it."""

from dataclasses import dataclass
from enum import Enum

from app.identity.states import (
    Anonymous,
    AwaitingVerification,
    ProvisioningFailed,
    ProvisioningProfile,
    Rejected,
    ResolvedIdentityState,
    Verified,
)


class Screen(str, Enum):
    sign_in = "SIGN_IN"
    profile_creation_wait = "PROFILE_CREATION_WAIT"
    profile_creation_failed = "PROFILE_CREATION_FAILED"
    upload_id = "UPLOAD_ID"
    pending_review = "PENDING_REVIEW"
    main_app = "MAIN_APP"


@dataclass(frozen=True)
class ScreenRoute:
    screen: Screen
    reason: str | None = None
    can_retry: bool = False


def route_for(state: ResolvedIdentityState) -> ScreenRoute:
    match state:
        case Anonymous():
            return ScreenRoute(Screen.sign_in)
        case ProvisioningProfile():
            return ScreenRoute(Screen.profile_creation_wait)
        case ProvisioningFailed(reason=reason):
            return ScreenRoute(Screen.profile_creation_failed, reason, can_retry=True)
        case AwaitingVerification(has_uploaded_id=True):
            return ScreenRoute(Screen.pending_review)
        case AwaitingVerification():
            return ScreenRoute(Screen.upload_id)
        case Rejected(reason=reason):
            return ScreenRoute(Screen.upload_id, reason)
        case Verified():
            return ScreenRoute(Screen.main_app)
    raise TypeError(f"Unknown identity state: {state!r}")
