"""Resolved identity states.

ResolvedIdentityState is the single value every screen consumes. It is always
computed fresh from the latest session and profile snapshot by
``state_from_profile``; nothing patches a previous state in place.
"""

from dataclasses import dataclass
from typing import ClassVar

from app.auth.service import Session
from app.profile.models import VerificationStatus
from app.profile.schemas import ProfileSnapshot

DEFAULT_NICKNAME = "User"
NICKNAME_MAX_LENGTH = 50


@dataclass(frozen=True)
class Anonymous:
    """No session."""

    kind: ClassVar[str] = "anonymous"


@dataclass(frozen=True)
class ProvisioningProfile:
    """Session exists, no confirmed profile yet."""

    kind: ClassVar[str] = "provisioning_profile"


@dataclass(frozen=True)
class ProvisioningFailed:
    """Every provisioning attempt failed; a manual retry is offered."""

    reason: str
    attempts: int
    kind: ClassVar[str] = "provisioning_failed"


@dataclass(frozen=True)
class AwaitingVerification:
    """Profile confirmed, verification pending."""

    has_uploaded_id: bool
    kind: ClassVar[str] = "awaiting_verification"


@dataclass(frozen=True)
class Rejected:
    reason: str | None
    kind: ClassVar[str] = "rejected"


@dataclass(frozen=True)
class Verified:
    """Approved identity; the only state that unlocks social features."""

    kind: ClassVar[str] = "verified"


ResolvedIdentityState = (
    Anonymous
    | ProvisioningProfile
    | ProvisioningFailed
    | AwaitingVerification
    | Rejected
    | Verified
)


def state_from_profile(profile: ProfileSnapshot | None) -> ResolvedIdentityState:
    """Map a profile snapshot of a signed-in user to its identity state.

    A missing or unconfirmed profile maps to ProvisioningProfile; starting the
    provisioning sequence is the resolver's job, not this function's.
    """
    if profile is None or not profile.is_confirmed:
        return ProvisioningProfile()

    match profile.verification_status:
        case VerificationStatus.approved:
            return Verified()
        case VerificationStatus.rejected:
            return Rejected(reason=profile.rejection_reason)
        case _:
            return AwaitingVerification(has_uploaded_id=profile.has_uploaded_id)


def derive_nickname(session: Session) -> str:
    """Provider display name, else the e-mail local part, else "User"."""
    name = (session.display_name or "").strip()
    if name:
        return name[:NICKNAME_MAX_LENGTH]
    local_part = (session.email or "").split("@", 1)[0].strip()
    return local_part[:NICKNAME_MAX_LENGTH] or DEFAULT_NICKNAME
