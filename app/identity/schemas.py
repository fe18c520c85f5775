"""Identity response schemas for the HTTP surface."""

from pydantic import BaseModel

from app.identity.screens import Screen, route_for
from app.identity.states import ResolvedIdentityState
from app.profile.schemas import ProfileRead, ProfileSnapshot


class IdentityRead(BaseModel):
    """Resolved identity state plus the screen that renders it."""

    state: str
    screen: Screen
    reason: str | None = None
    can_retry: bool = False
    profile: ProfileRead | None = None

    @classmethod
    def from_state(
        cls, state: ResolvedIdentityState, profile: ProfileSnapshot | None = None
    ) -> "IdentityRead":
        route = route_for(state)
        return cls(
            state=state.kind,
            screen=route.screen,
            reason=route.reason,
            can_retry=route.can_retry,
            profile=ProfileRead.from_snapshot(profile)
            if profile and profile.is_confirmed
            else None,
        )
