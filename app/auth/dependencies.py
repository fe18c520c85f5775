"""Auth domain dependencies.

Bearer ID token verification for FastAPI routes, plus profile and admin
guards built on top of it.
"""

from typing import Annotated

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.auth.exceptions import AdminRequiredError, InvalidCredentialsError
from app.auth.service import FirebaseTokenVerifier, TokenClaims, get_token_verifier
from app.core.deps import ProfileStoreDep
from app.profile.exceptions import ProfileNotFoundError
from app.profile.schemas import ProfileSnapshot

security = HTTPBearer(auto_error=False)

TokenVerifierDep = Annotated[FirebaseTokenVerifier, Depends(get_token_verifier)]


def get_token_claims(
    verifier: TokenVerifierDep,
    credentials: Annotated[
        HTTPAuthorizationCredentials | None, Depends(security)
    ] = None,
) -> TokenClaims:
    """Verify the bearer ID token and return its claims.

    Raises:
        InvalidCredentialsError: If no bearer token was sent
        InvalidTokenError: If the token does not verify
    """
    if credentials is None or not credentials.credentials:
        raise InvalidCredentialsError("Not authenticated")
    return verifier.verify_id_token(credentials.credentials)


TokenClaimsDep = Annotated[TokenClaims, Depends(get_token_claims)]


async def get_current_profile(
    claims: TokenClaimsDep, store: ProfileStoreDep
) -> ProfileSnapshot:
    """Return the confirmed profile of the authenticated user.

    Raises:
        ProfileNotFoundError: If the profile was not provisioned yet
    """
    profile = await store.fetch(claims.uid)
    if profile is None:
        raise ProfileNotFoundError()
    return profile


CurrentProfileDep = Annotated[ProfileSnapshot, Depends(get_current_profile)]


def get_admin_profile(profile: CurrentProfileDep) -> ProfileSnapshot:
    """Verify the current user has admin privileges.

    Raises:
        AdminRequiredError: If the profile is not flagged as admin
    """
    if not profile.is_admin:
        raise AdminRequiredError()
    return profile


AdminProfileDep = Annotated[ProfileSnapshot, Depends(get_admin_profile)]


def require_admin(_profile: AdminProfileDep) -> None:
    """Require admin privileges without injecting the profile.

    Use as a router-level dependency:
        router = APIRouter(dependencies=[Depends(require_admin)])
    """
    pass  # Admin check already validated by AdminProfileDep
