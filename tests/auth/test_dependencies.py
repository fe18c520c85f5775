"""Tests for app/auth/dependencies.py - bearer token and profile guards."""

from unittest.mock import MagicMock

import pytest

from app.auth.dependencies import (
    get_admin_profile,
    get_current_profile,
    get_token_claims,
)
from app.auth.exceptions import (
    AdminRequiredError,
    InvalidCredentialsError,
    InvalidTokenError,
)
from app.auth.service import FirebaseTokenVerifier, TokenClaims
from app.profile.exceptions import ProfileNotFoundError


def create_mock_verifier():
    """Create a mock FirebaseTokenVerifier."""
    return MagicMock(spec=FirebaseTokenVerifier)


def test_get_token_claims_valid_bearer_token():
    """Valid bearer token returns the verifier's claims."""
    mock_credentials = MagicMock()
    mock_credentials.credentials = "valid-token"
    mock_verifier = create_mock_verifier()
    mock_verifier.verify_id_token.return_value = TokenClaims(uid="uid-123")

    result = get_token_claims(mock_verifier, mock_credentials)

    assert result.uid == "uid-123"
    mock_verifier.verify_id_token.assert_called_once_with("valid-token")


def test_get_token_claims_without_credentials():
    """Missing Authorization header raises InvalidCredentialsError (401)."""
    mock_verifier = create_mock_verifier()

    with pytest.raises(InvalidCredentialsError) as exc_info:
        get_token_claims(mock_verifier, None)

    assert exc_info.value.status_code == 401
    mock_verifier.verify_id_token.assert_not_called()


def test_get_token_claims_invalid_token_propagates():
    """A token the verifier rejects surfaces as InvalidTokenError."""
    mock_credentials = MagicMock()
    mock_credentials.credentials = "invalid-token"
    mock_verifier = create_mock_verifier()
    mock_verifier.verify_id_token.side_effect = InvalidTokenError()

    with pytest.raises(InvalidTokenError):
        get_token_claims(mock_verifier, mock_credentials)


@pytest.mark.asyncio
async def test_get_current_profile_found(profile_store, add_profile):
    add_profile("uid-123", nickname="Ada")

    profile = await get_current_profile(TokenClaims(uid="uid-123"), profile_store)

    assert profile.user_id == "uid-123"
    assert profile.nickname == "Ada"
    assert profile.is_confirmed


@pytest.mark.asyncio
async def test_get_current_profile_not_provisioned(profile_store):
    with pytest.raises(ProfileNotFoundError) as exc_info:
        await get_current_profile(TokenClaims(uid="uid-123"), profile_store)

    assert exc_info.value.status_code == 404


def test_get_admin_profile_allows_admin(profile_factory):
    admin = profile_factory("admin-1", is_admin=True)

    assert get_admin_profile(admin) is admin


def test_get_admin_profile_rejects_regular_user(profile_factory):
    with pytest.raises(AdminRequiredError) as exc_info:
        get_admin_profile(profile_factory("user-1"))

    assert exc_info.value.status_code == 403
