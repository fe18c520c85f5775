from typing import NotRequired, TypedDict

# Constants
IDENTITY_TOOLKIT_ENDPOINTS: dict[str, str] = {
    "createAuthUri": "v1/accounts:createAuthUri",
    "signInWithIdp": "v1/accounts:signInWithIdp",
}
SECURE_TOKEN_ENDPOINT = "v1/token"


# Request schemas
class CreateAuthUriRequest(TypedDict, total=False):
    """Request schema for createAuthUri endpoint.

    https://cloud.google.com/identity-platform/docs/reference/rest/v1/accounts/createAuthUri
    """

    providerId: str  # e.g. "google.com"
    continueUri: str  # Where the IdP redirects back to (app deep link)
    # Optional fields
    identifier: NotRequired[str]
    oauthScope: NotRequired[str]
    customParameter: NotRequired[dict[str, str]]
    tenantId: NotRequired[str]


class CreateAuthUriResponse(TypedDict, total=False):
    """Response schema for createAuthUri endpoint."""

    kind: str
    authUri: str  # URL to open in the browser
    providerId: str
    sessionId: str  # Must be echoed back to signInWithIdp


class SignInWithIdpRequest(TypedDict, total=False):
    """Request schema for signInWithIdp endpoint.

    https://cloud.google.com/identity-platform/docs/reference/rest/v1/accounts/signInWithIdp
    """

    requestUri: str  # The full callback URL the IdP redirected to
    sessionId: str
    returnSecureToken: bool
    returnIdpCredential: NotRequired[bool]
    postBody: NotRequired[str]
    tenantId: NotRequired[str]


class SignInWithIdpResponse(TypedDict, total=False):
    """Response schema for signInWithIdp endpoint."""

    kind: str
    localId: str  # The UID of the authenticated user
    email: str
    emailVerified: bool
    displayName: str
    photoUrl: str
    providerId: str
    idToken: str
    refreshToken: str
    expiresIn: str  # Token lifetime in seconds
    rawUserInfo: str  # JSON-encoded IdP profile
    needConfirmation: bool


class SecureTokenResponse(TypedDict, total=False):
    """Response schema for the Secure Token refresh exchange.

    https://firebase.google.com/docs/reference/rest/auth#section-refresh-token
    Note: this API answers in snake_case.
    """

    expires_in: str
    token_type: str
    refresh_token: str
    id_token: str
    user_id: str
    project_id: str
