"""Firebase session provider and token verification.

FirebaseSessionProvider is the client-side session source consumed by the
identity resolver. It drives the browser-based OAuth redirect through the
Identity Toolkit REST API, keeps the most recent session, refreshes it with
the Secure Token API, and notifies listeners on sign-in, sign-out and token
refresh.

FirebaseTokenVerifier is the server-side counterpart used by the HTTP
surface to turn a bearer ID token into claims via the Firebase Admin SDK.
"""

import contextlib
import json
import logging
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from enum import Enum
from functools import lru_cache
from typing import Any, Protocol

import httpx
from firebase_admin import auth as firebase_admin_auth
from firebase_admin.exceptions import FirebaseError

from app.auth.exceptions import (
    InvalidCredentialsError,
    InvalidTokenError,
    OAuthFlowError,
    SessionExpiredError,
    UserDisabledError,
)
from app.auth.identity_toolkit import (
    IDENTITY_TOOLKIT_ENDPOINTS,
    SECURE_TOKEN_ENDPOINT,
    CreateAuthUriRequest,
    CreateAuthUriResponse,
    SecureTokenResponse,
    SignInWithIdpRequest,
    SignInWithIdpResponse,
)
from app.core.exceptions import AppException, ProviderError, RateLimitError
from app.core.http import get_identity_client
from app.core.retry import with_retry

logger = logging.getLogger(__name__)

_OAUTH_FLOW_MESSAGES = {
    "INVALID_IDP_RESPONSE",
    "MISSING_OR_INVALID_NONCE",
    "INVALID_PENDING_TOKEN",
    "OPERATION_NOT_ALLOWED",
    "INVALID_CONTINUE_URI",
}
_SESSION_EXPIRED_MESSAGES = {
    "TOKEN_EXPIRED",
    "INVALID_REFRESH_TOKEN",
    "INVALID_ID_TOKEN",
    "USER_NOT_FOUND",
    "CREDENTIAL_TOO_OLD_LOGIN_AGAIN",
}

# Refresh a little before the provider-side expiry.
_EXPIRY_SKEW = timedelta(seconds=60)


def _utc_now() -> datetime:
    return datetime.now(UTC)


class SessionEvent(str, Enum):
    """Session-changed notifications emitted by a SessionProvider."""

    signed_in = "SIGNED_IN"
    signed_out = "SIGNED_OUT"
    token_refreshed = "TOKEN_REFRESHED"


@dataclass(frozen=True)
class Session:
    """Provider-level proof of authentication.

    Independent of any application profile: a session can exist long before
    the matching profile row does.
    """

    user_id: str
    email: str | None = None
    id_token: str | None = None
    refresh_token: str | None = None
    expires_at: datetime | None = None
    provider_metadata: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def display_name(self) -> str | None:
        return self.provider_metadata.get("name") or self.provider_metadata.get(
            "full_name"
        )

    @property
    def phone(self) -> str | None:
        return self.provider_metadata.get("phone_number") or self.provider_metadata.get(
            "phone"
        )

    def is_expired(self, now: datetime) -> bool:
        if self.expires_at is None:
            return False
        return now >= self.expires_at - _EXPIRY_SKEW


SessionListener = Callable[[SessionEvent, Session | None], None]


@dataclass
class PendingRedirect:
    """An OAuth redirect started by sign_in_with_oauth and not yet exchanged."""

    provider_id: str
    session_id: str
    callback_url: str | None = None


@dataclass(frozen=True)
class TokenClaims:
    """Decoded token claims from Firebase."""

    uid: str
    email: str | None = None
    name: str | None = None


class SessionProvider(Protocol):
    """Protocol for the third-party session source.

    The identity resolver depends on this protocol, not on Firebase, so it
    can be driven by an in-memory fake in tests.
    """

    async def get_session(self) -> Session | None:
        """Return the current session, or None when signed out."""
        ...

    async def refresh_session(self) -> Session | None:
        """Ask the provider for a fresh session (used by callback polling)."""
        ...

    def on_session_changed(self, listener: SessionListener) -> Callable[[], None]:
        """Register a session-changed listener; returns an unsubscribe callable."""
        ...

    async def sign_in_with_oauth(self, provider_id: str | None = None) -> str:
        """Start a browser-based OAuth sign-in; returns the URL to open."""
        ...

    async def sign_out(self) -> None:
        """Drop the current session."""
        ...


class FirebaseSessionProvider:
    """SessionProvider backed by Firebase Identity Toolkit REST APIs.

    Handles:
    - createAuthUri to start the OAuth redirect
    - signInWithIdp to exchange the redirect result for tokens
    - Secure Token refresh for expired or explicitly refreshed sessions
    """

    def __init__(
        self,
        api_key: str | None,
        redirect_uri: str,
        identity_toolkit_base_url: str = "https://identitytoolkit.googleapis.com",
        secure_token_base_url: str = "https://securetoken.googleapis.com",
        *,
        default_provider_id: str = "google.com",
        clock: Callable[[], datetime] = _utc_now,
    ):
        self._api_key = api_key
        self._redirect_uri = redirect_uri
        self._default_provider_id = default_provider_id
        self._identity_toolkit_base_url = identity_toolkit_base_url
        self._secure_token_base_url = secure_token_base_url
        self._clock = clock
        self._session: Session | None = None
        self._pending: PendingRedirect | None = None
        self._listeners: list[SessionListener] = []

    @property
    def pending_redirect(self) -> PendingRedirect | None:
        return self._pending

    def _ensure_api_key(self) -> str:
        """Ensure API key is configured."""
        if not self._api_key:
            raise AppException("Firebase API key not configured")
        return self._api_key

    # -- listeners ---------------------------------------------------------

    def on_session_changed(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return unsubscribe

    def _set_session(self, session: Session | None, event: SessionEvent) -> None:
        self._session = session
        logger.info(
            "Session event %s",
            event.value,
            extra={"user_id": session.user_id if session else None},
        )
        for listener in list(self._listeners):
            listener(event, session)

    # -- HTTP plumbing -----------------------------------------------------

    async def _post(
        self,
        url: str,
        *,
        json_payload: Mapping[str, object] | None = None,
        form_payload: dict[str, str] | None = None,
        retry: bool = False,
    ) -> dict[str, Any]:
        """POST to the identity provider and return the decoded JSON body.

        Raises:
            RateLimitError: If rate limit exceeded
            UserDisabledError: If the account is disabled
            OAuthFlowError: If the redirect result cannot be exchanged
            SessionExpiredError: If the refresh token or ID token is dead
            ProviderError: If the provider is unreachable or answers unexpectedly
        """
        client = get_identity_client()

        async def do_request() -> httpx.Response:
            return await client.post(url, json=json_payload, data=form_payload)

        try:
            response = await with_retry(
                do_request,
                # 2 attempts = 1 initial try + 1 retry on failure
                attempts=2 if retry else 1,
                exceptions=(httpx.RequestError,),
            )
        except httpx.RequestError as e:
            raise ProviderError("Authentication provider unavailable") from e

        if response.status_code != 200:
            self._handle_provider_error(response)

        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(
                "Authentication provider returned an invalid response"
            ) from e

    @staticmethod
    def _parse_retry_after(value: str | None) -> int | None:
        """Parse Retry-After header into seconds."""
        if not value:
            return None
        with contextlib.suppress(ValueError):
            parsed = int(value)
            if parsed >= 0:
                return parsed
        return None

    @staticmethod
    def _sanitize_error_code(error_message: str) -> str:
        """Extract a safe, non-sensitive error code for logging."""
        match = re.match(r"[A-Z0-9_]+", error_message)
        return match.group(0) if match else "UNKNOWN"

    def _handle_provider_error(self, response: httpx.Response) -> None:
        """Map an error response from Identity Toolkit / Secure Token."""
        if response.status_code == 429:
            raise RateLimitError(
                "Too many attempts, try again later",
                retry_after=self._parse_retry_after(response.headers.get("Retry-After")),
            )

        try:
            error_data = response.json()
            error_message = error_data.get("error", {}).get("message", "Unknown error")
        except (ValueError, AttributeError) as e:
            raise ProviderError(
                "Authentication provider returned an invalid response"
            ) from e

        error_code = self._sanitize_error_code(error_message)
        logger.info(
            "Identity provider error: status=%s, code=%s",
            response.status_code,
            error_code,
        )

        if error_code == "TOO_MANY_ATTEMPTS_TRY_LATER":
            raise RateLimitError("Too many attempts, try again later")

        if error_code == "USER_DISABLED":
            raise UserDisabledError()

        if error_code in _OAUTH_FLOW_MESSAGES:
            raise OAuthFlowError(f"OAuth sign-in failed: {error_code}")

        if error_code in _SESSION_EXPIRED_MESSAGES:
            raise SessionExpiredError()

        if response.status_code >= 500:
            raise ProviderError(f"Authentication provider error: {error_code}")

        if response.status_code in {400, 401, 403}:
            raise InvalidCredentialsError("Authentication failed")

        raise ProviderError(f"Authentication failed: {error_code}")

    def _identity_toolkit_url(self, endpoint: str) -> str:
        api_key = self._ensure_api_key()
        return f"{self._identity_toolkit_base_url}/{endpoint}?key={api_key}"

    # -- SessionProvider ---------------------------------------------------

    async def get_session(self) -> Session | None:
        """Return the current session, refreshing it when the ID token expired."""
        session = self._session
        if session is None or self._pending is not None:
            return session
        if session.refresh_token and session.is_expired(self._clock()):
            return await self._refresh_tokens(session)
        return session

    async def refresh_session(self) -> Session | None:
        """Return a fresh session or None if none is queryable yet.

        While an OAuth redirect is pending this tries to exchange the
        callback URL; before the callback arrives, or while the provider has
        not yet propagated the sign-in, it returns None.
        """
        if self._pending is not None:
            if self._pending.callback_url is None:
                return None
            return await self._complete_redirect(self._pending)

        if self._session is None or not self._session.refresh_token:
            return self._session
        return await self._refresh_tokens(self._session)

    async def sign_in_with_oauth(self, provider_id: str | None = None) -> str:
        """Start an OAuth redirect and return the authorization URL.

        Uses the configured OAUTH_PROVIDER_ID when ``provider_id`` is omitted.

        Raises:
            ProviderError: If the provider does not return an auth URI
        """
        provider_id = provider_id or self._default_provider_id
        payload: CreateAuthUriRequest = {
            "providerId": provider_id,
            "continueUri": self._redirect_uri,
        }
        data: CreateAuthUriResponse = await self._post(
            self._identity_toolkit_url(IDENTITY_TOOLKIT_ENDPOINTS["createAuthUri"]),
            json_payload=payload,
            retry=True,
        )

        auth_uri = data.get("authUri")
        session_id = data.get("sessionId")
        if not auth_uri or not session_id:
            raise ProviderError("Failed to start OAuth sign-in")

        self._pending = PendingRedirect(provider_id=provider_id, session_id=session_id)
        logger.info("OAuth redirect started for provider %s", provider_id)
        return auth_uri

    def handle_redirect(self, callback_url: str) -> None:
        """Record the deep-link URL the browser returned to the app with.

        Raises:
            OAuthFlowError: If no OAuth sign-in was started
        """
        if self._pending is None:
            raise OAuthFlowError("No OAuth sign-in in progress")
        self._pending.callback_url = callback_url

    async def sign_out(self) -> None:
        had_redirect = self._pending is not None
        self._pending = None
        if self._session is not None or had_redirect:
            self._set_session(None, SessionEvent.signed_out)

    # -- internals ---------------------------------------------------------

    async def _complete_redirect(self, pending: PendingRedirect) -> Session | None:
        payload: SignInWithIdpRequest = {
            "requestUri": pending.callback_url or "",
            "sessionId": pending.session_id,
            "returnSecureToken": True,
            "returnIdpCredential": True,
        }
        data: SignInWithIdpResponse = await self._post(
            self._identity_toolkit_url(IDENTITY_TOOLKIT_ENDPOINTS["signInWithIdp"]),
            json_payload=payload,
        )

        uid = data.get("localId")
        id_token = data.get("idToken")
        if not uid or not id_token:
            # Redirect processed but the sign-in has not propagated yet.
            return None

        metadata: dict[str, Any] = {}
        raw_user_info = data.get("rawUserInfo")
        if raw_user_info:
            with contextlib.suppress(ValueError, TypeError):
                metadata.update(json.loads(raw_user_info))
        if data.get("displayName"):
            metadata.setdefault("name", data["displayName"])
        if data.get("photoUrl"):
            metadata.setdefault("picture", data["photoUrl"])
        metadata["provider_id"] = data.get("providerId", pending.provider_id)

        session = Session(
            user_id=uid,
            email=data.get("email"),
            id_token=id_token,
            refresh_token=data.get("refreshToken"),
            expires_at=self._expires_at(data.get("expiresIn")),
            provider_metadata=metadata,
        )
        self._pending = None
        self._set_session(session, SessionEvent.signed_in)
        return session

    async def _refresh_tokens(self, session: Session) -> Session | None:
        api_key = self._ensure_api_key()
        try:
            data: SecureTokenResponse = await self._post(
                f"{self._secure_token_base_url}/{SECURE_TOKEN_ENDPOINT}?key={api_key}",
                form_payload={
                    "grant_type": "refresh_token",
                    "refresh_token": session.refresh_token or "",
                },
                retry=True,
            )
        except (SessionExpiredError, UserDisabledError):
            self._set_session(None, SessionEvent.signed_out)
            return None

        id_token = data.get("id_token")
        if not id_token:
            raise ProviderError("Failed to refresh session")

        refreshed = replace(
            session,
            id_token=id_token,
            refresh_token=data.get("refresh_token") or session.refresh_token,
            expires_at=self._expires_at(data.get("expires_in")),
        )
        self._set_session(refreshed, SessionEvent.token_refreshed)
        return refreshed

    def _expires_at(self, expires_in: str | None) -> datetime | None:
        if not expires_in:
            return None
        with contextlib.suppress(ValueError):
            return self._clock() + timedelta(seconds=int(expires_in))
        return None


class FirebaseTokenVerifier:
    """Verifies bearer ID tokens with the Firebase Admin SDK."""

    @staticmethod
    def _extract_token_claims(decoded: dict[str, Any]) -> TokenClaims:
        uid = decoded.get("uid") or decoded.get("sub")
        if not uid:
            raise InvalidTokenError("Invalid token: missing uid")
        return TokenClaims(
            uid=uid, email=decoded.get("email"), name=decoded.get("name")
        )

    def verify_id_token(self, id_token: str) -> TokenClaims:
        """Verify ID token and return claims.

        Raises:
            InvalidTokenError: If verification fails
        """
        try:
            decoded = firebase_admin_auth.verify_id_token(id_token)
        except (ValueError, FirebaseError) as e:
            raise InvalidTokenError() from e
        return self._extract_token_claims(decoded)


@lru_cache
def get_session_provider() -> FirebaseSessionProvider:
    """Get the process-wide Firebase session provider."""
    from app.core.settings import get_settings

    settings = get_settings()
    return FirebaseSessionProvider(
        api_key=settings.firebase_api_key,
        redirect_uri=settings.oauth_redirect_uri,
        identity_toolkit_base_url=settings.identity_toolkit_base_url,
        secure_token_base_url=settings.secure_token_base_url,
        default_provider_id=settings.oauth_provider_id,
    )


@lru_cache
def get_token_verifier() -> FirebaseTokenVerifier:
    """Get cached token verifier instance."""
    return FirebaseTokenVerifier()
