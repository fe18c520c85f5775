"""Auth domain exceptions.

Authentication and authorization related exceptions.
"""

from app.core.exceptions import AppException, ProviderError


# Authentication errors (401)
class AuthenticationError(AppException):
    """Base class for authentication failures."""

    status_code = 401
    error_type = "authentication_error"

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message)


class InvalidCredentialsError(AuthenticationError):
    """Raised when the identity provider rejects the presented credentials."""

    error_type = "invalid_credentials"

    def __init__(self, message: str = "Invalid credentials"):
        super().__init__(message)


class InvalidTokenError(AuthenticationError):
    """Raised when authentication token is invalid or expired."""

    error_type = "invalid_token"

    def __init__(self, message: str = "Invalid authentication token"):
        super().__init__(message)


class SessionExpiredError(AuthenticationError):
    """Raised when the refresh token can no longer produce a session."""

    error_type = "session_expired"

    def __init__(self, message: str = "Session has expired"):
        super().__init__(message)


class OAuthFlowError(AuthenticationError):
    """Raised when the OAuth redirect cannot be exchanged for a session."""

    error_type = "oauth_flow_error"

    def __init__(self, message: str = "OAuth sign-in failed"):
        super().__init__(message)


class SessionNotReadyError(ProviderError):
    """Raised while a redirect has completed but no session is queryable yet."""

    error_type = "session_not_ready"

    def __init__(self, message: str = "Session is not available yet"):
        super().__init__(message)


# Authorization errors (403)
class AuthorizationError(AppException):
    """Base class for authorization failures."""

    status_code = 403
    error_type = "authorization_error"

    def __init__(self, message: str = "Access denied"):
        super().__init__(message)


class UserDisabledError(AuthorizationError):
    """Raised when user account is disabled in Firebase."""

    error_type = "user_disabled"

    def __init__(self, message: str = "User account is disabled"):
        super().__init__(message)


class AdminRequiredError(AuthorizationError):
    """Raised when admin privileges are required."""

    error_type = "admin_required"

    def __init__(self, message: str = "Admin privileges required"):
        super().__init__(message)

