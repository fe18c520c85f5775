"""Identity domain exceptions."""

from app.core.exceptions import ConflictError, InternalError


class IdentityNotInitializedError(InternalError):
    """Raised when identity state is used before the resolver was started."""

    error_type = "identity_not_initialized"

    def __init__(
        self, message: str = "Identity resolver used before start() was awaited"
    ):
        super().__init__(message)


class OAuthCallbackAlreadyHandledError(ConflictError):
    """Raised when a callback coordinator is completed a second time."""

    error_type = "oauth_callback_already_handled"

    def __init__(self, message: str = "OAuth callback was already handled"):
        super().__init__(message)
