"""Profile domain exceptions."""

from app.core.exceptions import ConflictError, ExternalServiceError, NotFoundError


class ProfileNotFoundError(NotFoundError):
    """Raised when no durable profile exists for a user id."""

    error_type = "profile_not_found"

    def __init__(self, message: str = "Profile not found"):
        super().__init__(message)


class ProfileStoreError(ExternalServiceError):
    """Raised when the profile store cannot be read or written.

    Treated as transient by the identity resolver.
    """

    status_code = 503
    error_type = "profile_store_unavailable"

    def __init__(self, message: str = "Profile store unavailable"):
        super().__init__(message)


class ProfileNotConfirmedError(ProfileStoreError):
    """Raised when create-or-fetch returned a profile without created_at."""

    error_type = "profile_not_confirmed"

    def __init__(self, message: str = "Profile was not persisted"):
        super().__init__(message)


class VerificationStateError(ConflictError):
    """Raised when a verification review does not fit the current record."""

    error_type = "verification_state_error"

    def __init__(self, message: str = "Verification cannot be reviewed"):
        super().__init__(message)
