"""Profile domain models.

SQLModel table definition for the application profile that extends a
provider session with app-specific fields and the identity verification
record.
"""

from datetime import datetime
from enum import Enum

from pydantic import EmailStr
from sqlmodel import Field, SQLModel

from app.core.mixins import TimestampMixin


class VerificationStatus(str, Enum):
    """Identity verification status.

    - pending: No decision yet (with or without an uploaded ID)
    - approved: ID reviewed and accepted; unlocks posting, search and messaging
    - rejected: ID reviewed and refused; a new upload is required
    """

    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class IdType(str, Enum):
    school_id = "school_id"
    national_id = "national_id"


class Profile(TimestampMixin, SQLModel, table=True):
    """Profile database model.

    The primary key is the session provider's user id; a row exists only
    once provisioning succeeded, which is what created_at attests.
    """

    __tablename__: str = "profiles"

    id: str = Field(primary_key=True, max_length=128)
    email: EmailStr | None = Field(default=None, index=True, max_length=255)
    phone: str | None = Field(default=None, max_length=32)
    nickname: str = Field(default="User", max_length=50)
    verification_status: VerificationStatus = Field(
        default=VerificationStatus.pending, max_length=20, index=True
    )
    id_image_url: str | None = Field(default=None, max_length=2048)
    id_type: IdType | None = Field(default=None, max_length=20)
    rejection_reason: str | None = Field(default=None, max_length=500)
    verified_at: datetime | None = Field(default=None)
    is_admin: bool = Field(default=False)
