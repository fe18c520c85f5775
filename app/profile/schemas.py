"""Profile domain schemas.

ProfileSnapshot is the canonical read model handed to the identity resolver.
Earlier client builds wrote both camelCase (``idImageUrl``,
``verificationStatus``, ``createdAt``) and snake_case keys, so the snapshot
accepts either spelling and normalizes blank strings to None. Nothing past
this boundary looks at raw records.
"""

from datetime import UTC, datetime

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
)

from app.profile.models import IdType, Profile, VerificationStatus


def _serialize_utc(value: datetime | None) -> str | None:
    """Format datetime as ISO 8601 string in UTC with Z suffix."""
    if value is None:
        return None
    if value.tzinfo is not None:
        utc_value = value.astimezone(UTC)
    else:
        # Naive datetime - assume it's already UTC (from TimestampMixin)
        utc_value = value.replace(tzinfo=UTC)
    return utc_value.replace(microsecond=0).isoformat().replace("+00:00", "Z")


class ProfileSnapshot(BaseModel):
    """Immutable view of a profile as seen at one point in time.

    A snapshot without created_at is provisional: it was assembled from
    session metadata and no durable row backs it yet.
    """

    model_config = ConfigDict(frozen=True)

    user_id: str = Field(validation_alias=AliasChoices("user_id", "userId", "id"))
    email: str | None = None
    phone: str | None = None
    nickname: str | None = None
    created_at: datetime | None = Field(
        default=None, validation_alias=AliasChoices("created_at", "createdAt")
    )
    verification_status: VerificationStatus = Field(
        default=VerificationStatus.pending,
        validation_alias=AliasChoices("verification_status", "verificationStatus"),
    )
    id_image_url: str | None = Field(
        default=None, validation_alias=AliasChoices("id_image_url", "idImageUrl")
    )
    id_type: IdType | None = Field(
        default=None, validation_alias=AliasChoices("id_type", "idType")
    )
    rejection_reason: str | None = Field(
        default=None,
        validation_alias=AliasChoices("rejection_reason", "rejectionReason"),
    )
    verified_at: datetime | None = Field(
        default=None, validation_alias=AliasChoices("verified_at", "verifiedAt")
    )
    is_admin: bool = Field(
        default=False, validation_alias=AliasChoices("is_admin", "isAdmin")
    )

    @field_validator(
        "id_image_url", "id_type", "rejection_reason", "nickname", "phone", "email",
        mode="before",
    )
    @classmethod
    def _blank_to_none(cls, value: object) -> object:
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value

    @property
    def is_confirmed(self) -> bool:
        """True once a durable profile row exists."""
        return self.created_at is not None

    @property
    def has_uploaded_id(self) -> bool:
        return bool(self.id_image_url and self.id_image_url.strip())

    @classmethod
    def from_record(cls, record: Profile) -> "ProfileSnapshot":
        return cls.model_validate({**record.model_dump(), "user_id": record.id})


class ProfileRead(BaseModel):
    """Response schema for profile data.

    Exposes whether an ID was uploaded, not the image URL itself.
    """

    user_id: str
    nickname: str | None
    email: str | None
    phone: str | None
    verification_status: VerificationStatus
    id_type: IdType | None
    has_uploaded_id: bool
    rejection_reason: str | None
    created_at: datetime | None
    verified_at: datetime | None

    @field_serializer("created_at", "verified_at")
    def serialize_datetime(self, value: datetime | None) -> str | None:
        return _serialize_utc(value)

    @classmethod
    def from_snapshot(cls, snapshot: ProfileSnapshot) -> "ProfileRead":
        return cls(
            user_id=snapshot.user_id,
            nickname=snapshot.nickname,
            email=snapshot.email,
            phone=snapshot.phone,
            verification_status=snapshot.verification_status,
            id_type=snapshot.id_type,
            has_uploaded_id=snapshot.has_uploaded_id,
            rejection_reason=snapshot.rejection_reason,
            created_at=snapshot.created_at,
            verified_at=snapshot.verified_at,
        )


class VerificationReviewRead(ProfileRead):
    """Admin view of a profile under review, including the ID image URL."""

    id_image_url: str | None

    @classmethod
    def from_snapshot(cls, snapshot: ProfileSnapshot) -> "VerificationReviewRead":
        return cls(
            **dict(ProfileRead.from_snapshot(snapshot)),
            id_image_url=snapshot.id_image_url,
        )


class ProfileUpdateMe(BaseModel):
    """Schema for users updating their own profile.

    Verification fields and admin flag are intentionally absent.
    """

    nickname: str | None = Field(default=None, min_length=1, max_length=50)
    phone: str | None = Field(default=None, max_length=32)


class VerificationSubmission(BaseModel):
    """ID document reference recorded after the image upload finished."""

    id_image_url: str = Field(min_length=1, max_length=2048)
    id_type: IdType

    @field_validator("id_image_url")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("id_image_url must not be blank")
        return value


class VerificationRejection(BaseModel):
    reason: str = Field(min_length=1, max_length=500)
