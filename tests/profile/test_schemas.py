"""Tests for profile schemas - snapshot normalization and response shapes."""

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from app.profile.models import IdType, Profile, VerificationStatus
from app.profile.schemas import (
    ProfileRead,
    ProfileSnapshot,
    VerificationReviewRead,
    VerificationSubmission,
)


def test_snapshot_accepts_camel_case_keys():
    snapshot = ProfileSnapshot.model_validate(
        {
            "userId": "user-1",
            "createdAt": "2024-05-01T12:00:00Z",
            "verificationStatus": "rejected",
            "idImageUrl": "https://cdn.example.com/ids/1.jpg",
            "idType": "school_id",
            "rejectionReason": "Blurry photo",
        }
    )

    assert snapshot.user_id == "user-1"
    assert snapshot.is_confirmed
    assert snapshot.verification_status == VerificationStatus.rejected
    assert snapshot.id_type == IdType.school_id
    assert snapshot.has_uploaded_id


@pytest.mark.parametrize("blank", ["", "   ", None])
def test_blank_id_image_url_is_not_an_upload(blank):
    snapshot = ProfileSnapshot(user_id="user-1", id_image_url=blank)

    assert snapshot.id_image_url is None
    assert not snapshot.has_uploaded_id


def test_snapshot_without_created_at_is_not_confirmed():
    snapshot = ProfileSnapshot(user_id="user-1", nickname="Ada")

    assert not snapshot.is_confirmed
    assert snapshot.verification_status == VerificationStatus.pending


def test_from_record_uses_row_id():
    record = Profile(
        id="user-1",
        nickname="Ada",
        created_at=datetime(2024, 5, 1, 12, 0),
        is_admin=True,
    )

    snapshot = ProfileSnapshot.from_record(record)

    assert snapshot.user_id == "user-1"
    assert snapshot.is_admin
    assert snapshot.is_confirmed


def test_profile_read_serializes_utc():
    snapshot = ProfileSnapshot(
        user_id="user-1",
        created_at=datetime(2024, 5, 1, 12, 0, 30, 123456, tzinfo=UTC),
    )

    data = ProfileRead.from_snapshot(snapshot).model_dump(mode="json")

    assert data["created_at"] == "2024-05-01T12:00:30Z"
    assert data["verified_at"] is None
    assert "id_image_url" not in data


def test_review_read_includes_image_url():
    snapshot = ProfileSnapshot(
        user_id="user-1", id_image_url="https://cdn.example.com/ids/1.jpg"
    )

    review = VerificationReviewRead.from_snapshot(snapshot)

    assert review.id_image_url == "https://cdn.example.com/ids/1.jpg"
    assert review.has_uploaded_id


def test_submission_strips_url():
    submission = VerificationSubmission(
        id_image_url="  https://cdn.example.com/ids/1.jpg ", id_type="national_id"
    )

    assert submission.id_image_url == "https://cdn.example.com/ids/1.jpg"


def test_submission_rejects_unknown_id_type():
    with pytest.raises(ValidationError):
        VerificationSubmission(
            id_image_url="https://cdn.example.com/ids/1.jpg", id_type="passport"
        )
