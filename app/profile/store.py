"""Profile persistence.

ProfileStore is the protocol the identity resolver consumes. SqlProfileStore
backs it with the SQLModel ``profiles`` table and also carries the write paths
used by the HTTP surface (profile edits, ID submission, admin review). Every
write that changes verification fields is broadcast to ``on_profile_changed``
listeners, which is how a resolver learns about an out-of-band approval.
"""

import contextlib
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from functools import lru_cache
from typing import Protocol

from sqlalchemy import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from app.profile.exceptions import (
    ProfileNotConfirmedError,
    ProfileNotFoundError,
    ProfileStoreError,
    VerificationStateError,
)
from app.profile.models import IdType, Profile, VerificationStatus
from app.profile.schemas import ProfileSnapshot

logger = logging.getLogger(__name__)

ProfileListener = Callable[[ProfileSnapshot], None]


class ProfileStore(Protocol):
    """Protocol for the application profile source."""

    async def fetch(self, user_id: str) -> ProfileSnapshot | None:
        """Return the profile for ``user_id`` or None when none exists.

        Raises:
            ProfileStoreError: If the store cannot be reached
        """
        ...

    async def ensure_profile_exists(
        self,
        user_id: str,
        nickname: str,
        phone: str | None = None,
        email: str | None = None,
    ) -> ProfileSnapshot:
        """Idempotent create-or-fetch; the result is always confirmed.

        Raises:
            ProfileStoreError: If the row could not be created or read back
        """
        ...

    def on_profile_changed(self, listener: ProfileListener) -> Callable[[], None]:
        """Register a profile-changed listener; returns an unsubscribe callable."""
        ...


class SqlProfileStore:
    """ProfileStore backed by the ``profiles`` table."""

    def __init__(self, engine: Engine):
        self._engine = engine
        self._listeners: list[ProfileListener] = []

    def on_profile_changed(self, listener: ProfileListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, snapshot: ProfileSnapshot) -> None:
        logger.info(
            "Profile changed",
            extra={
                "user_id": snapshot.user_id,
                "state": snapshot.verification_status.value,
            },
        )
        for listener in list(self._listeners):
            listener(snapshot)

    # -- reads -------------------------------------------------------------

    async def fetch(self, user_id: str) -> ProfileSnapshot | None:
        try:
            with Session(self._engine) as session:
                record = session.get(Profile, user_id)
                return ProfileSnapshot.from_record(record) if record else None
        except SQLAlchemyError as e:
            raise ProfileStoreError(f"Failed to fetch profile: {type(e).__name__}") from e

    async def list_by_verification_status(
        self, status: VerificationStatus | None = None
    ) -> list[ProfileSnapshot]:
        statement = select(Profile).order_by(Profile.created_at)
        if status is not None:
            statement = statement.where(Profile.verification_status == status)
        try:
            with Session(self._engine) as session:
                return [ProfileSnapshot.from_record(r) for r in session.exec(statement)]
        except SQLAlchemyError as e:
            raise ProfileStoreError(f"Failed to list profiles: {type(e).__name__}") from e

    # -- writes ------------------------------------------------------------

    async def ensure_profile_exists(
        self,
        user_id: str,
        nickname: str,
        phone: str | None = None,
        email: str | None = None,
    ) -> ProfileSnapshot:
        try:
            with Session(self._engine) as session:
                record = session.get(Profile, user_id)
                if record is None:
                    session.add(
                        Profile(id=user_id, nickname=nickname, phone=phone, email=email)
                    )
                    try:
                        session.commit()
                    except IntegrityError:
                        # Another writer created the row first.
                        session.rollback()
                    else:
                        logger.info("Profile created", extra={"user_id": user_id})
                    record = session.get(Profile, user_id)
                snapshot = ProfileSnapshot.from_record(record) if record else None
        except SQLAlchemyError as e:
            raise ProfileStoreError(
                f"Failed to create profile: {type(e).__name__}"
            ) from e

        if snapshot is None or not snapshot.is_confirmed:
            raise ProfileNotConfirmedError()
        return snapshot

    async def update_profile(
        self,
        user_id: str,
        *,
        nickname: str | None = None,
        phone: str | None = None,
    ) -> ProfileSnapshot:
        """Update the user-editable fields.

        Raises:
            ProfileNotFoundError: If the profile does not exist
        """
        changes = {"nickname": nickname, "phone": phone}
        return self._write(
            user_id, {key: value for key, value in changes.items() if value is not None}
        )

    async def submit_verification(
        self, user_id: str, id_image_url: str, id_type: IdType
    ) -> ProfileSnapshot:
        """Record an uploaded ID document and put the profile back in review.

        Raises:
            ProfileNotFoundError: If the profile does not exist
            VerificationStateError: If the profile is already approved
        """
        snapshot = self._write(
            user_id,
            {
                "id_image_url": id_image_url,
                "id_type": id_type,
                "verification_status": VerificationStatus.pending,
                "rejection_reason": None,
                "verified_at": None,
            },
            allowed_from={VerificationStatus.pending, VerificationStatus.rejected},
        )
        self._notify(snapshot)
        return snapshot

    async def approve(self, user_id: str) -> ProfileSnapshot:
        """Approve a pending verification.

        Raises:
            ProfileNotFoundError: If the profile does not exist
            VerificationStateError: If no ID was submitted or it is not pending
        """
        snapshot = self._write(
            user_id,
            {
                "verification_status": VerificationStatus.approved,
                "rejection_reason": None,
                "verified_at": datetime.now(UTC).replace(microsecond=0),
            },
            allowed_from={VerificationStatus.pending},
            require_id=True,
        )
        self._notify(snapshot)
        return snapshot

    async def reject(self, user_id: str, reason: str) -> ProfileSnapshot:
        """Reject a pending verification with a reason shown to the user.

        Raises:
            ProfileNotFoundError: If the profile does not exist
            VerificationStateError: If no ID was submitted or it is not pending
        """
        snapshot = self._write(
            user_id,
            {
                "verification_status": VerificationStatus.rejected,
                "rejection_reason": reason.strip(),
                "verified_at": None,
            },
            allowed_from={VerificationStatus.pending},
            require_id=True,
        )
        self._notify(snapshot)
        return snapshot

    def _write(
        self,
        user_id: str,
        changes: dict[str, object],
        *,
        allowed_from: set[VerificationStatus] | None = None,
        require_id: bool = False,
    ) -> ProfileSnapshot:
        try:
            with Session(self._engine) as session:
                record = session.get(Profile, user_id)
                if record is None:
                    raise ProfileNotFoundError()
                status = record.verification_status
                if allowed_from is not None and status not in allowed_from:
                    raise VerificationStateError(
                        f"Profile verification is {status.value}"
                    )
                if require_id and not (record.id_image_url or "").strip():
                    raise VerificationStateError("No ID document was submitted")
                for key, value in changes.items():
                    setattr(record, key, value)
                session.add(record)
                session.commit()
                session.refresh(record)
                return ProfileSnapshot.from_record(record)
        except SQLAlchemyError as e:
            raise ProfileStoreError(f"Failed to update profile: {type(e).__name__}") from e


@lru_cache
def get_profile_store() -> SqlProfileStore:
    """Get the process-wide profile store bound to the application engine."""
    from app.db.engine import engine

    return SqlProfileStore(engine)
