"""Return leg of a browser-based OAuth sign-in.

The provider finishes the redirect before its session is guaranteed to be
queryable, so "no session yet" is polled away rather than treated as a
failure. Polling is bounded: a coordinator either succeeds, exhausts its
attempts, or is cancelled by a superseding event. It never polls again after
that.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum

from app.auth.exceptions import SessionNotReadyError
from app.auth.service import Session, SessionProvider
from app.core.exceptions import AppException, ProviderError
from app.core.retry import RetryCancelledError, SleepFn, fixed_interval, with_retry
from app.identity.exceptions import OAuthCallbackAlreadyHandledError

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_INTERVAL = 1.5  # seconds
# Upper bound on attempts * interval so the callback screen never spins longer.
MAX_POLL_WINDOW = 7.5  # seconds


class CallbackPhase(str, Enum):
    idle = "idle"
    polling = "polling"
    succeeded = "succeeded"
    exhausted = "exhausted"
    cancelled = "cancelled"


@dataclass(frozen=True)
class CallbackResult:
    """Outcome handed back to the callback screen.

    On failure the caller routes back to sign-in; ``phase`` tells an
    exhausted poll apart from one cancelled by a superseding event.
    """

    success: bool
    phase: CallbackPhase
    user: Session | None = None
    attempts: int = 0
    error: str | None = None


class OAuthCallbackCoordinator:
    """Polls SessionProvider.refresh_session until a session appears."""

    def __init__(
        self,
        provider: SessionProvider,
        *,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        interval: float = DEFAULT_INTERVAL,
        sleep: SleepFn = asyncio.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if interval < 0 or max_attempts * interval > MAX_POLL_WINDOW:
            raise ValueError(
                f"max_attempts * interval must not exceed {MAX_POLL_WINDOW}s"
            )
        self._provider = provider
        self._max_attempts = max_attempts
        self._interval = interval
        self._sleep = sleep
        self._cancelled = False
        self._phase = CallbackPhase.idle
        self._attempt = 0

    @property
    def phase(self) -> CallbackPhase:
        return self._phase

    @property
    def attempt(self) -> int:
        """Number of refresh calls made so far."""
        return self._attempt

    def cancel(self) -> None:
        """Stop polling before the next attempt; a late success is dropped."""
        self._cancelled = True

    def _should_stop(self) -> bool:
        return self._cancelled

    async def _poll_once(self) -> Session:
        self._attempt += 1
        logger.debug(
            "Polling for OAuth session (%s/%s)",
            self._attempt,
            self._max_attempts,
            extra={"attempt": self._attempt},
        )
        session = await self._provider.refresh_session()
        if session is None or not session.user_id:
            raise SessionNotReadyError()
        return session

    async def complete(self) -> CallbackResult:
        """Poll until a session is queryable or attempts run out.

        Raises:
            OAuthCallbackAlreadyHandledError: If called more than once
        """
        if self._phase is not CallbackPhase.idle:
            raise OAuthCallbackAlreadyHandledError()
        self._phase = CallbackPhase.polling

        try:
            session = await with_retry(
                self._poll_once,
                attempts=self._max_attempts,
                exceptions=(ProviderError,),
                delay=fixed_interval(self._interval),
                cancelled=self._should_stop,
                sleep=self._sleep,
            )
        except RetryCancelledError:
            return self._finish_cancelled()
        except AppException as e:
            self._phase = CallbackPhase.exhausted
            logger.warning(
                "OAuth callback gave up after %s attempt(s): %s",
                self._attempt,
                e.error_type,
                extra={"attempt": self._attempt},
            )
            return CallbackResult(
                success=False,
                phase=self._phase,
                attempts=self._attempt,
                error=e.message,
            )

        if self._should_stop():
            return self._finish_cancelled()

        self._phase = CallbackPhase.succeeded
        logger.info(
            "OAuth callback completed",
            extra={"user_id": session.user_id, "attempt": self._attempt},
        )
        return CallbackResult(
            success=True, phase=self._phase, user=session, attempts=self._attempt
        )

    def _finish_cancelled(self) -> CallbackResult:
        self._phase = CallbackPhase.cancelled
        logger.info("OAuth callback polling cancelled", extra={"attempt": self._attempt})
        return CallbackResult(
            success=False,
            phase=self._phase,
            attempts=self._attempt,
            error="Sign-in was superseded",
        )
