"""Identity resolver.

Reconciles three independently updating sources into one
ResolvedIdentityState: the session provider, the profile store, and the
out-of-band verification review that reaches us through profile-changed
notifications.

Ordering rules:
- every event (session change, profile notification, resolve call that starts
  a new resolution, manual retry) takes the next generation number
- a result is published only if its generation is not older than the one
  already published, so a slow resolution never overwrites a newer state
- resolutions for the same user coalesce onto one in-flight task, and while a
  provisioning sequence runs for a user no second fetch or sequence is started;
  a task started before the last supersession is never joined
- sign-out, a user switch and a confirmed-profile notification supersede any
  running provisioning sequence; sign-out also cancels OAuth polling
"""

import asyncio
import contextlib
import logging
from collections.abc import Callable
from typing import Any, TypeVar

from app.auth.service import (
    Session,
    SessionEvent,
    SessionProvider,
    get_session_provider,
)
from app.core.exceptions import AppException
from app.core.retry import RetryCancelledError, SleepFn, linear_backoff, with_retry
from app.core.settings import Settings, get_settings
from app.identity.exceptions import IdentityNotInitializedError
from app.identity.oauth_callback import CallbackResult, OAuthCallbackCoordinator
from app.identity.states import (
    Anonymous,
    ProvisioningFailed,
    ProvisioningProfile,
    ResolvedIdentityState,
    derive_nickname,
    state_from_profile,
)
from app.profile.exceptions import ProfileNotConfirmedError, ProfileStoreError
from app.profile.schemas import ProfileSnapshot
from app.profile.store import ProfileStore, get_profile_store

logger = logging.getLogger(__name__)

StateListener = Callable[[ResolvedIdentityState], None]
T = TypeVar("T")
Tracked = tuple[int, asyncio.Task[T]]


class IdentityResolver:
    """Owns the current ResolvedIdentityState for one client.

    Usage:
        resolver = IdentityResolver(provider, store)
        await resolver.start()
        unsubscribe = resolver.subscribe_to_identity_state(render)
        ...
        await resolver.stop()
    """

    def __init__(
        self,
        provider: SessionProvider,
        store: ProfileStore,
        *,
        provisioning_attempts: int = 3,
        provisioning_backoff: float = 1.0,
        oauth_poll_attempts: int = 5,
        oauth_poll_interval: float = 1.5,
        recheck_interval: float = 0.0,
        sleep: SleepFn = asyncio.sleep,
    ):
        self._provider = provider
        self._store = store
        self._provisioning_attempts = provisioning_attempts
        self._provisioning_backoff = provisioning_backoff
        self._oauth_poll_attempts = oauth_poll_attempts
        self._oauth_poll_interval = oauth_poll_interval
        self._recheck_interval = recheck_interval
        self._sleep = sleep

        self._started = False
        self._state: ResolvedIdentityState = Anonymous()
        self._session: Session | None = None
        self._generation = 0
        self._published_generation = 0
        self._superseded_before = 0
        self._listeners: list[StateListener] = []
        self._unsubscribers: list[Callable[[], None]] = []

        # user_id -> (generation, task); entries older than _superseded_before
        # are treated as absent.
        self._resolutions: dict[str, Tracked[ResolvedIdentityState]] = {}
        self._provisioning: dict[str, Tracked[None]] = {}
        self._failed: dict[str, ProvisioningFailed] = {}
        self._callback: asyncio.Task[CallbackResult] | None = None
        self._coordinator: OAuthCallbackCoordinator | None = None
        self._recheck_task: asyncio.Task[None] | None = None
        self._background: set[asyncio.Task[Any]] = set()

    @classmethod
    def from_settings(
        cls,
        provider: SessionProvider,
        store: ProfileStore,
        settings: Settings,
        **kwargs: Any,
    ) -> "IdentityResolver":
        return cls(
            provider,
            store,
            provisioning_attempts=settings.provisioning_max_attempts,
            provisioning_backoff=settings.provisioning_backoff,
            oauth_poll_attempts=settings.oauth_poll_max_attempts,
            oauth_poll_interval=settings.oauth_poll_interval,
            recheck_interval=settings.identity_recheck_seconds,
            **kwargs,
        )

    # -- lifecycle ---------------------------------------------------------

    async def start(self) -> ResolvedIdentityState:
        """Subscribe to the provider and store, then resolve the current session."""
        if self._started:
            return self._state
        self._started = True
        self._unsubscribers = [
            self._provider.on_session_changed(self._on_session_changed),
            self._store.on_profile_changed(self._on_profile_changed),
        ]
        if self._recheck_interval > 0:
            self._recheck_task = asyncio.create_task(self._recheck_loop())

        try:
            session = await self._provider.get_session()
        except AppException as e:
            logger.warning("Could not read session on start: %s", e.error_type)
            session = None
        return await self.resolve(session)

    async def stop(self) -> None:
        """Unsubscribe, cancel every running task and drop per-run state.

        A later start() begins from Anonymous with no listeners and no
        remembered provisioning failures.
        """
        if not self._started:
            return
        self._started = False
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        if self._coordinator is not None:
            self._coordinator.cancel()

        tasks = [
            *(task for _, task in self._resolutions.values()),
            *(task for _, task in self._provisioning.values()),
            *self._background,
        ]
        if self._recheck_task is not None:
            tasks.append(self._recheck_task)
        if self._callback is not None:
            tasks.append(self._callback)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        self._supersede()
        self._published_generation = self._generation
        self._resolutions.clear()
        self._provisioning.clear()
        self._failed.clear()
        self._listeners.clear()
        self._session = None
        self._state = Anonymous()
        self._recheck_task = None
        self._callback = None
        self._coordinator = None

    def _require_started(self) -> None:
        if not self._started:
            raise IdentityNotInitializedError()

    # -- exposed operations ------------------------------------------------

    def get_current_identity_state(self) -> ResolvedIdentityState:
        self._require_started()
        return self._state

    def subscribe_to_identity_state(
        self, listener: StateListener
    ) -> Callable[[], None]:
        """Call ``listener`` on every state transition; returns an unsubscribe."""
        self._require_started()
        self._listeners.append(listener)

        def unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return unsubscribe

    async def resolve(self, session: Session | None) -> ResolvedIdentityState:
        """Resolve the identity state for ``session``.

        Returns without waiting for provisioning; a missing profile yields
        ProvisioningProfile and the final state is published later.
        """
        self._require_started()

        if session is None:
            generation = self._supersede()
            self._session = None
            self._failed.clear()
            self._publish(Anonymous(), generation)
            return self._state

        user_id = session.user_id
        in_flight = self._live(self._resolutions, user_id)
        if in_flight is not None:
            self._session = session
            return await asyncio.shield(in_flight)

        if self._session is not None and self._session.user_id != user_id:
            generation = self._supersede()
            self._failed.clear()
        else:
            generation = self._next_generation()
        self._session = session

        task = asyncio.create_task(self._resolve_user(session, generation))
        self._resolutions[user_id] = (generation, task)
        task.add_done_callback(
            lambda done: self._forget(self._resolutions, user_id, done)
        )
        return await asyncio.shield(task)

    async def retry_provisioning(self) -> ResolvedIdentityState:
        """Manual retry offered from the ProvisioningFailed screen.

        No-op unless the current state is ProvisioningFailed.
        """
        self._require_started()
        session = self._session
        if session is None or not isinstance(self._state, ProvisioningFailed):
            return self._state

        self._failed.pop(session.user_id, None)
        generation = self._next_generation()
        logger.info("Manual provisioning retry", extra={"user_id": session.user_id})
        self._start_provisioning(session, generation)
        self._publish(ProvisioningProfile(), generation)
        return self._state

    async def complete_oauth_callback(self) -> CallbackResult:
        """Poll for the session after an OAuth redirect and resolve it.

        Concurrent calls share one polling sequence.
        """
        self._require_started()
        if self._callback is not None and not self._callback.done():
            return await asyncio.shield(self._callback)

        self._coordinator = OAuthCallbackCoordinator(
            self._provider,
            max_attempts=self._oauth_poll_attempts,
            interval=self._oauth_poll_interval,
            sleep=self._sleep,
        )
        self._callback = asyncio.create_task(self._run_callback(self._coordinator))
        return await asyncio.shield(self._callback)

    async def wait_until_idle(self) -> ResolvedIdentityState:
        """Wait for every in-flight resolution and provisioning sequence."""
        while True:
            pending = [
                task
                for task in (
                    *(task for _, task in self._resolutions.values()),
                    *(task for _, task in self._provisioning.values()),
                    *self._background,
                )
                if not task.done()
            ]
            if not pending:
                return self._state
            await asyncio.gather(*pending, return_exceptions=True)

    # -- internals ---------------------------------------------------------

    def _next_generation(self) -> int:
        self._generation += 1
        return self._generation

    def _supersede(self) -> int:
        generation = self._next_generation()
        self._superseded_before = generation
        return generation

    def _is_superseded(self, user_id: str, generation: int) -> bool:
        return (
            not self._started
            or generation < self._superseded_before
            or self._session is None
            or self._session.user_id != user_id
        )

    def _live(
        self, tasks: dict[str, Tracked[Any]], user_id: str
    ) -> asyncio.Task[Any] | None:
        """In-flight task for ``user_id`` that no later event superseded."""
        entry = tasks.get(user_id)
        if entry is None:
            return None
        generation, task = entry
        if task.done() or generation < self._superseded_before:
            return None
        return task

    @staticmethod
    def _forget(
        tasks: dict[str, Tracked[Any]], user_id: str, done: asyncio.Task[Any]
    ) -> None:
        entry = tasks.get(user_id)
        if entry is not None and entry[1] is done:
            del tasks[user_id]

    def _publish(self, state: ResolvedIdentityState, generation: int) -> bool:
        if generation < self._published_generation:
            logger.debug(
                "Discarding stale %s",
                state.kind,
                extra={"state": state.kind, "generation": generation},
            )
            return False
        self._published_generation = generation
        if state == self._state:
            return True

        self._state = state
        logger.info(
            "Identity state changed to %s",
            state.kind,
            extra={
                "state": state.kind,
                "generation": generation,
                "user_id": self._session.user_id if self._session else None,
            },
        )
        for listener in list(self._listeners):
            listener(state)
        return True

    async def _resolve_user(
        self, session: Session, generation: int
    ) -> ResolvedIdentityState:
        user_id = session.user_id
        if self._live(self._provisioning, user_id) is not None:
            # The running sequence publishes the outcome.
            return self._state
        if user_id in self._failed:
            self._publish(self._failed[user_id], generation)
            return self._state

        try:
            profile = await self._store.fetch(user_id)
        except ProfileStoreError as e:
            logger.warning(
                "Profile fetch failed: %s", e.error_type, extra={"user_id": user_id}
            )
            profile = None

        state = state_from_profile(profile)
        if isinstance(state, ProvisioningProfile) and not self._is_superseded(
            user_id, generation
        ):
            self._start_provisioning(session, generation)
        self._publish(state, generation)
        return self._state

    def _start_provisioning(self, session: Session, generation: int) -> None:
        user_id = session.user_id
        if self._live(self._provisioning, user_id) is not None:
            return
        task = asyncio.create_task(self._provision(session, generation))
        self._provisioning[user_id] = (generation, task)
        task.add_done_callback(
            lambda done: self._forget(self._provisioning, user_id, done)
        )

    async def _provision(self, session: Session, generation: int) -> None:
        user_id = session.user_id
        nickname = derive_nickname(session)
        attempts = 0

        async def ensure() -> ProfileSnapshot:
            nonlocal attempts
            attempts += 1
            profile = await self._store.ensure_profile_exists(
                user_id, nickname, session.phone, session.email
            )
            if not profile.is_confirmed:
                raise ProfileNotConfirmedError()
            return profile

        try:
            profile = await with_retry(
                ensure,
                attempts=self._provisioning_attempts,
                exceptions=(ProfileStoreError,),
                delay=linear_backoff(self._provisioning_backoff),
                cancelled=lambda: self._is_superseded(user_id, generation),
                sleep=self._sleep,
            )
        except RetryCancelledError as e:
            logger.info(
                "Provisioning superseded after %s attempt(s)",
                e.attempts,
                extra={"user_id": user_id, "generation": generation},
            )
            return
        except ProfileStoreError as e:
            if self._is_superseded(user_id, generation):
                return
            failed = ProvisioningFailed(reason=e.message, attempts=attempts)
            self._failed[user_id] = failed
            logger.warning(
                "Provisioning failed after %s attempt(s)",
                attempts,
                extra={"user_id": user_id, "attempt": attempts},
            )
            self._publish(failed, generation)
            return

        if self._is_superseded(user_id, generation):
            return
        self._publish(state_from_profile(profile), generation)

    async def _run_callback(
        self, coordinator: OAuthCallbackCoordinator
    ) -> CallbackResult:
        result = await coordinator.complete()
        if result.success and result.user is not None:
            await self.resolve(result.user)
        return result

    async def _handle_session_event(
        self, event: SessionEvent, session: Session | None
    ) -> None:
        if event is SessionEvent.signed_in and session is not None:
            self._failed.pop(session.user_id, None)
        await self.resolve(session)

    def _on_session_changed(self, event: SessionEvent, session: Session | None) -> None:
        if not self._started:
            return
        if event is SessionEvent.signed_out and self._coordinator is not None:
            self._coordinator.cancel()
        task = asyncio.create_task(self._handle_session_event(event, session))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def _on_profile_changed(self, profile: ProfileSnapshot) -> None:
        """Real-time verification change for the signed-in user."""
        if not self._started or self._session is None:
            return
        if profile.user_id != self._session.user_id or not profile.is_confirmed:
            return
        self._failed.pop(profile.user_id, None)
        self._publish(state_from_profile(profile), self._supersede())

    async def _recheck_loop(self) -> None:
        while True:
            await self._sleep(self._recheck_interval)
            try:
                session = await self._provider.get_session()
                await self.resolve(session)
            except AppException as e:
                logger.warning("Periodic identity recheck failed: %s", e.error_type)


def create_identity_resolver(**kwargs: Any) -> IdentityResolver:
    """Build a resolver over the Firebase session provider and the SQL store.

    Not cached: each client owns its resolver and its lifecycle.
    """
    return IdentityResolver.from_settings(
        get_session_provider(), get_profile_store(), get_settings(), **kwargs
    )
