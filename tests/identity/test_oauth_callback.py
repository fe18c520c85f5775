"""Tests for app/identity/oauth_callback.py - OAuthCallbackCoordinator."""

import pytest

from app.auth.exceptions import OAuthFlowError, UserDisabledError
from app.core.exceptions import ProviderError
from app.identity.exceptions import OAuthCallbackAlreadyHandledError
from app.identity.oauth_callback import (
    MAX_POLL_WINDOW,
    CallbackPhase,
    OAuthCallbackCoordinator,
)


@pytest.fixture
def coordinator(fake_provider, fake_sleep):
    return OAuthCallbackCoordinator(fake_provider, sleep=fake_sleep)


class TestConfiguration:
    def test_defaults_fit_the_poll_window(self, coordinator):
        assert coordinator.phase is CallbackPhase.idle
        assert coordinator._max_attempts * coordinator._interval <= MAX_POLL_WINDOW

    @pytest.mark.parametrize(
        ("max_attempts", "interval"), [(0, 1.5), (6, 1.5), (5, 2.0), (3, -1.0)]
    )
    def test_rejects_unbounded_configuration(
        self, fake_provider, max_attempts, interval
    ):
        with pytest.raises(ValueError):
            OAuthCallbackCoordinator(
                fake_provider, max_attempts=max_attempts, interval=interval
            )


class TestComplete:
    @pytest.mark.asyncio
    async def test_immediate_session_does_not_sleep(
        self, coordinator, fake_provider, fake_sleep, make_session
    ):
        session = make_session()
        fake_provider.session = session

        result = await coordinator.complete()

        assert result.success is True
        assert result.user == session
        assert result.attempts == 1
        assert result.phase is CallbackPhase.succeeded
        assert fake_sleep.calls == []
        assert coordinator.phase is CallbackPhase.succeeded

    @pytest.mark.asyncio
    async def test_session_on_fifth_attempt(
        self, coordinator, fake_provider, fake_sleep, make_session
    ):
        fake_provider.refresh_results = [None, None, None, None, make_session()]

        result = await coordinator.complete()

        assert result.success is True
        assert result.attempts == 5
        assert fake_provider.refresh_calls == 5
        # Four intervals between five attempts.
        assert fake_sleep.calls == [1.5] * 4
        assert fake_sleep.elapsed == pytest.approx(6.0)

    @pytest.mark.asyncio
    async def test_never_a_sixth_attempt(self, coordinator, fake_provider, fake_sleep):
        result = await coordinator.complete()

        assert result.success is False
        assert result.user is None
        assert result.attempts == 5
        assert result.error == "Session is not available yet"
        assert result.phase is CallbackPhase.exhausted
        assert fake_provider.refresh_calls == 5
        assert len(fake_sleep.calls) == 4
        assert coordinator.phase is CallbackPhase.exhausted

    @pytest.mark.asyncio
    async def test_transient_provider_errors_are_polled_through(
        self, coordinator, fake_provider, make_session
    ):
        fake_provider.refresh_results = [ProviderError(), None, make_session()]

        result = await coordinator.complete()

        assert result.success is True
        assert result.attempts == 3

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [OAuthFlowError(), UserDisabledError()])
    async def test_non_retryable_error_ends_polling(
        self, coordinator, fake_provider, fake_sleep, error
    ):
        fake_provider.refresh_results = [error]

        result = await coordinator.complete()

        assert result.success is False
        assert result.attempts == 1
        assert result.error == error.message
        assert result.phase is CallbackPhase.exhausted
        assert fake_sleep.calls == []
        assert coordinator.phase is CallbackPhase.exhausted

    @pytest.mark.asyncio
    async def test_session_without_user_is_not_ready(
        self, coordinator, fake_provider, make_session
    ):
        fake_provider.refresh_results = [make_session(user_id=""), make_session()]

        result = await coordinator.complete()

        assert result.success is True
        assert result.attempts == 2

    @pytest.mark.asyncio
    async def test_completes_only_once(self, coordinator, fake_provider, make_session):
        fake_provider.session = make_session()
        await coordinator.complete()

        with pytest.raises(OAuthCallbackAlreadyHandledError):
            await coordinator.complete()


class TestCancel:
    @pytest.mark.asyncio
    async def test_cancel_stops_before_next_attempt(
        self, coordinator, fake_provider
    ):
        async def refresh_and_supersede():
            fake_provider.refresh_calls += 1
            coordinator.cancel()
            return None

        fake_provider.refresh_session = refresh_and_supersede

        result = await coordinator.complete()

        assert result.success is False
        assert fake_provider.refresh_calls == 1
        assert coordinator.phase is CallbackPhase.cancelled

    @pytest.mark.asyncio
    async def test_late_success_after_cancel_is_dropped(
        self, coordinator, fake_provider, make_session
    ):
        session = make_session()

        async def refresh_and_supersede():
            coordinator.cancel()
            return session

        fake_provider.refresh_session = refresh_and_supersede

        result = await coordinator.complete()

        assert result.success is False
        assert result.user is None
        assert coordinator.phase is CallbackPhase.cancelled

    @pytest.mark.asyncio
    async def test_cancel_before_complete(self, coordinator, fake_provider):
        coordinator.cancel()

        result = await coordinator.complete()

        assert result.success is False
        assert result.phase is CallbackPhase.cancelled
        assert result.error == "Sign-in was superseded"
        assert result.attempts == 0
        assert fake_provider.refresh_calls == 0
