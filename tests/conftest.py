import asyncio
import contextlib
import inspect
import os
from datetime import UTC, datetime
from unittest.mock import MagicMock

# Settings are read at import time by app.db.engine; provide test values first.
os.environ.setdefault("ENV_NAME", "development")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SESSION_SECRET_KEY", "test-secret-key")
os.environ.setdefault("ADMIN_USERNAME", "admin")
os.environ.setdefault("ADMIN_PASSWORD", "admin-password")
os.environ.setdefault("FIREBASE_API_KEY", "test-api-key")
os.environ.setdefault("LOG_REQUESTS", "false")

import anyio  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlmodel import Session, SQLModel, create_engine  # noqa: E402
from sqlmodel.pool import StaticPool  # noqa: E402

from app.auth.service import (  # noqa: E402
    FirebaseTokenVerifier,
    SessionEvent,
    TokenClaims,
    get_token_verifier,
)
from app.auth.service import Session as AuthSession  # noqa: E402
from app.db.engine import get_session  # noqa: E402
from app.main import app  # noqa: E402
from app.profile.exceptions import ProfileStoreError  # noqa: E402
from app.profile.models import Profile, VerificationStatus  # noqa: E402
from app.profile.schemas import ProfileSnapshot  # noqa: E402
from app.profile.store import SqlProfileStore, get_profile_store  # noqa: E402


def pytest_configure(config: pytest.Config) -> None:
    # Tests use @pytest.mark.asyncio, but we intentionally rely on anyio.
    config.addinivalue_line(
        "markers",
        "asyncio: run async tests using anyio (project-local hook)",
    )


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    """Run @pytest.mark.asyncio tests with anyio.

    This avoids adding an external pytest-asyncio dependency.
    """
    if pyfuncitem.get_closest_marker("asyncio") is None:
        return None

    test_func = pyfuncitem.obj
    if not inspect.iscoroutinefunction(test_func):
        return None

    funcargs = {
        name: pyfuncitem.funcargs[name] for name in pyfuncitem._fixtureinfo.argnames
    }

    async def _run_async_test() -> None:
        await test_func(**funcargs)

    anyio.run(_run_async_test)
    return True


# -- in-memory collaborators ------------------------------------------------


def confirmed_profile(
    user_id: str = "user-1",
    status: VerificationStatus = VerificationStatus.pending,
    **fields,
) -> ProfileSnapshot:
    """Profile snapshot backed by a (pretend) durable row."""
    return ProfileSnapshot(
        user_id=user_id,
        created_at=datetime(2024, 5, 1, 12, 0, tzinfo=UTC),
        verification_status=status,
        **fields,
    )


class FakeSessionProvider:
    """Scriptable SessionProvider.

    ``refresh_results`` is consumed one item per refresh_session call; an
    exception item is raised. Once exhausted, the current session is returned.
    """

    def __init__(self, session: AuthSession | None = None):
        self.session = session
        self.refresh_results: list[AuthSession | Exception | None] = []
        self.refresh_calls = 0
        self.listeners: list = []

    async def get_session(self) -> AuthSession | None:
        return self.session

    async def refresh_session(self) -> AuthSession | None:
        self.refresh_calls += 1
        if self.refresh_results:
            result = self.refresh_results.pop(0)
            if isinstance(result, Exception):
                raise result
            return result
        return self.session

    def on_session_changed(self, listener):
        self.listeners.append(listener)

        def unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self.listeners.remove(listener)

        return unsubscribe

    def emit(self, event: SessionEvent, session: AuthSession | None) -> None:
        self.session = session
        for listener in list(self.listeners):
            listener(event, session)

    async def sign_in_with_oauth(self, provider_id: str | None = None) -> str:
        provider_id = provider_id or "google.com"
        return f"https://accounts.example.com/o/oauth2/auth?provider={provider_id}"

    async def sign_out(self) -> None:
        self.emit(SessionEvent.signed_out, None)


class FakeProfileStore:
    """Scriptable ProfileStore.

    ``fetch_failures`` makes the next N fetches raise ProfileStoreError.
    ``ensure_outcomes`` is consumed one item per ensure_profile_exists call:
    an exception is raised, a snapshot is stored and returned, None falls
    through to the default create-or-fetch. Gates, when set, block the call
    until released.
    """

    def __init__(self):
        self.profiles: dict[str, ProfileSnapshot] = {}
        self.fetch_calls = 0
        self.fetch_failures = 0
        self.fetch_gate: asyncio.Event | None = None
        self.ensure_calls: list[tuple[str, str, str | None, str | None]] = []
        self.ensure_outcomes: list[ProfileSnapshot | Exception | None] = []
        self.ensure_gate: asyncio.Event | None = None
        self.listeners: list = []

    async def fetch(self, user_id: str) -> ProfileSnapshot | None:
        self.fetch_calls += 1
        if self.fetch_gate is not None:
            await self.fetch_gate.wait()
        if self.fetch_failures:
            self.fetch_failures -= 1
            raise ProfileStoreError()
        return self.profiles.get(user_id)

    async def ensure_profile_exists(
        self,
        user_id: str,
        nickname: str,
        phone: str | None = None,
        email: str | None = None,
    ) -> ProfileSnapshot:
        self.ensure_calls.append((user_id, nickname, phone, email))
        if self.ensure_gate is not None:
            await self.ensure_gate.wait()
        if self.ensure_outcomes:
            outcome = self.ensure_outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            if outcome is not None:
                self.profiles[user_id] = outcome
                return outcome
        profile = self.profiles.get(user_id)
        if profile is None or not profile.is_confirmed:
            profile = confirmed_profile(
                user_id, nickname=nickname, phone=phone, email=email
            )
        self.profiles[user_id] = profile
        return profile

    def on_profile_changed(self, listener):
        self.listeners.append(listener)

        def unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self.listeners.remove(listener)

        return unsubscribe

    def push(self, profile: ProfileSnapshot) -> None:
        """Simulate an out-of-band change such as an admin review."""
        self.profiles[profile.user_id] = profile
        for listener in list(self.listeners):
            listener(profile)


class FakeSleep:
    """Records requested delays and returns without waiting.

    With ``gate`` set, every sleep blocks until the gate is released.
    """

    def __init__(self):
        self.calls: list[float] = []
        self.gate: asyncio.Event | None = None

    @property
    def elapsed(self) -> float:
        return sum(self.calls)

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)


async def settle(rounds: int = 10) -> None:
    """Let scheduled tasks run without advancing any fake clock."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def fake_provider() -> FakeSessionProvider:
    return FakeSessionProvider()


@pytest.fixture
def fake_store() -> FakeProfileStore:
    return FakeProfileStore()


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
def make_session():
    def _make(
        user_id: str = "user-1",
        email: str | None = "ada.lovelace@example.com",
        **metadata,
    ) -> AuthSession:
        return AuthSession(
            user_id=user_id,
            email=email,
            id_token=f"id-token-{user_id}",
            refresh_token=f"refresh-token-{user_id}",
            provider_metadata=metadata,
        )

    return _make


@pytest.fixture
def settle_loop():
    return settle


@pytest.fixture
def profile_factory():
    return confirmed_profile


# -- database / HTTP ---------------------------------------------------------


@pytest.fixture(name="engine")
def engine_fixture():
    """In-memory SQLite engine shared across connections."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture(name="session")
def session_fixture(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture(name="profile_store")
def profile_store_fixture(engine) -> SqlProfileStore:
    return SqlProfileStore(engine)


@pytest.fixture(name="add_profile")
def add_profile_fixture(session: Session):
    """Insert a profile row and return it."""

    def _add(user_id: str = "user-1", **fields) -> Profile:
        profile = Profile(id=user_id, **fields)
        session.add(profile)
        session.commit()
        session.refresh(profile)
        return profile

    return _add


@pytest.fixture(name="mock_verifier")
def mock_verifier_fixture():
    """Token verifier that maps "token-<uid>" to claims for <uid>."""
    verifier = MagicMock(spec=FirebaseTokenVerifier)

    def verify(token: str) -> TokenClaims:
        uid = token.removeprefix("token-")
        return TokenClaims(uid=uid, email=f"{uid}@example.com")

    verifier.verify_id_token.side_effect = verify
    return verifier


@pytest.fixture(name="client")
def client_fixture(
    session: Session, profile_store: SqlProfileStore, mock_verifier: MagicMock
):
    """Test client with the database, store and verifier overridden."""

    def get_session_override():
        return session

    app.dependency_overrides[get_session] = get_session_override
    app.dependency_overrides[get_profile_store] = lambda: profile_store
    app.dependency_overrides[get_token_verifier] = lambda: mock_verifier

    client = TestClient(app, raise_server_exceptions=False)
    yield client

    app.dependency_overrides.clear()


def auth_headers(user_id: str) -> dict[str, str]:
    return {"Authorization": f"Bearer token-{user_id}"}


@pytest.fixture
def headers_for():
    return auth_headers
