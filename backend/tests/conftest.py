import os

# Settings are read once at import time; point them at throwaway values before the app is imported.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("REMINDERS_ENABLED", "0")
os.environ.setdefault("AUTH_SECRET", "unit-test-signing-key-0123456789abcdef")

from datetime import date, timedelta  # noqa: E402
from pathlib import Path  # noqa: E402
from typing import AsyncIterator, Callable, Iterable, List  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from tablebook.config import Settings, get_settings  # noqa: E402
from tablebook.database import create_schema  # noqa: E402
from tablebook.deps import get_identity_provider, get_session  # noqa: E402
from tablebook.domain.services import BookingRequest  # noqa: E402
from tablebook.infrastructure.identity import IdentityProviderError, StaffIdentity  # noqa: E402
from tablebook.main import app  # noqa: E402
from tablebook.models import Reservation  # noqa: E402
from tablebook.usecases.engine import ReservationEngine  # noqa: E402
from tablebook.utils.auth import CAP_READ, STAFF_CAPABILITIES, create_access_token  # noqa: E402

TODAY = date(2031, 3, 10)
BOOKING_DAY = TODAY + timedelta(days=7)


class FakeSender:
    """Records customer emails; ``fail_for`` holds reservation ids whose reminder dispatch fails."""

    def __init__(self) -> None:
        self.sent: List[int] = []
        self.fail_for: set[int] = set()
        self.raise_for: set[int] = set()
        self.confirmations: List[tuple[int, str]] = []
        self.cancellations: List[int] = []
        self.booking_mail_error: Exception | None = None

    async def send_reminder(self, reservation: Reservation) -> bool:
        if reservation.id in self.raise_for:
            raise RuntimeError("relay exploded")
        if reservation.id in self.fail_for:
            return False
        self.sent.append(reservation.id)
        return True

    async def send_confirmation(self, reservation: Reservation) -> bool:
        if self.booking_mail_error is not None:
            raise self.booking_mail_error
        self.confirmations.append((reservation.id, reservation.status.value))
        return True

    async def send_cancellation(self, reservation: Reservation) -> bool:
        if self.booking_mail_error is not None:
            raise self.booking_mail_error
        self.cancellations.append(reservation.id)
        return True


def make_request(**overrides: object) -> BookingRequest:
    values: dict[str, object] = {
        "customer_name": "Ana Garcia",
        "email": "ana@example.com",
        "phone": "+34 600 000 000",
        "date": BOOKING_DAY.isoformat(),
        "time": "19:00",
        "guests": 2,
        "special_requests": None,
    }
    values.update(overrides)
    return BookingRequest(**values)  # type: ignore[arg-type]


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url="sqlite+aiosqlite://",
        max_capacity_per_slot=40,
        auth_secret="unit-test-signing-key-0123456789abcdef",
        reminders_enabled=False,
    )


@pytest_asyncio.fixture
async def db_engine(tmp_path: Path) -> AsyncIterator[AsyncEngine]:
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
def sender() -> FakeSender:
    return FakeSender()


@pytest.fixture
def engine(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    sender: FakeSender,
) -> ReservationEngine:
    return ReservationEngine(settings, session_factory, sender, today=lambda: TODAY)


class FakeIdentityProvider:
    def __init__(self, identities: dict[str, StaffIdentity] | None = None, *, down: bool = False) -> None:
        self.identities = identities or {}
        self.down = down

    async def authenticate(self, username: str, password: str) -> StaffIdentity | None:
        if self.down:
            raise IdentityProviderError("unreachable")
        if password != "secret":
            return None
        return self.identities.get(username)


@pytest.fixture
def identity_provider() -> FakeIdentityProvider:
    return FakeIdentityProvider(
        {
            "maria": StaffIdentity(id="1", name="Maria", capabilities=STAFF_CAPABILITIES),
            "host": StaffIdentity(id="2", name="Host", capabilities=frozenset({CAP_READ})),
        }
    )


@pytest.fixture
def auth_headers(settings: Settings) -> Callable[..., dict[str, str]]:
    def build(capabilities: Iterable[str] = STAFF_CAPABILITIES, subject: str = "1") -> dict[str, str]:
        token = create_access_token(
            subject=subject,
            name="Maria",
            capabilities=capabilities,
            secret=settings.auth_secret,
            algorithm=settings.auth_algorithm,
        )
        return {"Authorization": f"Bearer {token}"}

    return build


@pytest_asyncio.fixture
async def client(
    engine: ReservationEngine,
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    identity_provider: FakeIdentityProvider,
) -> AsyncIterator[AsyncClient]:
    async def session_override() -> AsyncIterator[AsyncSession]:
        async with session_factory() as session:
            yield session

    app.state.engine = engine
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_session] = session_override
    app.dependency_overrides[get_identity_provider] = lambda: identity_provider
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()
        del app.state.engine
