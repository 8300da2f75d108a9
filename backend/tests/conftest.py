"""Pytest configuration and fixtures for the onboarding service tests.

Provides reusable fixtures for wizard state, progress gateways (memory,
SQLite, Redis), fake backend collaborators and the HTTP client.
"""

import copy
import os

# Settings are read at import time; keep tests off real Postgres
os.environ.setdefault("PROGRESS_BACKEND", "memory")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("DEBUG", "false")

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from clinic_onboarding.config import settings
from clinic_onboarding.database import Base
from clinic_onboarding.deps import get_completion_client, get_gateway, get_validation_gate
from clinic_onboarding.main import app
from clinic_onboarding.middleware.exceptions import CompletionFailedError
from clinic_onboarding.schemas.completion import OnboardingResult
from clinic_onboarding.wizard import catalog
from clinic_onboarding.wizard.persistence import InMemoryProgressGateway
from clinic_onboarding.wizard.session import WizardSession
from clinic_onboarding.wizard.state import ProgressState
from clinic_onboarding.wizard.validation import CheckResult, ValidationGate

# ── Sample form data ─────────────────────────────────────────────

FORM_DATA = {
    "company": {
        "overview": {"name": "Acme Health", "ceo_name": "Dr. Lina Haddad", "year_established": 2010},
        "contact": {
            "email": "info@acme.test",
            "phone_numbers": [{"number": "+966500000001"}],
            "address": {"street": "1 King Fahd Rd", "city": "Riyadh", "country": "SA"},
            "social_media_links": {"facebook": "https://facebook.com/acme", "twitter": ""},
        },
        "legal": {"vat_number": "300000000000003", "cr_number": "1010000000"},
    },
    "complex": {
        "overview": {"name": "North Complex", "departments": [{"name": "Cardiology"}]},
        "contact": {"email": "north@acme.test"},
        "legal": {"vat_number": "300000000000004"},
        "schedule": {},
    },
    "clinic": {
        "overview": {"name": "Heart Clinic", "specialization": "cardiology", "max_doctors": 4},
        "contact": {"email": "heart@acme.test"},
        "services": {"services": [{"name": "Consultation", "duration_minutes": 30, "price": 150}]},
        "legal": {"vat_number": "300000000000005"},
        "schedule": {},
    },
}

USER_DATA = {
    "first_name": "Lina",
    "last_name": "Haddad",
    "email": "lina@acme.test",
    "password": "s3cret-pass",
}


# ── Form data ────────────────────────────────────────────────────

@pytest.fixture
def form_data() -> dict:
    return copy.deepcopy(FORM_DATA)


@pytest.fixture
def user_data() -> dict:
    return dict(USER_DATA)


# ── Wizard state ─────────────────────────────────────────────────

@pytest.fixture
def state() -> ProgressState:
    return ProgressState()


@pytest.fixture
def memory_store() -> dict:
    return {}


@pytest.fixture
def gateway(memory_store) -> InMemoryProgressGateway:
    return InMemoryProgressGateway("attempt-1", memory_store)


@pytest.fixture
def session(gateway) -> WizardSession:
    return WizardSession("attempt-1", gateway)


@pytest.fixture
def fill_wizard():
    """Submit every sub-step of the session's plan, in catalog order."""

    async def fill(session: WizardSession, data: dict | None = None):
        data = data or copy.deepcopy(FORM_DATA)
        result = None
        for step in catalog.get_steps(session.state.require_plan()):
            for sub_step in step.sub_steps:
                payload = data.get(step.name.value, {}).get(sub_step, {})
                result = await session.submit_sub_step(step.name, sub_step, payload)
        return result

    return fill


# ── Fake collaborators ───────────────────────────────────────────

class FakeUniquenessBackend:
    """Answers uniqueness checks from a set of taken values."""

    def __init__(self):
        self.taken: set[str] = set()
        self.calls: list[tuple[str, str]] = []

    def checks(self) -> dict:
        def bind(field):
            async def check(value):
                self.calls.append((field, value))
                if value.lower() in self.taken:
                    return CheckResult(available=False, message=f"{field} is already taken")
                return CheckResult(available=True)
            return check

        return {
            field: bind(field)
            for field in ("organization_name", "complex_name", "clinic_name", "vat_number", "cr_number", "email")
        }


class FakeCompletionClient:
    def __init__(self):
        self.payloads = []
        self.fail_with: str | None = None

    async def complete(self, payload):
        self.payloads.append(payload)
        if self.fail_with:
            raise CompletionFailedError(self.fail_with)
        return OnboardingResult(success=True, user_id="user-1", subscription_id="sub-1")


@pytest.fixture
def uniqueness_backend() -> FakeUniquenessBackend:
    return FakeUniquenessBackend()


@pytest.fixture
def validation_gate(uniqueness_backend) -> ValidationGate:
    return ValidationGate(uniqueness_backend.checks(), debounce_seconds=0)


@pytest.fixture
def completion_client() -> FakeCompletionClient:
    return FakeCompletionClient()


# ── Database (SQLite) ────────────────────────────────────────────

@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """In-memory SQLite with the onboarding tables created."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


# ── Redis ────────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def redis_client():
    """Live Redis client; tests using it are skipped when Redis is down."""
    import redis.asyncio as redis

    client = redis.from_url(settings.redis_url, decode_responses=True)
    try:
        await client.ping()
    except redis.RedisError:
        await client.aclose()
        pytest.skip("Redis is not reachable")

    yield client

    # Cleanup: only the keys these tests create
    async for key in client.scan_iter(match="onboarding:progress:test-*"):
        await client.delete(key)
    await client.aclose()


# ── HTTP client ──────────────────────────────────────────────────

@pytest_asyncio.fixture
async def client(memory_store, validation_gate, completion_client) -> AsyncGenerator[AsyncClient, None]:
    """Test client with progress, validation and completion overridden."""

    async def override_get_gateway(attempt_id: str):
        return InMemoryProgressGateway(attempt_id, memory_store)

    app.dependency_overrides[get_gateway] = override_get_gateway
    app.dependency_overrides[get_validation_gate] = lambda: validation_gate
    app.dependency_overrides[get_completion_client] = lambda: completion_client

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# ── Test Markers ─────────────────────────────────────────────────

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "api: HTTP endpoint tests")
