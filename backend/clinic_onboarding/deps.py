"""FastAPI dependencies for the onboarding routes.

Dependencies:
  get_gateway            → progress store for the attempt, per PROGRESS_BACKEND
  get_session            → opened WizardSession for the attempt
  get_validation_gate    → the attempt's in-process uniqueness validators
  get_completion_client  → account-service client used by /complete
"""

from collections import OrderedDict

import httpx
from fastapi import Depends, Path

from clinic_onboarding.config import settings
from clinic_onboarding.database import async_session
from clinic_onboarding.services.completion import CompletionClient
from clinic_onboarding.services.uniqueness import UniquenessClient, create_backend_client
from clinic_onboarding.utils.cache import get_redis
from clinic_onboarding.wizard.persistence import (
    DatabaseProgressGateway,
    InMemoryProgressGateway,
    ProgressGateway,
    RedisProgressGateway,
)
from clinic_onboarding.wizard.session import WizardSession
from clinic_onboarding.wizard.validation import ValidationGate

ATTEMPT_ID_PATTERN = r"^[A-Za-z0-9_-]{1,64}$"

# Shared by every InMemoryProgressGateway so progress survives between requests
_memory_store: dict[str, str] = {}

# Validators hold asyncio tasks, so they stay in this process per attempt.
# Attempt ids come from the client; the oldest idle gates are evicted.
_validation_gates: OrderedDict[str, ValidationGate] = OrderedDict()

_backend_client: httpx.AsyncClient | None = None


def get_backend_client() -> httpx.AsyncClient:
    global _backend_client
    if _backend_client is None:
        _backend_client = create_backend_client()
    return _backend_client


async def close_backend_client():
    """Close the account-service client (call on app shutdown)."""
    global _backend_client
    if _backend_client is not None:
        await _backend_client.aclose()
        _backend_client = None


async def get_gateway(
    attempt_id: str = Path(..., pattern=ATTEMPT_ID_PATTERN),
) -> ProgressGateway:
    backend = settings.progress_backend
    if backend == "memory":
        return InMemoryProgressGateway(attempt_id, _memory_store)
    if backend == "database":
        return DatabaseProgressGateway(attempt_id, async_session)
    return RedisProgressGateway(attempt_id, await get_redis(), settings.progress_ttl_seconds)


async def get_session(
    attempt_id: str = Path(..., pattern=ATTEMPT_ID_PATTERN),
    gateway: ProgressGateway = Depends(get_gateway),
) -> WizardSession:
    session = WizardSession(attempt_id, gateway)
    await session.open()
    return session


def get_validation_gate(
    attempt_id: str = Path(..., pattern=ATTEMPT_ID_PATTERN),
) -> ValidationGate:
    gate = _validation_gates.get(attempt_id)
    if gate is not None:
        _validation_gates.move_to_end(attempt_id)
        return gate

    checks = UniquenessClient(get_backend_client()).checks()
    gate = ValidationGate(checks, debounce_seconds=settings.validation_debounce_ms / 1000)
    _validation_gates[attempt_id] = gate
    while len(_validation_gates) > settings.validation_gate_limit:
        _, evicted = _validation_gates.popitem(last=False)
        evicted.cancel_all()
    return gate


def drop_validation_gate(attempt_id: str) -> None:
    gate = _validation_gates.pop(attempt_id, None)
    if gate is not None:
        gate.cancel_all()


def get_completion_client() -> CompletionClient:
    return CompletionClient(get_backend_client())
