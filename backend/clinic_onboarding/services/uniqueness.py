"""Uniqueness checks against the account backend.

Each checked field maps to one validation endpoint.  Answers are cached
in Redis for `validation_cache_seconds`; network failures are not cached
and count as "available" so a flaky backend never blocks onboarding.
"""

import logging

import httpx

from clinic_onboarding.config import settings
from clinic_onboarding.utils.cache import cached
from clinic_onboarding.wizard.validation import CheckFn, CheckResult

logger = logging.getLogger(__name__)

# field → (endpoint, request body key)
UNIQUENESS_ENDPOINTS: dict[str, tuple[str, str]] = {
    "organization_name": ("/onboarding/validate-organization-name", "name"),
    "complex_name": ("/onboarding/validate-complex-name", "name"),
    "clinic_name": ("/onboarding/validate-clinic-name", "name"),
    "vat_number": ("/onboarding/validate-vat-number", "vat_number"),
    "cr_number": ("/onboarding/validate-cr-number", "cr_number"),
    "email": ("/onboarding/validate-email", "email"),
}


@cached(ttl=settings.validation_cache_seconds, prefix="uniqueness")
async def _fetch_availability(client: httpx.AsyncClient, *, field: str, value: str) -> dict:
    path, body_key = UNIQUENESS_ENDPOINTS[field]
    response = await client.post(path, json={body_key: value})
    response.raise_for_status()
    body = response.json()
    data = body.get("data") or {}
    if body.get("success") and "is_available" in data:
        return {"available": bool(data["is_available"]), "message": body.get("message")}
    return {"available": False, "message": body.get("message") or f"{field} may already be taken"}


class UniquenessClient:
    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    async def check(self, field: str, value: str) -> CheckResult:
        try:
            data = await _fetch_availability(self.client, field=field, value=value.lower())
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Uniqueness check for {field} failed, assuming available: {e}")
            return CheckResult(available=True, message="Could not verify availability, proceeding")
        return CheckResult(available=data["available"], message=data.get("message"))

    def checks(self) -> dict[str, CheckFn]:
        """One bound check per supported field, ready for a ValidationGate."""

        def bind(field: str) -> CheckFn:
            async def check(value: str) -> CheckResult:
                return await self.check(field, value)
            return check

        return {field: bind(field) for field in UNIQUENESS_ENDPOINTS}


def create_backend_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=settings.backend_api_url,
        timeout=settings.http_timeout_seconds,
        headers={"Content-Type": "application/json"},
    )
