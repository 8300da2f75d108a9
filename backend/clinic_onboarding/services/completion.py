"""Account-creation call made once the wizard is complete."""

import logging

import httpx
from pydantic import ValidationError

from clinic_onboarding.middleware.exceptions import CompletionFailedError
from clinic_onboarding.schemas.completion import CompleteOnboardingPayload, OnboardingResult

logger = logging.getLogger(__name__)

COMPLETE_PATH = "/onboarding/complete"


class CompletionClient:
    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    async def complete(self, payload: CompleteOnboardingPayload) -> OnboardingResult:
        try:
            response = await self.client.post(COMPLETE_PATH, json=payload.model_dump(mode="json"))
        except httpx.HTTPError as e:
            logger.error(f"Completion request failed: {e}")
            raise CompletionFailedError("Cannot reach the account service, please try again") from e

        if response.status_code >= 400:
            try:
                message = response.json().get("message")
            except ValueError:
                message = None
            logger.warning(
                f"Completion rejected with HTTP {response.status_code}",
                extra={"status_code": response.status_code},
            )
            raise CompletionFailedError(message or f"Account service returned {response.status_code}")

        try:
            result = OnboardingResult.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise CompletionFailedError("Unexpected response from the account service") from e

        if not result.success:
            raise CompletionFailedError(result.message or "Failed to complete onboarding")
        return result
