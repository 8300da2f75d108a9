"""Debounced, latest-request-wins uniqueness validation.

A LatestValueValidator runs one async check per field.  Submitting a new
value cancels whatever is pending or in flight for the previous value, so
a stale response can never land on top of a newer input.  Results are
tagged with the value they were computed for; a result whose value is no
longer the latest one is dropped.

ValidationGate groups validators by field and blocks final submission
until every touched field has a settled, positive result for the value
that is actually being submitted.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from clinic_onboarding.middleware.exceptions import ValidationPendingError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckResult:
    available: bool
    message: str | None = None


CheckFn = Callable[[str], Awaitable[CheckResult]]


def normalize(value: str) -> str:
    return value.strip()


class LatestValueValidator:
    def __init__(self, check: CheckFn, debounce_seconds: float = 0.8, min_length: int = 2):
        self.check = check
        self.debounce_seconds = debounce_seconds
        self.min_length = min_length
        self.latest_value: str | None = None
        self.result_value: str | None = None
        self.result: CheckResult | None = None
        self._task: asyncio.Task | None = None

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def submit(self, value: str) -> None:
        """Start checking `value`, superseding any earlier request."""
        value = normalize(value)
        if value == self.latest_value and (self.pending or self.result_value == value):
            return

        self.cancel()
        self.latest_value = value

        if len(value) < self.min_length:
            # Too short to be worth a round trip; nothing to block on
            self._store(value, CheckResult(available=True))
            return

        self._task = asyncio.create_task(self._run(value))

    async def _run(self, value: str) -> None:
        await asyncio.sleep(self.debounce_seconds)
        result = await self.check(value)
        if value != self.latest_value:
            logger.debug("Discarding stale validation result for %r", value)
            return
        self._store(value, result)

    def _store(self, value: str, result: CheckResult) -> None:
        self.result_value = value
        self.result = result

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def settled(self) -> CheckResult | None:
        """Wait for the latest request and return its result."""
        task = self._task
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                # Superseded while we waited; the newer request owns the result
                if self._task is not task:
                    return await self.settled()
                raise
        if self.result_value == self.latest_value:
            return self.result
        return None

    def status_for(self, value: str) -> str | None:
        """None when `value` may be submitted, otherwise a reason."""
        value = normalize(value)
        if self.pending:
            return "Validation still in progress"
        if self.result_value != value or self.result is None:
            return "Value has not been validated"
        if not self.result.available:
            return self.result.message or "Value is not available"
        return None


class ValidationGate:
    """Validators keyed by field name ("organization_name", "email", ...).

    A field may be qualified as "<check>:<label>" ("email:complex") to run
    the same check on a second value with its own latest-wins validator.
    """

    def __init__(self, checks: dict[str, CheckFn], debounce_seconds: float = 0.8):
        self.checks = dict(checks)
        self.debounce_seconds = debounce_seconds
        self.validators = {
            name: LatestValueValidator(check, debounce_seconds)
            for name, check in checks.items()
        }

    @staticmethod
    def check_name(field: str) -> str:
        return field.partition(":")[0]

    def covers(self, field: str) -> bool:
        return self.check_name(field) in self.checks

    def validator(self, field: str) -> LatestValueValidator:
        validator = self.validators.get(field)
        if validator is None:
            validator = LatestValueValidator(self.checks[self.check_name(field)], self.debounce_seconds)
            self.validators[field] = validator
        return validator

    def submit(self, field: str, value: str) -> None:
        self.validator(field).submit(value)

    async def validate(self, field: str, value: str) -> CheckResult | None:
        self.submit(field, value)
        return await self.validator(field).settled()

    async def wait(self) -> None:
        for validator in list(self.validators.values()):
            if validator.pending:
                await validator.settled()

    def ensure_ready(self, values: dict[str, str | None]) -> None:
        """Raise ValidationPendingError unless every given field is settled and positive.

        Fields with no value, or that no validator covers, are not gated.
        """
        problems: dict[str, str] = {}
        for field, value in values.items():
            if not value or not self.covers(field):
                continue
            reason = self.validator(field).status_for(value)
            if reason is not None:
                problems[field] = reason
        if problems:
            raise ValidationPendingError(problems)

    def cancel_all(self) -> None:
        for validator in self.validators.values():
            validator.cancel()
