"""Aggregate model imports for Alembic auto-detection."""

from clinic_onboarding.models.onboarding_progress import OnboardingProgress  # noqa: F401
