"""Onboarding wizard: plan selection, per-form saves, navigation, completion.

Endpoints (prefix /api/onboarding):
  GET    /catalog/{plan_type}                     → steps and sub-steps of a plan
  GET    /{attempt_id}                            → progress summary
  POST   /{attempt_id}/plan                       → select plan (discards progress)
  PATCH  /{attempt_id}/steps/{entity}/{sub_step}  → merge form data, mark done, advance
  GET    /{attempt_id}/steps/{entity}/{sub_step}  → form data with inherited values
  POST   /{attempt_id}/navigation/next|previous|jump
  PUT    /{attempt_id}/inheritance/{entity}       → toggle inheritance for a child entity
  POST   /{attempt_id}/validation/{field}         → latest-wins uniqueness check
  POST   /{attempt_id}/complete                   → gate, build payload, create account
  DELETE /{attempt_id}                            → drop all progress

Design:
  - Progress is a JSON snapshot per attempt (Redis, database or memory).
  - A rejected move never changes state and answers 409.
  - Completion clears progress only when the account service accepts it.
"""

from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, Path, Query, status

from clinic_onboarding.config import settings
from clinic_onboarding.deps import (
    ATTEMPT_ID_PATTERN,
    drop_validation_gate,
    get_completion_client,
    get_session,
    get_validation_gate,
)
from clinic_onboarding.middleware.exceptions import IllegalTransitionError
from clinic_onboarding.schemas.completion import CompleteRequest, OnboardingResult
from clinic_onboarding.schemas.wizard import (
    CatalogResponse,
    CatalogStep,
    InheritanceResponse,
    InheritanceToggle,
    JumpRequest,
    NavigationResponse,
    PlanSelection,
    StepDataResponse,
    ValidationRequest,
    ValidationResult,
    WizardProgress,
)
from clinic_onboarding.services.completion import CompletionClient
from clinic_onboarding.services.uniqueness import UNIQUENESS_ENDPOINTS
from clinic_onboarding.wizard import catalog
from clinic_onboarding.wizard.catalog import Entity, PlanType
from clinic_onboarding.wizard.navigation import NavigationOutcome, NavigationResult
from clinic_onboarding.wizard.session import WizardSession
from clinic_onboarding.wizard.validation import ValidationGate

router = APIRouter()


# ── Helpers ──────────────────────────────────────────────────

def _navigation_response(session: WizardSession, result: NavigationResult) -> NavigationResponse:
    if result.outcome == NavigationOutcome.REJECTED:
        raise IllegalTransitionError(result.reason or "Move not allowed")
    return NavigationResponse(
        outcome=result.outcome.value,
        reason=result.reason,
        progress=session.progress_summary(),
    )


# ── Catalog ──────────────────────────────────────────────────

@router.get("/catalog/{plan_type}", response_model=CatalogResponse)
async def get_catalog(plan_type: PlanType):
    steps = catalog.get_steps(plan_type)
    return CatalogResponse(
        plan_type=plan_type,
        total_steps=len(steps),
        steps=[CatalogStep(id=s.id, name=s.name, sub_steps=list(s.sub_steps)) for s in steps],
    )


# ── Progress ─────────────────────────────────────────────────

@router.get("/{attempt_id}", response_model=WizardProgress)
async def get_progress(session: WizardSession = Depends(get_session)):
    return session.progress_summary()


@router.post("/{attempt_id}/plan", response_model=WizardProgress)
async def select_plan(
    body: PlanSelection,
    session: WizardSession = Depends(get_session),
):
    await session.select_plan(body.plan_type)
    return session.progress_summary()


@router.delete("/{attempt_id}", status_code=status.HTTP_204_NO_CONTENT)
async def reset_progress(
    attempt_id: str = Path(..., pattern=ATTEMPT_ID_PATTERN),
    session: WizardSession = Depends(get_session),
):
    await session.reset()
    drop_validation_gate(attempt_id)


# ── Step data ────────────────────────────────────────────────

@router.patch("/{attempt_id}/steps/{entity}/{sub_step}", response_model=NavigationResponse)
async def save_sub_step(
    entity: Entity,
    sub_step: str,
    data: dict[str, Any] = Body(...),
    complete: bool = Query(True, description="Mark the form done and advance when it is the current one"),
    session: WizardSession = Depends(get_session),
):
    result = await session.submit_sub_step(entity, sub_step, data, complete=complete)
    return _navigation_response(session, result)


@router.get("/{attempt_id}/steps/{entity}/{sub_step}", response_model=StepDataResponse)
async def get_sub_step(
    entity: Entity,
    sub_step: str,
    session: WizardSession = Depends(get_session),
):
    data, inherited = session.effective_data(entity, sub_step)
    return StepDataResponse(entity=entity, sub_step=sub_step, data=data, inherited_fields=inherited)


# ── Navigation ───────────────────────────────────────────────

@router.post("/{attempt_id}/navigation/next", response_model=NavigationResponse)
async def go_next(session: WizardSession = Depends(get_session)):
    return _navigation_response(session, await session.next())


@router.post("/{attempt_id}/navigation/previous", response_model=NavigationResponse)
async def go_previous(session: WizardSession = Depends(get_session)):
    return _navigation_response(session, await session.previous())


@router.post("/{attempt_id}/navigation/jump", response_model=NavigationResponse)
async def jump(
    body: JumpRequest,
    session: WizardSession = Depends(get_session),
):
    return _navigation_response(session, await session.jump(body.step, body.sub_step))


# ── Inheritance ──────────────────────────────────────────────

@router.put("/{attempt_id}/inheritance/{entity}", response_model=InheritanceResponse)
async def toggle_inheritance(
    entity: Entity,
    body: InheritanceToggle,
    session: WizardSession = Depends(get_session),
):
    filled = await session.set_inheritance(entity, body.enabled)
    return InheritanceResponse(
        entity=entity,
        enabled=body.enabled,
        filled_fields=filled,
        progress=session.progress_summary(),
    )


# ── Validation ───────────────────────────────────────────────

@router.post("/{attempt_id}/validation/{field}", response_model=ValidationResult)
async def validate_field(
    field: str,
    body: ValidationRequest,
    gate: ValidationGate = Depends(get_validation_gate),
):
    if field not in UNIQUENESS_ENDPOINTS or field not in gate.validators:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No uniqueness check for '{field}'",
        )
    result = await gate.validate(field, body.value)
    validator = gate.validators[field]
    if result is None:
        return ValidationResult(
            field=field,
            value=body.value,
            available=False,
            message="Superseded by a newer value",
        )
    return ValidationResult(
        field=field,
        value=validator.result_value or body.value,
        available=result.available,
        message=result.message,
    )


# ── Completion ───────────────────────────────────────────────

@router.post("/{attempt_id}/complete", response_model=OnboardingResult)
async def complete_onboarding(
    body: CompleteRequest,
    attempt_id: str = Path(..., pattern=ATTEMPT_ID_PATTERN),
    session: WizardSession = Depends(get_session),
    gate: ValidationGate = Depends(get_validation_gate),
    client: CompletionClient = Depends(get_completion_client),
):
    result = await session.complete(
        body.user_data,
        body.plan_id or settings.default_plan_id,
        client,
        gate=gate,
    )
    drop_validation_gate(attempt_id)
    return result
