"""Pydantic schemas for onboarding progress and the wizard endpoints.

`ProgressRecord` is the persisted shape; everything a page reload needs
to resume lives in it.  Transient UI state (loading flags, error
messages) deliberately has no field here.
"""

from typing import Any

from pydantic import BaseModel, Field

from clinic_onboarding.wizard.catalog import Entity, PlanType

RECORD_VERSION = 1


def empty_entity_data() -> dict[Entity, dict[str, dict[str, Any]]]:
    return {entity: {} for entity in Entity}


# ── Persisted progress ──────────────────────────────────────

class ProgressRecord(BaseModel):
    version: int = RECORD_VERSION
    plan_type: PlanType | None = None
    current_step: int = 1
    current_sub_step: str = "overview"
    completed_steps: list[str] = []
    is_complete: bool = False
    inheritance: dict[Entity, bool] = {}
    # "<sub_step>.<field>" names copied from the parent when inheritance was switched on
    backfilled: dict[Entity, list[str]] = {}
    entity_data: dict[Entity, dict[str, dict[str, Any]]] = Field(default_factory=empty_entity_data)
    # Logical write counter; newer snapshots always carry a larger value
    sequence: int = 0


# ── Requests ────────────────────────────────────────────────

class PlanSelection(BaseModel):
    plan_type: PlanType


class JumpRequest(BaseModel):
    step: int = Field(ge=1)
    sub_step: str | None = None


class InheritanceToggle(BaseModel):
    enabled: bool


class ValidationRequest(BaseModel):
    value: str


# ── Responses ───────────────────────────────────────────────

class SubStepStatus(BaseModel):
    key: str
    completed: bool


class StepStatus(BaseModel):
    id: int
    name: Entity
    completed: bool
    can_enter: bool
    sub_steps: list[SubStepStatus]


class WizardProgress(BaseModel):
    plan_type: PlanType | None
    current_step: int
    current_sub_step: str
    completed_steps: list[str]
    is_complete: bool
    total_steps: int
    progress_percentage: int
    inheritance: dict[Entity, bool] = {}
    steps: list[StepStatus] = []


class NavigationResponse(BaseModel):
    outcome: str
    reason: str | None = None
    progress: WizardProgress


class InheritanceResponse(BaseModel):
    entity: Entity
    enabled: bool
    filled_fields: list[str] = []
    progress: WizardProgress


class StepDataResponse(BaseModel):
    entity: Entity
    sub_step: str
    data: dict[str, Any]
    inherited_fields: list[str] = []


class ValidationResult(BaseModel):
    field: str
    value: str
    available: bool
    message: str | None = None


class CatalogStep(BaseModel):
    id: int
    name: Entity
    sub_steps: list[str]


class CatalogResponse(BaseModel):
    plan_type: PlanType
    total_steps: int
    steps: list[CatalogStep]
