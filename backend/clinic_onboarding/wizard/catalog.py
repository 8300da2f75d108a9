"""Static step catalog: which entities each plan configures, in what order.

Plan table:
  company  → company (overview, contact, legal)
             → complex (overview, contact, schedule)
             → clinic (overview, contact, services, schedule)
  complex  → complex (overview, contact, legal, schedule)
             → clinic (overview, contact, services, schedule)
  clinic   → clinic (overview, contact, legal, schedule)

The table is checked when this module is imported, so a broken edit fails
at startup instead of on some user's third step.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass


class PlanType(str, enum.Enum):
    COMPANY = "company"
    COMPLEX = "complex"
    CLINIC = "clinic"


class Entity(str, enum.Enum):
    """Step name and the key of that entity's form-data bag."""
    COMPANY = "company"
    COMPLEX = "complex"
    CLINIC = "clinic"


@dataclass(frozen=True)
class StepDefinition:
    id: int
    name: Entity
    sub_steps: tuple[str, ...]

    @property
    def first_sub_step(self) -> str:
        return self.sub_steps[0]

    @property
    def last_sub_step(self) -> str:
        return self.sub_steps[-1]

    def sub_step_index(self, sub_step: str) -> int:
        """Position of `sub_step` in this step, or -1."""
        try:
            return self.sub_steps.index(sub_step)
        except ValueError:
            return -1

    def key(self, sub_step: str) -> str:
        """Completion key for one of this step's sub-steps."""
        return f"{self.name.value}-{sub_step}"


PLAN_STEPS: dict[PlanType, tuple[StepDefinition, ...]] = {
    PlanType.COMPANY: (
        StepDefinition(1, Entity.COMPANY, ("overview", "contact", "legal")),
        StepDefinition(2, Entity.COMPLEX, ("overview", "contact", "schedule")),
        StepDefinition(3, Entity.CLINIC, ("overview", "contact", "services", "schedule")),
    ),
    PlanType.COMPLEX: (
        StepDefinition(1, Entity.COMPLEX, ("overview", "contact", "legal", "schedule")),
        StepDefinition(2, Entity.CLINIC, ("overview", "contact", "services", "schedule")),
    ),
    PlanType.CLINIC: (
        StepDefinition(1, Entity.CLINIC, ("overview", "contact", "legal", "schedule")),
    ),
}


def _check_catalog(table: dict[PlanType, tuple[StepDefinition, ...]]) -> None:
    missing = set(PlanType) - set(table)
    if missing:
        raise ValueError(f"Plan catalog has no steps for: {sorted(p.value for p in missing)}")

    for plan, steps in table.items():
        if not steps:
            raise ValueError(f"Plan {plan.value!r} has no steps")
        names = [s.name for s in steps]
        if len(set(names)) != len(names):
            raise ValueError(f"Plan {plan.value!r} repeats an entity step")
        for expected_id, step in enumerate(steps, start=1):
            if step.id != expected_id:
                raise ValueError(
                    f"Plan {plan.value!r}: step ids must run 1..N, got {step.id} at position {expected_id}"
                )
            if not step.sub_steps:
                raise ValueError(f"Plan {plan.value!r} step {step.id} has no sub-steps")
            if len(set(step.sub_steps)) != len(step.sub_steps):
                raise ValueError(f"Plan {plan.value!r} step {step.id} repeats a sub-step key")


_check_catalog(PLAN_STEPS)


# ── Lookups ──────────────────────────────────────────────────

def get_steps(plan_type: PlanType) -> tuple[StepDefinition, ...]:
    return PLAN_STEPS[PlanType(plan_type)]


def get_step(plan_type: PlanType, step_id: int) -> StepDefinition | None:
    steps = get_steps(plan_type)
    if 1 <= step_id <= len(steps):
        return steps[step_id - 1]
    return None


def get_step_by_name(plan_type: PlanType, entity: Entity) -> StepDefinition | None:
    for step in get_steps(plan_type):
        if step.name == entity:
            return step
    return None


def get_total_steps(plan_type: PlanType) -> int:
    return len(get_steps(plan_type))


def total_sub_steps(plan_type: PlanType) -> int:
    return sum(len(step.sub_steps) for step in get_steps(plan_type))


def first_sub_step(plan_type: PlanType) -> str:
    return get_steps(plan_type)[0].first_sub_step


def all_sub_step_keys(plan_type: PlanType) -> list[str]:
    """Every completion key of the plan, in wizard order."""
    return [step.key(sub) for step in get_steps(plan_type) for sub in step.sub_steps]


def is_valid_position(plan_type: PlanType | None, step_id: int, sub_step: str) -> bool:
    if plan_type is None:
        return False
    step = get_step(plan_type, step_id)
    return step is not None and sub_step in step.sub_steps
