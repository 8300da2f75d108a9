"""Mutable onboarding progress for one wizard session.

ProgressState is the single owner of the progress pointers, the set of
completed sub-steps, the per-entity inheritance toggles and the three
entity form-data bags.  Controllers receive it by reference; nothing
here is module-global.

Every mutation re-checks the position invariant (the current step and
sub-step exist in the catalog for the active plan) and bumps `sequence`
so persistence can order snapshots.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Iterable

from clinic_onboarding.middleware.exceptions import (
    InvariantViolationError,
    PlanNotSelectedError,
    UnknownSubStepError,
)
from clinic_onboarding.schemas.wizard import RECORD_VERSION, ProgressRecord, empty_entity_data
from clinic_onboarding.wizard import catalog
from clinic_onboarding.wizard.catalog import Entity, PlanType, StepDefinition

logger = logging.getLogger(__name__)


def _day(name: str, working: bool) -> dict[str, Any]:
    if not working:
        return {
            "day_of_week": name, "is_working_day": False,
            "opening_time": "", "closing_time": "",
            "break_start_time": "", "break_end_time": "",
        }
    return {
        "day_of_week": name, "is_working_day": True,
        "opening_time": "09:00", "closing_time": "17:00",
        "break_start_time": "12:00", "break_end_time": "13:00",
    }


DEFAULT_WORKING_HOURS: list[dict[str, Any]] = [
    _day("monday", True),
    _day("tuesday", True),
    _day("wednesday", True),
    _day("thursday", True),
    _day("friday", True),
    _day("saturday", False),
    _day("sunday", False),
]

# Which entity bags get the default week, per plan
DEFAULT_SCHEDULE_ENTITIES: dict[PlanType, tuple[Entity, ...]] = {
    PlanType.COMPANY: (Entity.COMPLEX, Entity.CLINIC),
    PlanType.COMPLEX: (Entity.COMPLEX,),
    PlanType.CLINIC: (Entity.CLINIC,),
}


class ProgressState:
    """Progress pointers, completion keys and form data for one attempt."""

    def __init__(self) -> None:
        self.plan_type: PlanType | None = None
        self.current_step: int = 1
        self.current_sub_step: str = "overview"
        self.completed: set[str] = set()
        self.is_complete: bool = False
        self.inheritance: dict[Entity, bool] = {}
        self.backfilled: dict[Entity, set[str]] = {}
        self.entity_data: dict[Entity, dict[str, dict[str, Any]]] = empty_entity_data()
        self.sequence: int = 0

    # ── Read helpers ────────────────────────────────────────

    @property
    def has_plan(self) -> bool:
        return self.plan_type is not None

    def require_plan(self) -> PlanType:
        if self.plan_type is None:
            raise PlanNotSelectedError()
        return self.plan_type

    def steps(self) -> tuple[StepDefinition, ...]:
        return catalog.get_steps(self.require_plan())

    def current_step_definition(self) -> StepDefinition:
        step = catalog.get_step(self.require_plan(), self.current_step)
        if step is None:
            self._fail(f"current_step {self.current_step} is outside the catalog")
        return step

    def step_for_entity(self, entity: Entity | str, sub_step: str | None = None) -> StepDefinition:
        """The plan's step for `entity`; raise if it (or `sub_step`) is not in the plan."""
        entity = Entity(entity)
        step = catalog.get_step_by_name(self.require_plan(), entity)
        if step is None or (sub_step is not None and sub_step not in step.sub_steps):
            raise UnknownSubStepError(entity.value, sub_step or "")
        return step

    def get_entity_data(self, entity: Entity | str) -> dict[str, dict[str, Any]]:
        return self.entity_data[Entity(entity)]

    def get_sub_step_data(self, entity: Entity | str, sub_step: str) -> dict[str, Any]:
        return dict(self.entity_data[Entity(entity)].get(sub_step, {}))

    def inheritance_enabled(self, entity: Entity | str) -> bool:
        return self.inheritance.get(Entity(entity), False)

    # ── Mutations ───────────────────────────────────────────

    def set_plan_type(self, plan_type: PlanType | str) -> None:
        """Select a plan, discarding all progress and data, then seed defaults."""
        plan_type = PlanType(plan_type)
        first = catalog.get_steps(plan_type)[0]

        self.plan_type = plan_type
        self.current_step = first.id
        self.current_sub_step = first.first_sub_step
        self.completed = set()
        self.is_complete = False
        self.inheritance = {}
        self.backfilled = {}
        self.entity_data = empty_entity_data()
        self._apply_default_data()
        self._touch()
        logger.info("Plan selected: %s", plan_type.value)

    def _apply_default_data(self) -> None:
        for entity in DEFAULT_SCHEDULE_ENTITIES[self.plan_type]:
            schedule = self.entity_data[entity].setdefault("schedule", {})
            if not schedule.get("working_hours"):
                schedule["working_hours"] = copy.deepcopy(DEFAULT_WORKING_HOURS)

    def merge_entity_data(self, entity: Entity | str, sub_step: str, payload: dict[str, Any]) -> None:
        """Shallow-merge `payload` under entity_data[entity][sub_step].

        Keys absent from `payload` are kept; an empty payload changes nothing.
        """
        entity = Entity(entity)
        self.step_for_entity(entity, sub_step)
        bag = self.entity_data[entity].setdefault(sub_step, {})
        # Copied parent values stay marked until the user changes them
        copied = self.backfilled.get(entity)
        if copied:
            copied.difference_update(
                f"{sub_step}.{name}" for name, value in payload.items() if bag.get(name) != value
            )
        bag.update(payload)
        self._touch()

    def replace_sub_step_data(self, entity: Entity | str, sub_step: str, data: dict[str, Any]) -> None:
        self.entity_data[Entity(entity)][sub_step] = dict(data)
        self._touch()

    def move_to(self, step_id: int, sub_step: str) -> None:
        """Point at (step_id, sub_step); raise InvariantViolationError if illegal."""
        if not catalog.is_valid_position(self.require_plan(), step_id, sub_step):
            self._fail(f"cannot move to step {step_id} sub-step {sub_step!r}")
        self.current_step = step_id
        self.current_sub_step = sub_step
        self._touch()

    def add_completed(self, keys: Iterable[str]) -> None:
        self.completed.update(keys)
        self._touch()

    def set_complete(self, value: bool = True) -> None:
        self.is_complete = value
        self._touch()

    def set_inheritance(self, entity: Entity | str, enabled: bool) -> None:
        self.inheritance[Entity(entity)] = enabled
        self._touch()

    def backfilled_fields(self, entity: Entity | str, sub_step: str) -> list[str]:
        prefix = f"{sub_step}."
        names = self.backfilled.get(Entity(entity), ())
        return sorted(name[len(prefix):] for name in names if name.startswith(prefix))

    def record_backfill(self, entity: Entity | str, names: Iterable[str]) -> None:
        self.backfilled.setdefault(Entity(entity), set()).update(names)
        self._touch()

    def clear_backfill(self, entity: Entity | str) -> None:
        """Remove copied parent values the user never touched."""
        entity = Entity(entity)
        for name in self.backfilled.pop(entity, set()):
            sub_step, _, field_name = name.partition(".")
            self.entity_data[entity].get(sub_step, {}).pop(field_name, None)
        self._touch()

    def reset(self) -> None:
        """Back to the blank, plan-less state.  The sequence keeps counting."""
        self.plan_type = None
        self.current_step = 1
        self.current_sub_step = "overview"
        self.completed = set()
        self.is_complete = False
        self.inheritance = {}
        self.backfilled = {}
        self.entity_data = empty_entity_data()
        self.sequence += 1

    # ── Snapshot / restore ──────────────────────────────────

    def snapshot(self) -> ProgressRecord:
        if self.plan_type is not None:
            order = {key: i for i, key in enumerate(catalog.all_sub_step_keys(self.plan_type))}
        else:
            order = {}
        completed = sorted(self.completed, key=lambda k: (order.get(k, len(order)), k))
        return ProgressRecord(
            version=RECORD_VERSION,
            plan_type=self.plan_type,
            current_step=self.current_step,
            current_sub_step=self.current_sub_step,
            completed_steps=completed,
            is_complete=self.is_complete,
            inheritance=dict(self.inheritance),
            backfilled={entity: sorted(names) for entity, names in self.backfilled.items() if names},
            entity_data=copy.deepcopy(self.entity_data),
            sequence=self.sequence,
        )

    def restore(self, record: ProgressRecord) -> None:
        """Load a record wholesale.

        Plain "<step>" completion keys from older records are expanded into
        the keys of every sub-step of that step.
        """
        if record.plan_type is not None and not catalog.is_valid_position(
            record.plan_type, record.current_step, record.current_sub_step
        ):
            self._fail(
                f"record points at step {record.current_step} sub-step "
                f"{record.current_sub_step!r} which plan {record.plan_type.value!r} does not have"
            )

        self.plan_type = record.plan_type
        self.current_step = record.current_step
        self.current_sub_step = record.current_sub_step
        self.completed = self._normalize_keys(record.plan_type, record.completed_steps)
        self.is_complete = record.is_complete
        self.inheritance = dict(record.inheritance)
        self.backfilled = {Entity(entity): set(names) for entity, names in record.backfilled.items()}
        self.entity_data = empty_entity_data()
        for entity, bag in record.entity_data.items():
            self.entity_data[Entity(entity)] = copy.deepcopy(bag)
        self.sequence = record.sequence

    @staticmethod
    def _normalize_keys(plan_type: PlanType | None, keys: Iterable[str]) -> set[str]:
        if plan_type is None:
            return set(keys)
        by_name = {step.name.value: step for step in catalog.get_steps(plan_type)}
        result: set[str] = set()
        for key in keys:
            step = by_name.get(key)
            if step is not None:
                result.update(step.key(sub) for sub in step.sub_steps)
            else:
                result.add(key)
        return result

    # ── Internals ───────────────────────────────────────────

    def _touch(self) -> None:
        self.sequence += 1
        if self.plan_type is not None and not catalog.is_valid_position(
            self.plan_type, self.current_step, self.current_sub_step
        ):
            self._fail(
                f"step {self.current_step} sub-step {self.current_sub_step!r} "
                f"is invalid for plan {self.plan_type.value!r}"
            )

    def _fail(self, message: str):
        logger.error(
            "Progress invariant violated: %s",
            message,
            extra={
                "plan_type": self.plan_type.value if self.plan_type else None,
                "current_step": self.current_step,
                "current_sub_step": self.current_sub_step,
            },
        )
        raise InvariantViolationError(message)
