"""Completion tracking at sub-step granularity.

Only "<step>-<subStep>" keys are stored.  Marking a whole step inserts
the key of each of its sub-steps, and step-level completion is derived
by aggregation, so the progress percentage cannot double count.
"""

from __future__ import annotations

import math

from clinic_onboarding.wizard import catalog
from clinic_onboarding.wizard.catalog import Entity
from clinic_onboarding.wizard.state import ProgressState


def completion_key(step_name: Entity | str, sub_step: str) -> str:
    return f"{Entity(step_name).value}-{sub_step}"


class CompletionTracker:
    def __init__(self, state: ProgressState):
        self.state = state

    def mark_sub_step_completed(self, step_name: Entity | str, sub_step: str) -> None:
        self.state.step_for_entity(step_name, sub_step)
        self.state.add_completed([completion_key(step_name, sub_step)])

    def mark_step_completed(self, step_name: Entity | str) -> None:
        step = self.state.step_for_entity(step_name)
        self.state.add_completed(step.key(sub) for sub in step.sub_steps)

    def is_sub_step_completed(self, step_name: Entity | str, sub_step: str) -> bool:
        return completion_key(step_name, sub_step) in self.state.completed

    def is_step_completed(self, step_name: Entity | str) -> bool:
        if not self.state.has_plan:
            return False
        step = catalog.get_step_by_name(self.state.plan_type, Entity(step_name))
        if step is None:
            return False
        return all(step.key(sub) in self.state.completed for sub in step.sub_steps)

    def is_plan_completed(self) -> bool:
        if not self.state.has_plan:
            return False
        return all(self.is_step_completed(step.name) for step in self.state.steps())

    def can_proceed_to_step(self, target_step: int) -> bool:
        """Backward (and staying put) is always allowed; forward needs every
        earlier step fully completed."""
        if not self.state.has_plan:
            return False
        if target_step <= self.state.current_step:
            return True
        for step_id in range(1, target_step):
            step = catalog.get_step(self.state.plan_type, step_id)
            if step is not None and not self.is_step_completed(step.name):
                return False
        return True

    def get_progress_percentage(self) -> int:
        if not self.state.has_plan:
            return 0
        keys = set(catalog.all_sub_step_keys(self.state.plan_type))
        done = len(keys & self.state.completed)
        # Half-up rounding, not banker's rounding
        return int(math.floor(100 * done / len(keys) + 0.5))
