"""Step / sub-step navigation over a ProgressState.

Every operation returns a NavigationResult instead of raising: callers
must check `outcome` before assuming the pointer moved.  A rejected
result never mutates state.

Outcomes:
  moved            the pointer changed
  wizard_complete  advanced past the last step with everything done
  leave_wizard     retreated before step 1, sub-step 1 (caller decides
                   where that goes)
  rejected         the completion gate or the catalog refused the move
  stayed           data was saved but the pointer was left where it is
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

from clinic_onboarding.wizard import catalog
from clinic_onboarding.wizard.completion import CompletionTracker
from clinic_onboarding.wizard.state import ProgressState

logger = logging.getLogger(__name__)


class NavigationOutcome(str, enum.Enum):
    MOVED = "moved"
    WIZARD_COMPLETE = "wizard_complete"
    LEAVE_WIZARD = "leave_wizard"
    REJECTED = "rejected"
    STAYED = "stayed"


@dataclass
class NavigationResult:
    outcome: NavigationOutcome
    step: int
    sub_step: str
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.outcome != NavigationOutcome.REJECTED


class NavigationController:
    def __init__(self, state: ProgressState, tracker: CompletionTracker):
        self.state = state
        self.tracker = tracker

    def _result(self, outcome: NavigationOutcome, reason: str | None = None) -> NavigationResult:
        return NavigationResult(outcome, self.state.current_step, self.state.current_sub_step, reason)

    def _reject(self, reason: str) -> NavigationResult:
        logger.info(
            "Navigation rejected at step %d/%s: %s",
            self.state.current_step, self.state.current_sub_step, reason,
        )
        return self._result(NavigationOutcome.REJECTED, reason)

    # ── Sub-step level ──────────────────────────────────────

    def advance_sub_step(self) -> NavigationResult:
        step = self.state.current_step_definition()
        index = step.sub_step_index(self.state.current_sub_step)
        if index + 1 < len(step.sub_steps):
            self.state.move_to(step.id, step.sub_steps[index + 1])
            return self._result(NavigationOutcome.MOVED)
        return self.advance_step()

    def retreat_sub_step(self) -> NavigationResult:
        step = self.state.current_step_definition()
        index = step.sub_step_index(self.state.current_sub_step)
        if index > 0:
            self.state.move_to(step.id, step.sub_steps[index - 1])
            return self._result(NavigationOutcome.MOVED)
        return self.retreat_step()

    # ── Step level ──────────────────────────────────────────

    def advance_step(self) -> NavigationResult:
        plan = self.state.require_plan()
        next_id = self.state.current_step + 1

        if next_id > catalog.get_total_steps(plan):
            if not self.tracker.is_plan_completed():
                return self._reject("Complete every step before finishing")
            if not self.state.is_complete:
                self.state.set_complete(True)
            return self._result(NavigationOutcome.WIZARD_COMPLETE)

        if not self.tracker.can_proceed_to_step(next_id):
            return self._reject("Complete the previous steps first")

        self.state.move_to(next_id, catalog.get_step(plan, next_id).first_sub_step)
        return self._result(NavigationOutcome.MOVED)

    def retreat_step(self) -> NavigationResult:
        plan = self.state.require_plan()
        prev_id = self.state.current_step - 1
        if prev_id < 1:
            return self._result(NavigationOutcome.LEAVE_WIZARD)
        self.state.move_to(prev_id, catalog.get_step(plan, prev_id).last_sub_step)
        return self._result(NavigationOutcome.MOVED)

    # ── Arbitrary jumps ─────────────────────────────────────

    def jump_to_step(self, step_id: int, sub_step: str | None = None) -> NavigationResult:
        plan = self.state.require_plan()
        target = catalog.get_step(plan, step_id)
        if target is None:
            return self._reject(f"Step {step_id} does not exist in the {plan.value} plan")

        sub = sub_step or target.first_sub_step
        if sub not in target.sub_steps:
            return self._reject(f"Step {step_id} has no sub-step {sub!r}")

        if not self.tracker.can_proceed_to_step(step_id):
            return self._reject("Complete the previous steps first")

        self.state.move_to(step_id, sub)
        return self._result(NavigationOutcome.MOVED)
