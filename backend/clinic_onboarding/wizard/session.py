"""One onboarding attempt: state, controllers and persistence wired together.

WizardSession is what the HTTP layer and the CLI talk to.  It owns a
single ProgressState and the controllers that operate on it, and writes a
snapshot through its gateway after every mutation.

Startup order when a session is opened:
  1. local gateway (fast, per attempt)
  2. remote gateway, if one is configured; a hit is copied back locally
  3. nothing stored: a blank, plan-less session
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from clinic_onboarding.middleware.exceptions import (
    CompletionFailedError,
    IllegalTransitionError,
    NoParentEntityError,
    ScheduleConstraintError,
)
from clinic_onboarding.schemas.completion import CompleteOnboardingPayload, OnboardingResult, UserData
from clinic_onboarding.schemas.wizard import StepStatus, SubStepStatus, WizardProgress
from clinic_onboarding.wizard import catalog
from clinic_onboarding.wizard.catalog import Entity, PlanType
from clinic_onboarding.wizard.completion import CompletionTracker
from clinic_onboarding.wizard.inheritance import (
    INHERITABLE_SUB_STEPS,
    InheritanceResolver,
    should_constrain_working_hours,
    validate_working_hours_constraints,
)
from clinic_onboarding.wizard.navigation import NavigationController, NavigationOutcome, NavigationResult
from clinic_onboarding.wizard.persistence import ProgressGateway
from clinic_onboarding.wizard.state import ProgressState
from clinic_onboarding.wizard.submission import PLAN_ENTITIES, build_final_payload
from clinic_onboarding.wizard.validation import ValidationGate

logger = logging.getLogger(__name__)


class WizardSession:
    def __init__(
        self,
        attempt_id: str,
        gateway: ProgressGateway,
        remote: ProgressGateway | None = None,
    ):
        self.attempt_id = attempt_id
        self.gateway = gateway
        self.remote = remote
        self.state = ProgressState()
        self.tracker = CompletionTracker(self.state)
        self.navigator = NavigationController(self.state, self.tracker)

    @property
    def resolver(self) -> InheritanceResolver:
        return InheritanceResolver(self.state.plan_type)

    # ── Lifecycle ───────────────────────────────────────────

    async def open(self) -> bool:
        """Restore stored progress.  Returns False when starting blank."""
        record = await self.gateway.load()
        if record is None and self.remote is not None:
            record = await self.remote.load()
            if record is not None:
                logger.info("Progress restored from remote store", extra={"attempt_id": self.attempt_id})
                self.state.restore(record)
                await self.gateway.save(self.state.snapshot())
                return True
        if record is None:
            return False
        self.state.restore(record)
        return True

    async def persist(self) -> None:
        record = self.state.snapshot()
        await self.gateway.save(record)
        if self.remote is not None:
            await self.remote.save(record)

    async def reset(self) -> None:
        self.state.reset()
        await self.gateway.clear()
        if self.remote is not None:
            await self.remote.clear()
        logger.info("Progress reset", extra={"attempt_id": self.attempt_id})

    async def finish(self, success: bool) -> None:
        """Clear everything after a successful submission; keep it otherwise."""
        if success:
            await self.reset()
        else:
            logger.warning(
                "Completion failed, progress retained for retry",
                extra={"attempt_id": self.attempt_id},
            )

    # ── Mutations ───────────────────────────────────────────

    async def select_plan(self, plan_type: PlanType | str) -> None:
        self.state.set_plan_type(plan_type)
        await self.persist()

    async def submit_sub_step(
        self,
        entity: Entity | str,
        sub_step: str,
        payload: dict[str, Any],
        complete: bool = True,
    ) -> NavigationResult:
        """Merge one form's data, optionally mark it done and move on.

        The pointer only advances when the submitted form is the current
        one; re-saving an earlier form while reviewing leaves it in place.
        When the advance itself is refused the save still stands and the
        result is STAYED, carrying the refusal reason.
        """
        entity = Entity(entity)
        step = self.state.step_for_entity(entity, sub_step)
        if not self.tracker.can_proceed_to_step(step.id):
            raise IllegalTransitionError(target_step=step.id)

        if sub_step == "schedule" and "working_hours" in payload:
            self._check_schedule(entity, payload["working_hours"])

        self.state.merge_entity_data(entity, sub_step, payload)

        result = None
        if complete:
            self.tracker.mark_sub_step_completed(entity, sub_step)
            at_current = step.id == self.state.current_step and sub_step == self.state.current_sub_step
            if at_current:
                result = self.navigator.advance_sub_step()
        await self.persist()
        if result is None or result.outcome == NavigationOutcome.REJECTED:
            reason = result.reason if result is not None else None
            result = NavigationResult(
                NavigationOutcome.STAYED, self.state.current_step, self.state.current_sub_step, reason
            )
        return result

    def _check_schedule(self, entity: Entity, hours: list[Mapping[str, Any]]) -> None:
        parent = self.resolver.parent_of(entity)
        if parent is None:
            return
        parent_hours = self.state.get_sub_step_data(parent, "schedule").get("working_hours") or []
        if not should_constrain_working_hours(self.state.plan_type, bool(parent_hours)):
            return
        errors = validate_working_hours_constraints(hours, parent_hours)
        if errors:
            raise ScheduleConstraintError(errors)

    async def next(self) -> NavigationResult:
        return await self._navigate(self.navigator.advance_sub_step())

    async def previous(self) -> NavigationResult:
        return await self._navigate(self.navigator.retreat_sub_step())

    async def jump(self, step_id: int, sub_step: str | None = None) -> NavigationResult:
        return await self._navigate(self.navigator.jump_to_step(step_id, sub_step))

    async def _navigate(self, result: NavigationResult) -> NavigationResult:
        if result.outcome in (NavigationOutcome.MOVED, NavigationOutcome.WIZARD_COMPLETE):
            await self.persist()
        return result

    async def set_inheritance(self, entity: Entity | str, enabled: bool) -> list[str]:
        """Toggle inheritance for `entity`; returns the fields filled from the parent.

        Switching on copies the parent's values into the child's empty
        fields, so a grandchild sees them one hop away.  The copies stay
        marked as inherited until the user edits them; switching off removes
        the ones still marked.
        """
        entity = Entity(entity)
        step = self.state.step_for_entity(entity)
        resolver = self.resolver
        parent = resolver.parent_of(entity)
        if parent is None:
            raise NoParentEntityError(entity.value)

        self.state.set_inheritance(entity, enabled)
        filled: list[str] = []
        if not enabled:
            self.state.clear_backfill(entity)
        else:
            for sub_step in step.sub_steps:
                if sub_step not in INHERITABLE_SUB_STEPS:
                    continue
                child = self.state.get_sub_step_data(entity, sub_step)
                parent_data = self.state.get_sub_step_data(parent, sub_step)
                if not parent_data:
                    continue
                merged = resolver.backfill(entity, sub_step, child, parent_data)
                if merged != child:
                    filled.extend(f"{sub_step}.{name}" for name in merged if merged[name] != child.get(name))
                    self.state.replace_sub_step_data(entity, sub_step, merged)
            self.state.record_backfill(entity, filled)
        await self.persist()
        return filled

    # ── Reads ───────────────────────────────────────────────

    def effective_data(self, entity: Entity | str, sub_step: str) -> tuple[dict[str, Any], list[str]]:
        """Form data as the user should see it, plus the inherited field names."""
        entity = Entity(entity)
        self.state.step_for_entity(entity, sub_step)
        child = self.state.get_sub_step_data(entity, sub_step)
        resolver = self.resolver
        parent = resolver.parent_of(entity)
        if parent is None:
            return child, []
        enabled = self.state.inheritance_enabled(entity)
        data, inherited = resolver.resolve_sub_step(
            entity,
            sub_step,
            child,
            self.state.get_sub_step_data(parent, sub_step),
            enabled,
        )
        if enabled:
            inherited = sorted(set(inherited) | set(self.state.backfilled_fields(entity, sub_step)))
        return data, inherited

    def resolved_entity_data(self) -> dict[Entity, dict[str, dict[str, Any]]]:
        plan = self.state.require_plan()
        resolved: dict[Entity, dict[str, dict[str, Any]]] = {}
        for entity in PLAN_ENTITIES[plan]:
            step = self.state.step_for_entity(entity)
            resolved[entity] = {sub: self.effective_data(entity, sub)[0] for sub in step.sub_steps}
        return resolved

    def progress_summary(self) -> WizardProgress:
        plan = self.state.plan_type
        steps: list[StepStatus] = []
        if plan is not None:
            for step in catalog.get_steps(plan):
                steps.append(StepStatus(
                    id=step.id,
                    name=step.name,
                    completed=self.tracker.is_step_completed(step.name),
                    can_enter=self.tracker.can_proceed_to_step(step.id),
                    sub_steps=[
                        SubStepStatus(key=sub, completed=self.tracker.is_sub_step_completed(step.name, sub))
                        for sub in step.sub_steps
                    ],
                ))
        snapshot = self.state.snapshot()
        return WizardProgress(
            plan_type=plan,
            current_step=self.state.current_step,
            current_sub_step=self.state.current_sub_step,
            completed_steps=snapshot.completed_steps,
            is_complete=self.state.is_complete,
            total_steps=catalog.get_total_steps(plan) if plan else 0,
            progress_percentage=self.tracker.get_progress_percentage(),
            inheritance=dict(self.state.inheritance),
            steps=steps,
        )

    # ── Submission ──────────────────────────────────────────

    def validation_targets(self, user_email: str | None = None) -> dict[str, str | None]:
        """Field values that must pass a uniqueness check before submitting.

        Emails share one check: the account email under "email" and each
        entity's contact email under "email:<entity>".
        """
        plan = self.state.require_plan()
        entities = PLAN_ENTITIES[plan]
        data = self.resolved_entity_data()
        targets: dict[str, str | None] = {}
        names = {
            Entity.COMPANY: "organization_name",
            Entity.COMPLEX: "complex_name",
            Entity.CLINIC: "clinic_name",
        }
        for entity in entities:
            targets[names[entity]] = data[entity].get("overview", {}).get("name")
        # Legal numbers belong to the top-level entity of the plan
        legal = data[entities[0]].get("legal", {})
        targets["vat_number"] = legal.get("vat_number")
        targets["cr_number"] = legal.get("cr_number")
        targets["email"] = user_email
        for entity in entities:
            targets[f"email:{entity.value}"] = data[entity].get("contact", {}).get("email")
        return targets

    def build_payload(self, user_data: UserData | Mapping[str, Any], plan_id: str) -> CompleteOnboardingPayload:
        plan = self.state.require_plan()
        if not self.tracker.is_plan_completed():
            raise IllegalTransitionError("Complete every step before finishing")
        return build_final_payload(plan, self.resolved_entity_data(), user_data, plan_id)

    async def complete(
        self,
        user_data: UserData | Mapping[str, Any],
        plan_id: str,
        completion_client,
        gate: ValidationGate | None = None,
    ) -> OnboardingResult:
        """Gate, assemble and submit.  Progress is cleared only on success."""
        payload = self.build_payload(user_data, plan_id)

        if gate is not None:
            targets = {
                field: value
                for field, value in self.validation_targets(payload.user_data.email).items()
                if value and gate.covers(field)
            }
            for field, value in targets.items():
                gate.submit(field, value)
            await gate.wait()
            gate.ensure_ready(targets)

        try:
            result = await completion_client.complete(payload)
        except CompletionFailedError:
            await self.finish(False)
            raise
        await self.finish(True)
        logger.info(
            "Onboarding completed",
            extra={"attempt_id": self.attempt_id, "plan_type": payload.subscription_data.plan_type.value},
        )
        return result
