"""Tests for ProgressState: plan selection, data merging, snapshots."""

import pytest

from clinic_onboarding.middleware.exceptions import (
    InvariantViolationError,
    PlanNotSelectedError,
    UnknownSubStepError,
)
from clinic_onboarding.schemas.wizard import ProgressRecord
from clinic_onboarding.wizard.catalog import Entity, PlanType
from clinic_onboarding.wizard.state import DEFAULT_WORKING_HOURS, ProgressState


@pytest.mark.unit
class TestPlanSelection:

    def test_blank_state_has_no_plan(self, state):
        assert not state.has_plan
        with pytest.raises(PlanNotSelectedError):
            state.require_plan()

    def test_select_plan_points_at_first_sub_step(self, state):
        state.set_plan_type(PlanType.COMPLEX)
        assert state.plan_type == PlanType.COMPLEX
        assert (state.current_step, state.current_sub_step) == (1, "overview")
        assert state.completed == set()
        assert not state.is_complete

    def test_reselecting_plan_discards_progress(self, state):
        state.set_plan_type(PlanType.COMPANY)
        state.merge_entity_data(Entity.COMPANY, "overview", {"name": "Acme"})
        state.add_completed(["company-overview"])
        state.move_to(1, "contact")
        state.set_inheritance(Entity.COMPLEX, True)

        state.set_plan_type(PlanType.CLINIC)

        assert state.completed == set()
        assert (state.current_step, state.current_sub_step) == (1, "overview")
        assert state.inheritance == {}
        assert state.get_entity_data(Entity.COMPANY) == {}

    def test_default_hours_company_plan(self, state):
        state.set_plan_type(PlanType.COMPANY)
        for entity in (Entity.COMPLEX, Entity.CLINIC):
            hours = state.get_sub_step_data(entity, "schedule")["working_hours"]
            assert hours == DEFAULT_WORKING_HOURS
        assert state.get_entity_data(Entity.COMPANY) == {}

    def test_default_hours_complex_plan_only_for_complex(self, state):
        state.set_plan_type(PlanType.COMPLEX)
        assert state.get_sub_step_data(Entity.COMPLEX, "schedule")["working_hours"]
        assert state.get_sub_step_data(Entity.CLINIC, "schedule") == {}

    def test_default_hours_are_copies(self, state):
        state.set_plan_type(PlanType.CLINIC)
        hours = state.get_sub_step_data(Entity.CLINIC, "schedule")["working_hours"]
        hours[0]["opening_time"] = "06:00"
        assert DEFAULT_WORKING_HOURS[0]["opening_time"] == "09:00"

    def test_default_week(self):
        working = [d["day_of_week"] for d in DEFAULT_WORKING_HOURS if d["is_working_day"]]
        assert working == ["monday", "tuesday", "wednesday", "thursday", "friday"]
        monday = DEFAULT_WORKING_HOURS[0]
        assert (monday["opening_time"], monday["closing_time"]) == ("09:00", "17:00")
        assert (monday["break_start_time"], monday["break_end_time"]) == ("12:00", "13:00")


@pytest.mark.unit
class TestEntityData:

    def test_merge_is_shallow_and_keeps_absent_keys(self, state):
        state.set_plan_type(PlanType.CLINIC)
        state.merge_entity_data(Entity.CLINIC, "overview", {"name": "A", "specialization": "eye"})
        state.merge_entity_data(Entity.CLINIC, "overview", {"name": "B"})
        assert state.get_sub_step_data(Entity.CLINIC, "overview") == {"name": "B", "specialization": "eye"}

    def test_merge_empty_payload_is_noop(self, state):
        state.set_plan_type(PlanType.CLINIC)
        state.merge_entity_data(Entity.CLINIC, "overview", {"name": "A"})
        state.merge_entity_data(Entity.CLINIC, "overview", {})
        assert state.get_sub_step_data(Entity.CLINIC, "overview") == {"name": "A"}

    def test_merge_unknown_sub_step(self, state):
        state.set_plan_type(PlanType.COMPANY)
        with pytest.raises(UnknownSubStepError):
            state.merge_entity_data(Entity.COMPANY, "services", {"x": 1})

    def test_merge_entity_outside_plan(self, state):
        state.set_plan_type(PlanType.CLINIC)
        with pytest.raises(UnknownSubStepError):
            state.merge_entity_data(Entity.COMPANY, "overview", {"name": "x"})

    def test_get_sub_step_data_returns_copy(self, state):
        state.set_plan_type(PlanType.CLINIC)
        state.merge_entity_data(Entity.CLINIC, "overview", {"name": "A"})
        state.get_sub_step_data(Entity.CLINIC, "overview")["name"] = "changed"
        assert state.get_sub_step_data(Entity.CLINIC, "overview")["name"] == "A"


@pytest.mark.unit
class TestInvariants:

    def test_move_outside_catalog_raises(self, state):
        state.set_plan_type(PlanType.CLINIC)
        with pytest.raises(InvariantViolationError):
            state.move_to(2, "overview")
        assert (state.current_step, state.current_sub_step) == (1, "overview")

    def test_every_mutation_bumps_sequence(self, state):
        state.set_plan_type(PlanType.CLINIC)
        seq = state.sequence
        state.merge_entity_data(Entity.CLINIC, "overview", {"name": "A"})
        state.move_to(1, "contact")
        assert state.sequence == seq + 2

    def test_reset_keeps_counting(self, state):
        state.set_plan_type(PlanType.CLINIC)
        seq = state.sequence
        state.reset()
        assert not state.has_plan
        assert state.sequence > seq


@pytest.mark.unit
class TestSnapshot:

    def test_snapshot_restore_roundtrip(self, state):
        state.set_plan_type(PlanType.COMPLEX)
        state.merge_entity_data(Entity.COMPLEX, "overview", {"name": "North"})
        state.add_completed(["complex-contact", "complex-overview"])
        state.move_to(1, "legal")
        state.set_inheritance(Entity.CLINIC, True)

        record = state.snapshot()
        assert record.completed_steps == ["complex-overview", "complex-contact"]

        restored = ProgressState()
        restored.restore(record)
        assert restored.plan_type == PlanType.COMPLEX
        assert (restored.current_step, restored.current_sub_step) == (1, "legal")
        assert restored.completed == {"complex-overview", "complex-contact"}
        assert restored.inheritance_enabled(Entity.CLINIC)
        assert restored.get_sub_step_data(Entity.COMPLEX, "overview") == {"name": "North"}
        assert restored.sequence == state.sequence

    def test_restore_expands_legacy_step_keys(self, state):
        record = ProgressRecord(
            plan_type=PlanType.COMPLEX,
            current_step=2,
            current_sub_step="overview",
            completed_steps=["complex"],
        )
        state.restore(record)
        assert state.completed == {
            "complex-overview", "complex-contact", "complex-legal", "complex-schedule",
        }

    def test_restore_rejects_invalid_position(self, state):
        record = ProgressRecord(plan_type=PlanType.CLINIC, current_step=3, current_sub_step="overview")
        with pytest.raises(InvariantViolationError):
            state.restore(record)
        assert not state.has_plan
