"""Tests for the plan step catalog."""

import pytest

from clinic_onboarding.wizard import catalog
from clinic_onboarding.wizard.catalog import Entity, PlanType, StepDefinition


@pytest.mark.unit
class TestPlanCatalog:
    """Step tables and lookups."""

    @pytest.mark.parametrize("plan_type,expected", [
        (PlanType.COMPANY, [Entity.COMPANY, Entity.COMPLEX, Entity.CLINIC]),
        (PlanType.COMPLEX, [Entity.COMPLEX, Entity.CLINIC]),
        (PlanType.CLINIC, [Entity.CLINIC]),
    ])
    def test_steps_per_plan(self, plan_type, expected):
        steps = catalog.get_steps(plan_type)
        assert [s.name for s in steps] == expected
        assert [s.id for s in steps] == list(range(1, len(expected) + 1))
        assert catalog.get_total_steps(plan_type) == len(expected)

    def test_company_sub_steps(self):
        steps = catalog.get_steps(PlanType.COMPANY)
        assert steps[0].sub_steps == ("overview", "contact", "legal")
        assert steps[1].sub_steps == ("overview", "contact", "schedule")
        assert steps[2].sub_steps == ("overview", "contact", "services", "schedule")

    def test_clinic_plan_has_legal_and_schedule(self):
        (step,) = catalog.get_steps(PlanType.CLINIC)
        assert step.sub_steps == ("overview", "contact", "legal", "schedule")

    def test_get_step_out_of_range(self):
        assert catalog.get_step(PlanType.COMPLEX, 0) is None
        assert catalog.get_step(PlanType.COMPLEX, 3) is None
        assert catalog.get_step(PlanType.COMPLEX, 2).name == Entity.CLINIC

    def test_get_step_by_name(self):
        assert catalog.get_step_by_name(PlanType.COMPLEX, Entity.COMPANY) is None
        assert catalog.get_step_by_name(PlanType.COMPANY, Entity.CLINIC).id == 3

    def test_plan_type_accepts_strings(self):
        assert catalog.get_total_steps("complex") == 2

    def test_first_sub_step(self):
        for plan in PlanType:
            assert catalog.first_sub_step(plan) == "overview"

    def test_all_sub_step_keys_in_order(self):
        assert catalog.all_sub_step_keys(PlanType.COMPLEX) == [
            "complex-overview", "complex-contact", "complex-legal", "complex-schedule",
            "clinic-overview", "clinic-contact", "clinic-services", "clinic-schedule",
        ]
        assert catalog.total_sub_steps(PlanType.COMPANY) == 10

    def test_is_valid_position(self):
        assert catalog.is_valid_position(PlanType.COMPANY, 3, "services")
        assert not catalog.is_valid_position(PlanType.COMPANY, 1, "services")
        assert not catalog.is_valid_position(PlanType.CLINIC, 2, "overview")
        assert not catalog.is_valid_position(None, 1, "overview")

    def test_sub_step_index(self):
        step = catalog.get_step(PlanType.COMPANY, 3)
        assert step.sub_step_index("services") == 2
        assert step.sub_step_index("legal") == -1
        assert step.first_sub_step == "overview"
        assert step.last_sub_step == "schedule"
        assert step.key("services") == "clinic-services"


@pytest.mark.unit
class TestCatalogCheck:
    """The import-time table check rejects malformed catalogs."""

    def _table(self, overrides=None):
        table = dict(catalog.PLAN_STEPS)
        table.update(overrides or {})
        return table

    def test_current_table_is_valid(self):
        catalog._check_catalog(catalog.PLAN_STEPS)

    def test_missing_plan(self):
        table = self._table()
        del table[PlanType.CLINIC]
        with pytest.raises(ValueError, match="no steps for"):
            catalog._check_catalog(table)

    def test_non_contiguous_ids(self):
        table = self._table({
            PlanType.CLINIC: (StepDefinition(2, Entity.CLINIC, ("overview",)),),
        })
        with pytest.raises(ValueError, match="step ids must run"):
            catalog._check_catalog(table)

    def test_duplicate_sub_step(self):
        table = self._table({
            PlanType.CLINIC: (StepDefinition(1, Entity.CLINIC, ("overview", "overview")),),
        })
        with pytest.raises(ValueError, match="repeats a sub-step"):
            catalog._check_catalog(table)

    def test_empty_sub_steps(self):
        table = self._table({
            PlanType.CLINIC: (StepDefinition(1, Entity.CLINIC, ()),),
        })
        with pytest.raises(ValueError, match="has no sub-steps"):
            catalog._check_catalog(table)
