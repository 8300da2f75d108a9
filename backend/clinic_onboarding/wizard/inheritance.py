"""Cross-entity field inheritance: organization → complex → clinic.

A child entity may show its parent's value for a field when inheritance
is toggled on for the child and the child's own value is empty.
Precedence: explicit child value > inherited parent value > default.

Only one hop is resolved.  A clinic reads its immediate parent; it sees
an organization value only after the complex has materialized it (see
`backfill`, which runs when inheritance is switched on).
"""

from __future__ import annotations

from typing import Any, Mapping

from clinic_onboarding.wizard.catalog import Entity, PlanType

# (plan, child) → parent
PARENT_LINKS: dict[tuple[PlanType, Entity], Entity] = {
    (PlanType.COMPANY, Entity.COMPLEX): Entity.COMPANY,
    (PlanType.COMPANY, Entity.CLINIC): Entity.COMPLEX,
    (PlanType.COMPLEX, Entity.CLINIC): Entity.COMPLEX,
}

# Child field → parent field, where the names differ
FIELD_RENAMES: dict[tuple[Entity, Entity], dict[str, str]] = {
    (Entity.COMPANY, Entity.COMPLEX): {"manager_name": "ceo_name"},
    (Entity.COMPLEX, Entity.CLINIC): {"head_doctor_name": "manager_name"},
}

# A clinic needs its own identity; these are never copied into it
NON_INHERITABLE: dict[Entity, frozenset[str]] = {
    Entity.COMPLEX: frozenset(),
    Entity.CLINIC: frozenset({"name", "email", "website"}),
}

# Sub-steps whose content is entity-specific and never inherited
INHERITABLE_SUB_STEPS = frozenset({"overview", "contact", "legal"})


def is_empty(value: Any) -> bool:
    """None, blank strings and empty collections count as unset; 0 and False do not."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) == 0
    return False


def parent_of(plan_type: PlanType | None, child: Entity | str) -> Entity | None:
    if plan_type is None:
        return None
    return PARENT_LINKS.get((PlanType(plan_type), Entity(child)))


def parent_field_name(parent: Entity, child: Entity, field_name: str) -> str:
    return FIELD_RENAMES.get((parent, child), {}).get(field_name, field_name)


class InheritanceResolver:
    """Resolves effective child values for one plan."""

    def __init__(self, plan_type: PlanType | None):
        self.plan_type = PlanType(plan_type) if plan_type is not None else None

    def parent_of(self, child: Entity | str) -> Entity | None:
        return parent_of(self.plan_type, child)

    def resolve_field(
        self,
        child_entity: Entity | str,
        field_name: str,
        parent_data: Mapping[str, Any] | None,
        inheritance_enabled: bool,
        child_value: Any,
    ) -> Any:
        child_entity = Entity(child_entity)
        if not inheritance_enabled or parent_data is None or not is_empty(child_value):
            return child_value
        if field_name in NON_INHERITABLE.get(child_entity, ()):
            return child_value

        parent = self.parent_of(child_entity)
        source = parent_field_name(parent, child_entity, field_name) if parent else field_name
        # Fall back to the child's own name when the renamed field is absent
        if source in parent_data:
            return parent_data[source]
        return parent_data.get(field_name)

    def inheritable_fields(
        self,
        child_entity: Entity | str,
        child_data: Mapping[str, Any],
        parent_data: Mapping[str, Any],
    ) -> list[str]:
        """Fields of the child that would take the parent's value right now."""
        child_entity = Entity(child_entity)
        parent = self.parent_of(child_entity)
        if parent is None:
            return []
        renames = FIELD_RENAMES.get((parent, child_entity), {})
        reverse = {v: k for k, v in renames.items()}
        candidates = {reverse.get(name, name) for name in parent_data} | set(child_data)
        fields = []
        for name in sorted(candidates):
            if name in NON_INHERITABLE.get(child_entity, ()):
                continue
            if not is_empty(child_data.get(name)):
                continue
            value = self.resolve_field(child_entity, name, parent_data, True, child_data.get(name))
            if not is_empty(value):
                fields.append(name)
        return fields

    def resolve_sub_step(
        self,
        child_entity: Entity | str,
        sub_step: str,
        child_data: Mapping[str, Any],
        parent_data: Mapping[str, Any] | None,
        inheritance_enabled: bool,
    ) -> tuple[dict[str, Any], list[str]]:
        """Effective view of one child form plus the names of inherited fields.

        Read-only: the stored child data is not touched.
        """
        result = dict(child_data)
        if not inheritance_enabled or parent_data is None or sub_step not in INHERITABLE_SUB_STEPS:
            return result, []
        inherited = self.inheritable_fields(child_entity, child_data, parent_data)
        for name in inherited:
            result[name] = self.resolve_field(child_entity, name, parent_data, True, child_data.get(name))
        return result, inherited

    def backfill(
        self,
        child_entity: Entity | str,
        sub_step: str,
        child_data: Mapping[str, Any],
        parent_data: Mapping[str, Any] | None,
    ) -> dict[str, Any]:
        """Materialize inherited values into the child's empty fields.

        User-entered values are never overwritten.
        """
        resolved, _ = self.resolve_sub_step(child_entity, sub_step, child_data, parent_data, True)
        return resolved


# ── Working hours ───────────────────────────────────────────

def should_constrain_working_hours(plan_type: PlanType | str, has_parent_hours: bool) -> bool:
    """Clinics under a company or complex must fit inside the parent's hours."""
    return PlanType(plan_type) in (PlanType.COMPANY, PlanType.COMPLEX) and has_parent_hours


def validate_working_hours_constraints(
    child_hours: list[Mapping[str, Any]],
    parent_hours: list[Mapping[str, Any]],
) -> list[str]:
    """Return human-readable violations; an empty list means the hours fit."""
    errors: list[str] = []
    parent_by_day = {day.get("day_of_week"): day for day in parent_hours}

    for day in child_hours:
        if not day.get("is_working_day"):
            continue
        name = day.get("day_of_week")
        parent_day = parent_by_day.get(name)
        if not parent_day or not parent_day.get("is_working_day"):
            errors.append(f"Cannot work on {name} - parent entity is closed on this day")
            continue

        opening, closing = day.get("opening_time"), day.get("closing_time")
        p_opening, p_closing = parent_day.get("opening_time"), parent_day.get("closing_time")
        if not (opening and closing and p_opening and p_closing):
            continue
        # "HH:MM" strings compare correctly as text
        if opening < p_opening:
            errors.append(f"{name}: Opening time cannot be before {p_opening}")
        if closing > p_closing:
            errors.append(f"{name}: Closing time cannot be after {p_closing}")

    return errors
