"""Assemble the accumulated form-data bags into the completion payload.

Pure transform: no I/O, no state.  Sections emitted per plan:

  company  organization + contacts, complexes + departments, clinics + services
  complex  complexes + departments, clinics + services
  clinic   clinics + services (with the clinic's legal info)

Working hours are emitted for every complex and clinic that has them.
Missing required fields raise MissingRequiredFieldError naming the
entity and field; this is the last check before the network call.
"""

from __future__ import annotations

from typing import Any, Mapping

from clinic_onboarding.middleware.exceptions import MissingRequiredFieldError
from clinic_onboarding.schemas.completion import (
    Address,
    BusinessProfile,
    Capacity,
    ClinicDto,
    CompleteOnboardingPayload,
    ComplexDto,
    ContactDto,
    DepartmentDto,
    LegalInfo,
    OrganizationDto,
    ServiceDto,
    SubscriptionData,
    UserData,
    WorkingHoursDto,
)
from clinic_onboarding.wizard.catalog import Entity, PlanType
from clinic_onboarding.wizard.inheritance import is_empty

PLAN_ENTITIES: dict[PlanType, tuple[Entity, ...]] = {
    PlanType.COMPANY: (Entity.COMPANY, Entity.COMPLEX, Entity.CLINIC),
    PlanType.COMPLEX: (Entity.COMPLEX, Entity.CLINIC),
    PlanType.CLINIC: (Entity.CLINIC,),
}

REQUIRED_USER_FIELDS = ("first_name", "last_name", "email", "password")

SOCIAL_NETWORKS = ("facebook", "instagram", "twitter", "linkedin", "whatsapp", "youtube")

ENTITY_LABELS = {
    Entity.COMPANY: "organization",
    Entity.COMPLEX: "complex",
    Entity.CLINIC: "clinic",
}


# ── Field helpers ───────────────────────────────────────────

def _require(entity: str, data: Mapping[str, Any], field: str, label: str | None = None) -> Any:
    value = data.get(field)
    if is_empty(value):
        raise MissingRequiredFieldError(entity, label or field)
    return value


def _opt(data: Mapping[str, Any], field: str) -> Any:
    value = data.get(field)
    return None if is_empty(value) else value


def _phone(contact: Mapping[str, Any]) -> str | None:
    numbers = contact.get("phone_numbers") or []
    if numbers:
        first = numbers[0]
        return first.get("number") if isinstance(first, Mapping) else str(first)
    return _opt(contact, "phone")


def _address(contact: Mapping[str, Any]) -> Address | None:
    raw = contact.get("address")
    if isinstance(raw, Mapping):
        address = Address.model_validate(raw)
    else:
        address = Address(
            street=raw or None,
            city=_opt(contact, "city"),
            state=_opt(contact, "state"),
            postal_code=_opt(contact, "postal_code"),
            country=_opt(contact, "country"),
            google_location=_opt(contact, "google_location"),
        )
    if all(v is None for v in address.model_dump().values()):
        return None
    return address


def _business_profile(overview: Mapping[str, Any]) -> BusinessProfile:
    return BusinessProfile(
        year_established=_opt(overview, "year_established"),
        mission=_opt(overview, "mission"),
        vision=_opt(overview, "vision"),
        goals=_opt(overview, "goals"),
        overview=_opt(overview, "overview"),
        ceo_name=_opt(overview, "ceo_name"),
    )


def _legal(legal: Mapping[str, Any]) -> LegalInfo | None:
    info = LegalInfo(**{k: _opt(legal, k) for k in LegalInfo.model_fields})
    if all(v is None for v in info.model_dump().values()):
        return None
    return info


def _working_hours(entity_type: str, entity_name: str, schedule: Mapping[str, Any]) -> list[WorkingHoursDto]:
    return [
        WorkingHoursDto(
            entity_type=entity_type,
            entity_name=entity_name,
            day_of_week=day["day_of_week"],
            is_working_day=bool(day.get("is_working_day")),
            opening_time=_opt(day, "opening_time"),
            closing_time=_opt(day, "closing_time"),
            break_start_time=_opt(day, "break_start_time"),
            break_end_time=_opt(day, "break_end_time"),
        )
        for day in schedule.get("working_hours") or []
    ]


def _website(overview: Mapping[str, Any], contact: Mapping[str, Any]) -> str | None:
    return _opt(overview, "website") or _opt(contact, "website")


# ── Entity sections ─────────────────────────────────────────

def _organization(bag: Mapping[str, Mapping[str, Any]]) -> tuple[OrganizationDto, list[ContactDto]]:
    label = ENTITY_LABELS[Entity.COMPANY]
    overview, contact = bag.get("overview", {}), bag.get("contact", {})
    org = OrganizationDto(
        name=_require(label, overview, "name"),
        legal_name=_opt(overview, "legal_name"),
        email=_require(label, contact, "email"),
        phone=_phone(contact),
        address=_address(contact),
        logo_url=_opt(overview, "logo_url"),
        website=_website(overview, contact),
        business_profile=_business_profile(overview),
        legal_info=_legal(bag.get("legal", {})),
    )
    links = contact.get("social_media_links") or {}
    contacts = [
        ContactDto(contact_type=network, contact_value=links[network])
        for network in SOCIAL_NETWORKS
        if not is_empty(links.get(network))
    ]
    return org, contacts


def _complex(bag: Mapping[str, Mapping[str, Any]]) -> tuple[ComplexDto, list[DepartmentDto], list[WorkingHoursDto]]:
    label = ENTITY_LABELS[Entity.COMPLEX]
    overview, contact = bag.get("overview", {}), bag.get("contact", {})
    dto = ComplexDto(
        name=_require(label, overview, "name"),
        email=_require(label, contact, "email"),
        phone=_phone(contact),
        address=_address(contact),
        logo_url=_opt(overview, "logo_url"),
        website=_website(overview, contact),
        manager_name=_opt(overview, "manager_name"),
        business_profile=_business_profile(overview),
        legal_info=_legal(bag.get("legal", {})),
    )
    departments = [
        DepartmentDto(name=d["name"], description=d.get("description"))
        for d in overview.get("departments") or []
        if not is_empty(d.get("name"))
    ]
    hours = _working_hours("complex", dto.name, bag.get("schedule", {}))
    return dto, departments, hours


def _clinic(
    bag: Mapping[str, Mapping[str, Any]],
    include_legal: bool,
) -> tuple[ClinicDto, list[ServiceDto], list[WorkingHoursDto]]:
    label = ENTITY_LABELS[Entity.CLINIC]
    overview, contact = bag.get("overview", {}), bag.get("contact", {})
    services_step = bag.get("services", {})
    capacity_source = {**overview, **services_step}
    dto = ClinicDto(
        name=_require(label, overview, "name"),
        email=_require(label, contact, "email"),
        phone=_phone(contact),
        address=_address(contact),
        logo_url=_opt(overview, "logo_url"),
        website=_website(overview, contact),
        head_doctor_name=_opt(overview, "head_doctor_name"),
        specialization=_opt(overview, "specialization"),
        license_number=_opt(overview, "license_number"),
        capacity=Capacity(**{k: _opt(capacity_source, k) for k in Capacity.model_fields}),
        business_profile=_business_profile(overview),
        legal_info=_legal(bag.get("legal", {})) if include_legal else None,
    )
    raw_services = services_step.get("services") or overview.get("services") or []
    services = [ServiceDto.model_validate(s) for s in raw_services if not is_empty(s.get("name"))]
    hours = _working_hours("clinic", dto.name, bag.get("schedule", {}))
    return dto, services, hours


# ── Entry point ─────────────────────────────────────────────

def build_final_payload(
    plan_type: PlanType | str,
    entity_data: Mapping[Entity | str, Mapping[str, Mapping[str, Any]]],
    user_data: UserData | Mapping[str, Any],
    plan_id: str = "default-plan-id",
) -> CompleteOnboardingPayload:
    plan_type = PlanType(plan_type)
    bags = {Entity(k): v for k, v in entity_data.items()}

    user = user_data if isinstance(user_data, UserData) else UserData.model_validate(user_data)
    for field in REQUIRED_USER_FIELDS:
        if is_empty(getattr(user, field)):
            raise MissingRequiredFieldError("user", field)

    payload = CompleteOnboardingPayload(
        user_data=user,
        subscription_data=SubscriptionData(plan_type=plan_type, plan_id=plan_id),
    )
    entities = PLAN_ENTITIES[plan_type]

    if Entity.COMPANY in entities:
        payload.organization, payload.contacts = _organization(bags.get(Entity.COMPANY, {}))

    if Entity.COMPLEX in entities:
        complex_dto, departments, hours = _complex(bags.get(Entity.COMPLEX, {}))
        payload.complexes = [complex_dto]
        payload.departments = departments
        payload.working_hours.extend(hours)

    clinic_bag = bags.get(Entity.CLINIC, {})
    clinic_dto, services, hours = _clinic(clinic_bag, include_legal=plan_type == PlanType.CLINIC)
    payload.clinics = [clinic_dto]
    payload.services = services
    payload.working_hours.extend(hours)

    if plan_type == PlanType.CLINIC:
        payload.existing_complex_id = _opt(clinic_bag.get("overview", {}), "complex_id")

    return payload
