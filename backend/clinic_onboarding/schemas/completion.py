"""Final onboarding payload sent to the account backend.

Shape agreed with the backend's complete-onboarding endpoint: one
optional organization, lists of complexes / clinics, and the flat
side tables (departments, services, working hours, contacts) tagged
with the entity they belong to.
"""

from pydantic import BaseModel, field_validator

from clinic_onboarding.schemas.validators import (
    validate_email,
    validate_legal_number,
    validate_phone,
    validate_year_established,
)
from clinic_onboarding.wizard.catalog import PlanType


class UserData(BaseModel):
    """Account owner.  Presence of required fields is checked at build time."""
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    password: str | None = None
    phone: str | None = None

    @field_validator("email")
    @classmethod
    def _email(cls, v: str | None) -> str | None:
        return validate_email(v) if v else v

    @field_validator("phone")
    @classmethod
    def _phone(cls, v: str | None) -> str | None:
        return validate_phone(v) if v else v


class SubscriptionData(BaseModel):
    plan_type: PlanType
    plan_id: str


class Address(BaseModel):
    street: str | None = None
    city: str | None = None
    state: str | None = None
    postal_code: str | None = None
    country: str | None = None
    google_location: str | None = None


class BusinessProfile(BaseModel):
    year_established: int | None = None
    mission: str | None = None
    vision: str | None = None
    goals: str | None = None
    overview: str | None = None
    ceo_name: str | None = None

    @field_validator("year_established")
    @classmethod
    def _year(cls, v: int | None) -> int | None:
        return validate_year_established(v) if v is not None else v


class LegalInfo(BaseModel):
    vat_number: str | None = None
    cr_number: str | None = None
    terms_conditions_url: str | None = None
    privacy_policy_url: str | None = None

    @field_validator("vat_number")
    @classmethod
    def _vat(cls, v: str | None) -> str | None:
        return validate_legal_number(v, "VAT number") if v else v

    @field_validator("cr_number")
    @classmethod
    def _cr(cls, v: str | None) -> str | None:
        return validate_legal_number(v, "CR number") if v else v


class Capacity(BaseModel):
    max_staff: int | None = None
    max_doctors: int | None = None
    max_patients: int | None = None
    session_duration: int | None = None


class OrganizationDto(BaseModel):
    name: str
    legal_name: str | None = None
    email: str
    phone: str | None = None
    address: Address | None = None
    logo_url: str | None = None
    website: str | None = None
    business_profile: BusinessProfile = BusinessProfile()
    legal_info: LegalInfo | None = None


class ComplexDto(BaseModel):
    name: str
    email: str
    phone: str | None = None
    address: Address | None = None
    logo_url: str | None = None
    website: str | None = None
    manager_name: str | None = None
    business_profile: BusinessProfile = BusinessProfile()
    legal_info: LegalInfo | None = None


class ClinicDto(BaseModel):
    name: str
    email: str
    phone: str | None = None
    address: Address | None = None
    logo_url: str | None = None
    website: str | None = None
    head_doctor_name: str | None = None
    specialization: str | None = None
    license_number: str | None = None
    capacity: Capacity = Capacity()
    business_profile: BusinessProfile = BusinessProfile()
    legal_info: LegalInfo | None = None


class DepartmentDto(BaseModel):
    name: str
    description: str | None = None


class ServiceDto(BaseModel):
    name: str
    description: str | None = None
    duration_minutes: int | None = None
    price: float | None = None


class WorkingHoursDto(BaseModel):
    entity_type: str
    entity_name: str
    day_of_week: str
    is_working_day: bool
    opening_time: str | None = None
    closing_time: str | None = None
    break_start_time: str | None = None
    break_end_time: str | None = None


class ContactDto(BaseModel):
    contact_type: str
    contact_value: str


class CompleteOnboardingPayload(BaseModel):
    user_data: UserData
    subscription_data: SubscriptionData
    organization: OrganizationDto | None = None
    complexes: list[ComplexDto] = []
    departments: list[DepartmentDto] = []
    clinics: list[ClinicDto] = []
    services: list[ServiceDto] = []
    working_hours: list[WorkingHoursDto] = []
    contacts: list[ContactDto] = []
    # Set when a clinic-only plan attaches the clinic to a complex that already exists
    existing_complex_id: str | None = None


class OnboardingResult(BaseModel):
    success: bool
    user_id: str | None = None
    subscription_id: str | None = None
    message: str | None = None
    entities: dict = {}


class CompleteRequest(BaseModel):
    user_data: UserData
    plan_id: str | None = None
