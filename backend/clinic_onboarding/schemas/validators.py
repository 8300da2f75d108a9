"""Field rules shared by the onboarding payload models.

The forms accept these values loosely while the user types; the rules
below are applied once, when the final payload is assembled.
"""

import re
from datetime import date

EMAIL_REGEX = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
# Optional leading "+", no leading zero, up to 16 digits
PHONE_REGEX = re.compile(r"^\+?[1-9]\d{0,15}$")
LEGAL_NUMBER_REGEX = re.compile(r"^[A-Za-z0-9/-]{5,}$")

MIN_YEAR_ESTABLISHED = 1800


def validate_email(value: str) -> str:
    """Trim and lower-case an email; uniqueness is checked on this form.

    Raises:
        ValueError: If the address is malformed
    """
    value = value.strip().lower()
    if len(value) > 254:
        raise ValueError("Email address is too long")
    if not EMAIL_REGEX.match(value):
        raise ValueError("Please enter a valid email")
    return value


def validate_phone(value: str) -> str:
    """Drop spaces, dashes and parentheses, then check the digits."""
    value = re.sub(r"[\s()-]", "", value)
    if not PHONE_REGEX.match(value):
        raise ValueError("Please enter a valid phone number")
    return value


def validate_legal_number(value: str, label: str) -> str:
    """VAT and commercial registration numbers: at least 5 characters, no spaces."""
    value = value.strip()
    if not LEGAL_NUMBER_REGEX.match(value):
        raise ValueError(f"{label} must be at least 5 letters or digits")
    return value


def validate_year_established(value: int) -> int:
    current = date.today().year
    if not MIN_YEAR_ESTABLISHED <= value <= current:
        raise ValueError(f"Year established must be between {MIN_YEAR_ESTABLISHED} and {current}")
    return value
