"""
Input normalisation and validation for registration and patient profiles.
"""

import re
from typing import Optional

from email_validator import EmailNotValidError, validate_email

BRAZIL_COUNTRY_CODE = "55"
BRAZIL_MAX_NATIONAL_DIGITS = 11

_NON_DIGITS = re.compile(r"\D")


def only_digits(value: Optional[str]) -> str:
    return _NON_DIGITS.sub("", str(value or ""))


def normalize_email(value: Optional[str]) -> str:
    return str(value or "").strip().lower()


def is_valid_email(value: Optional[str]) -> bool:
    """Syntax check only; deliverability is not looked up."""
    if not value:
        return False
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def _cpf_check_digit(digits: str, weight: int) -> int:
    total = sum(int(d) * (weight - i) for i, d in enumerate(digits))
    remainder = (total * 10) % 11
    return 0 if remainder == 10 else remainder


def is_valid_cpf(value: Optional[str]) -> bool:
    """Validate the two CPF check digits (mod 11)."""
    cpf = only_digits(value)
    if len(cpf) != 11 or cpf == cpf[0] * 11:
        return False
    first = _cpf_check_digit(cpf[:9], 10)
    second = _cpf_check_digit(cpf[:10], 11)
    return first == int(cpf[9]) and second == int(cpf[10])


def format_cpf(value: Optional[str]) -> str:
    """``52998224725`` -> ``529.982.247-25``; anything that is not 11 digits is returned as digits."""
    cpf = only_digits(value)
    if len(cpf) != 11:
        return cpf
    return f"{cpf[:3]}.{cpf[3:6]}.{cpf[6:9]}-{cpf[9:]}"


def extract_brazil_national_digits(value: Optional[str]) -> str:
    digits = only_digits(value)
    if not digits:
        return ""

    if digits.startswith("00"):
        digits = digits[2:]

    if digits.startswith(BRAZIL_COUNTRY_CODE):
        if len(digits) == len(BRAZIL_COUNTRY_CODE):
            return ""
        if len(digits) > BRAZIL_MAX_NATIONAL_DIGITS:
            digits = digits[len(BRAZIL_COUNTRY_CODE):]

    return digits[:BRAZIL_MAX_NATIONAL_DIGITS]


def normalize_brazil_phone(value: Optional[str]) -> str:
    """Return ``+55`` followed by the national digits, or ``""`` when there are none."""
    national = extract_brazil_national_digits(value)
    if not national:
        return ""
    return f"+{BRAZIL_COUNTRY_CODE}{national}"
