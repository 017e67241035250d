"""
Buyer identification classification for fiscal invoices.

The tax authority needs every invoice to carry the buyer's identification
together with its document type code:

- 04: RUC, 13 digits ending in the establishment suffix 001
- 05: Cédula, 10-digit natural-person id with a module-10 check digit
- 06: Passport / foreign id, anything else with 5 to 20 alphanumerics

The input arrives verbatim from a billing form, so it is normalized before
any rule is applied. Everything here is pure: no database, no network.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import StrEnum
from typing import ClassVar

from apps.common.types import Err, IdentificationString, Ok, Result

logger = logging.getLogger(__name__)

RUC_LENGTH = 13
RUC_SUFFIX = "001"
CEDULA_LENGTH = 10
PASSPORT_MIN_LENGTH = 5
PASSPORT_MAX_LENGTH = 20

# Separators buyers commonly type inside their id numbers
_SEPARATORS = re.compile(r"[\s\-./_]")
_ALPHANUMERIC = re.compile(r"^[A-Z0-9]+$")
_DIGITS = re.compile(r"^[0-9]+$")


class IdentificationType(StrEnum):
    """Identification document type with its authority code."""

    RUC = "04"
    CEDULA = "05"
    PASSPORT = "06"

    @property
    def label(self) -> str:
        return {"04": "RUC", "05": "Cédula", "06": "Passport/foreign ID"}[self.value]

    @classmethod
    def choices(cls) -> list[tuple[str, str]]:
        return [(id_type.value, id_type.label) for id_type in cls]


@dataclass(frozen=True)
class ClassifiedIdentification:
    """Normalized identification with its document type."""

    type: IdentificationType
    normalized_value: IdentificationString
    check_digit_valid: bool = True

    @property
    def type_code(self) -> str:
        return self.type.value


@dataclass
class CedulaValidationResult:
    """Result of cédula validation."""

    is_valid: bool
    error_message: str = ""
    province_code: str | None = None
    check_digit_valid: bool = False


class CedulaValidator:
    """
    Ecuadorian cédula (natural-person id) validator.

    Structure (10 digits):
    - Positions 1-2: province code (01-24, or 30 for citizens registered abroad)
    - Position 3: less than 6 for natural persons
    - Positions 4-9: sequence
    - Position 10: module-10 check digit
    """

    COEFFICIENTS: ClassVar[list[int]] = [2, 1, 2, 1, 2, 1, 2, 1, 2]
    MAX_PROVINCE = 24
    FOREIGN_PROVINCE = 30
    NATURAL_PERSON_MAX_THIRD_DIGIT = 5

    @classmethod
    def validate(cls, value: str, *, strict: bool = True) -> CedulaValidationResult:
        """
        Validate a normalized 10-digit cédula.

        With strict=False a structurally valid number (province and third
        digit) is accepted even when the check digit does not match; the
        result still reports check_digit_valid=False.
        """
        if len(value) != CEDULA_LENGTH or not _DIGITS.match(value):
            return CedulaValidationResult(is_valid=False, error_message="Cédula must be exactly 10 digits")

        province = value[:2]
        province_number = int(province)
        if not (1 <= province_number <= cls.MAX_PROVINCE or province_number == cls.FOREIGN_PROVINCE):
            return CedulaValidationResult(is_valid=False, error_message=f"Invalid province code: {province}")

        if int(value[2]) > cls.NATURAL_PERSON_MAX_THIRD_DIGIT:
            return CedulaValidationResult(
                is_valid=False,
                error_message="Third digit must be lower than 6 for natural persons",
                province_code=province,
            )

        check_digit_valid = cls.calculate_check_digit(value[:9]) == int(value[9])
        if strict and not check_digit_valid:
            return CedulaValidationResult(
                is_valid=False,
                error_message="Invalid check digit",
                province_code=province,
            )

        return CedulaValidationResult(is_valid=True, province_code=province, check_digit_valid=check_digit_valid)

    @classmethod
    def calculate_check_digit(cls, first_nine: str) -> int:
        """Module-10 check digit over the first nine digits."""
        total = 0
        for digit, coefficient in zip(first_nine, cls.COEFFICIENTS, strict=True):
            product = int(digit) * coefficient
            total += product - 9 if product > 9 else product  # noqa: PLR2004
        return (10 - total % 10) % 10


def normalize_identification(raw: str) -> str:
    """Strip whitespace and separators, uppercase letters."""
    return _SEPARATORS.sub("", raw or "").upper()


def classify_identification(raw: str, *, strict_cedula: bool | None = None) -> Result[ClassifiedIdentification, str]:
    """
    Classify a raw buyer identification.

    Args:
        raw: identification exactly as typed by the buyer
        strict_cedula: require a matching cédula check digit; defaults to
            the INVOICING_STRICT_CEDULA_CHECK setting

    Returns:
        Ok(ClassifiedIdentification) or Err(reason)
    """
    if strict_cedula is None:
        from .settings import invoicing_settings  # noqa: PLC0415

        strict_cedula = invoicing_settings.strict_cedula_check

    if not isinstance(raw, str):
        return Err("Identification must be a string")

    value = normalize_identification(raw)
    if not value:
        return Err("Identification is empty")

    if _DIGITS.match(value):
        if len(value) == RUC_LENGTH and value.endswith(RUC_SUFFIX):
            return Ok(ClassifiedIdentification(type=IdentificationType.RUC, normalized_value=value))

        if len(value) == CEDULA_LENGTH:
            cedula = CedulaValidator.validate(value, strict=strict_cedula)
            if cedula.is_valid:
                if not cedula.check_digit_valid:
                    logger.warning("⚠️ [Identification] Cédula accepted with a mismatching check digit")
                return Ok(
                    ClassifiedIdentification(
                        type=IdentificationType.CEDULA,
                        normalized_value=value,
                        check_digit_valid=cedula.check_digit_valid,
                    )
                )

    has_digit = any(char in "0123456789" for char in value)
    if has_digit and PASSPORT_MIN_LENGTH <= len(value) <= PASSPORT_MAX_LENGTH and _ALPHANUMERIC.match(value):
        return Ok(ClassifiedIdentification(type=IdentificationType.PASSPORT, normalized_value=value))

    return Err(f"Identification cannot be classified (length {len(value)})")
