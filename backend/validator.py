# backend/validator.py
"""
Field validators

DocumentValidator is the legal-grade gate run before generation.
ConversationalValidator is the lenient check applied to each chat answer.
Both return results; neither raises for bad input.
"""

import logging
import re
from datetime import datetime
from typing import Dict, List, Optional

from errors import InvalidAmountError, InvalidDateError
from formatters import format_legal_date, parse_currency, parse_flexible_date
from models import (
    DocumentField,
    FieldCheckResult,
    FieldType,
    ValidationIssue,
    ValidationResult,
    ValidationWarning,
)

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

COMMON_INCORPORATION_STATES = [
    "delaware", "california", "new york", "texas", "florida",
    "nevada", "wyoming", "de", "ca", "ny", "tx", "fl", "nv", "wy",
]

US_STATES = [
    "alabama", "alaska", "arizona", "arkansas", "california", "colorado",
    "connecticut", "delaware", "florida", "georgia", "hawaii", "idaho",
    "illinois", "indiana", "iowa", "kansas", "kentucky", "louisiana",
    "maine", "maryland", "massachusetts", "michigan", "minnesota",
    "mississippi", "missouri", "montana", "nebraska", "nevada",
    "new hampshire", "new jersey", "new mexico", "new york",
    "north carolina", "north dakota", "ohio", "oklahoma", "oregon",
    "pennsylvania", "rhode island", "south carolina", "south dakota",
    "tennessee", "texas", "utah", "vermont", "virginia", "washington",
    "west virginia", "wisconsin", "wyoming",
]

PLACEHOLDER_ECHOES = [
    re.compile(r"^\[.*\]$"),
    re.compile(r"^_{3,}$"),
    re.compile(r"^company$", re.IGNORECASE),
    re.compile(r"^investor$", re.IGNORECASE),
    re.compile(r"^name$", re.IGNORECASE),
]

MONTH_ABBREVIATIONS = {
    "jan": "January", "feb": "February", "mar": "March", "apr": "April",
    "jun": "June", "jul": "July", "aug": "August", "sep": "September",
    "sept": "September", "oct": "October", "nov": "November", "dec": "December",
}
MONTH_NAME = re.compile(
    r"(jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec|january|february|march|april|"
    r"june|july|august|september|october|november|december)",
    re.IGNORECASE,
)
NUMERIC_DATE = re.compile(r"\d{1,2}[/\-]\d{1,2}[/\-]\d{2,4}")

LEGAL_CURRENCY_WARNING = 100_000_000
CONVERSATION_CURRENCY_CEILING = 1_000_000_000_000


def is_blank(value: Optional[str]) -> bool:
    return value is None or str(value).strip() == ""


def is_placeholder_echo(value: str) -> bool:
    """True when the value is the prompt text itself, e.g. "[Company Name]" or "____" """
    stripped = value.strip()
    return any(pattern.match(stripped) for pattern in PLACEHOLDER_ECHOES)


def is_name_field(placeholder: str) -> bool:
    lower = placeholder.lower()
    return ("company" in lower or "investor" in lower) and "name" in lower


def _shift_years(moment: datetime, years: int) -> datetime:
    try:
        return moment.replace(year=moment.year + years)
    except ValueError:
        # Feb 29 in a non-leap target year
        return moment.replace(year=moment.year + years, day=28)


class DocumentValidator:
    """
    Legal-grade field validator
    Ensures data meets requirements before document generation
    """

    def __init__(self, now: Optional[datetime] = None):
        self._now = now

    def validate(self, fields: List[DocumentField], filled_fields: Dict[str, str]) -> ValidationResult:
        """Validate every field against the candidate values, keyed by field id"""
        errors: List[ValidationIssue] = []
        warnings: List[ValidationWarning] = []

        for field in fields:
            self._validate_value(field, filled_fields.get(field.id), errors, warnings)

        valid = not errors
        logger.info("Validation %s: %d errors, %d warnings", "passed" if valid else "failed", len(errors), len(warnings))
        return ValidationResult(valid=valid, errors=errors, warnings=warnings)

    def validate_field(self, field: DocumentField, value: Optional[str]) -> ValidationResult:
        """Validate a single value for one field"""
        errors: List[ValidationIssue] = []
        warnings: List[ValidationWarning] = []
        self._validate_value(field, value, errors, warnings)
        return ValidationResult(valid=not errors, errors=errors, warnings=warnings)

    def _validate_value(self, field, value, errors, warnings) -> None:
        if is_blank(value):
            if field.required:
                errors.append(ValidationIssue(
                    field=field.placeholder,
                    message=f"{field.placeholder} is required",
                    code="REQUIRED_FIELD_MISSING",
                    suggestion=f"Please provide a value for {field.placeholder}",
                ))
            return

        if field.type == FieldType.CURRENCY:
            self._validate_currency(field, value, errors, warnings)
        elif field.type == FieldType.DATE:
            self._validate_date(field, value, errors, warnings)
        elif field.type == FieldType.TEXT:
            self._validate_text(field, value, errors, warnings)
        elif field.type == FieldType.ENUM:
            self._validate_enum(field, value, errors)

        self._validate_special_fields(field, value, errors, warnings)

    def _validate_currency(self, field, value, errors, warnings) -> None:
        try:
            amount = parse_currency(value)
        except InvalidAmountError:
            errors.append(ValidationIssue(
                field=field.placeholder,
                message="Invalid currency format",
                code="INVALID_CURRENCY",
                suggestion="Please enter a valid dollar amount (e.g., $100,000 or 100000)",
            ))
            return

        if amount <= 0:
            errors.append(ValidationIssue(
                field=field.placeholder,
                message="Amount must be positive",
                code="INVALID_AMOUNT",
                suggestion="Please enter a positive dollar amount",
            ))
            return

        if amount < 1000 and "investment" in field.placeholder.lower():
            warnings.append(ValidationWarning(
                field=field.placeholder,
                message="Investment amount seems unusually low",
                severity="medium",
            ))

        if amount > LEGAL_CURRENCY_WARNING:
            warnings.append(ValidationWarning(
                field=field.placeholder,
                message="Amount is very large, please double-check",
                severity="medium",
            ))

    def _validate_date(self, field, value, errors, warnings) -> None:
        try:
            moment = parse_flexible_date(value)
        except InvalidDateError:
            errors.append(ValidationIssue(
                field=field.placeholder,
                message="Invalid date format",
                code="INVALID_DATE",
                suggestion="Please enter a valid date (e.g., January 1, 2024 or 1/1/2024)",
            ))
            return

        now = self._now or datetime.now()
        if moment < _shift_years(now, -1):
            warnings.append(ValidationWarning(
                field=field.placeholder,
                message="Date is more than a year in the past",
                severity="low",
            ))
        if moment > _shift_years(now, 1):
            warnings.append(ValidationWarning(
                field=field.placeholder,
                message="Date is more than a year in the future",
                severity="low",
            ))

    def _validate_text(self, field, value, errors, warnings) -> None:
        if len(value.strip()) < 2:
            errors.append(ValidationIssue(
                field=field.placeholder,
                message="Value is too short",
                code="VALUE_TOO_SHORT",
                suggestion="Please provide a more complete value",
            ))
            return

        if len(value) > 500:
            warnings.append(ValidationWarning(
                field=field.placeholder,
                message="Value is very long",
                severity="low",
            ))

        if "email" in field.placeholder.lower() and not EMAIL_PATTERN.match(value.strip()):
            errors.append(ValidationIssue(
                field=field.placeholder,
                message="Invalid email format",
                code="INVALID_EMAIL",
                suggestion="Please enter a valid email address",
            ))

    def _validate_enum(self, field, value, errors) -> None:
        options = field.options or (field.validation.options if field.validation else None)
        if not options:
            return
        if value.strip().lower() not in [option.strip().lower() for option in options]:
            errors.append(ValidationIssue(
                field=field.placeholder,
                message=f"{field.placeholder} must be one of the listed options",
                code="INVALID_OPTION",
                suggestion=f"Please choose one of: {', '.join(options)}",
            ))

    def _validate_special_fields(self, field, value, errors, warnings) -> None:
        lower = field.placeholder.lower()

        if "state" in lower and "incorporation" in lower:
            if not any(state in value.lower() for state in COMMON_INCORPORATION_STATES):
                warnings.append(ValidationWarning(
                    field=field.placeholder,
                    message="Uncommon state of incorporation",
                    severity="low",
                    suggestion="Most startups incorporate in Delaware",
                ))

        if "valuation" in lower and "cap" in lower:
            try:
                amount = parse_currency(value)
            except InvalidAmountError:
                amount = None  # reported by the currency check
            if amount is not None and amount < 1_000_000:
                warnings.append(ValidationWarning(
                    field=field.placeholder,
                    message="Valuation cap seems low for a typical SAFE",
                    severity="medium",
                ))

        if is_name_field(field.placeholder) and is_placeholder_echo(value):
            errors.append(ValidationIssue(
                field=field.placeholder,
                message="Please replace placeholder with actual name",
                code="PLACEHOLDER_VALUE",
                suggestion="Enter the actual company or investor name",
            ))


def parse_lenient_date(value: str) -> Optional[datetime]:
    """Expand month abbreviations and try the flexible parser; None if it still fails"""
    normalized = value.strip()
    for abbreviation, month in MONTH_ABBREVIATIONS.items():
        normalized = re.sub(rf"\b{abbreviation}\b\.?", month, normalized, flags=re.IGNORECASE)
    try:
        return parse_flexible_date(normalized)
    except InvalidDateError:
        return None


class ConversationalValidator:
    """
    Lenient, user-friendly checks for one answer at a time

    Thresholds are looser than DocumentValidator's on purpose: a chat
    answer only has to be plausible enough to move on.
    """

    def check(self, field: DocumentField, value: Optional[str]) -> FieldCheckResult:
        if value is None or not isinstance(value, str):
            return FieldCheckResult(valid=False, error="Please provide a value.", code="REQUIRED_FIELD_MISSING")
        trimmed = value.strip()
        if not trimmed:
            return FieldCheckResult(valid=False, error="This field cannot be empty.", code="REQUIRED_FIELD_MISSING")

        lower = field.placeholder.lower()
        if "state" in lower or "jurisdiction" in lower:
            return self.check_us_state(trimmed)

        if is_name_field(field.placeholder) and is_placeholder_echo(trimmed):
            return FieldCheckResult(
                valid=False,
                error="That looks like the placeholder itself.",
                code="PLACEHOLDER_VALUE",
                suggestion="Enter the actual company or investor name",
            )

        if field.type == FieldType.TEXT:
            return self.check_text(trimmed)
        if field.type == FieldType.DATE:
            return self.check_date(trimmed)
        if field.type == FieldType.CURRENCY:
            return self.check_currency(trimmed)
        if field.type == FieldType.ENUM:
            return self.check_enum(trimmed, field.options or [])
        return FieldCheckResult(valid=True)

    def check_text(self, value: str) -> FieldCheckResult:
        if len(value) < 3:
            return FieldCheckResult(valid=False, error="Please provide at least 3 characters.", code="VALUE_TOO_SHORT")
        if len(value) > 500:
            return FieldCheckResult(valid=False, error="Please keep it under 500 characters.", code="VALUE_TOO_LONG")
        if re.fullmatch(r"(.)\1+", value):
            return FieldCheckResult(
                valid=False,
                error="Please provide a meaningful value, not just repeated characters.",
                code="REPEATED_CHARACTERS",
            )
        return FieldCheckResult(valid=True)

    def check_us_state(self, value: str) -> FieldCheckResult:
        normalized = value.lower()
        if any(state in normalized for state in US_STATES):
            return FieldCheckResult(valid=True)
        return FieldCheckResult(
            valid=False,
            error="Please enter a valid US state.",
            code="INVALID_STATE",
            suggestion=(
                "Popular choices: Delaware, California, New York, Texas. "
                "Most startups choose Delaware for its business-friendly laws."
            ),
        )

    def check_date(self, value: str) -> FieldCheckResult:
        has_digits = bool(re.search(r"\d", value))
        has_month = bool(MONTH_NAME.search(value))
        if not has_digits and not has_month:
            return FieldCheckResult(
                valid=False,
                error="Please enter a date (e.g., January 1, 2024 or 1/1/2024)",
                code="INVALID_DATE",
            )

        moment = parse_lenient_date(value)
        if moment is None:
            # still accept anything that reads like a date
            if has_digits and (has_month or NUMERIC_DATE.search(value)):
                return FieldCheckResult(valid=True)
            return FieldCheckResult(valid=False, error="Please enter a valid date", code="INVALID_DATE")

        if not 1900 <= moment.year <= 2100:
            return FieldCheckResult(valid=False, error="Please enter a date between 1900 and 2100", code="INVALID_DATE")
        return FieldCheckResult(valid=True, formatted_value=format_legal_date(moment))

    def check_currency(self, value: str) -> FieldCheckResult:
        try:
            amount = parse_currency(value)
        except InvalidAmountError:
            return FieldCheckResult(
                valid=False,
                error="Please provide a valid amount.",
                code="INVALID_CURRENCY",
                suggestion="Try formats like: 100000, $100,000, or 100000.00",
            )
        if amount < 0:
            return FieldCheckResult(valid=False, error="Amount cannot be negative.", code="INVALID_AMOUNT")
        if amount > CONVERSATION_CURRENCY_CEILING:
            return FieldCheckResult(
                valid=False,
                error="That amount seems unusually large. Please double-check.",
                code="AMOUNT_TOO_LARGE",
            )
        return FieldCheckResult(valid=True)

    def check_enum(self, value: str, options: List[str]) -> FieldCheckResult:
        if not options:
            return FieldCheckResult(valid=True)
        if value.lower() not in [option.strip().lower() for option in options]:
            return FieldCheckResult(
                valid=False,
                error=f"Please choose one of: {', '.join(options)}",
                code="INVALID_OPTION",
            )
        return FieldCheckResult(valid=True)
