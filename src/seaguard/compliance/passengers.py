"""Passenger field validation and manifest-level aggregation (IMO FAL Form 5)."""

from __future__ import annotations

import logging
import re
from datetime import date, timedelta
from typing import List, Optional, Sequence, Tuple

from ..models.compliance import ComplianceIssue, IssueSeverity, ManifestValidationResult
from ..models.passenger import PassengerFields
from ..utils import age_on

logger = logging.getLogger(__name__)

DEFAULT_MINIMUM_AGE = 18
DEFAULT_PASSPORT_WARNING_DAYS = 30

REQUIRED_FIELDS: Tuple[Tuple[str, str], ...] = (
    # Personal details
    ("family_name", "Family name is required"),
    ("given_names", "Given names are required"),
    ("date_of_birth", "Date of birth is required"),
    ("nationality", "Nationality is required"),
    ("gender", "Gender is required"),
    # Identity document
    ("identity_doc_type", "Document type is required"),
    ("identity_doc_number", "Document number is required"),
    ("identity_doc_expiry", "Document expiry date is required"),
    # Voyage
    ("port_of_embarkation", "Port of embarkation is required"),
    ("port_of_disembarkation", "Port of disembarkation is required"),
)

PASSPORT_PATTERN = re.compile(r"^[A-Z0-9]{6,9}$")
NATIONAL_ID_MIN_LENGTH = 5


def _error(field: str, code: str, message: str) -> ComplianceIssue:
    return ComplianceIssue(field=field, code=code, message=message, severity=IssueSeverity.ERROR)


def validate_required_fields(passenger: PassengerFields) -> List[ComplianceIssue]:
    errors = []
    for field, message in REQUIRED_FIELDS:
        if field == "identity_doc_number" and passenger.identity_doc_unreadable:
            continue
        value = getattr(passenger, field)
        if value is None or (isinstance(value, str) and not value.strip()):
            errors.append(_error(field, "REQUIRED_FIELD_MISSING", message))
    return errors


def validate_document_number(doc_type: str, doc_number: str) -> Optional[ComplianceIssue]:
    """Basic per-document-type format check."""
    if not doc_number or not doc_number.strip():
        return _error("identity_doc_number", "INVALID_DOCUMENT_NUMBER", "Document number cannot be empty")

    if doc_type == "PASSPORT" and not PASSPORT_PATTERN.match(doc_number):
        return _error(
            "identity_doc_number",
            "INVALID_PASSPORT_FORMAT",
            "Passport must be 6-9 characters (letters and numbers)",
        )

    if doc_type == "NATIONAL_ID" and len(doc_number) < NATIONAL_ID_MIN_LENGTH:
        return _error(
            "identity_doc_number", "INVALID_NATIONAL_ID_FORMAT", "National ID appears too short"
        )

    return None


def validate_document_expiry(
    expiry: date,
    sailing_date: date,
    warning_days: int = DEFAULT_PASSPORT_WARNING_DAYS,
) -> Tuple[Optional[ComplianceIssue], Optional[ComplianceIssue]]:
    """Document must still be valid on the sailing date.

    Returns:
        (error, warning) - warning when the document lapses within
        ``warning_days`` after sailing.
    """
    if expiry < sailing_date:
        return (
            _error(
                "identity_doc_expiry",
                "DOCUMENT_EXPIRED",
                f"Identity document expired ({expiry.isoformat()}) before sailing date",
            ),
            None,
        )
    if expiry <= sailing_date + timedelta(days=warning_days):
        days = (expiry - sailing_date).days
        return (
            None,
            ComplianceIssue(
                field="identity_doc_expiry",
                code="DOCUMENT_EXPIRING_SOON",
                message=f"Identity document expires {days} days after sailing - recommend renewal",
                severity=IssueSeverity.WARNING,
            ),
        )
    return None, None


def validate_minimum_age(
    date_of_birth: date,
    on: date,
    minimum_age: int = DEFAULT_MINIMUM_AGE,
) -> Optional[ComplianceIssue]:
    if date_of_birth > on:
        return _error("date_of_birth", "INVALID_DATE", "Date of birth is in the future")
    if age_on(date_of_birth, on) < minimum_age:
        return _error(
            "date_of_birth",
            "MINIMUM_AGE_NOT_MET",
            f"Passenger must be at least {minimum_age} years old",
        )
    return None


def validate_passenger(
    passenger: PassengerFields,
    sailing_date: date,
    minimum_age: int = DEFAULT_MINIMUM_AGE,
    warning_days: int = DEFAULT_PASSPORT_WARNING_DAYS,
) -> Tuple[List[ComplianceIssue], List[ComplianceIssue]]:
    """All field checks for one passenger. Returns (errors, warnings)."""
    errors = validate_required_fields(passenger)
    warnings: List[ComplianceIssue] = []

    if passenger.identity_doc_expiry:
        error, warning = validate_document_expiry(
            passenger.identity_doc_expiry, sailing_date, warning_days
        )
        if error:
            errors.append(error)
        if warning:
            warnings.append(warning)

    if passenger.identity_doc_unreadable:
        errors.append(_error(
            "identity_doc_number",
            "DOCUMENT_NUMBER_UNREADABLE",
            "Stored document number could not be decrypted; re-enter it",
        ))
    elif passenger.identity_doc_type and passenger.identity_doc_number:
        doc_error = validate_document_number(passenger.identity_doc_type, passenger.identity_doc_number)
        if doc_error:
            errors.append(doc_error)

    if passenger.date_of_birth:
        age_error = validate_minimum_age(passenger.date_of_birth, sailing_date, minimum_age)
        if age_error:
            errors.append(age_error)

    return errors, warnings


def _prefixed(issue: ComplianceIssue, prefix: str) -> ComplianceIssue:
    return issue.model_copy(update={"field": f"{prefix}.{issue.field}"})


def validate_manifest(
    passengers: Sequence[PassengerFields],
    sailing_date: date,
    minimum_age: int = DEFAULT_MINIMUM_AGE,
    warning_days: int = DEFAULT_PASSPORT_WARNING_DAYS,
) -> ManifestValidationResult:
    """Validate every passenger and aggregate the findings.

    Field names are prefixed with ``passengers[<index>]`` so each finding
    points at the record to fix. Never raises on bad data.
    """
    all_errors: List[ComplianceIssue] = []
    all_warnings: List[ComplianceIssue] = []

    if not passengers:
        all_errors.append(
            _error("passengers", "NO_PASSENGERS", "Manifest must contain at least one passenger")
        )

    for index, passenger in enumerate(passengers):
        prefix = f"passengers[{index}]"
        errors, warnings = validate_passenger(passenger, sailing_date, minimum_age, warning_days)
        all_errors.extend(_prefixed(e, prefix) for e in errors)
        all_warnings.extend(_prefixed(w, prefix) for w in warnings)

    logger.debug(
        "Manifest validation: %d passengers, %d errors, %d warnings",
        len(passengers), len(all_errors), len(all_warnings),
    )
    return ManifestValidationResult(
        valid=not all_errors,
        errors=all_errors,
        warnings=all_warnings,
    )
