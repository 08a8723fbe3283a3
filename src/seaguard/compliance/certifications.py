"""Crew certification evaluation (STCW competencies and medical fitness)."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Dict, FrozenSet, List, Optional, Sequence, Tuple, Union

from ..errors import InputValidationError
from ..models.compliance import (
    CertificationReport,
    ComplianceIssue,
    ExpiryClass,
    IssueSeverity,
)
from ..models.crew import CertificateType, Certification, CertificationStatus, CrewMember, CrewRole
from ..utils import as_utc, utcnow, whole_days_between

logger = logging.getLogger(__name__)

DEFAULT_CRITICAL_DAYS = 7
DEFAULT_WARNING_DAYS = 30

C = CertificateType
R = CrewRole


@dataclass(frozen=True)
class CertificateRequirement:
    """A required qualification satisfied by any one of ``accepted`` types."""

    name: str
    accepted: FrozenSet[CertificateType]


def _req(name: str, *types: CertificateType) -> CertificateRequirement:
    return CertificateRequirement(name=name, accepted=frozenset(types))


MEDICAL_FITNESS = _req("MEDICAL_FITNESS", C.ENG1, C.PEME, C.MEDICAL)
BASIC_SAFETY = _req("STCW_BASIC", C.STCW_BASIC)

# Held by everybody on board
COMMON_REQUIREMENTS: Tuple[CertificateRequirement, ...] = (MEDICAL_FITNESS, BASIC_SAFETY)

_DECK_WATCH = _req("DECK_WATCHKEEPING", C.OFFICER_IN_CHARGE, C.MASTER)
_ENGINE_WATCH = _req("ENGINE_WATCHKEEPING", C.ENGINEER, C.SECOND_ENGINEER, C.CHIEF_ENGINEER)

ROLE_CERTIFICATE_REQUIREMENTS: Dict[CrewRole, Tuple[CertificateRequirement, ...]] = {
    R.MASTER: (_req("MASTER", C.MASTER), _req("GMDSS", C.GMDSS), _req("STCW_ADVANCED", C.STCW_ADVANCED)),
    R.CHIEF_OFFICER: (_DECK_WATCH, _req("STCW_ADVANCED", C.STCW_ADVANCED)),
    R.SECOND_OFFICER: (_DECK_WATCH,),
    R.THIRD_OFFICER: (_DECK_WATCH,),
    R.DECK_OFFICER: (_DECK_WATCH,),
    R.CHIEF_ENGINEER: (_req("CHIEF_ENGINEER", C.CHIEF_ENGINEER), _req("STCW_ADVANCED", C.STCW_ADVANCED)),
    R.SECOND_ENGINEER: (_req("SECOND_ENGINEER", C.SECOND_ENGINEER, C.CHIEF_ENGINEER),),
    R.THIRD_ENGINEER: (_ENGINE_WATCH,),
    R.ENGINE_OFFICER: (_ENGINE_WATCH,),
    R.ELECTRO_TECHNICAL_OFFICER: (_req("ELECTRO_TECHNICAL", C.ENGINEER, C.CHIEF_ENGINEER),),
    R.CHIEF_STEWARD: (_req("STCW_SUPPORT", C.STCW_SUPPORT),),
    R.STEWARD: (_req("STCW_SUPPORT", C.STCW_SUPPORT),),
    R.COOK: (_req("STCW_SUPPORT", C.STCW_SUPPORT),),
}

# Statuses that count as holding the certificate
HELD_STATUSES = frozenset({CertificationStatus.VALID, CertificationStatus.PENDING_VERIFICATION})


def required_certificates(role: CrewRole) -> Tuple[CertificateRequirement, ...]:
    """Every qualification a crew member in ``role`` must hold."""
    return COMMON_REQUIREMENTS + ROLE_CERTIFICATE_REQUIREMENTS.get(role, ())


def classify_expiry(
    expiry_date: Union[date, datetime],
    reference: Optional[datetime] = None,
    critical_days: int = DEFAULT_CRITICAL_DAYS,
    warning_days: int = DEFAULT_WARNING_DAYS,
) -> Tuple[ExpiryClass, int]:
    """Classify an expiry date against a reference time.

    Expiry at or before the reference is expired; within ``critical_days``
    is critical; within ``warning_days`` is a warning.

    Returns:
        (class, whole days remaining)
    """
    ref = as_utc(reference or utcnow())
    expiry = as_utc(expiry_date)
    remaining = expiry - ref
    days = whole_days_between(ref, expiry)

    if remaining <= timedelta(0):
        return ExpiryClass.EXPIRED, days
    if remaining <= timedelta(days=critical_days):
        return ExpiryClass.CRITICAL, days
    if remaining <= timedelta(days=warning_days):
        return ExpiryClass.WARNING, days
    return ExpiryClass.OK, days


def parse_certificate_type(value: Union[str, CertificateType, None]) -> CertificateType:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise InputValidationError("type", "REQUIRED_FIELD_MISSING", "Certification type is required")
    if isinstance(value, CertificateType):
        return value
    try:
        return CertificateType(value.strip().upper())
    except ValueError as e:
        allowed = ", ".join(t.value for t in CertificateType)
        raise InputValidationError(
            "type",
            "INVALID_CERTIFICATE_TYPE",
            f"Invalid certification type. Must be one of: {allowed}",
        ) from e


def validate_new_certification(
    cert_type: Union[str, CertificateType, None],
    issue_date: Optional[Union[date, datetime]],
    expiry_date: Optional[Union[date, datetime]],
    now: Optional[datetime] = None,
) -> CertificateType:
    """Intake checks for a new certificate.

    Raises:
        InputValidationError: Missing/unknown type, missing dates, expiry
            not strictly in the future, or issue date after expiry.
    """
    parsed = parse_certificate_type(cert_type)
    if expiry_date is None:
        raise InputValidationError(
            "expiry_date", "REQUIRED_FIELD_MISSING", "Certification expiry date is required"
        )
    if issue_date is None:
        raise InputValidationError(
            "issue_date", "REQUIRED_FIELD_MISSING", "Certification issue date is required"
        )
    current = as_utc(now or utcnow())
    if as_utc(expiry_date) <= current:
        raise InputValidationError(
            "expiry_date",
            "EXPIRY_NOT_IN_FUTURE",
            "Certification expiry date must be in the future",
        )
    if as_utc(issue_date) > as_utc(expiry_date):
        raise InputValidationError(
            "issue_date", "ISSUE_AFTER_EXPIRY", "Certification issue date is after its expiry date"
        )
    return parsed


def _issue(
    crew: CrewMember,
    code: str,
    message: str,
    severity: IssueSeverity,
    certificate_type: str,
) -> ComplianceIssue:
    return ComplianceIssue(
        code=code,
        message=message,
        severity=severity,
        crew_member_id=str(crew.id),
        crew_name=crew.display_name,
        certificate_type=certificate_type,
        role=crew.role.value,
    )


def is_current(cert: Certification, reference: Optional[datetime] = None) -> bool:
    """Held (valid or pending verification) and not yet expired."""
    ref = as_utc(reference or utcnow())
    return cert.status in HELD_STATUSES and as_utc(cert.expiry_date) > ref


def evaluate_crew_member(
    crew: CrewMember,
    reference: datetime,
    critical_days: int = DEFAULT_CRITICAL_DAYS,
    warning_days: int = DEFAULT_WARNING_DAYS,
) -> Tuple[List[ComplianceIssue], List[ComplianceIssue], List[ComplianceIssue]]:
    """Evaluate one crew member. Returns (errors, critical, warnings)."""
    errors: List[ComplianceIssue] = []
    critical: List[ComplianceIssue] = []
    warnings: List[ComplianceIssue] = []

    for cert in crew.certifications:
        cert_type = cert.type.value
        if cert.status == CertificationStatus.REVOKED:
            continue

        expiry_class, days = classify_expiry(cert.expiry_date, reference, critical_days, warning_days)
        expiry_text = as_utc(cert.expiry_date).date().isoformat()

        if cert.status == CertificationStatus.EXPIRED or expiry_class == ExpiryClass.EXPIRED:
            errors.append(_issue(
                crew, "CERTIFICATE_EXPIRED",
                f"{cert_type} certificate expired on {expiry_text}",
                IssueSeverity.ERROR, cert_type,
            ))
            continue

        if expiry_class == ExpiryClass.CRITICAL:
            critical.append(_issue(
                crew, "CERTIFICATE_EXPIRING_CRITICAL",
                f"{cert_type} certificate expires in {days} days ({expiry_text})",
                IssueSeverity.CRITICAL, cert_type,
            ))
        elif expiry_class == ExpiryClass.WARNING:
            warnings.append(_issue(
                crew, "CERTIFICATE_EXPIRING_SOON",
                f"{cert_type} certificate expires in {days} days ({expiry_text})",
                IssueSeverity.WARNING, cert_type,
            ))

        if cert.status == CertificationStatus.PENDING_VERIFICATION:
            warnings.append(_issue(
                crew, "CERTIFICATE_UNVERIFIED",
                f"{cert_type} certificate is pending verification",
                IssueSeverity.WARNING, cert_type,
            ))

    for requirement in required_certificates(crew.role):
        held = [
            c for c in crew.certifications
            if c.type in requirement.accepted and c.status != CertificationStatus.REVOKED
        ]
        if not held:
            accepted = ", ".join(sorted(t.value for t in requirement.accepted))
            errors.append(_issue(
                crew, "REQUIRED_CERTIFICATE_MISSING",
                f"{crew.role.value} requires {requirement.name} (one of: {accepted})",
                IssueSeverity.ERROR, requirement.name,
            ))
        # Held but expired is already reported above

    return errors, critical, warnings


def evaluate_crew_certifications(
    crew: Sequence[CrewMember],
    reference: Optional[datetime] = None,
    critical_days: int = DEFAULT_CRITICAL_DAYS,
    warning_days: int = DEFAULT_WARNING_DAYS,
) -> CertificationReport:
    """Evaluate certificate freshness and role coverage for a roster.

    Only expired (or missing) certificates block compliance; critical
    and warning findings are informational.
    """
    ref = as_utc(reference or utcnow())
    report = CertificationReport(compliant=True, evaluated_crew=len(crew))

    for member in crew:
        errors, critical, warnings = evaluate_crew_member(member, ref, critical_days, warning_days)
        report.errors.extend(errors)
        report.critical.extend(critical)
        report.warnings.extend(warnings)

    report.compliant = not report.errors
    logger.debug(
        "Certification check: %d crew, %d errors, %d critical, %d warnings",
        len(crew), len(report.errors), len(report.critical), len(report.warnings),
    )
    return report
