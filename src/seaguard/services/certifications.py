"""Certificate lifecycle: intake, verification, revocation and expiry reporting."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Dict, List, Mapping, Optional
from uuid import UUID

from ..audit.ledger import AuditLedger
from ..compliance.certifications import (
    DEFAULT_CRITICAL_DAYS,
    DEFAULT_WARNING_DAYS,
    classify_expiry,
    validate_new_certification,
)
from ..errors import ComplianceGateError, InputValidationError, NotFoundError
from ..models.audit import AuditAction, AuditEntityType, Principal
from ..models.compliance import ComplianceIssue, ExpiringCertificate, ExpiryClass
from ..models.crew import Certification, CertificationStatus
from ..storage.base import ComplianceStore
from ..utils import as_utc, parse_datetime, utcnow
from .base import AuditedService

logger = logging.getLogger(__name__)

E = AuditEntityType.CERTIFICATION

MIN_EXPIRY_WINDOW_DAYS = 1
MAX_EXPIRY_WINDOW_DAYS = 365


def _snapshot(cert: Certification) -> Dict[str, Any]:
    return cert.model_dump(mode="json", exclude={"created_at", "updated_at"})


class CertificationService(AuditedService):
    def __init__(
        self,
        db: ComplianceStore,
        ledger: AuditLedger,
        critical_days: int = DEFAULT_CRITICAL_DAYS,
        warning_days: int = DEFAULT_WARNING_DAYS,
    ):
        super().__init__(db, ledger)
        self.critical_days = critical_days
        self.warning_days = warning_days

    @classmethod
    def from_settings(cls, db, ledger, settings) -> "CertificationService":
        return cls(db, ledger, settings.cert_critical_days, settings.cert_warning_days)

    async def _get_or_raise(self, cert_id: UUID) -> Certification:
        cert = await self.db.get_certification(cert_id)
        if cert is None:
            raise NotFoundError("certification", str(cert_id))
        return cert

    async def create(
        self,
        crew_id: UUID,
        data: Mapping[str, Any],
        principal: Optional[Principal] = None,
    ) -> Certification:
        """Record a new certificate for a crew member.

        Args:
            crew_id: Holder of the certificate.
            data: ``type``, ``issue_date``, ``expiry_date`` and optional
                ``certificate_number``, ``issuing_authority``, ``issuing_country``.

        Raises:
            InputValidationError: Missing or unknown type, missing or
                malformed dates, expiry not strictly in the future.
            NotFoundError: Unknown crew member.
        """
        try:
            crew = await self.db.get_crew_member(crew_id)
            if crew is None:
                raise NotFoundError("crew", str(crew_id))

            expiry = data.get("expiry_date")
            issue = data.get("issue_date")
            cert_type = validate_new_certification(
                data.get("type"),
                parse_datetime(issue, "issue_date") if issue else None,
                parse_datetime(expiry, "expiry_date") if expiry else None,
                utcnow(),
            )
            cert = Certification(
                crew_id=crew_id,
                type=cert_type,
                certificate_number=data.get("certificate_number"),
                issuing_authority=data.get("issuing_authority"),
                issuing_country=data.get("issuing_country"),
                issue_date=parse_datetime(issue, "issue_date"),
                expiry_date=parse_datetime(expiry, "expiry_date"),
                status=CertificationStatus.VALID,
            )
            stored = await self.db.insert_certification(cert)
        except Exception as e:
            await self._log_failure(E, "", AuditAction.CERTIFICATION_CREATE, principal, e)
            raise

        await self.ledger.log(
            E,
            stored.id,
            AuditAction.CERTIFICATION_CREATE,
            principal,
            entity_name=stored.type.value,
            new_value=_snapshot(stored),
            details={"crew_id": str(crew_id)},
        )
        return stored

    async def verify(self, cert_id: UUID, principal: Optional[Principal] = None) -> Certification:
        """Confirm a certificate; revoked or expired certificates cannot be verified."""
        details: Dict[str, Any] = {}
        try:
            cert = await self._get_or_raise(cert_id)
            if cert.status == CertificationStatus.REVOKED:
                raise ComplianceGateError(
                    f"Certification {cert_id} is revoked and cannot be verified",
                    [ComplianceIssue(code="CERTIFICATE_REVOKED", message="Certificate has been revoked",
                                     certificate_type=cert.type.value)],
                )
            now = utcnow()
            expiry_class, days = classify_expiry(cert.expiry_date, now, self.critical_days, self.warning_days)
            if cert.status == CertificationStatus.EXPIRED or expiry_class == ExpiryClass.EXPIRED:
                raise ComplianceGateError(
                    f"Certification {cert_id} has expired and cannot be verified",
                    [ComplianceIssue(code="CERTIFICATE_EXPIRED", message="Certificate has expired",
                                     certificate_type=cert.type.value)],
                )
            if expiry_class in (ExpiryClass.CRITICAL, ExpiryClass.WARNING):
                details["expiry_warning"] = f"Certificate expires in {days} days"
                details["severity"] = expiry_class.value
            updated = await self.db.update_certification(
                cert_id, {"status": CertificationStatus.VALID, "verified_at": now}
            )
        except Exception as e:
            await self._log_failure(E, cert_id, AuditAction.CERTIFICATION_VERIFY, principal, e)
            raise

        await self.ledger.log(
            E,
            cert_id,
            AuditAction.CERTIFICATION_VERIFY,
            principal,
            previous_value={"status": cert.status.value},
            new_value={"status": updated.status.value},
            details=details,
        )
        return updated

    async def revoke(
        self,
        cert_id: UUID,
        reason: str,
        principal: Optional[Principal] = None,
    ) -> Certification:
        """Revoke a certificate. Terminal; a reason is mandatory.

        Raises:
            InputValidationError: Blank reason.
            ComplianceGateError: Already revoked.
        """
        try:
            if not reason or not reason.strip():
                raise InputValidationError(
                    "reason", "REQUIRED_FIELD_MISSING", "A revocation reason is required"
                )
            cert = await self._get_or_raise(cert_id)
            if cert.status == CertificationStatus.REVOKED:
                raise ComplianceGateError(
                    f"Certification {cert_id} is already revoked",
                    [ComplianceIssue(code="CERTIFICATE_ALREADY_REVOKED",
                                     message="Revocation is terminal", certificate_type=cert.type.value)],
                )
            updated = await self.db.update_certification(
                cert_id,
                {
                    "status": CertificationStatus.REVOKED,
                    "revoked_at": utcnow(),
                    "revocation_reason": reason.strip(),
                },
            )
        except Exception as e:
            await self._log_failure(E, cert_id, AuditAction.CERTIFICATION_REVOKE, principal, e)
            raise

        await self.ledger.log(
            E,
            cert_id,
            AuditAction.CERTIFICATION_REVOKE,
            principal,
            previous_value=_snapshot(cert),
            new_value=_snapshot(updated),
            reason=reason.strip(),
        )
        return updated

    async def expiring(
        self, within_days: Any = 30, principal: Optional[Principal] = None
    ) -> List[ExpiringCertificate]:
        """VALID certificates expiring within ``within_days`` (1..365), soonest first."""
        try:
            try:
                days = int(within_days)
            except (TypeError, ValueError) as e:
                raise InputValidationError("within_days", "INVALID_NUMBER", "within_days must be an integer") from e
            if not MIN_EXPIRY_WINDOW_DAYS <= days <= MAX_EXPIRY_WINDOW_DAYS:
                raise InputValidationError(
                    "within_days",
                    "INVALID_WINDOW",
                    f"within_days must be between {MIN_EXPIRY_WINDOW_DAYS} and {MAX_EXPIRY_WINDOW_DAYS}",
                )
            now = utcnow()
            certs = await self.db.list_valid_certifications_expiring(now, now + timedelta(days=days))
        except Exception as e:
            await self._log_failure(E, "", AuditAction.CERTIFICATIONS_EXPIRY_CHECK, principal, e)
            raise

        results = []
        for cert in sorted(certs, key=lambda c: as_utc(c.expiry_date)):
            expiry_class, remaining = classify_expiry(
                cert.expiry_date, now, self.critical_days, self.warning_days
            )
            results.append(ExpiringCertificate(
                id=cert.id,
                crew_id=cert.crew_id,
                type=cert.type.value,
                expiry_date=cert.expiry_date,
                days_until_expiry=remaining,
                severity=ExpiryClass.CRITICAL if expiry_class == ExpiryClass.CRITICAL else ExpiryClass.WARNING,
            ))

        await self.ledger.log(
            E,
            "",
            AuditAction.CERTIFICATIONS_EXPIRY_CHECK,
            principal,
            details={"within_days": days, "count": len(results)},
        )
        return results
