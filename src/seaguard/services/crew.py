"""Crew intake, roster status, vessel assignment and removal."""

from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional, Union
from uuid import UUID

from pydantic import ValidationError

from ..audit.ledger import AuditLedger
from ..compliance.certifications import (
    DEFAULT_CRITICAL_DAYS,
    DEFAULT_WARNING_DAYS,
    evaluate_crew_certifications,
    evaluate_crew_member,
)
from ..compliance.safe_manning import authoritative_document, evaluate_safe_manning
from ..errors import ComplianceGateError, InputValidationError, NotFoundError
from ..models.audit import AuditAction, AuditEntityType, Principal
from ..models.compliance import ComplianceIssue, RosterStatus, SafeManningResult
from ..models.crew import CrewIntakeRequest, CrewMember
from ..models.vessel import Vessel
from ..security.crypto import FieldCipher
from ..storage.base import ComplianceStore
from ..utils import utcnow
from ..version import RULESET_VERSION
from .base import AuditedService
from .passengers import input_error_from

logger = logging.getLogger(__name__)

E = AuditEntityType.CREW

INTAKE_REQUIRED = ("family_name", "given_names", "identification_number")


class CrewService(AuditedService):
    def __init__(
        self,
        db: ComplianceStore,
        ledger: AuditLedger,
        cipher: FieldCipher,
        critical_days: int = DEFAULT_CRITICAL_DAYS,
        warning_days: int = DEFAULT_WARNING_DAYS,
    ):
        super().__init__(db, ledger)
        self.cipher = cipher
        self.critical_days = critical_days
        self.warning_days = warning_days

    @classmethod
    def from_settings(cls, db, ledger, cipher, settings) -> "CrewService":
        return cls(db, ledger, cipher, settings.cert_critical_days, settings.cert_warning_days)

    def snapshot(self, member: CrewMember) -> dict:
        """Audit-safe dump with the identification number masked."""
        data = member.model_dump(
            mode="json", exclude={"certifications", "created_at", "updated_at", "deleted_at"}
        )
        data["identification_number"] = self.cipher.safe_mask(member.identification_number)
        return data

    async def _vessel_or_raise(self, vessel_id: UUID) -> Vessel:
        vessel = await self.db.get_vessel(vessel_id)
        if vessel is None:
            raise NotFoundError("vessel", str(vessel_id))
        return vessel

    async def _crew_or_raise(self, crew_id: UUID) -> CrewMember:
        crew = await self.db.get_crew_member(crew_id)
        if crew is None:
            raise NotFoundError("crew", str(crew_id))
        return crew

    async def _safe_manning(self, vessel: Vessel, crew: List[CrewMember]) -> SafeManningResult:
        """Evaluate against the latest Safe Manning Document, else tonnage."""
        document = authoritative_document(await self.db.list_safe_manning_documents(vessel.id))
        return evaluate_safe_manning(
            crew,
            requirements=document.roles if document else None,
            gross_tonnage=vessel.gross_tonnage,
        )

    async def roster_status(self, vessel_id: UUID, principal: Optional[Principal] = None) -> RosterStatus:
        try:
            vessel = await self._vessel_or_raise(vessel_id)
            crew = await self.db.list_vessel_crew(vessel_id)
            manning = await self._safe_manning(vessel, crew)
            certifications = evaluate_crew_certifications(
                crew, utcnow(), self.critical_days, self.warning_days
            )
        except Exception as e:
            await self._log_failure(AuditEntityType.VESSEL, vessel_id, AuditAction.CREW_ROSTER_READ, principal, e)
            raise

        status = RosterStatus(
            vessel_id=vessel_id,
            compliant=manning.compliant and certifications.compliant,
            safe_manning=manning,
            certifications=certifications,
        )
        await self.ledger.log(
            AuditEntityType.VESSEL,
            vessel_id,
            AuditAction.CREW_ROSTER_READ,
            principal,
            entity_name=vessel.name,
            details={
                "crew_count": len(crew),
                "compliant": status.compliant,
                "source": manning.source,
                "ruleset": RULESET_VERSION,
            },
        )
        return status

    async def _assignment_violations(
        self, member: CrewMember, vessel: Vessel
    ) -> tuple[List[ComplianceIssue], SafeManningResult, int]:
        """Manning and certificate violations if ``member`` joined ``vessel``."""
        roster = [c for c in await self.db.list_vessel_crew(vessel.id) if c.id != member.id]
        prospective = roster + [member]
        manning = await self._safe_manning(vessel, prospective)
        cert_errors, _, _ = evaluate_crew_member(
            member, utcnow(), self.critical_days, self.warning_days
        )
        return manning.errors + cert_errors, manning, len(prospective)

    async def create(
        self,
        request: Union[CrewIntakeRequest, Mapping[str, Any]],
        principal: Optional[Principal] = None,
    ) -> CrewMember:
        """Register an unassigned seafarer, encrypting the identification number.

        New crew join a vessel through ``assign_to_vessel`` once their
        certificates are on file.

        Raises:
            InputValidationError: Missing name, identification number or role.
        """
        try:
            if not isinstance(request, CrewIntakeRequest):
                try:
                    request = CrewIntakeRequest.model_validate(dict(request))
                except ValidationError as e:
                    raise input_error_from(e) from e
            for name in INTAKE_REQUIRED:
                if not getattr(request, name).strip():
                    raise InputValidationError(name, "REQUIRED_FIELD_MISSING", f"{name} is required")

            member = CrewMember(
                family_name=request.family_name.strip(),
                given_names=request.given_names.strip(),
                role=request.role,
                nationality=request.nationality,
                date_of_birth=request.date_of_birth,
                identification_number=self.cipher.encrypt(request.identification_number.strip()),
            )
            stored = await self.db.insert_crew_member(member)
        except Exception as e:
            await self._log_failure(E, "", AuditAction.CREW_CREATE, principal, e)
            raise

        await self.ledger.log(
            E,
            stored.id,
            AuditAction.CREW_CREATE,
            principal,
            entity_name=stored.display_name,
            new_value=self.snapshot(stored),
            details={"role": stored.role.value},
        )
        return stored

    async def assign_to_vessel(
        self,
        crew_id: UUID,
        vessel_id: UUID,
        principal: Optional[Principal] = None,
    ) -> CrewMember:
        """Assign a crew member if the resulting roster stays compliant.

        The prospective roster (current crew plus this member) must meet
        safe manning, and the member must hold current certificates for
        their role.

        Raises:
            ComplianceGateError: With every manning and certificate violation.
        """
        try:
            member = await self._crew_or_raise(crew_id)
            vessel = await self._vessel_or_raise(vessel_id)
            violations, manning, roster_size = await self._assignment_violations(member, vessel)
            if violations:
                raise ComplianceGateError(
                    f"Assigning {member.display_name} to {vessel.name} violates safe manning or "
                    f"certification requirements",
                    violations,
                )
            updated = await self.db.update_crew_member(crew_id, {"vessel_id": vessel_id})
        except Exception as e:
            await self._log_failure(E, crew_id, AuditAction.CREW_ASSIGN_VESSEL, principal, e)
            raise

        await self.ledger.log(
            E,
            crew_id,
            AuditAction.CREW_ASSIGN_VESSEL,
            principal,
            entity_name=updated.display_name,
            previous_value={"vessel_id": str(member.vessel_id) if member.vessel_id else None},
            new_value={"vessel_id": str(vessel_id)},
            details={"roster_size": roster_size, "source": manning.source},
        )
        return updated

    async def remove(
        self,
        crew_id: UUID,
        principal: Optional[Principal] = None,
        reason: Optional[str] = None,
    ) -> CrewMember:
        """Soft delete; the record is kept for regulatory retention."""
        try:
            await self._crew_or_raise(crew_id)
            updated = await self.db.update_crew_member(crew_id, {"deleted_at": utcnow()})
        except Exception as e:
            await self._log_failure(E, crew_id, AuditAction.CREW_DELETE, principal, e)
            raise

        await self.ledger.log(
            E, crew_id, AuditAction.CREW_DELETE, principal,
            entity_name=updated.display_name, reason=reason,
        )
        return updated
