"""Manifest lifecycle: generation, approval gate, submission and export.

Every transition re-reads the manifest's stored status and applies the
change with a conditional update, so two concurrent approvals cannot
both succeed.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from ..audit.ledger import AuditLedger
from ..compliance.jurisdictions import JurisdictionDispatcher, ManifestContext
from ..compliance.passengers import (
    DEFAULT_MINIMUM_AGE,
    DEFAULT_PASSPORT_WARNING_DAYS,
    validate_manifest,
)
from ..errors import (
    ComplianceGateError,
    ConcurrentModificationError,
    InputValidationError,
    NotFoundError,
    StatusMismatchError,
)
from ..models.audit import AuditAction, AuditEntityType, AuditOutcome, Principal
from ..models.compliance import ComplianceIssue, JurisdictionResult, ManifestValidationResult
from ..models.manifest import (
    ExportFormat,
    ExportRequest,
    ExportResult,
    Manifest,
    ManifestEntry,
    ManifestStatus,
    ManifestValidationError,
    ValidationSeverity,
    ValidationStatus,
)
from ..models.passenger import Passenger
from ..security.crypto import FieldCipher
from ..storage.base import ComplianceStore
from ..utils import utcnow
from ..version import RULESET_VERSION
from .base import AuditedService
from .export import CsvManifestExporter, ManifestExporter
from .passengers import plaintext_fields

logger = logging.getLogger(__name__)

E = AuditEntityType.MANIFEST
S = ManifestStatus


def validation_rows(manifest_id: UUID, result: ManifestValidationResult) -> List[ManifestValidationError]:
    """Persistable rows for a validation result; warnings are kept but never block."""
    rows = [
        ManifestValidationError(
            manifest_id=manifest_id,
            field=issue.field or "manifest",
            message=issue.message,
            code=issue.code,
            severity=ValidationSeverity.ERROR,
        )
        for issue in result.errors
    ]
    rows.extend(
        ManifestValidationError(
            manifest_id=manifest_id,
            field=issue.field or "manifest",
            message=issue.message,
            code=issue.code,
            severity=ValidationSeverity.WARNING,
        )
        for issue in result.warnings
    )
    return rows


def _actor_ref(principal: Optional[Principal]) -> str:
    return principal.subject if principal else "system"


class ManifestService(AuditedService):
    """Drives manifests through DRAFT, PENDING, APPROVED, SUBMITTED and REJECTED."""

    def __init__(
        self,
        db: ComplianceStore,
        ledger: AuditLedger,
        cipher: FieldCipher,
        dispatcher: Optional[JurisdictionDispatcher] = None,
        exporter: Optional[ManifestExporter] = None,
        minimum_age: int = DEFAULT_MINIMUM_AGE,
        warning_days: int = DEFAULT_PASSPORT_WARNING_DAYS,
    ):
        super().__init__(db, ledger)
        self.cipher = cipher
        self.dispatcher = dispatcher or JurisdictionDispatcher()
        self.exporter = exporter or CsvManifestExporter(cipher)
        self.minimum_age = minimum_age
        self.warning_days = warning_days

    @classmethod
    def from_settings(cls, db, ledger, cipher, settings) -> "ManifestService":
        return cls(
            db,
            ledger,
            cipher,
            dispatcher=JurisdictionDispatcher.from_settings(settings),
            minimum_age=settings.minimum_passenger_age,
            warning_days=settings.passport_warning_days,
        )

    async def _get_or_raise(self, manifest_id: UUID) -> Manifest:
        manifest = await self.db.get_manifest(manifest_id)
        if manifest is None:
            raise NotFoundError("manifest", str(manifest_id))
        return manifest

    def _validate(self, passengers: Sequence[Passenger], sailing_date) -> ManifestValidationResult:
        fields = [plaintext_fields(p, self.cipher) for p in passengers]
        return validate_manifest(fields, sailing_date, self.minimum_age, self.warning_days)

    async def _active_passengers(self, manifest: Manifest) -> List[Passenger]:
        """Manifest passengers that have not been removed."""
        passengers = await self.db.list_passengers([e.passenger_id for e in manifest.entries])
        return [p for p in passengers if p.deleted_at is None]

    async def _outstanding_errors(self, manifest_id: UUID) -> List[ComplianceIssue]:
        """Blocking validation errors as currently stored."""
        rows = await self.db.list_validation_errors(manifest_id)
        return [
            ComplianceIssue(field=r.field, code=r.code or "VALIDATION_ERROR", message=r.message)
            for r in rows
            if r.severity == ValidationSeverity.ERROR
        ]

    async def _transition(
        self,
        manifest_id: UUID,
        operation: str,
        allowed: Sequence[ManifestStatus],
        changes: Dict[str, Any],
        gated: bool = False,
    ) -> Tuple[Manifest, Manifest]:
        """Check and apply a status change against the persisted state.

        Returns:
            (manifest before, manifest after)

        Raises:
            NotFoundError: Unknown manifest.
            StatusMismatchError: Stored status is not in ``allowed``.
            ComplianceGateError: ``gated`` and blocking errors remain.
            ConcurrentModificationError: Status or validation moved before the
                update landed.
        """
        current = await self._get_or_raise(manifest_id)
        if current.status not in allowed:
            raise StatusMismatchError(
                str(manifest_id), current.status.value, [s.value for s in allowed], operation
            )

        if gated:
            outstanding = await self._outstanding_errors(manifest_id)
            if outstanding:
                raise ComplianceGateError(
                    f"Cannot {operation} manifest {manifest_id}: "
                    f"{len(outstanding)} unresolved validation error(s)",
                    outstanding,
                )

        # Gated moves also require the validation status read by the gate to still hold
        updated = await self.db.transition_manifest(
            manifest_id, [current.status], changes, require_valid=gated
        )
        if updated is None:
            raise ConcurrentModificationError(
                f"Manifest {manifest_id} was modified concurrently; reload and retry"
            )
        return current, updated

    # ==================== Operations ====================

    async def generate(self, sailing_id: UUID, principal: Optional[Principal] = None) -> Manifest:
        """Create a DRAFT manifest from a sailing's checked-in passengers.

        Validation problems are stored on the manifest, not raised; the
        manifest is INVALID until they are fixed and revalidated.
        """
        try:
            sailing = await self.db.get_sailing(sailing_id)
            if sailing is None:
                raise NotFoundError("sailing", str(sailing_id))
            passengers = await self.db.list_checked_in_passengers(sailing_id)
            result = self._validate(passengers, sailing.departure_date)

            manifest = Manifest(
                sailing_id=sailing.id,
                vessel_id=sailing.vessel_id,
                departure_port=sailing.departure_port,
                arrival_port=sailing.arrival_port,
                sailing_date=sailing.departure_date,
                passenger_count=len(passengers),
                status=S.DRAFT,
                validation_status=ValidationStatus.VALID if result.valid else ValidationStatus.INVALID,
                entries=[
                    ManifestEntry(passenger_id=p.id, sequence_number=i)
                    for i, p in enumerate(passengers, start=1)
                ],
                generated_by=_actor_ref(principal),
            )
            manifest.validation_errors = validation_rows(manifest.id, result)
            stored = await self.db.insert_manifest(manifest)
        except Exception as e:
            await self._log_failure(E, sailing_id, AuditAction.MANIFEST_GENERATED, principal, e)
            raise

        await self.ledger.log(
            E,
            stored.id,
            AuditAction.MANIFEST_GENERATED,
            principal,
            details={
                "sailing_id": str(sailing_id),
                "passenger_count": stored.passenger_count,
                "validation_status": stored.validation_status.value,
                "error_count": len(result.errors),
                "warning_count": len(result.warnings),
                "ruleset": RULESET_VERSION,
            },
        )
        logger.info(
            "Generated manifest %s for sailing %s: %d passengers, %d errors",
            stored.id, sailing_id, stored.passenger_count, len(result.errors),
        )
        return stored

    async def get(self, manifest_id: UUID, principal: Optional[Principal] = None) -> Manifest:
        try:
            manifest = await self._get_or_raise(manifest_id)
        except Exception as e:
            await self._log_failure(E, manifest_id, AuditAction.MANIFEST_READ, principal, e)
            raise
        await self.ledger.log(E, manifest_id, AuditAction.MANIFEST_READ, principal)
        return manifest

    async def _run_transition(
        self,
        action: AuditAction,
        manifest_id: UUID,
        principal: Optional[Principal],
        operation: str,
        allowed: Sequence[ManifestStatus],
        changes: Dict[str, Any],
        gated: bool = False,
        reason: Optional[str] = None,
    ) -> Manifest:
        try:
            before, after = await self._transition(manifest_id, operation, allowed, changes, gated)
        except Exception as e:
            await self._log_failure(E, manifest_id, action, principal, e)
            raise

        await self.ledger.log(
            E,
            manifest_id,
            action,
            principal,
            previous_value={"status": before.status.value},
            new_value={"status": after.status.value},
            reason=reason,
        )
        return after

    async def request_review(self, manifest_id: UUID, principal: Optional[Principal] = None) -> Manifest:
        """DRAFT -> PENDING, gated on outstanding validation errors."""
        return await self._run_transition(
            AuditAction.MANIFEST_REVIEW_REQUESTED,
            manifest_id,
            principal,
            "request review of",
            [S.DRAFT],
            {"status": S.PENDING},
            gated=True,
        )

    async def approve(
        self,
        manifest_id: UUID,
        principal: Optional[Principal] = None,
        notes: Optional[str] = None,
    ) -> Manifest:
        """DRAFT/PENDING -> APPROVED: the human sign-off gate.

        Raises:
            ComplianceGateError: Listing every outstanding validation error.
            StatusMismatchError: Manifest is not DRAFT or PENDING.
        """
        now = utcnow()
        actor = _actor_ref(principal)
        return await self._run_transition(
            AuditAction.MANIFEST_APPROVED,
            manifest_id,
            principal,
            "approve",
            [S.DRAFT, S.PENDING],
            {
                "status": S.APPROVED,
                "approved_by": actor,
                "approved_at": now,
                "approval_notes": notes,
                "reviewed_by": actor,
                "reviewed_at": now,
            },
            gated=True,
            reason=notes,
        )

    async def submit(self, manifest_id: UUID, principal: Optional[Principal] = None) -> Manifest:
        """APPROVED -> SUBMITTED. Records a manual submission; nothing is sent anywhere."""
        return await self._run_transition(
            AuditAction.MANIFEST_SUBMITTED,
            manifest_id,
            principal,
            "submit",
            [S.APPROVED],
            {"status": S.SUBMITTED, "submitted_by": _actor_ref(principal), "submitted_at": utcnow()},
        )

    async def reject(
        self,
        manifest_id: UUID,
        reason: str,
        principal: Optional[Principal] = None,
    ) -> Manifest:
        """DRAFT/PENDING -> REJECTED with a mandatory reason."""
        if not reason or not reason.strip():
            error = InputValidationError("reason", "REQUIRED_FIELD_MISSING", "A rejection reason is required")
            await self._log_failure(E, manifest_id, AuditAction.MANIFEST_REJECTED, principal, error)
            raise error
        return await self._run_transition(
            AuditAction.MANIFEST_REJECTED,
            manifest_id,
            principal,
            "reject",
            [S.DRAFT, S.PENDING],
            {
                "status": S.REJECTED,
                "rejected_by": _actor_ref(principal),
                "rejected_at": utcnow(),
                "rejection_reason": reason.strip(),
            },
            reason=reason.strip(),
        )

    async def revalidate(self, manifest_id: UUID, principal: Optional[Principal] = None) -> Manifest:
        """Re-run field validation over current passenger records (DRAFT only).

        Replaces the stored validation errors so a fixed manifest can pass
        the approval gate.
        """
        try:
            manifest = await self._get_or_raise(manifest_id)
            if manifest.status != S.DRAFT:
                raise StatusMismatchError(
                    str(manifest_id), manifest.status.value, [S.DRAFT.value], "revalidate"
                )
            active = await self._active_passengers(manifest)
            result = self._validate(active, manifest.sailing_date)
            status = ValidationStatus.VALID if result.valid else ValidationStatus.INVALID
            updated = await self.db.replace_validation_errors(
                manifest_id, validation_rows(manifest_id, result), status
            )
        except Exception as e:
            await self._log_failure(E, manifest_id, AuditAction.MANIFEST_REVALIDATED, principal, e)
            raise

        await self.ledger.log(
            E,
            manifest_id,
            AuditAction.MANIFEST_REVALIDATED,
            principal,
            previous_value={"validation_status": manifest.validation_status.value},
            new_value={"validation_status": updated.validation_status.value},
            details={
                "error_count": len(result.errors),
                "warning_count": len(result.warnings),
                "ruleset": RULESET_VERSION,
            },
        )
        return updated

    async def check_jurisdictions(
        self, manifest_id: UUID, principal: Optional[Principal] = None
    ) -> List[JurisdictionResult]:
        """Home-flag result plus any route-triggered jurisdiction results."""
        try:
            manifest = await self._get_or_raise(manifest_id)
            sailing = await self.db.get_sailing(manifest.sailing_id)
            passengers = await self._active_passengers(manifest)
            crew = await self.db.list_vessel_crew(manifest.vessel_id) if manifest.vessel_id else []
            context = ManifestContext(
                manifest=manifest,
                passengers=[plaintext_fields(p, self.cipher) for p in passengers],
                crew=crew,
                arrival_time=sailing.arrival_time if sailing else None,
            )
            results = self.dispatcher.evaluate(context)
        except Exception as e:
            await self._log_failure(E, manifest_id, AuditAction.MANIFEST_JURISDICTION_CHECK, principal, e)
            raise

        await self.ledger.log(
            E,
            manifest_id,
            AuditAction.MANIFEST_JURISDICTION_CHECK,
            principal,
            details={r.jurisdiction: r.status.value for r in results},
        )
        return results

    async def export(
        self,
        manifest_id: UUID,
        export_format: ExportFormat,
        jurisdiction: str,
        principal: Optional[Principal] = None,
        reason: Optional[str] = None,
        exporter: Optional[ManifestExporter] = None,
    ) -> ExportResult:
        """Export through a collaborator; exactly one DATA_EXPORT entry is written either way."""
        exporter = exporter or self.exporter
        reason = reason or f"Manifest export ({jurisdiction})"
        details: Dict[str, Any] = {
            "format": getattr(export_format, "value", str(export_format)),
            "jurisdiction": jurisdiction,
        }
        try:
            manifest = await self._get_or_raise(manifest_id)
            passengers = await self._active_passengers(manifest)
            request = ExportRequest(manifest_id=manifest_id, format=export_format, jurisdiction=jurisdiction)
            result = exporter.export(request, manifest, passengers)
        except Exception as e:
            await self.ledger.log_data_export(
                E, manifest_id, principal, reason, 0,
                outcome=AuditOutcome.FAILURE,
                details={**details, "error": str(e)},
            )
            raise

        await self.ledger.log_data_export(
            E, manifest_id, principal, reason, result.record_count,
            details={**details, "filename": result.filename},
        )
        return result
