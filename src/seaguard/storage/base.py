"""Storage collaborator contract used by the services and the audit ledger."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple
from uuid import UUID

from ..models.audit import AuditAction, AuditLogEntry, AuditLogFilters, AuditUser
from ..models.crew import Certification, CrewMember, SafeManningRequirement
from ..models.manifest import Manifest, ManifestStatus, ManifestValidationError, ValidationStatus
from ..models.passenger import Passenger
from ..models.vessel import Sailing, Vessel


class ComplianceStore(Protocol):
    """Async persistence calls the engine relies on.

    Audit entries can only be inserted and read. Manifest status changes
    go through ``transition_manifest``, which must apply the update only
    while the stored status is still one of ``expected`` and, with
    ``require_valid``, while the stored validation status is still VALID.
    """

    # Users
    async def get_user_by_external_id(self, external_id: str) -> Optional[AuditUser]: ...

    async def get_user_by_email(self, email: str) -> Optional[AuditUser]: ...

    async def insert_user(self, user: AuditUser) -> AuditUser: ...

    async def update_user(self, user: AuditUser) -> AuditUser: ...

    # Audit
    async def insert_audit_entry(self, entry: AuditLogEntry) -> AuditLogEntry: ...

    async def list_audit_entries(
        self,
        filters: AuditLogFilters,
        ascending: bool = False,
        actions: Optional[Sequence[AuditAction]] = None,
    ) -> Tuple[List[AuditLogEntry], int]: ...

    # Vessels and crew
    async def get_vessel(self, vessel_id: UUID) -> Optional[Vessel]: ...

    async def list_vessel_crew(self, vessel_id: UUID) -> List[CrewMember]: ...

    async def get_crew_member(self, crew_id: UUID) -> Optional[CrewMember]: ...

    async def insert_crew_member(self, member: CrewMember) -> CrewMember: ...

    async def update_crew_member(self, crew_id: UUID, changes: Dict[str, Any]) -> CrewMember: ...

    async def list_safe_manning_documents(self, vessel_id: UUID) -> List[SafeManningRequirement]: ...

    # Certifications
    async def insert_certification(self, cert: Certification) -> Certification: ...

    async def get_certification(self, cert_id: UUID) -> Optional[Certification]: ...

    async def update_certification(self, cert_id: UUID, changes: Dict[str, Any]) -> Certification: ...

    async def list_valid_certifications_expiring(self, start: datetime, end: datetime) -> List[Certification]: ...

    # Sailings and passengers
    async def get_sailing(self, sailing_id: UUID) -> Optional[Sailing]: ...

    async def insert_passenger(self, passenger: Passenger) -> Passenger: ...

    async def get_passenger(self, passenger_id: UUID) -> Optional[Passenger]: ...

    async def update_passenger(self, passenger_id: UUID, changes: Dict[str, Any]) -> Passenger: ...

    async def list_checked_in_passengers(self, sailing_id: UUID) -> List[Passenger]: ...

    async def list_passengers(self, passenger_ids: Sequence[UUID]) -> List[Passenger]: ...

    async def manifest_statuses_for_passenger(self, passenger_id: UUID) -> List[ManifestStatus]: ...

    # Manifests
    async def insert_manifest(self, manifest: Manifest) -> Manifest: ...

    async def get_manifest(self, manifest_id: UUID) -> Optional[Manifest]: ...

    async def transition_manifest(
        self,
        manifest_id: UUID,
        expected: Sequence[ManifestStatus],
        changes: Dict[str, Any],
        require_valid: bool = False,
    ) -> Optional[Manifest]: ...

    async def list_validation_errors(self, manifest_id: UUID) -> List[ManifestValidationError]: ...

    async def replace_validation_errors(
        self,
        manifest_id: UUID,
        errors: Sequence[ManifestValidationError],
        validation_status: ValidationStatus,
    ) -> Manifest: ...

    async def close(self) -> None: ...
