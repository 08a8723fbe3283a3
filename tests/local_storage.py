"""In-memory storage for testing services without Supabase.

Implements the same async interface as SupabaseClient, keeping rows in
dictionaries. Useful for:
- Exercising services end to end in unit tests
- Simulating audit write failures and concurrent status changes
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from seaguard.models.audit import AuditAction, AuditLogEntry, AuditLogFilters, AuditUser
from seaguard.models.crew import Certification, CrewMember, SafeManningRequirement
from seaguard.models.manifest import Manifest, ManifestStatus, ManifestValidationError, ValidationStatus
from seaguard.models.passenger import Passenger, PassengerStatus
from seaguard.models.vessel import Sailing, Vessel
from seaguard.utils import as_utc, utcnow


@dataclass
class InMemoryStore:
    """Dictionary-backed ComplianceStore.

    ``fail_audit_writes`` makes every audit insert raise, and
    ``interfere_with_transitions`` moves a manifest to the given status
    right before a conditional transition is applied.
    """

    users: Dict[UUID, AuditUser] = field(default_factory=dict)
    audit_entries: List[AuditLogEntry] = field(default_factory=list)
    vessels: Dict[UUID, Vessel] = field(default_factory=dict)
    crew: Dict[UUID, CrewMember] = field(default_factory=dict)
    certifications: Dict[UUID, Certification] = field(default_factory=dict)
    safe_manning_documents: List[SafeManningRequirement] = field(default_factory=list)
    sailings: Dict[UUID, Sailing] = field(default_factory=dict)
    passengers: Dict[UUID, Passenger] = field(default_factory=dict)
    manifests: Dict[UUID, Manifest] = field(default_factory=dict)
    fail_audit_writes: bool = False
    interfere_with_transitions: Optional[ManifestStatus] = None
    closed: bool = False

    # ==================== Seeding ====================

    def add_vessel(self, vessel: Vessel) -> Vessel:
        self.vessels[vessel.id] = vessel
        return vessel

    def add_crew(self, member: CrewMember) -> CrewMember:
        self.crew[member.id] = member
        for cert in member.certifications:
            self.certifications[cert.id] = cert
        return member

    def add_sailing(self, sailing: Sailing) -> Sailing:
        self.sailings[sailing.id] = sailing
        return sailing

    def add_passenger(self, passenger: Passenger) -> Passenger:
        self.passengers[passenger.id] = passenger
        return passenger

    def entries_for(self, entity_id: Any) -> List[AuditLogEntry]:
        return [e for e in self.audit_entries if e.entity_id == str(entity_id)]

    def _with_certifications(self, member: CrewMember) -> CrewMember:
        certs = [c for c in self.certifications.values() if c.crew_id == member.id]
        return member.model_copy(update={"certifications": certs})

    # ==================== Users ====================

    async def get_user_by_external_id(self, external_id: str) -> Optional[AuditUser]:
        return next((u for u in self.users.values() if u.external_id == external_id), None)

    async def get_user_by_email(self, email: str) -> Optional[AuditUser]:
        return next((u for u in self.users.values() if u.email == email), None)

    async def insert_user(self, user: AuditUser) -> AuditUser:
        self.users[user.id] = user
        return user

    async def update_user(self, user: AuditUser) -> AuditUser:
        self.users[user.id] = user
        return user

    # ==================== Audit ====================

    async def insert_audit_entry(self, entry: AuditLogEntry) -> AuditLogEntry:
        if self.fail_audit_writes:
            raise ConnectionError("audit table unavailable")
        self.audit_entries.append(entry)
        return entry

    async def list_audit_entries(
        self,
        filters: AuditLogFilters,
        ascending: bool = False,
        actions: Optional[Sequence[AuditAction]] = None,
    ) -> Tuple[List[AuditLogEntry], int]:
        rows = list(self.audit_entries)
        if filters.entity_type:
            rows = [r for r in rows if r.entity_type.value == filters.entity_type]
        if filters.entity_id:
            rows = [r for r in rows if r.entity_id == filters.entity_id]
        if filters.action:
            rows = [r for r in rows if r.action.value == filters.action]
        if filters.actor_id:
            rows = [r for r in rows if r.actor.id == filters.actor_id]
        if filters.date_from:
            rows = [r for r in rows if as_utc(r.timestamp) >= as_utc(filters.date_from)]
        if filters.date_to:
            rows = [r for r in rows if as_utc(r.timestamp) <= as_utc(filters.date_to)]
        if actions:
            wanted = {AuditAction(a) for a in actions}
            rows = [r for r in rows if r.action in wanted]

        # Stable sort keeps insertion order for equal timestamps
        rows.sort(key=lambda r: as_utc(r.timestamp), reverse=not ascending)
        start = (filters.page - 1) * filters.limit
        return rows[start:start + filters.limit], len(rows)

    # ==================== Vessels & Crew ====================

    async def get_vessel(self, vessel_id: UUID) -> Optional[Vessel]:
        vessel = self.vessels.get(vessel_id)
        return vessel if vessel and vessel.deleted_at is None else None

    async def list_vessel_crew(self, vessel_id: UUID) -> List[CrewMember]:
        members = [
            self._with_certifications(m)
            for m in self.crew.values()
            if m.vessel_id == vessel_id and m.deleted_at is None
        ]
        return sorted(members, key=lambda m: m.family_name)

    async def get_crew_member(self, crew_id: UUID) -> Optional[CrewMember]:
        member = self.crew.get(crew_id)
        if member is None or member.deleted_at is not None:
            return None
        return self._with_certifications(member)

    async def insert_crew_member(self, member: CrewMember) -> CrewMember:
        self.crew[member.id] = member.model_copy(update={"certifications": []})
        return self._with_certifications(member)

    async def update_crew_member(self, crew_id: UUID, changes: Dict[str, Any]) -> CrewMember:
        member = self.crew[crew_id].model_copy(update={**changes, "updated_at": utcnow()})
        self.crew[crew_id] = member
        return self._with_certifications(member)

    async def list_safe_manning_documents(self, vessel_id: UUID) -> List[SafeManningRequirement]:
        docs = [d for d in self.safe_manning_documents if d.vessel_id == vessel_id]
        return sorted(docs, key=lambda d: d.issue_date, reverse=True)

    # ==================== Certifications ====================

    async def insert_certification(self, cert: Certification) -> Certification:
        self.certifications[cert.id] = cert
        return cert

    async def get_certification(self, cert_id: UUID) -> Optional[Certification]:
        return self.certifications.get(cert_id)

    async def update_certification(self, cert_id: UUID, changes: Dict[str, Any]) -> Certification:
        cert = self.certifications[cert_id].model_copy(update={**changes, "updated_at": utcnow()})
        self.certifications[cert_id] = cert
        return cert

    async def list_valid_certifications_expiring(
        self, start: datetime, end: datetime
    ) -> List[Certification]:
        return sorted(
            (
                c for c in self.certifications.values()
                if c.status.value == "VALID" and as_utc(start) <= as_utc(c.expiry_date) <= as_utc(end)
            ),
            key=lambda c: as_utc(c.expiry_date),
        )

    # ==================== Sailings & Passengers ====================

    async def get_sailing(self, sailing_id: UUID) -> Optional[Sailing]:
        return self.sailings.get(sailing_id)

    async def insert_passenger(self, passenger: Passenger) -> Passenger:
        self.passengers[passenger.id] = passenger
        return passenger

    async def get_passenger(self, passenger_id: UUID) -> Optional[Passenger]:
        passenger = self.passengers.get(passenger_id)
        return passenger if passenger and passenger.deleted_at is None else None

    async def update_passenger(self, passenger_id: UUID, changes: Dict[str, Any]) -> Passenger:
        passenger = self.passengers[passenger_id].model_copy(update={**changes, "updated_at": utcnow()})
        self.passengers[passenger_id] = passenger
        return passenger

    async def list_checked_in_passengers(self, sailing_id: UUID) -> List[Passenger]:
        rows = [
            p for p in self.passengers.values()
            if p.sailing_id == sailing_id
            and p.status == PassengerStatus.CHECKED_IN
            and p.deleted_at is None
        ]
        return sorted(rows, key=lambda p: p.family_name or "")

    async def list_passengers(self, passenger_ids: Sequence[UUID]) -> List[Passenger]:
        return [self.passengers[p] for p in passenger_ids if p in self.passengers]

    async def manifest_statuses_for_passenger(self, passenger_id: UUID) -> List[ManifestStatus]:
        return [
            m.status for m in self.manifests.values()
            if any(e.passenger_id == passenger_id for e in m.entries)
        ]

    # ==================== Manifests ====================

    async def insert_manifest(self, manifest: Manifest) -> Manifest:
        self.manifests[manifest.id] = manifest
        return manifest

    async def get_manifest(self, manifest_id: UUID) -> Optional[Manifest]:
        return self.manifests.get(manifest_id)

    async def transition_manifest(
        self,
        manifest_id: UUID,
        expected: Sequence[ManifestStatus],
        changes: Dict[str, Any],
        require_valid: bool = False,
    ) -> Optional[Manifest]:
        manifest = self.manifests.get(manifest_id)
        if manifest is None:
            return None
        if self.interfere_with_transitions is not None:
            manifest = manifest.model_copy(update={"status": self.interfere_with_transitions})
            self.manifests[manifest_id] = manifest
        if manifest.status not in expected:
            return None
        if require_valid and manifest.validation_status != ValidationStatus.VALID:
            return None
        updated = manifest.model_copy(update={**changes, "updated_at": utcnow()})
        self.manifests[manifest_id] = updated
        return updated

    async def list_validation_errors(self, manifest_id: UUID) -> List[ManifestValidationError]:
        manifest = self.manifests.get(manifest_id)
        return list(manifest.validation_errors) if manifest else []

    async def replace_validation_errors(
        self,
        manifest_id: UUID,
        errors: Sequence[ManifestValidationError],
        validation_status: ValidationStatus,
    ) -> Manifest:
        updated = self.manifests[manifest_id].model_copy(update={
            "validation_errors": list(errors),
            "validation_status": validation_status,
            "updated_at": utcnow(),
        })
        self.manifests[manifest_id] = updated
        return updated

    async def close(self) -> None:
        self.closed = True
