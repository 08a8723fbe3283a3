"""Supabase client wrapper implementing the compliance store."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from pydantic_core import to_jsonable_python
from supabase import Client, create_client

from ..errors import ConfigurationError, NotFoundError
from ..models.audit import AuditAction, AuditActor, AuditLogEntry, AuditLogFilters, AuditUser
from ..models.crew import Certification, CrewMember, SafeManningRequirement
from ..models.manifest import (
    Manifest,
    ManifestEntry,
    ManifestStatus,
    ManifestValidationError,
    ValidationStatus,
)
from ..models.passenger import Passenger, PassengerStatus
from ..models.vessel import Sailing, Vessel
from ..utils import utcnow

logger = logging.getLogger(__name__)


def _jsonable(data: Dict[str, Any]) -> Dict[str, Any]:
    return to_jsonable_python(data)


class SupabaseClient:
    """Wrapper for Supabase operations backing the compliance engine.

    Constructed explicitly and handed to the services; call ``close()``
    on shutdown. Audit rows are insert-only: there is no update or delete
    method for them.
    """

    def __init__(self, url: str, key: str):
        """Initialize Supabase client."""
        self.client: Client = create_client(url, key)

    @classmethod
    def from_settings(cls, settings) -> "SupabaseClient":
        if not settings.supabase_url or not settings.supabase_key:
            raise ConfigurationError("SUPABASE_URL and SUPABASE_KEY are required")
        return cls(settings.supabase_url, settings.supabase_key)

    async def close(self) -> None:
        """Release the underlying HTTP session."""
        session = getattr(getattr(self.client, "postgrest", None), "session", None)
        if session is not None:
            session.close()

    # ==================== User Operations ====================

    async def get_user_by_external_id(self, external_id: str) -> Optional[AuditUser]:
        result = (
            self.client.table("users").select("*").eq("external_id", external_id).limit(1).execute()
        )
        if result.data:
            return AuditUser.model_validate(result.data[0])
        return None

    async def get_user_by_email(self, email: str) -> Optional[AuditUser]:
        result = self.client.table("users").select("*").eq("email", email).limit(1).execute()
        if result.data:
            return AuditUser.model_validate(result.data[0])
        return None

    async def insert_user(self, user: AuditUser) -> AuditUser:
        self.client.table("users").insert(user.model_dump(mode="json")).execute()
        return user

    async def update_user(self, user: AuditUser) -> AuditUser:
        data = user.model_dump(mode="json", exclude={"id", "created_at"})
        data["updated_at"] = utcnow().isoformat()
        self.client.table("users").update(data).eq("id", str(user.id)).execute()
        return user

    # ==================== Audit Operations ====================

    async def insert_audit_entry(self, entry: AuditLogEntry) -> AuditLogEntry:
        """Insert one audit row.

        Args:
            entry: Entry to persist; ``actor`` is flattened into columns.

        Returns:
            The inserted entry.
        """
        data = {
            "id": entry.id,
            "entity_type": entry.entity_type.value,
            "entity_id": entry.entity_id,
            "entity_name": entry.entity_name,
            "action": entry.action.value,
            "outcome": entry.outcome.value,
            "user_id": entry.actor.id,
            "actor_name": entry.actor.name,
            "actor_role": entry.actor.role,
            "created_at": entry.timestamp.isoformat(),
            "ip_address": entry.ip_address,
            "user_agent": entry.user_agent,
            "previous_value": entry.previous_value,
            "new_value": entry.new_value,
            "changed_fields": entry.changed_fields,
            "reason": entry.reason,
            "details": entry.details,
        }
        self.client.table("audit_logs").insert(_jsonable(data)).execute()
        return entry

    async def list_audit_entries(
        self,
        filters: AuditLogFilters,
        ascending: bool = False,
        actions: Optional[Sequence[AuditAction]] = None,
    ) -> Tuple[List[AuditLogEntry], int]:
        """Page through audit rows matching ``filters``.

        Returns:
            (entries on the requested page, total matching rows)
        """
        query = self.client.table("audit_logs").select("*", count="exact")
        if filters.entity_type:
            query = query.eq("entity_type", filters.entity_type)
        if filters.entity_id:
            query = query.eq("entity_id", filters.entity_id)
        if filters.action:
            query = query.eq("action", filters.action)
        if filters.actor_id:
            query = query.eq("user_id", filters.actor_id)
        if filters.date_from:
            query = query.gte("created_at", filters.date_from.isoformat())
        if filters.date_to:
            query = query.lte("created_at", filters.date_to.isoformat())
        if actions:
            query = query.in_("action", [a.value for a in actions])

        start = (filters.page - 1) * filters.limit
        result = (
            query.order("created_at", desc=not ascending)
            .range(start, start + filters.limit - 1)
            .execute()
        )
        entries = [self._row_to_audit_entry(row) for row in result.data or []]
        return entries, result.count if result.count is not None else len(entries)

    # ==================== Vessel & Crew Operations ====================

    async def get_vessel(self, vessel_id: UUID) -> Optional[Vessel]:
        result = (
            self.client.table("vessels")
            .select("*")
            .eq("id", str(vessel_id))
            .is_("deleted_at", "null")
            .limit(1)
            .execute()
        )
        if result.data:
            return Vessel.model_validate(result.data[0])
        return None

    async def list_vessel_crew(self, vessel_id: UUID) -> List[CrewMember]:
        """Non-deleted crew assigned to a vessel, with their certifications."""
        result = (
            self.client.table("crew_members")
            .select("*, certifications(*)")
            .eq("vessel_id", str(vessel_id))
            .is_("deleted_at", "null")
            .order("family_name")
            .execute()
        )
        return [CrewMember.model_validate(row) for row in result.data or []]

    async def get_crew_member(self, crew_id: UUID) -> Optional[CrewMember]:
        result = (
            self.client.table("crew_members")
            .select("*, certifications(*)")
            .eq("id", str(crew_id))
            .is_("deleted_at", "null")
            .limit(1)
            .execute()
        )
        if result.data:
            return CrewMember.model_validate(result.data[0])
        return None

    async def insert_crew_member(self, member: CrewMember) -> CrewMember:
        """Insert a crew member; certifications are stored separately."""
        self.client.table("crew_members").insert(
            member.model_dump(mode="json", exclude={"certifications"})
        ).execute()
        return member

    async def update_crew_member(self, crew_id: UUID, changes: Dict[str, Any]) -> CrewMember:
        data = _jsonable({**changes, "updated_at": utcnow()})
        self.client.table("crew_members").update(data).eq("id", str(crew_id)).execute()
        result = (
            self.client.table("crew_members")
            .select("*, certifications(*)")
            .eq("id", str(crew_id))
            .limit(1)
            .execute()
        )
        if not result.data:
            raise NotFoundError("crew", str(crew_id))
        return CrewMember.model_validate(result.data[0])

    async def list_safe_manning_documents(self, vessel_id: UUID) -> List[SafeManningRequirement]:
        result = (
            self.client.table("safe_manning_requirements")
            .select("*, roles:safe_manning_roles(role, minimum_count)")
            .eq("vessel_id", str(vessel_id))
            .order("issue_date", desc=True)
            .execute()
        )
        return [SafeManningRequirement.model_validate(row) for row in result.data or []]

    # ==================== Certification Operations ====================

    async def insert_certification(self, cert: Certification) -> Certification:
        self.client.table("certifications").insert(cert.model_dump(mode="json")).execute()
        return cert

    async def get_certification(self, cert_id: UUID) -> Optional[Certification]:
        result = (
            self.client.table("certifications").select("*").eq("id", str(cert_id)).limit(1).execute()
        )
        if result.data:
            return Certification.model_validate(result.data[0])
        return None

    async def update_certification(self, cert_id: UUID, changes: Dict[str, Any]) -> Certification:
        data = _jsonable({**changes, "updated_at": utcnow()})
        result = self.client.table("certifications").update(data).eq("id", str(cert_id)).execute()
        if not result.data:
            raise NotFoundError("certification", str(cert_id))
        return Certification.model_validate(result.data[0])

    async def list_valid_certifications_expiring(
        self, start: datetime, end: datetime
    ) -> List[Certification]:
        result = (
            self.client.table("certifications")
            .select("*")
            .eq("status", "VALID")
            .gte("expiry_date", start.isoformat())
            .lte("expiry_date", end.isoformat())
            .order("expiry_date")
            .execute()
        )
        return [Certification.model_validate(row) for row in result.data or []]

    # ==================== Sailing & Passenger Operations ====================

    async def get_sailing(self, sailing_id: UUID) -> Optional[Sailing]:
        result = self.client.table("sailings").select("*").eq("id", str(sailing_id)).limit(1).execute()
        if result.data:
            return Sailing.model_validate(result.data[0])
        return None

    async def insert_passenger(self, passenger: Passenger) -> Passenger:
        self.client.table("passengers").insert(passenger.model_dump(mode="json")).execute()
        return passenger

    async def get_passenger(self, passenger_id: UUID) -> Optional[Passenger]:
        result = (
            self.client.table("passengers")
            .select("*")
            .eq("id", str(passenger_id))
            .is_("deleted_at", "null")
            .limit(1)
            .execute()
        )
        if result.data:
            return Passenger.model_validate(result.data[0])
        return None

    async def update_passenger(self, passenger_id: UUID, changes: Dict[str, Any]) -> Passenger:
        data = _jsonable({**changes, "updated_at": utcnow()})
        result = self.client.table("passengers").update(data).eq("id", str(passenger_id)).execute()
        if not result.data:
            raise NotFoundError("passenger", str(passenger_id))
        return Passenger.model_validate(result.data[0])

    async def list_checked_in_passengers(self, sailing_id: UUID) -> List[Passenger]:
        result = (
            self.client.table("passengers")
            .select("*")
            .eq("sailing_id", str(sailing_id))
            .eq("status", PassengerStatus.CHECKED_IN.value)
            .is_("deleted_at", "null")
            .order("family_name")
            .execute()
        )
        return [Passenger.model_validate(row) for row in result.data or []]

    async def list_passengers(self, passenger_ids: Sequence[UUID]) -> List[Passenger]:
        if not passenger_ids:
            return []
        result = (
            self.client.table("passengers")
            .select("*")
            .in_("id", [str(p) for p in passenger_ids])
            .execute()
        )
        by_id = {row["id"]: Passenger.model_validate(row) for row in result.data or []}
        # Keep manifest order
        return [by_id[str(p)] for p in passenger_ids if str(p) in by_id]

    async def manifest_statuses_for_passenger(self, passenger_id: UUID) -> List[ManifestStatus]:
        result = (
            self.client.table("manifest_entries")
            .select("manifest_id, manifests(status)")
            .eq("passenger_id", str(passenger_id))
            .execute()
        )
        statuses = []
        for row in result.data or []:
            manifest = row.get("manifests") or {}
            if manifest.get("status"):
                statuses.append(ManifestStatus(manifest["status"]))
        return statuses

    # ==================== Manifest Operations ====================

    async def insert_manifest(self, manifest: Manifest) -> Manifest:
        """Insert a manifest with its passenger entries and validation errors."""
        data = manifest.model_dump(mode="json", exclude={"entries", "validation_errors"})
        self.client.table("manifests").insert(data).execute()
        if manifest.entries:
            self.client.table("manifest_entries").insert(
                [{"manifest_id": str(manifest.id), **e.model_dump(mode="json")} for e in manifest.entries]
            ).execute()
        if manifest.validation_errors:
            self.client.table("manifest_validation_errors").insert(
                [e.model_dump(mode="json") for e in manifest.validation_errors]
            ).execute()
        return manifest

    async def get_manifest(self, manifest_id: UUID) -> Optional[Manifest]:
        result = (
            self.client.table("manifests")
            .select("*, manifest_entries(passenger_id, sequence_number), manifest_validation_errors(*)")
            .eq("id", str(manifest_id))
            .limit(1)
            .execute()
        )
        if result.data:
            return self._row_to_manifest(result.data[0])
        return None

    async def transition_manifest(
        self,
        manifest_id: UUID,
        expected: Sequence[ManifestStatus],
        changes: Dict[str, Any],
        require_valid: bool = False,
    ) -> Optional[Manifest]:
        """Conditionally update a manifest.

        The update applies only while the stored status is one of
        ``expected`` (and the validation status is VALID when
        ``require_valid``); returns None when no row matched.
        """
        data = _jsonable({**changes, "updated_at": utcnow()})
        query = (
            self.client.table("manifests")
            .update(data)
            .eq("id", str(manifest_id))
            .in_("status", [s.value for s in expected])
        )
        if require_valid:
            query = query.eq("validation_status", ValidationStatus.VALID.value)
        result = query.execute()
        if not result.data:
            return None
        return await self.get_manifest(manifest_id)

    async def list_validation_errors(self, manifest_id: UUID) -> List[ManifestValidationError]:
        result = (
            self.client.table("manifest_validation_errors")
            .select("*")
            .eq("manifest_id", str(manifest_id))
            .order("created_at")
            .execute()
        )
        return [ManifestValidationError.model_validate(row) for row in result.data or []]

    async def replace_validation_errors(
        self,
        manifest_id: UUID,
        errors: Sequence[ManifestValidationError],
        validation_status: ValidationStatus,
    ) -> Manifest:
        self.client.table("manifest_validation_errors").delete().eq(
            "manifest_id", str(manifest_id)
        ).execute()
        if errors:
            self.client.table("manifest_validation_errors").insert(
                [e.model_dump(mode="json") for e in errors]
            ).execute()
        self.client.table("manifests").update(
            _jsonable({"validation_status": validation_status, "updated_at": utcnow()})
        ).eq("id", str(manifest_id)).execute()
        manifest = await self.get_manifest(manifest_id)
        if manifest is None:
            raise NotFoundError("manifest", str(manifest_id))
        return manifest

    # ==================== Helper Methods ====================

    def _row_to_manifest(self, row: Dict[str, Any]) -> Manifest:
        entries = sorted(
            (ManifestEntry.model_validate(e) for e in row.get("manifest_entries") or []),
            key=lambda e: e.sequence_number,
        )
        errors = [
            ManifestValidationError.model_validate(e)
            for e in row.get("manifest_validation_errors") or []
        ]
        fields = {
            k: v for k, v in row.items() if k not in ("manifest_entries", "manifest_validation_errors")
        }
        return Manifest.model_validate({**fields, "entries": entries, "validation_errors": errors})

    def _row_to_audit_entry(self, row: Dict[str, Any]) -> AuditLogEntry:
        """Convert database row to AuditLogEntry model.

        Args:
            row: Database row as dictionary.

        Returns:
            AuditLogEntry model instance.
        """
        return AuditLogEntry(
            id=str(row["id"]),
            entity_type=row["entity_type"],
            entity_id=row.get("entity_id") or "",
            entity_name=row.get("entity_name"),
            action=AuditAction.parse(row["action"]),
            outcome=row.get("outcome") or "SUCCESS",
            actor=AuditActor(
                id=row.get("user_id") or "system",
                name=row.get("actor_name") or "System",
                role=row.get("actor_role") or "system",
            ),
            timestamp=row["created_at"],
            ip_address=row.get("ip_address"),
            user_agent=row.get("user_agent"),
            previous_value=row.get("previous_value"),
            new_value=row.get("new_value"),
            changed_fields=row.get("changed_fields") or [],
            reason=row.get("reason"),
            details=row.get("details") or {},
        )
