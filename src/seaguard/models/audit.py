"""Audit ledger and identity data models."""

from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from ..utils import utcnow

logger = logging.getLogger(__name__)


class AuditAction(str, Enum):
    """Closed set of audited actions.

    Unknown values coerce to ``READ`` (see ``parse``) rather than being
    stored verbatim.
    """

    READ = "READ"

    MANIFEST_GENERATED = "MANIFEST_GENERATED"
    MANIFEST_READ = "MANIFEST_READ"
    MANIFEST_REVIEW_REQUESTED = "MANIFEST_REVIEW_REQUESTED"
    MANIFEST_APPROVED = "MANIFEST_APPROVED"
    MANIFEST_SUBMITTED = "MANIFEST_SUBMITTED"
    MANIFEST_REJECTED = "MANIFEST_REJECTED"
    MANIFEST_REVALIDATED = "MANIFEST_REVALIDATED"
    MANIFEST_JURISDICTION_CHECK = "MANIFEST_JURISDICTION_CHECK"

    PASSENGER_CHECKIN = "PASSENGER_CHECKIN"
    PASSENGER_READ = "PASSENGER_READ"
    PASSENGER_UPDATE = "PASSENGER_UPDATE"
    PASSENGER_DELETE = "PASSENGER_DELETE"

    CREW_CREATE = "CREW_CREATE"
    CREW_ROSTER_READ = "CREW_ROSTER_READ"
    CREW_ASSIGN_VESSEL = "CREW_ASSIGN_VESSEL"
    CREW_DELETE = "CREW_DELETE"

    CERTIFICATION_CREATE = "CERTIFICATION_CREATE"
    CERTIFICATION_VERIFY = "CERTIFICATION_VERIFY"
    CERTIFICATION_REVOKE = "CERTIFICATION_REVOKE"
    CERTIFICATIONS_EXPIRY_CHECK = "CERTIFICATIONS_EXPIRY_CHECK"

    DATA_EXPORT = "DATA_EXPORT"
    FAILED_LOGIN = "FAILED_LOGIN"

    @classmethod
    def parse(cls, value: Any) -> "AuditAction":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            logger.warning("Unknown audit action %r, recording as READ", value)
            return cls.READ


EXPORT_ACTIONS = frozenset({AuditAction.DATA_EXPORT})


class AuditEntityType(str, Enum):
    MANIFEST = "manifest"
    PASSENGER = "passenger"
    CREW = "crew"
    CERTIFICATION = "certification"
    VESSEL = "vessel"
    AUTH = "auth"
    USER = "user"
    SYSTEM = "system"

    @classmethod
    def parse(cls, value: Any) -> "AuditEntityType":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            logger.warning("Unknown audit entity type %r, recording as system", value)
            return cls.SYSTEM


class AuditOutcome(str, Enum):
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"


class Principal(BaseModel):
    """Authenticated caller as presented by the identity provider."""

    subject: str
    email: Optional[str] = None
    given_name: Optional[str] = None
    family_name: Optional[str] = None
    preferred_username: Optional[str] = None
    roles: List[str] = Field(default_factory=list)
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @property
    def primary_role(self) -> str:
        return self.roles[0] if self.roles else "user"

    @property
    def display_name(self) -> str:
        full = " ".join(p for p in (self.given_name, self.family_name) if p)
        return full or self.preferred_username or self.email or self.subject


class AuditUser(BaseModel):
    """Local user record linked to an external identity."""

    id: UUID = Field(default_factory=uuid4)
    external_id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: str = "user"
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class AuditActor(BaseModel):
    """Snapshot of who acted, frozen into each entry."""

    id: str = "system"
    name: str = "System"
    role: str = "system"


SYSTEM_ACTOR = AuditActor()


class AuditLogEntry(BaseModel):
    """One immutable audit record."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    entity_type: AuditEntityType
    entity_id: str = ""
    entity_name: Optional[str] = None
    action: AuditAction
    outcome: AuditOutcome = AuditOutcome.SUCCESS
    actor: AuditActor = Field(default_factory=AuditActor)
    timestamp: datetime = Field(default_factory=utcnow)
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    previous_value: Optional[Dict[str, Any]] = None
    new_value: Optional[Dict[str, Any]] = None
    changed_fields: List[str] = Field(default_factory=list)
    reason: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    persisted: bool = True  # False for fallback records returned on failure

    model_config = {"frozen": True}


class AuditLogFilters(BaseModel):
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    action: Optional[str] = None
    actor_id: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    page: int = 1
    limit: int = 50


class AuditPage(BaseModel):
    data: List[AuditLogEntry]
    total: int
    page: int
    limit: int
    pages: int
