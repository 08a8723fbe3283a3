"""Manifest data models."""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import FrozenSet, List, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from ..utils import utcnow


class ManifestStatus(str, Enum):
    DRAFT = "DRAFT"
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    SUBMITTED = "SUBMITTED"
    REJECTED = "REJECTED"


# Passenger entries of manifests in these states can no longer change
LOCKED_STATUSES: FrozenSet[ManifestStatus] = frozenset(
    {ManifestStatus.APPROVED, ManifestStatus.SUBMITTED}
)


class ValidationStatus(str, Enum):
    VALID = "VALID"
    INVALID = "INVALID"


class ValidationSeverity(str, Enum):
    ERROR = "ERROR"
    WARNING = "WARNING"


class ManifestValidationError(BaseModel):
    """A validation finding stored against a manifest.

    Only ``ERROR`` rows block the approval gate.
    """

    id: UUID = Field(default_factory=uuid4)
    manifest_id: UUID
    field: str
    message: str
    code: Optional[str] = None
    severity: ValidationSeverity = ValidationSeverity.ERROR
    created_at: datetime = Field(default_factory=utcnow)


class ManifestEntry(BaseModel):
    passenger_id: UUID
    sequence_number: int


class Manifest(BaseModel):
    """A passenger manifest for one sailing."""

    id: UUID = Field(default_factory=uuid4)
    sailing_id: UUID
    vessel_id: Optional[UUID] = None
    departure_port: str = "Unknown"
    arrival_port: str = "Unknown"
    sailing_date: date
    passenger_count: int = 0
    status: ManifestStatus = ManifestStatus.DRAFT
    validation_status: ValidationStatus = ValidationStatus.VALID
    entries: List[ManifestEntry] = Field(default_factory=list)
    validation_errors: List[ManifestValidationError] = Field(default_factory=list)

    generated_by: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    approval_notes: Optional[str] = None
    submitted_by: Optional[str] = None
    submitted_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def blocking_errors(self) -> List[ManifestValidationError]:
        return [e for e in self.validation_errors if e.severity == ValidationSeverity.ERROR]

    @property
    def is_locked(self) -> bool:
        return self.status in LOCKED_STATUSES


class ExportFormat(str, Enum):
    CSV = "csv"
    XML = "xml"
    PDF = "pdf"
    XLSX = "xlsx"


class ExportRequest(BaseModel):
    manifest_id: UUID
    format: ExportFormat
    jurisdiction: str


class ExportResult(BaseModel):
    filename: str
    content_type: str
    data: bytes
    record_count: int
