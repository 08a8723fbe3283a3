"""Data models for Seaguard."""

from .audit import (
    AuditAction,
    AuditActor,
    AuditEntityType,
    AuditLogEntry,
    AuditLogFilters,
    AuditOutcome,
    AuditPage,
    AuditUser,
    Principal,
)
from .compliance import (
    CertificationReport,
    ComplianceIssue,
    ExpiringCertificate,
    ExpiryClass,
    IssueSeverity,
    JurisdictionResult,
    JurisdictionStatus,
    ManifestValidationResult,
    RosterStatus,
    SafeManningResult,
)
from .crew import (
    CertificateType,
    Certification,
    CertificationStatus,
    CrewIntakeRequest,
    CrewMember,
    CrewRole,
    SafeManningRequirement,
    SafeManningRole,
)
from .manifest import (
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
from .passenger import (
    CheckInRequest,
    Gender,
    IdentityDocType,
    Passenger,
    PassengerFields,
    PassengerStatus,
)
from .vessel import Sailing, Vessel

__all__ = [
    "AuditAction",
    "AuditActor",
    "AuditEntityType",
    "AuditLogEntry",
    "AuditLogFilters",
    "AuditOutcome",
    "AuditPage",
    "AuditUser",
    "Principal",
    "CertificationReport",
    "ComplianceIssue",
    "ExpiringCertificate",
    "ExpiryClass",
    "IssueSeverity",
    "JurisdictionResult",
    "JurisdictionStatus",
    "ManifestValidationResult",
    "RosterStatus",
    "SafeManningResult",
    "CertificateType",
    "Certification",
    "CertificationStatus",
    "CrewIntakeRequest",
    "CrewMember",
    "CrewRole",
    "SafeManningRequirement",
    "SafeManningRole",
    "ExportFormat",
    "ExportRequest",
    "ExportResult",
    "Manifest",
    "ManifestEntry",
    "ManifestStatus",
    "ManifestValidationError",
    "ValidationSeverity",
    "ValidationStatus",
    "CheckInRequest",
    "Gender",
    "IdentityDocType",
    "Passenger",
    "PassengerFields",
    "PassengerStatus",
    "Sailing",
    "Vessel",
]
