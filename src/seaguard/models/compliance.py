"""Result models returned by the compliance evaluators."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class IssueSeverity(str, Enum):
    ERROR = "error"
    CRITICAL = "critical"  # Expiring within the critical window; does not block
    WARNING = "warning"


class ComplianceIssue(BaseModel):
    """A single finding: field/code/message plus optional context."""

    code: str
    message: str
    severity: IssueSeverity = IssueSeverity.ERROR
    field: Optional[str] = None
    crew_member_id: Optional[str] = None
    crew_name: Optional[str] = None
    certificate_type: Optional[str] = None
    role: Optional[str] = None
    required: Optional[int] = None
    actual: Optional[int] = None

    @property
    def blocking(self) -> bool:
        return self.severity == IssueSeverity.ERROR


class SafeManningResult(BaseModel):
    compliant: bool
    required: Dict[str, int] = Field(default_factory=dict)
    # Headcount by rank as rostered, without substitutions
    actual_by_role: Dict[str, int] = Field(default_factory=dict)
    # Headcount able to fill each required role; one person may count for several
    fulfillable_by_role: Dict[str, int] = Field(default_factory=dict)
    errors: List[ComplianceIssue] = Field(default_factory=list)
    warnings: List[ComplianceIssue] = Field(default_factory=list)
    source: str = "none"  # "document", "tonnage:<category>" or "none"


class ExpiryClass(str, Enum):
    OK = "ok"
    WARNING = "warning"
    CRITICAL = "critical"
    EXPIRED = "expired"


class ExpiringCertificate(BaseModel):
    id: UUID
    crew_id: UUID
    type: str
    expiry_date: datetime
    days_until_expiry: int
    severity: ExpiryClass


class CertificationReport(BaseModel):
    compliant: bool
    errors: List[ComplianceIssue] = Field(default_factory=list)
    critical: List[ComplianceIssue] = Field(default_factory=list)
    warnings: List[ComplianceIssue] = Field(default_factory=list)
    evaluated_crew: int = 0


class ManifestValidationResult(BaseModel):
    valid: bool
    errors: List[ComplianceIssue] = Field(default_factory=list)
    warnings: List[ComplianceIssue] = Field(default_factory=list)


class RosterStatus(BaseModel):
    vessel_id: UUID
    compliant: bool
    safe_manning: SafeManningResult
    certifications: CertificationReport


class JurisdictionStatus(str, Enum):
    COMPLIANT = "COMPLIANT"
    NON_COMPLIANT = "NON_COMPLIANT"
    WARNING = "WARNING"


class JurisdictionResult(BaseModel):
    jurisdiction: str
    status: JurisdictionStatus
    details: Dict[str, Any] = Field(default_factory=dict)
    errors: List[ComplianceIssue] = Field(default_factory=list)
