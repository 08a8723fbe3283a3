"""Crew, certification and safe manning data models."""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import List, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from ..utils import utcnow


class CrewRole(str, Enum):
    """Ranks recognised on a Safe Manning Document, across departments."""

    # Deck
    MASTER = "MASTER"
    CHIEF_OFFICER = "CHIEF_OFFICER"
    SECOND_OFFICER = "SECOND_OFFICER"
    THIRD_OFFICER = "THIRD_OFFICER"
    DECK_OFFICER = "DECK_OFFICER"
    ABLE_SEAMAN = "ABLE_SEAMAN"
    ORDINARY_SEAMAN = "ORDINARY_SEAMAN"
    RATING = "RATING"
    CADET = "CADET"
    # Engine
    CHIEF_ENGINEER = "CHIEF_ENGINEER"
    SECOND_ENGINEER = "SECOND_ENGINEER"
    THIRD_ENGINEER = "THIRD_ENGINEER"
    ENGINE_OFFICER = "ENGINE_OFFICER"
    ELECTRO_TECHNICAL_OFFICER = "ELECTRO_TECHNICAL_OFFICER"
    # Steward
    CHIEF_STEWARD = "CHIEF_STEWARD"
    STEWARD = "STEWARD"
    COOK = "COOK"

    OTHER = "OTHER"


class CertificateType(str, Enum):
    """Certificate types accepted at intake (STCW competencies and medicals)."""

    MASTER = "MASTER"
    OFFICER_IN_CHARGE = "OFFICER_IN_CHARGE"
    CHIEF_ENGINEER = "CHIEF_ENGINEER"
    SECOND_ENGINEER = "SECOND_ENGINEER"
    ENGINEER = "ENGINEER"
    ENG1 = "ENG1"
    PEME = "PEME"
    MEDICAL = "MEDICAL"
    STCW_BASIC = "STCW_BASIC"
    STCW_ADVANCED = "STCW_ADVANCED"
    STCW_SUPPORT = "STCW_SUPPORT"
    RADAR = "RADAR"
    ECDIS = "ECDIS"
    GMDSS = "GMDSS"


class CertificationStatus(str, Enum):
    VALID = "VALID"
    PENDING_VERIFICATION = "PENDING_VERIFICATION"
    REVOKED = "REVOKED"
    EXPIRED = "EXPIRED"


class Certification(BaseModel):
    """A certificate held by a crew member."""

    id: UUID = Field(default_factory=uuid4)
    crew_id: UUID
    type: CertificateType
    certificate_number: Optional[str] = None
    issuing_authority: Optional[str] = None
    issuing_country: Optional[str] = None
    issue_date: datetime
    expiry_date: datetime
    status: CertificationStatus = CertificationStatus.VALID
    verified_at: Optional[datetime] = None
    revoked_at: Optional[datetime] = None
    revocation_reason: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class CrewMember(BaseModel):
    """A seafarer, optionally assigned to a vessel."""

    id: UUID = Field(default_factory=uuid4)
    family_name: str
    given_names: str
    role: CrewRole
    vessel_id: Optional[UUID] = None  # Unassigned crew exist
    nationality: Optional[str] = None
    date_of_birth: Optional[date] = None
    identification_number: Optional[str] = None  # Seafarer book or STCW id, encrypted at rest
    certifications: List[Certification] = Field(default_factory=list)
    deleted_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def display_name(self) -> str:
        return f"{self.family_name} {self.given_names}".strip()


class CrewIntakeRequest(BaseModel):
    """Intake payload for registering a seafarer."""

    family_name: str
    given_names: str
    identification_number: str
    role: CrewRole
    nationality: Optional[str] = None
    date_of_birth: Optional[date] = None


class SafeManningRole(BaseModel):
    role: CrewRole
    minimum_count: int = Field(ge=0)


class SafeManningRequirement(BaseModel):
    """A Safe Manning Document issued for one vessel.

    The most recently issued document is authoritative; older ones are
    kept for history only.
    """

    id: UUID = Field(default_factory=uuid4)
    vessel_id: UUID
    issue_date: date
    issuing_authority: Optional[str] = None
    roles: List[SafeManningRole] = Field(default_factory=list)
