"""Passenger data models (IMO FAL Form 5 fields)."""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from ..utils import utcnow


class PassengerStatus(str, Enum):
    CHECKED_IN = "CHECKED_IN"
    BOARDED = "BOARDED"
    NO_SHOW = "NO_SHOW"
    CANCELLED = "CANCELLED"


class Gender(str, Enum):
    M = "M"
    F = "F"
    X = "X"


class IdentityDocType(str, Enum):
    PASSPORT = "PASSPORT"
    NATIONAL_ID = "NATIONAL_ID"
    TRAVEL_DOCUMENT = "TRAVEL_DOCUMENT"
    SEAMAN_BOOK = "SEAMAN_BOOK"


class Passenger(BaseModel):
    """A stored passenger record.

    ``identity_doc_number`` holds ciphertext; use ``FieldCipher`` to read it.
    Fields are optional so that incomplete records can still be loaded
    and reported by the manifest validator instead of failing to parse.
    """

    id: UUID = Field(default_factory=uuid4)
    sailing_id: UUID
    family_name: Optional[str] = None
    given_names: Optional[str] = None
    date_of_birth: Optional[date] = None
    nationality: Optional[str] = None
    gender: Optional[Gender] = None
    identity_doc_type: Optional[IdentityDocType] = None
    identity_doc_number: Optional[str] = None
    identity_doc_country: Optional[str] = None
    identity_doc_expiry: Optional[date] = None
    port_of_embarkation: Optional[str] = None
    port_of_disembarkation: Optional[str] = None
    cabin_or_seat: Optional[str] = None
    special_instructions: Optional[str] = None
    consent_given: bool = False
    consent_timestamp: Optional[datetime] = None
    status: PassengerStatus = PassengerStatus.CHECKED_IN
    deleted_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class PassengerFields(BaseModel):
    """Plaintext view of the regulatory fields, as the validator sees them."""

    family_name: Optional[str] = None
    given_names: Optional[str] = None
    date_of_birth: Optional[date] = None
    nationality: Optional[str] = None
    gender: Optional[str] = None
    identity_doc_type: Optional[str] = None
    identity_doc_number: Optional[str] = None
    identity_doc_unreadable: bool = False  # Stored ciphertext could not be decrypted
    identity_doc_country: Optional[str] = None
    identity_doc_expiry: Optional[date] = None
    port_of_embarkation: Optional[str] = None
    port_of_disembarkation: Optional[str] = None


class CheckInRequest(BaseModel):
    """Intake payload for checking a passenger in to a sailing."""

    sailing_id: UUID
    family_name: str
    given_names: str
    date_of_birth: date
    nationality: str
    gender: Gender
    identity_doc_type: IdentityDocType
    identity_doc_number: str
    identity_doc_country: str
    identity_doc_expiry: date
    port_of_embarkation: str
    port_of_disembarkation: str
    cabin_or_seat: Optional[str] = None
    special_instructions: Optional[str] = None
    consent_given: bool = False
    consent_provided_at: Optional[datetime] = None
