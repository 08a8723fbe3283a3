"""Vessel and sailing data models."""

from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from ..utils import utcnow
from .crew import CrewMember


class Vessel(BaseModel):
    """Represents a vessel from the fleet register."""

    id: UUID = Field(default_factory=uuid4)
    name: str
    imo: Optional[str] = None  # 7-digit IMO number
    vessel_type: Optional[str] = None  # Ro-Pax, fast ferry, etc.
    flag: Optional[str] = None
    gross_tonnage: Optional[float] = None  # Needed when no Safe Manning Document exists
    passenger_capacity: Optional[int] = None
    crew: List[CrewMember] = Field(default_factory=list)
    deleted_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Sailing(BaseModel):
    """One scheduled departure of a vessel on a route."""

    id: UUID = Field(default_factory=uuid4)
    vessel_id: UUID
    departure_port: str
    arrival_port: str
    departure_date: date
    departure_time: Optional[datetime] = None
    arrival_time: Optional[datetime] = None
