"""Pytest configuration and fixtures for Seaguard tests."""

from datetime import date, timedelta
from typing import Iterable, Optional

import pytest

from local_storage import InMemoryStore
from seaguard.audit.ledger import AuditLedger
from seaguard.compliance.certifications import required_certificates
from seaguard.models.audit import Principal
from seaguard.models.crew import (
    CertificateType,
    Certification,
    CertificationStatus,
    CrewMember,
    CrewRole,
)
from seaguard.models.passenger import Passenger, PassengerStatus
from seaguard.models.vessel import Sailing, Vessel
from seaguard.security.crypto import FieldCipher
from seaguard.utils import utcnow

TEST_KEY_HEX = "0123456789abcdef" * 4


def certificates_for(role: CrewRole) -> list:
    """One accepted certificate type per requirement of ``role``."""
    return [sorted(req.accepted, key=lambda t: t.value)[0] for req in required_certificates(role)]


@pytest.fixture
def cipher():
    """Field cipher with a fixed test key."""
    return FieldCipher.from_hex(TEST_KEY_HEX)


@pytest.fixture
def store():
    """Empty in-memory storage."""
    return InMemoryStore()


@pytest.fixture
def ledger(store):
    return AuditLedger(store)


@pytest.fixture
def principal():
    """Authenticated compliance officer."""
    return Principal(
        subject="kc-7f3a",
        email="a.reyes@ferry.example",
        given_name="Ana",
        family_name="Reyes",
        preferred_username="areyes",
        roles=["compliance_officer"],
        ip_address="10.0.0.5",
        user_agent="pytest",
    )


@pytest.fixture
def make_certification():
    """Factory for certificates relative to now."""

    def _make(
        crew_id,
        cert_type: CertificateType,
        expires_in_days: int = 365,
        status: CertificationStatus = CertificationStatus.VALID,
    ) -> Certification:
        now = utcnow()
        return Certification(
            crew_id=crew_id,
            type=cert_type,
            issue_date=now - timedelta(days=365),
            expiry_date=now + timedelta(days=expires_in_days),
            status=status,
        )

    return _make


@pytest.fixture
def make_crew(make_certification):
    """Factory for crew members holding every certificate their role needs."""

    def _make(
        role: CrewRole,
        family_name: str = "Smith",
        vessel_id=None,
        cert_types: Optional[Iterable[CertificateType]] = None,
        expires_in_days: int = 365,
    ) -> CrewMember:
        member = CrewMember(family_name=family_name, given_names="Sam", role=role, vessel_id=vessel_id)
        types = certificates_for(role) if cert_types is None else list(cert_types)
        certs = [make_certification(member.id, t, expires_in_days) for t in types]
        return member.model_copy(update={"certifications": certs})

    return _make


@pytest.fixture
def vessel(store):
    """Small ferry (< 500 GT) without a Safe Manning Document."""
    return store.add_vessel(Vessel(name="MV Island Spirit", imo="9123456", gross_tonnage=450))


@pytest.fixture
def full_roster(store, vessel, make_crew):
    """Compliant crew for a small ferry, stored and assigned."""
    crew = [
        make_crew(CrewRole.MASTER, "Albury", vessel.id),
        make_crew(CrewRole.CHIEF_OFFICER, "Bethel", vessel.id),
        make_crew(CrewRole.ABLE_SEAMAN, "Cartwright", vessel.id),
        make_crew(CrewRole.ENGINE_OFFICER, "Darville", vessel.id),
    ]
    for member in crew:
        store.add_crew(member)
    return crew


@pytest.fixture
def sailing_date():
    return (utcnow() + timedelta(days=30)).date()


@pytest.fixture
def sailing(store, vessel, sailing_date):
    return store.add_sailing(Sailing(
        vessel_id=vessel.id,
        departure_port="Nassau",
        arrival_port="Freeport",
        departure_date=sailing_date,
    ))


@pytest.fixture
def checkin_payload(sailing, sailing_date):
    """Valid check-in payload for the sailing fixture."""
    return {
        "sailing_id": str(sailing.id),
        "family_name": "Knowles",
        "given_names": "Maria",
        "date_of_birth": "1985-05-17",
        "nationality": "BHS",
        "gender": "F",
        "identity_doc_type": "PASSPORT",
        "identity_doc_number": "AB1234567",
        "identity_doc_country": "BHS",
        "identity_doc_expiry": (sailing_date + timedelta(days=730)).isoformat(),
        "port_of_embarkation": "Nassau",
        "port_of_disembarkation": "Freeport",
        "consent_given": True,
    }


@pytest.fixture
def make_passenger(store, cipher, sailing, sailing_date):
    """Factory storing a checked-in passenger with an encrypted document number."""

    def _make(
        family_name: str = "Knowles",
        doc_number: Optional[str] = "AB1234567",
        date_of_birth: date = date(1985, 5, 17),
        doc_expiry: Optional[date] = None,
        **overrides,
    ) -> Passenger:
        data = dict(
            sailing_id=sailing.id,
            family_name=family_name,
            given_names="Maria",
            date_of_birth=date_of_birth,
            nationality="BHS",
            gender="F",
            identity_doc_type="PASSPORT",
            identity_doc_number=cipher.encrypt(doc_number) if doc_number else None,
            identity_doc_country="BHS",
            identity_doc_expiry=doc_expiry or sailing_date + timedelta(days=730),
            port_of_embarkation="Nassau",
            port_of_disembarkation="Freeport",
            consent_given=True,
            consent_timestamp=utcnow(),
            status=PassengerStatus.CHECKED_IN,
        )
        data.update(overrides)
        return store.add_passenger(Passenger(**data))

    return _make
