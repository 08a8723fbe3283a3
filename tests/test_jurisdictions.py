"""Tests for multi-jurisdiction dispatch."""

from datetime import date, datetime, timezone
from uuid import uuid4

import pytest

from seaguard.compliance.jurisdictions import (
    ApisEvaluator,
    CrewNoticeEvaluator,
    HomeFlagEvaluator,
    JurisdictionDispatcher,
    ManifestContext,
)
from seaguard.models.compliance import JurisdictionResult, JurisdictionStatus
from seaguard.models.crew import CrewRole
from seaguard.models.manifest import Manifest, ManifestValidationError, ValidationStatus
from seaguard.models.passenger import PassengerFields

SAILING = date(2030, 3, 10)
ARRIVAL = datetime(2030, 3, 10, 18, 0, tzinfo=timezone.utc)


def manifest(arrival_port="Freeport", valid=True, **kwargs):
    m = Manifest(
        sailing_id=uuid4(),
        departure_port="Nassau",
        arrival_port=arrival_port,
        sailing_date=SAILING,
        passenger_count=1,
        validation_status=ValidationStatus.VALID if valid else ValidationStatus.INVALID,
        **kwargs,
    )
    if not valid:
        m.validation_errors = [
            ManifestValidationError(
                manifest_id=m.id, field="passengers[0].nationality",
                message="Nationality is required", code="REQUIRED_FIELD_MISSING",
            )
        ]
    return m


def traveller(**overrides):
    data = dict(
        family_name="Knowles",
        given_names="Maria",
        date_of_birth=date(1985, 5, 17),
        nationality="BHS",
        identity_doc_country="BHS",
        identity_doc_expiry=date(2031, 1, 1),
    )
    data.update(overrides)
    return PassengerFields(**data)


class ExplodingEvaluator:
    name = "Broken Authority"

    def evaluate(self, context):
        raise RuntimeError("ruleset unavailable")


class StaticEvaluator:
    def __init__(self, name, status=JurisdictionStatus.COMPLIANT):
        self.name = name
        self.status = status

    def evaluate(self, context):
        return JurisdictionResult(jurisdiction=self.name, status=self.status)


class TestDispatcher:
    """Tests for JurisdictionDispatcher."""

    @pytest.mark.unit
    def test_home_only_for_domestic_route(self):
        results = JurisdictionDispatcher().evaluate(ManifestContext(manifest=manifest()))
        assert [r.jurisdiction for r in results] == ["Bahamas Maritime Authority"]
        assert results[0].status == JurisdictionStatus.COMPLIANT

    @pytest.mark.unit
    def test_trigger_port_adds_secondary_in_order(self):
        context = ManifestContext(
            manifest=manifest(arrival_port="Port of Miami"),
            passengers=[traveller()],
            arrival_time=ARRIVAL,
        )
        results = JurisdictionDispatcher().evaluate(context)
        assert [r.jurisdiction for r in results] == [
            "Bahamas Maritime Authority",
            "US CBP (APIS)",
            "US Coast Guard (NOA)",
        ]

    @pytest.mark.unit
    def test_trigger_match_is_case_insensitive(self):
        dispatcher = JurisdictionDispatcher(trigger_ports=["Fort Lauderdale"])
        assert dispatcher.route_triggers_secondary(["Nassau", "FORT LAUDERDALE (Port Everglades)"])
        assert not dispatcher.route_triggers_secondary(["Nassau", "Freeport"])

    @pytest.mark.unit
    def test_failing_evaluator_does_not_stop_the_rest(self):
        dispatcher = JurisdictionDispatcher(
            home=StaticEvaluator("Home"),
            secondary=[ExplodingEvaluator(), StaticEvaluator("Other", JurisdictionStatus.WARNING)],
            trigger_ports=["Miami"],
        )
        results = dispatcher.evaluate(ManifestContext(manifest=manifest(arrival_port="Miami")))
        assert [(r.jurisdiction, r.status) for r in results] == [
            ("Home", JurisdictionStatus.COMPLIANT),
            ("Broken Authority", JurisdictionStatus.NON_COMPLIANT),
            ("Other", JurisdictionStatus.WARNING),
        ]
        assert results[1].errors[0].code == "EVALUATION_FAILED"

    @pytest.mark.unit
    def test_non_compliant_home_does_not_suppress_secondary(self):
        context = ManifestContext(manifest=manifest(arrival_port="Miami", valid=False), arrival_time=ARRIVAL)
        results = JurisdictionDispatcher().evaluate(context)
        assert results[0].status == JurisdictionStatus.NON_COMPLIANT
        assert len(results) == 3


class TestEvaluators:
    """Tests for the bundled evaluators."""

    @pytest.mark.unit
    def test_home_flag_reports_blocking_errors(self):
        result = HomeFlagEvaluator("Flag").evaluate(ManifestContext(manifest=manifest(valid=False)))
        assert result.status == JurisdictionStatus.NON_COMPLIANT
        assert [e.field for e in result.errors] == ["passengers[0].nationality"]

    @pytest.mark.unit
    def test_apis_missing_fields_and_expired_document(self):
        context = ManifestContext(
            manifest=manifest(),
            passengers=[traveller(identity_doc_country=None, identity_doc_expiry=date(2029, 1, 1))],
        )
        result = ApisEvaluator().evaluate(context)
        assert result.status == JurisdictionStatus.NON_COMPLIANT
        assert {e.code for e in result.errors} == {"APIS_FIELD_MISSING", "APIS_DOCUMENT_EXPIRED"}

    @pytest.mark.unit
    def test_apis_compliant(self):
        result = ApisEvaluator().evaluate(ManifestContext(manifest=manifest(), passengers=[traveller()]))
        assert result.status == JurisdictionStatus.COMPLIANT

    @pytest.mark.unit
    def test_noa_requires_crew(self):
        result = CrewNoticeEvaluator().evaluate(ManifestContext(manifest=manifest(), arrival_time=ARRIVAL))
        assert [e.code for e in result.errors] == ["CREW_LIST_EMPTY"]

    @pytest.mark.unit
    def test_noa_missing_arrival_time_is_a_warning(self, make_crew):
        context = ManifestContext(manifest=manifest(), crew=[make_crew(CrewRole.MASTER)])
        result = CrewNoticeEvaluator().evaluate(context)
        assert result.status == JurisdictionStatus.WARNING
        assert result.errors == []

    @pytest.mark.unit
    def test_noa_expired_certificate(self, make_crew):
        lapsed = make_crew(CrewRole.MASTER, expires_in_days=-3)
        result = CrewNoticeEvaluator().evaluate(
            ManifestContext(manifest=manifest(), crew=[lapsed], arrival_time=ARRIVAL)
        )
        assert result.status == JurisdictionStatus.NON_COMPLIANT
        assert all(e.code == "CERTIFICATE_EXPIRED" for e in result.errors)
        assert result.errors
