"""Tests for safe manning evaluation."""

from datetime import date
from uuid import uuid4

import pytest

from seaguard.compliance.safe_manning import (
    authoritative_document,
    evaluate_safe_manning,
    merge_requirements,
    requirements_from_mapping,
    vessel_category,
)
from seaguard.errors import InputValidationError
from seaguard.models.crew import CrewMember, CrewRole, SafeManningRequirement, SafeManningRole


def crew_of(*roles):
    return [CrewMember(family_name=f"Crew{i}", given_names="A", role=r) for i, r in enumerate(roles)]


def roles(**counts):
    return [SafeManningRole(role=CrewRole(r), minimum_count=c) for r, c in counts.items()]


class TestVesselCategory:
    """Tests for tonnage buckets."""

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "tonnage,expected",
        [
            (0, "FERRY_SMALL"),
            (499.9, "FERRY_SMALL"),
            (500, "FERRY_MEDIUM"),
            (2999, "FERRY_MEDIUM"),
            (3000, "FERRY_LARGE"),
        ],
    )
    def test_boundaries(self, tonnage, expected):
        assert vessel_category(tonnage) == expected

    @pytest.mark.unit
    def test_negative_tonnage_rejected(self):
        with pytest.raises(InputValidationError) as exc:
            vessel_category(-1)
        assert exc.value.code == "INVALID_TONNAGE"


class TestEvaluateSafeManning:
    """Tests for evaluate_safe_manning."""

    @pytest.mark.unit
    def test_document_requirements_met(self):
        result = evaluate_safe_manning(
            crew_of(CrewRole.MASTER, CrewRole.CHIEF_OFFICER),
            requirements=roles(MASTER=1, CHIEF_OFFICER=1),
        )
        assert result.compliant
        assert result.source == "document"
        assert result.errors == []

    @pytest.mark.unit
    def test_shortfall_reports_each_role(self):
        result = evaluate_safe_manning(
            crew_of(CrewRole.MASTER),
            requirements=roles(MASTER=1, CHIEF_ENGINEER=1, ABLE_SEAMAN=2),
        )
        assert not result.compliant
        by_role = {e.role: e for e in result.errors}
        assert set(by_role) == {"CHIEF_ENGINEER", "ABLE_SEAMAN"}
        assert by_role["CHIEF_ENGINEER"].actual == 0
        assert by_role["ABLE_SEAMAN"].required == 2
        assert by_role["ABLE_SEAMAN"].actual == 1
        assert all(e.code == "INSUFFICIENT_CREW" for e in result.errors)

    @pytest.mark.unit
    def test_substitution_counts_independently_per_role(self):
        # One master satisfies both billets because each role is counted on its own
        result = evaluate_safe_manning(
            crew_of(CrewRole.MASTER),
            requirements=roles(MASTER=1, CHIEF_OFFICER=1),
        )
        assert result.compliant
        assert result.fulfillable_by_role == {"MASTER": 1, "CHIEF_OFFICER": 1}

    @pytest.mark.unit
    def test_document_overrides_tonnage(self):
        result = evaluate_safe_manning(
            crew_of(CrewRole.MASTER),
            requirements=roles(MASTER=1),
            gross_tonnage=10000,
        )
        assert result.compliant
        assert result.source == "document"

    @pytest.mark.unit
    def test_empty_requirements_fall_back_to_tonnage(self):
        result = evaluate_safe_manning(crew_of(CrewRole.COOK), requirements=[], gross_tonnage=4000)
        assert not result.compliant
        assert result.source.startswith("tonnage:")
        assert "MASTER" in {e.role for e in result.errors}

    @pytest.mark.unit
    def test_empty_requirements_without_tonnage(self):
        result = evaluate_safe_manning([], requirements=[])
        assert not result.compliant
        assert [e.code for e in result.errors] == ["MISSING_SAFE_MANNING_INPUT"]

    @pytest.mark.unit
    def test_zero_minimums_impose_nothing(self):
        result = evaluate_safe_manning([], requirements=roles(MASTER=0))
        assert result.compliant

    @pytest.mark.unit
    def test_tonnage_fallback(self):
        crew = crew_of(CrewRole.MASTER, CrewRole.CHIEF_OFFICER, CrewRole.ABLE_SEAMAN, CrewRole.ENGINE_OFFICER)
        result = evaluate_safe_manning(crew, gross_tonnage=450)
        assert result.compliant
        assert result.source == "tonnage:FERRY_SMALL"

    @pytest.mark.unit
    def test_tonnage_fallback_shortfall(self):
        result = evaluate_safe_manning(crew_of(CrewRole.MASTER), gross_tonnage=1200)
        assert not result.compliant
        assert result.source == "tonnage:FERRY_MEDIUM"
        assert {e.role for e in result.errors} >= {"SECOND_ENGINEER", "ABLE_SEAMAN"}

    @pytest.mark.unit
    def test_missing_inputs(self):
        result = evaluate_safe_manning(crew_of(CrewRole.MASTER))
        assert not result.compliant
        assert [e.code for e in result.errors] == ["MISSING_SAFE_MANNING_INPUT"]

    @pytest.mark.unit
    def test_actual_by_role_counts_literal_ranks(self):
        result = evaluate_safe_manning(
            crew_of(CrewRole.MASTER, CrewRole.ABLE_SEAMAN, CrewRole.ABLE_SEAMAN),
            requirements=roles(ABLE_SEAMAN=2),
        )
        assert result.actual_by_role == {"MASTER": 1, "ABLE_SEAMAN": 2}
        assert result.fulfillable_by_role == {"ABLE_SEAMAN": 3}


class TestRequirementHelpers:
    """Tests for document selection and requirement parsing."""

    @pytest.mark.unit
    def test_merge_keeps_larger_minimum(self):
        merged = merge_requirements(roles(MASTER=1) + roles(MASTER=2))
        assert merged == {"MASTER": 2}

    @pytest.mark.unit
    def test_authoritative_document_is_latest(self):
        vessel_id = uuid4()
        old = SafeManningRequirement(vessel_id=vessel_id, issue_date=date(2020, 1, 1))
        new = SafeManningRequirement(vessel_id=vessel_id, issue_date=date(2023, 6, 1))
        assert authoritative_document([old, new]) is new
        assert authoritative_document([]) is None

    @pytest.mark.unit
    def test_requirements_from_mapping(self):
        parsed = requirements_from_mapping({"master": 1, "ABLE_SEAMAN": 2})
        assert [(r.role, r.minimum_count) for r in parsed] == [
            (CrewRole.MASTER, 1),
            (CrewRole.ABLE_SEAMAN, 2),
        ]

    @pytest.mark.unit
    def test_requirements_from_mapping_unknown_role(self):
        with pytest.raises(InputValidationError) as exc:
            requirements_from_mapping({"BOSUN": 1})
        assert exc.value.code == "UNKNOWN_ROLE"
