"""Tests for the manifest lifecycle service."""

from uuid import uuid4

import pytest

from seaguard.errors import (
    ComplianceGateError,
    ConcurrentModificationError,
    InputValidationError,
    NotFoundError,
    StatusMismatchError,
)
from seaguard.models.audit import AuditAction, AuditOutcome
from seaguard.models.compliance import JurisdictionStatus
from seaguard.models.manifest import (
    ExportFormat,
    ManifestStatus,
    ManifestValidationError,
    ValidationSeverity,
    ValidationStatus,
)
from seaguard.services.manifests import ManifestService
from seaguard.services.passengers import PassengerService
from seaguard.version import RULESET_VERSION


@pytest.fixture
def service(store, ledger, cipher):
    return ManifestService(store, ledger, cipher)


@pytest.fixture
def passengers_service(store, ledger, cipher):
    return PassengerService(store, ledger, cipher)


def actions(store, entity_id):
    return [(e.action, e.outcome) for e in store.entries_for(entity_id)]


class TestGenerate:
    """Tests for ManifestService.generate."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_valid_manifest(self, service, store, sailing, make_passenger, principal):
        make_passenger("Knowles")
        make_passenger("Bain", doc_number="CD7654321")

        manifest = await service.generate(sailing.id, principal)

        assert manifest.status == ManifestStatus.DRAFT
        assert manifest.validation_status == ValidationStatus.VALID
        assert manifest.passenger_count == 2
        assert [e.sequence_number for e in manifest.entries] == [1, 2]
        assert manifest.generated_by == "kc-7f3a"
        [entry] = store.entries_for(manifest.id)
        assert entry.action == AuditAction.MANIFEST_GENERATED
        assert entry.details["ruleset"] == RULESET_VERSION

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_invalid_passengers_are_recorded_not_raised(self, service, sailing, make_passenger):
        make_passenger("Knowles", nationality=None)
        manifest = await service.generate(sailing.id)
        assert manifest.validation_status == ValidationStatus.INVALID
        assert [e.field for e in manifest.blocking_errors] == ["passengers[0].nationality"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_empty_sailing_is_invalid(self, service, sailing):
        manifest = await service.generate(sailing.id)
        assert manifest.validation_status == ValidationStatus.INVALID
        assert [e.code for e in manifest.validation_errors] == ["NO_PASSENGERS"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_undecryptable_document_is_an_error(self, service, store, sailing, make_passenger):
        passenger = make_passenger("Knowles")
        store.passengers[passenger.id] = passenger.model_copy(update={"identity_doc_number": "garbled"})
        manifest = await service.generate(sailing.id)
        assert [e.code for e in manifest.blocking_errors] == ["DOCUMENT_NUMBER_UNREADABLE"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_warnings_do_not_block(self, service, sailing, sailing_date, make_passenger):
        make_passenger("Knowles", doc_expiry=sailing_date)
        manifest = await service.generate(sailing.id)
        assert manifest.validation_status == ValidationStatus.VALID
        assert [e.severity for e in manifest.validation_errors] == [ValidationSeverity.WARNING]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unknown_sailing(self, service, store):
        missing = uuid4()
        with pytest.raises(NotFoundError):
            await service.generate(missing)
        assert actions(store, missing) == [(AuditAction.MANIFEST_GENERATED, AuditOutcome.FAILURE)]


class TestApprovalGate:
    """Tests for approve, request_review, reject and submit."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_approve_valid_manifest(self, service, store, sailing, make_passenger, principal):
        make_passenger()
        manifest = await service.generate(sailing.id)

        approved = await service.approve(manifest.id, principal, notes="Checked against FAL 5")

        assert approved.status == ManifestStatus.APPROVED
        assert approved.approved_by == "kc-7f3a"
        assert approved.approved_at is not None
        entry = store.entries_for(manifest.id)[-1]
        assert entry.action == AuditAction.MANIFEST_APPROVED
        assert entry.previous_value == {"status": "DRAFT"}
        assert entry.new_value == {"status": "APPROVED"}
        assert entry.reason == "Checked against FAL 5"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_gate_lists_every_error(self, service, store, sailing, make_passenger, principal):
        make_passenger("Knowles", nationality=None)
        make_passenger("Bain", doc_number="bad")
        manifest = await service.generate(sailing.id)

        with pytest.raises(ComplianceGateError) as exc:
            await service.approve(manifest.id, principal)

        assert exc.value.error_count == 2
        assert {v.code for v in exc.value.violations} == {
            "REQUIRED_FIELD_MISSING",
            "INVALID_PASSPORT_FORMAT",
        }
        assert store.manifests[manifest.id].status == ManifestStatus.DRAFT
        entry = store.entries_for(manifest.id)[-1]
        assert (entry.action, entry.outcome) == (AuditAction.MANIFEST_APPROVED, AuditOutcome.FAILURE)
        assert entry.details["error_count"] == 2

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_review_then_approve(self, service, sailing, make_passenger):
        make_passenger()
        manifest = await service.generate(sailing.id)
        pending = await service.request_review(manifest.id)
        assert pending.status == ManifestStatus.PENDING
        assert (await service.approve(manifest.id)).status == ManifestStatus.APPROVED

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_cannot_approve_twice(self, service, sailing, make_passenger):
        make_passenger()
        manifest = await service.generate(sailing.id)
        await service.approve(manifest.id)
        with pytest.raises(StatusMismatchError) as exc:
            await service.approve(manifest.id)
        assert exc.value.current == "APPROVED"
        assert exc.value.allowed == ["DRAFT", "PENDING"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_lost_race_is_reported(self, service, store, sailing, make_passenger):
        make_passenger()
        manifest = await service.generate(sailing.id)
        store.interfere_with_transitions = ManifestStatus.REJECTED
        with pytest.raises(ConcurrentModificationError):
            await service.approve(manifest.id)
        assert store.manifests[manifest.id].status == ManifestStatus.REJECTED

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_errors_stored_after_gate_read_block_approval(
        self, service, store, sailing, make_passenger, monkeypatch
    ):
        make_passenger()
        manifest = await service.generate(sailing.id)
        transition = store.transition_manifest

        async def revalidated_meanwhile(manifest_id, *args, **kwargs):
            error = ManifestValidationError(
                manifest_id=manifest_id,
                field="passengers[0].nationality",
                code="REQUIRED_FIELD_MISSING",
                message="nationality is required",
            )
            await store.replace_validation_errors(manifest_id, [error], ValidationStatus.INVALID)
            return await transition(manifest_id, *args, **kwargs)

        monkeypatch.setattr(store, "transition_manifest", revalidated_meanwhile)

        with pytest.raises(ConcurrentModificationError):
            await service.approve(manifest.id)
        assert store.manifests[manifest.id].status == ManifestStatus.DRAFT
        assert actions(store, manifest.id)[-1] == (AuditAction.MANIFEST_APPROVED, AuditOutcome.FAILURE)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_reject_requires_reason(self, service, store, sailing, make_passenger):
        make_passenger()
        manifest = await service.generate(sailing.id)
        with pytest.raises(InputValidationError):
            await service.reject(manifest.id, "   ")
        rejected = await service.reject(manifest.id, " Wrong sailing ")
        assert rejected.status == ManifestStatus.REJECTED
        assert rejected.rejection_reason == "Wrong sailing"
        assert [a for a, _ in actions(store, manifest.id)][-2:] == [
            AuditAction.MANIFEST_REJECTED,
            AuditAction.MANIFEST_REJECTED,
        ]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_submit_only_after_approval(self, service, sailing, make_passenger, principal):
        make_passenger()
        manifest = await service.generate(sailing.id)
        with pytest.raises(StatusMismatchError):
            await service.submit(manifest.id, principal)
        await service.approve(manifest.id, principal)
        submitted = await service.submit(manifest.id, principal)
        assert submitted.status == ManifestStatus.SUBMITTED
        assert submitted.submitted_by == "kc-7f3a"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_revalidate_after_fix_opens_the_gate(
        self, service, passengers_service, sailing, make_passenger
    ):
        passenger = make_passenger("Knowles", nationality=None)
        manifest = await service.generate(sailing.id)

        await passengers_service.update(passenger.id, {"nationality": "BHS"})
        revalidated = await service.revalidate(manifest.id)

        assert revalidated.validation_status == ValidationStatus.VALID
        assert revalidated.blocking_errors == []
        assert (await service.approve(manifest.id)).status == ManifestStatus.APPROVED

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_revalidate_only_drafts(self, service, sailing, make_passenger):
        make_passenger()
        manifest = await service.generate(sailing.id)
        await service.approve(manifest.id)
        with pytest.raises(StatusMismatchError):
            await service.revalidate(manifest.id)


class TestJurisdictionsAndExport:
    """Tests for check_jurisdictions and export."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_domestic_route_checks_home_only(self, service, store, sailing, make_passenger, full_roster):
        make_passenger()
        manifest = await service.generate(sailing.id)
        results = await service.check_jurisdictions(manifest.id)
        assert [(r.jurisdiction, r.status) for r in results] == [
            ("Bahamas Maritime Authority", JurisdictionStatus.COMPLIANT)
        ]
        entry = store.entries_for(manifest.id)[-1]
        assert entry.action == AuditAction.MANIFEST_JURISDICTION_CHECK

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_us_route_adds_secondary(self, service, store, sailing, make_passenger, full_roster):
        store.sailings[sailing.id] = sailing.model_copy(update={"arrival_port": "Miami"})
        make_passenger()
        manifest = await service.generate(sailing.id)
        results = await service.check_jurisdictions(manifest.id)
        assert len(results) == 3
        assert results[1].status == JurisdictionStatus.COMPLIANT

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_export_writes_one_entry(self, service, store, sailing, make_passenger, principal):
        make_passenger("Knowles")
        manifest = await service.generate(sailing.id)
        before = len(store.audit_entries)

        result = await service.export(manifest.id, ExportFormat.CSV, "bahamas", principal)

        assert result.record_count == 1
        text = result.data.decode()
        assert "KNOWLES" in text
        assert "AB1234567" not in text
        assert "********4567" in text
        new_entries = store.audit_entries[before:]
        assert [e.action for e in new_entries] == [AuditAction.DATA_EXPORT]
        assert new_entries[0].details["record_count"] == 1

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_export_skips_removed_passengers(
        self, service, passengers_service, sailing, make_passenger
    ):
        make_passenger("Knowles")
        bain = make_passenger("Bain", doc_number="CD7654321")
        manifest = await service.generate(sailing.id)
        await passengers_service.remove(bain.id, reason="Did not board")
        await service.approve(manifest.id)

        result = await service.export(manifest.id, ExportFormat.CSV, "bahamas")

        assert result.record_count == 1
        text = result.data.decode()
        assert "KNOWLES" in text
        assert "BAIN" not in text
        assert "********4321" not in text

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_failed_export_is_still_audited(self, service, store, sailing, make_passenger):
        make_passenger()
        manifest = await service.generate(sailing.id)
        before = len(store.audit_entries)

        with pytest.raises(InputValidationError):
            await service.export(manifest.id, ExportFormat.PDF, "bahamas")

        [entry] = store.audit_entries[before:]
        assert entry.action == AuditAction.DATA_EXPORT
        assert entry.outcome == AuditOutcome.FAILURE
        assert entry.details["record_count"] == 0

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_audit_outage_does_not_fail_the_operation(self, service, store, sailing, make_passenger):
        make_passenger()
        store.fail_audit_writes = True
        manifest = await service.generate(sailing.id)
        assert (await service.approve(manifest.id)).status == ManifestStatus.APPROVED
        assert store.audit_entries == []
