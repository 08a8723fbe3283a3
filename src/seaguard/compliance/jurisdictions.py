"""Multi-jurisdiction dispatch.

The home flag is always evaluated. Secondary evaluators (US CBP APIS and
US Coast Guard notice of arrival) join only when a sailing's route
touches one of the configured trigger ports.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Protocol, Sequence

from ..models.compliance import (
    ComplianceIssue,
    IssueSeverity,
    JurisdictionResult,
    JurisdictionStatus,
)
from ..models.crew import CrewMember
from ..models.manifest import Manifest, ValidationStatus
from ..models.passenger import PassengerFields
from ..utils import utcnow
from .certifications import evaluate_crew_certifications

logger = logging.getLogger(__name__)

DEFAULT_HOME_JURISDICTION = "Bahamas Maritime Authority"
DEFAULT_TRIGGER_PORTS = ("Fort Lauderdale", "Port Everglades", "Miami", "West Palm Beach")


@dataclass
class ManifestContext:
    """Everything a jurisdiction evaluator may look at for one manifest."""

    manifest: Manifest
    passengers: List[PassengerFields] = field(default_factory=list)
    crew: List[CrewMember] = field(default_factory=list)
    arrival_time: Optional[datetime] = None
    reference: Optional[datetime] = None

    @property
    def ports(self) -> List[str]:
        return [p for p in (self.manifest.departure_port, self.manifest.arrival_port) if p]


class JurisdictionEvaluator(Protocol):
    name: str

    def evaluate(self, context: ManifestContext) -> JurisdictionResult:
        ...


def _status_for(errors: Sequence[ComplianceIssue], warnings: Sequence[ComplianceIssue]) -> JurisdictionStatus:
    if errors:
        return JurisdictionStatus.NON_COMPLIANT
    if warnings:
        return JurisdictionStatus.WARNING
    return JurisdictionStatus.COMPLIANT


class HomeFlagEvaluator:
    """Base ruleset: the manifest's own field validation outcome."""

    def __init__(self, name: str = DEFAULT_HOME_JURISDICTION):
        self.name = name

    def evaluate(self, context: ManifestContext) -> JurisdictionResult:
        manifest = context.manifest
        valid = manifest.validation_status == ValidationStatus.VALID
        errors = [
            ComplianceIssue(field=e.field, code=e.code or "VALIDATION_ERROR", message=e.message)
            for e in manifest.blocking_errors
        ]
        return JurisdictionResult(
            jurisdiction=self.name,
            status=JurisdictionStatus.COMPLIANT if valid else JurisdictionStatus.NON_COMPLIANT,
            details={
                "validation_status": manifest.validation_status.value,
                "passenger_count": manifest.passenger_count,
            },
            errors=errors,
        )


class ApisEvaluator:
    """Advance passenger information: every traveller needs a usable document."""

    name = "US CBP (APIS)"

    def evaluate(self, context: ManifestContext) -> JurisdictionResult:
        sailing_date = context.manifest.sailing_date
        errors: List[ComplianceIssue] = []

        for index, passenger in enumerate(context.passengers):
            prefix = f"passengers[{index}]"
            for attr, label in (
                ("identity_doc_country", "Document issuing country"),
                ("date_of_birth", "Date of birth"),
                ("nationality", "Nationality"),
            ):
                if not getattr(passenger, attr):
                    errors.append(ComplianceIssue(
                        field=f"{prefix}.{attr}",
                        code="APIS_FIELD_MISSING",
                        message=f"{label} is required for APIS",
                    ))
            if passenger.identity_doc_expiry and passenger.identity_doc_expiry < sailing_date:
                errors.append(ComplianceIssue(
                    field=f"{prefix}.identity_doc_expiry",
                    code="APIS_DOCUMENT_EXPIRED",
                    message="Travel document is not valid on the sailing date",
                ))

        return JurisdictionResult(
            jurisdiction=self.name,
            status=_status_for(errors, []),
            details={"passengers_checked": len(context.passengers)},
            errors=errors,
        )


class CrewNoticeEvaluator:
    """Notice of arrival: a crew list with no expired certificates and a declared arrival."""

    name = "US Coast Guard (NOA)"

    def evaluate(self, context: ManifestContext) -> JurisdictionResult:
        errors: List[ComplianceIssue] = []
        warnings: List[ComplianceIssue] = []

        if not context.crew:
            errors.append(ComplianceIssue(code="CREW_LIST_EMPTY", message="No crew assigned to the vessel"))
        else:
            report = evaluate_crew_certifications(context.crew, context.reference or utcnow())
            errors.extend(e for e in report.errors if e.code == "CERTIFICATE_EXPIRED")

        if context.arrival_time is None:
            warnings.append(ComplianceIssue(
                code="ARRIVAL_TIME_MISSING",
                message="Estimated arrival time is required for the notice of arrival",
                severity=IssueSeverity.WARNING,
            ))

        return JurisdictionResult(
            jurisdiction=self.name,
            status=_status_for(errors, warnings),
            details={"crew_count": len(context.crew), "warnings": [w.message for w in warnings]},
            errors=errors,
        )


class JurisdictionDispatcher:
    """Runs the home evaluator plus any route-triggered secondary evaluators."""

    def __init__(
        self,
        home: Optional[JurisdictionEvaluator] = None,
        secondary: Optional[Sequence[JurisdictionEvaluator]] = None,
        trigger_ports: Sequence[str] = DEFAULT_TRIGGER_PORTS,
    ):
        self.home = home or HomeFlagEvaluator()
        self.secondary = list(secondary) if secondary is not None else [ApisEvaluator(), CrewNoticeEvaluator()]
        self.trigger_ports = [p.lower() for p in trigger_ports]

    @classmethod
    def from_settings(cls, settings) -> "JurisdictionDispatcher":
        return cls(
            home=HomeFlagEvaluator(settings.home_jurisdiction),
            trigger_ports=settings.trigger_ports,
        )

    def route_triggers_secondary(self, ports: Sequence[str]) -> bool:
        """Whether any port name contains a trigger port (case-insensitive)."""
        return any(trigger in port.lower() for port in ports for trigger in self.trigger_ports)

    def applicable(self, context: ManifestContext) -> List[JurisdictionEvaluator]:
        evaluators = [self.home]
        if self.route_triggers_secondary(context.ports):
            evaluators.extend(self.secondary)
        return evaluators

    def evaluate(self, context: ManifestContext) -> List[JurisdictionResult]:
        """Evaluate every applicable jurisdiction in order.

        A failing evaluator is reported as NON_COMPLIANT and the rest
        still run.
        """
        results = []
        for evaluator in self.applicable(context):
            try:
                results.append(evaluator.evaluate(context))
            except Exception as e:
                logger.exception("Jurisdiction evaluator %s failed", evaluator.name)
                results.append(JurisdictionResult(
                    jurisdiction=evaluator.name,
                    status=JurisdictionStatus.NON_COMPLIANT,
                    details={"error": str(e)},
                    errors=[ComplianceIssue(code="EVALUATION_FAILED", message=f"Evaluation failed: {e}")],
                ))
        logger.info(
            "Manifest %s evaluated against %d jurisdictions", context.manifest.id, len(results)
        )
        return results
