"""Safe manning evaluation against a Safe Manning Document or tonnage fallback."""

from __future__ import annotations

import logging
from collections import Counter
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Union

from ..errors import InputValidationError
from ..models.compliance import ComplianceIssue, IssueSeverity, SafeManningResult
from ..models.crew import CrewMember, CrewRole, SafeManningRequirement, SafeManningRole
from .roles import role_matches

logger = logging.getLogger(__name__)

R = CrewRole

# Fallback tables for passenger ferries without an authoritative document
TONNAGE_REQUIREMENTS: Dict[str, Dict[CrewRole, int]] = {
    "FERRY_SMALL": {  # < 500 GT
        R.MASTER: 1,
        R.CHIEF_OFFICER: 1,
        R.ABLE_SEAMAN: 1,
        R.ENGINE_OFFICER: 1,
    },
    "FERRY_MEDIUM": {  # 500 - 3000 GT
        R.MASTER: 1,
        R.CHIEF_OFFICER: 1,
        R.SECOND_OFFICER: 1,
        R.ABLE_SEAMAN: 2,
        R.CHIEF_ENGINEER: 1,
        R.SECOND_ENGINEER: 1,
        R.RATING: 1,
    },
    "FERRY_LARGE": {  # >= 3000 GT
        R.MASTER: 1,
        R.CHIEF_OFFICER: 1,
        R.SECOND_OFFICER: 2,
        R.THIRD_OFFICER: 1,
        R.ABLE_SEAMAN: 3,
        R.CHIEF_ENGINEER: 1,
        R.SECOND_ENGINEER: 2,
        R.THIRD_ENGINEER: 1,
        R.ELECTRO_TECHNICAL_OFFICER: 1,
        R.CHIEF_STEWARD: 1,
        R.STEWARD: 2,
    },
}

SMALL_TONNAGE_LIMIT = 500
MEDIUM_TONNAGE_LIMIT = 3000


def vessel_category(gross_tonnage: float) -> str:
    """Tonnage bucket used when no Safe Manning Document is on file."""
    if gross_tonnage < 0:
        raise InputValidationError(
            "gross_tonnage", "INVALID_TONNAGE", "Gross tonnage cannot be negative"
        )
    if gross_tonnage < SMALL_TONNAGE_LIMIT:
        return "FERRY_SMALL"
    if gross_tonnage < MEDIUM_TONNAGE_LIMIT:
        return "FERRY_MEDIUM"
    return "FERRY_LARGE"


def authoritative_document(
    documents: Iterable[SafeManningRequirement],
) -> Optional[SafeManningRequirement]:
    """Most recently issued document, or None when the vessel has none."""
    latest = None
    for doc in documents:
        if latest is None or doc.issue_date > latest.issue_date:
            latest = doc
    return latest


def merge_requirements(roles: Iterable[SafeManningRole]) -> Dict[str, int]:
    """Collapse duplicate role entries, keeping the larger minimum."""
    merged: Dict[str, int] = {}
    for entry in roles:
        if entry.minimum_count < 0:
            raise InputValidationError(
                "minimum_count",
                "INVALID_MINIMUM_COUNT",
                f"Minimum count for {entry.role.value} cannot be negative",
            )
        key = entry.role.value
        merged[key] = max(merged.get(key, 0), entry.minimum_count)
    return merged


def _role_value(role: Union[CrewRole, str]) -> str:
    return role.value if isinstance(role, CrewRole) else str(role)


def evaluate_safe_manning(
    assigned_crew: Sequence[CrewMember],
    requirements: Optional[Sequence[SafeManningRole]] = None,
    gross_tonnage: Optional[float] = None,
) -> SafeManningResult:
    """Compare an assigned roster with the required manning.

    Authoritative ``requirements`` win over ``gross_tonnage``. Each
    required role is counted independently through the substitution
    table, so one crew member can count toward several roles.

    Args:
        assigned_crew: Crew currently assigned to the vessel.
        requirements: Roles from the vessel's Safe Manning Document.
        gross_tonnage: Used when requirements are missing or empty.

    Returns:
        SafeManningResult with one error per short role.
    """
    required: Dict[str, int]
    source: str

    if requirements:
        # Zero minimums impose nothing; a document made only of them is vacuous
        required = {r: c for r, c in merge_requirements(requirements).items() if c > 0}
        source = "document"
    elif gross_tonnage is None:
        return SafeManningResult(
            compliant=False,
            errors=[
                ComplianceIssue(
                    code="MISSING_SAFE_MANNING_INPUT",
                    message=(
                        "Safe manning validation requires either vessel-specific "
                        "requirements or gross tonnage."
                    ),
                    field="gross_tonnage",
                    certificate_type="SAFE_MANNING",
                )
            ],
        )
    else:
        category = vessel_category(gross_tonnage)
        required = {role.value: count for role, count in TONNAGE_REQUIREMENTS[category].items()}
        source = f"tonnage:{category}"

    if not required:
        return SafeManningResult(compliant=True, source=source)

    actual_by_role: Dict[str, int] = dict(Counter(_role_value(c.role) for c in assigned_crew))
    fulfillable: Dict[str, int] = {}
    errors: List[ComplianceIssue] = []

    for required_role, required_count in required.items():
        count = sum(1 for crew in assigned_crew if role_matches(crew.role, required_role))
        fulfillable[required_role] = count
        if count < required_count:
            errors.append(
                ComplianceIssue(
                    code="INSUFFICIENT_CREW",
                    message=(
                        f"Insufficient crew for role {required_role}: "
                        f"required {required_count}, assigned {count}"
                    ),
                    severity=IssueSeverity.ERROR,
                    certificate_type="SAFE_MANNING",
                    role=required_role,
                    required=required_count,
                    actual=count,
                )
            )

    logger.debug(
        "Safe manning (%s): %d roles, %d short", source, len(required), len(errors)
    )
    return SafeManningResult(
        compliant=not errors,
        required=required,
        actual_by_role=actual_by_role,
        fulfillable_by_role=fulfillable,
        errors=errors,
        source=source,
    )


def requirements_from_mapping(mapping: Mapping[str, int]) -> List[SafeManningRole]:
    """Build requirement entries from a ``{role: count}`` mapping (CLI/JSON input)."""
    roles = []
    for role, count in mapping.items():
        try:
            crew_role = CrewRole(str(role).upper())
        except ValueError as e:
            raise InputValidationError("role", "UNKNOWN_ROLE", f"Unknown crew role: {role}") from e
        roles.append(SafeManningRole(role=crew_role, minimum_count=int(count)))
    return roles
