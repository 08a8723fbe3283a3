"""Exception taxonomy for the compliance engine.

Input errors and compliance-gate errors are raised to the caller with a
structured payload (``to_dict``). Audit and crypto failures never reach
this module: they degrade inside the ledger and the cipher.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

if TYPE_CHECKING:
    from .models.compliance import ComplianceIssue


class SeaguardError(Exception):
    """Base exception for engine errors."""

    code = "SEAGUARD_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message}


class ConfigurationError(SeaguardError):
    """Fatal startup error (missing or invalid key, missing storage credentials)."""

    code = "CONFIGURATION_ERROR"


class InputValidationError(SeaguardError):
    """A single malformed or missing input value."""

    code = "INVALID_INPUT"

    def __init__(self, field: str, code: str, message: str):
        super().__init__(message)
        self.field = field
        self.code = code

    def to_dict(self) -> Dict[str, Any]:
        return {"field": self.field, "code": self.code, "message": self.message}


class NotFoundError(SeaguardError):
    """Requested entity does not exist (or is soft-deleted)."""

    code = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        super().__init__(f"{entity_type} {entity_id} not found")
        self.entity_type = entity_type
        self.entity_id = entity_id

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({"entity_type": self.entity_type, "entity_id": self.entity_id})
        return data


class ComplianceGateError(SeaguardError):
    """A transition or assignment blocked by one or more violations.

    Always carries every violation found, never just the first one.
    """

    code = "COMPLIANCE_GATE"

    def __init__(
        self,
        message: str,
        violations: Optional[Sequence["ComplianceIssue"]] = None,
    ):
        super().__init__(message)
        self.violations: List["ComplianceIssue"] = list(violations or [])

    @property
    def error_count(self) -> int:
        return len(self.violations)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["error_count"] = self.error_count
        data["errors"] = [v.model_dump(mode="json", exclude_none=True) for v in self.violations]
        return data


class StatusMismatchError(ComplianceGateError):
    """Transition attempted from a status that does not allow it."""

    code = "STATUS_MISMATCH"

    def __init__(self, entity_id: str, current: str, allowed: Sequence[str], operation: str):
        allowed_list = ", ".join(allowed)
        super().__init__(
            f"Cannot {operation} manifest {entity_id} with status '{current}'. "
            f"Must be one of: {allowed_list}."
        )
        self.entity_id = entity_id
        self.current = current
        self.allowed = list(allowed)
        self.operation = operation

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({"current_status": self.current, "allowed_statuses": self.allowed})
        return data


class ConcurrentModificationError(ComplianceGateError):
    """Conditional update lost a race against another transition."""

    code = "CONCURRENT_MODIFICATION"


class ImmutableRecordError(ComplianceGateError):
    """Mutation attempted on a record locked by an approved or submitted manifest."""

    code = "IMMUTABLE_RECORD"
