"""Shared plumbing for audited services."""

from __future__ import annotations

import logging
from typing import Any, Optional

from ..audit.ledger import AuditLedger
from ..errors import SeaguardError
from ..models.audit import AuditAction, AuditEntityType, AuditOutcome, Principal
from ..storage.base import ComplianceStore

logger = logging.getLogger(__name__)


class AuditedService:
    """Base for services whose every operation writes one audit entry."""

    def __init__(self, db: ComplianceStore, ledger: AuditLedger):
        self.db = db
        self.ledger = ledger

    async def _log_failure(
        self,
        entity_type: AuditEntityType,
        entity_id: Any,
        action: AuditAction,
        principal: Optional[Principal],
        error: Exception,
    ) -> None:
        """Record a failed attempt under the same action the success would use."""
        if isinstance(error, SeaguardError):
            reason, details = error.message, error.to_dict()
        else:
            reason, details = str(error), {"error": type(error).__name__}
        logger.info("%s on %s %s failed: %s", action.value, entity_type.value, entity_id, reason)
        await self.ledger.log(
            entity_type,
            entity_id,
            action,
            principal,
            outcome=AuditOutcome.FAILURE,
            reason=reason,
            details=details,
        )
