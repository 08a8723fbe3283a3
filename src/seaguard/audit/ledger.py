"""Append-only audit ledger.

Every compliance-relevant operation writes through ``AuditLedger.log``.
A failing write is logged and replaced by an unpersisted fallback entry;
it never propagates into the caller's operation.
"""

from __future__ import annotations

import asyncio
import json
import logging
import math
import time
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Set, Union

from pydantic import ValidationError

from ..errors import InputValidationError
from ..models.audit import (
    EXPORT_ACTIONS,
    SYSTEM_ACTOR,
    AuditAction,
    AuditActor,
    AuditEntityType,
    AuditLogEntry,
    AuditLogFilters,
    AuditOutcome,
    AuditPage,
    AuditUser,
    Principal,
)
from ..storage.base import ComplianceStore

logger = logging.getLogger(__name__)

PLACEHOLDER_EMAIL_DOMAIN = "identity.local"
MAX_PAGE_SIZE = 200


def placeholder_email(subject: str) -> str:
    """Deterministic stand-in for principals without an email claim."""
    return f"{subject}@{PLACEHOLDER_EMAIL_DOMAIN}"


def _fallback_entry(entry_fields: Dict[str, Any]) -> AuditLogEntry:
    """Unpersisted stand-in for an entry whose write failed."""
    fields = {
        **entry_fields,
        "actor": entry_fields.get("actor") or SYSTEM_ACTOR,
        "id": f"temp-{int(time.time() * 1000)}",
        "persisted": False,
    }
    try:
        return AuditLogEntry(**fields)
    except ValidationError:
        return AuditLogEntry.model_construct(**fields)


def diff_fields(previous: Optional[Mapping[str, Any]], new: Optional[Mapping[str, Any]]) -> List[str]:
    """Keys whose values differ between two snapshots, sorted."""
    if previous is None or new is None:
        return []
    keys = set(previous) | set(new)
    return sorted(k for k in keys if previous.get(k) != new.get(k))


def _parse_filter_datetime(value: Any, field: str) -> Optional[datetime]:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError as e:
        raise InputValidationError(field, "INVALID_DATE", f"Invalid date format for {field}: {value}") from e


def _parse_filter_int(value: Any, field: str, default: int) -> int:
    if value in (None, ""):
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise InputValidationError(field, "INVALID_NUMBER", f"{field} must be an integer") from e


def parse_filters(params: Mapping[str, Any]) -> AuditLogFilters:
    """Build validated search filters from raw query parameters.

    Raises:
        InputValidationError: Malformed dates or numbers, page < 1,
            limit outside 1..200, or date_from after date_to.
    """
    filters = AuditLogFilters(
        entity_type=params.get("entity_type") or None,
        entity_id=params.get("entity_id") or None,
        action=params.get("action") or None,
        actor_id=params.get("actor_id") or None,
        date_from=_parse_filter_datetime(params.get("date_from"), "date_from"),
        date_to=_parse_filter_datetime(params.get("date_to"), "date_to"),
        page=_parse_filter_int(params.get("page"), "page", 1),
        limit=_parse_filter_int(params.get("limit"), "limit", 50),
    )
    validate_filters(filters)
    return filters


def validate_filters(filters: AuditLogFilters) -> None:
    if filters.page < 1:
        raise InputValidationError("page", "INVALID_PAGE", "page must be at least 1")
    if not 1 <= filters.limit <= MAX_PAGE_SIZE:
        raise InputValidationError(
            "limit", "INVALID_LIMIT", f"limit must be between 1 and {MAX_PAGE_SIZE}"
        )
    if filters.date_from and filters.date_to and filters.date_from > filters.date_to:
        raise InputValidationError(
            "date_from", "INVALID_DATE_RANGE", "date_from must not be after date_to"
        )


class AuditLedger:
    """Writes and queries audit entries through the storage collaborator."""

    def __init__(self, db: ComplianceStore):
        self.db = db
        self._background: Set[asyncio.Task] = set()

    # ==================== Identity ====================

    async def resolve_user(self, principal: Principal) -> Optional[AuditUser]:
        """Find or create the local user record for a principal.

        Lookup order: external subject id, then email claim (re-linking
        the record to the new subject id), then creation. Returns None
        instead of raising when storage fails.
        """
        try:
            user = await self.db.get_user_by_external_id(principal.subject)
            if user:
                user = user.model_copy(update={
                    "email": principal.email or user.email,
                    "first_name": principal.given_name or user.first_name,
                    "last_name": principal.family_name or user.last_name,
                    "role": principal.roles[0] if principal.roles else user.role,
                })
                return await self.db.update_user(user)

            if principal.email:
                by_email = await self.db.get_user_by_email(principal.email)
                if by_email:
                    logger.info(
                        "Re-linking user %s from subject %s to %s",
                        by_email.id, by_email.external_id, principal.subject,
                    )
                    relinked = by_email.model_copy(update={"external_id": principal.subject})
                    return await self.db.update_user(relinked)

            user = AuditUser(
                external_id=principal.subject,
                email=principal.email or placeholder_email(principal.subject),
                first_name=principal.given_name or principal.preferred_username,
                last_name=principal.family_name,
                role=principal.primary_role,
            )
            return await self.db.insert_user(user)
        except Exception as e:
            logger.error("Failed to resolve user for subject %s: %s", principal.subject, e)
            return None

    async def actor_for(self, principal: Optional[Principal]) -> AuditActor:
        """Actor snapshot for an entry; the system actor when no principal."""
        if principal is None:
            return SYSTEM_ACTOR
        user = await self.resolve_user(principal)
        return AuditActor(
            id=str(user.id) if user else principal.subject,
            name=principal.preferred_username or principal.display_name,
            role=principal.primary_role,
        )

    # ==================== Writing ====================

    async def log(
        self,
        entity_type: Union[AuditEntityType, str],
        entity_id: Any,
        action: Union[AuditAction, str],
        principal: Optional[Principal] = None,
        *,
        outcome: AuditOutcome = AuditOutcome.SUCCESS,
        entity_name: Optional[str] = None,
        previous_value: Optional[Dict[str, Any]] = None,
        new_value: Optional[Dict[str, Any]] = None,
        changed_fields: Optional[List[str]] = None,
        reason: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        actor: Optional[AuditActor] = None,
    ) -> AuditLogEntry:
        """Append one entry. Never raises.

        Returns:
            The stored entry, or an unpersisted fallback entry with a
            ``temp-`` id when the write failed.
        """
        entry_fields: Dict[str, Any] = {
            "entity_type": AuditEntityType.parse(entity_type),
            "entity_id": "" if entity_id is None else str(entity_id),
            "entity_name": entity_name,
            "action": AuditAction.parse(action),
            "outcome": outcome,
            "previous_value": previous_value,
            "new_value": new_value,
            "changed_fields": (
                changed_fields if changed_fields is not None else diff_fields(previous_value, new_value)
            ),
            "reason": reason,
            "details": details or {},
        }
        if principal is not None:
            entry_fields["ip_address"] = principal.ip_address
            entry_fields["user_agent"] = principal.user_agent

        try:
            entry_fields["actor"] = actor or await self.actor_for(principal)
            entry = AuditLogEntry(**entry_fields)
            stored = await self.db.insert_audit_entry(entry)
            logger.debug(
                "Audit %s %s:%s by %s", entry.action.value, entry.entity_type.value,
                entry.entity_id, entry.actor.id,
            )
            return stored
        except Exception as e:
            fallback = _fallback_entry(entry_fields)
            try:
                record = json.dumps(fallback.model_dump(), default=str, sort_keys=True)
            except (TypeError, ValueError) as dump_error:
                record = f"<unserialisable: {dump_error}>"
            logger.error("Audit write failed (%s); fallback record: %s", e, record)
            return fallback

    async def log_auth_failure(
        self,
        reason: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        subject: Optional[str] = None,
    ) -> AuditLogEntry:
        return await self.log(
            AuditEntityType.AUTH,
            subject or "",
            AuditAction.FAILED_LOGIN,
            outcome=AuditOutcome.FAILURE,
            reason=reason,
            details={"ip_address": ip_address, "user_agent": user_agent},
            actor=AuditActor(id=subject or "anonymous", name="Unauthenticated", role="anonymous"),
        )

    def schedule_auth_failure(self, reason: str, **kwargs: Any) -> "asyncio.Task[AuditLogEntry]":
        """Fire-and-forget ``log_auth_failure``; the result is never awaited by the caller."""
        task = asyncio.get_running_loop().create_task(self.log_auth_failure(reason, **kwargs))
        self._background.add(task)
        task.add_done_callback(self._discard_task)
        return task

    def _discard_task(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Background audit task failed: %s", exc)

    async def drain(self) -> None:
        """Wait for scheduled background writes (shutdown hook)."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def log_data_export(
        self,
        entity_type: Union[AuditEntityType, str],
        entity_id: Any,
        principal: Optional[Principal],
        reason: str,
        record_count: int,
        *,
        outcome: AuditOutcome = AuditOutcome.SUCCESS,
        details: Optional[Dict[str, Any]] = None,
    ) -> AuditLogEntry:
        return await self.log(
            entity_type,
            entity_id,
            AuditAction.DATA_EXPORT,
            principal,
            outcome=outcome,
            reason=reason,
            details={"record_count": record_count, **(details or {})},
        )

    # ==================== Queries ====================

    async def history(
        self, entity_type: Union[AuditEntityType, str], entity_id: Any
    ) -> List[AuditLogEntry]:
        """Full trail of one entity, oldest first."""
        filters = AuditLogFilters(
            entity_type=AuditEntityType.parse(entity_type).value,
            entity_id=str(entity_id),
            page=1,
            limit=MAX_PAGE_SIZE,
        )
        entries: List[AuditLogEntry] = []
        while True:
            page, total = await self.db.list_audit_entries(filters, ascending=True)
            entries.extend(page)
            if not page or len(entries) >= total:
                return entries
            filters = filters.model_copy(update={"page": filters.page + 1})

    async def search(self, filters: AuditLogFilters) -> AuditPage:
        """Filtered, paginated search, newest first.

        Raises:
            InputValidationError: If pagination or date range is invalid.
        """
        validate_filters(filters)
        data, total = await self.db.list_audit_entries(filters)
        return AuditPage(
            data=data,
            total=total,
            page=filters.page,
            limit=filters.limit,
            pages=math.ceil(total / filters.limit) if total else 0,
        )

    async def export_history(self, page: int = 1, limit: int = 50) -> AuditPage:
        """Export-class entries for regulator review, newest first."""
        filters = AuditLogFilters(page=page, limit=limit)
        validate_filters(filters)
        data, total = await self.db.list_audit_entries(filters, actions=sorted(EXPORT_ACTIONS))
        return AuditPage(
            data=data,
            total=total,
            page=page,
            limit=limit,
            pages=math.ceil(total / limit) if total else 0,
        )
