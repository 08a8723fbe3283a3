"""Passenger check-in and record maintenance."""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Union
from uuid import UUID

from pydantic import ValidationError

from ..audit.ledger import AuditLedger
from ..compliance.passengers import (
    DEFAULT_MINIMUM_AGE,
    DEFAULT_PASSPORT_WARNING_DAYS,
    validate_passenger,
)
from ..errors import ComplianceGateError, ImmutableRecordError, InputValidationError, NotFoundError
from ..models.audit import AuditAction, AuditEntityType, Principal
from ..models.manifest import LOCKED_STATUSES
from ..models.passenger import CheckInRequest, Passenger, PassengerFields, PassengerStatus
from ..security.crypto import FieldCipher
from ..storage.base import ComplianceStore
from ..utils import utcnow
from .base import AuditedService

logger = logging.getLogger(__name__)

E = AuditEntityType.PASSENGER

# Fields an operator may change after check-in
UPDATABLE_FIELDS = frozenset({
    "family_name",
    "given_names",
    "date_of_birth",
    "nationality",
    "gender",
    "identity_doc_type",
    "identity_doc_number",
    "identity_doc_country",
    "identity_doc_expiry",
    "port_of_embarkation",
    "port_of_disembarkation",
    "cabin_or_seat",
    "special_instructions",
    "status",
})


def input_error_from(error: ValidationError) -> InputValidationError:
    """First pydantic error as a field/code/message triple."""
    first = error.errors()[0]
    field = ".".join(str(p) for p in first.get("loc", ())) or "body"
    code = "REQUIRED_FIELD_MISSING" if first.get("type") == "missing" else "INVALID_FIELD"
    return InputValidationError(field, code, f"{field}: {first.get('msg', 'invalid value')}")


def fields_from(
    passenger: Passenger, identity_doc_number: Optional[str], unreadable: bool = False
) -> PassengerFields:
    """Validator view of a passenger given its plaintext document number."""
    return PassengerFields(
        family_name=passenger.family_name,
        given_names=passenger.given_names,
        date_of_birth=passenger.date_of_birth,
        nationality=passenger.nationality,
        gender=passenger.gender.value if passenger.gender else None,
        identity_doc_type=passenger.identity_doc_type.value if passenger.identity_doc_type else None,
        identity_doc_number=identity_doc_number,
        identity_doc_unreadable=unreadable,
        identity_doc_country=passenger.identity_doc_country,
        identity_doc_expiry=passenger.identity_doc_expiry,
        port_of_embarkation=passenger.port_of_embarkation,
        port_of_disembarkation=passenger.port_of_disembarkation,
    )


def plaintext_fields(passenger: Passenger, cipher: FieldCipher) -> PassengerFields:
    """Validator view of a stored passenger, document number decrypted."""
    number = cipher.safe_decrypt(passenger.identity_doc_number)
    return fields_from(passenger, number, unreadable=bool(passenger.identity_doc_number) and number is None)


class PassengerService(AuditedService):
    """Check-in, masked reads, guarded updates and soft deletes."""

    def __init__(
        self,
        db: ComplianceStore,
        ledger: AuditLedger,
        cipher: FieldCipher,
        minimum_age: int = DEFAULT_MINIMUM_AGE,
        warning_days: int = DEFAULT_PASSPORT_WARNING_DAYS,
    ):
        super().__init__(db, ledger)
        self.cipher = cipher
        self.minimum_age = minimum_age
        self.warning_days = warning_days

    @classmethod
    def from_settings(cls, db, ledger, cipher, settings) -> "PassengerService":
        return cls(
            db,
            ledger,
            cipher,
            minimum_age=settings.minimum_passenger_age,
            warning_days=settings.passport_warning_days,
        )

    def masked(self, passenger: Passenger) -> Passenger:
        return passenger.model_copy(
            update={"identity_doc_number": self.cipher.safe_mask(passenger.identity_doc_number)}
        )

    def snapshot(self, passenger: Passenger) -> Dict[str, Any]:
        """Audit-safe dump with the document number masked."""
        return self.masked(passenger).model_dump(mode="json", exclude={"created_at", "updated_at"})

    async def _get_or_raise(self, passenger_id: UUID) -> Passenger:
        passenger = await self.db.get_passenger(passenger_id)
        if passenger is None:
            raise NotFoundError("passenger", str(passenger_id))
        return passenger

    async def _ensure_mutable(self, passenger_id: UUID) -> None:
        statuses = await self.db.manifest_statuses_for_passenger(passenger_id)
        locked = [s for s in statuses if s in LOCKED_STATUSES]
        if locked:
            raise ImmutableRecordError(
                f"Passenger {passenger_id} is on a {locked[0].value} manifest and cannot be modified"
            )

    async def _sailing_date(self, sailing_id: UUID):
        sailing = await self.db.get_sailing(sailing_id)
        if sailing is None:
            raise NotFoundError("sailing", str(sailing_id))
        return sailing.departure_date

    def _check(self, fields: PassengerFields, sailing_date, operation: str):
        errors, warnings = validate_passenger(fields, sailing_date, self.minimum_age, self.warning_days)
        if errors:
            raise ComplianceGateError(
                f"Passenger {operation} rejected: {len(errors)} validation error(s)", errors
            )
        return warnings

    # ==================== Operations ====================

    async def check_in(
        self,
        request: Union[CheckInRequest, Mapping[str, Any]],
        principal: Optional[Principal] = None,
    ) -> Passenger:
        """Validate, encrypt and store a checked-in passenger.

        Raises:
            InputValidationError: Malformed payload or missing consent.
            NotFoundError: Unknown sailing.
            ComplianceGateError: Every field validation error at once.
        """
        entity_id = ""
        try:
            if not isinstance(request, CheckInRequest):
                try:
                    request = CheckInRequest.model_validate(dict(request))
                except ValidationError as e:
                    raise input_error_from(e) from e
            entity_id = str(request.sailing_id)

            if not request.consent_given:
                raise InputValidationError(
                    "consent_given", "CONSENT_REQUIRED", "Passenger consent is required for check-in"
                )

            sailing_date = await self._sailing_date(request.sailing_id)
            fields = PassengerFields(
                **request.model_dump(mode="json", include=set(PassengerFields.model_fields)),
            )
            warnings = self._check(fields, sailing_date, "check-in")

            data = request.model_dump(exclude={"consent_provided_at"})
            data["identity_doc_number"] = self.cipher.encrypt(request.identity_doc_number)
            passenger = Passenger(
                **data,
                consent_timestamp=request.consent_provided_at or utcnow(),
                status=PassengerStatus.CHECKED_IN,
            )
            stored = await self.db.insert_passenger(passenger)
        except Exception as e:
            await self._log_failure(E, entity_id, AuditAction.PASSENGER_CHECKIN, principal, e)
            raise

        await self.ledger.log(
            E,
            stored.id,
            AuditAction.PASSENGER_CHECKIN,
            principal,
            entity_name=f"{stored.family_name} {stored.given_names}",
            new_value=self.snapshot(stored),
            details={"sailing_id": str(stored.sailing_id), "warnings": [w.message for w in warnings]},
        )
        return stored

    async def get(self, passenger_id: UUID, principal: Optional[Principal] = None) -> Passenger:
        """Masked passenger record."""
        try:
            passenger = await self._get_or_raise(passenger_id)
        except Exception as e:
            await self._log_failure(E, passenger_id, AuditAction.PASSENGER_READ, principal, e)
            raise
        await self.ledger.log(E, passenger_id, AuditAction.PASSENGER_READ, principal)
        return self.masked(passenger)

    async def update(
        self,
        passenger_id: UUID,
        changes: Mapping[str, Any],
        principal: Optional[Principal] = None,
    ) -> Passenger:
        """Apply changes unless the passenger is on an approved or submitted manifest.

        Raises:
            ImmutableRecordError: Passenger is locked, whatever the field.
            InputValidationError: Unknown or malformed field.
            ComplianceGateError: The changed record fails validation.
        """
        try:
            current = await self._get_or_raise(passenger_id)
            await self._ensure_mutable(passenger_id)

            unknown = sorted(set(changes) - UPDATABLE_FIELDS)
            if unknown:
                raise InputValidationError(unknown[0], "UNKNOWN_FIELD", f"Field '{unknown[0]}' cannot be updated")

            current_number = self.cipher.safe_decrypt(current.identity_doc_number)
            plain_current = current.model_copy(update={"identity_doc_number": current_number})
            try:
                candidate = Passenger.model_validate({**plain_current.model_dump(), **changes})
            except ValidationError as e:
                raise input_error_from(e) from e

            unreadable = (
                "identity_doc_number" not in changes
                and bool(current.identity_doc_number)
                and current_number is None
            )
            candidate_fields = fields_from(candidate, candidate.identity_doc_number, unreadable)
            sailing_date = await self._sailing_date(current.sailing_id)
            self._check(candidate_fields, sailing_date, "update")

            db_changes = {field: getattr(candidate, field) for field in changes}
            if "identity_doc_number" in db_changes and db_changes["identity_doc_number"]:
                db_changes["identity_doc_number"] = self.cipher.encrypt(db_changes["identity_doc_number"])
            updated = await self.db.update_passenger(passenger_id, db_changes)
        except Exception as e:
            await self._log_failure(E, passenger_id, AuditAction.PASSENGER_UPDATE, principal, e)
            raise

        await self.ledger.log(
            E,
            passenger_id,
            AuditAction.PASSENGER_UPDATE,
            principal,
            previous_value=self.snapshot(current),
            new_value=self.snapshot(updated),
            changed_fields=sorted(changes),
        )
        return self.masked(updated)

    async def remove(
        self,
        passenger_id: UUID,
        principal: Optional[Principal] = None,
        reason: Optional[str] = None,
    ) -> Passenger:
        """Soft delete: the record is retained with status CANCELLED."""
        try:
            current = await self._get_or_raise(passenger_id)
            await self._ensure_mutable(passenger_id)
            updated = await self.db.update_passenger(
                passenger_id,
                {"deleted_at": utcnow(), "status": PassengerStatus.CANCELLED},
            )
        except Exception as e:
            await self._log_failure(E, passenger_id, AuditAction.PASSENGER_DELETE, principal, e)
            raise

        await self.ledger.log(
            E,
            passenger_id,
            AuditAction.PASSENGER_DELETE,
            principal,
            previous_value={"status": current.status.value},
            new_value={"status": updated.status.value},
            reason=reason,
        )
        return self.masked(updated)

