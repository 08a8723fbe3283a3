"""Manifest export collaborators."""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Optional, Protocol, Sequence

from ..errors import InputValidationError
from ..models.manifest import ExportFormat, ExportRequest, ExportResult, Manifest
from ..models.passenger import Passenger
from ..security.crypto import FieldCipher
from ..utils import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JurisdictionFormat:
    name: str
    date_format: str
    name_case: str  # "upper" or "title"


JURISDICTION_FORMATS: Dict[str, JurisdictionFormat] = {
    "bahamas": JurisdictionFormat("Bahamas Maritime Authority", "%Y-%m-%d", "upper"),
    "jamaica": JurisdictionFormat("Maritime Authority of Jamaica", "%d/%m/%Y", "title"),
    "barbados": JurisdictionFormat("Barbados Port Authority", "%d-%m-%Y", "upper"),
}
DEFAULT_JURISDICTION = "bahamas"

MANIFEST_COLUMNS = (
    "family_name",
    "given_names",
    "nationality",
    "date_of_birth",
    "gender",
    "identity_doc_type",
    "identity_doc_number",
    "identity_doc_country",
    "identity_doc_expiry",
    "port_of_embarkation",
    "port_of_disembarkation",
)


class ManifestExporter(Protocol):
    def export(
        self, request: ExportRequest, manifest: Manifest, passengers: Sequence[Passenger]
    ) -> ExportResult:
        ...


class CsvManifestExporter:
    """Writes a jurisdiction-formatted CSV with document numbers masked."""

    def __init__(self, cipher: FieldCipher):
        self.cipher = cipher

    def _format_name(self, value: Optional[str], fmt: JurisdictionFormat) -> str:
        if not value:
            return ""
        return value.upper() if fmt.name_case == "upper" else value.title()

    def _row(self, passenger: Passenger, fmt: JurisdictionFormat) -> List[str]:
        row = []
        for column in MANIFEST_COLUMNS:
            value = getattr(passenger, column)
            if column in ("family_name", "given_names"):
                row.append(self._format_name(value, fmt))
            elif column == "identity_doc_number":
                row.append(self.cipher.safe_mask(value))
            elif isinstance(value, date):
                row.append(value.strftime(fmt.date_format))
            elif value is None:
                row.append("")
            else:
                row.append(getattr(value, "value", str(value)))
        return row

    def export(
        self, request: ExportRequest, manifest: Manifest, passengers: Sequence[Passenger]
    ) -> ExportResult:
        if request.format != ExportFormat.CSV:
            raise InputValidationError(
                "format", "UNSUPPORTED_FORMAT", f"Export format '{request.format.value}' is not supported"
            )
        jurisdiction = request.jurisdiction.lower()
        fmt = JURISDICTION_FORMATS.get(jurisdiction)
        if fmt is None:
            logger.warning("Unknown jurisdiction %r, using %s format", request.jurisdiction, DEFAULT_JURISDICTION)
            fmt = JURISDICTION_FORMATS[DEFAULT_JURISDICTION]

        buffer = io.StringIO()
        writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
        writer.writerow(MANIFEST_COLUMNS)
        for passenger in passengers:
            writer.writerow(self._row(passenger, fmt))

        stamp = utcnow().strftime("%Y%m%dT%H%M%SZ")
        return ExportResult(
            filename=f"manifest-{manifest.id}-{jurisdiction}-{stamp}.csv",
            content_type="text/csv",
            data=buffer.getvalue().encode("utf-8"),
            record_count=len(passengers),
        )
