"""Audited services over the compliance evaluators."""

from .certifications import CertificationService
from .crew import CrewService
from .export import CsvManifestExporter
from .manifests import ManifestService
from .passengers import PassengerService

__all__ = [
    "CertificationService",
    "CrewService",
    "CsvManifestExporter",
    "ManifestService",
    "PassengerService",
]
