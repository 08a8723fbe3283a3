"""Pure compliance evaluators: crew manning, certifications, passengers, jurisdictions."""

from .certifications import classify_expiry, evaluate_crew_certifications, required_certificates
from .jurisdictions import JurisdictionDispatcher, ManifestContext
from .passengers import validate_manifest, validate_passenger
from .roles import ROLE_SUBSTITUTIONS, role_matches
from .safe_manning import evaluate_safe_manning, vessel_category

__all__ = [
    "classify_expiry",
    "evaluate_crew_certifications",
    "required_certificates",
    "JurisdictionDispatcher",
    "ManifestContext",
    "validate_manifest",
    "validate_passenger",
    "ROLE_SUBSTITUTIONS",
    "role_matches",
    "evaluate_safe_manning",
    "vessel_category",
]
