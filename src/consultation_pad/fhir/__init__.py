"""
FHIR Module

Turn consultation ledgers into a FHIR R4 transaction bundle and submit it.
"""

from consultation_pad.fhir.bundle import (
    BundleConstructionError,
    BundleOperation,
    assemble_bundle,
    create_allergies_bundle_entries,
    create_conditions_bundle_entries,
    create_diagnosis_bundle_entries,
    create_encounter_bundle_entry,
)
from consultation_pad.fhir.client import FHIRClient, SubmissionError, SubmissionResult
from consultation_pad.fhir.validators import validate_bundle, ValidationResult

__all__ = [
    "BundleConstructionError",
    "BundleOperation",
    "FHIRClient",
    "SubmissionError",
    "SubmissionResult",
    "ValidationResult",
    "assemble_bundle",
    "create_allergies_bundle_entries",
    "create_conditions_bundle_entries",
    "create_diagnosis_bundle_entries",
    "create_encounter_bundle_entry",
    "validate_bundle",
]
