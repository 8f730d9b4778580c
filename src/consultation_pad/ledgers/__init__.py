"""
Ledgers Module

In-memory entry lists for the diagnoses, conditions, allergies and service
requests recorded during an encounter.
"""

from consultation_pad.ledgers.entry_types import (
    AllergenConcept,
    AllergenType,
    AllergyEntry,
    Coding,
    ConceptSearch,
    ConditionEntry,
    DiagnosisEntry,
    DurationUnit,
    ErrorCode,
    ExistingCondition,
)
from consultation_pad.ledgers.conditions_and_diagnoses import (
    ConditionsAndDiagnosesLedger,
    ConditionsAndDiagnosesState,
)
from consultation_pad.ledgers.allergies import AllergyLedger, AllergyState
from consultation_pad.ledgers.service_requests import (
    ServiceRequestLedger,
    ServiceRequestState,
)

__all__ = [
    "AllergenConcept",
    "AllergenType",
    "AllergyEntry",
    "AllergyLedger",
    "AllergyState",
    "Coding",
    "ConceptSearch",
    "ConditionEntry",
    "ConditionsAndDiagnosesLedger",
    "ConditionsAndDiagnosesState",
    "DiagnosisEntry",
    "DurationUnit",
    "ErrorCode",
    "ExistingCondition",
    "ServiceRequestLedger",
    "ServiceRequestState",
]
