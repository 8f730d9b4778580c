"""
FHIR Bundle Transformers

Turn ledger snapshots and the encounter context into FHIR R4 transaction
bundle entries.
"""

from calendar import monthrange
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable
import json
import uuid

from consultation_pad.encounter.context import EncounterContext
from consultation_pad.ledgers.allergies import AllergyState
from consultation_pad.ledgers.conditions_and_diagnoses import (
    ConditionsAndDiagnosesState,
)
from consultation_pad.ledgers.entry_types import (
    AllergyEntry,
    Coding,
    ConditionEntry,
    DiagnosisEntry,
    DurationUnit,
)

CONDITION_CLINICAL_STATUS_SYSTEM = (
    "http://terminology.hl7.org/CodeSystem/condition-clinical"
)
CONDITION_VERIFICATION_STATUS_SYSTEM = (
    "http://terminology.hl7.org/CodeSystem/condition-ver-status"
)
CONDITION_CATEGORY_SYSTEM = "http://terminology.hl7.org/CodeSystem/condition-category"
CONDITION_CATEGORY_DIAGNOSIS = "encounter-diagnosis"
CONDITION_CATEGORY_CONDITION = "problem-list-item"
ALLERGY_CLINICAL_STATUS_SYSTEM = (
    "http://terminology.hl7.org/CodeSystem/allergyintolerance-clinical"
)
ALLERGY_VERIFICATION_STATUS_SYSTEM = (
    "http://terminology.hl7.org/CodeSystem/allergyintolerance-verification"
)
ENCOUNTER_CLASS_SYSTEM = "http://terminology.hl7.org/CodeSystem/v3-ActCode"
ENCOUNTER_TYPE_SYSTEM = "http://fhir.openmrs.org/code-system/encounter-type"
ENCOUNTER_TAG_SYSTEM = "http://fhir.openmrs.org/ext/encounter-tag"

DIAGNOSIS_CERTAINTIES = ("provisional", "confirmed")
ALLERGY_SEVERITIES = ("mild", "moderate", "severe")


class BundleConstructionError(ValueError):
    """Ledger contents could not be turned into a valid bundle entry."""


@dataclass
class BundleOperation:
    """One transaction entry: a resource, the HTTP method, and its target."""

    payload: dict[str, Any]
    method: str = "POST"
    target: str = ""
    full_url: str = field(default_factory=lambda: f"urn:uuid:{uuid.uuid4()}")

    def __post_init__(self) -> None:
        if not self.target:
            self.target = self.payload.get("resourceType", "")

    @property
    def reference(self) -> dict[str, str]:
        """Reference to this entry from another entry in the same bundle."""
        return {"reference": self.full_url}

    def to_entry(self) -> dict[str, Any]:
        return {
            "fullUrl": self.full_url,
            "resource": self.payload,
            "request": {
                "method": self.method,
                "url": self.target,
            },
        }


# A bundle transformer takes a ledger snapshot, the encounter context, and the
# reference of the encounter entry the resources belong to.
Transformer = Callable[[Any, EncounterContext, dict[str, str]], list[BundleOperation]]


def _codeable_concept(
    codings: Iterable[dict[str, Any]], text: str | None = None
) -> dict[str, Any]:
    concept: dict[str, Any] = {"coding": list(codings)}
    if text:
        concept["text"] = text
    return concept


def _coding(code: str, system: str | None = None, display: str | None = None) -> dict[str, Any]:
    return Coding(code=code, system=system, display=display).to_dict()


def _isoformat(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.isoformat().replace("+00:00", "Z")


def _require_context(context: EncounterContext) -> None:
    if not context.patient_uuid:
        raise BundleConstructionError("Encounter context has no patient")
    if not context.recorder_uuid:
        raise BundleConstructionError("Encounter context has no participant")


def subtract_duration(moment: datetime, value: int, unit: DurationUnit) -> datetime:
    """Date ``value`` ``unit`` before ``moment``, clamped to the month's end."""
    if unit == DurationUnit.DAYS:
        return moment - timedelta(days=value)

    months = value if unit == DurationUnit.MONTHS else value * 12
    year, month_index = divmod(moment.year * 12 + moment.month - 1 - months, 12)
    month = month_index + 1
    day = min(moment.day, monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


# =============================================================================
# Encounter
# =============================================================================


def create_encounter_bundle_entry(context: EncounterContext) -> BundleOperation:
    """Create the Encounter entry that every other resource points at."""
    if not context.is_ready:
        raise BundleConstructionError("Encounter context is incomplete")

    encounter_type = context.encounter_type
    resource = {
        "resourceType": "Encounter",
        "status": "in-progress",
        "class": {
            "system": ENCOUNTER_CLASS_SYSTEM,
            "code": "AMB",
            "display": "ambulatory",
        },
        "meta": {
            "tag": [
                {
                    "system": ENCOUNTER_TAG_SYSTEM,
                    "code": "encounter",
                    "display": "Encounter",
                }
            ]
        },
        "type": [
            _codeable_concept(
                [
                    _coding(
                        encounter_type.code,
                        encounter_type.system or ENCOUNTER_TYPE_SYSTEM,
                        encounter_type.display,
                    )
                ]
            )
        ],
        "subject": {"reference": f"Patient/{context.patient_uuid}"},
        "participant": [
            {"individual": {"reference": f"Practitioner/{p}", "type": "Practitioner"}}
            for p in context.participant_uuids
        ],
        "partOf": {"reference": f"Encounter/{context.visit_uuid}"},
        "location": [
            {"location": {"reference": f"Location/{context.location_uuid}"}}
        ],
        "period": {"start": _isoformat(context.encounter_date)},
    }
    return BundleOperation(payload=resource)


# =============================================================================
# Diagnoses and conditions
# =============================================================================


def _diagnosis_resource(
    diagnosis: DiagnosisEntry,
    context: EncounterContext,
    encounter_ref: dict[str, str],
) -> dict[str, Any]:
    certainty = diagnosis.selected_certainty
    if certainty is None or certainty.code not in DIAGNOSIS_CERTAINTIES:
        raise BundleConstructionError(
            f"Diagnosis {diagnosis.id} has no usable certainty: {certainty!r}"
        )

    return {
        "resourceType": "Condition",
        "subject": {"reference": f"Patient/{context.patient_uuid}"},
        "category": [
            _codeable_concept(
                [_coding(CONDITION_CATEGORY_DIAGNOSIS, CONDITION_CATEGORY_SYSTEM)]
            )
        ],
        "code": _codeable_concept([_coding(diagnosis.id)], diagnosis.display),
        "clinicalStatus": _codeable_concept(
            [_coding("active", CONDITION_CLINICAL_STATUS_SYSTEM)]
        ),
        "verificationStatus": _codeable_concept(
            [_coding(certainty.code, CONDITION_VERIFICATION_STATUS_SYSTEM)]
        ),
        "encounter": encounter_ref,
        "recorder": {"reference": f"Practitioner/{context.recorder_uuid}"},
        "recordedDate": _isoformat(context.encounter_date),
    }


def _condition_resource(
    condition: ConditionEntry,
    context: EncounterContext,
    encounter_ref: dict[str, str],
) -> dict[str, Any]:
    if not condition.duration_value or condition.duration_unit is None:
        raise BundleConstructionError(f"Condition {condition.id} has no duration")

    onset = subtract_duration(
        context.encounter_date, condition.duration_value, condition.duration_unit
    )
    return {
        "resourceType": "Condition",
        "subject": {"reference": f"Patient/{context.patient_uuid}"},
        "category": [
            _codeable_concept(
                [_coding(CONDITION_CATEGORY_CONDITION, CONDITION_CATEGORY_SYSTEM)]
            )
        ],
        "code": _codeable_concept([_coding(condition.id)], condition.display),
        "clinicalStatus": _codeable_concept(
            [_coding("active", CONDITION_CLINICAL_STATUS_SYSTEM)]
        ),
        "encounter": encounter_ref,
        "recorder": {"reference": f"Practitioner/{context.recorder_uuid}"},
        "recordedDate": _isoformat(context.encounter_date),
        "onsetDateTime": _isoformat(onset),
    }


def create_diagnosis_bundle_entries(
    state: ConditionsAndDiagnosesState,
    context: EncounterContext,
    encounter_ref: dict[str, str],
) -> list[BundleOperation]:
    """Encounter-diagnosis Condition entries, one per selected diagnosis."""
    if not state.selected_diagnoses:
        return []
    _require_context(context)
    return [
        BundleOperation(payload=_diagnosis_resource(d, context, encounter_ref))
        for d in state.selected_diagnoses
    ]


def create_conditions_bundle_entries(
    state: ConditionsAndDiagnosesState,
    context: EncounterContext,
    encounter_ref: dict[str, str],
) -> list[BundleOperation]:
    """Problem-list Condition entries, one per promoted condition."""
    if not state.selected_conditions:
        return []
    _require_context(context)
    return [
        BundleOperation(payload=_condition_resource(c, context, encounter_ref))
        for c in state.selected_conditions
    ]


# =============================================================================
# Allergies
# =============================================================================


def _severity_code(severity: Coding | None) -> str:
    if severity is None:
        raise BundleConstructionError("Allergy has no severity")
    for candidate in (severity.code, severity.display):
        if candidate and candidate.lower() in ALLERGY_SEVERITIES:
            return candidate.lower()
    raise BundleConstructionError(f"Unrecognised allergy severity: {severity!r}")


def _allergy_resource(
    allergy: AllergyEntry,
    context: EncounterContext,
    encounter_ref: dict[str, str],
) -> dict[str, Any]:
    if not allergy.selected_reactions:
        raise BundleConstructionError(f"Allergy {allergy.id} has no reactions")

    resource = {
        "resourceType": "AllergyIntolerance",
        "type": "allergy",
        "category": [allergy.type.value],
        "clinicalStatus": _codeable_concept(
            [_coding("active", ALLERGY_CLINICAL_STATUS_SYSTEM)]
        ),
        "verificationStatus": _codeable_concept(
            [_coding("confirmed", ALLERGY_VERIFICATION_STATUS_SYSTEM)]
        ),
        "code": _codeable_concept([_coding(allergy.id)], allergy.display),
        "patient": {"reference": f"Patient/{context.patient_uuid}"},
        "encounter": encounter_ref,
        "recorder": {"reference": f"Practitioner/{context.recorder_uuid}"},
        "recordedDate": _isoformat(context.encounter_date),
        "reaction": [
            {
                "manifestation": [
                    _codeable_concept([reaction.to_dict()], reaction.display)
                    for reaction in allergy.selected_reactions
                ],
                "severity": _severity_code(allergy.selected_severity),
            }
        ],
    }

    if allergy.note and allergy.note.strip():
        resource["note"] = [{"text": allergy.note.strip()}]

    return resource


def create_allergies_bundle_entries(
    state: AllergyState,
    context: EncounterContext,
    encounter_ref: dict[str, str],
) -> list[BundleOperation]:
    """AllergyIntolerance entries, one per selected allergy."""
    if not state.selected_allergies:
        return []
    _require_context(context)
    return [
        BundleOperation(payload=_allergy_resource(a, context, encounter_ref))
        for a in state.selected_allergies
    ]


# =============================================================================
# Bundle
# =============================================================================


def assemble_bundle(operations: Iterable[BundleOperation]) -> dict[str, Any]:
    """Wrap operations in a transaction Bundle."""
    return {
        "resourceType": "Bundle",
        "id": str(uuid.uuid4()),
        "type": "transaction",
        "timestamp": _isoformat(datetime.now(timezone.utc)),
        "entry": [op.to_entry() for op in operations],
    }


def to_json(bundle: dict[str, Any], indent: int = 2) -> str:
    """Serialize bundle to JSON string."""
    return json.dumps(bundle, indent=indent)
