"""
Conditions and Diagnoses Ledger

Tracks the diagnoses entered during an encounter and the diagnoses that have
been promoted to conditions.

Every operation is a pure reducer from one immutable snapshot to the next;
``ConditionsAndDiagnosesLedger`` only holds the current snapshot and swaps it.
"""

from dataclasses import dataclass, replace
import logging
from typing import Any, Iterable

from consultation_pad.ledgers.entry_types import (
    Coding,
    ConceptSearch,
    ConditionEntry,
    DiagnosisEntry,
    ExistingCondition,
    freeze_errors,
)
from consultation_pad.ledgers.validators import (
    coerce_duration_unit,
    is_valid_concept,
    is_valid_duration_value,
    is_valid_id,
    validate_condition,
    validate_diagnosis,
    without_keys,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConditionsAndDiagnosesState:
    """Snapshot of the ledger. Newest entries first."""

    selected_diagnoses: tuple[DiagnosisEntry, ...] = ()
    selected_conditions: tuple[ConditionEntry, ...] = ()

    def diagnosis(self, entry_id: str) -> DiagnosisEntry | None:
        return next((d for d in self.selected_diagnoses if d.id == entry_id), None)

    def condition(self, entry_id: str) -> ConditionEntry | None:
        return next((c for c in self.selected_conditions if c.id == entry_id), None)

    @property
    def is_empty(self) -> bool:
        return not self.selected_diagnoses and not self.selected_conditions


# =============================================================================
# Reducers
# =============================================================================


def add_diagnosis(
    state: ConditionsAndDiagnosesState, concept: ConceptSearch
) -> ConditionsAndDiagnosesState:
    if not is_valid_concept(concept):
        return state
    if state.diagnosis(concept.concept_uuid) is not None:
        return state

    entry = DiagnosisEntry(id=concept.concept_uuid, display=concept.concept_name)
    return replace(state, selected_diagnoses=(entry, *state.selected_diagnoses))


def remove_diagnosis(
    state: ConditionsAndDiagnosesState, diagnosis_id: str
) -> ConditionsAndDiagnosesState:
    if not is_valid_id(diagnosis_id):
        return state
    return replace(
        state,
        selected_diagnoses=tuple(
            d for d in state.selected_diagnoses if d.id != diagnosis_id
        ),
    )


def update_certainty(
    state: ConditionsAndDiagnosesState,
    diagnosis_id: str,
    certainty: Coding | None,
) -> ConditionsAndDiagnosesState:
    if not is_valid_id(diagnosis_id):
        return state

    def apply(entry: DiagnosisEntry) -> DiagnosisEntry:
        if entry.id != diagnosis_id:
            return entry
        errors = entry.errors
        if entry.has_been_validated and certainty is not None:
            errors = freeze_errors(without_keys(errors, "certainty"))
        return replace(entry, selected_certainty=certainty, errors=errors)

    return replace(
        state, selected_diagnoses=tuple(apply(d) for d in state.selected_diagnoses)
    )


def mark_as_condition(
    state: ConditionsAndDiagnosesState, diagnosis_id: str
) -> tuple[ConditionsAndDiagnosesState, bool]:
    """Move a diagnosis to the condition list in one step."""
    if not is_valid_id(diagnosis_id):
        return state, False
    if state.condition(diagnosis_id) is not None:
        return state, False

    diagnosis = state.diagnosis(diagnosis_id)
    if diagnosis is None:
        return state, False

    condition = ConditionEntry(id=diagnosis.id, display=diagnosis.display)
    new_state = ConditionsAndDiagnosesState(
        selected_diagnoses=tuple(
            d for d in state.selected_diagnoses if d.id != diagnosis_id
        ),
        selected_conditions=(condition, *state.selected_conditions),
    )
    return new_state, True


def remove_condition(
    state: ConditionsAndDiagnosesState, condition_id: str
) -> ConditionsAndDiagnosesState:
    if not is_valid_id(condition_id):
        return state
    return replace(
        state,
        selected_conditions=tuple(
            c for c in state.selected_conditions if c.id != condition_id
        ),
    )


def update_condition_duration(
    state: ConditionsAndDiagnosesState,
    condition_id: str,
    value: int | None,
    unit: Any,
) -> ConditionsAndDiagnosesState:
    if not is_valid_id(condition_id):
        return state
    if value is not None and not is_valid_duration_value(value):
        return state

    duration_unit = None
    if unit is not None:
        duration_unit = coerce_duration_unit(unit)
        if duration_unit is None:
            return state

    def apply(entry: ConditionEntry) -> ConditionEntry:
        if entry.id != condition_id:
            return entry
        errors = entry.errors
        if entry.has_been_validated:
            cleared = []
            if value is not None:
                cleared.append("durationValue")
            if duration_unit is not None:
                cleared.append("durationUnit")
            if cleared:
                errors = freeze_errors(without_keys(errors, *cleared))
        return replace(
            entry,
            duration_value=value,
            duration_unit=duration_unit,
            errors=errors,
        )

    return replace(
        state,
        selected_conditions=tuple(apply(c) for c in state.selected_conditions),
    )


def validate(
    state: ConditionsAndDiagnosesState,
) -> tuple[ConditionsAndDiagnosesState, bool]:
    """Validate every diagnosis and every condition."""
    is_valid = True

    diagnoses = []
    for entry in state.selected_diagnoses:
        errors = validate_diagnosis(entry)
        if "certainty" in errors:
            is_valid = False
        diagnoses.append(
            replace(entry, errors=freeze_errors(errors), has_been_validated=True)
        )

    conditions = []
    for entry in state.selected_conditions:
        errors = validate_condition(entry)
        if "durationValue" in errors or "durationUnit" in errors:
            is_valid = False
        conditions.append(
            replace(entry, errors=freeze_errors(errors), has_been_validated=True)
        )

    new_state = ConditionsAndDiagnosesState(
        selected_diagnoses=tuple(diagnoses),
        selected_conditions=tuple(conditions),
    )
    return new_state, is_valid


def find_existing_condition(
    concept_id: str, existing_conditions: Iterable[ExistingCondition]
) -> ExistingCondition | None:
    """Find an active pre-existing condition recorded against ``concept_id``."""
    if not is_valid_id(concept_id):
        return None
    for existing in existing_conditions:
        if existing.clinical_status != "active":
            continue
        if concept_id in existing.concept_codes:
            return existing
    return None


# =============================================================================
# Ledger
# =============================================================================


class ConditionsAndDiagnosesLedger:
    """Diagnoses and conditions entered during one encounter."""

    def __init__(self, state: ConditionsAndDiagnosesState | None = None):
        self._state = state or ConditionsAndDiagnosesState()

    def get_state(self) -> ConditionsAndDiagnosesState:
        """Current snapshot."""
        return self._state

    @property
    def selected_diagnoses(self) -> tuple[DiagnosisEntry, ...]:
        return self._state.selected_diagnoses

    @property
    def selected_conditions(self) -> tuple[ConditionEntry, ...]:
        return self._state.selected_conditions

    def add_diagnosis(self, concept: ConceptSearch) -> None:
        self._state = add_diagnosis(self._state, concept)

    def remove_diagnosis(self, diagnosis_id: str) -> None:
        self._state = remove_diagnosis(self._state, diagnosis_id)

    def update_certainty(self, diagnosis_id: str, certainty: Coding | None) -> None:
        self._state = update_certainty(self._state, diagnosis_id, certainty)

    def mark_as_condition(
        self,
        diagnosis_id: str,
        existing_conditions: Iterable[ExistingCondition] = (),
    ) -> bool:
        """Promote a diagnosis to a condition.

        Refused when the concept is already an active condition on the
        patient's record.
        """
        existing = find_existing_condition(diagnosis_id, existing_conditions)
        if existing is not None:
            logger.info(
                "Diagnosis %s already recorded as condition %s", diagnosis_id, existing.id
            )
            return False

        self._state, promoted = mark_as_condition(self._state, diagnosis_id)
        return promoted

    def is_existing_condition(
        self, concept_id: str, existing_conditions: Iterable[ExistingCondition]
    ) -> bool:
        return find_existing_condition(concept_id, existing_conditions) is not None

    def remove_condition(self, condition_id: str) -> None:
        self._state = remove_condition(self._state, condition_id)

    def update_condition_duration(
        self, condition_id: str, value: int | None, unit: Any
    ) -> None:
        self._state = update_condition_duration(self._state, condition_id, value, unit)

    def validate(self) -> bool:
        self._state, is_valid = validate(self._state)
        return is_valid

    def reset(self) -> None:
        self._state = ConditionsAndDiagnosesState()
