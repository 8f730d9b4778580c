"""
Allergy Ledger

Allergies entered during an encounter, with severity, reactions and a note.
"""

from dataclasses import dataclass, replace
from typing import Callable, Iterable

from consultation_pad.ledgers.entry_types import (
    AllergenConcept,
    AllergyEntry,
    Coding,
    freeze_errors,
)
from consultation_pad.ledgers.validators import (
    coerce_allergen_type,
    is_valid_allergen,
    is_valid_id,
    validate_allergy,
    without_keys,
)


@dataclass(frozen=True)
class AllergyState:
    """Snapshot of the allergy ledger. Newest entries first."""

    selected_allergies: tuple[AllergyEntry, ...] = ()

    def allergy(self, entry_id: str) -> AllergyEntry | None:
        return next((a for a in self.selected_allergies if a.id == entry_id), None)

    @property
    def is_empty(self) -> bool:
        return not self.selected_allergies


def _map_entry(
    state: AllergyState,
    allergy_id: str,
    apply: Callable[[AllergyEntry], AllergyEntry],
) -> AllergyState:
    if not is_valid_id(allergy_id):
        return state
    return AllergyState(
        selected_allergies=tuple(
            apply(a) if a.id == allergy_id else a for a in state.selected_allergies
        )
    )


def add_allergy(state: AllergyState, allergen: AllergenConcept) -> AllergyState:
    if not is_valid_allergen(allergen):
        return state
    if state.allergy(allergen.uuid) is not None:
        return state

    entry = AllergyEntry(
        id=allergen.uuid,
        display=allergen.display,
        type=coerce_allergen_type(allergen.type),
    )
    return AllergyState(selected_allergies=(entry, *state.selected_allergies))


def remove_allergy(state: AllergyState, allergy_id: str) -> AllergyState:
    if not is_valid_id(allergy_id):
        return state
    return AllergyState(
        selected_allergies=tuple(
            a for a in state.selected_allergies if a.id != allergy_id
        )
    )


def update_severity(
    state: AllergyState, allergy_id: str, severity: Coding | None
) -> AllergyState:
    def apply(entry: AllergyEntry) -> AllergyEntry:
        errors = entry.errors
        if entry.has_been_validated and severity is not None:
            errors = freeze_errors(without_keys(errors, "severity"))
        return replace(entry, selected_severity=severity, errors=errors)

    return _map_entry(state, allergy_id, apply)


def update_reactions(
    state: AllergyState, allergy_id: str, reactions: Iterable[Coding]
) -> AllergyState:
    reactions = tuple(reactions)

    def apply(entry: AllergyEntry) -> AllergyEntry:
        errors = entry.errors
        if entry.has_been_validated and reactions:
            errors = freeze_errors(without_keys(errors, "reactions"))
        return replace(entry, selected_reactions=reactions, errors=errors)

    return _map_entry(state, allergy_id, apply)


def update_note(state: AllergyState, allergy_id: str, note: str | None) -> AllergyState:
    return _map_entry(state, allergy_id, lambda entry: replace(entry, note=note))


def validate_all_allergies(state: AllergyState) -> tuple[AllergyState, bool]:
    """Validate every allergy."""
    is_valid = True
    allergies = []
    for entry in state.selected_allergies:
        errors = validate_allergy(entry)
        if "severity" in errors or "reactions" in errors:
            is_valid = False
        allergies.append(
            replace(entry, errors=freeze_errors(errors), has_been_validated=True)
        )
    return AllergyState(selected_allergies=tuple(allergies)), is_valid


class AllergyLedger:
    """Allergies entered during one encounter."""

    def __init__(self, state: AllergyState | None = None):
        self._state = state or AllergyState()

    def get_state(self) -> AllergyState:
        return self._state

    @property
    def selected_allergies(self) -> tuple[AllergyEntry, ...]:
        return self._state.selected_allergies

    def add_allergy(self, allergen: AllergenConcept) -> None:
        self._state = add_allergy(self._state, allergen)

    def remove_allergy(self, allergy_id: str) -> None:
        self._state = remove_allergy(self._state, allergy_id)

    def update_severity(self, allergy_id: str, severity: Coding | None) -> None:
        self._state = update_severity(self._state, allergy_id, severity)

    def update_reactions(self, allergy_id: str, reactions: Iterable[Coding]) -> None:
        self._state = update_reactions(self._state, allergy_id, reactions)

    def update_note(self, allergy_id: str, note: str | None) -> None:
        self._state = update_note(self._state, allergy_id, note)

    def validate_all_allergies(self) -> bool:
        self._state, is_valid = validate_all_allergies(self._state)
        return is_valid

    def reset(self) -> None:
        self._state = AllergyState()
