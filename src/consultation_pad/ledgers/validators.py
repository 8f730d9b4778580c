"""
Entry Validators

Field-level rules for diagnosis, condition, and allergy entries.

Each ``validate_*`` function takes an entry's current error map and returns a
fresh one with the rule's keys set or cleared. Keys the rule does not own are
carried over untouched.
"""

from typing import Any, Mapping

from consultation_pad.ledgers.entry_types import (
    AllergenConcept,
    AllergenType,
    AllergyEntry,
    ConceptSearch,
    ConditionEntry,
    DiagnosisEntry,
    DurationUnit,
    ErrorCode,
)


def is_valid_id(entry_id: Any) -> bool:
    """True for a non-blank string identifier."""
    return isinstance(entry_id, str) and len(entry_id.strip()) > 0


def is_valid_concept(concept: ConceptSearch | None) -> bool:
    """True when a searched concept has both a uuid and a name."""
    if concept is None:
        return False
    return is_valid_id(concept.concept_uuid) and is_valid_id(concept.concept_name)


def is_valid_allergen(allergen: AllergenConcept | None) -> bool:
    """True when an allergen has a uuid, a display name and a known type."""
    if allergen is None:
        return False
    return (
        is_valid_id(allergen.uuid)
        and is_valid_id(allergen.display)
        and coerce_allergen_type(allergen.type) is not None
    )


def coerce_allergen_type(allergen_type: Any) -> AllergenType | None:
    """Map a type to AllergenType, or None if it is not a known category."""
    if isinstance(allergen_type, AllergenType):
        return allergen_type
    try:
        return AllergenType(allergen_type)
    except ValueError:
        return None


def is_valid_duration_value(value: Any) -> bool:
    """Duration values are strictly positive integers."""
    if isinstance(value, bool) or not isinstance(value, int):
        return False
    return value > 0


def coerce_duration_unit(unit: Any) -> DurationUnit | None:
    """Map a unit to DurationUnit, or None if it is not a known unit."""
    if isinstance(unit, DurationUnit):
        return unit
    try:
        return DurationUnit(unit)
    except ValueError:
        return None


def _set_or_clear(
    errors: dict[str, str], key: str, failed: bool, code: str
) -> None:
    if failed:
        errors[key] = code
    else:
        errors.pop(key, None)


def validate_diagnosis(entry: DiagnosisEntry) -> dict[str, str]:
    """Certainty is required."""
    errors = dict(entry.errors)
    _set_or_clear(
        errors,
        "certainty",
        entry.selected_certainty is None,
        ErrorCode.DROPDOWN_VALUE_REQUIRED,
    )
    return errors


def validate_condition(entry: ConditionEntry) -> dict[str, str]:
    """Duration value and unit are each required."""
    errors = dict(entry.errors)
    _set_or_clear(
        errors,
        "durationValue",
        not entry.duration_value,
        ErrorCode.DURATION_VALUE_REQUIRED,
    )
    _set_or_clear(
        errors,
        "durationUnit",
        entry.duration_unit is None,
        ErrorCode.DURATION_UNIT_REQUIRED,
    )
    return errors


def validate_allergy(entry: AllergyEntry) -> dict[str, str]:
    """Severity and at least one reaction are required."""
    errors = dict(entry.errors)
    _set_or_clear(
        errors,
        "severity",
        entry.selected_severity is None,
        ErrorCode.DROPDOWN_VALUE_REQUIRED,
    )
    _set_or_clear(
        errors,
        "reactions",
        len(entry.selected_reactions) == 0,
        ErrorCode.REACTIONS_REQUIRED,
    )
    return errors


def without_keys(errors: Mapping[str, str], *keys: str) -> dict[str, str]:
    """Copy of ``errors`` with ``keys`` removed."""
    return {k: v for k, v in errors.items() if k not in keys}
