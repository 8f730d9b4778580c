"""
Ledger Entry Types

Data models for entries recorded on the consultation pad.
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping


class DurationUnit(str, Enum):
    """Units a condition duration can be expressed in."""

    DAYS = "days"
    MONTHS = "months"
    YEARS = "years"


class AllergenType(str, Enum):
    """Allergen categories."""

    MEDICATION = "medication"
    FOOD = "food"
    ENVIRONMENT = "environment"


class ErrorCode:
    """Field error codes rendered inline by the UI."""

    DROPDOWN_VALUE_REQUIRED = "DROPDOWN_VALUE_REQUIRED"
    DURATION_VALUE_REQUIRED = "CONDITIONS_DURATION_VALUE_REQUIRED"
    DURATION_UNIT_REQUIRED = "CONDITIONS_DURATION_UNIT_REQUIRED"
    REACTIONS_REQUIRED = "REACTIONS_REQUIRED"


EMPTY_ERRORS: Mapping[str, str] = MappingProxyType({})


def freeze_errors(errors: Mapping[str, str]) -> Mapping[str, str]:
    """Return a read-only copy of an error map."""
    return MappingProxyType(dict(errors))


@dataclass(frozen=True)
class Coding:
    """A coded value (certainty, severity, reaction, priority...)."""

    code: str
    display: str | None = None
    system: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Coding":
        return cls(
            code=data["code"],
            display=data.get("display"),
            system=data.get("system"),
        )

    def to_dict(self) -> dict[str, Any]:
        coding: dict[str, Any] = {"code": self.code}
        if self.system:
            coding["system"] = self.system
        if self.display:
            coding["display"] = self.display
        return coding


@dataclass(frozen=True)
class ConceptSearch:
    """A terminology concept chosen from search."""

    concept_uuid: str | None
    concept_name: str | None
    match_score: float | None = None


@dataclass(frozen=True)
class AllergenConcept:
    """An allergen chosen from allergen search."""

    uuid: str | None
    display: str | None
    type: AllergenType | str | None
    disabled: bool = False


@dataclass(frozen=True)
class DiagnosisEntry:
    """A diagnosis recorded during the encounter."""

    id: str
    display: str
    selected_certainty: Coding | None = None
    errors: Mapping[str, str] = field(default_factory=lambda: EMPTY_ERRORS)
    has_been_validated: bool = False


@dataclass(frozen=True)
class ConditionEntry:
    """A diagnosis promoted to a time-bounded condition."""

    id: str
    display: str
    duration_value: int | None = None
    duration_unit: DurationUnit | None = None
    errors: Mapping[str, str] = field(default_factory=lambda: EMPTY_ERRORS)
    has_been_validated: bool = False


@dataclass(frozen=True)
class AllergyEntry:
    """An allergy recorded during the encounter."""

    id: str
    display: str
    type: AllergenType
    selected_severity: Coding | None = None
    selected_reactions: tuple[Coding, ...] = ()
    note: str | None = None
    errors: Mapping[str, str] = field(default_factory=lambda: EMPTY_ERRORS)
    has_been_validated: bool = False


@dataclass(frozen=True)
class ServiceRequestEntry:
    """An investigation order selected during the encounter."""

    id: str
    display: str
    category: str
    selected_priority: str = "routine"


@dataclass
class ExistingCondition:
    """A condition already on the patient's record (read from the EMR)."""

    id: str
    concept_codes: list[str] = field(default_factory=list)
    display: str | None = None
    clinical_status: str = "active"

    @classmethod
    def from_fhir(cls, resource: dict[str, Any]) -> "ExistingCondition":
        """Build from a FHIR Condition resource."""
        code = resource.get("code", {})
        status_codings = resource.get("clinicalStatus", {}).get("coding", [])
        return cls(
            id=resource.get("id", ""),
            concept_codes=[c["code"] for c in code.get("coding", []) if c.get("code")],
            display=code.get("text"),
            clinical_status=status_codings[0].get("code", "active") if status_codings else "active",
        )
