"""
Encounter Context

Encounter-level facts (patient, visit, location, participants, date) that frame
the submitted bundle.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any

from consultation_pad.ledgers.entry_types import Coding


@dataclass(frozen=True)
class EncounterContext:
    """Read-only encounter details."""

    patient_uuid: str | None = None
    encounter_type: Coding | None = None
    visit_uuid: str | None = None
    location_uuid: str | None = None
    participant_uuids: tuple[str, ...] = ()
    encounter_date: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    @property
    def is_ready(self) -> bool:
        """True once every field the bundle needs is set."""
        return bool(
            self.patient_uuid
            and self.encounter_type is not None
            and self.visit_uuid
            and self.location_uuid
            and self.participant_uuids
        )

    @property
    def recorder_uuid(self) -> str | None:
        """The first participant is recorded as the author of the entries."""
        return self.participant_uuids[0] if self.participant_uuids else None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EncounterContext":
        encounter_type = data.get("encounter_type")
        if isinstance(encounter_type, dict):
            encounter_type = Coding.from_dict(encounter_type)

        encounter_date = data.get("encounter_date")
        if isinstance(encounter_date, str):
            encounter_date = datetime.fromisoformat(encounter_date)
        if encounter_date is None:
            encounter_date = datetime.now(timezone.utc)

        return cls(
            patient_uuid=data.get("patient_uuid"),
            encounter_type=encounter_type,
            visit_uuid=data.get("visit_uuid"),
            location_uuid=data.get("location_uuid"),
            participant_uuids=tuple(data.get("participant_uuids", ())),
            encounter_date=encounter_date,
        )


class EncounterContextStore:
    """Holds the encounter context for the consultation screen."""

    def __init__(self, context: EncounterContext | None = None):
        self._context = context or EncounterContext()

    @property
    def context(self) -> EncounterContext:
        return self._context

    @property
    def is_ready(self) -> bool:
        return self._context.is_ready

    def set_context(self, context: EncounterContext) -> None:
        self._context = context

    def update(self, **changes: Any) -> EncounterContext:
        """Replace individual encounter fields."""
        if "participant_uuids" in changes:
            changes["participant_uuids"] = tuple(changes["participant_uuids"])
        self._context = replace(self._context, **changes)
        return self._context

    def reset(self) -> None:
        self._context = EncounterContext()
