"""
Service Request Ledger

Investigation orders selected during an encounter, grouped by category
(e.g. "Laboratory", "Radiology").
"""

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Mapping

from consultation_pad.ledgers.entry_types import ConceptSearch, ServiceRequestEntry
from consultation_pad.ledgers.validators import is_valid_concept, is_valid_id

PRIORITIES = ("routine", "stat")


@dataclass(frozen=True)
class ServiceRequestState:
    """Selected service requests keyed by category. Newest first."""

    selected_service_requests: Mapping[str, tuple[ServiceRequestEntry, ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )

    def in_category(self, category: str) -> tuple[ServiceRequestEntry, ...]:
        return self.selected_service_requests.get(category, ())

    @property
    def is_empty(self) -> bool:
        return not any(self.selected_service_requests.values())


def _with_category(
    state: ServiceRequestState,
    category: str,
    entries: tuple[ServiceRequestEntry, ...],
) -> ServiceRequestState:
    updated = dict(state.selected_service_requests)
    if entries:
        updated[category] = entries
    else:
        updated.pop(category, None)
    return ServiceRequestState(selected_service_requests=MappingProxyType(updated))


class ServiceRequestLedger:
    """Investigation orders for one encounter."""

    def __init__(self):
        self._state = ServiceRequestState()

    def get_state(self) -> ServiceRequestState:
        return self._state

    def add_service_request(self, category: str, concept: ConceptSearch) -> None:
        if not is_valid_id(category) or not is_valid_concept(concept):
            return
        entries = self._state.in_category(category)
        if any(e.id == concept.concept_uuid for e in entries):
            return
        entry = ServiceRequestEntry(
            id=concept.concept_uuid,
            display=concept.concept_name,
            category=category,
        )
        self._state = _with_category(self._state, category, (entry, *entries))

    def remove_service_request(self, category: str, request_id: str) -> None:
        if not is_valid_id(request_id):
            return
        entries = tuple(
            e for e in self._state.in_category(category) if e.id != request_id
        )
        self._state = _with_category(self._state, category, entries)

    def update_priority(self, category: str, request_id: str, priority: str) -> None:
        if not is_valid_id(request_id) or priority not in PRIORITIES:
            return
        entries = tuple(
            replace(e, selected_priority=priority) if e.id == request_id else e
            for e in self._state.in_category(category)
        )
        if entries:
            self._state = _with_category(self._state, category, entries)

    def reset(self) -> None:
        self._state = ServiceRequestState()
