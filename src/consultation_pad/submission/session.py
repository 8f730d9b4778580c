"""
Consultation Session

One encounter's worth of ledgers, context and coordinator.

Usage:
    session = ConsultationSession.from_config(load_config("consultation.yaml"))
    session.diagnoses.add_diagnosis(ConceptSearch("d1", "Flu"))
    outcome = await session.coordinator.submit()
"""

from pathlib import Path
from typing import Any
import json
import logging

import yaml

from consultation_pad.config import ConsultationConfig
from consultation_pad.encounter.context import EncounterContext, EncounterContextStore
from consultation_pad.fhir.client import FHIRClient
from consultation_pad.ledgers.allergies import AllergyLedger
from consultation_pad.ledgers.conditions_and_diagnoses import (
    ConditionsAndDiagnosesLedger,
)
from consultation_pad.ledgers.entry_types import (
    AllergenConcept,
    Coding,
    ConceptSearch,
)
from consultation_pad.ledgers.service_requests import ServiceRequestLedger
from consultation_pad.submission.coordinator import SubmissionCoordinator, SubmitBatch
from consultation_pad.submission.notifications import (
    AuditLogger,
    InMemoryAuditLogger,
    NotificationLog,
    Notifier,
)

logger = logging.getLogger(__name__)


class ConsultationSession:
    """Ledgers and coordinator for one encounter screen."""

    def __init__(
        self,
        submit_batch: SubmitBatch,
        context: EncounterContext | None = None,
        notifier: Notifier | None = None,
        audit_logger: AuditLogger | None = None,
        config: ConsultationConfig | None = None,
    ):
        self.config = config or ConsultationConfig()
        self.diagnoses = ConditionsAndDiagnosesLedger()
        self.allergies = AllergyLedger()
        self.service_requests = ServiceRequestLedger()
        self.encounter = EncounterContextStore(context)
        self.notifier = notifier or NotificationLog()
        self.audit_logger = audit_logger or InMemoryAuditLogger()

        self.coordinator = SubmissionCoordinator(
            diagnoses=self.diagnoses,
            allergies=self.allergies,
            encounter=self.encounter,
            submit_batch=submit_batch,
            notifier=self.notifier,
            audit_logger=self.audit_logger,
            extra_stores=[self.service_requests],
            validate_output=self.config.fhir.validate_bundle,
            messages=self.config.notifications,
        )

    @classmethod
    def from_config(
        cls,
        config: ConsultationConfig,
        context: EncounterContext | None = None,
        client: FHIRClient | None = None,
    ) -> "ConsultationSession":
        """Create a session that submits to the configured FHIR server."""
        client = client or FHIRClient(config.fhir)
        return cls(submit_batch=client.post_bundle, context=context, config=config)

    def load_entries(self, data: dict[str, Any]) -> None:
        """Replay a consultation document through the ledger operations.

        The document mirrors what a user would enter: diagnoses (with
        certainty, optionally promoted to conditions with a duration),
        allergies (severity, reactions, note) and service requests.
        """
        if "encounter" in data:
            encounter = dict(data["encounter"])
            defaults = self.config.encounter
            if not encounter.get("encounter_type"):
                encounter["encounter_type"] = {
                    "code": defaults.encounter_type_code,
                    "display": defaults.encounter_type_display,
                }
            if not encounter.get("location_uuid"):
                encounter["location_uuid"] = defaults.location_uuid
            self.encounter.set_context(EncounterContext.from_dict(encounter))

        # Ledgers prepend, so replay in reverse to keep document order.
        for item in reversed(data.get("diagnoses", [])):
            entry_id = item.get("id")
            before = self.diagnoses.get_state()
            self.diagnoses.add_diagnosis(ConceptSearch(entry_id, item.get("display")))
            if self.diagnoses.get_state() is before:
                logger.warning("Skipping diagnosis %r: missing id or display", item)
                continue
            if item.get("certainty"):
                self.diagnoses.update_certainty(entry_id, _coding(item["certainty"]))
            if isinstance(item.get("condition"), dict):
                duration = item["condition"]
                self.diagnoses.mark_as_condition(entry_id)
                self.diagnoses.update_condition_duration(
                    entry_id, duration.get("duration_value"), duration.get("duration_unit")
                )

        for item in reversed(data.get("allergies", [])):
            entry_id = item.get("id")
            before = self.allergies.get_state()
            self.allergies.add_allergy(
                AllergenConcept(uuid=entry_id, display=item.get("display"), type=item.get("type"))
            )
            if self.allergies.get_state() is before:
                logger.warning("Skipping allergy %r: missing id, display or known type", item)
                continue
            if item.get("severity"):
                self.allergies.update_severity(entry_id, _coding(item["severity"]))
            if item.get("reactions"):
                self.allergies.update_reactions(
                    entry_id, [_coding(r) for r in item["reactions"]]
                )
            if item.get("note"):
                self.allergies.update_note(entry_id, item["note"])

        for item in reversed(data.get("service_requests", [])):
            self.service_requests.add_service_request(
                item.get("category", ""), ConceptSearch(item.get("id"), item.get("display"))
            )

    def teardown(self) -> None:
        self.coordinator.teardown()


def _coding(value: Any) -> Coding:
    if isinstance(value, dict):
        return Coding.from_dict(value)
    return Coding(code=str(value), display=str(value))


def load_consultation(path: str | Path) -> dict[str, Any]:
    """Read a consultation document from YAML or JSON."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Consultation file not found: {path}")

    text = path.read_text()
    if path.suffix == ".json":
        return json.loads(text)
    return yaml.safe_load(text) or {}
