"""
Submission Coordinator

Validates every ledger, assembles one transaction bundle from their contents,
submits it once, and then either resets the ledgers (success) or leaves them
untouched so the user can retry (failure).

    IDLE -> VALIDATING -> BLOCKED -> IDLE
    IDLE -> VALIDATING -> ASSEMBLING -> SUBMITTING -> SUCCEEDED
                                                   -> FAILED -> IDLE
"""

import asyncio
from enum import Enum
import logging
from typing import Any, Callable, Iterable, Protocol

from consultation_pad.config import NotificationConfig
from consultation_pad.encounter.context import EncounterContextStore
from consultation_pad.fhir.bundle import (
    BundleOperation,
    Transformer,
    assemble_bundle,
    create_allergies_bundle_entries,
    create_conditions_bundle_entries,
    create_diagnosis_bundle_entries,
    create_encounter_bundle_entry,
)
from consultation_pad.fhir.client import SubmissionResult
from consultation_pad.fhir.validators import ensure_valid_bundle
from consultation_pad.ledgers.allergies import AllergyLedger
from consultation_pad.ledgers.conditions_and_diagnoses import (
    ConditionsAndDiagnosesLedger,
)
from consultation_pad.submission.notifications import (
    CLINICAL_MODULE,
    EDIT_ENCOUNTER_DETAILS,
    AuditLogger,
    Notifier,
)

logger = logging.getLogger(__name__)


class SubmissionState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    BLOCKED = "blocked"
    ASSEMBLING = "assembling"
    SUBMITTING = "submitting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class SubmitOutcome(str, Enum):
    """What a call to ``submit()`` did."""

    NOT_READY = "not_ready"
    IGNORED = "ignored"
    ALREADY_SUBMITTED = "already_submitted"
    BLOCKED = "blocked"
    CONSTRUCTION_FAILED = "construction_failed"
    FAILED = "failed"
    SUCCEEDED = "succeeded"
    DISCARDED = "discarded"


class Resettable(Protocol):
    def reset(self) -> None: ...


SubmitBatch = Callable[[dict[str, Any]], SubmissionResult]


class SubmissionCoordinator:
    """Owns the submit lifecycle for one encounter."""

    def __init__(
        self,
        diagnoses: ConditionsAndDiagnosesLedger,
        allergies: AllergyLedger,
        encounter: EncounterContextStore,
        submit_batch: SubmitBatch,
        notifier: Notifier,
        audit_logger: AuditLogger | None = None,
        extra_stores: Iterable[Resettable] = (),
        diagnosis_transformer: Transformer = create_diagnosis_bundle_entries,
        condition_transformer: Transformer = create_conditions_bundle_entries,
        allergy_transformer: Transformer = create_allergies_bundle_entries,
        encounter_transformer: Callable[..., BundleOperation] = create_encounter_bundle_entry,
        validate_output: bool = True,
        messages: NotificationConfig | None = None,
    ):
        self.diagnoses = diagnoses
        self.allergies = allergies
        self.encounter = encounter
        self.notifier = notifier
        self.audit_logger = audit_logger
        self.extra_stores = list(extra_stores)
        self.validate_output = validate_output
        self.messages = messages or NotificationConfig()

        self._submit_batch = submit_batch
        self._diagnosis_transformer = diagnosis_transformer
        self._condition_transformer = condition_transformer
        self._allergy_transformer = allergy_transformer
        self._encounter_transformer = encounter_transformer

        self.state = SubmissionState.IDLE
        self.has_submitted = False
        self.last_record_id: str | None = None
        self._in_flight = False
        self._torn_down = False

    @property
    def is_submitting(self) -> bool:
        return self._in_flight

    @property
    def can_submit(self) -> bool:
        """Whether the submit control should be enabled."""
        return (
            self.encounter.is_ready
            and not self._in_flight
            and not self.has_submitted
            and not self._torn_down
        )

    def _transition(self, state: SubmissionState) -> None:
        logger.debug("Submission %s -> %s", self.state.value, state.value)
        self.state = state

    def build_bundle(self) -> dict[str, Any]:
        """Assemble the transaction bundle from the current ledger snapshots."""
        context = self.encounter.context
        encounter_op = self._encounter_transformer(context)
        encounter_ref = encounter_op.reference

        diagnosis_state = self.diagnoses.get_state()
        operations = [encounter_op]
        operations.extend(
            self._diagnosis_transformer(diagnosis_state, context, encounter_ref)
        )
        operations.extend(
            self._condition_transformer(diagnosis_state, context, encounter_ref)
        )
        operations.extend(
            self._allergy_transformer(self.allergies.get_state(), context, encounter_ref)
        )

        bundle = assemble_bundle(operations)
        if self.validate_output:
            ensure_valid_bundle(bundle)
        return bundle

    async def submit(self) -> SubmitOutcome:
        """Validate, assemble and submit the consultation."""
        if self._in_flight:
            logger.warning("Submission already in progress; ignoring submit")
            return SubmitOutcome.IGNORED
        if self._torn_down or not self.encounter.is_ready:
            return SubmitOutcome.NOT_READY
        if self.has_submitted:
            return SubmitOutcome.ALREADY_SUBMITTED

        self._in_flight = True
        try:
            return await self._submit()
        finally:
            self._in_flight = False

    async def _submit(self) -> SubmitOutcome:
        self._transition(SubmissionState.VALIDATING)
        # Both ledgers always validate so every field error is shown at once.
        diagnoses_valid = self.diagnoses.validate()
        allergies_valid = self.allergies.validate_all_allergies()
        if not (diagnoses_valid and allergies_valid):
            logger.info(
                "Submission blocked by field errors (diagnoses valid=%s, allergies valid=%s)",
                diagnoses_valid,
                allergies_valid,
            )
            self._transition(SubmissionState.BLOCKED)
            self._transition(SubmissionState.IDLE)
            return SubmitOutcome.BLOCKED

        self._transition(SubmissionState.ASSEMBLING)
        try:
            bundle = self.build_bundle()
        except Exception:
            logger.exception("Failed to build consultation bundle")
            self.notifier.show_error(self.messages.error_title, self.messages.error_message)
            self._transition(SubmissionState.FAILED)
            self._transition(SubmissionState.IDLE)
            return SubmitOutcome.CONSTRUCTION_FAILED

        self._transition(SubmissionState.SUBMITTING)
        try:
            result = await asyncio.to_thread(self._submit_batch, bundle)
        except Exception as e:
            if self._torn_down:
                logger.debug("Discarding failed submission after teardown: %s", e)
                return SubmitOutcome.DISCARDED
            logger.error("Consultation submission failed: %s", e)
            self.notifier.show_error(self.messages.error_title, self.messages.error_message)
            self._transition(SubmissionState.FAILED)
            self._transition(SubmissionState.IDLE)
            return SubmitOutcome.FAILED

        if self._torn_down:
            logger.debug("Discarding submission response after teardown")
            return SubmitOutcome.DISCARDED

        self._on_success(result)
        return SubmitOutcome.SUCCEEDED

    def _on_success(self, result: SubmissionResult | None) -> None:
        self.reset_ledgers()
        self.has_submitted = True
        self.last_record_id = result.record_id if result else None
        self._transition(SubmissionState.SUCCEEDED)

        self.notifier.show_success(self.messages.success_title, self.messages.success_message)
        if self.audit_logger is not None and self.last_record_id:
            self.audit_logger.log_event(
                EDIT_ENCOUNTER_DETAILS,
                encounter_uuid=self.last_record_id,
                module=CLINICAL_MODULE,
            )

    def reset_ledgers(self) -> None:
        self.diagnoses.reset()
        self.allergies.reset()
        for store in self.extra_stores:
            store.reset()

    def teardown(self) -> None:
        """The hosting screen went away: reset ledgers, ignore late responses."""
        self._torn_down = True
        self.reset_ledgers()

    def submit_sync(self) -> SubmitOutcome:
        """Run ``submit()`` to completion outside an event loop."""
        return asyncio.run(self.submit())
