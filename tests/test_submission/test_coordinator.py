"""
Tests for the submission coordinator.

Copyright (c) 2024 Cleansheet LLC
License: CC BY 4.0
"""

import asyncio
import threading
from unittest.mock import MagicMock

import pytest

from consultation_pad.encounter.context import EncounterContextStore
from consultation_pad.fhir.bundle import BundleConstructionError, BundleOperation
from consultation_pad.fhir.client import SubmissionError, SubmissionResult
from consultation_pad.ledgers.allergies import AllergyLedger
from consultation_pad.ledgers.conditions_and_diagnoses import (
    ConditionsAndDiagnosesLedger,
)
from consultation_pad.ledgers.entry_types import DurationUnit, ErrorCode
from consultation_pad.submission.coordinator import (
    SubmissionCoordinator,
    SubmissionState,
    SubmitOutcome,
)
from consultation_pad.submission.notifications import (
    CLINICAL_MODULE,
    EDIT_ENCOUNTER_DETAILS,
)


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def diagnoses() -> ConditionsAndDiagnosesLedger:
    return ConditionsAndDiagnosesLedger()


@pytest.fixture
def allergies() -> AllergyLedger:
    return AllergyLedger()


@pytest.fixture
def encounter(encounter_context) -> EncounterContextStore:
    return EncounterContextStore(encounter_context)


@pytest.fixture
def make_coordinator(diagnoses, allergies, encounter, mock_notifier, mock_audit_logger):
    def factory(submit_batch, **kwargs) -> SubmissionCoordinator:
        return SubmissionCoordinator(
            diagnoses=diagnoses,
            allergies=allergies,
            encounter=encounter,
            submit_batch=submit_batch,
            notifier=mock_notifier,
            audit_logger=mock_audit_logger,
            **kwargs,
        )

    return factory


@pytest.fixture
def coordinator(make_coordinator, mock_submit_batch) -> SubmissionCoordinator:
    return make_coordinator(mock_submit_batch)


@pytest.fixture
def filled(diagnoses, allergies, flu_concept, asthma_concept, penicillin,
           confirmed, severe, hives):
    """Fill both ledgers with complete entries."""
    diagnoses.add_diagnosis(flu_concept)
    diagnoses.update_certainty("d1", confirmed)
    diagnoses.add_diagnosis(asthma_concept)
    diagnoses.mark_as_condition("d2")
    diagnoses.update_condition_duration("d2", 3, DurationUnit.MONTHS)
    allergies.add_allergy(penicillin)
    allergies.update_severity("a1", severe)
    allergies.update_reactions("a1", [hives])


# =============================================================================
# TESTS
# =============================================================================


class TestSubmitGuards:
    """Tests for the checks that run before anything else."""

    def test_not_ready_without_context(self, make_coordinator, encounter, mock_submit_batch):
        encounter.reset()
        coordinator = make_coordinator(mock_submit_batch)

        assert coordinator.can_submit is False
        assert coordinator.submit_sync() == SubmitOutcome.NOT_READY
        mock_submit_batch.assert_not_called()

    def test_can_submit_when_ready(self, coordinator):
        assert coordinator.can_submit is True
        assert coordinator.is_submitting is False

    def test_already_submitted(self, coordinator, filled, mock_submit_batch):
        assert coordinator.submit_sync() == SubmitOutcome.SUCCEEDED

        assert coordinator.can_submit is False
        assert coordinator.submit_sync() == SubmitOutcome.ALREADY_SUBMITTED
        assert mock_submit_batch.call_count == 1


class TestValidationGate:
    """Tests for blocking on field errors."""

    def test_both_ledgers_flag_errors(
        self, make_coordinator, diagnoses, allergies, flu_concept, penicillin,
        mock_submit_batch, mock_notifier,
    ):
        diagnoses.add_diagnosis(flu_concept)
        allergies.add_allergy(penicillin)
        transformer = MagicMock(return_value=[])
        coordinator = make_coordinator(
            mock_submit_batch,
            diagnosis_transformer=transformer,
            condition_transformer=transformer,
            allergy_transformer=transformer,
        )

        outcome = coordinator.submit_sync()

        assert outcome == SubmitOutcome.BLOCKED
        assert coordinator.state == SubmissionState.IDLE
        assert diagnoses.selected_diagnoses[0].errors == {
            "certainty": ErrorCode.DROPDOWN_VALUE_REQUIRED
        }
        assert set(allergies.selected_allergies[0].errors) == {"severity", "reactions"}
        transformer.assert_not_called()
        mock_submit_batch.assert_not_called()
        mock_notifier.show_error.assert_not_called()
        mock_notifier.show_success.assert_not_called()

    def test_allergies_validated_even_when_diagnoses_fail(
        self, coordinator, diagnoses, allergies, flu_concept, penicillin, severe, hives,
    ):
        diagnoses.add_diagnosis(flu_concept)
        allergies.add_allergy(penicillin)
        allergies.update_severity("a1", severe)
        allergies.update_reactions("a1", [hives])

        assert coordinator.submit_sync() == SubmitOutcome.BLOCKED
        assert allergies.selected_allergies[0].has_been_validated is True

    def test_fix_then_resubmit(self, coordinator, diagnoses, flu_concept, confirmed):
        diagnoses.add_diagnosis(flu_concept)
        assert coordinator.submit_sync() == SubmitOutcome.BLOCKED

        diagnoses.update_certainty("d1", confirmed)

        assert diagnoses.selected_diagnoses[0].errors == {}
        assert coordinator.submit_sync() == SubmitOutcome.SUCCEEDED


class TestSuccessfulSubmission:
    """Tests for the success path."""

    def test_end_to_end(
        self, coordinator, filled, diagnoses, allergies, mock_submit_batch,
        mock_notifier, mock_audit_logger,
    ):
        outcome = coordinator.submit_sync()

        assert outcome == SubmitOutcome.SUCCEEDED
        assert coordinator.state == SubmissionState.SUCCEEDED
        assert coordinator.last_record_id == "encounter-123"

        bundle = mock_submit_batch.call_args[0][0]
        resource_types = [e["resource"]["resourceType"] for e in bundle["entry"]]
        assert resource_types == ["Encounter", "Condition", "Condition", "AllergyIntolerance"]
        encounter_url = bundle["entry"][0]["fullUrl"]
        for entry in bundle["entry"][1:]:
            assert entry["resource"]["encounter"] == {"reference": encounter_url}

        assert diagnoses.get_state().is_empty
        assert allergies.get_state().is_empty
        mock_notifier.show_success.assert_called_once_with(
            "Success", "Consultation saved successfully"
        )
        mock_audit_logger.log_event.assert_called_once_with(
            EDIT_ENCOUNTER_DETAILS,
            encounter_uuid="encounter-123",
            module=CLINICAL_MODULE,
        )

    def test_empty_ledgers_submit_encounter_only(self, coordinator, mock_submit_batch):
        assert coordinator.submit_sync() == SubmitOutcome.SUCCEEDED

        bundle = mock_submit_batch.call_args[0][0]
        assert [e["resource"]["resourceType"] for e in bundle["entry"]] == ["Encounter"]

    def test_no_audit_without_record_id(
        self, make_coordinator, filled, mock_audit_logger, mock_notifier
    ):
        coordinator = make_coordinator(MagicMock(return_value=SubmissionResult()))

        assert coordinator.submit_sync() == SubmitOutcome.SUCCEEDED
        mock_notifier.show_success.assert_called_once()
        mock_audit_logger.log_event.assert_not_called()

    def test_extra_stores_reset(self, make_coordinator, mock_submit_batch, filled):
        store = MagicMock()
        coordinator = make_coordinator(mock_submit_batch, extra_stores=[store])

        coordinator.submit_sync()

        store.reset.assert_called_once()


class TestFailedSubmission:
    """Tests for construction and network failures."""

    def test_network_failure_keeps_entries(
        self, make_coordinator, filled, diagnoses, allergies, mock_notifier, mock_audit_logger,
    ):
        submit = MagicMock(side_effect=SubmissionError("FHIR server error: 500", 500))
        coordinator = make_coordinator(submit)

        outcome = coordinator.submit_sync()

        assert outcome == SubmitOutcome.FAILED
        assert coordinator.state == SubmissionState.IDLE
        assert coordinator.has_submitted is False
        mock_notifier.show_error.assert_called_once_with(
            "Error", "Error creating consultation bundle"
        )
        mock_notifier.show_success.assert_not_called()
        mock_audit_logger.log_event.assert_not_called()
        assert [
            (d.id, d.display, d.selected_certainty.code)
            for d in diagnoses.selected_diagnoses
        ] == [("d1", "Flu", "confirmed")]
        assert [
            (c.id, c.display, c.duration_value, c.duration_unit)
            for c in diagnoses.selected_conditions
        ] == [("d2", "Asthma", 3, DurationUnit.MONTHS)]
        assert [a.id for a in allergies.selected_allergies] == ["a1"]

    def test_retry_after_failure(self, make_coordinator, filled):
        submit = MagicMock(
            side_effect=[ConnectionError("down"), SubmissionResult(record_id="enc-2")]
        )
        coordinator = make_coordinator(submit)

        assert coordinator.submit_sync() == SubmitOutcome.FAILED
        assert coordinator.submit_sync() == SubmitOutcome.SUCCEEDED
        assert coordinator.last_record_id == "enc-2"

    def test_construction_failure(
        self, make_coordinator, filled, mock_submit_batch, mock_notifier, diagnoses
    ):
        def broken_transformer(state, context, encounter_ref):
            raise BundleConstructionError("bad data")

        coordinator = make_coordinator(
            mock_submit_batch, allergy_transformer=broken_transformer
        )

        outcome = coordinator.submit_sync()

        assert outcome == SubmitOutcome.CONSTRUCTION_FAILED
        mock_submit_batch.assert_not_called()
        mock_notifier.show_error.assert_called_once_with(
            "Error", "Error creating consultation bundle"
        )
        assert len(diagnoses.selected_diagnoses) == 1

    def test_invalid_bundle_is_construction_failure(self, make_coordinator, mock_submit_batch):
        coordinator = make_coordinator(
            mock_submit_batch,
            diagnosis_transformer=lambda state, context, ref: [
                BundleOperation(payload={"resourceType": "Encounter"})
            ],
        )

        assert coordinator.submit_sync() == SubmitOutcome.CONSTRUCTION_FAILED
        mock_submit_batch.assert_not_called()


class TestConcurrency:
    """Tests for in-flight guard and teardown."""

    def test_second_submit_ignored_while_in_flight(self, make_coordinator, filled):
        entered = threading.Event()
        release = threading.Event()
        calls = []

        def slow_submit(bundle):
            calls.append(bundle)
            entered.set()
            release.wait(5)
            return SubmissionResult(record_id="enc-1")

        coordinator = make_coordinator(slow_submit)

        async def scenario():
            first = asyncio.create_task(coordinator.submit())
            await asyncio.to_thread(entered.wait, 5)
            assert coordinator.is_submitting is True
            assert coordinator.can_submit is False
            second = await coordinator.submit()
            release.set()
            return await first, second

        first, second = asyncio.run(scenario())

        assert first == SubmitOutcome.SUCCEEDED
        assert second == SubmitOutcome.IGNORED
        assert len(calls) == 1
        assert coordinator.is_submitting is False

    def test_late_response_discarded_after_teardown(
        self, make_coordinator, filled, diagnoses, mock_notifier, mock_audit_logger
    ):
        coordinator = None

        def submit_then_close(bundle):
            coordinator.teardown()
            return SubmissionResult(record_id="enc-1")

        coordinator = make_coordinator(submit_then_close)

        outcome = coordinator.submit_sync()

        assert outcome == SubmitOutcome.DISCARDED
        assert coordinator.has_submitted is False
        assert diagnoses.get_state().is_empty
        mock_notifier.show_success.assert_not_called()
        mock_notifier.show_error.assert_not_called()
        mock_audit_logger.log_event.assert_not_called()

    def test_late_failure_discarded_after_teardown(
        self, make_coordinator, filled, mock_notifier
    ):
        coordinator = None

        def fail_after_close(bundle):
            coordinator.teardown()
            raise SubmissionError("gone", 503)

        coordinator = make_coordinator(fail_after_close)

        assert coordinator.submit_sync() == SubmitOutcome.DISCARDED
        mock_notifier.show_error.assert_not_called()

    def test_submit_after_teardown_not_ready(self, coordinator, mock_submit_batch):
        coordinator.teardown()

        assert coordinator.submit_sync() == SubmitOutcome.NOT_READY
        mock_submit_batch.assert_not_called()
