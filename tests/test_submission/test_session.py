"""
Tests for the consultation session.

Copyright (c) 2024 Cleansheet LLC
License: CC BY 4.0
"""

import json
from unittest.mock import MagicMock

import pytest

from consultation_pad.config import ConsultationConfig
from consultation_pad.fhir.client import SubmissionResult
from consultation_pad.ledgers.entry_types import AllergenType, DurationUnit
from consultation_pad.submission.coordinator import SubmitOutcome
from consultation_pad.submission.notifications import EDIT_ENCOUNTER_DETAILS
from consultation_pad.submission.session import ConsultationSession, load_consultation


class TestLoadEntries:
    """Tests for replaying a consultation document."""

    def test_load_full_document(self, mock_submit_batch, sample_consultation_dict):
        session = ConsultationSession(mock_submit_batch)

        session.load_entries(sample_consultation_dict)

        assert session.encounter.is_ready is True
        [diagnosis] = session.diagnoses.selected_diagnoses
        assert diagnosis.id == "d1"
        assert diagnosis.selected_certainty.code == "confirmed"

        [condition] = session.diagnoses.selected_conditions
        assert condition.id == "d2"
        assert condition.duration_value == 2
        assert condition.duration_unit == DurationUnit.YEARS

        [allergy] = session.allergies.selected_allergies
        assert allergy.type == AllergenType.MEDICATION
        assert allergy.selected_severity.code == "severe"
        assert [r.code for r in allergy.selected_reactions] == ["hives-uuid"]
        assert allergy.note == "Since childhood"

        assert [e.id for e in session.service_requests.get_state().in_category("Laboratory")] == [
            "sr1"
        ]

    def test_document_order_kept(self, mock_submit_batch):
        session = ConsultationSession(mock_submit_batch)

        session.load_entries(
            {
                "diagnoses": [
                    {"id": "d1", "display": "Flu"},
                    {"id": "d3", "display": "Migraine"},
                ]
            }
        )

        assert [d.id for d in session.diagnoses.selected_diagnoses] == ["d1", "d3"]

    def test_encounter_defaults_fill_gaps(self, mock_submit_batch, sample_consultation_dict):
        config = ConsultationConfig.from_dict(
            {"encounter": {"encounter_type_code": "default-type", "location_uuid": "ward-2"}}
        )
        encounter = sample_consultation_dict["encounter"]
        del encounter["encounter_type"]
        del encounter["location_uuid"]
        session = ConsultationSession(mock_submit_batch, config=config)

        session.load_entries(sample_consultation_dict)

        context = session.encounter.context
        assert context.encounter_type.code == "default-type"
        assert context.location_uuid == "ward-2"
        assert context.is_ready is True

    def test_invalid_items_skipped(self, mock_submit_batch):
        session = ConsultationSession(mock_submit_batch)

        session.load_entries(
            {
                "diagnoses": [
                    {
                        "display": "No id",
                        "certainty": "confirmed",
                        "condition": {"duration_value": 2, "duration_unit": "years"},
                    },
                    {"id": "d3", "display": "Cough", "condition": True},
                ],
                "allergies": [
                    {"id": "a9"},
                    {"display": "No id", "type": "food", "severity": "mild", "reactions": ["r"]},
                    {"id": "a8", "display": "Dust", "type": "drug", "severity": "mild"},
                ],
            }
        )

        [diagnosis] = session.diagnoses.selected_diagnoses
        assert diagnosis.id == "d3"
        assert session.diagnoses.selected_conditions == ()
        assert session.allergies.get_state().is_empty


class TestSessionSubmit:
    """Tests for submitting through a session."""

    def test_submit_resets_everything(self, mock_submit_batch, sample_consultation_dict):
        session = ConsultationSession(mock_submit_batch)
        session.load_entries(sample_consultation_dict)

        outcome = session.coordinator.submit_sync()

        assert outcome == SubmitOutcome.SUCCEEDED
        assert session.diagnoses.get_state().is_empty
        assert session.allergies.get_state().is_empty
        assert session.service_requests.get_state().is_empty

        [note] = session.notifier.drain()
        assert note.kind == "success"
        assert session.notifier.drain() == []
        assert session.audit_logger.events[0].event_type == EDIT_ENCOUNTER_DETAILS
        assert session.audit_logger.events[0].details["encounter_uuid"] == "encounter-123"

    def test_configured_messages_used(self, sample_consultation_dict):
        config = ConsultationConfig.from_dict(
            {"notifications": {"error_title": "Oops", "error_message": "Could not save"}}
        )
        session = ConsultationSession(
            MagicMock(side_effect=RuntimeError("down")), config=config
        )
        session.load_entries(sample_consultation_dict)

        assert session.coordinator.submit_sync() == SubmitOutcome.FAILED

        [note] = session.notifier.drain()
        assert (note.kind, note.title, note.message) == ("error", "Oops", "Could not save")

    def test_from_config_uses_client(self, sample_consultation_dict):
        client = MagicMock()
        client.post_bundle.return_value = SubmissionResult(record_id="enc-7")
        session = ConsultationSession.from_config(ConsultationConfig(), client=client)
        session.load_entries(sample_consultation_dict)

        assert session.coordinator.submit_sync() == SubmitOutcome.SUCCEEDED
        client.post_bundle.assert_called_once()
        assert session.coordinator.last_record_id == "enc-7"

    def test_teardown(self, mock_submit_batch, sample_consultation_dict):
        session = ConsultationSession(mock_submit_batch)
        session.load_entries(sample_consultation_dict)

        session.teardown()

        assert session.diagnoses.get_state().is_empty
        assert session.service_requests.get_state().is_empty
        assert session.coordinator.submit_sync() == SubmitOutcome.NOT_READY


class TestLoadConsultation:
    """Tests for reading consultation documents."""

    def test_load_yaml(self, temp_consultation_file, sample_consultation_dict):
        assert load_consultation(temp_consultation_file) == sample_consultation_dict

    def test_load_json(self, tmp_path, sample_consultation_dict):
        path = tmp_path / "consultation.json"
        path.write_text(json.dumps(sample_consultation_dict))

        assert load_consultation(path) == sample_consultation_dict

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_consultation(tmp_path / "nope.yaml")
