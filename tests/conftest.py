"""
Pytest Configuration and Shared Fixtures

Copyright (c) 2024 Cleansheet LLC
License: CC BY 4.0
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest
import yaml

from consultation_pad.encounter.context import EncounterContext
from consultation_pad.fhir.client import SubmissionResult
from consultation_pad.ledgers.entry_types import (
    AllergenConcept,
    AllergenType,
    Coding,
    ConceptSearch,
)


# =============================================================================
# CONCEPT FIXTURES
# =============================================================================


@pytest.fixture
def flu_concept() -> ConceptSearch:
    return ConceptSearch(concept_uuid="d1", concept_name="Flu")


@pytest.fixture
def asthma_concept() -> ConceptSearch:
    return ConceptSearch(concept_uuid="d2", concept_name="Asthma")


@pytest.fixture
def penicillin() -> AllergenConcept:
    return AllergenConcept(uuid="a1", display="Penicillin", type=AllergenType.MEDICATION)


@pytest.fixture
def peanuts() -> AllergenConcept:
    return AllergenConcept(uuid="a2", display="Peanuts", type=AllergenType.FOOD)


@pytest.fixture
def confirmed() -> Coding:
    return Coding(code="confirmed", display="Confirmed")


@pytest.fixture
def severe() -> Coding:
    return Coding(code="severe", display="Severe")


@pytest.fixture
def hives() -> Coding:
    return Coding(code="hives-uuid", display="Hives")


# =============================================================================
# ENCOUNTER FIXTURES
# =============================================================================


@pytest.fixture
def encounter_date() -> datetime:
    return datetime(2025, 3, 31, 10, 30, tzinfo=timezone.utc)


@pytest.fixture
def encounter_context(encounter_date: datetime) -> EncounterContext:
    """A context with every field the bundle needs."""
    return EncounterContext(
        patient_uuid="patient-1",
        encounter_type=Coding(code="consultation-type-uuid", display="Consultation"),
        visit_uuid="visit-1",
        location_uuid="location-1",
        participant_uuids=("practitioner-1",),
        encounter_date=encounter_date,
    )


@pytest.fixture
def encounter_ref() -> dict[str, str]:
    return {"reference": "urn:uuid:encounter-1"}


# =============================================================================
# SUBMISSION FIXTURES
# =============================================================================


@pytest.fixture
def mock_submit_batch() -> MagicMock:
    """Submit-batch callable that accepts everything."""
    submit = MagicMock()
    submit.return_value = SubmissionResult(record_id="encounter-123")
    return submit


@pytest.fixture
def mock_notifier() -> MagicMock:
    return MagicMock()


@pytest.fixture
def mock_audit_logger() -> MagicMock:
    return MagicMock()


# =============================================================================
# FILE FIXTURES
# =============================================================================


@pytest.fixture
def sample_config_dict() -> dict[str, Any]:
    return {
        "name": "test-consultation",
        "version": "1.0.0",
        "log_level": "DEBUG",
        "fhir": {
            "base_url": "http://emr.test/openmrs/ws/fhir2/R4",
            "timeout_seconds": 5.0,
            "validate_bundle": True,
        },
        "encounter": {
            "encounter_type_code": "consultation-type-uuid",
            "location_uuid": "location-1",
        },
    }


@pytest.fixture
def temp_config_file(tmp_path: Path, sample_config_dict: dict) -> Path:
    config_file = tmp_path / "config.yaml"
    with open(config_file, "w") as f:
        yaml.dump(sample_config_dict, f)
    return config_file


@pytest.fixture
def sample_consultation_dict() -> dict[str, Any]:
    """A complete, valid consultation document."""
    return {
        "encounter": {
            "patient_uuid": "patient-1",
            "encounter_type": {"code": "consultation-type-uuid", "display": "Consultation"},
            "visit_uuid": "visit-1",
            "location_uuid": "location-1",
            "participant_uuids": ["practitioner-1"],
            "encounter_date": "2025-03-31T10:30:00+00:00",
        },
        "diagnoses": [
            {"id": "d1", "display": "Flu", "certainty": {"code": "confirmed"}},
            {
                "id": "d2",
                "display": "Asthma",
                "condition": {"duration_value": 2, "duration_unit": "years"},
            },
        ],
        "allergies": [
            {
                "id": "a1",
                "display": "Penicillin",
                "type": "medication",
                "severity": {"code": "severe", "display": "Severe"},
                "reactions": [{"code": "hives-uuid", "display": "Hives"}],
                "note": "Since childhood",
            }
        ],
        "service_requests": [
            {"id": "sr1", "display": "CBC", "category": "Laboratory"},
        ],
    }


@pytest.fixture
def temp_consultation_file(tmp_path: Path, sample_consultation_dict: dict) -> Path:
    path = tmp_path / "consultation.yaml"
    with open(path, "w") as f:
        yaml.dump(sample_consultation_dict, f)
    return path
