#!/usr/bin/env python3
"""
Basic Usage Example

Fills the consultation pad from a document and prints the transaction bundle
that would be submitted.

Usage:
    python examples/basic_usage.py

Set CONSULTATION_FHIR_BASE_URL (and credentials) and pass --submit to post it.
"""

from pathlib import Path
import sys

from consultation_pad import ConsultationSession, SubmitOutcome, load_config, load_consultation
from consultation_pad.config import FHIRServerConfig
from consultation_pad.fhir.bundle import to_json
from consultation_pad.fhir.client import FHIRClient

HERE = Path(__file__).parent


def main():
    config = load_config(HERE / "config.yaml")
    if "--submit" in sys.argv:
        config.fhir = FHIRServerConfig.from_env()

    session = ConsultationSession.from_config(config, client=FHIRClient(config.fhir))
    session.load_entries(load_consultation(HERE / "consultation.yaml"))

    # Validate both ledgers so every missing field is reported
    diagnoses_valid = session.diagnoses.validate()
    allergies_valid = session.allergies.validate_all_allergies()
    if not (diagnoses_valid and allergies_valid):
        print("Consultation has missing fields")
        return

    bundle = session.coordinator.build_bundle()
    print(to_json(bundle, indent=2))
    print(f"\n--- Bundle has {len(bundle['entry'])} entries ---")

    if "--submit" in sys.argv:
        outcome = session.coordinator.submit_sync()
        print(f"Submission: {outcome.value}")
        if outcome == SubmitOutcome.SUCCEEDED:
            print(f"Encounter: {session.coordinator.last_record_id}")


if __name__ == "__main__":
    main()
