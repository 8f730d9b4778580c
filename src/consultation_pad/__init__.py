"""
Consultation Pad

Record diagnoses, conditions and allergies during a patient encounter and
submit them as one FHIR transaction bundle.

Usage:
    from consultation_pad import ConsultationSession, load_config, load_consultation

    session = ConsultationSession.from_config(load_config("consultation.yaml"))
    session.load_entries(load_consultation("visit.yaml"))
    outcome = session.coordinator.submit_sync()

Author: Cleansheet LLC
License: CC BY 4.0
"""

from consultation_pad.config import ConsultationConfig, load_config
from consultation_pad.submission.coordinator import SubmissionCoordinator, SubmitOutcome
from consultation_pad.submission.session import ConsultationSession, load_consultation

__version__ = "0.1.0"

__all__ = [
    "ConsultationConfig",
    "ConsultationSession",
    "SubmissionCoordinator",
    "SubmitOutcome",
    "load_config",
    "load_consultation",
    "__version__",
]
