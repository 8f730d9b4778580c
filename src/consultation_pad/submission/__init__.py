"""
Submission Module

Validate-assemble-submit orchestration for a consultation.
"""

from consultation_pad.submission.coordinator import (
    SubmissionCoordinator,
    SubmissionState,
    SubmitOutcome,
)
from consultation_pad.submission.notifications import (
    InMemoryAuditLogger,
    NotificationLog,
)
from consultation_pad.submission.session import ConsultationSession, load_consultation

__all__ = [
    "ConsultationSession",
    "InMemoryAuditLogger",
    "NotificationLog",
    "SubmissionCoordinator",
    "SubmissionState",
    "SubmitOutcome",
    "load_consultation",
]
