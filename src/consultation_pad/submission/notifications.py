"""
Notifications and Audit

Collaborators the coordinator reports outcomes to.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
from typing import Any, Protocol

logger = logging.getLogger(__name__)

EDIT_ENCOUNTER_DETAILS = "EDIT_ENCOUNTER_DETAILS"
CLINICAL_MODULE = "clinical"


class Notifier(Protocol):
    def show_success(self, title: str, message: str) -> None: ...

    def show_error(self, title: str, message: str) -> None: ...


class AuditLogger(Protocol):
    def log_event(self, event_type: str, **details: Any) -> None: ...


@dataclass
class Notification:
    """A notification shown to the user."""

    kind: str  # success, error
    title: str
    message: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class NotificationLog:
    """Keeps notifications for the UI to pick up and logs them."""

    def __init__(self) -> None:
        self.notifications: list[Notification] = []

    def show_success(self, title: str, message: str) -> None:
        logger.info("%s: %s", title, message)
        self.notifications.append(Notification("success", title, message))

    def show_error(self, title: str, message: str) -> None:
        logger.error("%s: %s", title, message)
        self.notifications.append(Notification("error", title, message))

    def drain(self) -> list[Notification]:
        """Return pending notifications and clear them."""
        pending, self.notifications = self.notifications, []
        return pending


@dataclass
class AuditEvent:
    event_type: str
    details: dict[str, Any]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class InMemoryAuditLogger:
    """Records audit events locally and writes them to the log."""

    def __init__(self) -> None:
        self.events: list[AuditEvent] = []

    def log_event(self, event_type: str, **details: Any) -> None:
        logger.info("Audit %s %s", event_type, details)
        self.events.append(AuditEvent(event_type=event_type, details=details))
