"""
Consultation Pad Configuration

Configuration management for the consultation pad.
"""

from dataclasses import dataclass, field
import os
from pathlib import Path
from typing import Any

import yaml


@dataclass
class FHIRServerConfig:
    """Where and how consultation bundles are submitted."""

    base_url: str = "http://localhost/openmrs/ws/fhir2/R4"
    bundle_path: str = "ConsultationBundle"
    username: str | None = None
    password: str | None = None
    timeout_seconds: float = 30.0
    validate_bundle: bool = True

    @property
    def bundle_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/{self.bundle_path.lstrip('/')}"

    @classmethod
    def from_env(cls) -> "FHIRServerConfig":
        """Create configuration from environment variables."""
        return cls(
            base_url=os.environ.get(
                "CONSULTATION_FHIR_BASE_URL", "http://localhost/openmrs/ws/fhir2/R4"
            ),
            username=os.environ.get("CONSULTATION_FHIR_USERNAME"),
            password=os.environ.get("CONSULTATION_FHIR_PASSWORD"),
            timeout_seconds=float(os.environ.get("CONSULTATION_FHIR_TIMEOUT", "30.0")),
        )


@dataclass
class EncounterDefaults:
    """Defaults applied to new encounters."""

    encounter_type_code: str = "consultation"
    encounter_type_display: str = "Consultation"
    location_uuid: str | None = None


@dataclass
class NotificationConfig:
    """Notification titles and messages."""

    success_title: str = "Success"
    success_message: str = "Consultation saved successfully"
    error_title: str = "Error"
    error_message: str = "Error creating consultation bundle"


@dataclass
class ConsultationConfig:
    """Complete consultation pad configuration."""

    name: str = "consultation-pad"
    version: str = "0.1.0"
    log_level: str = "INFO"

    fhir: FHIRServerConfig = field(default_factory=FHIRServerConfig)
    encounter: EncounterDefaults = field(default_factory=EncounterDefaults)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ConsultationConfig":
        """Create config from dictionary."""
        config = cls()

        if "name" in data:
            config.name = data["name"]
        if "version" in data:
            config.version = data["version"]
        if "log_level" in data:
            config.log_level = data["log_level"]

        if "fhir" in data:
            fhir = data["fhir"]
            config.fhir = FHIRServerConfig(
                base_url=fhir.get("base_url", config.fhir.base_url),
                bundle_path=fhir.get("bundle_path", "ConsultationBundle"),
                username=fhir.get("username"),
                password=fhir.get("password"),
                timeout_seconds=fhir.get("timeout_seconds", 30.0),
                validate_bundle=fhir.get("validate_bundle", True),
            )

        if "encounter" in data:
            enc = data["encounter"]
            config.encounter = EncounterDefaults(
                encounter_type_code=enc.get("encounter_type_code", "consultation"),
                encounter_type_display=enc.get("encounter_type_display", "Consultation"),
                location_uuid=enc.get("location_uuid"),
            )

        if "notifications" in data:
            notes = data["notifications"]
            defaults = NotificationConfig()
            config.notifications = NotificationConfig(
                success_title=notes.get("success_title", defaults.success_title),
                success_message=notes.get("success_message", defaults.success_message),
                error_title=notes.get("error_title", defaults.error_title),
                error_message=notes.get("error_message", defaults.error_message),
            )

        return config

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary. Credentials are not included."""
        return {
            "name": self.name,
            "version": self.version,
            "log_level": self.log_level,
            "fhir": {
                "base_url": self.fhir.base_url,
                "bundle_path": self.fhir.bundle_path,
                "timeout_seconds": self.fhir.timeout_seconds,
                "validate_bundle": self.fhir.validate_bundle,
            },
            "encounter": {
                "encounter_type_code": self.encounter.encounter_type_code,
                "encounter_type_display": self.encounter.encounter_type_display,
                "location_uuid": self.encounter.location_uuid,
            },
            "notifications": {
                "success_title": self.notifications.success_title,
                "success_message": self.notifications.success_message,
                "error_title": self.notifications.error_title,
                "error_message": self.notifications.error_message,
            },
        }


def load_config(config_path: str | Path) -> ConsultationConfig:
    """Load configuration from YAML file."""
    path = Path(config_path)

    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    return ConsultationConfig.from_dict(data)
