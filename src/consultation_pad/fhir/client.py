"""
FHIR Consultation Client

Posts consultation bundles to the EMR's FHIR server.
"""

from dataclasses import dataclass, field
import logging
from typing import Any

import requests

from consultation_pad.config import FHIRServerConfig

logger = logging.getLogger(__name__)


class SubmissionError(RuntimeError):
    """The FHIR server did not accept the consultation bundle."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class SubmissionResult:
    """What the server returned for an accepted bundle."""

    record_id: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)


def extract_encounter_id(response_bundle: dict[str, Any]) -> str | None:
    """Find the id of the created Encounter in a transaction-response bundle."""
    for entry in response_bundle.get("entry", []):
        location = entry.get("response", {}).get("location", "")
        if location.startswith("Encounter/"):
            return location.split("/")[1]
        resource = entry.get("resource", {})
        if resource.get("resourceType") == "Encounter" and resource.get("id"):
            return resource["id"]
    return None


class FHIRClient:
    """HTTP client for the consultation bundle endpoint."""

    def __init__(
        self,
        config: FHIRServerConfig | None = None,
        session: requests.Session | None = None,
    ):
        self.config = config or FHIRServerConfig()
        self.session = session or requests.Session()
        if self.config.username and self.config.password:
            self.session.auth = (self.config.username, self.config.password)

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/fhir+json",
            "Accept": "application/fhir+json",
        }

    def post_bundle(self, bundle: dict[str, Any]) -> SubmissionResult:
        """Submit a transaction bundle; raise SubmissionError on rejection."""
        url = self.config.bundle_url
        logger.info("Posting consultation bundle with %d entries to %s",
                    len(bundle.get("entry", [])), url)

        response = self.session.post(
            url,
            headers=self._headers,
            json=bundle,
            timeout=self.config.timeout_seconds,
        )

        if response.status_code not in (200, 201):
            raise SubmissionError(
                f"FHIR server error: {response.status_code} - {response.text[:500]}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError:
            body = {}

        record_id = extract_encounter_id(body) if isinstance(body, dict) else None
        return SubmissionResult(record_id=record_id, raw=body if isinstance(body, dict) else {})

    def health_check(self) -> bool:
        """Check if the FHIR server is reachable."""
        try:
            response = self.session.get(
                f"{self.config.base_url.rstrip('/')}/metadata",
                headers=self._headers,
                timeout=10.0,
            )
            return response.status_code == 200
        except requests.RequestException:
            return False
