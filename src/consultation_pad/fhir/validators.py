"""
FHIR Validators

Structural checks on the assembled consultation bundle before it is sent.
"""

from dataclasses import dataclass, field
from typing import Any

from consultation_pad.fhir.bundle import BundleConstructionError


@dataclass
class ValidationError:
    """A single validation error."""

    path: str
    message: str
    severity: str = "error"  # error, warning


@dataclass
class ValidationResult:
    """Result of bundle validation."""

    is_valid: bool
    errors: list[ValidationError] = field(default_factory=list)
    warnings: list[ValidationError] = field(default_factory=list)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def warning_count(self) -> int:
        return len(self.warnings)

    def summary(self) -> str:
        return "; ".join(f"{e.path}: {e.message}" for e in self.errors)


def validate_bundle(bundle: dict[str, Any]) -> ValidationResult:
    """Validate a consultation transaction Bundle."""
    errors: list[ValidationError] = []
    warnings: list[ValidationError] = []

    if bundle.get("resourceType") != "Bundle":
        errors.append(
            ValidationError(
                path="resourceType",
                message="resourceType must be 'Bundle'",
            )
        )

    if bundle.get("type") != "transaction":
        errors.append(
            ValidationError(
                path="type",
                message="Bundle.type must be 'transaction'",
            )
        )

    entries = bundle.get("entry", [])
    full_urls = set()
    for i, entry in enumerate(entries):
        for issue in _validate_entry(entry, i):
            (warnings if issue.severity == "warning" else errors).append(issue)
        full_url = entry.get("fullUrl")
        if full_url in full_urls:
            errors.append(
                ValidationError(
                    path=f"entry[{i}].fullUrl",
                    message=f"Duplicate fullUrl {full_url}",
                )
            )
        full_urls.add(full_url)

    encounters = [
        e for e in entries
        if e.get("resource", {}).get("resourceType") == "Encounter"
    ]
    if len(encounters) != 1:
        errors.append(
            ValidationError(
                path="entry",
                message=f"Bundle must contain exactly one Encounter, found {len(encounters)}",
            )
        )

    return ValidationResult(
        is_valid=len(errors) == 0,
        errors=errors,
        warnings=warnings,
    )


def ensure_valid_bundle(bundle: dict[str, Any]) -> dict[str, Any]:
    """Return the bundle, or raise BundleConstructionError if it is invalid."""
    result = validate_bundle(bundle)
    if not result.is_valid:
        raise BundleConstructionError(f"Invalid consultation bundle: {result.summary()}")
    return bundle


def _validate_entry(entry: dict[str, Any], index: int) -> list[ValidationError]:
    """Validate a bundle entry."""
    errors: list[ValidationError] = []
    path_prefix = f"entry[{index}]"

    request = entry.get("request") or {}
    if not request.get("method") or not request.get("url"):
        errors.append(
            ValidationError(
                path=f"{path_prefix}.request",
                message="Transaction entries need request.method and request.url",
            )
        )

    resource = entry.get("resource")
    if not resource:
        errors.append(
            ValidationError(
                path=f"{path_prefix}.resource",
                message="Entry must contain a resource",
            )
        )
        return errors

    resource_type = resource.get("resourceType")
    if not resource_type:
        errors.append(
            ValidationError(
                path=f"{path_prefix}.resource.resourceType",
                message="Resource must have resourceType",
            )
        )

    validators = {
        "Encounter": _validate_encounter,
        "Condition": _validate_condition,
        "AllergyIntolerance": _validate_allergy_intolerance,
    }

    if resource_type in validators:
        errors.extend(validators[resource_type](resource, f"{path_prefix}.resource"))

    return errors


def _validate_encounter(resource: dict[str, Any], path: str) -> list[ValidationError]:
    """Validate Encounter resource."""
    errors: list[ValidationError] = []

    for required in ("status", "class", "subject"):
        if required not in resource:
            errors.append(
                ValidationError(
                    path=f"{path}.{required}",
                    message=f"Encounter.{required} is required",
                )
            )

    if not resource.get("participant"):
        errors.append(
            ValidationError(
                path=f"{path}.participant",
                message="Encounter has no participants",
                severity="warning",
            )
        )

    return errors


def _validate_condition(resource: dict[str, Any], path: str) -> list[ValidationError]:
    """Validate Condition resource."""
    errors: list[ValidationError] = []

    for required in ("subject", "code", "category"):
        if required not in resource:
            errors.append(
                ValidationError(
                    path=f"{path}.{required}",
                    message=f"Condition.{required} is required",
                )
            )

    categories = {
        coding.get("code")
        for category in resource.get("category", [])
        for coding in category.get("coding", [])
    }
    if "encounter-diagnosis" in categories and "verificationStatus" not in resource:
        errors.append(
            ValidationError(
                path=f"{path}.verificationStatus",
                message="Encounter diagnoses need a verificationStatus",
            )
        )
    if "problem-list-item" in categories and "onsetDateTime" not in resource:
        errors.append(
            ValidationError(
                path=f"{path}.onsetDateTime",
                message="Problem-list conditions need an onsetDateTime",
            )
        )

    return errors


def _validate_allergy_intolerance(
    resource: dict[str, Any], path: str
) -> list[ValidationError]:
    """Validate AllergyIntolerance resource."""
    errors: list[ValidationError] = []

    if "patient" not in resource:
        errors.append(
            ValidationError(
                path=f"{path}.patient",
                message="AllergyIntolerance.patient is required",
            )
        )

    for i, reaction in enumerate(resource.get("reaction", [])):
        if not reaction.get("manifestation"):
            errors.append(
                ValidationError(
                    path=f"{path}.reaction[{i}].manifestation",
                    message="Reaction needs at least one manifestation",
                )
            )

    return errors
