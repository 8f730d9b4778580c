"""
Consultation Pad FastAPI Server

REST API hosting one consultation session per open encounter screen.

Usage:
    uvicorn consultation_pad.server:app --reload --port 8000

Endpoints:
    POST   /api/v1/consultations                      - Open a consultation
    GET    /api/v1/consultations/{id}                 - Current ledger state
    DELETE /api/v1/consultations/{id}                 - Close (teardown)
    POST   /api/v1/consultations/{id}/diagnoses       - Add a diagnosis
    POST   /api/v1/consultations/{id}/diagnoses/{d}/promote
    POST   /api/v1/consultations/{id}/allergies       - Add an allergy
    POST   /api/v1/consultations/{id}/submit          - Submit the consultation
    GET    /api/v1/health                             - Health check
"""

from dataclasses import fields, is_dataclass
from datetime import datetime
from enum import Enum
import logging
import time
from typing import Any, Callable, Mapping, Optional
import uuid

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from consultation_pad import __version__
from consultation_pad.config import ConsultationConfig
from consultation_pad.encounter.context import EncounterContext
from consultation_pad.ledgers.entry_types import (
    AllergenConcept,
    AllergenType,
    Coding,
    ConceptSearch,
    ExistingCondition,
)
from consultation_pad.submission.coordinator import SubmitOutcome
from consultation_pad.submission.session import ConsultationSession

logger = logging.getLogger(__name__)


# =============================================================================
# Request Models
# =============================================================================


class CodingModel(BaseModel):
    code: str
    display: Optional[str] = None
    system: Optional[str] = None

    def to_coding(self) -> Coding:
        return Coding(code=self.code, display=self.display, system=self.system)


class EncounterModel(BaseModel):
    patient_uuid: Optional[str] = None
    encounter_type: Optional[CodingModel] = None
    visit_uuid: Optional[str] = None
    location_uuid: Optional[str] = None
    participant_uuids: list[str] = Field(default_factory=list)
    encounter_date: Optional[str] = None


class ConceptModel(BaseModel):
    id: str
    display: str


class AllergenModel(BaseModel):
    id: str
    display: str
    type: AllergenType


class CertaintyModel(BaseModel):
    certainty: Optional[CodingModel] = None


class PromoteModel(BaseModel):
    existing_conditions: list[dict[str, Any]] = Field(default_factory=list)


class DurationModel(BaseModel):
    duration_value: Optional[int] = None
    duration_unit: Optional[str] = None


class SeverityModel(BaseModel):
    severity: Optional[CodingModel] = None


class ReactionsModel(BaseModel):
    reactions: list[CodingModel] = Field(default_factory=list)


class NoteModel(BaseModel):
    note: Optional[str] = None


# =============================================================================
# Serialization
# =============================================================================


def _to_json(value: Any) -> Any:
    if isinstance(value, Coding):
        return value.to_dict()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if is_dataclass(value):
        return {f.name: _to_json(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, Mapping):
        return {k: _to_json(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_json(v) for v in value]
    return value


def session_state(session: ConsultationSession) -> dict[str, Any]:
    state = session.diagnoses.get_state()
    return {
        "selected_diagnoses": _to_json(state.selected_diagnoses),
        "selected_conditions": _to_json(state.selected_conditions),
        "selected_allergies": _to_json(session.allergies.selected_allergies),
        "can_submit": session.coordinator.can_submit,
        "submission_state": session.coordinator.state.value,
        "notifications": _to_json(session.notifier.drain()),
    }


# =============================================================================
# App
# =============================================================================


SessionFactory = Callable[[EncounterContext], ConsultationSession]


def create_app(
    config: ConsultationConfig | None = None,
    session_factory: SessionFactory | None = None,
    session_idle_seconds: float = 3600.0,
) -> FastAPI:
    """Create the API app. ``session_factory`` builds a session per encounter.

    A session is dropped once its consultation is submitted, or after
    ``session_idle_seconds`` without a request.
    """
    config = config or ConsultationConfig()
    if session_factory is None:
        def session_factory(context: EncounterContext) -> ConsultationSession:
            return ConsultationSession.from_config(config, context=context)

    sessions: dict[str, ConsultationSession] = {}
    last_seen: dict[str, float] = {}

    api = FastAPI(
        title="Consultation Pad API",
        description="Record diagnoses, conditions and allergies for an encounter",
        version=__version__,
    )
    api.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    api.state.sessions = sessions

    def drop_session(consultation_id: str) -> None:
        session = sessions.pop(consultation_id, None)
        last_seen.pop(consultation_id, None)
        if session is not None:
            session.teardown()

    def evict_idle() -> None:
        now = time.monotonic()
        for consultation_id, seen in list(last_seen.items()):
            if now - seen >= session_idle_seconds:
                logger.info("Dropping idle consultation %s", consultation_id)
                drop_session(consultation_id)

    def get_session(consultation_id: str) -> ConsultationSession:
        evict_idle()
        session = sessions.get(consultation_id)
        if session is None:
            raise HTTPException(status_code=404, detail="Consultation not found")
        last_seen[consultation_id] = time.monotonic()
        return session

    @api.get("/api/v1/health")
    async def health() -> dict[str, Any]:
        return {"status": "ok", "version": __version__, "open_consultations": len(sessions)}

    @api.post("/api/v1/consultations", status_code=201)
    async def open_consultation(encounter: EncounterModel) -> dict[str, Any]:
        data = encounter.model_dump()
        if encounter.encounter_type is not None:
            data["encounter_type"] = encounter.encounter_type.to_coding()
        context = EncounterContext.from_dict(data)
        evict_idle()
        consultation_id = str(uuid.uuid4())
        sessions[consultation_id] = session_factory(context)
        last_seen[consultation_id] = time.monotonic()
        logger.info("Opened consultation %s", consultation_id)
        return {"id": consultation_id, **session_state(sessions[consultation_id])}

    @api.get("/api/v1/consultations/{consultation_id}")
    async def get_consultation(consultation_id: str) -> dict[str, Any]:
        return session_state(get_session(consultation_id))

    @api.delete("/api/v1/consultations/{consultation_id}")
    async def close_consultation(consultation_id: str) -> dict[str, Any]:
        get_session(consultation_id)
        drop_session(consultation_id)
        return {"closed": consultation_id}

    @api.post("/api/v1/consultations/{consultation_id}/diagnoses")
    async def add_diagnosis(consultation_id: str, concept: ConceptModel) -> dict[str, Any]:
        session = get_session(consultation_id)
        session.diagnoses.add_diagnosis(ConceptSearch(concept.id, concept.display))
        return session_state(session)

    @api.delete("/api/v1/consultations/{consultation_id}/diagnoses/{diagnosis_id}")
    async def remove_diagnosis(consultation_id: str, diagnosis_id: str) -> dict[str, Any]:
        session = get_session(consultation_id)
        session.diagnoses.remove_diagnosis(diagnosis_id)
        return session_state(session)

    @api.put("/api/v1/consultations/{consultation_id}/diagnoses/{diagnosis_id}/certainty")
    async def update_certainty(
        consultation_id: str, diagnosis_id: str, body: CertaintyModel
    ) -> dict[str, Any]:
        session = get_session(consultation_id)
        certainty = body.certainty.to_coding() if body.certainty else None
        session.diagnoses.update_certainty(diagnosis_id, certainty)
        return session_state(session)

    @api.post("/api/v1/consultations/{consultation_id}/diagnoses/{diagnosis_id}/promote")
    async def promote_diagnosis(
        consultation_id: str, diagnosis_id: str, body: Optional[PromoteModel] = None
    ) -> dict[str, Any]:
        session = get_session(consultation_id)
        existing = [
            ExistingCondition.from_fhir(resource)
            for resource in (body.existing_conditions if body else [])
        ]
        promoted = session.diagnoses.mark_as_condition(diagnosis_id, existing)
        return {"promoted": promoted, **session_state(session)}

    @api.delete("/api/v1/consultations/{consultation_id}/conditions/{condition_id}")
    async def remove_condition(consultation_id: str, condition_id: str) -> dict[str, Any]:
        session = get_session(consultation_id)
        session.diagnoses.remove_condition(condition_id)
        return session_state(session)

    @api.put("/api/v1/consultations/{consultation_id}/conditions/{condition_id}/duration")
    async def update_duration(
        consultation_id: str, condition_id: str, body: DurationModel
    ) -> dict[str, Any]:
        session = get_session(consultation_id)
        session.diagnoses.update_condition_duration(
            condition_id, body.duration_value, body.duration_unit
        )
        return session_state(session)

    @api.post("/api/v1/consultations/{consultation_id}/allergies")
    async def add_allergy(consultation_id: str, allergen: AllergenModel) -> dict[str, Any]:
        session = get_session(consultation_id)
        session.allergies.add_allergy(
            AllergenConcept(uuid=allergen.id, display=allergen.display, type=allergen.type)
        )
        return session_state(session)

    @api.delete("/api/v1/consultations/{consultation_id}/allergies/{allergy_id}")
    async def remove_allergy(consultation_id: str, allergy_id: str) -> dict[str, Any]:
        session = get_session(consultation_id)
        session.allergies.remove_allergy(allergy_id)
        return session_state(session)

    @api.put("/api/v1/consultations/{consultation_id}/allergies/{allergy_id}/severity")
    async def update_severity(
        consultation_id: str, allergy_id: str, body: SeverityModel
    ) -> dict[str, Any]:
        session = get_session(consultation_id)
        severity = body.severity.to_coding() if body.severity else None
        session.allergies.update_severity(allergy_id, severity)
        return session_state(session)

    @api.put("/api/v1/consultations/{consultation_id}/allergies/{allergy_id}/reactions")
    async def update_reactions(
        consultation_id: str, allergy_id: str, body: ReactionsModel
    ) -> dict[str, Any]:
        session = get_session(consultation_id)
        session.allergies.update_reactions(
            allergy_id, [r.to_coding() for r in body.reactions]
        )
        return session_state(session)

    @api.put("/api/v1/consultations/{consultation_id}/allergies/{allergy_id}/note")
    async def update_note(
        consultation_id: str, allergy_id: str, body: NoteModel
    ) -> dict[str, Any]:
        session = get_session(consultation_id)
        session.allergies.update_note(allergy_id, body.note)
        return session_state(session)

    @api.post("/api/v1/consultations/{consultation_id}/submit")
    async def submit(consultation_id: str) -> JSONResponse:
        session = get_session(consultation_id)
        outcome = await session.coordinator.submit()

        status_codes = {
            SubmitOutcome.SUCCEEDED: 200,
            SubmitOutcome.BLOCKED: 422,
            SubmitOutcome.NOT_READY: 409,
            SubmitOutcome.ALREADY_SUBMITTED: 409,
            SubmitOutcome.IGNORED: 409,
            SubmitOutcome.CONSTRUCTION_FAILED: 500,
            SubmitOutcome.FAILED: 502,
            SubmitOutcome.DISCARDED: 409,
        }
        content = {
            "outcome": outcome.value,
            "record_id": session.coordinator.last_record_id,
            **session_state(session),
        }
        if outcome == SubmitOutcome.SUCCEEDED:
            logger.info("Consultation %s submitted, closing", consultation_id)
            sessions.pop(consultation_id, None)
            last_seen.pop(consultation_id, None)
        return JSONResponse(status_code=status_codes[outcome], content=content)

    return api


app = create_app()


# =============================================================================
# Main
# =============================================================================

if __name__ == "__main__":
    import os

    import uvicorn

    port = int(os.getenv("PORT", "8000"))
    logger.info("Starting consultation pad API on port %d", port)
    uvicorn.run(app, host="0.0.0.0", port=port)
