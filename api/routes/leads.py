"""
Lead API Routes.

Public progress upsert used by the form wizard, plus admin CRUD.
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import Lead
from database.repositories import LeadRepository
from database.session import get_db
from lead_scoring.dispatcher import SideEffectDispatcher
from lead_scoring.form_config import KNOWN_FIELD_COLUMNS
from lead_scoring.progress_store import (
    LeadProgressStore, ProgressPayload, UpsertContext, lead_answers,
)
from lead_scoring.scoring_model import LeadEvaluation, scorable_ids

from ..middleware.auth import require_admin
from ..middleware.metrics import record_lead_completed, record_lead_upsert
from ..services import get_services, load_form_config

logger = logging.getLogger(__name__)

router = APIRouter()


class LeadStatus(str, Enum):
    NOVO = "novo"
    CONTATADO = "contatado"
    QUALIFICADO = "qualificado"
    CONVERTIDO = "convertido"
    DESCARTADO = "descartado"


# ── Request Models ────────────────────────────────────────────────

class ProgressRequest(BaseModel):
    """Autosave body sent by the form wizard after each step."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    session_id: str = Field(..., alias="sessionId", min_length=1, max_length=64)
    question_number: int = Field(default=0, alias="questionNumber", ge=0)
    answers: Dict[str, Optional[str]] = Field(default_factory=dict)
    form_completo: bool = Field(default=False, alias="formCompleto")
    total_time_seconds: Optional[int] = Field(default=None, alias="totalTimeSeconds", ge=0)
    started_at: Optional[datetime] = Field(default=None, alias="startedAt")
    url_origem: Optional[str] = Field(default=None, alias="urlOrigem", max_length=500)
    utm_source: Optional[str] = Field(default=None, alias="utmSource", max_length=255)
    utm_medium: Optional[str] = Field(default=None, alias="utmMedium", max_length=255)
    utm_campaign: Optional[str] = Field(default=None, alias="utmCampaign", max_length=255)

    def collect_answers(self, known_ids: List[str]) -> Dict[str, Optional[str]]:
        """``answers`` plus named answer fields sent at the top level."""
        merged: Dict[str, Optional[str]] = {}
        for key, value in (self.model_extra or {}).items():
            if key not in KNOWN_FIELD_COLUMNS and key not in known_ids:
                continue
            if value is None or isinstance(value, (dict, list)):
                continue
            merged[key] = str(value)
        merged.update(self.answers)
        return merged


class LeadUpdate(BaseModel):
    """Admin lead update request."""
    model_config = ConfigDict(populate_by_name=True)

    status: Optional[LeadStatus] = None
    observacoes: Optional[str] = None
    notificacao_enviada: Optional[bool] = Field(default=None, alias="notificacaoEnviada")


# ── Serialization ─────────────────────────────────────────────────

def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def lead_to_dict(lead: Lead, evaluation: Optional[LeadEvaluation] = None) -> Dict[str, Any]:
    data = {
        "id": lead.id,
        "sessionId": lead.session_id,
        "conversationId": lead.conversation_id,
        "source": lead.source,
        "answers": lead_answers(lead),
        "customAnswers": dict(lead.custom_answers or {}),
        "questionNumber": lead.question_number or 0,
        "formCompleto": bool(lead.form_completo),
        "scoreTotal": lead.score_total or 0,
        "scoreBreakdown": lead.score_breakdown or {},
        "classification": lead.classification,
        "notificacaoEnviada": bool(lead.notificacao_enviada),
        "crmContactRef": lead.crm_contact_ref,
        "crmSyncStatus": lead.crm_sync_status,
        "status": lead.status,
        "observacoes": lead.observacoes,
        "urlOrigem": lead.url_origem,
        "utmSource": lead.utm_source,
        "utmMedium": lead.utm_medium,
        "utmCampaign": lead.utm_campaign,
        "startedAt": _iso(lead.started_at),
        "tempoTotalSegundos": lead.tempo_total_segundos,
        "createdAt": _iso(lead.created_at),
        "updatedAt": _iso(lead.updated_at),
    }
    if evaluation is not None:
        pending = evaluation.next_question
        data["nextQuestion"] = pending.to_dict() if pending else None
        data["answeredQuestions"] = evaluation.answered_questions
        data["totalQuestions"] = evaluation.total_questions
    return data


# ── Public Endpoints ──────────────────────────────────────────────

@router.post("/form-leads/progress")
async def upsert_progress(
    body: ProgressRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """
    Save wizard progress for a session.

    Idempotent per ``sessionId``: answers are merged, the score recomputed,
    and side effects (staff SMS, CRM sync) fire at most once.
    """
    config = await load_form_config(db)
    payload = ProgressPayload(
        session_id=body.session_id,
        answers=body.collect_answers(scorable_ids(config)),
        question_number=body.question_number,
        form_completo=body.form_completo,
    )
    context = UpsertContext(
        source="form",
        url_origem=body.url_origem or request.headers.get("referer"),
        utm_source=body.utm_source,
        utm_medium=body.utm_medium,
        utm_campaign=body.utm_campaign,
        started_at=_naive_utc(body.started_at),
        total_time_seconds=body.total_time_seconds,
    )

    store = LeadProgressStore(db)
    result = await store.upsert_progress(payload, context, config)

    dispatcher = get_services().dispatcher or SideEffectDispatcher()
    await dispatcher.after_upsert(result, config, store.leads)

    record_lead_upsert("form", result.created)
    if result.became_complete:
        record_lead_completed("form", result.lead.classification, result.lead.score_total)
        logger.info(
            f"Form lead {result.lead.id} completed: "
            f"{result.lead.classification} ({result.lead.score_total}/{config.max_score})"
        )

    await db.flush()
    return lead_to_dict(result.lead, result.evaluation)


@router.get("/form-leads/session/{session_id}")
async def get_lead_by_session(session_id: str, db: AsyncSession = Depends(get_db)):
    """Resume support: the lead for a wizard session."""
    store = LeadProgressStore(db)
    lead = await store.get_by_session(session_id)
    if not lead:
        raise HTTPException(status_code=404, detail="Lead not found")
    config = await load_form_config(db)
    return lead_to_dict(lead, await store.evaluate_lead(lead, config))


# ── Admin Endpoints ───────────────────────────────────────────────

@router.get("/form-leads", dependencies=[Depends(require_admin)])
async def list_leads(
    status: Optional[LeadStatus] = None,
    classification: Optional[str] = Query(None, pattern="^(HOT|WARM|COLD)$"),
    form_completo: Optional[bool] = None,
    search: Optional[str] = Query(None, max_length=100),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    """List leads with optional filters."""
    repo = LeadRepository(db)
    leads = await repo.list(
        status=status.value if status else None,
        classification=classification,
        form_completo=form_completo,
        search=search,
        limit=limit,
        offset=offset,
    )
    return {
        "leads": [lead_to_dict(lead) for lead in leads],
        "total": await repo.count(),
        "limit": limit,
        "offset": offset,
    }


@router.get("/form-leads/{lead_id}", dependencies=[Depends(require_admin)])
async def get_lead(lead_id: str, db: AsyncSession = Depends(get_db)):
    """Get a lead by ID, evaluated against the current config."""
    lead = await LeadRepository(db).get_by_id(lead_id)
    if not lead:
        raise HTTPException(status_code=404, detail="Lead not found")
    config = await load_form_config(db)
    return lead_to_dict(lead, await LeadProgressStore(db).evaluate_lead(lead, config))


@router.patch("/form-leads/{lead_id}", dependencies=[Depends(require_admin)])
async def update_lead(lead_id: str, update: LeadUpdate, db: AsyncSession = Depends(get_db)):
    """Update admin workflow fields of a lead."""
    repo = LeadRepository(db)
    lead = await repo.get_by_id(lead_id)
    if not lead:
        raise HTTPException(status_code=404, detail="Lead not found")

    if update.status is not None:
        lead.status = update.status.value
    if update.observacoes is not None:
        lead.observacoes = update.observacoes
    if update.notificacao_enviada is not None:
        lead.notificacao_enviada = update.notificacao_enviada

    await db.flush()
    await repo.add_event(lead.id, "updated", update.model_dump(exclude_none=True, mode="json"))
    logger.info(f"Lead {lead_id} updated by admin")
    return lead_to_dict(lead)


@router.delete("/form-leads/{lead_id}", dependencies=[Depends(require_admin)])
async def delete_lead(lead_id: str, db: AsyncSession = Depends(get_db)):
    """Delete a lead."""
    if not await LeadRepository(db).delete(lead_id):
        raise HTTPException(status_code=404, detail="Lead not found")
    logger.info(f"Lead {lead_id} deleted")
    return {"message": "Lead deleted", "id": lead_id}
