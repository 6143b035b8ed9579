"""
Lead Progress Store.

Single merge/recompute path shared by the form wizard endpoint and the chat
tools. A lead is keyed by ``session_id`` (form) or ``conversation_id`` (chat);
every mutation merges answers, recomputes the score against the current form
config and persists the derived values next to the answers.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import Lead
from database.repositories import LeadRepository

from .form_config import (
    FormConfig,
    KNOWN_FIELD_COLUMNS,
    EMAIL_FIELD_ID,
    NAME_FIELD_ID,
    PHONE_FIELD_ID,
    answer_value,
    contact_field_ids,
)
from .scoring_model import LeadEvaluation, evaluate

logger = logging.getLogger(__name__)


@dataclass
class ProgressPayload:
    """One autosave from the form wizard."""
    session_id: str
    answers: Dict[str, Any] = field(default_factory=dict)
    question_number: int = 0
    form_completo: bool = False


@dataclass
class UpsertContext:
    """Attribution captured when a lead is first created."""
    source: str = "form"
    url_origem: Optional[str] = None
    utm_source: Optional[str] = None
    utm_medium: Optional[str] = None
    utm_campaign: Optional[str] = None
    started_at: Optional[datetime] = None
    total_time_seconds: Optional[int] = None


@dataclass
class UpsertResult:
    lead: Lead
    created: bool
    became_complete: bool
    phone_acquired: bool
    evaluation: LeadEvaluation


def lead_answers(lead: Lead) -> Dict[str, str]:
    """Flatten named columns and custom answers back into an answer map."""
    answers: Dict[str, str] = {}
    for question_id, column in KNOWN_FIELD_COLUMNS.items():
        value = getattr(lead, column, None)
        if value is not None:
            answers[question_id] = value
    for key, value in (lead.custom_answers or {}).items():
        if value is not None:
            answers[key] = str(value)
    return answers


@dataclass
class LeadContact:
    name: str = ""
    email: str = ""
    phone: str = ""


def lead_contact(lead: Lead, config: Optional[FormConfig] = None) -> LeadContact:
    """
    Read the lead's name, email and phone through the config's contact questions.

    Without a config, or when a configured answer is empty, the named
    ``nome``/``email``/``telefone`` columns are used.
    """
    answers = lead_answers(lead)
    ids = contact_field_ids(config) if config is not None else {}

    def pick(role: str, fallback_id: str) -> str:
        question_id = ids.get(role)
        value = answer_value(answers, question_id) if question_id else ""
        return value or answer_value(answers, fallback_id)

    return LeadContact(
        name=pick("name", NAME_FIELD_ID),
        email=pick("email", EMAIL_FIELD_ID),
        phone=pick("phone", PHONE_FIELD_ID),
    )


def apply_answers(lead: Lead, answers: Mapping[str, Any]) -> int:
    """
    Merge answers onto the lead.

    Non-None values overwrite; keys absent from ``answers`` are untouched.
    Returns the number of keys whose stored value changed.
    """
    changed = 0
    custom = dict(lead.custom_answers or {})
    for key, raw in answers.items():
        if raw is None:
            continue
        value = str(raw).strip()
        column = KNOWN_FIELD_COLUMNS.get(key)
        if column is not None:
            if getattr(lead, column) != value:
                setattr(lead, column, value)
                changed += 1
        elif custom.get(key) != value:
            custom[key] = value
            changed += 1
    # Reassign so the JSON column is flagged dirty.
    lead.custom_answers = custom
    return changed


class LeadProgressStore:
    """Idempotent upsert and lookup of leads for both front-ends."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.leads = LeadRepository(session)

    async def get_by_session(self, session_id: str) -> Optional[Lead]:
        return await self.leads.get_by_session(session_id)

    async def get_by_conversation(self, conversation_id: str) -> Optional[Lead]:
        return await self.leads.get_by_conversation(conversation_id)

    async def _create_or_fetch(
        self,
        lookup: Callable[[], Awaitable[Optional[Lead]]],
        **fields,
    ) -> Tuple[Lead, bool]:
        """
        Insert a new lead; on a uniqueness violation return the winner's row.

        The whole session is rolled back on conflict, so callers must have
        committed any unrelated pending work beforehand.
        """
        try:
            lead = await self.leads.create(**fields)
            return lead, True
        except IntegrityError:
            await self.session.rollback()
            lead = await lookup()
            if lead is None:
                raise
            logger.info(f"Lead insert lost a race, reusing lead {lead.id}")
            return lead, False

    def _recompute(self, lead: Lead, config: FormConfig) -> Tuple[LeadEvaluation, bool]:
        """Recompute derived values; returns (evaluation, became_complete)."""
        evaluation = evaluate(lead_answers(lead), config)
        lead.score_total = evaluation.total
        lead.score_breakdown = evaluation.breakdown.to_dict()
        lead.classification = evaluation.classification.value

        was_complete = bool(lead.form_completo)
        lead.form_completo = was_complete or evaluation.is_complete
        return evaluation, lead.form_completo and not was_complete

    @staticmethod
    def _phone_acquired(lead: Lead, config: FormConfig) -> bool:
        return bool(lead_contact(lead, config).phone) and not lead.notificacao_enviada

    async def upsert_progress(
        self,
        payload: ProgressPayload,
        context: Optional[UpsertContext],
        config: FormConfig,
    ) -> UpsertResult:
        """
        Create or update the lead for ``payload.session_id``.

        Repeating the same payload yields the same stored state.
        """
        context = context or UpsertContext()
        lead = await self.leads.get_by_session(payload.session_id)
        created = False
        if lead is None:
            lead, created = await self._create_or_fetch(
                lambda: self.leads.get_by_session(payload.session_id),
                session_id=payload.session_id,
                source=context.source,
                url_origem=context.url_origem,
                utm_source=context.utm_source,
                utm_medium=context.utm_medium,
                utm_campaign=context.utm_campaign,
                started_at=context.started_at or datetime.utcnow(),
                custom_answers={},
                question_number=0,
                form_completo=False,
                notificacao_enviada=False,
            )

        apply_answers(lead, payload.answers)
        lead.question_number = max(lead.question_number or 0, payload.question_number or 0)
        if context.total_time_seconds is not None:
            lead.tempo_total_segundos = context.total_time_seconds

        evaluation, became_complete = self._recompute(lead, config)
        if payload.form_completo and not evaluation.is_complete:
            logger.info(
                f"Ignoring formCompleto for session {payload.session_id}: "
                f"next question is {evaluation.next_question.id}"
            )

        await self.session.flush()
        await self.leads.add_event(
            lead.id,
            "created" if created else "updated",
            {"questionNumber": lead.question_number, "scoreTotal": lead.score_total},
        )

        return UpsertResult(
            lead=lead,
            created=created,
            became_complete=became_complete,
            phone_acquired=self._phone_acquired(lead, config),
            evaluation=evaluation,
        )

    async def ensure_chat_lead(self, conversation_id: str, config: FormConfig) -> Tuple[Lead, bool]:
        """Return the chat lead for a conversation, creating it on first use."""
        lead = await self.leads.get_by_conversation(conversation_id)
        if lead is not None:
            return lead, False

        lead, created = await self._create_or_fetch(
            lambda: self.leads.get_by_conversation(conversation_id),
            session_id=str(uuid.uuid4()),
            conversation_id=conversation_id,
            source="chat",
            started_at=datetime.utcnow(),
            custom_answers={},
            question_number=0,
            form_completo=False,
            notificacao_enviada=False,
        )
        if created:
            self._recompute(lead, config)
            await self.session.flush()
            await self.leads.add_event(lead.id, "created", {"source": "chat"})
            logger.info(f"Created chat lead {lead.id} for conversation {conversation_id}")
        return lead, created

    async def upsert_chat_answers(
        self,
        conversation_id: str,
        answers: Mapping[str, Any],
        config: FormConfig,
    ) -> UpsertResult:
        """Merge answers into the conversation's lead with the form-path semantics."""
        lead, created = await self.ensure_chat_lead(conversation_id, config)
        apply_answers(lead, answers)

        evaluation, became_complete = self._recompute(lead, config)
        lead.question_number = max(lead.question_number or 0, evaluation.answered_questions)

        await self.session.flush()
        await self.leads.add_event(lead.id, "updated", {"answers": sorted(answers.keys())})

        return UpsertResult(
            lead=lead,
            created=created,
            became_complete=became_complete,
            phone_acquired=self._phone_acquired(lead, config),
            evaluation=evaluation,
        )

    async def link_conversation(self, lead: Lead, conversation_id: str) -> Lead:
        """
        Attach a conversation to an existing lead.

        Raises:
            ValueError: if the conversation already belongs to another lead
        """
        existing = await self.leads.get_by_conversation(conversation_id)
        if existing is not None and existing.id != lead.id:
            raise ValueError(f"Conversation {conversation_id} is already linked to lead {existing.id}")
        lead.conversation_id = conversation_id
        await self.session.flush()
        return lead

    async def mark_complete(self, lead: Lead, config: FormConfig) -> Tuple[LeadEvaluation, bool]:
        """
        Mark a lead complete when its answers allow it.

        Returns (evaluation, became_complete). ``form_completo`` is only set
        when no required question is pending.
        """
        evaluation, became_complete = self._recompute(lead, config)
        await self.session.flush()
        if became_complete:
            await self.leads.add_event(lead.id, "completed", {"scoreTotal": lead.score_total})
        return evaluation, became_complete

    async def evaluate_lead(self, lead: Lead, config: FormConfig) -> LeadEvaluation:
        """Read-time evaluation of a stored lead under the current config."""
        return evaluate(lead_answers(lead), config)
