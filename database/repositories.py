"""
Repository classes for the lead qualification data access layer.

Each repository encapsulates CRUD operations for a specific model.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select, func, or_, update, delete
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    Conversation, Message, Lead, LeadEvent,
    FormConfigRecord, Faq, KnowledgeArticle,
)

logger = logging.getLogger(__name__)


class FormConfigRepository:
    """Data access for the single-row form configuration."""

    ROW_ID = 1

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self) -> Optional[Dict[str, Any]]:
        record = await self.session.get(FormConfigRecord, self.ROW_ID)
        return record.config_json if record else None

    async def save(self, config_json: Dict[str, Any]) -> FormConfigRecord:
        record = await self.session.get(FormConfigRecord, self.ROW_ID)
        if record is None:
            record = FormConfigRecord(id=self.ROW_ID, config_json=config_json)
            self.session.add(record)
        else:
            record.config_json = config_json
            record.updated_at = datetime.utcnow()
        await self.session.flush()
        return record


class LeadRepository:
    """Data access for leads and lead events."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **kwargs) -> Lead:
        """
        Insert a lead and flush.

        Raises:
            sqlalchemy.exc.IntegrityError: on session/conversation id collision
        """
        lead = Lead(**kwargs)
        self.session.add(lead)
        await self.session.flush()
        return lead

    async def add_event(self, lead_id: str, event_type: str, details: Optional[Dict] = None) -> LeadEvent:
        event = LeadEvent(lead_id=lead_id, event_type=event_type, details_json=details or {})
        self.session.add(event)
        await self.session.flush()
        return event

    async def get_by_id(self, lead_id: str) -> Optional[Lead]:
        result = await self.session.execute(
            select(Lead).where(Lead.id == lead_id)
        )
        return result.scalar_one_or_none()

    async def get_by_session(self, session_id: str) -> Optional[Lead]:
        result = await self.session.execute(
            select(Lead).where(Lead.session_id == session_id)
        )
        return result.scalar_one_or_none()

    async def get_by_conversation(self, conversation_id: str) -> Optional[Lead]:
        result = await self.session.execute(
            select(Lead).where(Lead.conversation_id == conversation_id)
        )
        return result.scalar_one_or_none()

    async def list(
        self,
        status: Optional[str] = None,
        classification: Optional[str] = None,
        form_completo: Optional[bool] = None,
        search: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Lead]:
        q = select(Lead).order_by(Lead.created_at.desc()).offset(offset).limit(limit)
        if status:
            q = q.where(Lead.status == status)
        if classification:
            q = q.where(Lead.classification == classification)
        if form_completo is not None:
            q = q.where(Lead.form_completo == form_completo)
        if search:
            pattern = f"%{search}%"
            q = q.where(or_(
                Lead.nome.ilike(pattern),
                Lead.email.ilike(pattern),
                Lead.telefone.ilike(pattern),
            ))
        result = await self.session.execute(q)
        return list(result.scalars().all())

    async def count(self) -> int:
        result = await self.session.execute(select(func.count(Lead.id)))
        return result.scalar() or 0

    async def delete(self, lead_id: str) -> bool:
        lead = await self.get_by_id(lead_id)
        if not lead:
            return False
        await self.session.delete(lead)
        await self.session.flush()
        return True


class ConversationRepository:
    """Data access for conversations and messages."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, conversation_id: str, **kwargs) -> Conversation:
        conv = Conversation(id=conversation_id, message_count=0, **kwargs)
        self.session.add(conv)
        await self.session.flush()
        return conv

    async def get_by_id(self, conversation_id: str) -> Optional[Conversation]:
        result = await self.session.execute(
            select(Conversation).where(Conversation.id == conversation_id)
        )
        return result.scalar_one_or_none()

    async def add_message(self, conversation_id: str, role: str, content: str) -> Message:
        conv = await self.get_by_id(conversation_id)
        if conv is None:
            raise LookupError(f"Conversation {conversation_id} not found")
        position = conv.message_count or 0
        msg = Message(
            conversation_id=conversation_id,
            position=position,
            role=role,
            content=content,
        )
        self.session.add(msg)
        conv.message_count = position + 1
        conv.last_active_at = datetime.utcnow()
        await self.session.flush()
        return msg

    async def get_messages(
        self, conversation_id: str, limit: int = 50
    ) -> List[Message]:
        """Most recent ``limit`` messages, oldest first."""
        result = await self.session.execute(
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.position.desc())
            .limit(limit)
        )
        return list(reversed(result.scalars().all()))

    async def get_recent(self, status: Optional[str] = None, limit: int = 20, offset: int = 0) -> List[Conversation]:
        q = select(Conversation).order_by(Conversation.last_active_at.desc()).offset(offset).limit(limit)
        if status:
            q = q.where(Conversation.status == status)
        result = await self.session.execute(q)
        return list(result.scalars().all())

    async def set_status(self, conversation_id: str, status: str) -> Optional[Conversation]:
        await self.session.execute(
            update(Conversation)
            .where(Conversation.id == conversation_id)
            .values(status=status)
        )
        await self.session.flush()
        conv = await self.get_by_id(conversation_id)
        if conv is not None:
            await self.session.refresh(conv)
        return conv

    async def delete(self, conversation_id: str) -> bool:
        await self.session.execute(
            delete(Message).where(Message.conversation_id == conversation_id)
        )
        result = await self.session.execute(
            delete(Conversation).where(Conversation.id == conversation_id)
        )
        await self.session.flush()
        return (result.rowcount or 0) > 0

    async def count(self) -> int:
        result = await self.session.execute(select(func.count(Conversation.id)))
        return result.scalar() or 0


class FaqRepository:
    """Read access for operator-curated FAQs."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def search(self, query: Optional[str] = None, limit: int = 5) -> List[Faq]:
        q = select(Faq).order_by(Faq.display_order.asc(), Faq.id.asc()).limit(limit)
        if query:
            pattern = f"%{query}%"
            q = q.where(or_(Faq.question.ilike(pattern), Faq.answer.ilike(pattern)))
        result = await self.session.execute(q)
        return list(result.scalars().all())


class KnowledgeBaseRepository:
    """Read access for knowledge base articles."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def search(self, query: Optional[str] = None, limit: int = 5) -> List[KnowledgeArticle]:
        q = (
            select(KnowledgeArticle)
            .where(KnowledgeArticle.is_active == True)
            .order_by(KnowledgeArticle.id.asc())
            .limit(limit)
        )
        if query:
            pattern = f"%{query}%"
            q = q.where(or_(KnowledgeArticle.title.ilike(pattern), KnowledgeArticle.content.ilike(pattern)))
        result = await self.session.execute(q)
        return list(result.scalars().all())
