"""
SQLAlchemy ORM models for the Skale lead qualification service.

Persistent entities: form config, leads, lead events, conversations,
messages and the operator-curated FAQ / knowledge base content.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    Column, String, Integer, Boolean, DateTime, Text, ForeignKey,
    JSON, Index,
)
from sqlalchemy.orm import DeclarativeBase, relationship


def _uuid() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    pass


class FormConfigRecord(Base):
    __tablename__ = "form_config"

    id = Column(Integer, primary_key=True)
    config_json = Column(JSON, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Lead(Base):
    __tablename__ = "form_leads"

    id = Column(String(36), primary_key=True, default=_uuid)
    session_id = Column(String(64), unique=True, nullable=False)
    conversation_id = Column(String(36), unique=True, nullable=True)
    source = Column(String(10), default="form")  # form, chat

    # Named answer columns
    nome = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True)
    telefone = Column(String(40), nullable=True)
    cidade_estado = Column(String(255), nullable=True)
    tipo_negocio = Column(String(255), nullable=True)
    tipo_negocio_outro = Column(String(255), nullable=True)
    tempo_negocio = Column(String(255), nullable=True)
    situacao_marketing = Column(String(255), nullable=True)
    orcamento_anuncios = Column(String(255), nullable=True)
    principal_desafio = Column(String(255), nullable=True)
    expectativa_tempo = Column(String(255), nullable=True)
    custom_answers = Column(JSON, default=dict)

    # Progress and score
    question_number = Column(Integer, default=0)
    form_completo = Column(Boolean, default=False)
    score_total = Column(Integer, default=0)
    score_breakdown = Column(JSON, default=dict)
    classification = Column(String(10), default="COLD")  # HOT, WARM, COLD

    # One-shot side effects
    notificacao_enviada = Column(Boolean, default=False)
    crm_contact_ref = Column(String(64), nullable=True)
    crm_sync_status = Column(String(10), default="unsynced")  # unsynced, synced, failed

    # Admin workflow
    status = Column(String(20), default="novo")  # novo, contatado, qualificado, convertido, descartado
    observacoes = Column(Text, nullable=True)

    # Attribution
    url_origem = Column(String(500), nullable=True)
    utm_source = Column(String(255), nullable=True)
    utm_medium = Column(String(255), nullable=True)
    utm_campaign = Column(String(255), nullable=True)
    started_at = Column(DateTime, nullable=True)
    tempo_total_segundos = Column(Integer, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    events = relationship("LeadEvent", back_populates="lead", cascade="all, delete-orphan")

    __table_args__ = (
        Index("ix_lead_status_class", "status", "classification"),
        Index("ix_lead_created", "created_at"),
    )


class LeadEvent(Base):
    __tablename__ = "lead_events"

    id = Column(String(36), primary_key=True, default=_uuid)
    lead_id = Column(String(36), ForeignKey("form_leads.id", ondelete="CASCADE"), nullable=False, index=True)
    event_type = Column(String(30), nullable=False)  # created, updated, completed, notification_sent, crm_synced, crm_failed
    details_json = Column(JSON, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow)

    lead = relationship("Lead", back_populates="events")


class Conversation(Base):
    __tablename__ = "conversations"

    id = Column(String(36), primary_key=True, default=_uuid)
    status = Column(String(10), default="open")  # open, closed
    page_url = Column(String(500), nullable=True)
    visitor_name = Column(String(255), nullable=True)
    visitor_email = Column(String(255), nullable=True)
    visitor_phone = Column(String(40), nullable=True)
    language = Column(String(10), nullable=True)
    message_count = Column(Integer, default=0)
    started_at = Column(DateTime, default=datetime.utcnow)
    last_active_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    messages = relationship(
        "Message",
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="Message.position",
    )

    __table_args__ = (
        Index("ix_conv_status_active", "status", "last_active_at"),
    )


class Message(Base):
    __tablename__ = "messages"

    id = Column(String(36), primary_key=True, default=_uuid)
    conversation_id = Column(String(36), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    role = Column(String(10), nullable=False)  # user, assistant
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    conversation = relationship("Conversation", back_populates="messages")


class Faq(Base):
    __tablename__ = "faqs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    question = Column(Text, nullable=False)
    answer = Column(Text, nullable=False)
    display_order = Column(Integer, default=0)


class KnowledgeArticle(Base):
    __tablename__ = "knowledge_articles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(255), nullable=False)
    content = Column(Text, nullable=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
