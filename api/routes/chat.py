"""
Chat API Routes.
"""

import logging
import time
from enum import Enum
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database.repositories import ConversationRepository, LeadRepository
from database.session import get_db
from llm.orchestrator import ChatRequest as OrchestratorRequest, ConversationLimitReached

from ..middleware.auth import require_admin
from ..middleware.metrics import record_chat_turn, record_lead_completed
from ..services import get_services, load_form_config

logger = logging.getLogger(__name__)

router = APIRouter()


# ── Request / Response Models ─────────────────────────────────────

class ChatMessageRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(..., min_length=1, max_length=2000)
    conversation_id: Optional[str] = Field(default=None, alias="conversationId", max_length=36)
    page_url: Optional[str] = Field(default=None, alias="pageUrl", max_length=500)
    visitor_name: Optional[str] = Field(default=None, alias="visitorName", max_length=255)
    visitor_email: Optional[str] = Field(default=None, alias="visitorEmail", max_length=255)
    visitor_phone: Optional[str] = Field(default=None, alias="visitorPhone", max_length=40)
    language: Optional[str] = Field(default=None, max_length=10)


class ChatMessageResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    conversation_id: str = Field(..., alias="conversationId")
    response: str
    lead_captured: bool = Field(..., alias="leadCaptured")


class ConversationStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class ConversationUpdate(BaseModel):
    status: ConversationStatus


def _conversation_to_dict(conv) -> dict:
    return {
        "id": conv.id,
        "status": conv.status,
        "pageUrl": conv.page_url,
        "visitorName": conv.visitor_name,
        "visitorEmail": conv.visitor_email,
        "visitorPhone": conv.visitor_phone,
        "language": conv.language,
        "messageCount": conv.message_count or 0,
        "startedAt": conv.started_at.isoformat() if conv.started_at else None,
        "lastActiveAt": conv.last_active_at.isoformat() if conv.last_active_at else None,
    }


# ── Endpoints ─────────────────────────────────────────────────────

@router.post(
    "/chat/message",
    response_model=ChatMessageResponse,
    response_model_by_alias=True,
)
async def chat_message(request: ChatMessageRequest, db: AsyncSession = Depends(get_db)):
    """
    Process a chat message through the tool-calling loop.

    Creates the conversation when ``conversationId`` is absent or unknown.
    """
    services = get_services()
    if services.orchestrator is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"code": "chat_unavailable", "message": "Chat is not configured"},
        )

    start = time.time()
    config = await load_form_config(db)
    try:
        result = await services.orchestrator.process(
            OrchestratorRequest(
                message=request.message,
                conversation_id=request.conversation_id,
                page_url=request.page_url,
                visitor_name=request.visitor_name,
                visitor_email=request.visitor_email,
                visitor_phone=request.visitor_phone,
                language=request.language,
            ),
            session=db,
            config=config,
        )
    except ConversationLimitReached as e:
        record_chat_turn("limit_reached", time.time() - start)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"code": e.code, "message": str(e)},
        )

    record_chat_turn("fallback" if result.fallback else "ok", time.time() - start)
    if result.lead_captured:
        lead = await LeadRepository(db).get_by_conversation(result.conversation_id)
        if lead is not None:
            record_lead_completed("chat", lead.classification, lead.score_total)

    return ChatMessageResponse(
        conversation_id=result.conversation_id,
        response=result.response,
        lead_captured=result.lead_captured,
    )


@router.get("/chat/conversations", dependencies=[Depends(require_admin)])
async def list_conversations(
    conversation_status: Optional[ConversationStatus] = Query(None, alias="status"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    """List conversations, most recently active first."""
    repo = ConversationRepository(db)
    conversations = await repo.get_recent(
        status=conversation_status.value if conversation_status else None,
        limit=limit,
        offset=offset,
    )
    return {
        "conversations": [_conversation_to_dict(c) for c in conversations],
        "total": await repo.count(),
        "limit": limit,
        "offset": offset,
    }


@router.get("/chat/conversations/{conversation_id}", dependencies=[Depends(require_admin)])
async def get_conversation(conversation_id: str, db: AsyncSession = Depends(get_db)):
    """Get a conversation with its messages."""
    repo = ConversationRepository(db)
    conv = await repo.get_by_id(conversation_id)
    if not conv:
        raise HTTPException(status_code=404, detail="Conversation not found")

    messages = await repo.get_messages(conversation_id, limit=conv.message_count or 1)
    data = _conversation_to_dict(conv)
    data["messages"] = [
        {
            "role": m.role,
            "content": m.content,
            "createdAt": m.created_at.isoformat() if m.created_at else None,
        }
        for m in messages
    ]
    return data


@router.patch("/chat/conversations/{conversation_id}", dependencies=[Depends(require_admin)])
async def update_conversation(
    conversation_id: str,
    update: ConversationUpdate,
    db: AsyncSession = Depends(get_db),
):
    """Open or close a conversation."""
    conv = await ConversationRepository(db).set_status(conversation_id, update.status.value)
    if not conv:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return _conversation_to_dict(conv)


@router.delete("/chat/conversations/{conversation_id}", dependencies=[Depends(require_admin)])
async def delete_conversation(conversation_id: str, db: AsyncSession = Depends(get_db)):
    """Delete a conversation and its messages. The linked lead is kept."""
    if not await ConversationRepository(db).delete(conversation_id):
        raise HTTPException(status_code=404, detail="Conversation not found")
    logger.info(f"Conversation {conversation_id} deleted")
    return {"message": "Conversation deleted", "id": conversation_id}
