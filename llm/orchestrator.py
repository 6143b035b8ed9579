"""
Chat Orchestrator for the lead qualification chat.

Runs one inbound message through the tool-calling loop:

    AWAIT_USER -> MODEL_TURN -> (TOOL_CALLS -> TOOL_EXEC -> MODEL_TURN_2) -> RESPOND

The first turn is offered the fixed tool menu. When it requests tools,
they are executed in order and a second turn, without tools, produces
the reply. Otherwise the first turn's text is the reply.
"""

import json
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from lead_scoring.dispatcher import SideEffectDispatcher
from lead_scoring.form_config import FormConfig

from .conversation_store import ConversationStore
from .db_conversation_store import DbConversationStore
from .prompt_templates import PromptTemplates, PromptType
from .tools import TOOL_DEFINITIONS, LeadTools

logger = logging.getLogger(__name__)


class ConversationLimitReached(Exception):
    """Raised when a conversation has no message budget left."""

    code = "conversation_limit_reached"

    def __init__(self, conversation_id: str, limit: int):
        self.conversation_id = conversation_id
        self.limit = limit
        super().__init__(
            f"Conversation {conversation_id} reached the limit of {limit} messages. "
            "Please start a new conversation."
        )


@dataclass
class ChatRequest:
    """Request for chat completion."""
    message: str
    conversation_id: Optional[str] = None
    page_url: Optional[str] = None
    visitor_name: Optional[str] = None
    visitor_email: Optional[str] = None
    visitor_phone: Optional[str] = None
    language: Optional[str] = None


@dataclass
class ChatResponse:
    """Response from chat completion."""
    response: str
    conversation_id: str
    lead_captured: bool = False
    tools_used: List[str] = field(default_factory=list)
    fallback: bool = False
    processing_time_ms: float = 0.0
    timestamp: str = field(default_factory=lambda: datetime.utcnow().isoformat())

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "conversationId": self.conversation_id,
            "response": self.response,
            "leadCaptured": self.lead_captured,
        }


class ChatOrchestrator:
    """
    Orchestrates the chat pipeline.

    Pipeline:
    1. Create the conversation if needed and enforce the message cap
    2. Persist the user message (committed before any tool runs) and alert
       staff when it opens a new conversation
    3. First model turn with the tool menu
    4. Execute requested tools against the lead progress store
    5. Second model turn with the tool results
    6. Persist and return the reply
    """

    def __init__(
        self,
        llm_provider: Any,
        dispatcher: Optional[SideEffectDispatcher] = None,
        brand_name: str = "Skale Club",
        max_messages: int = 60,
        history_limit: int = 30,
        use_faqs: bool = True,
        use_knowledge_base: bool = True,
        search_limit: int = 5,
    ):
        """
        Initialize the orchestrator.

        Args:
            llm_provider: Object with ``async complete(messages, tools)``
            dispatcher: Side-effect dispatcher used by the tools
            brand_name: Brand name for prompts
            max_messages: Message cap per conversation
            history_limit: Messages of history sent to the model
            use_faqs: Enable the FAQ search tool
            use_knowledge_base: Enable the knowledge base search tool
            search_limit: Max results per search tool call
        """
        self.llm_provider = llm_provider
        self.dispatcher = dispatcher or SideEffectDispatcher(brand_name=brand_name)
        self.brand_name = brand_name
        self.max_messages = max_messages
        self.history_limit = history_limit
        self.use_faqs = use_faqs
        self.use_knowledge_base = use_knowledge_base
        self.search_limit = search_limit

    def build_system_prompt(self, request: ChatRequest) -> str:
        extra = [
            part for part in (
                PromptTemplates.language_instruction(request.language),
                PromptTemplates.build_visitor_context(
                    page_url=request.page_url,
                    visitor_name=request.visitor_name,
                    visitor_email=request.visitor_email,
                    visitor_phone=request.visitor_phone,
                ),
            ) if part
        ]
        return PromptTemplates.get_system_prompt(
            prompt_type=PromptType.LEAD_QUALIFICATION,
            brand_name=self.brand_name,
            custom_instructions="\n".join(extra) or None,
        )

    async def process(
        self,
        request: ChatRequest,
        session: AsyncSession,
        config: FormConfig,
    ) -> ChatResponse:
        """
        Process a chat message through the tool loop.

        Raises:
            ConversationLimitReached: when the conversation is full
        """
        start_time = time.time()
        conversation_id = request.conversation_id or str(uuid.uuid4())
        store: ConversationStore = DbConversationStore(session)

        conversation = await store.ensure_conversation(
            conversation_id,
            page_url=request.page_url,
            visitor_name=request.visitor_name,
            visitor_email=request.visitor_email,
            visitor_phone=request.visitor_phone,
            language=request.language,
        )
        message_count = conversation.message_count or 0
        # A turn stores two messages: the user message and the reply.
        if message_count + 2 > self.max_messages:
            raise ConversationLimitReached(conversation_id, self.max_messages)

        await store.save_message(conversation_id, "user", request.message)
        # Lead creation may roll back the session on a lost race.
        await session.commit()
        if message_count == 0:
            await self.dispatcher.notify_new_chat(conversation_id, request.page_url)

        history = await store.get_history(conversation_id, limit=self.history_limit)
        messages: List[Dict[str, Any]] = [
            {"role": "system", "content": self.build_system_prompt(request)},
            *history,
        ]

        tools = LeadTools(
            session=session,
            conversation_id=conversation_id,
            config=config,
            dispatcher=self.dispatcher,
            use_faqs=self.use_faqs,
            use_knowledge_base=self.use_knowledge_base,
            search_limit=self.search_limit,
        )
        reply, tools_used, fallback = await self.run_turns(messages, tools)

        await store.save_message(conversation_id, "assistant", reply)

        processing_time = (time.time() - start_time) * 1000
        logger.info(
            f"Chat turn for {conversation_id}: tools={tools_used} "
            f"lead_captured={tools.lead_captured} ({processing_time:.0f}ms)"
        )
        return ChatResponse(
            response=reply,
            conversation_id=conversation_id,
            lead_captured=tools.lead_captured,
            tools_used=tools_used,
            fallback=fallback,
            processing_time_ms=round(processing_time, 2),
        )

    async def run_turns(
        self,
        messages: List[Dict[str, Any]],
        tools: LeadTools,
    ) -> Tuple[str, List[str], bool]:
        """
        Run the two-phase exchange.

        Returns (reply, names of tools executed, whether the fallback was used).
        """
        try:
            first = await self.llm_provider.complete(messages, tools=TOOL_DEFINITIONS)
        except Exception as e:
            logger.error(f"First model turn failed: {e}")
            return PromptTemplates.FALLBACK_REPLY, [], True

        if not first.tool_calls:
            if not first.text:
                return PromptTemplates.FALLBACK_REPLY, [], True
            return first.text, [], False

        messages.append({
            "role": "assistant",
            "content": first.text or None,
            "tool_calls": [call.to_message() for call in first.tool_calls],
        })
        tools_used = []
        for call in first.tool_calls:
            result = await tools.execute(call)
            tools_used.append(call.name)
            messages.append({
                "role": "tool",
                "tool_call_id": call.id,
                "content": json.dumps(result, ensure_ascii=False, default=str),
            })

        try:
            second = await self.llm_provider.complete(messages, tools=None)
        except Exception as e:
            logger.error(f"Second model turn failed: {e}")
            return PromptTemplates.FALLBACK_REPLY, tools_used, True

        if not second.text:
            return PromptTemplates.FALLBACK_REPLY, tools_used, True
        return second.text, tools_used, False
