"""
Lead qualification tools exposed to the chat model.

The tool menu is fixed: toggling FAQ / knowledge base search off makes the
tool return ``{"disabled": true}`` instead of removing it from the schema.
``save_lead_answer`` is the only tool that mutates lead answers.
"""

import logging
from typing import Any, Callable, Awaitable, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from database.models import Lead
from database.repositories import FaqRepository, KnowledgeBaseRepository
from lead_scoring.dispatcher import SideEffectDispatcher
from lead_scoring.form_config import FormConfig, QuestionType
from lead_scoring.progress_store import LeadProgressStore, lead_answers
from lead_scoring.scoring_model import LeadEvaluation

from .providers.openai_provider import ToolCall

logger = logging.getLogger(__name__)


def _function(name: str, description: str, properties: Optional[Dict] = None, required: Optional[List[str]] = None) -> Dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": {
                "type": "object",
                "properties": properties or {},
                "required": required or [],
            },
        },
    }


TOOL_DEFINITIONS: List[Dict[str, Any]] = [
    _function(
        "get_form_config",
        "Get the qualification questions in order, with their types, options and the score thresholds.",
    ),
    _function(
        "get_lead_state",
        "Get the answers collected so far, the current score and classification, and the next question to ask.",
    ),
    _function(
        "save_lead_answer",
        "Save the visitor's answer to one qualification question. Returns the updated lead state "
        "including the next question to ask.",
        {
            "question_id": {"type": "string", "description": "Id of the question being answered"},
            "answer": {"type": "string", "description": "The visitor's answer; for select questions use the option value"},
        },
        ["question_id", "answer"],
    ),
    _function(
        "complete_lead",
        "Finish qualification once every question is answered. Syncs the lead to the CRM.",
    ),
    _function(
        "search_faqs",
        "Search the frequently asked questions.",
        {"query": {"type": "string", "description": "Search terms"}},
    ),
    _function(
        "search_knowledge_base",
        "Search the knowledge base articles about the company and its services.",
        {"query": {"type": "string", "description": "Search terms"}},
    ),
]

TOOL_NAMES = [t["function"]["name"] for t in TOOL_DEFINITIONS]


class ToolArgumentError(ValueError):
    """Raised when a tool is called with missing or malformed arguments."""


class LeadTools:
    """
    Executes tool calls for one conversation turn.

    Args:
        session: Request database session
        conversation_id: Conversation the chat lead is keyed on
        config: Current form configuration
        dispatcher: Side-effect dispatcher (SMS on phone capture, CRM on completion)
        use_faqs: Whether ``search_faqs`` is enabled
        use_knowledge_base: Whether ``search_knowledge_base`` is enabled
        search_limit: Max results per search
    """

    def __init__(
        self,
        session: AsyncSession,
        conversation_id: str,
        config: FormConfig,
        dispatcher: Optional[SideEffectDispatcher] = None,
        use_faqs: bool = True,
        use_knowledge_base: bool = True,
        search_limit: int = 5,
    ):
        self.session = session
        self.conversation_id = conversation_id
        self.config = config
        self.dispatcher = dispatcher or SideEffectDispatcher()
        self.use_faqs = use_faqs
        self.use_knowledge_base = use_knowledge_base
        self.search_limit = search_limit

        self.store = LeadProgressStore(session)
        self.lead_captured = False

        self._handlers: Dict[str, Callable[[Dict[str, Any]], Awaitable[Dict[str, Any]]]] = {
            "get_form_config": self.get_form_config,
            "get_lead_state": self.get_lead_state,
            "save_lead_answer": self.save_lead_answer,
            "complete_lead": self.complete_lead,
            "search_faqs": self.search_faqs,
            "search_knowledge_base": self.search_knowledge_base,
        }

    async def execute(self, call: ToolCall) -> Dict[str, Any]:
        """Run one tool call and return its JSON-serializable result."""
        handler = self._handlers.get(call.name)
        if handler is None:
            logger.warning(f"Model requested unknown tool: {call.name}")
            return {"error": "unknown_tool", "message": f"Unknown tool '{call.name}'", "availableTools": TOOL_NAMES}
        if call.parse_error:
            return {"error": "invalid_arguments", "message": call.parse_error}
        try:
            return await handler(call.arguments)
        except ToolArgumentError as e:
            return {"error": "invalid_arguments", "message": str(e)}

    def _state(self, lead: Lead, evaluation: LeadEvaluation) -> Dict[str, Any]:
        pending = evaluation.next_question
        return {
            "leadId": lead.id,
            "answers": lead_answers(lead),
            "score": evaluation.total,
            "maxScore": self.config.max_score,
            "scoreBreakdown": evaluation.breakdown.to_dict(),
            "classification": evaluation.classification.value,
            "isComplete": bool(lead.form_completo) or evaluation.is_complete,
            "nextQuestion": pending.to_dict() if pending else None,
            "answeredQuestions": evaluation.answered_questions,
            "totalQuestions": evaluation.total_questions,
        }

    async def get_form_config(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        data = self.config.to_public_dict()
        return {"questions": data["questions"], "thresholds": data["thresholds"], "maxScore": data["maxScore"]}

    async def get_lead_state(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        lead, _ = await self.store.ensure_chat_lead(self.conversation_id, self.config)
        evaluation = await self.store.evaluate_lead(lead, self.config)
        return self._state(lead, evaluation)

    def _normalize_answer(self, question_id: str, answer: str) -> str:
        """Map a select option label to its value so trigger matching works."""
        question = self.config.find_question(question_id)
        if question is None or question.type != QuestionType.SELECT:
            return answer
        lowered = answer.lower()
        for option in question.options or []:
            if option.value.lower() == lowered or option.label.lower() == lowered:
                return option.value
        return answer

    async def save_lead_answer(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        question_id = arguments.get("question_id")
        answer = arguments.get("answer")
        if not isinstance(question_id, str) or not question_id.strip():
            raise ToolArgumentError("question_id must be a non-empty string")
        if answer is None or isinstance(answer, (dict, list)):
            raise ToolArgumentError("answer must be a string")

        question_id = question_id.strip()
        value = self._normalize_answer(question_id, str(answer).strip())

        result = await self.store.upsert_chat_answers(
            self.conversation_id, {question_id: value}, self.config
        )
        await self.dispatcher.after_upsert(
            result, self.config, self.store.leads, sync_on_complete=False
        )
        state = self._state(result.lead, result.evaluation)
        state["saved"] = {"questionId": question_id, "answer": value}
        return state

    async def complete_lead(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        lead, _ = await self.store.ensure_chat_lead(self.conversation_id, self.config)
        evaluation, _ = await self.store.mark_complete(lead, self.config)
        if not lead.form_completo:
            pending = evaluation.next_question
            return {
                "success": False,
                "error": "incomplete",
                "message": "Required questions are still unanswered",
                "nextQuestion": pending.to_dict() if pending else None,
                "answeredQuestions": evaluation.answered_questions,
                "totalQuestions": evaluation.total_questions,
            }

        await self.dispatcher.notify_if_needed(lead, self.config, self.store.leads)
        crm_ref = await self.dispatcher.sync_crm(lead, self.config, self.store.leads)
        await self.session.flush()
        self.lead_captured = True
        logger.info(f"Chat lead {lead.id} completed: {lead.classification} ({lead.score_total})")
        return {
            "success": True,
            "leadId": lead.id,
            "classification": lead.classification,
            "score": lead.score_total,
            "crmContactRef": crm_ref,
            "crmSyncStatus": lead.crm_sync_status,
        }

    @staticmethod
    def _query(arguments: Dict[str, Any]) -> Optional[str]:
        query = arguments.get("query")
        if query is not None and not isinstance(query, str):
            raise ToolArgumentError("query must be a string")
        return query.strip() if query else None

    async def search_faqs(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        if not self.use_faqs:
            return {"disabled": True, "results": [], "message": "FAQ search is disabled"}
        faqs = await FaqRepository(self.session).search(self._query(arguments), limit=self.search_limit)
        return {"results": [{"question": f.question, "answer": f.answer} for f in faqs]}

    async def search_knowledge_base(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        if not self.use_knowledge_base:
            return {"disabled": True, "results": [], "message": "Knowledge base search is disabled"}
        articles = await KnowledgeBaseRepository(self.session).search(self._query(arguments), limit=self.search_limit)
        return {"results": [{"title": a.title, "content": a.content} for a in articles]}
