"""
LLM Orchestration Module for the lead qualification chat.

This module handles:
- OpenAI-compatible provider abstraction (OpenAI, OpenRouter, Gemini)
- Prompt template management
- The tool-calling loop over the lead progress store
"""

from .orchestrator import ChatOrchestrator, ChatRequest, ChatResponse, ConversationLimitReached
from .prompt_templates import PromptTemplates, PromptType
from .tools import TOOL_DEFINITIONS, LeadTools

__all__ = [
    "ChatOrchestrator",
    "ChatRequest",
    "ChatResponse",
    "ConversationLimitReached",
    "PromptTemplates",
    "PromptType",
    "TOOL_DEFINITIONS",
    "LeadTools",
]
