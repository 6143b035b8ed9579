"""
Prompt Templates for the lead qualification chat.

Manages the system prompt that drives tool-based qualification.
"""

from enum import Enum
from typing import Optional


class PromptType(Enum):
    """Types of prompts."""
    LEAD_QUALIFICATION = "lead_qualification"


LANGUAGE_NAMES = {
    "pt": "Brazilian Portuguese",
    "pt-br": "Brazilian Portuguese",
    "en": "English",
    "es": "Spanish",
}


class PromptTemplates:
    """
    Manages prompt templates for the chat agent.

    The model never decides question order: it is told to ask whatever
    ``nextQuestion`` the tools return.
    """

    SYSTEM_PROMPTS = {
        PromptType.LEAD_QUALIFICATION: """You are {brand_name}'s virtual assistant on the company website.

Your role:
1. Welcome visitors and answer their questions about {brand_name}
2. Qualify the visitor as a lead by collecting answers to the qualification questions
3. Keep the conversation friendly, short and natural

Qualification rules:
- Call get_lead_state at the start of the conversation to see what is already known
- Always ask the question returned in nextQuestion, and only that one, in your own words
- For select questions, present the options and save the option value the visitor picks
- Every time the visitor answers, call save_lead_answer with the question id and the answer
- When nextQuestion is null, call complete_lead and thank the visitor
- Never invent answers and never skip a question the tools ask for

Answering questions:
- Use search_faqs and search_knowledge_base to answer questions about services and pricing
- If a search returns disabled or no results, say you will have a specialist follow up
- After answering, return to the pending qualification question

Response format:
- One or two short paragraphs
- Ask one question at a time""",
    }

    FALLBACK_REPLY = (
        "Sorry, I'm having trouble answering right now. "
        "Please try again in a moment or leave your contact details and we'll get back to you."
    )

    @classmethod
    def language_instruction(cls, language: Optional[str]) -> Optional[str]:
        if not language:
            return None
        name = LANGUAGE_NAMES.get(language.lower(), language)
        return f"Reply in {name}."

    @classmethod
    def get_system_prompt(
        cls,
        prompt_type: PromptType = PromptType.LEAD_QUALIFICATION,
        brand_name: str = "Skale Club",
        custom_instructions: Optional[str] = None
    ) -> str:
        """
        Get system prompt for a given type.

        Args:
            prompt_type: Type of prompt
            brand_name: Brand name to use
            custom_instructions: Additional custom instructions

        Returns:
            Formatted system prompt
        """
        prompt = cls.SYSTEM_PROMPTS[prompt_type].format(brand_name=brand_name)

        if custom_instructions:
            prompt += f"\n\nAdditional instructions:\n{custom_instructions}"

        return prompt

    @classmethod
    def build_visitor_context(
        cls,
        page_url: Optional[str] = None,
        visitor_name: Optional[str] = None,
        visitor_email: Optional[str] = None,
        visitor_phone: Optional[str] = None,
    ) -> Optional[str]:
        """Describe what the widget already knows about the visitor."""
        lines = []
        if page_url:
            lines.append(f"- Current page: {page_url}")
        if visitor_name:
            lines.append(f"- Name given in the widget: {visitor_name}")
        if visitor_email:
            lines.append(f"- Email given in the widget: {visitor_email}")
        if visitor_phone:
            lines.append(f"- Phone given in the widget: {visitor_phone}")
        if not lines:
            return None
        return "Visitor context (confirm before saving as answers):\n" + "\n".join(lines)
