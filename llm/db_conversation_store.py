"""
Database-backed ConversationStore.

Implements the ConversationStore protocol using the repository layer.
"""

import logging
from typing import Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from database.models import Conversation
from database.repositories import ConversationRepository

logger = logging.getLogger(__name__)


class DbConversationStore:
    """Persistent conversation store backed by the SQL database."""

    def __init__(self, session: AsyncSession):
        self._repo = ConversationRepository(session)

    async def ensure_conversation(
        self,
        conversation_id: str,
        page_url: Optional[str] = None,
        visitor_name: Optional[str] = None,
        visitor_email: Optional[str] = None,
        visitor_phone: Optional[str] = None,
        language: Optional[str] = None,
    ) -> Conversation:
        """Fetch or create the conversation, filling in any newly known visitor details."""
        conv = await self._repo.get_by_id(conversation_id)
        if conv is None:
            conv = await self._repo.create(
                conversation_id=conversation_id,
                page_url=page_url,
                visitor_name=visitor_name,
                visitor_email=visitor_email,
                visitor_phone=visitor_phone,
                language=language,
            )
            logger.info(f"Conversation {conversation_id} started")
            return conv

        for attr, value in (
            ("page_url", page_url),
            ("visitor_name", visitor_name),
            ("visitor_email", visitor_email),
            ("visitor_phone", visitor_phone),
            ("language", language),
        ):
            if value:
                setattr(conv, attr, value)
        return conv

    async def get_history(self, conversation_id: str, limit: int = 30) -> List[Dict[str, str]]:
        """Get message history as list of role/content dicts."""
        messages = await self._repo.get_messages(conversation_id, limit=limit)
        return [
            {"role": msg.role, "content": msg.content}
            for msg in messages
        ]

    async def save_message(self, conversation_id: str, role: str, content: str) -> None:
        await self._repo.add_message(
            conversation_id=conversation_id,
            role=role,
            content=content,
        )
