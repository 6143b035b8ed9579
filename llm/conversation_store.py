"""
ConversationStore protocol for the lead qualification chat.

Abstracts conversation storage so the orchestrator does not depend on
the repository layer directly.
"""

from typing import Any, Dict, List, Optional, Protocol, runtime_checkable


@runtime_checkable
class ConversationStore(Protocol):
    """Protocol for conversation persistence."""

    async def ensure_conversation(self, conversation_id: str, **visitor: Optional[str]) -> Any:
        """Return the conversation, creating it if absent."""
        ...

    async def get_history(self, conversation_id: str, limit: int = 30) -> List[Dict[str, str]]:
        """Get the most recent messages as role/content dicts, oldest first."""
        ...

    async def save_message(self, conversation_id: str, role: str, content: str) -> None:
        """Append a message to the conversation."""
        ...
