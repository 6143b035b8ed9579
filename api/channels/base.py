"""
Outbound channel abstraction for staff notifications.

A channel sends one text to one recipient; ``broadcast`` fans a text out
to the staff list and reports success when anyone received it.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional, Sequence

logger = logging.getLogger(__name__)


@dataclass
class ChannelMessage:
    """Message to send via a channel."""
    to: str  # E.164 phone number
    content: str


@dataclass
class ChannelResponse:
    """Response from channel send operation."""
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


class ChannelProvider(ABC):
    """Abstract base class for notification channels."""

    @abstractmethod
    async def send_message(self, message: ChannelMessage) -> ChannelResponse:
        """Send a text message to a single recipient."""
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if channel is operational."""
        ...

    async def broadcast(self, recipients: Sequence[str], content: str) -> ChannelResponse:
        """
        Send ``content`` to every recipient, one after the other.

        Succeeds when at least one recipient accepted the message; the
        first accepted message id is returned.
        """
        if not recipients:
            return ChannelResponse(success=False, error="No recipients configured")

        responses: List[ChannelResponse] = []
        for number in recipients:
            responses.append(await self.send_message(ChannelMessage(to=number, content=content)))

        delivered = [r for r in responses if r.success]
        if len(delivered) < len(responses):
            logger.warning(f"{len(responses) - len(delivered)} of {len(responses)} staff notifications failed")
        if delivered:
            return ChannelResponse(success=True, message_id=delivered[0].message_id)
        return ChannelResponse(success=False, error="; ".join(r.error or "unknown" for r in responses))
