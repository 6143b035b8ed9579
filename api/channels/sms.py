"""
SMS channel via Twilio.

Used to alert staff when a new lead leaves a phone number.
"""

import asyncio
import logging
from typing import List, Optional

from twilio.base.exceptions import TwilioRestException
from twilio.rest import Client

from .base import ChannelProvider, ChannelMessage, ChannelResponse

logger = logging.getLogger(__name__)


class TwilioSmsSender(ChannelProvider):
    """Sends SMS through the Twilio REST API."""

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        to_numbers: List[str],
        client: Optional[Client] = None,
    ):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.to_numbers = to_numbers
        self._client = client

    def _get_client(self) -> Client:
        if self._client is None:
            self._client = Client(self.account_sid, self.auth_token)
        return self._client

    def _send_sync(self, message: ChannelMessage) -> ChannelResponse:
        try:
            result = self._get_client().messages.create(
                to=message.to,
                from_=self.from_number,
                body=message.content,
            )
            return ChannelResponse(success=True, message_id=result.sid)
        except TwilioRestException as e:
            logger.error(f"Twilio SMS to {message.to} failed: {e.code} {e.msg}")
            return ChannelResponse(success=False, error=str(e.msg))

    async def send_message(self, message: ChannelMessage) -> ChannelResponse:
        # The Twilio SDK is blocking.
        return await asyncio.to_thread(self._send_sync, message)

    async def notify_staff(self, content: str) -> ChannelResponse:
        """Send ``content`` to every configured staff number."""
        return await self.broadcast(self.to_numbers, content)

    async def health_check(self) -> bool:
        try:
            account = await asyncio.to_thread(
                lambda: self._get_client().api.accounts(self.account_sid).fetch()
            )
            return account.status == "active"
        except TwilioRestException as e:
            logger.warning(f"Twilio health check failed: {e.msg}")
            return False
