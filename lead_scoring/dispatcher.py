"""
Side-Effect Dispatcher.

Fires the staff SMS alerts and the CRM sync for a lead. Each lead effect is
guarded by a flag on the lead row (``notificacao_enviada``,
``crm_sync_status``) so retries of the surrounding request do not re-fire
it. Integration failures are logged and recorded, never raised.
"""

import logging
from typing import Optional

from database.models import Lead
from database.repositories import LeadRepository

from .crm_client import CrmClient, CrmContact
from .form_config import FormConfig
from .progress_store import UpsertResult, lead_contact

logger = logging.getLogger(__name__)


class SideEffectDispatcher:
    """
    Dispatches one-shot lead side effects.

    Args:
        sms_sender: Object with ``async notify_staff(content)`` returning a
            ChannelResponse, or None when SMS is not configured
        crm_client: CrmClient, or None when the CRM is not configured
        brand_name: Used in the SMS text
        notify_on_new_chat: Also alert staff when a chat conversation starts
    """

    def __init__(
        self,
        sms_sender=None,
        crm_client: Optional[CrmClient] = None,
        brand_name: str = "Skale Club",
        notify_on_new_chat: bool = False,
    ):
        self.sms_sender = sms_sender
        self.crm_client = crm_client
        self.brand_name = brand_name
        self.notify_on_new_chat = notify_on_new_chat

    def build_notification(self, lead: Lead, config: Optional[FormConfig] = None) -> str:
        contact = lead_contact(lead, config)
        name = contact.name or "Sem nome"
        origin = "chat" if lead.source == "chat" else "formulário"
        return (
            f"[{self.brand_name}] Novo lead via {origin}: {name} - {contact.phone}. "
            f"Classificação: {lead.classification} ({lead.score_total} pts)"
        )

    async def notify_if_needed(
        self,
        lead: Lead,
        config: Optional[FormConfig] = None,
        leads: Optional[LeadRepository] = None,
    ) -> bool:
        """
        Send the staff SMS the first time the lead has a phone number.

        The phone is read through the config's ``tel`` question when a
        config is given. Returns True only when an SMS was dispatched by
        this call.
        """
        if lead.notificacao_enviada or not lead_contact(lead, config).phone:
            return False
        if self.sms_sender is None:
            logger.debug(f"SMS not configured, skipping notification for lead {lead.id}")
            return False

        try:
            response = await self.sms_sender.notify_staff(self.build_notification(lead, config))
        except Exception as e:
            logger.error(f"SMS notification for lead {lead.id} raised: {e}")
            return False

        if not response.success:
            logger.warning(f"SMS notification for lead {lead.id} failed: {response.error}")
            return False

        lead.notificacao_enviada = True
        if leads is not None:
            await leads.add_event(lead.id, "notification_sent", {"messageId": response.message_id})
        logger.info(f"SMS notification sent for lead {lead.id}")
        return True

    async def notify_new_chat(self, conversation_id: str, page_url: Optional[str] = None) -> bool:
        """Alert staff that a visitor opened a new chat. Returns True when sent."""
        if not self.notify_on_new_chat or self.sms_sender is None:
            return False

        content = (
            f"[{self.brand_name}] Novo chat iniciado. "
            f"Conversa: {conversation_id[:8]}... Página: {page_url or 'desconhecida'}"
        )
        try:
            response = await self.sms_sender.notify_staff(content)
        except Exception as e:
            logger.error(f"New chat SMS for {conversation_id} raised: {e}")
            return False

        if not response.success:
            logger.warning(f"New chat SMS for {conversation_id} failed: {response.error}")
            return False
        return True

    async def sync_crm(
        self,
        lead: Lead,
        config: FormConfig,
        leads: Optional[LeadRepository] = None,
    ) -> Optional[str]:
        """
        Push the lead to the CRM unless it is already synced.

        Returns the CRM contact reference, or None when skipped or failed.
        """
        if lead.crm_sync_status == "synced":
            return lead.crm_contact_ref
        if self.crm_client is None:
            logger.debug(f"CRM not configured, skipping sync for lead {lead.id}")
            return None

        try:
            contact_ref = await self.crm_client.upsert_contact(CrmContact.from_lead(lead, config))
        except Exception as e:
            lead.crm_sync_status = "failed"
            logger.error(f"CRM sync for lead {lead.id} failed: {e}")
            if leads is not None:
                await leads.add_event(lead.id, "crm_failed", {"error": str(e)[:500]})
            return None

        lead.crm_sync_status = "synced"
        lead.crm_contact_ref = contact_ref
        if leads is not None:
            await leads.add_event(lead.id, "crm_synced", {"contactRef": contact_ref})
        return contact_ref

    async def after_upsert(
        self,
        result: UpsertResult,
        config: FormConfig,
        leads: Optional[LeadRepository] = None,
        sync_on_complete: bool = True,
    ) -> None:
        """Run the effects a progress upsert may have unlocked."""
        lead = result.lead
        if result.phone_acquired:
            await self.notify_if_needed(lead, config, leads)
        if sync_on_complete and lead.form_completo and lead.crm_sync_status != "synced":
            await self.sync_crm(lead, config, leads)
