"""
Service initialization and dependency injection for the lead qualification API.

Creates and manages all service instances used by the API.
"""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import get_settings, Settings
from database.repositories import FormConfigRepository
from lead_scoring.crm_client import CrmClient
from lead_scoring.dispatcher import SideEffectDispatcher
from lead_scoring.form_config import FormConfig, FormConfigError, default_form_config, normalize_config
from llm.orchestrator import ChatOrchestrator
from llm.providers.openai_provider import OpenAIProvider

from .channels.sms import TwilioSmsSender

logger = logging.getLogger(__name__)


class Services:
    """Container for all application services."""

    def __init__(self):
        self.settings: Optional[Settings] = None
        self.llm_provider: Optional[OpenAIProvider] = None
        self.crm_client: Optional[CrmClient] = None
        self.sms_sender: Optional[TwilioSmsSender] = None
        self.dispatcher: Optional[SideEffectDispatcher] = None
        self.orchestrator: Optional[ChatOrchestrator] = None
        self._initialized = False

    def initialize(self):
        """Initialize all services."""
        if self._initialized:
            return

        self.settings = get_settings()
        logger.info(f"Initializing services with provider: {self.settings.llm_provider}")

        try:
            self._init_integrations()
            self._init_llm()
            self._init_orchestrator()
            self._initialized = True
            logger.info("All services initialized successfully")
        except Exception as e:
            logger.error(f"Service initialization failed: {e}")
            # Allow API to start even if some services fail
            self._initialized = True
            logger.warning("API starting in degraded mode")

    def _init_integrations(self):
        """Initialize CRM and SMS clients (skipped when not configured)."""
        s = self.settings

        if s.crm_configured:
            self.crm_client = CrmClient(
                base_url=s.crm_base_url,
                api_key=s.crm_api_key,
                location_id=s.crm_location_id,
                api_version=s.crm_api_version,
                timeout=s.crm_timeout_seconds,
            )
            logger.info("CRM client ready")
        else:
            logger.info("CRM not configured, sync disabled")

        if s.twilio_configured:
            self.sms_sender = TwilioSmsSender(
                account_sid=s.twilio_account_sid,
                auth_token=s.twilio_auth_token,
                from_number=s.twilio_from_number,
                to_numbers=s.twilio_to_numbers_list,
            )
            logger.info(f"Twilio SMS ready ({len(s.twilio_to_numbers_list)} recipients)")
        else:
            logger.info("Twilio not configured, SMS notifications disabled")

        self.dispatcher = SideEffectDispatcher(
            sms_sender=self.sms_sender,
            crm_client=self.crm_client,
            brand_name=s.brand_name,
            notify_on_new_chat=s.twilio_notify_on_new_chat,
        )

    def _init_llm(self):
        """Initialize the completion provider."""
        s = self.settings
        if not s.llm_api_key:
            logger.warning(f"No API key for LLM provider '{s.llm_provider}', chat disabled")
            return

        self.llm_provider = OpenAIProvider(
            api_key=s.llm_api_key,
            model_id=s.llm_model_id,
            max_tokens=s.max_tokens,
            temperature=s.temperature,
            base_url=s.llm_base_url,
            timeout=s.llm_timeout_seconds,
        )

    def _init_orchestrator(self):
        """Initialize the chat orchestrator."""
        s = self.settings
        if self.llm_provider is None:
            return

        self.orchestrator = ChatOrchestrator(
            llm_provider=self.llm_provider,
            dispatcher=self.dispatcher,
            brand_name=s.brand_name,
            max_messages=s.chat_max_messages,
            history_limit=s.chat_history_limit,
            use_faqs=s.chat_use_faqs,
            use_knowledge_base=s.chat_use_knowledge_base,
            search_limit=s.chat_search_limit,
        )
        logger.info("Chat orchestrator ready")

    def reset(self):
        """Drop all instances so the next initialize() re-reads settings."""
        self.__init__()

    @property
    def is_ready(self) -> bool:
        return self._initialized and self.orchestrator is not None

    def health(self) -> dict:
        """Return health status of all services."""
        return {
            "initialized": self._initialized,
            "llm": self.llm_provider is not None,
            "orchestrator": self.orchestrator is not None,
            "crm": self.crm_client is not None,
            "sms": self.sms_sender is not None,
        }


# Singleton
_services = Services()


def get_services() -> Services:
    """Get the global services instance."""
    return _services


def initialize_services():
    """Initialize all services (called at startup)."""
    _services.initialize()


async def load_form_config(session: AsyncSession) -> FormConfig:
    """
    Current form configuration, or the built-in default when none is stored.

    A stored config that no longer validates is logged and replaced by the
    default so lead intake keeps working.
    """
    raw = await FormConfigRepository(session).get()
    if raw is None:
        return default_form_config()
    try:
        return normalize_config(raw)
    except FormConfigError as e:
        logger.error(f"Stored form config is invalid, using default: {e}")
        return default_form_config()
