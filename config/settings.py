"""
Centralized configuration for the Skale lead qualification service.

All settings are loaded from environment variables via .env file.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    """Application settings."""

    # Brand
    brand_name: str = Field(default="Skale Club", env="BRAND_NAME")

    # LLM provider selection (all OpenAI-compatible chat completions)
    llm_provider: str = Field(default="openai", env="LLM_PROVIDER")  # openai | openrouter | gemini
    openai_api_key: Optional[str] = Field(default=None, env="OPENAI_API_KEY")
    openai_llm_model: str = Field(default="gpt-4o-mini", env="OPENAI_LLM_MODEL")
    openrouter_api_key: Optional[str] = Field(default=None, env="OPENROUTER_API_KEY")
    openrouter_llm_model: str = Field(default="openai/gpt-4o-mini", env="OPENROUTER_LLM_MODEL")
    gemini_api_key: Optional[str] = Field(default=None, env="GEMINI_API_KEY")
    gemini_llm_model: str = Field(default="gemini-2.0-flash", env="GEMINI_LLM_MODEL")
    max_tokens: int = Field(default=600, env="MAX_TOKENS")
    temperature: float = Field(default=0.4, env="TEMPERATURE")
    llm_timeout_seconds: float = Field(default=30.0, env="LLM_TIMEOUT_SECONDS")

    # Chat
    chat_max_messages: int = Field(default=60, env="CHAT_MAX_MESSAGES")
    chat_history_limit: int = Field(default=30, env="CHAT_HISTORY_LIMIT")
    chat_rate_limit_per_minute: int = Field(default=20, env="CHAT_RATE_LIMIT_PER_MINUTE")
    chat_use_faqs: bool = Field(default=True, env="CHAT_USE_FAQS")
    chat_use_knowledge_base: bool = Field(default=True, env="CHAT_USE_KNOWLEDGE_BASE")
    chat_search_limit: int = Field(default=5, env="CHAT_SEARCH_LIMIT")

    # CRM (GoHighLevel-compatible contacts API)
    crm_enabled: bool = Field(default=False, env="CRM_ENABLED")
    crm_base_url: str = Field(default="https://services.leadconnectorhq.com", env="CRM_BASE_URL")
    crm_api_key: Optional[str] = Field(default=None, env="CRM_API_KEY")
    crm_location_id: Optional[str] = Field(default=None, env="CRM_LOCATION_ID")
    crm_api_version: str = Field(default="2021-04-15", env="CRM_API_VERSION")
    crm_timeout_seconds: float = Field(default=15.0, env="CRM_TIMEOUT_SECONDS")

    # SMS (Twilio)
    twilio_enabled: bool = Field(default=False, env="TWILIO_ENABLED")
    twilio_account_sid: Optional[str] = Field(default=None, env="TWILIO_ACCOUNT_SID")
    twilio_auth_token: Optional[str] = Field(default=None, env="TWILIO_AUTH_TOKEN")
    twilio_from_number: Optional[str] = Field(default=None, env="TWILIO_FROM_NUMBER")
    twilio_to_numbers: str = Field(default="", env="TWILIO_TO_NUMBERS")  # comma-separated staff phones
    twilio_notify_on_new_chat: bool = Field(default=True, env="TWILIO_NOTIFY_ON_NEW_CHAT")

    # Database
    database_url: Optional[str] = Field(default=None, env="DATABASE_URL")

    # API
    api_host: str = Field(default="0.0.0.0", env="API_HOST")
    api_port: int = Field(default=8000, env="API_PORT")
    api_title: str = Field(default="Skale Lead Qualification API", env="API_TITLE")
    api_version: str = Field(default="1.0.0", env="API_VERSION")
    admin_api_key: Optional[str] = Field(default=None, env="ADMIN_API_KEY")
    cors_origins: str = Field(default="*", env="CORS_ORIGINS")

    # JWT (admin tokens)
    jwt_secret_key: str = Field(default="change-me-in-production", env="JWT_SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", env="JWT_ALGORITHM")
    jwt_expire_minutes: int = Field(default=60, env="JWT_EXPIRE_MINUTES")

    # Logging
    log_level: str = Field(default="INFO", env="LOG_LEVEL")
    debug: bool = Field(default=False, env="DEBUG")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"

    @property
    def is_openrouter(self) -> bool:
        return self.llm_provider.lower() == "openrouter"

    @property
    def is_gemini(self) -> bool:
        return self.llm_provider.lower() == "gemini"

    @property
    def llm_api_key(self) -> Optional[str]:
        if self.is_openrouter:
            return self.openrouter_api_key
        if self.is_gemini:
            return self.gemini_api_key
        return self.openai_api_key

    @property
    def llm_model_id(self) -> str:
        if self.is_openrouter:
            return self.openrouter_llm_model
        if self.is_gemini:
            return self.gemini_llm_model
        return self.openai_llm_model

    @property
    def llm_base_url(self) -> Optional[str]:
        if self.is_openrouter:
            return "https://openrouter.ai/api/v1"
        if self.is_gemini:
            return "https://generativelanguage.googleapis.com/v1beta/openai/"
        return None

    @property
    def cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def twilio_to_numbers_list(self) -> List[str]:
        return [n.strip() for n in self.twilio_to_numbers.split(",") if n.strip()]

    @property
    def crm_configured(self) -> bool:
        return self.crm_enabled and bool(self.crm_api_key) and bool(self.crm_location_id)

    @property
    def twilio_configured(self) -> bool:
        return (
            self.twilio_enabled
            and bool(self.twilio_account_sid)
            and bool(self.twilio_auth_token)
            and bool(self.twilio_from_number)
            and bool(self.twilio_to_numbers_list)
        )


@lru_cache()
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
