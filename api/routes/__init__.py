"""
API Routes for the lead qualification service.
"""

from . import auth, chat, form_config, leads

__all__ = ["auth", "chat", "form_config", "leads"]
