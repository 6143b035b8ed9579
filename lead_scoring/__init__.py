"""
Lead Scoring Module for the Skale lead qualification service.

This module provides lead qualification and scoring capabilities:
- Form configuration model (questions, weights, thresholds)
- Scoring and HOT/WARM/COLD classification
- Lead progress store (idempotent merge/recompute)
- Side-effect dispatch (staff SMS, CRM sync)
"""

from .form_config import (
    FormConfig,
    FormConfigError,
    Question,
    DEFAULT_FORM_CONFIG,
    normalize_config,
)
from .scoring_model import (
    LeadClassification,
    LeadEvaluation,
    ScoreBreakdown,
    classify,
    evaluate,
    next_question,
    score,
)
from .progress_store import LeadProgressStore, ProgressPayload, UpsertContext, UpsertResult
from .crm_client import CrmClient, CrmContact, CrmError
from .dispatcher import SideEffectDispatcher

__all__ = [
    "FormConfig",
    "FormConfigError",
    "Question",
    "DEFAULT_FORM_CONFIG",
    "normalize_config",
    "LeadClassification",
    "LeadEvaluation",
    "ScoreBreakdown",
    "classify",
    "evaluate",
    "next_question",
    "score",
    "LeadProgressStore",
    "ProgressPayload",
    "UpsertContext",
    "UpsertResult",
    "CrmClient",
    "CrmContact",
    "CrmError",
    "SideEffectDispatcher",
]
