"""
Lead Scoring Model for the lead qualification engine.

Pure functions over (answers, form config). No I/O, no randomness:
the same answers always produce the same breakdown regardless of the
order in which they were collected.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .form_config import (
    AnswerUnit,
    FormConfig,
    FormOption,
    QuestionType,
    Thresholds,
    answer_value,
    answered_weight,
    get_sorted_questions,
    iter_answer_units,
)

logger = logging.getLogger(__name__)


class LeadClassification(str, Enum):
    """Lead qualification tiers."""
    HOT = "HOT"
    WARM = "WARM"
    COLD = "COLD"


@dataclass
class ScoreBreakdown:
    """Score result: per-category buckets, per-question points and total."""
    buckets: Dict[str, int] = field(default_factory=dict)
    by_question: Dict[str, int] = field(default_factory=dict)
    total: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "buckets": dict(self.buckets),
            "byQuestion": dict(self.by_question),
            "total": self.total,
        }


@dataclass
class NextQuestion:
    """The next unit the lead still has to answer."""
    unit: AnswerUnit

    @property
    def id(self) -> str:
        return self.unit.id

    @property
    def is_conditional(self) -> bool:
        return self.unit.is_conditional

    def to_dict(self) -> Dict[str, Any]:
        return self.unit.to_dict()


@dataclass
class LeadEvaluation:
    """Everything derived from an answer set under a given config."""
    breakdown: ScoreBreakdown
    classification: LeadClassification
    is_complete: bool
    next_question: Optional[NextQuestion]
    answered_questions: int
    total_questions: int

    @property
    def total(self) -> int:
        return self.breakdown.total


def resolve_option_points(options: Optional[List[FormOption]], value: str) -> int:
    """Points of the option whose value (or label) matches, 0 if none does."""
    if not value or not options:
        return 0
    for option in options:
        if option.value == value or option.label == value:
            return option.points
    return 0


def score(answers: Mapping[str, Any], config: FormConfig) -> ScoreBreakdown:
    """
    Score an answer set against a form configuration.

    Select questions add the chosen option's points; text/email/tel add
    the answered weight when non-empty. A triggered conditional field
    adds its own points when answered. Answer keys unknown to the config
    are ignored.
    """
    breakdown = ScoreBreakdown()

    for question in config.questions:
        value = answer_value(answers, question.id)
        if question.type == QuestionType.SELECT:
            points = resolve_option_points(question.options, value)
        else:
            points = answered_weight(question, config) if value else 0

        cond = question.conditional_field
        if cond is not None and value == cond.show_when and cond.points:
            if answer_value(answers, cond.id):
                points += cond.points

        breakdown.by_question[question.id] = points
        breakdown.buckets[question.category] = breakdown.buckets.get(question.category, 0) + points
        breakdown.total += points

    return breakdown


def classify(total: int, thresholds: Thresholds) -> LeadClassification:
    """Classify a score. Boundaries are inclusive on the higher tier."""
    if total >= thresholds.hot:
        return LeadClassification.HOT
    if total >= thresholds.warm:
        return LeadClassification.WARM
    return LeadClassification.COLD


def next_question(answers: Mapping[str, Any], config: FormConfig) -> Optional[NextQuestion]:
    """
    Find the next required unit without an answer.

    A triggered conditional field with an empty answer is returned even
    though its parent is answered. Optional questions are never returned.
    Returns None when the answer set is complete.
    """
    for unit in iter_answer_units(config, answers):
        if not unit.required:
            continue
        if unit.is_conditional and not unit.triggered:
            continue
        if not answer_value(answers, unit.id):
            return NextQuestion(unit=unit)
    return None


def is_complete(answers: Mapping[str, Any], config: FormConfig) -> bool:
    return next_question(answers, config) is None


def progress_counts(answers: Mapping[str, Any], config: FormConfig) -> Tuple[int, int]:
    """(answered, total) over applicable units: all questions plus triggered conditionals."""
    answered = 0
    total = 0
    for unit in iter_answer_units(config, answers):
        if unit.is_conditional and not unit.triggered:
            continue
        total += 1
        if answer_value(answers, unit.id):
            answered += 1
    return answered, total


def evaluate(answers: Mapping[str, Any], config: FormConfig) -> LeadEvaluation:
    """Recompute every derived value for an answer set."""
    breakdown = score(answers, config)
    pending = next_question(answers, config)
    answered, total = progress_counts(answers, config)
    return LeadEvaluation(
        breakdown=breakdown,
        classification=classify(breakdown.total, config.thresholds),
        is_complete=pending is None,
        next_question=pending,
        answered_questions=answered,
        total_questions=total,
    )


def scorable_ids(config: FormConfig) -> List[str]:
    """Every answer key the config knows about, in completion order."""
    ids: List[str] = []
    for question in get_sorted_questions(config):
        ids.append(question.id)
        if question.conditional_field is not None:
            ids.append(question.conditional_field.id)
    return ids
