"""Tests for the scoring engine."""

from lead_scoring.form_config import normalize_config
from lead_scoring.scoring_model import (
    LeadClassification,
    classify,
    evaluate,
    is_complete,
    next_question,
    score,
)


class TestScore:
    def test_partial_answers_scenario(self, scenario_config):
        answers = {"name": "Ana", "budget": "high"}
        breakdown = score(answers, scenario_config)
        assert breakdown.total == 11
        assert breakdown.by_question == {"name": 1, "budget": 10, "challenge": 0}
        assert classify(breakdown.total, scenario_config.thresholds) == LeadClassification.HOT
        assert next_question(answers, scenario_config).id == "challenge"

    def test_buckets_group_by_category(self, scenario_config):
        breakdown = score({"name": "Ana", "budget": "mid", "challenge": "leads"}, scenario_config)
        assert breakdown.buckets == {"contact": 1, "budget": 5, "pain": 1}

    def test_option_matched_by_label(self, scenario_config):
        assert score({"budget": "High"}, scenario_config).total == 10

    def test_unknown_option_scores_zero(self, scenario_config):
        assert score({"budget": "enormous"}, scenario_config).total == 0

    def test_unknown_keys_ignored(self, scenario_config):
        assert score({"name": "Ana", "legacyQuestion": "x"}, scenario_config).total == 1

    def test_blank_text_scores_zero(self, scenario_config):
        assert score({"name": "   "}, scenario_config).total == 0

    def test_order_independent(self, scenario_config):
        a = score({"name": "Ana", "budget": "low", "challenge": "c"}, scenario_config)
        b = score({"challenge": "c", "budget": "low", "name": "Ana"}, scenario_config)
        assert a == b

    def test_total_never_exceeds_max(self, scenario_config):
        full = {"name": "Ana", "budget": "high", "challenge": "c"}
        assert score(full, scenario_config).total == scenario_config.max_score


class TestClassify:
    def test_boundaries_inclusive(self, scenario_config):
        thresholds = scenario_config.thresholds
        assert classify(10, thresholds) == LeadClassification.HOT
        assert classify(9, thresholds) == LeadClassification.WARM
        assert classify(5, thresholds) == LeadClassification.WARM
        assert classify(4, thresholds) == LeadClassification.COLD
        assert classify(0, thresholds) == LeadClassification.COLD

    def test_equal_thresholds_skip_warm(self):
        config = normalize_config({
            "questions": [{"id": "q", "order": 1, "title": "Q", "type": "text"}],
            "thresholds": {"hot": 1, "warm": 1},
        })
        assert classify(1, config.thresholds) == LeadClassification.HOT
        assert classify(0, config.thresholds) == LeadClassification.COLD


class TestNextQuestion:
    def test_first_question_when_empty(self, scenario_config):
        assert next_question({}, scenario_config).id == "name"

    def test_none_when_complete(self, scenario_config):
        answers = {"name": "Ana", "budget": "low", "challenge": "c"}
        assert next_question(answers, scenario_config) is None
        assert is_complete(answers, scenario_config)

    def test_triggered_conditional_returned(self, contact_config):
        answers = {"nome": "Ana", "telefone": "555", "localizacao": "EUA"}
        pending = next_question(answers, contact_config)
        assert pending.id == "cidadeEstado"
        assert pending.is_conditional

    def test_conditional_suppressed_when_not_triggered(self, contact_config):
        answers = {"nome": "Ana", "telefone": "555", "localizacao": "Brasil"}
        assert next_question(answers, contact_config) is None

    def test_optional_questions_skipped(self):
        config = normalize_config({
            "questions": [
                {"id": "a", "order": 1, "title": "A", "type": "text", "required": False},
                {"id": "b", "order": 2, "title": "B", "type": "text"},
            ],
            "thresholds": {"hot": 2, "warm": 1},
        })
        assert next_question({}, config).id == "b"
        assert next_question({"b": "x"}, config) is None


class TestEvaluate:
    def test_progress_counts_include_triggered_conditional(self, contact_config):
        evaluation = evaluate({"nome": "Ana", "localizacao": "EUA"}, contact_config)
        assert evaluation.answered_questions == 2
        assert evaluation.total_questions == 4
        assert evaluation.next_question.id == "telefone"
        assert not evaluation.is_complete

    def test_progress_counts_exclude_suppressed_conditional(self, contact_config):
        evaluation = evaluate({"localizacao": "Brasil"}, contact_config)
        assert evaluation.total_questions == 3

    def test_max_score_reflects_config_change(self, scenario_config):
        answers = {"name": "Ana", "budget": "high"}
        before = evaluate(answers, scenario_config)

        data = scenario_config.model_dump(by_alias=True)
        data["questions"][1]["options"][2]["points"] = 20
        changed = normalize_config(data)

        after = evaluate(answers, changed)
        assert changed.max_score == scenario_config.max_score + 10
        assert after.total == before.total + 10
