"""Tests for the form configuration model."""

import pytest

from lead_scoring.form_config import (
    DEFAULT_FORM_CONFIG,
    FormConfigError,
    calculate_max_score,
    get_sorted_questions,
    iter_answer_units,
    normalize_config,
)


def _config(**overrides):
    data = {
        "questions": [
            {"id": "b", "order": 2, "title": "B", "type": "text"},
            {"id": "a", "order": 1, "title": "A", "type": "select",
             "options": [{"value": "x", "label": "X", "points": 3}, {"value": "y", "label": "Y", "points": 7}]},
        ],
        "thresholds": {"hot": 8, "warm": 4},
    }
    data.update(overrides)
    return data


class TestNormalizeConfig:
    def test_sorts_questions_by_order(self):
        config = normalize_config(_config())
        assert [q.id for q in config.questions] == ["a", "b"]

    def test_max_score_is_recomputed(self):
        config = normalize_config(_config(maxScore=999))
        # best select option (7) + answered weight of the text question (1)
        assert config.max_score == 8

    def test_custom_answered_weight(self):
        config = normalize_config(_config(answeredWeight=3))
        assert config.max_score == 10

    def test_conditional_points_count_towards_max(self):
        data = _config()
        data["questions"][1]["conditionalField"] = {"id": "a2", "title": "More", "showWhen": "y", "points": 2}
        assert normalize_config(data).max_score == 10

    def test_duplicate_ids_rejected(self):
        data = _config()
        data["questions"][0]["id"] = "a"
        with pytest.raises(FormConfigError):
            normalize_config(data)

    def test_conditional_id_collision_rejected(self):
        data = _config()
        data["questions"][1]["conditionalField"] = {"id": "b", "title": "Dup", "showWhen": "x"}
        with pytest.raises(FormConfigError):
            normalize_config(data)

    def test_select_without_options_rejected(self):
        data = _config()
        data["questions"][1]["options"] = []
        with pytest.raises(FormConfigError):
            normalize_config(data)

    def test_trigger_must_be_an_option(self):
        data = _config()
        data["questions"][1]["conditionalField"] = {"id": "a2", "title": "More", "showWhen": "zzz"}
        with pytest.raises(FormConfigError):
            normalize_config(data)

    def test_inverted_thresholds_rejected(self):
        with pytest.raises(FormConfigError):
            normalize_config(_config(thresholds={"hot": 2, "warm": 5}))

    def test_missing_thresholds_rejected(self):
        data = _config()
        del data["thresholds"]
        with pytest.raises(FormConfigError):
            normalize_config(data)


class TestDefaultConfig:
    def test_default_max_score(self):
        assert DEFAULT_FORM_CONFIG.max_score == 73
        assert calculate_max_score(DEFAULT_FORM_CONFIG) == 73

    def test_default_questions_sorted(self):
        orders = [q.order for q in get_sorted_questions(DEFAULT_FORM_CONFIG)]
        assert orders == sorted(orders)

    def test_public_dict_uses_camel_case(self):
        data = DEFAULT_FORM_CONFIG.to_public_dict()
        assert data["maxScore"] == 73
        localizacao = next(q for q in data["questions"] if q["id"] == "localizacao")
        assert localizacao["conditionalField"]["showWhen"] == "Já moro nos EUA"


class TestAnswerUnits:
    def test_conditional_follows_parent(self, contact_config):
        ids = [u.id for u in iter_answer_units(contact_config)]
        assert ids == ["nome", "telefone", "localizacao", "cidadeEstado"]

    def test_conditional_triggered_only_on_match(self, contact_config):
        units = {u.id: u for u in iter_answer_units(contact_config, {"localizacao": "Brasil"})}
        assert units["cidadeEstado"].triggered is False
        units = {u.id: u for u in iter_answer_units(contact_config, {"localizacao": "EUA"})}
        assert units["cidadeEstado"].triggered is True
