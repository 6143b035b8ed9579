"""
Form Configuration Model for the lead qualification engine.

The qualification questionnaire is operator-editable data, validated at
load time. Question ids are stable keys: they index the answer map, the
named lead columns and the CRM field mapping.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterator, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

logger = logging.getLogger(__name__)


class FormConfigError(ValueError):
    """Raised when a form configuration fails validation."""


class QuestionType(str, Enum):
    TEXT = "text"
    EMAIL = "email"
    TEL = "tel"
    SELECT = "select"


class FormOption(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    value: str
    label: str
    points: int = 0


class ConditionalField(BaseModel):
    """Follow-up question shown only when the parent answer equals ``show_when``."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(..., min_length=1)
    title: str
    show_when: str = Field(..., alias="showWhen")
    type: QuestionType = QuestionType.TEXT
    required: bool = True
    placeholder: Optional[str] = None
    points: int = 0
    crm_field_mapping: Optional[str] = Field(default=None, alias="crmFieldMapping")


class Question(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(..., min_length=1)
    order: int
    title: str
    type: QuestionType
    required: bool = True
    placeholder: Optional[str] = None
    options: Optional[List[FormOption]] = None
    conditional_field: Optional[ConditionalField] = Field(default=None, alias="conditionalField")
    crm_field_mapping: Optional[str] = Field(default=None, alias="crmFieldMapping")
    category: str = "general"
    # Weight of a non-empty answer for text/email/tel questions.
    points: Optional[int] = None

    @model_validator(mode="after")
    def _check_options(self) -> "Question":
        if self.type == QuestionType.SELECT and not self.options:
            raise ValueError(f"select question '{self.id}' needs at least one option")
        if self.conditional_field and self.type == QuestionType.SELECT:
            values = {o.value for o in self.options or []}
            if self.conditional_field.show_when not in values:
                raise ValueError(
                    f"conditional field '{self.conditional_field.id}' triggers on "
                    f"'{self.conditional_field.show_when}', which is not an option of '{self.id}'"
                )
        return self


class Thresholds(BaseModel):
    model_config = ConfigDict(extra="ignore")

    hot: int
    warm: int

    @model_validator(mode="after")
    def _check_order(self) -> "Thresholds":
        if self.hot < self.warm:
            raise ValueError("thresholds.hot must be greater than or equal to thresholds.warm")
        return self


class FormConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    questions: List[Question]
    thresholds: Thresholds
    answered_weight: int = Field(default=1, alias="answeredWeight")
    max_score: int = Field(default=0, alias="maxScore")

    @model_validator(mode="after")
    def _check_ids(self) -> "FormConfig":
        seen = set()
        for question in self.questions:
            if question.id in seen:
                raise ValueError(f"duplicate question id '{question.id}'")
            seen.add(question.id)
        for question in self.questions:
            cond = question.conditional_field
            if cond is None:
                continue
            if cond.id in seen:
                raise ValueError(
                    f"conditional field id '{cond.id}' collides with another question id"
                )
            seen.add(cond.id)
        return self

    def find_question(self, question_id: str) -> Optional[Question]:
        for question in self.questions:
            if question.id == question_id:
                return question
        return None

    def to_public_dict(self) -> Dict[str, Any]:
        """Serialize with the camelCase keys the front-ends use."""
        data = self.model_dump(by_alias=True, exclude_none=True, mode="json")
        data["questions"] = [
            q.model_dump(by_alias=True, exclude_none=True, mode="json")
            for q in get_sorted_questions(self)
        ]
        return data


@dataclass(frozen=True)
class AnswerUnit:
    """A single answerable unit: a top-level question or a conditional follow-up."""

    id: str
    title: str
    type: QuestionType
    required: bool
    options: Optional[List[FormOption]] = None
    placeholder: Optional[str] = None
    is_conditional: bool = False
    parent_id: Optional[str] = None
    triggered: bool = True

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "type": self.type.value,
            "required": self.required,
            "isConditional": self.is_conditional,
        }
        if self.options:
            data["options"] = [{"value": o.value, "label": o.label} for o in self.options]
        if self.placeholder:
            data["placeholder"] = self.placeholder
        if self.parent_id:
            data["parentId"] = self.parent_id
        return data


def get_sorted_questions(config: FormConfig) -> List[Question]:
    """Return questions ordered by ``order`` (stable for ties)."""
    return sorted(config.questions, key=lambda q: q.order)


def answer_value(answers: Mapping[str, Any], key: str) -> str:
    value = answers.get(key)
    if value is None:
        return ""
    return str(value).strip()


def iter_answer_units(
    config: FormConfig, answers: Optional[Mapping[str, Any]] = None
) -> Iterator[AnswerUnit]:
    """
    Yield every answerable unit in completion order.

    A conditional field follows its parent immediately. Its ``triggered``
    flag is True only when the parent answer equals the trigger value.
    """
    answers = answers or {}
    for question in get_sorted_questions(config):
        yield AnswerUnit(
            id=question.id,
            title=question.title,
            type=question.type,
            required=question.required,
            options=question.options,
            placeholder=question.placeholder,
        )
        cond = question.conditional_field
        if cond is not None:
            yield AnswerUnit(
                id=cond.id,
                title=cond.title,
                type=cond.type,
                required=cond.required,
                placeholder=cond.placeholder,
                is_conditional=True,
                parent_id=question.id,
                triggered=answer_value(answers, question.id) == cond.show_when,
            )


def answered_weight(question: Question, config: FormConfig) -> int:
    """Weight a non-select question contributes when answered."""
    if question.points is not None:
        return question.points
    return config.answered_weight


def question_max_points(question: Question, config: FormConfig) -> int:
    if question.type == QuestionType.SELECT:
        return max((o.points for o in question.options or []), default=0)
    return answered_weight(question, config)


def calculate_max_score(config: FormConfig) -> int:
    """Sum of the maximum obtainable weight of every question and conditional field."""
    total = 0
    for question in config.questions:
        total += question_max_points(question, config)
        if question.conditional_field is not None:
            total += max(question.conditional_field.points, 0)
    return total


def normalize_config(raw: Any) -> FormConfig:
    """
    Validate a raw configuration and recompute derived values.

    ``maxScore`` is never trusted from input. Questions are returned sorted.

    Raises:
        FormConfigError: if the configuration is invalid
    """
    if isinstance(raw, FormConfig):
        raw = raw.model_dump(by_alias=True)
    try:
        config = FormConfig.model_validate(raw)
    except ValidationError as e:
        raise FormConfigError(str(e)) from e
    config.questions = get_sorted_questions(config)
    config.max_score = calculate_max_score(config)
    return config


# Question ids that map to named columns on the form_leads table.
KNOWN_FIELD_COLUMNS: Dict[str, str] = {
    "nome": "nome",
    "email": "email",
    "telefone": "telefone",
    "cidadeEstado": "cidade_estado",
    "tipoNegocio": "tipo_negocio",
    "tipoNegocioOutro": "tipo_negocio_outro",
    "tempoNegocio": "tempo_negocio",
    "situacaoMarketing": "situacao_marketing",
    "orcamentoAnuncios": "orcamento_anuncios",
    "principalDesafio": "principal_desafio",
    "expectativaTempo": "expectativa_tempo",
}

NAME_FIELD_ID = "nome"
EMAIL_FIELD_ID = "email"
PHONE_FIELD_ID = "telefone"


def contact_field_ids(config: FormConfig) -> Dict[str, str]:
    """
    Locate the questions that carry the lead's contact details.

    The phone is the first ``tel`` unit, the email the first ``email``
    unit and the name the first top-level ``text`` question, in completion
    order. Roles with no matching question fall back to the named columns.
    """
    ids = {"name": NAME_FIELD_ID, "email": EMAIL_FIELD_ID, "phone": PHONE_FIELD_ID}
    found = set()
    for unit in iter_answer_units(config):
        if unit.type == QuestionType.TEL and "phone" not in found:
            ids["phone"] = unit.id
            found.add("phone")
        elif unit.type == QuestionType.EMAIL and "email" not in found:
            ids["email"] = unit.id
            found.add("email")
        elif unit.type == QuestionType.TEXT and not unit.is_conditional and "name" not in found:
            ids["name"] = unit.id
            found.add("name")
    return ids


def _select(qid, order, title, options, category, **extra) -> Dict[str, Any]:
    return {
        "id": qid,
        "order": order,
        "title": title,
        "type": "select",
        "required": True,
        "category": category,
        "options": [{"value": v, "label": v, "points": p} for v, p in options],
        **extra,
    }


DEFAULT_FORM_CONFIG_DATA: Dict[str, Any] = {
    "questions": [
        {"id": "nome", "order": 1, "title": "Qual é o seu nome completo?", "type": "text",
         "required": True, "placeholder": "Digite seu nome completo", "category": "contato"},
        {"id": "email", "order": 2, "title": "Qual é o seu email?", "type": "email",
         "required": True, "placeholder": "exemplo@email.com", "category": "contato"},
        {"id": "telefone", "order": 3, "title": "Qual é o seu Celular/WhatsApp?", "type": "tel",
         "required": True, "placeholder": "(555) 123-4567", "category": "contato"},
        _select(
            "localizacao", 4, "Onde você está hoje?",
            [
                ("Já moro nos EUA", 10),
                ("Estou no Brasil, mas tenho negócio nos EUA", 8),
                ("Estou me mudando para os EUA em breve", 7),
                ("Outro país", 5),
            ],
            "perfil",
            conditionalField={
                "id": "cidadeEstado",
                "title": "Em qual cidade/estado?",
                "showWhen": "Já moro nos EUA",
                "placeholder": "Ex: Orlando, FL",
            },
        ),
        _select(
            "tipoNegocio", 5, "Qual o seu tipo de negócio?",
            [
                ("Cleaning Services", 10),
                ("Landscaping", 10),
                ("Construction/Remodeling", 10),
                ("Painting", 10),
                ("Handyman", 10),
                ("Outro", 5),
            ],
            "perfil",
            conditionalField={
                "id": "tipoNegocioOutro",
                "title": "Descreva seu tipo de negócio",
                "showWhen": "Outro",
                "placeholder": "Ex: Consultoria, Educação, Tecnologia, etc.",
            },
        ),
        _select(
            "tempoNegocio", 6, "Há quanto tempo você tem esse negócio?",
            [
                ("Menos de 6 meses", 3),
                ("6 meses a 1 ano", 7),
                ("1 a 3 anos", 10),
                ("Mais de 3 anos", 8),
            ],
            "perfil",
        ),
        _select(
            "situacaoMarketing", 7, "Como está sua captação de clientes hoje?",
            [
                ("Dependo só de indicações", 8),
                ("Já tentei anúncios por conta própria, sem muito resultado", 10),
                ("Já contratei alguém/agência e não funcionou", 10),
                ("Tenho alguns resultados, mas quero escalar", 9),
                ("Ainda não comecei nenhuma estratégia de marketing", 5),
            ],
            "marketing",
        ),
        _select(
            "orcamentoAnuncios", 8,
            "Para gerar clientes com consistência, é necessário investir em marketing "
            "(anúncios e/ou estrutura). Como isso se encaixa na sua realidade hoje?",
            [
                ("Sim, consigo investir em marketing para acelerar o crescimento", 10),
                ("Consigo começar com pouco e aumentar conforme os resultados", 8),
                ("No momento não consigo investir nisso", 3),
            ],
            "investimento",
        ),
        _select(
            "principalDesafio", 9, "Qual o maior obstáculo para crescer seu negócio hoje?",
            [
                ("Não tenho clientes suficientes", 8),
                ("Gasto em marketing mas não vejo retorno", 10),
                ("Dependo de indicações e não tenho controle sobre meu fluxo de leads", 9),
                ("Não sei por onde começar no marketing digital", 7),
                ("Tenho clientes, mas não consigo cobrar o que meu serviço vale", 8),
            ],
            "marketing",
        ),
        _select(
            "expectativaTempo", 10,
            "Nossos clientes geralmente veem os primeiros leads em 2-4 semanas e resultados "
            "consistentes em 60-90 dias. Isso funciona para você?",
            [
                ("Sim, entendo que resultado sólido leva tempo", 10),
                ("Preciso de algo mais rápido", 5),
                ("Não tenho certeza ainda", 3),
            ],
            "expectativa",
        ),
    ],
    # Max score is 73: seven selects at 10 plus three contact fields at 1.
    "thresholds": {"hot": 60, "warm": 45},
    "answeredWeight": 1,
}


def default_form_config() -> FormConfig:
    """Fresh copy of the built-in questionnaire."""
    return normalize_config(DEFAULT_FORM_CONFIG_DATA)


DEFAULT_FORM_CONFIG = default_form_config()
