from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Dict, Iterable, List, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator, model_validator

OTHER_OPTION = "other"
OTHER_LABEL = "Other"


class QuestionType(str, Enum):
    """Every question shape the runner knows how to render."""

    SINGLE_CHOICE = "single_choice"
    SINGLE_CHOICE_WITH_OTHER = "single_choice_with_other"
    MULTI_SELECT_WITH_OTHER = "multi_select_with_other"
    CONTACT_VERIFICATION = "contact_verification"
    FREE_TEXT = "free_text"


class Survey(BaseModel):
    """Survey header row. Immutable while a respondent is answering."""

    id: str = Field(..., min_length=1)
    title: str
    description: str | None = None
    active: bool = True
    created_at: str | None = None

    model_config = {"extra": "forbid", "frozen": True}


class _QuestionBase(BaseModel):
    id: str = Field(..., min_length=1)
    survey_id: str = Field(..., min_length=1)
    question_text: str = Field(..., min_length=1)
    required: bool = True
    order_index: int

    model_config = {"extra": "forbid", "frozen": True}

    @property
    def has_options(self) -> bool:
        return False

    @property
    def has_other(self) -> bool:
        return False

    def to_payload(self) -> Dict[str, Any]:
        """Return the wire representation used by the catalog endpoint."""

        return self.model_dump(mode="json")


class _ChoiceQuestion(_QuestionBase):
    options: List[str]
    randomize: bool = True

    @field_validator("options", mode="before")
    @classmethod
    def _stringify_options(cls, value: Iterable[Union[str, int]] | None) -> List[str]:
        if value is None:
            raise TypeError("options must be provided")
        if isinstance(value, str):
            raise TypeError("options must be provided as a sequence, not a single string")
        return [str(option) for option in value]

    @model_validator(mode="after")
    def _ensure_valid_options(self) -> "_ChoiceQuestion":
        if not self.options:
            raise ValueError("choice questions must define at least one option")
        if len(set(self.options)) != len(self.options):
            raise ValueError("option labels must be unique within a question")
        if OTHER_OPTION in self.options:
            raise ValueError(f"'{OTHER_OPTION}' is reserved for the free-text choice")
        return self

    @property
    def has_options(self) -> bool:
        return True

    def accepts(self, label: str) -> bool:
        """Return True when ``label`` is a valid pick for this question."""

        if label in self.options:
            return True
        return self.has_other and label == OTHER_OPTION


class SingleChoiceQuestion(_ChoiceQuestion):
    question_type: Literal["single_choice"] = "single_choice"


class SingleChoiceWithOtherQuestion(_ChoiceQuestion):
    question_type: Literal["single_choice_with_other"] = "single_choice_with_other"

    @property
    def has_other(self) -> bool:
        return True


class MultiSelectWithOtherQuestion(_ChoiceQuestion):
    question_type: Literal["multi_select_with_other"] = "multi_select_with_other"
    max_selections: int = Field(default=3, ge=1)

    @property
    def has_other(self) -> bool:
        return True


class ContactVerificationQuestion(_QuestionBase):
    question_type: Literal["contact_verification"] = "contact_verification"
    options: None = None


class FreeTextQuestion(_QuestionBase):
    question_type: Literal["free_text"] = "free_text"
    options: None = None


Question = Annotated[
    Union[
        SingleChoiceQuestion,
        SingleChoiceWithOtherQuestion,
        MultiSelectWithOtherQuestion,
        ContactVerificationQuestion,
        FreeTextQuestion,
    ],
    Field(discriminator="question_type"),
]

QUESTION_ADAPTER: TypeAdapter[Question] = TypeAdapter(Question)


def parse_question(data: Dict[str, Any]) -> Question:
    """Validate a raw mapping into the matching question variant."""

    return QUESTION_ADAPTER.validate_python(data)


class SurveyCatalog(BaseModel):
    """A survey together with its questions in authoring order."""

    survey: Survey
    questions: List[Question] = Field(default_factory=list)

    model_config = {"extra": "forbid"}

    @model_validator(mode="after")
    def _order_questions(self) -> "SurveyCatalog":
        seen: set[int] = set()
        for question in self.questions:
            if question.survey_id != self.survey.id:
                raise ValueError(f"question {question.id} belongs to survey {question.survey_id}")
            if question.order_index in seen:
                raise ValueError(f"duplicate order_index {question.order_index} in survey {self.survey.id}")
            seen.add(question.order_index)
        self.questions.sort(key=lambda question: question.order_index)
        return self

    @property
    def survey_id(self) -> str:
        return self.survey.id

    def question(self, question_id: str) -> Optional[Question]:
        for question in self.questions:
            if question.id == question_id:
                return question
        return None

    def to_payload(self) -> Dict[str, Any]:
        return {
            "survey": {
                "id": self.survey.id,
                "title": self.survey.title,
                "description": self.survey.description,
                "active": self.survey.active,
            },
            "questions": [question.to_payload() for question in self.questions],
        }


__all__ = [
    "OTHER_OPTION",
    "OTHER_LABEL",
    "QuestionType",
    "Survey",
    "SingleChoiceQuestion",
    "SingleChoiceWithOtherQuestion",
    "MultiSelectWithOtherQuestion",
    "ContactVerificationQuestion",
    "FreeTextQuestion",
    "Question",
    "QUESTION_ADAPTER",
    "parse_question",
    "SurveyCatalog",
]
