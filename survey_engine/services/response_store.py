from __future__ import annotations

import json
import logging
from typing import Any, List, Optional

from pydantic import ValidationError as PydanticValidationError

from survey_engine.core.errors import ValidationError
from survey_engine.models.responses import ContactVerificationAnswer, ResponseRecord
from survey_engine.models.survey import (
    OTHER_OPTION,
    ContactVerificationQuestion,
    FreeTextQuestion,
    MultiSelectWithOtherQuestion,
    Question,
    SingleChoiceQuestion,
    SingleChoiceWithOtherQuestion,
)
from survey_engine.services.catalog import QuestionCatalog
from survey_engine.services.survey_database import SurveyDatabaseInterface, get_survey_database

logger = logging.getLogger(__name__)


class ResponseStore:
    """Sole write path for answers.

    ``upsert_response`` creates the (respondent, question) row or overwrites it
    and, in the same transaction, touches the respondent's session so that a
    first answer starts the session and every later answer records progress.
    """

    def __init__(
        self,
        database: SurveyDatabaseInterface | None = None,
        *,
        catalog: QuestionCatalog | None = None,
    ) -> None:
        self._database = database or get_survey_database()
        self._catalog = catalog or QuestionCatalog(self._database)

    def upsert_response(
        self,
        respondent_id: str | None,
        survey_id: str | None,
        question_id: str | None,
        answer_value: Any,
        answer_text: str | None = None,
        original_position: int | None = None,
    ) -> ResponseRecord:
        respondent = _require("respondent_id", respondent_id)
        survey = _require("survey_id", survey_id)
        question_key = _require("question_id", question_id)
        value = normalise_answer_value(answer_value)
        text = answer_text if answer_text and answer_text.strip() else None

        if original_position is not None and (
            isinstance(original_position, bool) or not isinstance(original_position, int)
        ):
            raise ValidationError("original_position must be an integer")

        question = self._catalog.get_question(survey, question_key)
        validate_answer(question, value, text)
        if isinstance(question, FreeTextQuestion) and text is None:
            text = value

        record = self._database.upsert_response(
            respondent_id=respondent,
            survey_id=survey,
            question_id=question_key,
            answer_value=value,
            answer_text=text,
            original_position=original_position,
        )
        logger.info(
            "Stored answer respondent=%s survey=%s question=%s position=%s",
            respondent,
            survey,
            question_key,
            original_position,
        )
        return record

    def get_response(self, respondent_id: str, question_id: str) -> Optional[ResponseRecord]:
        return self._database.get_response(respondent_id, question_id)

    def list_responses(self, survey_id: str, respondent_id: str | None = None) -> List[ResponseRecord]:
        return self._database.list_responses(survey_id, respondent_id)


def _require(field: str, value: str | None) -> str:
    if value is None:
        raise ValidationError(f"Missing required field: {field}")
    cleaned = str(value).strip()
    if not cleaned:
        raise ValidationError(f"Missing required field: {field}")
    return cleaned


def normalise_answer_value(answer_value: Any) -> str:
    """Return the stored string form of an answer.

    Lists (multi-select) become a JSON array, mappings (contact verification)
    a JSON object, and scalars their string form.
    """

    if answer_value is None:
        raise ValidationError("Missing required field: answer_value")
    if isinstance(answer_value, (list, tuple)):
        return json.dumps([str(item) for item in answer_value], ensure_ascii=False)
    if isinstance(answer_value, dict):
        return json.dumps(answer_value, ensure_ascii=False, sort_keys=True)

    value = str(answer_value)
    if not value.strip():
        raise ValidationError("Missing required field: answer_value")
    return value


def parse_selection(value: str) -> List[str]:
    """Decode a stored multi-select answer into its list of labels."""

    try:
        decoded = json.loads(value)
    except json.JSONDecodeError as exc:
        raise ValidationError("multi-select answers must be a JSON list of option labels") from exc
    if not isinstance(decoded, list) or not all(isinstance(item, str) for item in decoded):
        raise ValidationError("multi-select answers must be a JSON list of option labels")
    return decoded


def validate_answer(question: Question, value: str, answer_text: str | None) -> None:
    """Check ``value`` against the shape of ``question``."""

    if isinstance(question, MultiSelectWithOtherQuestion):
        selections = parse_selection(value)
        if len(set(selections)) != len(selections):
            raise ValidationError("multi-select answers cannot repeat an option")
        if len(selections) > question.max_selections:
            raise ValidationError(
                f"At most {question.max_selections} options may be selected for question {question.id}"
            )
        unknown = [label for label in selections if not question.accepts(label)]
        if unknown:
            raise ValidationError(f"Unknown options for question {question.id}: {', '.join(unknown)}")
        if OTHER_OPTION in selections and not answer_text:
            raise ValidationError("answer_text is required when 'other' is selected")
        return

    if isinstance(question, (SingleChoiceQuestion, SingleChoiceWithOtherQuestion)):
        if not question.accepts(value):
            raise ValidationError(f"'{value}' is not an option of question {question.id}")
        if value == OTHER_OPTION and not answer_text:
            raise ValidationError("answer_text is required when 'other' is selected")
        return

    if isinstance(question, ContactVerificationQuestion):
        try:
            ContactVerificationAnswer.model_validate_json(value)
        except PydanticValidationError as exc:
            raise ValidationError(f"Invalid contact verification answer: {exc.error_count()} problem(s)") from exc
        return

    if isinstance(question, FreeTextQuestion):
        return

    raise TypeError(f"Unhandled question type: {type(question).__name__}")


__all__ = [
    "ResponseStore",
    "normalise_answer_value",
    "parse_selection",
    "validate_answer",
]
