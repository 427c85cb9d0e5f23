from __future__ import annotations

import logging

from survey_engine.core.errors import NotFoundError, ValidationError
from survey_engine.models.survey import Question, Survey, SurveyCatalog
from survey_engine.services.survey_database import SurveyDatabaseInterface, get_survey_database

logger = logging.getLogger(__name__)


class QuestionCatalog:
    """Read-only access to surveys and their ordered questions."""

    def __init__(self, database: SurveyDatabaseInterface | None = None) -> None:
        self._database = database or get_survey_database()

    def load(self, survey_id: str | None, *, include_inactive: bool = False) -> SurveyCatalog:
        """Return the survey with its questions sorted by ``order_index``.

        Respondent-facing callers only ever see active surveys; the results and
        export readers pass ``include_inactive`` so closed surveys stay
        reportable.
        """

        survey = self.get_survey(survey_id, include_inactive=include_inactive)
        questions = self._database.list_questions(survey.id)
        return SurveyCatalog(survey=survey, questions=questions)

    def get_survey(self, survey_id: str | None, *, include_inactive: bool = False) -> Survey:
        cleaned = (survey_id or "").strip()
        if not cleaned:
            raise ValidationError("survey_id is required")

        survey = self._database.get_survey(cleaned)
        if survey is None or (not survey.active and not include_inactive):
            logger.info("Survey %s requested but not found or inactive", cleaned)
            raise NotFoundError("Survey not found or inactive")
        return survey

    def get_question(self, survey_id: str, question_id: str) -> Question:
        question = self._database.get_question(survey_id, question_id)
        if question is None:
            raise NotFoundError(f"Question {question_id} is not part of survey {survey_id}")
        return question


__all__ = ["QuestionCatalog"]
