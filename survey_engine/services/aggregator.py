from __future__ import annotations

import logging
from collections import Counter
from typing import Dict, List, Optional, Tuple

from survey_engine.models.analysis import AnswerGroup, QuestionResults, SurveyResults, SurveySummary
from survey_engine.models.responses import ResponseRecord
from survey_engine.models.survey import OTHER_LABEL, OTHER_OPTION
from survey_engine.services.catalog import QuestionCatalog
from survey_engine.services.survey_database import SurveyDatabaseInterface, get_survey_database

logger = logging.getLogger(__name__)

GroupKey = Tuple[str, Optional[str]]


class ResultsAggregator:
    """Compute answer distributions and completion metrics for a survey.

    Reads are snapshot reads with no isolation across the whole aggregation,
    so figures may trail answers that arrive while the report is built.
    """

    def __init__(
        self,
        database: SurveyDatabaseInterface | None = None,
        *,
        catalog: QuestionCatalog | None = None,
    ) -> None:
        self._database = database or get_survey_database()
        self._catalog = catalog or QuestionCatalog(self._database)

    def compute(self, survey_id: str) -> SurveyResults:
        catalog = self._catalog.load(survey_id, include_inactive=True)
        total_started, total_completed = self._database.session_counts(catalog.survey_id)
        responses = self._database.list_responses(catalog.survey_id)

        by_question: Dict[str, List[ResponseRecord]] = {}
        for response in responses:
            by_question.setdefault(response.question_id, []).append(response)

        question_results = [
            QuestionResults(
                question_id=question.id,
                question_text=question.question_text,
                question_type=question.question_type,
                order_index=question.order_index,
                **_distribution(by_question.get(question.id, [])),
            )
            for question in catalog.questions
        ]

        logger.debug(
            "Aggregated survey=%s sessions=%d completed=%d responses=%d",
            catalog.survey_id,
            total_started,
            total_completed,
            len(responses),
        )
        return SurveyResults(
            survey_id=catalog.survey_id,
            survey_title=catalog.survey.title,
            total_started=total_started,
            total_completed=total_completed,
            completion_rate=completion_rate(total_started, total_completed),
            questions=question_results,
        )

    def summaries(self) -> List[SurveySummary]:
        """Return every survey with its session counts, newest first."""

        return [
            SurveySummary(
                survey_id=stats.survey.id,
                title=stats.survey.title,
                description=stats.survey.description,
                active=stats.survey.active,
                created_at=stats.survey.created_at,
                total_started=stats.total_started,
                total_completed=stats.total_completed,
            )
            for stats in self._database.survey_stats()
        ]


def completion_rate(total_started: int, total_completed: int) -> float:
    """Completed sessions as a percentage of started sessions (0 when none)."""

    if total_started <= 0:
        return 0.0
    return total_completed / total_started * 100


def display_value(answer_value: str, answer_text: Optional[str]) -> str:
    if answer_value == OTHER_OPTION and answer_text:
        return f"{OTHER_LABEL}: {answer_text}"
    return answer_value


def _distribution(responses: List[ResponseRecord]) -> Dict[str, object]:
    # Counter keeps first-seen order, so equal counts stay in arrival order.
    counts: Counter[GroupKey] = Counter(
        (response.answer_value, response.answer_text) for response in responses
    )
    total = sum(counts.values())

    answers = [
        AnswerGroup(
            value=display_value(answer_value, answer_text),
            answer_value=answer_value,
            answer_text=answer_text,
            count=count,
            percentage=(count / total * 100) if total > 0 else 0.0,
        )
        for (answer_value, answer_text), count in counts.most_common()
    ]
    return {"total_responses": total, "answers": answers}


__all__ = ["ResultsAggregator", "completion_rate", "display_value"]
