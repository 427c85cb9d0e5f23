from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field, computed_field


class AnswerGroup(BaseModel):
    """Count of identical (answer value, free text) pairs for one question."""

    value: str
    answer_value: str
    answer_text: str | None = None
    count: int
    percentage: float

    model_config = {"extra": "forbid"}


class QuestionResults(BaseModel):
    """Answer distribution for a single question."""

    question_id: str
    question_text: str
    question_type: str
    order_index: int
    total_responses: int = 0
    answers: List[AnswerGroup] = Field(default_factory=list)

    model_config = {"extra": "forbid"}

    @property
    def has_responses(self) -> bool:
        """Return True when at least one answer was recorded."""

        return self.total_responses > 0


class SurveyResults(BaseModel):
    """Aggregated statistics for a survey, as shown on the results dashboard."""

    survey_id: str
    survey_title: str
    total_started: int = 0
    total_completed: int = 0
    completion_rate: float = 0.0
    questions: List[QuestionResults] = Field(default_factory=list)

    model_config = {"extra": "forbid"}

    @property
    def total_partial(self) -> int:
        return self.total_started - self.total_completed


class SurveySummary(BaseModel):
    """One line of the survey overview list."""

    survey_id: str
    title: str
    description: str | None = None
    active: bool = True
    created_at: str | None = None
    total_started: int = 0
    total_completed: int = 0

    model_config = {"extra": "forbid"}

    @computed_field  # type: ignore[prop-decorator]
    @property
    def completion_rate(self) -> int:
        """Completion percentage rounded to a whole number."""

        if self.total_started <= 0:
            return 0
        return round(self.total_completed / self.total_started * 100)
