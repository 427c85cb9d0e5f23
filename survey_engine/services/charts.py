from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Tuple

from survey_engine.models.analysis import QuestionResults, SurveyResults
from survey_engine.models.survey import QuestionType

_CHOICE_TYPES = {
    QuestionType.SINGLE_CHOICE.value,
    QuestionType.SINGLE_CHOICE_WITH_OTHER.value,
    QuestionType.MULTI_SELECT_WITH_OTHER.value,
}


class ChartType(str, Enum):
    """Supported chart shapes for results visualisations."""

    BAR = "bar"
    PIE = "pie"


@dataclass(frozen=True)
class ChartData:
    """Structured payload describing a chart for the UI layer."""

    chart_type: ChartType
    labels: Tuple[str, ...]
    values: Tuple[float, ...]
    title: str
    question_id: str | None = None
    question_text: str | None = None
    description: str | None = None
    metadata: dict[str, int | float | str] = field(default_factory=dict)

    def to_series(self) -> List[Tuple[str, float]]:
        """Return data as a list of (label, value) tuples."""

        return list(zip(self.labels, self.values))

    def as_dict(self) -> dict[str, float]:
        """Return data as a simple label -> value mapping."""

        return {label: value for label, value in zip(self.labels, self.values)}


class SurveyChartBuilder:
    """Turn aggregated survey results into chart-ready data."""

    def __init__(self, results: SurveyResults, *, max_terms: int = 10) -> None:
        if results is None:
            raise ValueError("results must be provided")
        if max_terms <= 0:
            raise ValueError("max_terms must be a positive integer")

        self._results = results
        self._max_terms = max_terms

    def completion_summary(self) -> ChartData:
        """Return a chart of completed vs partial sessions."""

        completed = self._results.total_completed
        partial = max(self._results.total_partial, 0)
        return ChartData(
            chart_type=ChartType.BAR,
            labels=("Completed", "Partial"),
            values=(float(completed), float(partial)),
            title="Survey completion overview",
            description="Respondents who submitted vs. those who stopped part-way.",
            metadata={
                "total_started": self._results.total_started,
                "completed": completed,
                "partial": partial,
                "completion_rate": round(self._results.completion_rate, 1),
            },
        )

    def question_chart(self, question_id: str, *, chart_type: ChartType | str | None = None) -> ChartData:
        """Return chart data for a single question."""

        question = self._question(question_id)
        number = self._results.questions.index(question) + 1
        resolved_type = self._resolve_chart_type(chart_type, question)
        if question.question_type in _CHOICE_TYPES:
            labels, values = self._answer_distribution(question)
            description = "How often each answer was chosen."
        else:
            labels, values = self._textual_term_frequency(question)
            description = "Most common terms across the written answers."

        return ChartData(
            chart_type=resolved_type,
            labels=labels,
            values=values,
            title=f"Responses for question {number}",
            question_id=question.question_id,
            question_text=question.question_text,
            description=description,
            metadata={
                "question_type": question.question_type,
                "total_responses": question.total_responses,
            },
        )

    def all_question_charts(self, *, chart_type: ChartType | str | None = None) -> List[ChartData]:
        """Return chart data for each question with at least one recorded response."""

        return [
            self.question_chart(question.question_id, chart_type=chart_type)
            for question in self._results.questions
            if question.has_responses
        ]

    def _question(self, question_id: str) -> QuestionResults:
        for question in self._results.questions:
            if question.question_id == question_id:
                return question
        raise KeyError(f"Question {question_id} is not part of survey {self._results.survey_id}")

    def _resolve_chart_type(
        self,
        chart_type: ChartType | str | None,
        question: QuestionResults,
    ) -> ChartType:
        if chart_type is None:
            return ChartType.BAR

        if isinstance(chart_type, str):
            try:
                resolved = ChartType(chart_type)
            except ValueError as exc:
                raise ValueError(f"Unknown chart type: {chart_type}") from exc
        else:
            resolved = chart_type

        if resolved == ChartType.PIE and question.question_type not in _CHOICE_TYPES:
            raise ValueError("Pie charts are only supported for choice questions.")

        return resolved

    @staticmethod
    def _answer_distribution(question: QuestionResults) -> Tuple[Tuple[str, ...], Tuple[float, ...]]:
        if not question.answers:
            return ("No response recorded",), (0.0,)
        labels = tuple(group.value for group in question.answers)
        values = tuple(float(group.count) for group in question.answers)
        return labels, values

    def _textual_term_frequency(self, question: QuestionResults) -> Tuple[Tuple[str, ...], Tuple[float, ...]]:
        counts: Counter[str] = Counter()
        for group in question.answers:
            for token in self._tokenise(group.value):
                counts[token] += group.count

        if not counts:
            return ("No response recorded",), (0.0,)

        most_common = counts.most_common(self._max_terms)
        labels = tuple(label for label, _ in most_common)
        values = tuple(float(value) for _, value in most_common)
        return labels, values

    @staticmethod
    def _tokenise(text: str) -> Iterable[str]:
        for token in re.findall(r"[A-Za-z0-9']+", text.lower()):
            if token:
                yield token


__all__ = [
    "ChartData",
    "ChartType",
    "SurveyChartBuilder",
]
