from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List

from pydantic import ValidationError as PydanticValidationError

from survey_engine.core.config import settings
from survey_engine.models.survey import Question, QuestionType, Survey, SurveyCatalog, parse_question
from survey_engine.services.survey_database import SurveyDatabaseInterface

logger = logging.getLogger(__name__)


class SurveyLoader:
    """Load a survey catalog from a definition file.

    Two formats are understood. A ``.json`` file holds a ``survey`` object and
    a ``questions`` list using the catalog field names; ``survey_id`` and
    ``order_index`` may be omitted from questions and are filled in from the
    survey and the list position.

    Any other file is read as plain text where each non-empty line is a
    question. A line may specify choices using the pipe character ("|") to
    separate the question text from a comma-separated list of options:

        Which issue matters most to you? | Taxes, Schools, Roads

    Lines without a choice segment become free-text questions. Lines beginning
    with "#" or that are blank are ignored. The survey id is the file stem.

    Multi-select questions that do not set ``max_selections`` get
    ``SURVEY_MAX_SELECTIONS``.
    """

    def __init__(self, source: str | Path, *, default_max_selections: int | None = None) -> None:
        self._path = Path(source)
        self._default_max_selections = default_max_selections or settings.runner.max_selections
        if not self._path.is_file():
            raise FileNotFoundError(f"Survey file not found: {self._path}")

        if self._path.suffix.lower() == ".json":
            self._catalog = self._load_json()
        else:
            self._catalog = self._load_text()

    @property
    def catalog(self) -> SurveyCatalog:
        """Return the full catalog loaded from the file."""

        return self._catalog

    def seed(self, database: SurveyDatabaseInterface) -> SurveyCatalog:
        """Write the catalog into ``database``.

        Re-seeding refreshes question texts and order but leaves the survey's
        ``active`` flag as it is stored.
        """

        database.save_survey(self._catalog.survey, self._catalog.questions)
        logger.info(
            "Seeded survey %s (%d questions) from %s",
            self._catalog.survey_id,
            len(self._catalog.questions),
            self._path,
        )
        return self._catalog

    def _load_json(self) -> SurveyCatalog:
        try:
            payload: Dict[str, Any] = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ValueError(f"{self._path}: invalid JSON ({exc})") from exc

        try:
            survey = Survey.model_validate(payload.get("survey") or {})
            questions: List[Question] = []
            for position, raw in enumerate(payload.get("questions") or [], start=1):
                entry = dict(raw)
                entry.setdefault("survey_id", survey.id)
                entry.setdefault("order_index", position)
                if entry.get("question_type") == QuestionType.MULTI_SELECT_WITH_OTHER.value:
                    entry.setdefault("max_selections", self._default_max_selections)
                questions.append(parse_question(entry))
            return SurveyCatalog(survey=survey, questions=questions)
        except PydanticValidationError as exc:
            raise ValueError(f"{self._path}: invalid survey definition\n{exc}") from exc

    def _load_text(self) -> SurveyCatalog:
        survey_id = self._path.stem
        survey = Survey(id=survey_id, title=survey_id.replace("_", " ").replace("-", " ").title())
        questions = list(self._load_questions(survey_id))
        return SurveyCatalog(survey=survey, questions=questions)

    def _load_questions(self, survey_id: str) -> Iterable[Question]:
        order_index = 0
        with self._path.open("r", encoding="utf-8") as handle:
            for lineno, raw_line in enumerate(handle, start=1):
                line = raw_line.strip()
                if not line or line.startswith("#"):
                    continue

                order_index += 1
                question_text, choices = self._parse_line(line, lineno)
                entry: Dict[str, Any] = {
                    "id": f"{survey_id}-q{order_index}",
                    "survey_id": survey_id,
                    "question_text": question_text,
                    "order_index": order_index,
                }
                if choices:
                    entry.update(question_type="single_choice", options=choices)
                else:
                    entry.update(question_type="free_text")
                yield parse_question(entry)

    def _parse_line(self, line: str, lineno: int) -> tuple[str, List[str]]:
        if "|" not in line:
            question_text = line
            if not question_text:
                raise ValueError(f"Line {lineno}: question text cannot be empty")
            return question_text, []

        question_part, choices_part = line.split("|", maxsplit=1)
        question_text = question_part.strip()
        if not question_text:
            raise ValueError(f"Line {lineno}: question text cannot be empty")

        choices = [choice.strip() for choice in choices_part.split(",") if choice.strip()]
        if not choices:
            raise ValueError(f"Line {lineno}: choice question must define at least one option")

        return question_text, choices


__all__ = ["SurveyLoader"]
