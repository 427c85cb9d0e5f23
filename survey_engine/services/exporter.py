from __future__ import annotations

import csv
import io
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from survey_engine.services.catalog import QuestionCatalog
from survey_engine.services.survey_database import ExportRow, SurveyDatabaseInterface, get_survey_database

logger = logging.getLogger(__name__)

CSV_HEADERS: Sequence[str] = (
    "Respondent ID",
    "Question",
    "Answer",
    "Other Text",
    "Original Position",
    "Answered At",
    "Started At",
    "Completed At",
    "Status",
)


def _csv_line(cells: Sequence[Any]) -> str:
    buffer = io.StringIO()
    # With "\r\n" as terminator the writer quotes cells holding either character.
    csv.writer(buffer, lineterminator="\r\n", quoting=csv.QUOTE_MINIMAL).writerow(cells)
    return buffer.getvalue()[:-2]


class ExportFormat(str, Enum):
    CSV = "csv"
    JSON = "json"


class ExportPipeline:
    """Serialise every response of a survey for spreadsheets or archival."""

    def __init__(
        self,
        database: SurveyDatabaseInterface | None = None,
        *,
        catalog: QuestionCatalog | None = None,
    ) -> None:
        self._database = database or get_survey_database()
        self._catalog = catalog or QuestionCatalog(self._database)

    def rows(self, survey_id: str) -> List[ExportRow]:
        survey = self._catalog.get_survey(survey_id, include_inactive=True)
        return self._database.export_rows(survey.id)

    def to_csv(self, survey_id: str) -> str:
        """Return one CSV row per response.

        Cells containing a comma, a quote or a line break (``\\n`` or ``\\r``)
        are quoted with embedded quotes doubled; rows end with a bare newline.
        """

        rows = self.rows(survey_id)
        lines = [_csv_line(CSV_HEADERS)]
        for row in rows:
            lines.append(
                _csv_line(
                    [
                        row.respondent_id,
                        row.question_text,
                        row.answer_value,
                        row.answer_text or "",
                        "" if row.original_position is None else row.original_position,
                        row.answered_at,
                        row.started_at or "",
                        row.completed_at or "",
                        "Complete" if row.completed_at else "Partial",
                    ]
                )
            )
        logger.info("Exported %d responses for survey=%s as csv", len(rows), survey_id)
        return "\n".join(lines)

    def to_archive(self, survey_id: str, *, exported_at: Optional[datetime] = None) -> Dict[str, Any]:
        """Return a nested per-respondent document plus the parsed catalog."""

        catalog = self._catalog.load(survey_id, include_inactive=True)
        rows = self._database.export_rows(catalog.survey_id)
        sessions = {session.respondent_id: session for session in self._database.list_sessions(catalog.survey_id)}

        by_respondent: Dict[str, Dict[str, Any]] = {}
        for row in rows:
            entry = by_respondent.get(row.respondent_id)
            if entry is None:
                session = sessions.get(row.respondent_id)
                completed_at = session.completed_at if session else None
                entry = {
                    "respondent_id": row.respondent_id,
                    "started_at": session.started_at if session else None,
                    "completed_at": completed_at,
                    "is_complete": completed_at is not None,
                    "responses": [],
                }
                by_respondent[row.respondent_id] = entry

            entry["responses"].append(
                {
                    "question_id": row.question_id,
                    "question_text": row.question_text,
                    "question_order": row.order_index,
                    "answer_value": row.answer_value,
                    "answer_text": row.answer_text,
                    "original_position": row.original_position,
                    "answered_at": row.answered_at,
                }
            )

        completed = sum(1 for session in sessions.values() if session.is_complete)
        timestamp = exported_at or datetime.now(timezone.utc)
        logger.info("Exported %d respondents for survey=%s as json", len(by_respondent), catalog.survey_id)
        return {
            "export_metadata": {
                "survey_id": catalog.survey_id,
                "survey_title": catalog.survey.title,
                "survey_description": catalog.survey.description,
                "survey_created_at": catalog.survey.created_at,
                "exported_at": timestamp.isoformat(),
                "total_respondents": len(sessions),
                "completed_responses": completed,
                "partial_responses": len(sessions) - completed,
            },
            "questions": [question.to_payload() for question in catalog.questions],
            "responses": list(by_respondent.values()),
        }


def csv_filename(survey_id: str, *, now: Optional[datetime] = None) -> str:
    """Attachment filename carrying the survey id and a millisecond timestamp."""

    moment = now or datetime.now(timezone.utc)
    return f"survey-{survey_id}-{int(moment.timestamp() * 1000)}.csv"


def json_filename(survey_id: str, *, now: Optional[datetime] = None) -> str:
    moment = now or datetime.now(timezone.utc)
    return f"survey-{survey_id}-export-{int(moment.timestamp() * 1000)}.json"


__all__ = ["CSV_HEADERS", "ExportFormat", "ExportPipeline", "csv_filename", "json_filename"]
