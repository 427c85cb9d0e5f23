from __future__ import annotations

import csv
import io
import re
from datetime import datetime, timezone

import pytest

from survey_engine.core.errors import NotFoundError
from survey_engine.models.survey import SurveyCatalog
from survey_engine.services.exporter import CSV_HEADERS, ExportPipeline, csv_filename, json_filename
from survey_engine.services.response_store import ResponseStore
from survey_engine.services.session_tracker import SessionTracker
from survey_engine.services.survey_database import SQLiteSurveyDatabase

SURVEY_ID = "community-priorities-2025"


@pytest.fixture
def pipeline(database: SQLiteSurveyDatabase, sample_catalog: SurveyCatalog) -> ExportPipeline:
    return ExportPipeline(database)


def test_csv_quotes_commas_and_doubles_quotes(pipeline: ExportPipeline, database: SQLiteSurveyDatabase) -> None:
    ResponseStore(database).upsert_response("r-1", SURVEY_ID, "cp-q4", 'Smith, "the best"')

    content = pipeline.to_csv(SURVEY_ID)

    assert '"Smith, ""the best"""' in content
    assert not content.endswith("\n")


@pytest.mark.parametrize("answer", ["Line one\nLine two", "Line one\r\nLine two", "Line one\rLine two"])
def test_csv_quotes_line_breaks(pipeline: ExportPipeline, database: SQLiteSurveyDatabase, answer: str) -> None:
    ResponseStore(database).upsert_response("r-1", SURVEY_ID, "cp-q4", answer)

    content = pipeline.to_csv(SURVEY_ID)

    assert f'"{answer}"' in content
    rows = list(csv.reader(io.StringIO(content, newline="")))
    assert len(rows) == 2
    assert rows[1][2] == answer


def test_csv_quotes_carriage_return_in_respondent_id(
    pipeline: ExportPipeline, database: SQLiteSurveyDatabase, poll_catalog: SurveyCatalog
) -> None:
    ResponseStore(database).upsert_response("r\r1", "poll", "poll-q1", "yes")

    content = pipeline.to_csv("poll")

    assert content.splitlines()[0] == ",".join(CSV_HEADERS)
    assert '\n"r\r1",' in content


def test_csv_rows_are_ordered_and_carry_status(pipeline: ExportPipeline, database: SQLiteSurveyDatabase) -> None:
    store = ResponseStore(database)
    store.upsert_response("r-2", SURVEY_ID, "cp-q2", "No", original_position=1)
    store.upsert_response("r-1", SURVEY_ID, "cp-q2", "Yes", original_position=0)
    store.upsert_response("r-1", SURVEY_ID, "cp-q1", "other", answer_text="Housing", original_position=4)
    SessionTracker(database).complete_session("r-1", SURVEY_ID)

    rows = list(csv.reader(io.StringIO(pipeline.to_csv(SURVEY_ID))))

    assert tuple(rows[0]) == tuple(CSV_HEADERS)
    body = rows[1:]
    assert [(row[0], row[2]) for row in body] == [("r-1", "other"), ("r-1", "Yes"), ("r-2", "No")]
    assert body[0][3] == "Housing"
    assert body[0][4] == "4"
    assert [row[8] for row in body] == ["Complete", "Complete", "Partial"]
    assert body[2][7] == ""


def test_zero_sessions_export_is_well_formed(pipeline: ExportPipeline) -> None:
    assert pipeline.to_csv(SURVEY_ID) == ",".join(CSV_HEADERS)

    archive = pipeline.to_archive(SURVEY_ID)
    metadata = archive["export_metadata"]
    assert metadata["total_respondents"] == 0
    assert metadata["completed_responses"] == 0
    assert metadata["partial_responses"] == 0
    assert archive["responses"] == []
    assert [question["id"] for question in archive["questions"]] == ["cp-q1", "cp-q2", "cp-q3", "cp-q4", "cp-q5"]


def test_archive_groups_answers_by_respondent(pipeline: ExportPipeline, database: SQLiteSurveyDatabase) -> None:
    store = ResponseStore(database)
    store.upsert_response("r-1", SURVEY_ID, "cp-q2", "Yes", original_position=0)
    store.upsert_response("r-1", SURVEY_ID, "cp-q3", ["Donating"], original_position=4)
    store.upsert_response("r-2", SURVEY_ID, "cp-q2", "No", original_position=1)
    SessionTracker(database).complete_session("r-1", SURVEY_ID)

    exported_at = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)
    archive = pipeline.to_archive(SURVEY_ID, exported_at=exported_at)

    metadata = archive["export_metadata"]
    assert metadata["survey_id"] == SURVEY_ID
    assert metadata["survey_title"] == "Community Priorities Poll"
    assert metadata["exported_at"] == exported_at.isoformat()
    assert metadata["total_respondents"] == 2
    assert metadata["completed_responses"] == 1
    assert metadata["partial_responses"] == 1

    first, second = archive["responses"]
    assert first["respondent_id"] == "r-1"
    assert first["is_complete"] is True
    assert [entry["question_id"] for entry in first["responses"]] == ["cp-q2", "cp-q3"]
    assert first["responses"][1]["original_position"] == 4
    assert second["respondent_id"] == "r-2"
    assert second["completed_at"] is None


def test_unknown_survey_is_not_found(pipeline: ExportPipeline) -> None:
    with pytest.raises(NotFoundError):
        pipeline.to_csv("missing")


def test_filenames_carry_survey_id_and_millis() -> None:
    moment = datetime(2025, 1, 1, tzinfo=timezone.utc)

    assert csv_filename("poll", now=moment) == "survey-poll-1735689600000.csv"
    assert json_filename("poll", now=moment) == "survey-poll-export-1735689600000.json"
    assert re.fullmatch(r"survey-poll-\d{13}\.csv", csv_filename("poll"))
