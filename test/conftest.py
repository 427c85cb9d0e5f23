from __future__ import annotations

import os
import sys
import tempfile
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]

if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

os.environ.setdefault("SURVEY_DB_PATH", str(Path(tempfile.gettempdir()) / "survey_engine_test.sqlite"))
os.environ.setdefault("SURVEY_RANDOMIZE_OPTIONS", "true")
os.environ.setdefault("SURVEY_LOG_LEVEL", "DEBUG")

from survey_engine.API.survey_data_provider import SurveyDataProvider  # noqa: E402
from survey_engine.models.survey import (  # noqa: E402
    SingleChoiceQuestion,
    Survey,
    SurveyCatalog,
)
from survey_engine.services.survey_database import SQLiteSurveyDatabase  # noqa: E402
from survey_engine.services.survey_loader import SurveyLoader  # noqa: E402

SAMPLE_SURVEY = PROJECT_ROOT / "survey_engine" / "data" / "sample_survey.json"
SAMPLE_SURVEY_ID = "community-priorities-2025"


@pytest.fixture
def database(tmp_path: Path) -> SQLiteSurveyDatabase:
    db = SQLiteSurveyDatabase(tmp_path / "surveys.sqlite")
    db.init_schema()
    return db


@pytest.fixture
def sample_catalog(database: SQLiteSurveyDatabase) -> SurveyCatalog:
    return SurveyLoader(SAMPLE_SURVEY).seed(database)


@pytest.fixture
def poll_catalog(database: SQLiteSurveyDatabase) -> SurveyCatalog:
    """A one-question yes/no poll."""

    survey = Survey(id="poll", title="Quick poll", created_at="2025-01-01T00:00:00+00:00")
    question = SingleChoiceQuestion(
        id="poll-q1",
        survey_id="poll",
        question_text="Do you agree?",
        options=["yes", "no"],
        order_index=1,
    )
    database.save_survey(survey, [question])
    return SurveyCatalog(survey=survey, questions=[question])


@pytest.fixture
def provider(database: SQLiteSurveyDatabase, sample_catalog: SurveyCatalog) -> SurveyDataProvider:
    return SurveyDataProvider(database)
