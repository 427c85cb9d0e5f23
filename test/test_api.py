from __future__ import annotations

from pathlib import Path
from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from survey_engine.API.server import create_app
from survey_engine.API.survey_data_provider import SurveyDataProvider, get_data_provider
from survey_engine.core.errors import StorageUnavailableError
from survey_engine.models.survey import Survey, SurveyCatalog
from survey_engine.services.survey_database import SQLiteSurveyDatabase

SURVEY_ID = "community-priorities-2025"


@pytest.fixture
def client(provider: SurveyDataProvider) -> Iterator[TestClient]:
    app = create_app()
    app.dependency_overrides[get_data_provider] = lambda: provider
    with TestClient(app) as test_client:
        yield test_client


def _answer(client: TestClient, respondent: str, question: str, value: object, **extra: object) -> dict:
    payload = {"respondent_id": respondent, "survey_id": SURVEY_ID, "question_id": question, "answer_value": value}
    payload.update(extra)
    response = client.post("/api/survey/response", json=payload)
    assert response.status_code == 200, response.text
    return response.json()


def test_healthz(client: TestClient) -> None:
    assert client.get("/healthz").json() == {"status": "ok"}


def test_get_survey_returns_ordered_questions(client: TestClient) -> None:
    response = client.get(f"/api/survey/{SURVEY_ID}")

    assert response.status_code == 200
    body = response.json()
    assert body["survey"]["id"] == SURVEY_ID
    assert [question["id"] for question in body["questions"]] == ["cp-q1", "cp-q2", "cp-q3", "cp-q4", "cp-q5"]
    assert body["questions"][1]["options"] == ["Yes", "No", "Not sure"]


def test_inactive_or_missing_survey_is_404(client: TestClient, database: SQLiteSurveyDatabase) -> None:
    assert client.get("/api/survey/missing").status_code == 404

    database.save_survey(Survey(id="closed", title="Closed", active=False), [])
    response = client.get("/api/survey/closed")
    assert response.status_code == 404
    assert response.json() == {"error": "Survey not found or inactive"}


def test_submit_response_then_overwrite(client: TestClient, database: SQLiteSurveyDatabase) -> None:
    body = _answer(client, "r-1", "cp-q2", "Yes", original_position=0)
    assert body == {"success": True, "message": "Response saved successfully"}

    _answer(client, "r-1", "cp-q2", "No", original_position=1)
    rows = database.list_responses(SURVEY_ID, "r-1")
    assert [(row.answer_value, row.original_position) for row in rows] == [("No", 1)]


def test_legacy_contact_alias_is_accepted(client: TestClient, database: SQLiteSurveyDatabase) -> None:
    response = client.post(
        "/api/survey/response",
        json={"crm_contact_id": "c-7", "survey_id": SURVEY_ID, "question_id": "cp-q2", "answer_value": "Yes"},
    )

    assert response.status_code == 200
    assert database.get_response("c-7", "cp-q2") is not None


def test_invalid_submissions_are_400(client: TestClient) -> None:
    missing = client.post("/api/survey/response", json={"survey_id": SURVEY_ID, "question_id": "cp-q2"})
    assert missing.status_code == 400
    assert "error" in missing.json()

    over_cap = client.post(
        "/api/survey/response",
        json={
            "respondent_id": "r-1",
            "survey_id": SURVEY_ID,
            "question_id": "cp-q3",
            "answer_value": ["Door knocking", "Phone banking", "Hosting an event", "Donating"],
        },
    )
    assert over_cap.status_code == 400

    bad_position = client.post(
        "/api/survey/response",
        json={
            "respondent_id": "r-1",
            "survey_id": SURVEY_ID,
            "question_id": "cp-q2",
            "answer_value": "Yes",
            "original_position": "first",
        },
    )
    assert bad_position.status_code == 400

    boolean_position = client.post(
        "/api/survey/response",
        json={
            "respondent_id": "r-1",
            "survey_id": SURVEY_ID,
            "question_id": "cp-q2",
            "answer_value": "Yes",
            "original_position": True,
        },
    )
    assert boolean_position.status_code == 400


def test_unknown_question_is_404(client: TestClient) -> None:
    response = client.post(
        "/api/survey/response",
        json={"respondent_id": "r-1", "survey_id": SURVEY_ID, "question_id": "nope", "answer_value": "Yes"},
    )

    assert response.status_code == 404


def test_complete_flow(client: TestClient) -> None:
    not_started = client.post("/api/survey/complete", json={"respondent_id": "r-1", "survey_id": SURVEY_ID})
    assert not_started.status_code == 404
    assert not_started.json() == {"error": "Survey session not found"}

    _answer(client, "r-1", "cp-q2", "Yes")
    done = client.post("/api/survey/complete", json={"respondent_id": "r-1", "survey_id": SURVEY_ID})
    assert done.status_code == 200
    assert done.json()["success"] is True
    assert done.json()["completed_at"]

    again = client.post("/api/survey/complete", json={"respondent_id": "r-1", "survey_id": SURVEY_ID})
    assert again.status_code == 409
    assert again.json() == {"error": "Survey already completed"}

    missing_ids = client.post("/api/survey/complete", json={"survey_id": SURVEY_ID})
    assert missing_ids.status_code == 400


def test_results_endpoint(client: TestClient) -> None:
    _answer(client, "a", "cp-q2", "Yes")
    _answer(client, "b", "cp-q2", "Yes")
    _answer(client, "c", "cp-q2", "No")
    _answer(client, "d", "cp-q2", "Yes")
    client.post("/api/survey/complete", json={"respondent_id": "a", "survey_id": SURVEY_ID})

    body = client.get(f"/api/survey/{SURVEY_ID}/results").json()

    assert body["total_started"] == 4
    assert body["total_completed"] == 1
    assert body["completion_rate"] == pytest.approx(25.0)
    question = next(q for q in body["questions"] if q["question_id"] == "cp-q2")
    assert [(group["value"], group["percentage"]) for group in question["answers"]] == [("Yes", 75.0), ("No", 25.0)]


def test_csv_export_is_an_attachment(client: TestClient) -> None:
    _answer(client, "r-1", "cp-q4", 'Smith, "the best"')

    response = client.get(f"/api/survey/{SURVEY_ID}/export")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    disposition = response.headers["content-disposition"]
    assert disposition.startswith(f'attachment; filename="survey-{SURVEY_ID}-')
    assert disposition.endswith('.csv"')
    assert '"Smith, ""the best"""' in response.text


def test_json_export_and_bad_format(client: TestClient) -> None:
    _answer(client, "r-1", "cp-q2", "Yes")

    archive = client.get(f"/api/survey/{SURVEY_ID}/export", params={"format": "json"}).json()
    assert archive["export_metadata"]["total_respondents"] == 1
    assert archive["responses"][0]["respondent_id"] == "r-1"

    bad = client.get(f"/api/survey/{SURVEY_ID}/export", params={"format": "xml"})
    assert bad.status_code == 400
    assert "xml" in bad.json()["error"]


def test_survey_list(client: TestClient, poll_catalog: SurveyCatalog) -> None:
    _answer(client, "r-1", "cp-q2", "Yes")

    surveys = {entry["survey_id"]: entry for entry in client.get("/api/surveys").json()}

    assert set(surveys) == {SURVEY_ID, "poll"}
    assert surveys[SURVEY_ID]["total_started"] == 1
    assert surveys[SURVEY_ID]["completion_rate"] == 0


class _UnavailableDatabase(SQLiteSurveyDatabase):
    def get_survey(self, survey_id: str) -> Survey | None:
        raise StorageUnavailableError("Survey database unavailable: database is locked")


def test_storage_failure_is_503(tmp_path: Path) -> None:
    app = create_app()
    app.dependency_overrides[get_data_provider] = lambda: SurveyDataProvider(_UnavailableDatabase(tmp_path / "x.sqlite"))

    with TestClient(app) as test_client:
        response = test_client.get(f"/api/survey/{SURVEY_ID}")

    assert response.status_code == 503
    assert "unavailable" in response.json()["error"]
