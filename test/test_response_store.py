from __future__ import annotations

import json

import pytest

from survey_engine.core.errors import NotFoundError, ValidationError
from survey_engine.models.survey import SurveyCatalog
from survey_engine.services.response_store import ResponseStore, normalise_answer_value
from survey_engine.services.survey_database import SQLiteSurveyDatabase

SURVEY_ID = "community-priorities-2025"


@pytest.fixture
def store(database: SQLiteSurveyDatabase, sample_catalog: SurveyCatalog) -> ResponseStore:
    return ResponseStore(database)


def test_upsert_twice_leaves_one_row_with_the_latest_value(store: ResponseStore, database: SQLiteSurveyDatabase) -> None:
    store.upsert_response("r-1", SURVEY_ID, "cp-q2", "Yes", original_position=0)
    store.upsert_response("r-1", SURVEY_ID, "cp-q2", "No", original_position=1)

    rows = database.list_responses(SURVEY_ID, "r-1")
    assert len(rows) == 1
    assert rows[0].answer_value == "No"
    assert rows[0].original_position == 1


def test_identical_upserts_are_idempotent(store: ResponseStore, database: SQLiteSurveyDatabase) -> None:
    first = store.upsert_response("r-1", SURVEY_ID, "cp-q2", "Yes", original_position=0)
    second = store.upsert_response("r-1", SURVEY_ID, "cp-q2", "Yes", original_position=0)

    assert len(database.list_responses(SURVEY_ID)) == 1
    assert first.created_at == second.created_at
    assert second.answer_value == "Yes"


def test_first_answer_starts_the_session(store: ResponseStore, database: SQLiteSurveyDatabase) -> None:
    assert database.get_session("r-1", SURVEY_ID) is None

    store.upsert_response("r-1", SURVEY_ID, "cp-q1", "School funding", original_position=1)
    session = database.get_session("r-1", SURVEY_ID)

    assert session is not None
    assert session.completed_at is None
    assert session.last_question_answered == "cp-q1"
    started_at = session.started_at

    store.upsert_response("r-1", SURVEY_ID, "cp-q2", "No", original_position=1)
    session = database.get_session("r-1", SURVEY_ID)
    assert session is not None
    assert session.started_at == started_at
    assert session.last_question_answered == "cp-q2"


@pytest.mark.parametrize(
    ("respondent", "survey", "question", "value"),
    [
        (None, SURVEY_ID, "cp-q2", "Yes"),
        ("  ", SURVEY_ID, "cp-q2", "Yes"),
        ("r-1", None, "cp-q2", "Yes"),
        ("r-1", SURVEY_ID, None, "Yes"),
        ("r-1", SURVEY_ID, "cp-q2", None),
        ("r-1", SURVEY_ID, "cp-q2", "   "),
    ],
)
def test_missing_fields_are_rejected(
    store: ResponseStore,
    respondent: str | None,
    survey: str | None,
    question: str | None,
    value: str | None,
) -> None:
    with pytest.raises(ValidationError):
        store.upsert_response(respondent, survey, question, value)


def test_unknown_question_is_not_found(store: ResponseStore) -> None:
    with pytest.raises(NotFoundError):
        store.upsert_response("r-1", SURVEY_ID, "missing-question", "Yes")


def test_choice_outside_the_options_is_rejected(store: ResponseStore) -> None:
    with pytest.raises(ValidationError):
        store.upsert_response("r-1", SURVEY_ID, "cp-q2", "Maybe")


def test_other_requires_free_text(store: ResponseStore) -> None:
    with pytest.raises(ValidationError):
        store.upsert_response("r-1", SURVEY_ID, "cp-q1", "other", answer_text="   ")

    record = store.upsert_response("r-1", SURVEY_ID, "cp-q1", "other", answer_text="Housing", original_position=4)
    assert record.answer_text == "Housing"


def test_single_choice_without_other_rejects_the_sentinel(store: ResponseStore) -> None:
    with pytest.raises(ValidationError):
        store.upsert_response("r-1", SURVEY_ID, "cp-q2", "other", answer_text="Something")


def test_multi_select_is_stored_as_a_json_list(store: ResponseStore) -> None:
    record = store.upsert_response(
        "r-1",
        SURVEY_ID,
        "cp-q3",
        ["Phone banking", "Donating"],
        original_position=1,
    )

    assert json.loads(record.answer_value) == ["Phone banking", "Donating"]


def test_multi_select_over_the_cap_is_rejected(store: ResponseStore) -> None:
    with pytest.raises(ValidationError):
        store.upsert_response(
            "r-1",
            SURVEY_ID,
            "cp-q3",
            ["Door knocking", "Phone banking", "Hosting an event", "Donating"],
        )


def test_multi_select_with_other_requires_text(store: ResponseStore) -> None:
    with pytest.raises(ValidationError):
        store.upsert_response("r-1", SURVEY_ID, "cp-q3", json.dumps(["other"]))

    record = store.upsert_response("r-1", SURVEY_ID, "cp-q3", json.dumps(["other"]), answer_text="Driving voters")
    assert record.answer_text == "Driving voters"


def test_multi_select_rejects_malformed_values(store: ResponseStore) -> None:
    with pytest.raises(ValidationError):
        store.upsert_response("r-1", SURVEY_ID, "cp-q3", "Donating")
    with pytest.raises(ValidationError):
        store.upsert_response("r-1", SURVEY_ID, "cp-q3", ["Donating", "Donating"])


def test_contact_verification_payload_is_validated(store: ResponseStore) -> None:
    record = store.upsert_response(
        "r-1",
        SURVEY_ID,
        "cp-q5",
        {"name_correct": True, "phone": "555-0100", "phone_type": "cell"},
    )
    assert json.loads(record.answer_value)["phone_type"] == "cell"

    with pytest.raises(ValidationError):
        store.upsert_response("r-1", SURVEY_ID, "cp-q5", {"phone_type": "pager"})


def test_free_text_keeps_the_answer(store: ResponseStore) -> None:
    record = store.upsert_response("r-1", SURVEY_ID, "cp-q4", "Fix the potholes, please")

    assert record.answer_value == "Fix the potholes, please"
    assert record.answer_text == "Fix the potholes, please"


def test_normalise_answer_value_handles_each_shape() -> None:
    assert normalise_answer_value("Yes") == "Yes"
    assert normalise_answer_value(3) == "3"
    assert normalise_answer_value(["a", "b"]) == '["a", "b"]'
    assert normalise_answer_value({"b": 1, "a": 2}) == '{"a": 2, "b": 1}'


@pytest.mark.parametrize("position", [True, "1", 1.5])
def test_original_position_must_be_a_plain_integer(
    store: ResponseStore, database: SQLiteSurveyDatabase, position: object
) -> None:
    with pytest.raises(ValidationError):
        store.upsert_response("r-1", SURVEY_ID, "cp-q2", "Yes", original_position=position)

    assert database.get_response("r-1", "cp-q2") is None
