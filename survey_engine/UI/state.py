from __future__ import annotations

from typing import Optional

import streamlit as st

from survey_engine.services.survey_runner import SurveyRunner

RUNNER_KEY_PREFIX = "survey_runner"
RESULTS_SURVEY_KEY = "results_survey_id"
WIDGET_KEY_PREFIX = "answer_"


def runner_key(survey_id: str, respondent_id: str) -> str:
    """Session key holding the runner for one (survey, respondent) pair."""

    return f"{RUNNER_KEY_PREFIX}:{survey_id}:{respondent_id}"


def get_runner(survey_id: str, respondent_id: str) -> Optional[SurveyRunner]:
    """Return the runner already created for this browser session, if any."""

    return st.session_state.get(runner_key(survey_id, respondent_id))


def set_runner(runner: SurveyRunner) -> None:
    st.session_state[runner_key(runner.survey_id, runner.respondent_id)] = runner


def widget_key(question_id: str, field: str = "value") -> str:
    """Stable widget key for one input of one question."""

    return f"{WIDGET_KEY_PREFIX}{question_id}_{field}"


def get_results_survey() -> Optional[str]:
    return st.session_state.get(RESULTS_SURVEY_KEY)


def set_results_survey(survey_id: str) -> None:
    st.session_state[RESULTS_SURVEY_KEY] = survey_id
