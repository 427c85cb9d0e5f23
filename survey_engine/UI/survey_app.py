from __future__ import annotations

import logging

import streamlit as st

from survey_engine.core.errors import NotFoundError, SurveyEngineError
from survey_engine.services.survey_runner import SurveyRunner

from . import components, navigation, resources, state

logger = logging.getLogger(__name__)

RESPONDENT_PARAMS = ("respondent_id", "contact_id")


def run_app() -> None:
    """Entry point for the Streamlit-based survey UI."""

    st.set_page_config(page_title="Survey", page_icon="📝", layout="centered")

    respondent_id = _respondent_from_query()
    if not respondent_id:
        components.render_access_denied()
        return

    try:
        survey_id = (st.query_params.get("survey_id") or "").strip() or resources.default_survey_id()
    except (SurveyEngineError, FileNotFoundError, ValueError) as exc:
        logger.error("Survey app failed to start: %s", exc)
        components.render_load_error(str(exc))
        return

    if not survey_id:
        components.render_not_found(None)
        return

    runner = state.get_runner(survey_id, respondent_id)
    if runner is None:
        runner = _start_runner(survey_id, respondent_id)
        if runner is None:
            return
        state.set_runner(runner)

    if runner.is_submitted:
        components.render_thank_you(runner)
        return

    if runner.total_questions == 0:
        st.info("This survey has no questions yet.")
        return

    st.title(runner.catalog.survey.title)
    if runner.catalog.survey.description:
        st.caption(runner.catalog.survey.description)

    components.render_question_header(runner)
    components.render_answer_widget(runner)
    components.render_write_error(runner)

    st.caption(f"Answered {runner.answered_count} of {runner.total_questions} questions")

    navigation.render(runner)


def _respondent_from_query() -> str | None:
    for name in RESPONDENT_PARAMS:
        value = (st.query_params.get(name) or "").strip()
        if value:
            return value
    return None


def _start_runner(survey_id: str, respondent_id: str) -> SurveyRunner | None:
    try:
        return resources.get_provider().start_runner(
            survey_id,
            respondent_id,
            executor=resources.get_write_executor(),
        )
    except NotFoundError:
        components.render_not_found(survey_id)
    except (SurveyEngineError, FileNotFoundError, ValueError) as exc:
        logger.error("Loading survey %s failed: %s", survey_id, exc)
        components.render_load_error(str(exc))
    return None
