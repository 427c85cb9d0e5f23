from __future__ import annotations

import streamlit as st

from survey_engine.services.survey_runner import SurveyRunner


def render(runner: SurveyRunner) -> None:
    """Render navigation controls for moving through the survey."""

    can_proceed = runner.can_proceed()
    if not can_proceed:
        st.info("Please answer this question to continue.")

    prev_col, spacer_col, next_col = st.columns([1, 2, 1])
    with prev_col:
        st.button(
            "Previous",
            key="nav_previous",
            on_click=runner.go_previous,
            disabled=runner.is_first_question,
        )
    with next_col:
        if runner.is_last_question:
            st.button(
                "Submit",
                key="nav_submit",
                type="primary",
                on_click=_submit,
                args=(runner,),
                disabled=not can_proceed,
            )
        else:
            st.button(
                "Next",
                key="nav_next",
                type="primary",
                on_click=runner.go_next,
                disabled=not can_proceed,
            )


def _submit(runner: SurveyRunner) -> None:
    with st.spinner("Submitting your responses..."):
        runner.submit()
