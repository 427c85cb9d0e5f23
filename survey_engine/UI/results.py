from __future__ import annotations

import json
import logging
from typing import List

import streamlit as st

from survey_engine.API.survey_data_provider import SurveyDataProvider
from survey_engine.core.config import settings
from survey_engine.core.errors import SurveyEngineError
from survey_engine.models.analysis import QuestionResults, SurveySummary
from survey_engine.services.charts import ChartData, SurveyChartBuilder
from survey_engine.services.exporter import csv_filename, json_filename

from . import state

logger = logging.getLogger(__name__)


def render_results(provider: SurveyDataProvider) -> None:
    """Render the survey list, live results and export downloads."""

    st.header("Survey results")

    try:
        summaries = provider.aggregator.summaries()
    except SurveyEngineError as exc:
        _render_page_error("Failed to load surveys.", exc)
        return

    if not summaries:
        st.info("No surveys available.")
        return

    _render_survey_list(summaries)
    survey_id = _select_survey(summaries)
    st.divider()
    _render_live_results(provider, survey_id)
    st.divider()
    _render_exports(provider, survey_id)


def _render_survey_list(summaries: List[SurveySummary]) -> None:
    st.dataframe(
        [
            {
                "Survey": summary.title,
                "Active": summary.active,
                "Started": summary.total_started,
                "Completed": summary.total_completed,
                "Completion": f"{summary.completion_rate}%",
                "Created": summary.created_at or "",
            }
            for summary in summaries
        ],
        hide_index=True,
    )


def _select_survey(summaries: List[SurveySummary]) -> str:
    ids = [summary.survey_id for summary in summaries]
    titles = {summary.survey_id: summary.title for summary in summaries}

    preferred = state.get_results_survey() or settings.default_survey_id
    index = ids.index(preferred) if preferred in ids else 0
    selected = st.selectbox("Survey", options=ids, index=index, format_func=lambda sid: titles.get(sid, sid))
    state.set_results_survey(selected)
    return selected


@st.fragment(run_every=settings.runner.results_refresh_seconds)
def _render_live_results(provider: SurveyDataProvider, survey_id: str) -> None:
    try:
        results = provider.aggregator.compute(survey_id)
    except SurveyEngineError as exc:
        _render_page_error("Failed to load results.", exc)
        return

    started_col, completed_col, partial_col, rate_col = st.columns(4)
    started_col.metric("Started", results.total_started)
    completed_col.metric("Completed", results.total_completed)
    partial_col.metric("Partial", results.total_partial)
    rate_col.metric("Completion rate", f"{results.completion_rate:.1f}%")
    st.caption(f"Refreshes every {settings.runner.results_refresh_seconds} seconds.")

    builder = SurveyChartBuilder(results)
    charts = {chart.question_id: chart for chart in builder.all_question_charts()}

    for number, question in enumerate(results.questions, start=1):
        _render_question(number, question, charts.get(question.question_id))


def _render_question(number: int, question: QuestionResults, chart: ChartData | None) -> None:
    st.subheader(f"{number}. {question.question_text}")
    if not question.has_responses:
        st.caption("No responses yet.")
        return

    st.caption(f"{question.total_responses} responses")
    if chart is not None:
        st.bar_chart(
            [{"answer": label, "count": value} for label, value in chart.to_series()],
            x="answer",
            y="count",
        )
    st.dataframe(
        [
            {"Answer": group.value, "Count": group.count, "Percent": f"{group.percentage:.1f}%"}
            for group in question.answers
        ],
        hide_index=True,
    )


def _render_exports(provider: SurveyDataProvider, survey_id: str) -> None:
    st.subheader("Export")
    try:
        csv_text = provider.exporter.to_csv(survey_id)
        archive = provider.exporter.to_archive(survey_id)
    except SurveyEngineError as exc:
        _render_page_error("Failed to export responses.", exc)
        return

    csv_col, json_col = st.columns(2)
    with csv_col:
        st.download_button(
            "Download CSV",
            data=csv_text,
            file_name=csv_filename(survey_id),
            mime="text/csv",
        )
    with json_col:
        st.download_button(
            "Download JSON",
            data=json.dumps(archive, indent=2, ensure_ascii=False),
            file_name=json_filename(survey_id),
            mime="application/json",
        )


def _render_page_error(message: str, exc: Exception) -> None:
    logger.error("%s %s", message, exc)
    st.error(message)
    st.caption(str(exc))
    st.button("Retry", key=f"retry_{message}")
