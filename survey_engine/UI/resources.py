from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor

import streamlit as st

from survey_engine.API.survey_data_provider import SurveyDataProvider, get_data_provider
from survey_engine.core.config import settings
from survey_engine.core.logging_setup import configure_logging

logger = logging.getLogger(__name__)


@st.cache_resource
def get_provider() -> SurveyDataProvider:
    """Return the shared provider, seeding the bundled survey on first use."""

    configure_logging(settings.log_level)
    provider = get_data_provider()
    catalog = provider.seed_from_file()
    logger.info("Survey app ready with seeded survey %s", catalog.survey_id)
    return provider


@st.cache_resource
def get_write_executor() -> ThreadPoolExecutor:
    """Background executor for answer writes.

    One worker keeps writes from a session in the order they were made.
    """

    return ThreadPoolExecutor(max_workers=1, thread_name_prefix="survey-writes")


def default_survey_id() -> str | None:
    """Survey to show when the URL does not name one."""

    if settings.default_survey_id:
        return settings.default_survey_id
    summaries = get_provider().aggregator.summaries()
    active = [summary for summary in summaries if summary.active]
    return active[0].survey_id if active else None
