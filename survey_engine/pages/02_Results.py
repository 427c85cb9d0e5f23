from __future__ import annotations

import streamlit as st

from survey_engine.UI import resources, results
from survey_engine.core.errors import SurveyEngineError

st.set_page_config(page_title="Survey Results", page_icon="📊", layout="wide")

try:
    provider = resources.get_provider()
except (SurveyEngineError, FileNotFoundError, ValueError) as exc:
    st.error(str(exc))
else:
    results.render_results(provider)
