from __future__ import annotations

import random
from concurrent.futures import Executor
from functools import cached_property
from pathlib import Path

from survey_engine.core.config import settings
from survey_engine.models.survey import SurveyCatalog
from survey_engine.services.aggregator import ResultsAggregator
from survey_engine.services.catalog import QuestionCatalog
from survey_engine.services.exporter import ExportPipeline
from survey_engine.services.response_store import ResponseStore
from survey_engine.services.session_tracker import SessionTracker
from survey_engine.services.survey_database import SurveyDatabaseInterface, get_survey_database
from survey_engine.services.survey_loader import SurveyLoader
from survey_engine.services.survey_runner import ContactLookup, SurveyRunner, no_contact_on_file


class SurveyDataProvider:
    """Expose the survey services over one shared database.

    Both the HTTP routes and the Streamlit pages go through this layer, so a
    test can swap the database once and exercise either surface.
    """

    def __init__(self, database: SurveyDatabaseInterface | None = None) -> None:
        self._database = database or get_survey_database()

    @property
    def database(self) -> SurveyDatabaseInterface:
        return self._database

    @cached_property
    def catalog(self) -> QuestionCatalog:
        return QuestionCatalog(self._database)

    @cached_property
    def responses(self) -> ResponseStore:
        return ResponseStore(self._database, catalog=self.catalog)

    @cached_property
    def sessions(self) -> SessionTracker:
        return SessionTracker(self._database)

    @cached_property
    def aggregator(self) -> ResultsAggregator:
        return ResultsAggregator(self._database, catalog=self.catalog)

    @cached_property
    def exporter(self) -> ExportPipeline:
        return ExportPipeline(self._database, catalog=self.catalog)

    def seed_from_file(self, source: str | Path | None = None) -> SurveyCatalog:
        """Load a survey definition file into the database. Defaults to ``SURVEY_SEED_FILE``."""

        return SurveyLoader(source or settings.seed_file_path).seed(self._database)

    def start_runner(
        self,
        survey_id: str,
        respondent_id: str,
        *,
        randomize_options: bool | None = None,
        executor: Executor | None = None,
        contact_lookup: ContactLookup = no_contact_on_file,
        rng: random.Random | None = None,
    ) -> SurveyRunner:
        """Load the active survey and return a runner resumed from stored answers."""

        runner = SurveyRunner(
            self.catalog.load(survey_id),
            respondent_id,
            store=self.responses,
            tracker=self.sessions,
            randomize_options=(
                settings.runner.randomize_options if randomize_options is None else randomize_options
            ),
            executor=executor,
            contact_lookup=contact_lookup,
            rng=rng,
        )
        runner.resume()
        return runner


_PROVIDER: SurveyDataProvider | None = None


def get_data_provider() -> SurveyDataProvider:
    """Return the process-wide provider bound to the configured database."""

    global _PROVIDER
    if _PROVIDER is None:
        _PROVIDER = SurveyDataProvider()
    return _PROVIDER


__all__ = ["SurveyDataProvider", "get_data_provider"]
