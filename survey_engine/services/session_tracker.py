from __future__ import annotations

import logging
from typing import List, Optional

from survey_engine.core.errors import AlreadyCompletedError, SessionNotFoundError, ValidationError
from survey_engine.models.responses import SessionRecord, SessionState
from survey_engine.services.survey_database import SurveyDatabaseInterface, get_survey_database

logger = logging.getLogger(__name__)


class SessionTracker:
    """Completion state machine for (respondent, survey) sessions.

    NotStarted -> InProgress happens implicitly on the first stored answer.
    InProgress -> Completed happens here, through one conditional write, so a
    double submit can complete a session at most once. Completed is terminal.
    """

    def __init__(self, database: SurveyDatabaseInterface | None = None) -> None:
        self._database = database or get_survey_database()

    def get_session(self, respondent_id: str, survey_id: str) -> Optional[SessionRecord]:
        return self._database.get_session(respondent_id, survey_id)

    def session_state(self, respondent_id: str, survey_id: str) -> SessionState:
        session = self.get_session(respondent_id, survey_id)
        if session is None:
            return SessionState.NOT_STARTED
        return session.state

    def list_sessions(self, survey_id: str) -> List[SessionRecord]:
        return self._database.list_sessions(survey_id)

    def complete_session(self, respondent_id: str | None, survey_id: str | None) -> SessionRecord:
        respondent = (respondent_id or "").strip()
        survey = (survey_id or "").strip()
        if not respondent or not survey:
            raise ValidationError("Missing required fields: respondent_id and survey_id")

        if not self._database.mark_session_completed(respondent, survey):
            existing = self._database.get_session(respondent, survey)
            if existing is not None and existing.is_complete:
                logger.warning("Duplicate completion for respondent=%s survey=%s", respondent, survey)
                raise AlreadyCompletedError("Survey already completed")
            raise SessionNotFoundError("Survey session not found")

        session = self._database.get_session(respondent, survey)
        if session is None:
            raise SessionNotFoundError("Survey session not found")
        logger.info("Completed survey session respondent=%s survey=%s", respondent, survey)
        return session


__all__ = ["SessionTracker"]
