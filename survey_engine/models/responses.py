from __future__ import annotations

import json
from enum import Enum
from typing import Any, Dict, Literal

from pydantic import AliasChoices, BaseModel, Field, StrictInt


class SessionState(str, Enum):
    """Lifecycle of a (respondent, survey) session."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class ResponseRecord(BaseModel):
    """One stored answer for a (respondent, question) pair."""

    respondent_id: str
    survey_id: str
    question_id: str
    answer_value: str
    answer_text: str | None = None
    original_position: int | None = None
    created_at: str
    updated_at: str

    model_config = {"extra": "forbid", "frozen": True}


class SessionRecord(BaseModel):
    """Progress and completion record for a (respondent, survey) pair."""

    respondent_id: str
    survey_id: str
    started_at: str
    completed_at: str | None = None
    last_question_answered: str | None = None

    model_config = {"extra": "forbid", "frozen": True}

    @property
    def is_complete(self) -> bool:
        return self.completed_at is not None

    @property
    def state(self) -> SessionState:
        return SessionState.COMPLETED if self.is_complete else SessionState.IN_PROGRESS


class ResponseSubmission(BaseModel):
    """Body of ``POST /api/survey/response``.

    Every field is optional at the schema level so that missing values reach
    the response store and are reported as a validation failure there, the
    same way in-process callers see them. ``crm_contact_id`` is accepted as an
    alias of ``respondent_id`` for older clients.
    """

    respondent_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("respondent_id", "crm_contact_id"),
    )
    survey_id: str | None = None
    question_id: str | None = None
    answer_value: Any = None
    answer_text: str | None = None
    original_position: StrictInt | None = None


class CompletionRequest(BaseModel):
    """Body of ``POST /api/survey/complete``."""

    respondent_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("respondent_id", "crm_contact_id"),
    )
    survey_id: str | None = None


class ExistingContact(BaseModel):
    """Contact details already on file, shown back to the respondent for confirmation."""

    name: str | None = None
    email: str | None = None
    phone: str | None = None


PhoneType = Literal["cell", "landline"]


class ContactVerificationAnswer(BaseModel):
    """Structured answer captured by a contact verification question."""

    name_correct: bool | None = None
    name: str | None = None
    email_correct: bool | None = None
    email: str | None = None
    phone_correct: bool | None = None
    phone: str | None = None
    phone_type: PhoneType | None = None
    additional_phone: str | None = None
    additional_phone_type: PhoneType | None = None
    address: str | None = None

    model_config = {"extra": "forbid"}

    @property
    def is_empty(self) -> bool:
        return not self.model_dump(exclude_none=True)

    def to_answer_value(self) -> str:
        """Serialise to the JSON object stored as the answer value."""

        return json.dumps(self.model_dump(exclude_none=True), ensure_ascii=False, sort_keys=True)

    @classmethod
    def from_answer_value(cls, raw: str | None) -> "ContactVerificationAnswer":
        if not raw:
            return cls()
        payload: Dict[str, Any] = json.loads(raw)
        return cls.model_validate(payload)


__all__ = [
    "SessionState",
    "ResponseRecord",
    "SessionRecord",
    "ResponseSubmission",
    "CompletionRequest",
    "ExistingContact",
    "ContactVerificationAnswer",
]
