from __future__ import annotations

import logging
import random
import threading
from concurrent.futures import Executor, Future, wait
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from survey_engine.core.errors import (
    AlreadyCompletedError,
    SessionNotFoundError,
    SurveyEngineError,
    ValidationError,
)
from survey_engine.models.responses import ExistingContact, SessionState
from survey_engine.models.survey import Question, SurveyCatalog
from survey_engine.services.question_inputs import (
    AnswerChange,
    ChoiceInput,
    ContactVerificationInput,
    FreeTextInput,
    LocalAnswer,
    MultiSelectInput,
    QuestionInput,
    build_question_input,
)
from survey_engine.services.response_store import ResponseStore
from survey_engine.services.session_tracker import SessionTracker

logger = logging.getLogger(__name__)

ContactLookup = Callable[[str], ExistingContact]

SAVE_FAILED_MESSAGE = "Failed to save answer. Please try again."
SUBMIT_FAILED_MESSAGE = "Failed to submit survey. Please try again."
NOTHING_ANSWERED_MESSAGE = "Please answer at least one question before submitting."


class RunnerPhase(str, Enum):
    ANSWERING = "answering"
    SUBMITTED = "submitted"


def no_contact_on_file(respondent_id: str) -> ExistingContact:
    """Default contact lookup: nothing on file, so every field is asked fresh."""

    return ExistingContact()


class SurveyRunner:
    """Walk one respondent through a survey's questions.

    Answer events update local state first and then send the full answer to
    the response store. Writes go through ``executor`` when one is given
    (fire-and-forget); otherwise they run inline. A failed write never loses
    local progress: the change is kept for :meth:`retry_failed_writes` and an
    inline error message is exposed through :attr:`error`.
    """

    def __init__(
        self,
        catalog: SurveyCatalog,
        respondent_id: str,
        *,
        store: ResponseStore,
        tracker: SessionTracker,
        randomize_options: bool = True,
        executor: Executor | None = None,
        contact_lookup: ContactLookup = no_contact_on_file,
        rng: random.Random | None = None,
    ) -> None:
        cleaned = (respondent_id or "").strip()
        if not cleaned:
            raise ValidationError("A respondent id is required to take this survey")

        self._catalog = catalog
        self._respondent_id = cleaned
        self._store = store
        self._tracker = tracker
        self._randomize = randomize_options
        self._executor = executor
        self._contact_lookup = contact_lookup
        self._rng = rng

        self._index = 0
        self._phase = RunnerPhase.ANSWERING
        self._inputs: Dict[str, QuestionInput] = {}
        self._answers: Dict[str, LocalAnswer] = {}
        self._failed: Dict[str, AnswerChange] = {}
        self._pending: List[Future[Any]] = []
        self._error: Optional[str] = None
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Read-only view
    # ------------------------------------------------------------------

    @property
    def catalog(self) -> SurveyCatalog:
        return self._catalog

    @property
    def respondent_id(self) -> str:
        return self._respondent_id

    @property
    def survey_id(self) -> str:
        return self._catalog.survey_id

    @property
    def questions(self) -> List[Question]:
        return self._catalog.questions

    @property
    def total_questions(self) -> int:
        return len(self._catalog.questions)

    @property
    def current_index(self) -> int:
        return self._index

    @property
    def current_question(self) -> Question:
        return self._catalog.questions[self._index]

    @property
    def current_input(self) -> QuestionInput:
        return self.input_for(self.current_question)

    @property
    def is_first_question(self) -> bool:
        return self._index == 0

    @property
    def is_last_question(self) -> bool:
        return self._index >= self.total_questions - 1

    @property
    def progress_percent(self) -> float:
        if not self.total_questions:
            return 0.0
        return (self._index + 1) / self.total_questions * 100

    @property
    def answered_count(self) -> int:
        with self._lock:
            return sum(1 for answer in self._answers.values() if not answer.is_blank)

    @property
    def phase(self) -> RunnerPhase:
        return self._phase

    @property
    def is_submitted(self) -> bool:
        return self._phase is RunnerPhase.SUBMITTED

    @property
    def error(self) -> Optional[str]:
        with self._lock:
            return self._error

    @property
    def has_failed_writes(self) -> bool:
        with self._lock:
            return bool(self._failed)

    def clear_error(self) -> None:
        with self._lock:
            self._error = None

    def input_for(self, question: Question) -> QuestionInput:
        """Return the input state for ``question``, shuffling its options once per runner."""

        existing = self._inputs.get(question.id)
        if existing is None:
            existing = build_question_input(
                question,
                randomize=self._randomize,
                existing_contact=self._contact_lookup(self._respondent_id),
                initial=self.answer_for(question.id),
                rng=self._rng,
            )
            self._inputs[question.id] = existing
        return existing

    def answer_for(self, question_id: str) -> Optional[LocalAnswer]:
        with self._lock:
            return self._answers.get(question_id)

    def has_answer(self, question: Question) -> bool:
        answer = self.answer_for(question.id)
        return answer is not None and not answer.is_blank

    def can_proceed(self) -> bool:
        """A stored answer exists, or the current question is optional."""

        if not self.total_questions:
            return False
        question = self.current_question
        return self.has_answer(question) or not question.required

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def go_next(self) -> bool:
        if self.is_submitted or self.is_last_question or not self.can_proceed():
            return False
        self._index += 1
        return True

    def go_previous(self) -> bool:
        if self.is_submitted or self.is_first_question:
            return False
        self._index -= 1
        return True

    # ------------------------------------------------------------------
    # Answer events for the current question
    # ------------------------------------------------------------------

    def select_option(self, label: str) -> bool:
        current = self._current_as(ChoiceInput)
        return self._apply(current.select(label))

    def toggle_option(self, label: str) -> bool:
        current = self._current_as(MultiSelectInput)
        return self._apply(current.toggle(label))

    def set_other_text(self, text: str) -> bool:
        current = self.current_input
        if isinstance(current, (ChoiceInput, MultiSelectInput)):
            return self._apply(current.set_other_text(text))
        raise TypeError(f"Question {current.question_id} has no free-text 'other' entry")

    def set_free_text(self, text: str) -> bool:
        current = self._current_as(FreeTextInput)
        return self._apply(current.set_text(text))

    def update_contact(self, **fields: Any) -> bool:
        current = self._current_as(ContactVerificationInput)
        return self._apply(current.update(**fields))

    def _current_as(self, expected: type) -> Any:
        current = self.current_input
        if not isinstance(current, expected):
            raise TypeError(
                f"Question {current.question_id} is a {current.question.question_type} question"
            )
        return current

    def _apply(self, change: Optional[AnswerChange]) -> bool:
        if change is None or self.is_submitted:
            return False

        with self._lock:
            self._answers[change.question_id] = LocalAnswer(
                value=change.answer_value,
                text=change.answer_text,
                original_position=change.original_position,
            )
        self._dispatch(change)
        return True

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _dispatch(self, change: AnswerChange) -> None:
        if self._executor is None:
            try:
                self._write(change)
            except SurveyEngineError as exc:
                self._record_failure(change, exc)
            else:
                self._record_success(change)
            return

        future = self._executor.submit(self._write, change)
        with self._lock:
            self._pending.append(future)
        future.add_done_callback(lambda done: self._on_write_done(change, done))

    def _write(self, change: AnswerChange) -> None:
        self._store.upsert_response(
            respondent_id=self._respondent_id,
            survey_id=self.survey_id,
            question_id=change.question_id,
            answer_value=change.answer_value,
            answer_text=change.answer_text,
            original_position=change.original_position,
        )

    def _on_write_done(self, change: AnswerChange, future: Future[Any]) -> None:
        with self._lock:
            if future in self._pending:
                self._pending.remove(future)

        exc = future.exception()
        if exc is None:
            self._record_success(change)
        elif isinstance(exc, SurveyEngineError):
            self._record_failure(change, exc)
        else:
            logger.error("Unexpected error saving answer for question %s: %r", change.question_id, exc)
            self._record_failure(change, exc)

    def _record_success(self, change: AnswerChange) -> None:
        with self._lock:
            # Only a write of the latest local answer clears that question's failure.
            if _matches(self._answers.get(change.question_id), change):
                self._failed.pop(change.question_id, None)
            if not self._failed:
                self._error = None

    def _record_failure(self, change: AnswerChange, exc: BaseException) -> None:
        logger.warning(
            "Saving answer failed respondent=%s question=%s: %s",
            self._respondent_id,
            change.question_id,
            exc,
        )
        with self._lock:
            if _matches(self._answers.get(change.question_id), change):
                self._failed[change.question_id] = change
            self._error = SAVE_FAILED_MESSAGE

    def wait_for_writes(self, timeout: float | None = None) -> None:
        """Block until every in-flight write has finished."""

        with self._lock:
            pending = list(self._pending)
        if pending:
            wait(pending, timeout=timeout)

    def retry_failed_writes(self) -> int:
        """Resend answers whose last write failed. Returns how many were resent."""

        with self._lock:
            changes = list(self._failed.values())
            self._failed.clear()
            self._error = None
        for change in changes:
            self._dispatch(change)
        return len(changes)

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    def submit(self) -> bool:
        """Complete the session from the last question. Safe to call again after a failure."""

        if self.is_submitted:
            return True
        if not self.is_last_question or not self.can_proceed():
            return False

        self.wait_for_writes()
        if self.has_failed_writes:
            self.retry_failed_writes()
            self.wait_for_writes()
            if self.has_failed_writes:
                with self._lock:
                    self._error = SAVE_FAILED_MESSAGE
                return False

        try:
            self._tracker.complete_session(self._respondent_id, self.survey_id)
        except AlreadyCompletedError:
            logger.info("Session already completed respondent=%s survey=%s", self._respondent_id, self.survey_id)
        except SessionNotFoundError:
            with self._lock:
                self._error = NOTHING_ANSWERED_MESSAGE
            return False
        except SurveyEngineError as exc:
            logger.warning("Completing survey failed respondent=%s: %s", self._respondent_id, exc)
            with self._lock:
                self._error = SUBMIT_FAILED_MESSAGE
            return False

        with self._lock:
            self._error = None
        self._phase = RunnerPhase.SUBMITTED
        return True

    # ------------------------------------------------------------------
    # Resume
    # ------------------------------------------------------------------

    def resume(self) -> None:
        """Load the respondent's stored answers and continue where they stopped."""

        stored = self._store.list_responses(self.survey_id, self._respondent_id)
        with self._lock:
            for record in stored:
                self._answers[record.question_id] = LocalAnswer(
                    value=record.answer_value,
                    text=record.answer_text,
                    original_position=record.original_position,
                )
        self._inputs.clear()

        if self._tracker.session_state(self._respondent_id, self.survey_id) is SessionState.COMPLETED:
            self._phase = RunnerPhase.SUBMITTED
            return

        self._index = self._first_open_index()

    def _first_open_index(self) -> int:
        for index, question in enumerate(self.questions):
            if not self.has_answer(question):
                return index
        return max(self.total_questions - 1, 0)


def _matches(answer: Optional[LocalAnswer], change: AnswerChange) -> bool:
    return answer is not None and answer.value == change.answer_value and answer.text == change.answer_text


__all__ = [
    "ContactLookup",
    "RunnerPhase",
    "SurveyRunner",
    "no_contact_on_file",
    "SAVE_FAILED_MESSAGE",
    "SUBMIT_FAILED_MESSAGE",
    "NOTHING_ANSWERED_MESSAGE",
]
