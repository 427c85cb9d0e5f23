from __future__ import annotations

import json
import random
from dataclasses import dataclass
from typing import Any, List, Optional

from survey_engine.models.responses import ContactVerificationAnswer, ExistingContact
from survey_engine.models.survey import (
    OTHER_OPTION,
    ContactVerificationQuestion,
    FreeTextQuestion,
    MultiSelectWithOtherQuestion,
    Question,
    SingleChoiceQuestion,
    SingleChoiceWithOtherQuestion,
)
from survey_engine.services.randomizer import ShuffledOptions, shuffle_with_positions

_EMPTY_VALUES = {"", "[]", "{}"}


@dataclass(frozen=True, slots=True)
class AnswerChange:
    """A write the runner should send to the response store."""

    question_id: str
    answer_value: str
    answer_text: Optional[str] = None
    original_position: Optional[int] = None


@dataclass(slots=True)
class LocalAnswer:
    """The runner's optimistic copy of the last answer sent for a question."""

    value: str
    text: Optional[str] = None
    original_position: Optional[int] = None

    @property
    def is_blank(self) -> bool:
        return self.value.strip() in _EMPTY_VALUES


class QuestionInput:
    """Base for the per-type input state bound to one question render."""

    question: Question

    @property
    def question_id(self) -> str:
        return self.question.id


class ChoiceInput(QuestionInput):
    """Single choice, optionally with a free-text "other" entry."""

    def __init__(
        self,
        question: SingleChoiceQuestion | SingleChoiceWithOtherQuestion,
        shuffled: ShuffledOptions,
        initial: LocalAnswer | None = None,
    ) -> None:
        self.question = question
        self.shuffled = shuffled
        self.selected: Optional[str] = initial.value if initial else None
        self.other_text: str = (initial.text or "") if initial else ""

    @property
    def options(self) -> tuple[str, ...]:
        return self.shuffled.display_order

    def select(self, label: str) -> Optional[AnswerChange]:
        if not self.question.accepts(label):
            raise ValueError(f"'{label}' is not an option of question {self.question.id}")

        self.selected = label
        position = self.shuffled.position_of(label)
        if label == OTHER_OPTION:
            if not self.other_text.strip():
                return None
            return AnswerChange(self.question.id, OTHER_OPTION, self.other_text.strip(), position)

        self.other_text = ""
        return AnswerChange(self.question.id, label, None, position)

    def set_other_text(self, text: str) -> Optional[AnswerChange]:
        self.other_text = text
        if self.selected != OTHER_OPTION or not text.strip():
            return None
        return AnswerChange(self.question.id, OTHER_OPTION, text.strip(), self.shuffled.position_of(OTHER_OPTION))


class MultiSelectInput(QuestionInput):
    """Checkbox list capped at ``max_selections``, with a free-text "other" entry."""

    def __init__(
        self,
        question: MultiSelectWithOtherQuestion,
        shuffled: ShuffledOptions,
        initial: LocalAnswer | None = None,
    ) -> None:
        self.question = question
        self.shuffled = shuffled
        self.selected: List[str] = _decode_selection(initial.value) if initial else []
        self.other_text: str = (initial.text or "") if initial else ""

    @property
    def options(self) -> tuple[str, ...]:
        return self.shuffled.display_order

    @property
    def max_selections(self) -> int:
        return self.question.max_selections

    @property
    def remaining(self) -> int:
        return max(self.max_selections - len(self.selected), 0)

    def is_selected(self, label: str) -> bool:
        return label in self.selected

    def is_disabled(self, label: str) -> bool:
        """An unselected option is disabled once the cap is reached."""

        return label not in self.selected and len(self.selected) >= self.max_selections

    def toggle(self, label: str) -> Optional[AnswerChange]:
        if not self.question.accepts(label):
            raise ValueError(f"'{label}' is not an option of question {self.question.id}")

        if label in self.selected:
            self.selected.remove(label)
        elif len(self.selected) >= self.max_selections:
            return None
        else:
            self.selected.append(label)

        if OTHER_OPTION not in self.selected:
            self.other_text = ""
        return self._change()

    def set_other_text(self, text: str) -> Optional[AnswerChange]:
        self.other_text = text
        if OTHER_OPTION not in self.selected:
            return None
        return self._change()

    def _change(self) -> Optional[AnswerChange]:
        text: Optional[str] = None
        if OTHER_OPTION in self.selected:
            if not self.other_text.strip():
                return None
            text = self.other_text.strip()

        # The full selection is sent every time, never a delta.
        position = self.shuffled.position_of(self.selected[0]) if self.selected else None
        value = json.dumps(self.selected, ensure_ascii=False)
        return AnswerChange(self.question.id, value, text, position)


class ContactVerificationInput(QuestionInput):
    """Confirm or correct the contact details already on file."""

    def __init__(
        self,
        question: ContactVerificationQuestion,
        existing: ExistingContact,
        initial: LocalAnswer | None = None,
    ) -> None:
        self.question = question
        self.existing = existing
        self.data = ContactVerificationAnswer.from_answer_value(initial.value if initial else None)

    def update(self, **fields: Any) -> AnswerChange:
        merged = self.data.model_dump()
        merged.update(fields)
        self.data = ContactVerificationAnswer.model_validate(merged)
        return AnswerChange(self.question.id, self.data.to_answer_value())


class FreeTextInput(QuestionInput):
    def __init__(self, question: FreeTextQuestion, initial: LocalAnswer | None = None) -> None:
        self.question = question
        self.text: str = initial.value if initial else ""

    def set_text(self, text: str) -> Optional[AnswerChange]:
        self.text = text
        cleaned = text.strip()
        if not cleaned:
            return None
        return AnswerChange(self.question.id, cleaned, cleaned)


def build_question_input(
    question: Question,
    *,
    randomize: bool,
    existing_contact: ExistingContact | None = None,
    initial: LocalAnswer | None = None,
    rng: random.Random | None = None,
) -> QuestionInput:
    """Create the input state for ``question``. Each call shuffles afresh."""

    if isinstance(question, (SingleChoiceQuestion, SingleChoiceWithOtherQuestion)):
        shuffled = shuffle_with_positions(
            question.options,
            randomize=randomize and question.randomize,
            include_other=question.has_other,
            rng=rng,
        )
        return ChoiceInput(question, shuffled, initial)

    if isinstance(question, MultiSelectWithOtherQuestion):
        shuffled = shuffle_with_positions(
            question.options,
            randomize=randomize and question.randomize,
            include_other=True,
            rng=rng,
        )
        return MultiSelectInput(question, shuffled, initial)

    if isinstance(question, ContactVerificationQuestion):
        return ContactVerificationInput(question, existing_contact or ExistingContact(), initial)

    if isinstance(question, FreeTextQuestion):
        return FreeTextInput(question, initial)

    raise TypeError(f"Unhandled question type: {type(question).__name__}")


def _decode_selection(raw: str) -> List[str]:
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError:
        return []
    if not isinstance(decoded, list):
        return []
    return [str(item) for item in decoded]


__all__ = [
    "AnswerChange",
    "LocalAnswer",
    "QuestionInput",
    "ChoiceInput",
    "MultiSelectInput",
    "ContactVerificationInput",
    "FreeTextInput",
    "build_question_input",
]
