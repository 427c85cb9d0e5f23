from __future__ import annotations

from typing import Any, Callable, Optional

import streamlit as st

from survey_engine.models.survey import OTHER_LABEL, OTHER_OPTION
from survey_engine.services.question_inputs import (
    ChoiceInput,
    ContactVerificationInput,
    FreeTextInput,
    MultiSelectInput,
    QuestionInput,
)
from survey_engine.services.survey_runner import SurveyRunner

from . import state

_YES_NO = ("Yes", "No")
_PHONE_TYPES = ("cell", "landline")
_CONTACT_FIELDS = (
    ("name", "name"),
    ("email", "email address"),
    ("phone", "phone number"),
)


def option_label(option: str) -> str:
    return OTHER_LABEL if option == OTHER_OPTION else option


def render_access_denied() -> None:
    """Shown when the link carries no respondent id. No survey content is rendered."""

    st.error("Access Denied")
    st.write("This survey link is missing a respondent id. Please use the personal link you were sent.")


def render_not_found(survey_id: str | None) -> None:
    st.warning("Survey not found")
    if survey_id:
        st.write(f"The survey '{survey_id}' does not exist or is no longer accepting responses.")
    else:
        st.write("No survey is currently accepting responses.")


def render_load_error(message: str) -> None:
    st.error("The survey could not be loaded.")
    st.caption(message)


def render_thank_you(runner: SurveyRunner) -> None:
    st.success("Thank You!")
    st.markdown(f"### {runner.catalog.survey.title}")
    st.write("Your responses have been recorded. You can close this page.")


def render_question_header(runner: SurveyRunner) -> None:
    """Render progress information and the active question text."""

    question = runner.current_question
    st.progress(runner.progress_percent / 100)
    header_col, percent_col = st.columns([3, 1])
    with header_col:
        st.markdown(f"### Question {runner.current_index + 1} of {runner.total_questions}")
    with percent_col:
        st.caption(f"{runner.progress_percent:.0f}% complete")

    st.markdown(f"**{question.question_text}**")
    if not question.required:
        st.caption("Optional")


def render_write_error(runner: SurveyRunner) -> None:
    """Inline, recoverable error for failed answer writes."""

    message = runner.error
    if not message:
        return

    error_col, retry_col = st.columns([4, 1], vertical_alignment="center")
    with error_col:
        st.error(message)
    with retry_col:
        if runner.has_failed_writes:
            st.button("Retry", key="retry_failed_writes", on_click=runner.retry_failed_writes)
        else:
            st.button("Dismiss", key="dismiss_error", on_click=runner.clear_error)


def render_answer_widget(runner: SurveyRunner) -> None:
    """Render the widget matching the current question's type."""

    current = runner.current_input
    if isinstance(current, ChoiceInput):
        _render_choice(runner, current)
    elif isinstance(current, MultiSelectInput):
        _render_multi_select(runner, current)
    elif isinstance(current, ContactVerificationInput):
        _render_contact_verification(runner, current)
    elif isinstance(current, FreeTextInput):
        _render_free_text(runner, current)
    else:
        raise TypeError(f"No widget for {type(current).__name__}")


def _render_choice(runner: SurveyRunner, current: ChoiceInput) -> None:
    key = state.widget_key(current.question_id)
    if key not in st.session_state and current.selected in current.options:
        st.session_state[key] = current.selected

    st.radio(
        "Select an answer",
        options=list(current.options),
        index=None,
        key=key,
        format_func=option_label,
        on_change=_on_choice,
        args=(runner, key),
    )

    if st.session_state.get(key) == OTHER_OPTION:
        _render_other_text(runner, current)


def _render_multi_select(runner: SurveyRunner, current: MultiSelectInput) -> None:
    st.caption(f"Select up to {current.max_selections} ({current.remaining} remaining)")

    for option in current.options:
        key = state.widget_key(current.question_id, f"opt_{option}")
        st.session_state.setdefault(key, current.is_selected(option))
        st.checkbox(
            option_label(option),
            key=key,
            disabled=current.is_disabled(option),
            on_change=_on_toggle,
            args=(runner, option, key),
        )

    if current.is_selected(OTHER_OPTION):
        _render_other_text(runner, current)


def _render_other_text(runner: SurveyRunner, current: ChoiceInput | MultiSelectInput) -> None:
    key = state.widget_key(current.question_id, "other")
    st.session_state.setdefault(key, current.other_text)
    st.text_input(
        "Please specify",
        key=key,
        placeholder="Type your answer here...",
        on_change=_on_text,
        args=(runner.set_other_text, key),
    )


def _render_free_text(runner: SurveyRunner, current: FreeTextInput) -> None:
    key = state.widget_key(current.question_id)
    st.session_state.setdefault(key, current.text)
    st.text_area(
        "Your answer",
        key=key,
        placeholder="Type your answer here...",
        on_change=_on_text,
        args=(runner.set_free_text, key),
    )


def _render_contact_verification(runner: SurveyRunner, current: ContactVerificationInput) -> None:
    data = current.data
    existing = current.existing

    for field, label in _CONTACT_FIELDS:
        on_file = getattr(existing, field)
        corrected_value = getattr(data, field)
        confirmed: Optional[bool] = getattr(data, f"{field}_correct")

        if on_file:
            confirm_key = state.widget_key(current.question_id, f"{field}_correct")
            if confirm_key not in st.session_state and confirmed is not None:
                st.session_state[confirm_key] = "Yes" if confirmed else "No"
            st.radio(
                f"Is this your {label}? **{on_file}**",
                options=list(_YES_NO),
                index=None,
                horizontal=True,
                key=confirm_key,
                on_change=_on_contact_field,
                args=(runner, f"{field}_correct", confirm_key, lambda value: value == "Yes"),
            )
            if st.session_state.get(confirm_key) != "No":
                continue
            prompt = f"Correct {label}"
        else:
            prompt = f"Your {label}"

        _contact_text_input(runner, current, field, prompt, corrected_value)

        if field == "phone":
            _contact_phone_type(runner, current, "phone_type", "Is this a cell phone or landline?", data.phone_type)

    _contact_text_input(runner, current, "additional_phone", "Additional phone number (optional)", data.additional_phone)
    if data.additional_phone:
        _contact_phone_type(
            runner,
            current,
            "additional_phone_type",
            "Is the additional number a cell phone or landline?",
            data.additional_phone_type,
        )

    key = state.widget_key(current.question_id, "address")
    st.session_state.setdefault(key, data.address or "")
    st.text_area(
        "Mailing address",
        key=key,
        on_change=_on_contact_field,
        args=(runner, "address", key, _blank_to_none),
    )


def _contact_text_input(
    runner: SurveyRunner,
    current: ContactVerificationInput,
    field: str,
    prompt: str,
    initial: Optional[str],
) -> None:
    key = state.widget_key(current.question_id, field)
    st.session_state.setdefault(key, initial or "")
    st.text_input(
        prompt,
        key=key,
        on_change=_on_contact_field,
        args=(runner, field, key, _blank_to_none),
    )


def _contact_phone_type(
    runner: SurveyRunner,
    current: ContactVerificationInput,
    field: str,
    prompt: str,
    initial: Optional[str],
) -> None:
    key = state.widget_key(current.question_id, field)
    if key not in st.session_state and initial in _PHONE_TYPES:
        st.session_state[key] = initial
    st.radio(
        prompt,
        options=list(_PHONE_TYPES),
        index=None,
        horizontal=True,
        key=key,
        format_func=str.title,
        on_change=_on_contact_field,
        args=(runner, field, key, lambda value: value),
    )


def _blank_to_none(value: Any) -> Optional[str]:
    cleaned = str(value or "").strip()
    return cleaned or None


def _on_choice(runner: SurveyRunner, key: str) -> None:
    selection = st.session_state.get(key)
    if selection is not None:
        runner.select_option(selection)


def _on_toggle(runner: SurveyRunner, option: str, key: str) -> None:
    if not runner.toggle_option(option):
        current: QuestionInput = runner.current_input
        if isinstance(current, MultiSelectInput):
            st.session_state[key] = current.is_selected(option)


def _on_text(handler: Callable[[str], bool], key: str) -> None:
    handler(str(st.session_state.get(key) or ""))


def _on_contact_field(
    runner: SurveyRunner,
    field: str,
    key: str,
    transform: Callable[[Any], Any],
) -> None:
    runner.update_contact(**{field: transform(st.session_state.get(key))})
