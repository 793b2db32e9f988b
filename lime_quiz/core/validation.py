"""Local input checks applied before anything is written to the store."""

from __future__ import annotations

from lime_quiz.constants.message_constants import (
    NAME_INVALID_CHARS_MESSAGE,
    NAME_REQUIRED_MESSAGE,
    PIN_FORMAT_MESSAGE,
    QUESTION_FIELDS_REQUIRED_MESSAGE,
    SET_NAME_REQUIRED_MESSAGE,
    TIME_LIMIT_INVALID_MESSAGE,
)
from lime_quiz.constants.quiz_constants import PIN_LENGTH
from lime_quiz.core.errors import QuizValidationError
from lime_quiz.core.models import Question

FORBIDDEN_KEY_CHARS = frozenset(".$#[]/")


def validate_pin(pin: str) -> str:
    cleaned = (pin or "").strip()
    if len(cleaned) != PIN_LENGTH or not cleaned.isdigit() or not cleaned.isascii():
        raise QuizValidationError(PIN_FORMAT_MESSAGE)
    return cleaned


def validate_display_name(name: str) -> str:
    """Return the trimmed name; it doubles as a store key so some characters are banned."""
    cleaned = (name or "").strip()
    if not cleaned:
        raise QuizValidationError(NAME_REQUIRED_MESSAGE)
    if any(char in FORBIDDEN_KEY_CHARS for char in cleaned):
        raise QuizValidationError(NAME_INVALID_CHARS_MESSAGE)
    return cleaned


def validate_question(prompt: str, rubric: str) -> Question:
    cleaned_prompt = (prompt or "").strip()
    cleaned_rubric = (rubric or "").strip()
    if not cleaned_prompt or not cleaned_rubric:
        raise QuizValidationError(QUESTION_FIELDS_REQUIRED_MESSAGE)
    return Question(prompt=cleaned_prompt, rubric=cleaned_rubric)


def validate_time_limit(minutes: int) -> int:
    if isinstance(minutes, bool) or not isinstance(minutes, int) or minutes <= 0:
        raise QuizValidationError(TIME_LIMIT_INVALID_MESSAGE)
    return minutes


def validate_set_name(name: str) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise QuizValidationError(SET_NAME_REQUIRED_MESSAGE)
    return cleaned
