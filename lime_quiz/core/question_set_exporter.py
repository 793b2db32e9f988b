"""Utilities for exporting question sets to the plain-text format used for imports."""

from __future__ import annotations

from pathlib import Path

from lime_quiz.core.models import Question


def save_question_set_to_file(
    file_path: Path,
    questions: list[Question],
    time_limit_minutes: int | None = None,
    name: str | None = None,
) -> None:
    """Persist the provided questions to disk in the text import format."""

    if not questions:
        raise ValueError("Cannot export an empty question set.")

    file_path = file_path.resolve()
    file_path.parent.mkdir(parents=True, exist_ok=True)
    document = serialize_question_set(questions, time_limit_minutes, name)
    file_path.write_text(document, encoding="utf-8")


def serialize_question_set(
    questions: list[Question],
    time_limit_minutes: int | None = None,
    name: str | None = None,
) -> str:
    header: list[str] = []
    if name:
        header.append(f"NAME: {name}")
    if time_limit_minutes is not None:
        header.append(f"TIMELIMIT: {time_limit_minutes}")

    blocks = [_serialize_question(question) for question in questions]
    body = "\n\n---\n\n".join(blocks) + "\n"
    if header:
        return "\n".join(header) + "\n\n" + body
    return body


def _serialize_question(question: Question) -> str:
    prompt_lines = question.prompt.splitlines() or [question.prompt]
    rubric_lines = question.rubric.splitlines() or [question.rubric]
    lines = [f"Q: {prompt_lines[0]}", *prompt_lines[1:], f"RUBRIC: {rubric_lines[0]}", *rubric_lines[1:]]
    return "\n".join(lines)
