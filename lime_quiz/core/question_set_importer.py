"""Utilities for importing question sets from a human-friendly text file.

File format (questions separated by '---' lines or by the next 'Q:' marker):

    NAME: Set name                   (optional)
    TIMELIMIT: minutes per question  (optional)

    Q: Question text. Additional lines until the next marker are treated as
       part of the question.
    RUBRIC: Grading instructions for the model. They may span several
       lines and paragraphs.

Example:

    NAME: Daily routines
    TIMELIMIT: 3

    Q: Write a sentence about what you do every morning.
    RUBRIC: 5 points for a correct present simple sentence.
    No spelling or grammar mistakes allowed.

    ---

    Q: Name a sea animal.
    RUBRIC: 2 points per correctly spelled animal.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from lime_quiz.core.models import Question


class QuestionSetImportError(Exception):
    """Raised when a question set definition cannot be parsed."""


@dataclass(slots=True)
class ImportedQuestionSet:
    """Container for imported set metadata and questions."""

    source_path: Path | None
    questions: list[Question]
    name: str | None = None
    time_limit_minutes: int | None = None


def load_question_set_from_file(file_path: Path) -> ImportedQuestionSet:
    text = file_path.read_text(encoding="utf-8")
    imported = parse_question_set_text(text)
    imported.source_path = file_path
    return imported


def parse_question_set_text(text: str) -> ImportedQuestionSet:
    parser = _Parser()
    for raw_line in text.splitlines():
        parser.feed(raw_line)
    parser.finish_question()
    if not parser.questions:
        raise QuestionSetImportError("Question set file did not contain any questions.")
    return ImportedQuestionSet(
        source_path=None,
        questions=parser.questions,
        name=parser.name,
        time_limit_minutes=parser.time_limit_minutes,
    )


class _Parser:
    def __init__(self) -> None:
        self.questions: list[Question] = []
        self.name: str | None = None
        self.time_limit_minutes: int | None = None
        self._prompt_lines: list[str] = []
        self._rubric_lines: list[str] = []
        self._section: str | None = None

    def feed(self, raw_line: str) -> None:
        line = raw_line.strip()
        upper = line.upper()

        if line == "---":
            self.finish_question()
            return

        if upper.startswith("Q:"):
            self.finish_question()
            self._prompt_lines = [line[2:].strip()]
            self._section = "Q"
            return

        if upper.startswith("RUBRIC:"):
            if self._section is None:
                raise QuestionSetImportError("RUBRIC must follow a question (Q: ...).")
            self._rubric_lines = [line.split(":", 1)[1].strip()]
            self._section = "RUBRIC"
            return

        if upper.startswith("TIMELIMIT:"):
            self.time_limit_minutes = _parse_time_limit(line.split(":", 1)[1].strip())
            return

        if upper.startswith("NAME:"):
            self.name = line.split(":", 1)[1].strip() or None
            return

        if self._section == "Q":
            self._prompt_lines.append(line)
        elif self._section == "RUBRIC":
            self._rubric_lines.append(line)
        elif line:
            raise QuestionSetImportError(f"Encountered text outside of a known section: '{line}'.")

    def finish_question(self) -> None:
        if self._section is None:
            return
        prompt = "\n".join(self._prompt_lines).strip()
        rubric = "\n".join(self._rubric_lines).strip()
        if not prompt:
            raise QuestionSetImportError("Question text missing (Q: ...)")
        if not rubric:
            raise QuestionSetImportError(f"Grading instructions missing for question '{prompt}'.")
        self.questions.append(Question(prompt=prompt, rubric=rubric))
        self._prompt_lines = []
        self._rubric_lines = []
        self._section = None


def _parse_time_limit(raw_value: str) -> int:
    if not raw_value:
        raise QuestionSetImportError("TIMELIMIT must include an integer value.")
    try:
        parsed_value = int(raw_value)
    except ValueError as exc:
        raise QuestionSetImportError("TIMELIMIT must be an integer number of minutes.") from exc
    if parsed_value <= 0:
        raise QuestionSetImportError("TIMELIMIT must be a positive integer.")
    return parsed_value
