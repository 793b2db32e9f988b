"""Domain models for the quiz application.

Every model converts to and from the plain dict layout kept in the session
store. Store keys are camelCase and timestamps are epoch milliseconds.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import math
from typing import Any


@dataclass(slots=True, frozen=True)
class Question:
    """Free-text question with the teacher's grading instructions."""

    prompt: str
    rubric: str

    def to_dict(self) -> dict[str, Any]:
        return {"prompt": self.prompt, "rubric": self.rubric}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Question":
        return cls(prompt=data.get("prompt", ""), rubric=data.get("rubric", ""))


@dataclass(slots=True)
class QuestionSet:
    """Named, reusable list of questions saved by a teacher."""

    name: str
    questions: list[Question]
    time_limit_minutes: int
    created_at: int = 0
    key: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "questions": [question.to_dict() for question in self.questions],
            "timeLimitMinutes": self.time_limit_minutes,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], key: str | None = None) -> "QuestionSet":
        return cls(
            name=data.get("name", ""),
            questions=_questions_from_store(data.get("questions")),
            time_limit_minutes=int(data.get("timeLimitMinutes") or 0),
            created_at=int(data.get("createdAt") or 0),
            key=key,
        )


@dataclass(slots=True, frozen=True)
class GradedLine:
    """One candidate answer line as returned by the scoring adapter."""

    text: str
    score: int
    feedback: str


@dataclass(slots=True, frozen=True)
class Answer:
    """Accepted answer line stored in a student's append-only log."""

    question_index: int
    text: str
    score: int
    feedback: str
    timestamp: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "questionIndex": self.question_index,
            "text": self.text,
            "score": self.score,
            "feedback": self.feedback,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Answer":
        return cls(
            question_index=int(data.get("questionIndex") or 0),
            text=data.get("text", ""),
            score=int(data.get("score") or 0),
            feedback=data.get("feedback", ""),
            timestamp=int(data.get("timestamp") or 0),
        )


@dataclass(slots=True)
class StudentRecord:
    """A joined student with a running total and an answer log keyed by push id."""

    name: str
    total_score: int = 0
    joined_at: int = 0
    answers: dict[str, Answer] = field(default_factory=dict)

    def answers_for(self, question_index: int) -> list[Answer]:
        """Answers for one question in submission order."""
        matching = [a for a in self.answers.values() if a.question_index == question_index]
        return sorted(matching, key=lambda a: a.timestamp)

    def accepted_texts(self, question_index: int) -> set[str]:
        """Normalized texts already accepted for a question."""
        return {normalize_answer_text(a.text) for a in self.answers_for(question_index)}

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "totalScore": self.total_score,
            "joinedAt": self.joined_at,
            "answers": {key: answer.to_dict() for key, answer in self.answers.items()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StudentRecord":
        raw_answers = data.get("answers") or {}
        return cls(
            name=data.get("name", ""),
            total_score=int(data.get("totalScore") or 0),
            joined_at=int(data.get("joinedAt") or 0),
            answers={key: Answer.from_dict(value) for key, value in raw_answers.items()},
        )


@dataclass(slots=True)
class GameSession:
    """Snapshot of a live session as replicated from the store."""

    pin: str
    questions: list[Question]
    time_limit_minutes: int
    current_question_index: int = 0
    is_active: bool = True
    created_at: int = 0
    current_question_start_time: int = 0
    students: dict[str, StudentRecord] = field(default_factory=dict)

    @property
    def current_question(self) -> Question | None:
        if 0 <= self.current_question_index < len(self.questions):
            return self.questions[self.current_question_index]
        return None

    @property
    def has_next_question(self) -> bool:
        return self.current_question_index + 1 < len(self.questions)

    def remaining_seconds(self, now_ms: int) -> float:
        """Time left on the current question, never negative."""
        elapsed = (now_ms - self.current_question_start_time) / 1000
        return max(0.0, self.time_limit_minutes * 60 - elapsed)

    def display_seconds(self, now_ms: int) -> int:
        return math.ceil(self.remaining_seconds(now_ms))

    def student(self, name: str) -> StudentRecord | None:
        return self.students.get(name)

    def to_dict(self) -> dict[str, Any]:
        return {
            "pin": self.pin,
            "questions": [question.to_dict() for question in self.questions],
            "currentQuestionIndex": self.current_question_index,
            "timeLimitMinutes": self.time_limit_minutes,
            "isActive": self.is_active,
            "createdAt": self.created_at,
            "currentQuestionStartTime": self.current_question_start_time,
            "students": {name: record.to_dict() for name, record in self.students.items()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GameSession":
        raw_students = data.get("students") or {}
        return cls(
            pin=str(data.get("pin", "")),
            questions=_questions_from_store(data.get("questions")),
            time_limit_minutes=int(data.get("timeLimitMinutes") or 0),
            current_question_index=int(data.get("currentQuestionIndex") or 0),
            is_active=bool(data.get("isActive", True)),
            created_at=int(data.get("createdAt") or 0),
            current_question_start_time=int(data.get("currentQuestionStartTime") or 0),
            students={name: StudentRecord.from_dict(value) for name, value in raw_students.items()},
        )


@dataclass(slots=True)
class PastGame:
    """Frozen copy of a finished session."""

    key: str
    date: str
    pin: str
    time_limit_minutes: int
    questions: list[Question]
    students: dict[str, StudentRecord]
    created_at: int = 0
    ended_at: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date,
            "pin": self.pin,
            "timeLimitMinutes": self.time_limit_minutes,
            "questions": [question.to_dict() for question in self.questions],
            "students": {name: record.to_dict() for name, record in self.students.items()},
            "createdAt": self.created_at,
            "endedAt": self.ended_at,
        }

    @classmethod
    def from_dict(cls, key: str, data: dict[str, Any]) -> "PastGame":
        raw_students = data.get("students") or {}
        return cls(
            key=key,
            date=data.get("date", ""),
            pin=str(data.get("pin", "")),
            time_limit_minutes=int(data.get("timeLimitMinutes") or 0),
            questions=_questions_from_store(data.get("questions")),
            students={name: StudentRecord.from_dict(value) for name, value in raw_students.items()},
            created_at=int(data.get("createdAt") or 0),
            ended_at=int(data.get("endedAt") or 0),
        )


def normalize_answer_text(text: str) -> str:
    """Normalization used for duplicate detection."""
    return text.strip().lower()


def _questions_from_store(raw: Any) -> list[Question]:
    if not raw:
        return []
    # Some stores hand back sequences as index-keyed mappings.
    if isinstance(raw, dict):
        raw = [raw[key] for key in sorted(raw, key=int)]
    return [Question.from_dict(item) for item in raw]
