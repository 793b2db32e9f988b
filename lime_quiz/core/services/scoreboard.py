"""Ranks the students of a session snapshot by total score."""

from __future__ import annotations

from dataclasses import dataclass

from lime_quiz.core.models import GameSession, StudentRecord


@dataclass(slots=True)
class ScoreboardRow:
    """Immutable snapshot returned to consumers."""

    rank: int
    display_name: str
    total_score: int
    accepted_answers: int


def build_scoreboard(students: dict[str, StudentRecord], limit: int | None = None) -> list[ScoreboardRow]:
    """Return students sorted by score, ties broken by earliest join then name."""
    ordered = sorted(
        students.values(),
        key=lambda s: (-s.total_score, s.joined_at, s.name),
    )
    if limit is not None:
        ordered = ordered[:limit]
    return [
        ScoreboardRow(
            rank=position,
            display_name=student.name,
            total_score=student.total_score,
            accepted_answers=len(student.answers),
        )
        for position, student in enumerate(ordered, start=1)
    ]


def session_scoreboard(session: GameSession | None, limit: int | None = None) -> list[ScoreboardRow]:
    if session is None:
        return []
    return build_scoreboard(session.students, limit)
