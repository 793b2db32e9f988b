from lime_quiz.core.models import Answer, GameSession, Question, StudentRecord
from lime_quiz.core.services.scoreboard import build_scoreboard, session_scoreboard


def _student(name, total, joined_at, answers=0):
    return StudentRecord(
        name=name,
        total_score=total,
        joined_at=joined_at,
        answers={f"k{i}": Answer(0, f"line {i}", 1, "ok", i) for i in range(answers)},
    )


def test_rows_are_ranked_by_total_score():
    students = {
        "Mai": _student("Mai", 4, 10, answers=2),
        "Tuan": _student("Tuan", 9, 20, answers=3),
        "Linh": _student("Linh", 0, 5),
    }
    rows = build_scoreboard(students)
    assert [(row.rank, row.display_name, row.total_score) for row in rows] == [
        (1, "Tuan", 9),
        (2, "Mai", 4),
        (3, "Linh", 0),
    ]
    assert rows[0].accepted_answers == 3


def test_ties_go_to_the_earlier_joiner():
    students = {"Bao": _student("Bao", 3, 50), "An": _student("An", 3, 40)}
    assert [row.display_name for row in build_scoreboard(students)] == ["An", "Bao"]


def test_limit_truncates_after_sorting():
    students = {name: _student(name, score, 0) for name, score in [("A", 1), ("B", 5), ("C", 3)]}
    assert [row.display_name for row in build_scoreboard(students, limit=2)] == ["B", "C"]


def test_session_scoreboard_handles_missing_session():
    assert session_scoreboard(None) == []
    session = GameSession(pin="4821", questions=[Question("Q", "R")], time_limit_minutes=5)
    assert session_scoreboard(session) == []
