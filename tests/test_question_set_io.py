import pytest

from lime_quiz.core.models import Question
from lime_quiz.core.question_set_exporter import save_question_set_to_file, serialize_question_set
from lime_quiz.core.question_set_importer import (
    QuestionSetImportError,
    load_question_set_from_file,
    parse_question_set_text,
)


def test_parse_multiline_sections_and_header():
    text = """NAME: Daily routines
TIMELIMIT: 3

Q: Write a sentence about your morning.
Use the present simple.
RUBRIC: 5 points for a correct sentence.
No spelling mistakes allowed.

---

Q: Name a sea animal.
RUBRIC: 2 points per animal.
"""
    imported = parse_question_set_text(text)

    assert imported.name == "Daily routines"
    assert imported.time_limit_minutes == 3
    assert imported.questions[0] == Question(
        prompt="Write a sentence about your morning.\nUse the present simple.",
        rubric="5 points for a correct sentence.\nNo spelling mistakes allowed.",
    )
    assert imported.questions[1].prompt == "Name a sea animal."


def test_next_q_marker_starts_a_new_question_without_separator():
    imported = parse_question_set_text("Q: one\nRUBRIC: r1\nQ: two\nRUBRIC: r2\n")
    assert [q.prompt for q in imported.questions] == ["one", "two"]
    assert imported.name is None
    assert imported.time_limit_minutes is None


@pytest.mark.parametrize(
    "text",
    [
        "",
        "Q: missing rubric\n",
        "RUBRIC: orphan\n",
        "stray text\nQ: a\nRUBRIC: b\n",
        "TIMELIMIT: soon\nQ: a\nRUBRIC: b\n",
        "TIMELIMIT: 0\nQ: a\nRUBRIC: b\n",
    ],
)
def test_malformed_files_are_rejected(text):
    with pytest.raises(QuestionSetImportError):
        parse_question_set_text(text)


def test_export_then_import_keeps_questions(tmp_path):
    questions = [
        Question(prompt="Line one\nLine two", rubric="Rubric A"),
        Question(prompt="Second", rubric="Rubric B\nmore"),
    ]
    path = tmp_path / "nested" / "set.txt"

    save_question_set_to_file(path, questions, time_limit_minutes=4, name="Mixed")
    imported = load_question_set_from_file(path)

    assert imported.questions == questions
    assert imported.time_limit_minutes == 4
    assert imported.name == "Mixed"
    assert imported.source_path == path


def test_serialize_layout():
    document = serialize_question_set([Question("A?", "one"), Question("B?", "two")])
    assert document == "Q: A?\nRUBRIC: one\n\n---\n\nQ: B?\nRUBRIC: two\n"


def test_export_refuses_empty_sets(tmp_path):
    with pytest.raises(ValueError):
        save_question_set_to_file(tmp_path / "empty.txt", [])
