import asyncio
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock

import httpx
from openai import APIConnectionError

from lime_quiz.constants.message_constants import (
    DEFAULT_FEEDBACK,
    GRADING_FAILED_FEEDBACK,
    GRADING_UNAVAILABLE_FEEDBACK,
)
from lime_quiz.core.services.scoring_adapter import GradingReply, ScoringAdapter, build_user_prompt, match_results


def _client_returning(content):
    response = SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])
    create = AsyncMock(return_value=response)
    return SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create))), create


def test_scores_are_matched_by_line_number():
    payload = {
        "results": [
            {"line": 2, "score": 0, "feedback": "Check the spelling 🐙"},
            {"line": 1, "score": 2, "feedback": "Great job 🐬"},
        ]
    }
    client, create = _client_returning(json.dumps(payload))
    adapter = ScoringAdapter(client=client, model="test-model")

    graded = asyncio.run(adapter.score("Name a sea animal.", "2 points each.", [" dolphin ", "octopuss"]))

    assert [(g.text, g.score) for g in graded] == [("dolphin", 2), ("octopuss", 0)]
    assert graded[0].feedback == "Great job 🐬"
    kwargs = create.await_args.kwargs
    assert kwargs["model"] == "test-model"
    assert kwargs["temperature"] == 0
    assert kwargs["response_format"] == {"type": "json_object"}
    assert '1. "dolphin"' in kwargs["messages"][1]["content"]


def test_missing_entries_get_zero_with_default_feedback():
    client, _ = _client_returning(json.dumps({"results": [{"line": 1, "score": "3", "feedback": "Yes!"}]}))
    adapter = ScoringAdapter(client=client)

    graded = asyncio.run(adapter.score("Q", "R", ["first", "second"]))

    assert graded[0].score == 3
    assert graded[1].score == 0
    assert graded[1].feedback == DEFAULT_FEEDBACK


def test_negative_and_garbage_scores_are_clamped():
    reply = GradingReply.model_validate(
        {"results": [{"line": 1, "score": -4}, {"line": 2, "score": "lots"}, {"line": 3, "score": 2.7}]}
    )
    graded = match_results(["a", "b", "c"], reply)
    assert [g.score for g in graded] == [0, 0, 2]


def test_unparsable_reply_falls_back_to_one_point():
    client, _ = _client_returning("this is not json")
    adapter = ScoringAdapter(client=client)

    graded = asyncio.run(adapter.score("Q", "R", ["whale", "shark"]))

    assert [g.score for g in graded] == [1, 1]
    assert all(g.feedback == GRADING_FAILED_FEEDBACK for g in graded)


def test_reply_without_results_key_scores_zero():
    client, _ = _client_returning(json.dumps({"answers": []}))
    adapter = ScoringAdapter(client=client)

    graded = asyncio.run(adapter.score("Q", "R", ["whale"]))

    assert graded[0].score == 0
    assert graded[0].feedback == DEFAULT_FEEDBACK


def test_transport_failure_falls_back_to_one_point():
    create = AsyncMock(side_effect=APIConnectionError(request=httpx.Request("POST", "https://example.test")))
    client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
    adapter = ScoringAdapter(client=client)

    graded = asyncio.run(adapter.score("Q", "R", ["whale"]))

    assert graded[0].score == 1
    assert graded[0].text == "whale"


def test_without_api_key_every_line_scores_zero():
    adapter = ScoringAdapter(api_key=None)
    assert adapter.is_configured is False

    graded = asyncio.run(adapter.score("Q", "R", ["whale", "shark"]))

    assert [g.score for g in graded] == [0, 0]
    assert graded[0].feedback == GRADING_UNAVAILABLE_FEEDBACK


def test_empty_batch_makes_no_call():
    client, create = _client_returning("{}")
    adapter = ScoringAdapter(client=client)

    assert asyncio.run(adapter.score("Q", "R", [])) == []
    create.assert_not_awaited()


def test_user_prompt_contains_question_rubric_and_numbered_lines():
    prompt = build_user_prompt("Name a fish.", "1 point each.", ["cod", "  salmon "])
    assert "Question: Name a fish." in prompt
    assert "1 point each." in prompt
    assert '1. "cod"\n2. "salmon"' in prompt
