"""Grades candidate answer lines with an OpenAI-compatible language model."""

from __future__ import annotations

import json
import logging
from typing import Any

from openai import AsyncOpenAI, OpenAIError
from pydantic import BaseModel, ValidationError, field_validator

from lime_quiz.constants.message_constants import (
    DEFAULT_FEEDBACK,
    GRADING_FAILED_FEEDBACK,
    GRADING_UNAVAILABLE_FEEDBACK,
)
from lime_quiz.constants.quiz_constants import (
    DEFAULT_GRADING_BASE_URL,
    DEFAULT_GRADING_MODEL,
    DEFAULT_GRADING_TIMEOUT_SECONDS,
    GRADING_MAX_TOKENS,
)
from lime_quiz.core.models import GradedLine
from lime_quiz.utils.settings import AppSettings

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are the grading assistant of the LIME English Center.
Grade each student answer strictly according to the teacher's grading instructions.
Every question comes with its own instructions, so read them carefully each time.
For answers written in English, do NOT accept answers with spelling or grammar mistakes.

IMPORTANT: reply with exactly this JSON shape and nothing else:

{
  "results": [
    { "line": 1, "score": integer_points, "feedback": "Short, encouraging comment that starts with praise and uses emoji" },
    { "line": 2, "score": ..., "feedback": "..." }
  ]
}

Rules:
- Feedback is cheerful and motivating
- Always start with a compliment
- Use emoji to keep the energy positive
- Identical answers must receive identical scores"""


class GradedEntry(BaseModel):
    """One entry of the model's JSON reply."""

    line: int
    score: int = 0
    feedback: str | None = None

    @field_validator("score", mode="before")
    @classmethod
    def _coerce_score(cls, value: Any) -> int:
        try:
            return max(0, int(float(value)))
        except (TypeError, ValueError):
            return 0


class GradingReply(BaseModel):
    results: list[GradedEntry] | None = None


def build_user_prompt(question: str, rubric: str, lines: list[str]) -> str:
    numbered = "\n".join(f'{index}. "{line.strip()}"' for index, line in enumerate(lines, start=1))
    return (
        f"Question: {question}\n\n"
        f"Teacher's grading instructions (follow them exactly):\n{rubric}\n\n"
        f"Answers (one answer per line):\n{numbered}\n\n"
        "Reply with JSON only!"
    )


def match_results(lines: list[str], reply: GradingReply) -> list[GradedLine]:
    """Pair reply entries with input lines by their 1-based line number."""
    by_line: dict[int, GradedEntry] = {}
    for entry in reply.results or []:
        by_line.setdefault(entry.line, entry)

    graded: list[GradedLine] = []
    for index, text in enumerate(lines, start=1):
        entry = by_line.get(index)
        if entry is None:
            graded.append(GradedLine(text=text.strip(), score=0, feedback=DEFAULT_FEEDBACK))
            continue
        graded.append(
            GradedLine(text=text.strip(), score=entry.score, feedback=entry.feedback or DEFAULT_FEEDBACK)
        )
    return graded


class ScoringAdapter:
    """Turns a batch of answer lines into scored, commented lines.

    Never raises: a missing credential yields zero scores, any failure of the
    external call yields a score of one per line.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str = DEFAULT_GRADING_MODEL,
        base_url: str | None = DEFAULT_GRADING_BASE_URL,
        timeout_seconds: float = DEFAULT_GRADING_TIMEOUT_SECONDS,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self._model = model
        self._client = client
        if self._client is None and api_key:
            self._client = AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout_seconds)
        if self._client is None:
            logger.warning("GROQ_API_KEY is not set; answers will not be graded.")

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "ScoringAdapter":
        return cls(
            api_key=settings.groq_api_key,
            model=settings.grading_model,
            base_url=settings.grading_base_url,
            timeout_seconds=settings.grading_timeout_seconds,
        )

    @property
    def is_configured(self) -> bool:
        return self._client is not None

    async def score(self, question: str, rubric: str, lines: list[str]) -> list[GradedLine]:
        if not lines:
            return []
        if self._client is None:
            return [
                GradedLine(text=line.strip(), score=0, feedback=GRADING_UNAVAILABLE_FEEDBACK)
                for line in lines
            ]

        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                temperature=0,
                max_tokens=GRADING_MAX_TOKENS,
                response_format={"type": "json_object"},
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": build_user_prompt(question, rubric, lines)},
                ],
            )
            content = response.choices[0].message.content or ""
            reply = GradingReply.model_validate(json.loads(content.strip()))
        except (OpenAIError, ValidationError, ValueError, IndexError, AttributeError, TypeError):
            logger.exception("Grading call failed; falling back to a courtesy score")
            return [
                GradedLine(text=line.strip(), score=1, feedback=GRADING_FAILED_FEEDBACK)
                for line in lines
            ]

        graded = match_results(lines, reply)
        logger.info("Graded %d line(s), %d point(s) total", len(graded), sum(g.score for g in graded))
        return graded
