"""Service for saving and loading reusable question sets."""

from __future__ import annotations

import logging
import time
from typing import Callable

from lime_quiz.constants.message_constants import NO_QUESTIONS_MESSAGE
from lime_quiz.constants.quiz_constants import QUESTION_SETS_ROOT
from lime_quiz.core.errors import QuizValidationError
from lime_quiz.core.models import Question, QuestionSet
from lime_quiz.core.services.session_store import SessionStore, join_path
from lime_quiz.core.validation import validate_question, validate_set_name, validate_time_limit

logger = logging.getLogger(__name__)


class QuestionSetRepository:
    """Stores named question sets under their own namespace, independent of live sessions."""

    def __init__(self, store: SessionStore, clock: Callable[[], float] = time.time) -> None:
        self._store = store
        self._clock = clock

    async def save(self, name: str, questions: list[Question], time_limit_minutes: int) -> QuestionSet:
        question_set = QuestionSet(
            name=validate_set_name(name),
            questions=self._prepare_questions(questions),
            time_limit_minutes=validate_time_limit(time_limit_minutes),
            created_at=int(self._clock() * 1000),
        )
        question_set.key = await self._store.append(QUESTION_SETS_ROOT, question_set.to_dict())
        logger.info("Saved question set %r (%d questions)", question_set.name, len(question_set.questions))
        return question_set

    async def get(self, key: str) -> QuestionSet | None:
        raw = await self._store.read_once(join_path(QUESTION_SETS_ROOT, key))
        if raw is None:
            return None
        return QuestionSet.from_dict(raw, key=key)

    async def list_all(self) -> list[QuestionSet]:
        """Every saved set in the order it was created."""
        raw = await self._store.read_once(QUESTION_SETS_ROOT) or {}
        return [QuestionSet.from_dict(raw[key], key=key) for key in sorted(raw)]

    @staticmethod
    def _prepare_questions(questions: list[Question]) -> list[Question]:
        if not questions:
            raise QuizValidationError(NO_QUESTIONS_MESSAGE)
        return [validate_question(q.prompt, q.rubric) for q in questions]
