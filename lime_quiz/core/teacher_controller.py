"""Teacher-side facade over question sets, live sessions and the archive."""

from __future__ import annotations

import asyncio
import inspect
import logging
from pathlib import Path
from typing import Callable

from lime_quiz.constants.message_constants import (
    NO_QUESTIONS_MESSAGE,
    WRONG_PASSPHRASE_MESSAGE,
)
from lime_quiz.constants.quiz_constants import (
    DEFAULT_TEACHER_PASSPHRASE,
    DEFAULT_TIME_LIMIT_MINUTES,
    MAX_PIN_ATTEMPTS,
)
from lime_quiz.core.errors import PinInUseError, QuizValidationError, SessionNotFoundError, TeacherAuthError
from lime_quiz.core.models import GameSession, PastGame, Question, QuestionSet
from lime_quiz.core.pin_generator import PinGenerator
from lime_quiz.core.question_set_exporter import save_question_set_to_file
from lime_quiz.core.question_set_importer import ImportedQuestionSet, load_question_set_from_file
from lime_quiz.core.services.game_session import GameSessionService, SessionWatch
from lime_quiz.core.services.question_sets import QuestionSetRepository
from lime_quiz.core.services.scoreboard import ScoreboardRow, session_scoreboard
from lime_quiz.core.validation import validate_pin, validate_question, validate_time_limit

logger = logging.getLogger(__name__)


class TeacherController:
    """Facade for the teacher: draft editing, question sets, and one live game at a time."""

    def __init__(
        self,
        sessions: GameSessionService,
        question_sets: QuestionSetRepository,
        passphrase: str = DEFAULT_TEACHER_PASSPHRASE,
        pin_generator: PinGenerator | None = None,
    ) -> None:
        self._lock = asyncio.Lock()
        self._sessions = sessions
        self._question_sets = question_sets
        self._passphrase = passphrase
        self._pins = pin_generator or PinGenerator()
        self._authenticated = False

        # Draft
        self._questions: list[Question] = []
        self._time_limit_minutes = DEFAULT_TIME_LIMIT_MINUTES

        # Live game
        self._pin: str | None = None
        self._snapshot: GameSession | None = None
        self._watch: SessionWatch | None = None
        self._watch_task: asyncio.Task[None] | None = None

    # --- Access ---

    def login(self, passphrase: str) -> None:
        if passphrase != self._passphrase:
            logger.warning("Rejected teacher login")
            raise TeacherAuthError(WRONG_PASSPHRASE_MESSAGE)
        self._authenticated = True

    @property
    def is_authenticated(self) -> bool:
        return self._authenticated

    def _require_login(self) -> None:
        if not self._authenticated:
            raise TeacherAuthError(WRONG_PASSPHRASE_MESSAGE)

    # --- Draft ---

    @property
    def questions(self) -> list[Question]:
        return list(self._questions)

    @property
    def time_limit_minutes(self) -> int:
        return self._time_limit_minutes

    def add_question(self, prompt: str, rubric: str) -> Question:
        self._require_login()
        question = validate_question(prompt, rubric)
        self._questions.append(question)
        return question

    def remove_question(self, index: int) -> Question:
        self._require_login()
        if not 0 <= index < len(self._questions):
            raise IndexError(f"No question at position {index}")
        return self._questions.pop(index)

    def set_time_limit(self, minutes: int) -> None:
        self._require_login()
        self._time_limit_minutes = validate_time_limit(minutes)

    def replace_draft(self, questions: list[Question], time_limit_minutes: int | None = None) -> None:
        self._require_login()
        validated = [validate_question(q.prompt, q.rubric) for q in questions]
        if time_limit_minutes is not None:
            self._time_limit_minutes = validate_time_limit(time_limit_minutes)
        self._questions = validated

    def clear_draft(self) -> None:
        self._require_login()
        self._questions = []
        self._time_limit_minutes = DEFAULT_TIME_LIMIT_MINUTES

    # --- Question sets ---

    async def save_question_set(self, name: str) -> QuestionSet:
        self._require_login()
        return await self._question_sets.save(name, self._questions, self._time_limit_minutes)

    async def list_question_sets(self) -> list[QuestionSet]:
        self._require_login()
        return await self._question_sets.list_all()

    async def load_question_set(self, key: str) -> QuestionSet | None:
        """Replace the draft with a saved set. Returns ``None`` (draft untouched) if the key is unknown."""
        self._require_login()
        question_set = await self._question_sets.get(key)
        if question_set is None:
            return None
        self._questions = list(question_set.questions)
        self._time_limit_minutes = question_set.time_limit_minutes
        return question_set

    def import_questions(self, path: Path) -> ImportedQuestionSet:
        self._require_login()
        imported = load_question_set_from_file(path)
        self.replace_draft(imported.questions, imported.time_limit_minutes)
        logger.info("Imported %d question(s) from %s", len(imported.questions), path)
        return imported

    def export_questions(self, path: Path, name: str | None = None) -> None:
        self._require_login()
        save_question_set_to_file(path, self._questions, self._time_limit_minutes, name)

    # --- Live game ---

    @property
    def pin(self) -> str | None:
        return self._pin

    @property
    def snapshot(self) -> GameSession | None:
        return self._snapshot

    async def start_game(self) -> str:
        """Create a session from the draft under a fresh PIN and return the PIN."""
        self._require_login()
        if not self._questions:
            raise QuizValidationError(NO_QUESTIONS_MESSAGE)
        async with self._lock:
            self.stop_watching()
            pin = ""
            for _ in range(MAX_PIN_ATTEMPTS):
                pin = self._pins.next_pin()
                try:
                    session = await self._sessions.create(pin, self._questions, self._time_limit_minutes)
                except PinInUseError:
                    logger.info("PIN %s is taken, drawing another", pin)
                    continue
                self._pin = pin
                self._snapshot = session
                return pin
            raise PinInUseError(pin)

    async def attach(self, pin: str) -> GameSession:
        """Take over an existing live session, e.g. after the teacher reconnects."""
        self._require_login()
        pin = validate_pin(pin)
        session = await self._sessions.read(pin)
        if session is None:
            raise SessionNotFoundError(pin)
        self.stop_watching()
        self._pin = pin
        self._snapshot = session
        return session

    async def refresh(self) -> GameSession | None:
        pin = self._live_pin()
        self._snapshot = await self._sessions.read(pin)
        return self._snapshot

    async def next_question(self) -> Question | None:
        """Advance to the next question, or return ``None`` when the last one is showing."""
        self._require_login()
        pin = self._live_pin()
        async with self._lock:
            session = await self._sessions.read(pin)
            if session is None:
                raise SessionNotFoundError(pin)
            if not session.has_next_question:
                self._snapshot = session
                return None
            self._snapshot = await self._sessions.advance(pin)
            return self._snapshot.current_question

    async def end_game(self) -> str:
        """Archive the live session and forget it. Returns the archive key."""
        self._require_login()
        pin = self._live_pin()
        async with self._lock:
            past_game = await self._sessions.archive(pin)
            self.stop_watching()
            self._pin = None
            self._snapshot = None
            return past_game.key

    def start_watching(self, on_change: Callable[[GameSession | None], object] | None = None) -> asyncio.Task[None]:
        pin = self._live_pin()
        self.stop_watching()

        def handle(session: GameSession | None) -> object:
            self._snapshot = session
            if on_change is None:
                return None
            result = on_change(session)
            return result if inspect.isawaitable(result) else None

        self._watch = self._sessions.watch(pin)
        self._watch_task = self._watch.start(handle)
        return self._watch_task

    def stop_watching(self) -> None:
        if self._watch is not None:
            self._watch.cancel()
            self._watch = None
        if self._watch_task is not None:
            self._watch_task.cancel()
            self._watch_task = None

    def leaderboard(self, limit: int | None = None) -> list[ScoreboardRow]:
        return session_scoreboard(self._snapshot, limit)

    async def past_games(self) -> list[PastGame]:
        self._require_login()
        return await self._sessions.list_archive()

    def _live_pin(self) -> str:
        if self._pin is None:
            raise SessionNotFoundError()
        return self._pin
