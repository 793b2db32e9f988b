"""Service for the live session record kept in the shared store.

Architecture note:
    The session lives only in the store; this service holds no session state
    of its own. Any client holding a store handle can drive it. A session is
    ``live`` from ``create`` until ``archive`` moves it into the archive
    namespace, after which the PIN is free again. Question advances and score
    increments go through the gateway's atomic operations so concurrent
    writers cannot skip an index or lose points.
"""

from __future__ import annotations

from datetime import datetime, timezone
import logging
import time
from typing import Callable

from lime_quiz.constants.quiz_constants import ARCHIVE_ROOT, SESSIONS_ROOT
from lime_quiz.core.errors import PinInUseError, SessionNotFoundError
from lime_quiz.core.models import Answer, GameSession, GradedLine, PastGame, Question
from lime_quiz.core.services.session_store import SessionStore, Subscription, join_path

logger = logging.getLogger(__name__)


def session_path(pin: str) -> str:
    return join_path(SESSIONS_ROOT, pin)


def student_path(pin: str, name: str) -> str:
    return join_path(SESSIONS_ROOT, pin, "students", name)


def archive_key(date: str, pin: str) -> str:
    return f"{date}_{pin}"


class SessionWatch:
    """Subscription wrapper that yields ``GameSession`` snapshots (``None`` once ended)."""

    def __init__(self, subscription: Subscription) -> None:
        self._subscription = subscription

    def __aiter__(self) -> "SessionWatch":
        return self

    async def __anext__(self) -> GameSession | None:
        return _to_session(await self._subscription.next())

    def start(self, on_change: Callable[[GameSession | None], object]):
        return self._subscription.start(lambda raw: on_change(_to_session(raw)))

    def cancel(self) -> None:
        self._subscription.cancel()

    @property
    def cancelled(self) -> bool:
        return self._subscription.cancelled


class GameSessionService:
    """Creates, advances, joins, scores and archives live sessions."""

    def __init__(self, store: SessionStore, clock: Callable[[], float] = time.time) -> None:
        self._store = store
        self._clock = clock

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    async def create(self, pin: str, questions: list[Question], time_limit_minutes: int) -> GameSession:
        now = self._now_ms()
        session = GameSession(
            pin=pin,
            questions=list(questions),
            time_limit_minutes=time_limit_minutes,
            current_question_index=0,
            is_active=True,
            created_at=now,
            current_question_start_time=now,
        )
        created = await self._store.create_if_absent(session_path(pin), session.to_dict())
        if not created:
            raise PinInUseError(pin)
        logger.info("Session %s created with %d question(s)", pin, len(questions))
        return session

    async def read(self, pin: str) -> GameSession | None:
        return _to_session(await self._store.read_once(session_path(pin)))

    async def exists(self, pin: str) -> bool:
        return await self._store.exists(session_path(pin))

    def watch(self, pin: str) -> SessionWatch:
        return SessionWatch(self._store.subscribe(session_path(pin)))

    async def advance(self, pin: str) -> GameSession:
        """Move to the next question and restart its clock."""
        while True:
            session = await self.read(pin)
            if session is None:
                raise SessionNotFoundError(pin)
            started_at = max(self._now_ms(), session.current_question_start_time + 1)
            advanced = await self._store.advance_if_matches(
                session_path(pin), session.current_question_index, started_at
            )
            if advanced:
                session.current_question_index += 1
                session.current_question_start_time = started_at
                logger.info("Session %s advanced to question %d", pin, session.current_question_index + 1)
                return session
            logger.debug("Session %s moved under us, retrying advance", pin)

    async def join(self, pin: str, name: str) -> bool:
        """Add a student, keeping score and answers of an existing record."""
        joined_at = self._now_ms()

        def upsert(current: dict | None) -> dict | None:
            if current is None:
                return None
            students = current.setdefault("students", {})
            if name not in students:
                students[name] = {"name": name, "totalScore": 0, "joinedAt": joined_at}
            return current

        result = await self._store.transaction(session_path(pin), upsert)
        if not result.committed:
            logger.info("Join rejected: no live session %s", pin)
            return False
        logger.info("%s joined session %s", name, pin)
        return True

    async def record_answers(
        self,
        pin: str,
        name: str,
        question_index: int,
        graded_lines: list[GradedLine],
    ) -> list[Answer]:
        """Persist lines that scored above zero and add them to the student's total."""
        timestamp = self._now_ms()
        accepted = [
            (
                self._store.generate_key(),
                Answer(
                    question_index=question_index,
                    text=line.text,
                    score=line.score,
                    feedback=line.feedback,
                    timestamp=timestamp,
                ),
            )
            for line in graded_lines
            if line.score > 0
        ]
        if not accepted:
            return []

        def apply(current: dict | None) -> dict | None:
            if current is None:
                return None
            answers = current.setdefault("answers", {})
            for key, answer in accepted:
                answers[key] = answer.to_dict()
            current["totalScore"] = int(current.get("totalScore") or 0) + sum(a.score for _, a in accepted)
            return current

        result = await self._store.transaction(student_path(pin, name), apply)
        if not result.committed:
            raise SessionNotFoundError(pin)
        logger.info(
            "%s scored %d point(s) on question %d in session %s",
            name,
            sum(answer.score for _, answer in accepted),
            question_index + 1,
            pin,
        )
        return [answer for _, answer in accepted]

    async def archive(self, pin: str) -> PastGame:
        """Copy the session into the archive and remove the live record."""
        session = await self.read(pin)
        if session is None:
            raise SessionNotFoundError(pin)
        ended_at = self._now_ms()
        date = datetime.fromtimestamp(ended_at / 1000, tz=timezone.utc).date().isoformat()
        past_game = PastGame(
            key=archive_key(date, pin),
            date=date,
            pin=pin,
            time_limit_minutes=session.time_limit_minutes,
            questions=session.questions,
            students=session.students,
            created_at=session.created_at,
            ended_at=ended_at,
        )
        await self._store.write(join_path(ARCHIVE_ROOT, past_game.key), past_game.to_dict())
        await self._store.remove(session_path(pin))
        logger.info("Session %s archived as %s", pin, past_game.key)
        return past_game

    async def read_archive(self, key: str) -> PastGame | None:
        raw = await self._store.read_once(join_path(ARCHIVE_ROOT, key))
        if raw is None:
            return None
        return PastGame.from_dict(key, raw)

    async def list_archive(self) -> list[PastGame]:
        """Archived games, newest key first."""
        raw = await self._store.read_once(ARCHIVE_ROOT) or {}
        return [PastGame.from_dict(key, raw[key]) for key in sorted(raw, reverse=True)]


def _to_session(raw: object) -> GameSession | None:
    if not isinstance(raw, dict):
        return None
    return GameSession.from_dict(raw)
