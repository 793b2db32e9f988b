"""Student-side submission flow: countdown, line filtering, dedupe, grading, persistence."""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass, field
from enum import Enum, auto
import inspect
import logging
import time
from typing import Awaitable, Callable, Protocol

from lime_quiz.constants.message_constants import (
    ALREADY_SUBMITTED_MESSAGE,
    ANSWERS_GRADED_MESSAGE,
    EMPTY_ANSWER_MESSAGE,
    NO_QUESTION_MESSAGE,
    PARTIAL_DUPLICATE_TEMPLATE,
    STORE_ERROR_MESSAGE,
    SUBMISSION_IN_FLIGHT_MESSAGE,
    TIME_UP_MESSAGE,
    WRONG_PIN_MESSAGE,
)
from lime_quiz.constants.quiz_constants import COUNTDOWN_TICK_SECONDS, MIN_ANSWER_LINE_LENGTH
from lime_quiz.core.errors import SessionNotFoundError, StoreError
from lime_quiz.core.models import Answer, GameSession, GradedLine, normalize_answer_text
from lime_quiz.core.rejoin_hint import RejoinHintStore
from lime_quiz.core.services.game_session import GameSessionService, SessionWatch
from lime_quiz.core.validation import validate_display_name, validate_pin

logger = logging.getLogger(__name__)


class Scorer(Protocol):
    async def score(self, question: str, rubric: str, lines: list[str]) -> list[GradedLine]: ...


class SubmissionStatus(Enum):
    ACCEPTED = auto()
    ALREADY_SUBMITTED = auto()
    EMPTY = auto()
    IN_FLIGHT = auto()
    TIME_UP = auto()
    NO_QUESTION = auto()
    GAME_ENDED = auto()
    STORE_ERROR = auto()


@dataclass(slots=True)
class SubmissionOutcome:
    """What happened to one submit attempt, with a message for the student."""

    status: SubmissionStatus
    message: str
    question_index: int | None = None
    graded: list[GradedLine] = field(default_factory=list)
    accepted: list[Answer] = field(default_factory=list)
    duplicate_count: int = 0

    @property
    def points(self) -> int:
        return sum(answer.score for answer in self.accepted)


def split_candidate_lines(text: str) -> list[str]:
    """Trimmed lines of a submission, minus the ones too short to be an answer."""
    lines = [line.strip() for line in (text or "").splitlines()]
    return [line for line in lines if len(line) > MIN_ANSWER_LINE_LENGTH]


def filter_new_lines(candidates: list[str], already_accepted: set[str]) -> tuple[list[str], int]:
    """Drop lines already accepted for the question, and repeats within the batch."""
    seen = set(already_accepted)
    fresh: list[str] = []
    duplicates = 0
    for line in candidates:
        key = normalize_answer_text(line)
        if key in seen:
            duplicates += 1
            continue
        seen.add(key)
        fresh.append(line)
    return fresh, duplicates


class StudentSubmissionPipeline:
    """One student's connection to one session.

    The pipeline keeps the latest replicated snapshot, derives the countdown
    from it, and runs the submit path either on demand or automatically when
    time runs out with unsent text in the draft.
    """

    def __init__(
        self,
        sessions: GameSessionService,
        scorer: Scorer,
        pin: str,
        name: str,
        hints: RejoinHintStore | None = None,
        clock: Callable[[], float] = time.time,
        tick_seconds: float = COUNTDOWN_TICK_SECONDS,
    ) -> None:
        self._sessions = sessions
        self._scorer = scorer
        self.pin = pin
        self.name = name
        self._hints = hints
        self._clock = clock
        self._tick_seconds = tick_seconds
        self._session: GameSession | None = None
        self._ended = False
        self._draft = ""
        self._submitting = False
        self._auto_checked_for: tuple[int, int] | None = None
        self._watch: SessionWatch | None = None
        self._countdown_task: asyncio.Task[None] | None = None
        self._auto_submit_task: asyncio.Task[SubmissionOutcome] | None = None
        self._on_update: Callable[[GameSession | None], object] | None = None

    @classmethod
    async def resume(
        cls,
        sessions: GameSessionService,
        scorer: Scorer,
        hints: RejoinHintStore,
        **kwargs,
    ) -> "StudentSubmissionPipeline | None":
        """Rejoin the game remembered on this device, if it is still running."""
        hint = hints.load()
        if hint is None:
            return None
        pipeline = cls(sessions, scorer, hint.pin, hint.name, hints=hints, **kwargs)
        if not await pipeline.join():
            hints.clear()
            return None
        logger.info("Resumed %s in session %s", hint.name, hint.pin)
        return pipeline

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    # --- Session state ---

    async def join(self) -> bool:
        """Join (or rejoin) the session. Invalid input raises before the store is touched."""
        self.pin = validate_pin(self.pin)
        self.name = validate_display_name(self.name)
        joined = await self._sessions.join(self.pin, self.name)
        if not joined:
            self._ended = True
            return False
        if self._hints is not None:
            self._hints.save(self.pin, self.name)
        await self.refresh()
        return True

    async def refresh(self) -> GameSession | None:
        result = self.apply_snapshot(await self._sessions.read(self.pin))
        if result is not None:
            await result
        return self._session

    def apply_snapshot(self, session: GameSession | None) -> Awaitable[object] | None:
        """Adopt a replicated snapshot as the new truth.

        Returns the awaitable produced by an async ``on_update`` callback so the
        caller can await it.
        """
        self._session = session
        self._ended = session is None
        if self._on_update is None:
            return None
        result = self._on_update(session)
        return result if inspect.isawaitable(result) else None

    @property
    def session(self) -> GameSession | None:
        return self._session

    @property
    def has_ended(self) -> bool:
        return self._ended

    @property
    def is_submitting(self) -> bool:
        return self._submitting

    @property
    def total_score(self) -> int:
        record = self._session.student(self.name) if self._session else None
        return record.total_score if record else 0

    def current_answers(self) -> list[Answer]:
        if self._session is None:
            return []
        record = self._session.student(self.name)
        if record is None:
            return []
        return record.answers_for(self._session.current_question_index)

    def remaining_seconds(self) -> float | None:
        if self._session is None:
            return None
        return self._session.remaining_seconds(self._now_ms())

    @property
    def time_is_up(self) -> bool:
        remaining = self.remaining_seconds()
        return remaining is not None and remaining <= 0

    @property
    def draft(self) -> str:
        return self._draft

    def update_draft(self, text: str) -> None:
        self._draft = text

    # --- Background tasks ---

    def start(self, on_update: Callable[[GameSession | None], object] | None = None) -> None:
        """Subscribe to the session and run the countdown until ``stop``."""
        self._on_update = on_update
        self._watch = self._sessions.watch(self.pin)
        self._watch.start(self.apply_snapshot)
        self._countdown_task = asyncio.create_task(self._run_countdown(), name=f"countdown:{self.pin}:{self.name}")

    async def stop(self) -> None:
        if self._watch is not None:
            self._watch.cancel()
            self._watch = None
        if self._countdown_task is not None:
            self._countdown_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._countdown_task
            self._countdown_task = None

    async def _run_countdown(self) -> None:
        while True:
            self.tick()
            await asyncio.sleep(self._tick_seconds)

    def tick(self) -> asyncio.Task[SubmissionOutcome] | None:
        """One countdown step. Fires the automatic submit once per question when time runs out."""
        session = self._session
        if session is None or session.current_question is None:
            return None
        if session.remaining_seconds(self._now_ms()) > 0:
            return None
        marker = (session.current_question_index, session.current_question_start_time)
        if self._auto_checked_for == marker:
            return None
        self._auto_checked_for = marker
        if not self._draft.strip() or self._submitting:
            return None
        logger.info("Time is up for %s on question %d, sending draft", self.name, marker[0] + 1)
        self._auto_submit_task = asyncio.create_task(self._submit(self._draft, automatic=True))
        return self._auto_submit_task

    # --- Submission ---

    def submit_in_background(self, text: str | None = None) -> asyncio.Task[SubmissionOutcome]:
        return asyncio.create_task(self.submit(text))

    async def submit(self, text: str | None = None) -> SubmissionOutcome:
        """Send ``text`` (or the current draft) for grading."""
        return await self._submit(self._draft if text is None else text, automatic=False)

    async def submit_final(self, text: str | None = None) -> SubmissionOutcome:
        """Send what was left in the input when the countdown ran out.

        Remote clients run their own countdown and call this instead of
        ``submit`` at zero. It is honoured once per question; before the
        deadline it behaves like ``submit``.
        """
        session = self._session
        if session is None or session.remaining_seconds(self._now_ms()) > 0:
            return await self.submit(text)
        marker = (session.current_question_index, session.current_question_start_time)
        if self._auto_checked_for == marker:
            return SubmissionOutcome(SubmissionStatus.TIME_UP, TIME_UP_MESSAGE, marker[0])
        self._auto_checked_for = marker
        return await self._submit(self._draft if text is None else text, automatic=True)

    async def _submit(self, text: str, automatic: bool) -> SubmissionOutcome:
        if self._submitting:
            return SubmissionOutcome(SubmissionStatus.IN_FLIGHT, SUBMISSION_IN_FLIGHT_MESSAGE)
        session = self._session
        if session is None:
            if self._ended:
                return SubmissionOutcome(SubmissionStatus.GAME_ENDED, WRONG_PIN_MESSAGE)
            return SubmissionOutcome(SubmissionStatus.NO_QUESTION, NO_QUESTION_MESSAGE)
        question = session.current_question
        if question is None:
            return SubmissionOutcome(SubmissionStatus.NO_QUESTION, NO_QUESTION_MESSAGE)
        question_index = session.current_question_index
        if not automatic and session.remaining_seconds(self._now_ms()) <= 0:
            return SubmissionOutcome(SubmissionStatus.TIME_UP, TIME_UP_MESSAGE, question_index)

        candidates = split_candidate_lines(text)
        if not candidates:
            return SubmissionOutcome(SubmissionStatus.EMPTY, EMPTY_ANSWER_MESSAGE, question_index)

        record = session.student(self.name)
        already_accepted = record.accepted_texts(question_index) if record else set()
        fresh, duplicates = filter_new_lines(candidates, already_accepted)
        if not fresh:
            self._draft = ""
            return SubmissionOutcome(
                SubmissionStatus.ALREADY_SUBMITTED,
                ALREADY_SUBMITTED_MESSAGE,
                question_index,
                duplicate_count=duplicates,
            )

        self._submitting = True
        try:
            graded = await self._scorer.score(question.prompt, question.rubric, fresh)
            accepted = await self._sessions.record_answers(self.pin, self.name, question_index, graded)
        except SessionNotFoundError:
            self._ended = True
            return SubmissionOutcome(SubmissionStatus.GAME_ENDED, WRONG_PIN_MESSAGE, question_index)
        except StoreError:
            logger.warning("Could not record answers for %s in session %s", self.name, self.pin, exc_info=True)
            return SubmissionOutcome(SubmissionStatus.STORE_ERROR, STORE_ERROR_MESSAGE, question_index)
        finally:
            self._submitting = False

        self._draft = ""
        message = ANSWERS_GRADED_MESSAGE
        if duplicates:
            message = PARTIAL_DUPLICATE_TEMPLATE.format(duplicates=duplicates, fresh=len(fresh))
        outcome = SubmissionOutcome(
            SubmissionStatus.ACCEPTED,
            message,
            question_index,
            graded=graded,
            accepted=accepted,
            duplicate_count=duplicates,
        )
        with contextlib.suppress(StoreError):
            await self.refresh()
        return outcome
