"""Shared fakes and fixtures for the quiz tests."""

import pytest

from lime_quiz.core.errors import StoreError
from lime_quiz.core.models import GradedLine, Question
from lime_quiz.core.services.game_session import GameSessionService
from lime_quiz.core.services.question_sets import QuestionSetRepository
from lime_quiz.core.services.session_store import InMemorySessionStore


class FakeClock:
    """Manually driven wall clock, in seconds."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeScorer:
    """Scores lines from a fixed table; unknown lines get zero."""

    def __init__(self, scores: dict[str, int] | None = None) -> None:
        self.scores = scores or {}
        self.calls: list[list[str]] = []

    async def score(self, question: str, rubric: str, lines: list[str]) -> list[GradedLine]:
        self.calls.append(list(lines))
        return [
            GradedLine(text=line.strip(), score=self.scores.get(line.strip().lower(), 0), feedback="Nice!")
            for line in lines
        ]


class FailingWritesStore(InMemorySessionStore):
    """In-memory store whose transactions fail once ``broken`` is set."""

    def __init__(self, clock) -> None:
        super().__init__(clock)
        self.broken = False

    async def transaction(self, path, update_fn):
        if self.broken:
            raise StoreError("connection lost")
        return await super().transaction(path, update_fn)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock) -> InMemorySessionStore:
    return InMemorySessionStore(clock)


@pytest.fixture
def sessions(store, clock) -> GameSessionService:
    return GameSessionService(store, clock)


@pytest.fixture
def question_sets(store, clock) -> QuestionSetRepository:
    return QuestionSetRepository(store, clock)


@pytest.fixture
def sea_animals() -> list[Question]:
    return [
        Question(prompt="Name a sea animal.", rubric="2 points per correctly spelled sea animal."),
        Question(prompt="Write a sentence about your morning.", rubric="5 points for a correct sentence."),
    ]
