"""FastAPI server that exposes the teacher and student endpoints."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from typing import Callable

from fastapi import Depends, FastAPI, Header, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
import uvicorn

from lime_quiz.constants.about import APP_ABOUT_TEXT, APP_LICENSE, APP_NAME, APP_VERSION, HELP_TEXT
from lime_quiz.constants.message_constants import (
    QUIZ_COMPLETE_MESSAGE,
    STORE_ERROR_MESSAGE,
    WRONG_PASSPHRASE_MESSAGE,
    WRONG_PIN_MESSAGE,
)
from lime_quiz.constants.network_constants import DEFAULT_HOST, DEFAULT_PORT, TEACHER_PASSPHRASE_HEADER
from lime_quiz.constants.quiz_constants import DEFAULT_TEACHER_PASSPHRASE, DEFAULT_TIME_LIMIT_MINUTES
from lime_quiz.core.errors import (
    PinInUseError,
    QuizValidationError,
    SessionNotFoundError,
    StoreError,
    TeacherAuthError,
)
from lime_quiz.core.markdown_math_renderer import renderer
from lime_quiz.core.models import GameSession, PastGame, Question, QuestionSet
from lime_quiz.core.pin_generator import PinGenerator
from lime_quiz.core.services.game_session import GameSessionService
from lime_quiz.core.services.question_sets import QuestionSetRepository
from lime_quiz.core.services.scoreboard import session_scoreboard
from lime_quiz.core.student_pipeline import (
    Scorer,
    StudentSubmissionPipeline,
    SubmissionOutcome,
    SubmissionStatus,
)
from lime_quiz.core.teacher_controller import TeacherController
from lime_quiz.core.validation import validate_display_name, validate_pin

logger = logging.getLogger(__name__)


class LoginPayload(BaseModel):
    """Payload schema for the teacher login check."""

    passphrase: str


class QuestionPayload(BaseModel):
    prompt: str
    rubric: str


class QuestionSetPayload(BaseModel):
    """Payload schema for saving a named question set."""

    name: str
    questions: list[QuestionPayload]
    time_limit_minutes: int = Field(default=DEFAULT_TIME_LIMIT_MINUTES, alias="timeLimitMinutes")

    model_config = ConfigDict(populate_by_name=True)


class StartSessionPayload(BaseModel):
    """Start a game from inline questions or from a saved set."""

    questions: list[QuestionPayload] | None = None
    question_set_key: str | None = Field(default=None, alias="questionSetKey")
    time_limit_minutes: int | None = Field(default=None, alias="timeLimitMinutes")

    model_config = ConfigDict(populate_by_name=True)


class JoinPayload(BaseModel):
    name: str


class AnswerPayload(BaseModel):
    """Free-text answer; ``final`` marks the send triggered by the client's countdown reaching zero."""

    text: str
    final: bool = False


class QuizServerState:
    """Services plus the live controllers and pipelines held by the server process."""

    def __init__(
        self,
        sessions: GameSessionService,
        question_sets: QuestionSetRepository,
        scorer: Scorer,
        passphrase: str = DEFAULT_TEACHER_PASSPHRASE,
        clock: Callable[[], float] = time.time,
        pin_generator: PinGenerator | None = None,
    ) -> None:
        self.sessions = sessions
        self.question_sets = question_sets
        self.scorer = scorer
        self.passphrase = passphrase
        self.clock = clock
        self.pin_generator = pin_generator or PinGenerator()
        self.controllers: dict[str, TeacherController] = {}
        self.pipelines: dict[tuple[str, str], StudentSubmissionPipeline] = {}
        self._pipeline_lock = asyncio.Lock()

    def new_controller(self) -> TeacherController:
        controller = TeacherController(
            self.sessions,
            self.question_sets,
            passphrase=self.passphrase,
            pin_generator=self.pin_generator,
        )
        controller.login(self.passphrase)
        return controller

    async def controller_for(self, pin: str) -> TeacherController:
        controller = self.controllers.get(pin)
        if controller is None:
            controller = self.new_controller()
            await controller.attach(pin)
            self.controllers[pin] = controller
        return controller

    def new_pipeline(self, pin: str, name: str) -> StudentSubmissionPipeline:
        return StudentSubmissionPipeline(self.sessions, self.scorer, pin, name, clock=self.clock)

    async def pipeline_for(self, pin: str, name: str) -> StudentSubmissionPipeline | None:
        """Return the one pipeline for this student, joining on first use.

        Creation is serialized so concurrent first submissions share a pipeline
        and with it the in-flight guard.
        """
        key = (pin, name)
        async with self._pipeline_lock:
            pipeline = self.pipelines.get(key)
            if pipeline is None:
                pipeline = self.new_pipeline(pin, name)
                if not await pipeline.join():
                    return None
                return self.pipelines.setdefault(key, pipeline)
        await pipeline.refresh()
        return pipeline

    def forget_session(self, pin: str) -> None:
        self.controllers.pop(pin, None)
        for key in [key for key in self.pipelines if key[0] == pin]:
            del self.pipelines[key]

    def now_ms(self) -> int:
        return int(self.clock() * 1000)


def _session_view(session: GameSession, now_ms: int) -> dict[str, object]:
    question = session.current_question
    return {
        "pin": session.pin,
        "questionIndex": session.current_question_index,
        "questionCount": len(session.questions),
        "prompt": question.prompt if question else None,
        "promptHtml": renderer.render_fragment(question.prompt) if question else None,
        "timeLimitMinutes": session.time_limit_minutes,
        "questionStartedAt": session.current_question_start_time,
        "remainingSeconds": session.display_seconds(now_ms),
        "hasNextQuestion": session.has_next_question,
        "leaderboard": [
            {"rank": row.rank, "name": row.display_name, "totalScore": row.total_score}
            for row in session_scoreboard(session)
        ],
    }


def _question_set_view(question_set: QuestionSet) -> dict[str, object]:
    return {"key": question_set.key, **question_set.to_dict()}


def _past_game_view(past_game: PastGame) -> dict[str, object]:
    return {"key": past_game.key, **past_game.to_dict()}


def _outcome_view(outcome: SubmissionOutcome, total_score: int) -> dict[str, object]:
    return {
        "status": outcome.status.name.lower(),
        "message": outcome.message,
        "questionIndex": outcome.question_index,
        "graded": [
            {"text": line.text, "score": line.score, "feedback": line.feedback}
            for line in outcome.graded
        ],
        "acceptedCount": len(outcome.accepted),
        "duplicates": outcome.duplicate_count,
        "points": outcome.points,
        "totalScore": total_score,
    }


def _to_questions(payloads: list[QuestionPayload]) -> list[Question]:
    return [Question(prompt=item.prompt, rubric=item.rubric) for item in payloads]


def _checked_pin(pin: str) -> str:
    try:
        return validate_pin(pin)
    except QuizValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


def _get_state_dependency(state: QuizServerState):
    def dependency() -> QuizServerState:
        return state

    return dependency


def create_api_app(state: QuizServerState) -> FastAPI:
    """Create a FastAPI application wired to the provided services."""
    app = FastAPI(
        title=f"{APP_NAME} API",
        version=APP_VERSION,
        description=f"{APP_ABOUT_TEXT}\n\n{HELP_TEXT}",
        license_info={"name": APP_LICENSE},
    )
    state_dep = _get_state_dependency(state)

    def teacher_dep(
        passphrase: str | None = Header(default=None, alias=TEACHER_PASSPHRASE_HEADER),
        server: QuizServerState = Depends(state_dep),
    ) -> QuizServerState:
        if passphrase != server.passphrase:
            raise HTTPException(status_code=401, detail=WRONG_PASSPHRASE_MESSAGE)
        return server

    @app.exception_handler(StoreError)
    async def store_error_handler(_request: Request, exc: StoreError) -> JSONResponse:
        logger.error("Store failure: %s", exc)
        return JSONResponse(status_code=503, content={"detail": STORE_ERROR_MESSAGE})

    # --- Teacher endpoints ---

    @app.post("/teacher/login")
    def teacher_login(payload: LoginPayload, server: QuizServerState = Depends(state_dep)) -> dict[str, object]:
        controller = TeacherController(server.sessions, server.question_sets, passphrase=server.passphrase)
        try:
            controller.login(payload.passphrase)
        except TeacherAuthError as exc:
            raise HTTPException(status_code=401, detail=str(exc)) from exc
        return {"authenticated": True}

    @app.get("/question-sets")
    async def list_question_sets(server: QuizServerState = Depends(teacher_dep)) -> list[dict[str, object]]:
        controller = server.new_controller()
        return [_question_set_view(item) for item in await controller.list_question_sets()]

    @app.post("/question-sets", status_code=201)
    async def save_question_set(
        payload: QuestionSetPayload,
        server: QuizServerState = Depends(teacher_dep),
    ) -> dict[str, object]:
        controller = server.new_controller()
        try:
            controller.replace_draft(_to_questions(payload.questions), payload.time_limit_minutes)
            saved = await controller.save_question_set(payload.name)
        except QuizValidationError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        return _question_set_view(saved)

    @app.post("/sessions", status_code=201)
    async def start_session(
        payload: StartSessionPayload,
        server: QuizServerState = Depends(teacher_dep),
    ) -> dict[str, object]:
        controller = server.new_controller()
        try:
            if payload.question_set_key:
                loaded = await controller.load_question_set(payload.question_set_key)
                if loaded is None:
                    raise HTTPException(status_code=404, detail="Question set not found.")
                if payload.time_limit_minutes is not None:
                    controller.set_time_limit(payload.time_limit_minutes)
            else:
                controller.replace_draft(_to_questions(payload.questions or []), payload.time_limit_minutes)
            pin = await controller.start_game()
        except QuizValidationError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        except PinInUseError as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        server.controllers[pin] = controller
        return _session_view(controller.snapshot, server.now_ms())

    @app.post("/sessions/{pin}/advance")
    async def advance_session(pin: str, server: QuizServerState = Depends(teacher_dep)) -> dict[str, object]:
        pin = _checked_pin(pin)
        try:
            controller = await server.controller_for(pin)
            question = await controller.next_question()
        except SessionNotFoundError as exc:
            server.forget_session(pin)
            raise HTTPException(status_code=404, detail=WRONG_PIN_MESSAGE) from exc
        if question is None:
            raise HTTPException(status_code=409, detail=QUIZ_COMPLETE_MESSAGE)
        return _session_view(controller.snapshot, server.now_ms())

    @app.post("/sessions/{pin}/end")
    async def end_session(pin: str, server: QuizServerState = Depends(teacher_dep)) -> dict[str, object]:
        pin = _checked_pin(pin)
        try:
            controller = await server.controller_for(pin)
            key = await controller.end_game()
        except SessionNotFoundError as exc:
            raise HTTPException(status_code=404, detail=WRONG_PIN_MESSAGE) from exc
        finally:
            server.forget_session(pin)
        past_game = await server.sessions.read_archive(key)
        return _past_game_view(past_game)

    @app.get("/archive")
    async def list_archive(server: QuizServerState = Depends(teacher_dep)) -> list[dict[str, object]]:
        controller = server.new_controller()
        return [_past_game_view(game) for game in await controller.past_games()]

    # --- Student endpoints ---

    @app.get("/sessions/{pin}")
    async def get_session(pin: str, server: QuizServerState = Depends(state_dep)) -> dict[str, object]:
        session = await server.sessions.read(_checked_pin(pin))
        if session is None:
            raise HTTPException(status_code=404, detail=WRONG_PIN_MESSAGE)
        return _session_view(session, server.now_ms())

    @app.post("/sessions/{pin}/join", status_code=201)
    async def join_session(
        pin: str,
        payload: JoinPayload,
        server: QuizServerState = Depends(state_dep),
    ) -> dict[str, object]:
        pipeline = server.new_pipeline(pin, payload.name)
        try:
            joined = await pipeline.join()
        except QuizValidationError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        if not joined:
            raise HTTPException(status_code=404, detail=WRONG_PIN_MESSAGE)
        server.pipelines.setdefault((pipeline.pin, pipeline.name), pipeline)
        return {
            "pin": pipeline.pin,
            "name": pipeline.name,
            "totalScore": pipeline.total_score,
            "session": _session_view(pipeline.session, server.now_ms()),
        }

    @app.post("/sessions/{pin}/students/{name}/answers")
    async def submit_answers(
        pin: str,
        name: str,
        payload: AnswerPayload,
        server: QuizServerState = Depends(state_dep),
    ) -> dict[str, object]:
        pin = _checked_pin(pin)
        try:
            name = validate_display_name(name)
        except QuizValidationError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        pipeline = await server.pipeline_for(pin, name)
        if pipeline is None:
            raise HTTPException(status_code=404, detail=WRONG_PIN_MESSAGE)

        if payload.final:
            outcome = await pipeline.submit_final(payload.text)
        else:
            outcome = await pipeline.submit(payload.text)
        if outcome.status is SubmissionStatus.GAME_ENDED:
            server.pipelines.pop((pin, name), None)
            raise HTTPException(status_code=404, detail=WRONG_PIN_MESSAGE)
        if outcome.status is SubmissionStatus.STORE_ERROR:
            raise HTTPException(status_code=503, detail=outcome.message)
        return _outcome_view(outcome, pipeline.total_score)

    @app.websocket("/sessions/{pin}/stream")
    async def stream_session(websocket: WebSocket, pin: str) -> None:
        try:
            pin = validate_pin(pin)
        except QuizValidationError:
            await websocket.close(code=1008)
            return
        await websocket.accept()
        watch = state.sessions.watch(pin)

        async def wait_for_disconnect() -> None:
            with contextlib.suppress(WebSocketDisconnect):
                while True:
                    await websocket.receive_text()
            watch.cancel()

        listener = asyncio.create_task(wait_for_disconnect())
        try:
            async for session in watch:
                if session is None:
                    await websocket.send_json({"pin": pin, "ended": True})
                    await websocket.close()
                    break
                await websocket.send_json(_session_view(session, state.now_ms()))
        except WebSocketDisconnect:
            logger.debug("Stream for session %s closed by client", pin)
        finally:
            watch.cancel()
            listener.cancel()

    return app


def run_api_server(
    state: QuizServerState,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
) -> None:
    """Serve the API on the current thread until interrupted."""
    app = create_api_app(state)
    config = uvicorn.Config(app=app, host=host, port=port, log_level="info")
    server = uvicorn.Server(config)
    asyncio.run(server.serve())
