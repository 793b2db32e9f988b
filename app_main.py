"""Application entry point for the LIME Quiz server."""

from __future__ import annotations

import socket

from lime_quiz.core.services.game_session import GameSessionService
from lime_quiz.core.services.question_sets import QuestionSetRepository
from lime_quiz.core.services.scoring_adapter import ScoringAdapter
from lime_quiz.core.services.session_store import InMemorySessionStore
from lime_quiz.server.api_server import QuizServerState, run_api_server
from lime_quiz.utils.logging_config import configure_logging
from lime_quiz.utils.settings import AppSettings


def _determine_api_url(port: int) -> str:
    """Best-effort determination of the local IP for the API base URL."""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.connect(("8.8.8.8", 80))
            ip_address = sock.getsockname()[0]
    except OSError:
        ip_address = "127.0.0.1"
    return f"http://{ip_address}:{port}/"


def build_state(settings: AppSettings) -> QuizServerState:
    store = InMemorySessionStore()
    return QuizServerState(
        sessions=GameSessionService(store),
        question_sets=QuestionSetRepository(store),
        scorer=ScoringAdapter.from_settings(settings),
        passphrase=settings.teacher_passphrase,
    )


def main() -> None:
    """Load settings, initialize logging, and serve the API."""
    settings = AppSettings.from_env()
    logger = configure_logging(settings.log_level)
    logger.info("Starting LIME Quiz server...")

    state = build_state(settings)
    api_url = _determine_api_url(settings.port)
    logger.info("API available at %s (interactive docs at %sdocs)", api_url, api_url)
    run_api_server(state, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
