"""Environment-driven settings for the server and the grading client."""

from __future__ import annotations

from dataclasses import dataclass
import logging
import os
from pathlib import Path

from dotenv import load_dotenv

from lime_quiz.constants.network_constants import DEFAULT_HOST, DEFAULT_PORT
from lime_quiz.constants.quiz_constants import (
    DEFAULT_GRADING_BASE_URL,
    DEFAULT_GRADING_MODEL,
    DEFAULT_GRADING_TIMEOUT_SECONDS,
    DEFAULT_TEACHER_PASSPHRASE,
)

logger = logging.getLogger(__name__)


def _env_number(name: str, default: int | float, cast: type) -> int | float:
    """Read a positive number, falling back to ``default`` on bad input."""
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = cast(raw.strip())
    except ValueError:
        logger.warning("Ignoring %s=%r: not a valid %s, using %s", name, raw, cast.__name__, default)
        return default
    if not value > 0:
        logger.warning("Ignoring %s=%r: must be positive, using %s", name, raw, default)
        return default
    return value


@dataclass(slots=True, frozen=True)
class AppSettings:
    """Resolved configuration values."""

    groq_api_key: str | None = None
    grading_model: str = DEFAULT_GRADING_MODEL
    grading_base_url: str = DEFAULT_GRADING_BASE_URL
    grading_timeout_seconds: float = DEFAULT_GRADING_TIMEOUT_SECONDS
    teacher_passphrase: str = DEFAULT_TEACHER_PASSPHRASE
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    log_level: int = logging.INFO

    @classmethod
    def from_env(cls, dotenv_path: Path | None = None) -> "AppSettings":
        """Read settings from the process environment after loading a ``.env`` file."""
        load_dotenv(dotenv_path=dotenv_path)
        return cls(
            groq_api_key=os.getenv("GROQ_API_KEY") or None,
            grading_model=os.getenv("LIME_GRADING_MODEL", DEFAULT_GRADING_MODEL),
            grading_base_url=os.getenv("LIME_GRADING_BASE_URL", DEFAULT_GRADING_BASE_URL),
            grading_timeout_seconds=_env_number("LIME_GRADING_TIMEOUT", DEFAULT_GRADING_TIMEOUT_SECONDS, float),
            teacher_passphrase=os.getenv("LIME_TEACHER_PASSPHRASE", DEFAULT_TEACHER_PASSPHRASE),
            host=os.getenv("LIME_HOST", DEFAULT_HOST),
            port=_env_number("LIME_PORT", DEFAULT_PORT, int),
            log_level=getattr(logging, os.getenv("LIME_LOG_LEVEL", "INFO").upper(), logging.INFO),
        )
