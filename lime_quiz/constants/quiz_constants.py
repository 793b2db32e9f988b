"""Quiz-related constants shared across the core and server layers."""

DEFAULT_TIME_LIMIT_MINUTES: int = 5
DEFAULT_TEACHER_PASSPHRASE: str = "lime2024"

PIN_LENGTH: int = 4
PIN_MIN: int = 1000
PIN_MAX: int = 9999
MAX_PIN_ATTEMPTS: int = 20

# Candidate lines of this length or shorter are treated as noise.
MIN_ANSWER_LINE_LENGTH: int = 3
COUNTDOWN_TICK_SECONDS: float = 0.5

SESSIONS_ROOT: str = "sessions"
ARCHIVE_ROOT: str = "archive"
QUESTION_SETS_ROOT: str = "questionSets"

DEFAULT_GRADING_MODEL: str = "llama-3.3-70b-versatile"
DEFAULT_GRADING_BASE_URL: str = "https://api.groq.com/openai/v1"
DEFAULT_GRADING_TIMEOUT_SECONDS: float = 30.0
GRADING_MAX_TOKENS: int = 1000
