"""Network configuration constants for the quiz application."""

DEFAULT_HOST: str = "0.0.0.0"
DEFAULT_PORT: int = 8000
TEACHER_PASSPHRASE_HEADER: str = "X-Teacher-Passphrase"
