"""Exception types raised by the quiz core."""

from __future__ import annotations

from lime_quiz.constants.message_constants import NO_LIVE_SESSION_MESSAGE


class QuizValidationError(ValueError):
    """Raised when user input is rejected before it reaches the store."""


class SessionNotFoundError(LookupError):
    """Raised when no live session exists for a PIN."""

    def __init__(self, pin: str | None = None) -> None:
        self.pin = pin
        super().__init__(f"No live session for PIN {pin}" if pin else NO_LIVE_SESSION_MESSAGE)


class PinInUseError(RuntimeError):
    """Raised when a session is created under a PIN that is already live."""

    def __init__(self, pin: str) -> None:
        self.pin = pin
        super().__init__(f"PIN {pin} is already used by a live session")


class StoreError(RuntimeError):
    """Raised by a store gateway when the underlying transport fails."""


class TeacherAuthError(PermissionError):
    """Raised when a teacher operation is attempted without a valid passphrase."""
