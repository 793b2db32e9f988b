"""User-facing messages shared by the controllers and the API server."""

WRONG_PIN_MESSAGE: str = "Wrong PIN or the game has ended."
WRONG_PASSPHRASE_MESSAGE: str = "Wrong passphrase."
NAME_REQUIRED_MESSAGE: str = "Please enter your name."
NAME_INVALID_CHARS_MESSAGE: str = "Names cannot contain any of . $ # [ ] /"
PIN_FORMAT_MESSAGE: str = "The PIN must be exactly 4 digits."
QUESTION_FIELDS_REQUIRED_MESSAGE: str = "Both the question and the grading instructions are required."
SET_NAME_REQUIRED_MESSAGE: str = "Please give the question set a name."
NO_QUESTIONS_MESSAGE: str = "Add at least one question first."
TIME_LIMIT_INVALID_MESSAGE: str = "The time limit must be a positive whole number of minutes."
QUIZ_COMPLETE_MESSAGE: str = "You have reached the end of the quiz."
NO_LIVE_SESSION_MESSAGE: str = "No game is running."

ALREADY_SUBMITTED_MESSAGE: str = "You already sent these answers. Try something different!"
PARTIAL_DUPLICATE_TEMPLATE: str = (
    "{duplicates} line(s) were already submitted; only {fresh} new line(s) were graded."
)
ANSWERS_GRADED_MESSAGE: str = "Your answers have been graded."
EMPTY_ANSWER_MESSAGE: str = "Write at least one answer longer than 3 characters."
SUBMISSION_IN_FLIGHT_MESSAGE: str = "Your previous answers are still being graded."
TIME_UP_MESSAGE: str = "Time is up for this question."
NO_QUESTION_MESSAGE: str = "Waiting for the teacher to start the game."
STORE_ERROR_MESSAGE: str = "Could not save your answers. Please try again."

GRADING_UNAVAILABLE_FEEDBACK: str = "Grading is not available right now, so this answer was not scored."
GRADING_FAILED_FEEDBACK: str = "Sorry, the grader had a small hiccup, but you are still doing great!"
DEFAULT_FEEDBACK: str = "Great effort, keep it up!"
