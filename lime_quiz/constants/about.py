"""Static metadata describing LIME Quiz."""

APP_NAME = "LIME Quiz"
APP_VERSION = "0.4"
APP_LICENSE = "MIT License"
APP_ABOUT_TEXT = (
    "LIME Quiz is a live classroom quiz tool. Teachers publish free-text questions with "
    "grading instructions, students answer from their own devices, and a language model "
    "scores every answer line while the leaderboard updates live."
)

HELP_TEXT = (
    "Question sets can be authored as plain .txt files using the import format:\n\n"
    "TIMELIMIT: 5\n\n"
    "Q: Write a sentence in the present simple about your morning.\n"
    "RUBRIC: 5 points for a correct sentence. No spelling or grammar mistakes allowed.\n\n"
    "---\n\n"
    "Q: Name an animal that lives in the ocean.\n"
    "RUBRIC: 2 points per correctly spelled animal."
)
