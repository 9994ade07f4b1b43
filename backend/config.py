import os
from dotenv import load_dotenv

load_dotenv()


def _int_env(key: str, default: int) -> int:
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./questionnaire_review.db")
ADMIN_API_KEY = os.getenv("ADMIN_API_KEY", "change-me")
ORIGINS = os.getenv("ORIGINS", "http://localhost:3000").split(",")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Upload caps: JSON master creation vs. MyPreOp CSV upload
MAX_MASTER_QUESTIONS = _int_env("MAX_MASTER_QUESTIONS", 500)
MAX_UPLOAD_QUESTIONS = _int_env("MAX_UPLOAD_QUESTIONS", 2000)

# Reviewer input limits
MIN_NOTES_LENGTH = _int_env("MIN_NOTES_LENGTH", 1)
MAX_NOTES_LENGTH = _int_env("MAX_NOTES_LENGTH", 2000)
MAX_SUGGESTION_LENGTH = _int_env("MAX_SUGGESTION_LENGTH", 2000)
MAX_REASON_LENGTH = _int_env("MAX_REASON_LENGTH", 1000)
MAX_COMMENT_LENGTH = _int_env("MAX_COMMENT_LENGTH", 2000)
MAX_AUTHOR_NAME_LENGTH = _int_env("MAX_AUTHOR_NAME_LENGTH", 100)
