"""
Runtime configuration, read once from the environment.
"""
import os


def _split(value: str) -> list:
    return [v.strip() for v in value.split(",") if v.strip()]


DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

JWT_SECRET = os.getenv("JWT_SECRET", "devsecret")
JWT_ALGO = "HS256"
JWT_EXPIRE_DAYS = int(os.getenv("JWT_EXPIRE_DAYS", 7))

# Exact, case-insensitive matches; users signing up with one of these become admins.
ADMIN_EMAILS = {e.lower() for e in _split(os.getenv("ADMIN_EMAILS", ""))}

OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
CHAT_MAX_TOKENS = int(os.getenv("CHAT_MAX_TOKENS", 300))

CORS_ORIGINS = _split(os.getenv("CORS_ORIGINS", "*"))

ORDER_WRITE_RETRIES = int(os.getenv("ORDER_WRITE_RETRIES", 3))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
PORT = int(os.getenv("PORT", 8000))

SEED_ADMIN_EMAIL = os.getenv("SEED_ADMIN_EMAIL", "admin@grocerymart.com")
# No default: without an explicit password /seed creates products only.
SEED_ADMIN_PASSWORD = os.getenv("SEED_ADMIN_PASSWORD")
