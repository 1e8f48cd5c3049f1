import os

from dotenv import load_dotenv

# Loads .env from the project root
load_dotenv()


def _env_flag(name: str, default: str = "") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


def _rate_limit(name: str, default: str) -> tuple[int, int]:
    raw = os.getenv(name, default).strip() or default
    try:
        count, seconds = raw.split("/", 1)
        return int(count), int(seconds)
    except ValueError as exc:
        raise RuntimeError(f"Invalid {name}: {raw} (expected <count>/<seconds>)") from exc


DATABASE_URL = os.getenv("DATABASE_URL") or os.getenv("POSTGRES_URL") or "sqlite:///./oqta.db"
ENV = os.getenv("ENVIRONMENT", os.getenv("ENV", "dev")).strip()
ENV_NORMALIZED = ENV.lower()
IS_DEV = ENV_NORMALIZED in {"dev", "development", "local"}
IS_TEST = ENV_NORMALIZED == "test"
IS_PROD = ENV_NORMALIZED in {"prod", "production"}

# Vercel runs the ASGI app per invocation; no listener there.
IS_SERVERLESS = bool(os.getenv("VERCEL", "").strip())
PORT = int(os.getenv("PORT", "3000"))

# CORS
_cors_env = os.getenv("CORS_ORIGINS", "")
CORS_ORIGINS = [origin.strip() for origin in _cors_env.split(",") if origin.strip() and origin.strip() != "*"]

if not CORS_ORIGINS and IS_DEV:
    CORS_ORIGINS = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

# Auth (JWT)
JWT_SECRET = os.getenv("JWT_SECRET", "")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRE_MINUTES = int(os.getenv("JWT_EXPIRE_MINUTES", str(24 * 60)))

ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "").strip()
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "")

AUTH_COOKIE_NAME = os.getenv("AUTH_COOKIE_NAME", "token")
AUTH_COOKIE_SECURE = _env_flag("AUTH_COOKIE_SECURE", "1" if IS_PROD else "0")

# Vector store (Qdrant REST)
QDRANT_URL = os.getenv("QDRANT_URL", "").strip()
QDRANT_API_KEY = os.getenv("QDRANT_API_KEY", "").strip()
QDRANT_COLLECTION = os.getenv("QDRANT_COLLECTION", "oqta").strip() or "oqta"
DEFAULT_VECTOR_SIZE = int(os.getenv("DEFAULT_VECTOR_SIZE", "384"))
CHUNK_SIZE_CHARS = int(os.getenv("CHUNK_SIZE_CHARS", "500"))
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))

# LLM
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "").strip()
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini").strip() or "gpt-4o-mini"
OPENAI_TIMEOUT_SECONDS = float(os.getenv("OPENAI_TIMEOUT_SECONDS", "60"))

# Conversational workflow webhook
CHAT_WEBHOOK_URL = os.getenv("CHAT_WEBHOOK_URL", "").strip()
CHAT_WEBHOOK_TIMEOUT_SECONDS = float(os.getenv("CHAT_WEBHOOK_TIMEOUT_SECONDS", "60"))

# Telegram
TELEGRAM_BOT_TOKEN = os.getenv("TELEGRAM_BOT_TOKEN", "").strip()
TELEGRAM_API_BASE = os.getenv("TELEGRAM_API_BASE", "https://api.telegram.org").rstrip("/")

# Analytics
YANDEX_METRIKA_ID = os.getenv("YANDEX_METRIKA_ID", "")
GA_MEASUREMENT_ID = os.getenv("GA_MEASUREMENT_ID", "")

AI_TOKENS_PER_MESSAGE = int(os.getenv("AI_TOKENS_PER_MESSAGE", "2315"))

# Rate limits as (requests, window seconds) per client IP
RATE_LIMIT_API = _rate_limit("RATE_LIMIT_API", "100/900")
RATE_LIMIT_AI = _rate_limit("RATE_LIMIT_AI", "10/3600")
RATE_LIMIT_EXPORT = _rate_limit("RATE_LIMIT_EXPORT", "20/900")
RATE_LIMIT_TELEGRAM = _rate_limit("RATE_LIMIT_TELEGRAM", "60/60")

# Honour X-Forwarded-For only behind a proxy that appends the client address
TRUST_PROXY = _env_flag("TRUST_PROXY", "1" if os.getenv("VERCEL", "").strip() else "0")

DEFAULT_SETTINGS = {
    "whatsapp_number": os.getenv("DEFAULT_WHATSAPP_NUMBER", "+971501234567"),
    "phone_number": os.getenv("DEFAULT_PHONE_NUMBER", "+971501234567"),
    "n8n_url": CHAT_WEBHOOK_URL,
}
PUBLIC_SETTING_KEYS = ("phone_number", "whatsapp_number")
