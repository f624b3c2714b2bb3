import os

from dotenv import load_dotenv

# .env at the project root
load_dotenv()


def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./pedidobot.db")
ENV = os.getenv("ENV", "dev")
ENV_NORMALIZED = ENV.lower()
IS_DEV = ENV_NORMALIZED in {"dev", "development", "local"}
IS_TEST = ENV_NORMALIZED == "test"
IS_PROD = ENV_NORMALIZED in {"prod", "production"}

# WhatsApp Cloud API
META_WA_ACCESS_TOKEN = os.getenv("META_WA_ACCESS_TOKEN", "")
META_WA_PHONE_NUMBER_ID = os.getenv("META_WA_PHONE_NUMBER_ID", "")
META_WA_VERIFY_TOKEN = os.getenv("META_WA_VERIFY_TOKEN", "")
META_API_VERSION = os.getenv("META_API_VERSION", "v22.0")
WHATSAPP_PROVIDER = os.getenv("WHATSAPP_PROVIDER", "mock" if IS_DEV else "cloud").strip().lower()

# Completion API (any OpenAI-compatible endpoint, Groq by default)
LLM_PROVIDER = os.getenv("LLM_PROVIDER", "openai").strip().lower()
LLM_API_KEY = os.getenv("LLM_API_KEY", os.getenv("GROQ_API_KEY", ""))
LLM_BASE_URL = os.getenv("LLM_BASE_URL", "https://api.groq.com/openai/v1")
LLM_MODEL = os.getenv("LLM_MODEL", os.getenv("GROQ_MODEL", "llama-3.3-70b-versatile"))
LLM_TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", "0.3"))
LLM_MAX_TOKENS = int(os.getenv("LLM_MAX_TOKENS", "3000"))
LLM_TIMEOUT_SECONDS = float(os.getenv("LLM_TIMEOUT_SECONDS", "20"))
LLM_HISTORY_LIMIT = int(os.getenv("LLM_HISTORY_LIMIT", "10"))

# Conversation runtime
DEDUP_CACHE_SIZE = int(os.getenv("DEDUP_CACHE_SIZE", "100"))
DEDUP_WINDOW_SECONDS = int(os.getenv("DEDUP_WINDOW_SECONDS", "10"))
SESSION_CACHE_SIZE = int(os.getenv("SESSION_CACHE_SIZE", "1000"))
SESSION_EVICTION = os.getenv("SESSION_EVICTION", "fifo").strip().lower()
PHRASES_PATH = os.getenv("PHRASES_PATH", "").strip()

# Store
TIMEZONE = os.getenv("TIMEZONE", "America/Mexico_City")
TICKETS_DIR = os.getenv("TICKETS_DIR", "tickets")
STORE_NAME = os.getenv("STORE_NAME", "Crasa.com")
SUPPORT_PHONE = os.getenv("SUPPORT_PHONE", "+52 777 412 0544")
SUPPORT_EMAIL = os.getenv("SUPPORT_EMAIL", "admin@crasa.com")
SUPPORT_HOURS = os.getenv("SUPPORT_HOURS", "Lun-Dom 9:00-22:00")

# Admin API
ADMIN_API_TOKEN = os.getenv("ADMIN_API_TOKEN", "").strip()
ENABLE_SIMULATOR = _env_flag("ENABLE_SIMULATOR", "1" if IS_DEV else "0")

# CORS
_cors_env = os.getenv("CORS_ORIGINS", "")
CORS_ORIGINS = [origin.strip() for origin in _cors_env.split(",") if origin.strip() and origin.strip() != "*"]

if not CORS_ORIGINS and IS_DEV:
    CORS_ORIGINS = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]
