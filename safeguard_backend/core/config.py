import os

from dotenv import load_dotenv

load_dotenv()  # .env beside the service (or the current working directory)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


# --- AI risk classification (OpenAI-compatible chat completions gateway) ---
AI_GATEWAY_URL: str = os.getenv("AI_GATEWAY_URL", "https://ai.gateway.lovable.dev/v1")
AI_API_KEY: str = os.getenv("AI_API_KEY", "").strip()
AI_MODEL: str = os.getenv("AI_MODEL", "google/gemini-2.5-flash")
CLASSIFY_CACHE_TTL_SEC: float = float(os.getenv("CLASSIFY_CACHE_TTL_SEC", "60"))

# --- Confirmation countdown ---
COUNTDOWN_SECONDS: float = float(os.getenv("COUNTDOWN_SECONDS", "15"))
COUNTDOWN_POLL_SEC: float = float(os.getenv("COUNTDOWN_POLL_SEC", "0.25"))

# --- Submission pipeline ---
SUBMIT_COOLDOWN_SEC: float = float(os.getenv("SUBMIT_COOLDOWN_SEC", "8"))
REQUIRE_REACHABLE_CONTACT: bool = _env_bool("REQUIRE_REACHABLE_CONTACT", "true")

# --- Motion trigger (m/s²) ---
SHAKE_THRESHOLD: float = float(os.getenv("SHAKE_THRESHOLD", "15"))
DROP_THRESHOLD: float = float(os.getenv("DROP_THRESHOLD", "3"))
MOTION_DEBOUNCE_SEC: float = float(os.getenv("MOTION_DEBOUNCE_SEC", "3"))

# --- Position ---
# previous fix counts toward the movement delta only when this recent (seconds)
MOVEMENT_WINDOW_SEC: float = float(os.getenv("MOVEMENT_WINDOW_SEC", "30"))

# --- Email (SMTP) ---
SMTP_HOST: str = os.getenv("SMTP_HOST", "").strip()
SMTP_PORT: int = int(os.getenv("SMTP_PORT", "587"))
SMTP_USER: str = os.getenv("SMTP_USER", "").strip()
SMTP_PASSWORD: str = os.getenv("SMTP_PASSWORD", "")
SMTP_FROM: str = os.getenv("SMTP_FROM", "").strip() or SMTP_USER

# --- SMS (Fast2SMS) ---
FAST2SMS_API_KEY: str = os.getenv("FAST2SMS_API_KEY", "").strip()
FAST2SMS_URL: str = os.getenv("FAST2SMS_URL", "https://www.fast2sms.com/dev/bulkV2")

HTTP_TIMEOUT: float = float(os.getenv("HTTP_TIMEOUT", "10"))
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
