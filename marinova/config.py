import os
from dataclasses import dataclass

from dotenv import load_dotenv

# Pick up a local .env in development.
load_dotenv()

_TRUTHY = ("1", "true", "yes", "y", "on")


def _env_bool(name: str, default: bool = False) -> bool:
    """True for 1/true/yes/y/on (any case), False for any other set value, default when unset."""
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY


@dataclass(frozen=True)
class Config:
    """Marinova runtime settings, read from the environment (or .env) at import.

    Secrets (JWT secret, Resend and Gemini keys) must come from the environment.
    """

    # -----------------
    # Core
    # -----------------
    # Preferred: set MARINOVA_DATABASE_URL (or DATABASE_URL) to use Postgres.
    # Fallback: MARINOVA_DB_PATH for SQLite.
    DB_DSN: str = (
        os.environ.get("MARINOVA_DATABASE_URL")
        or os.environ.get("DATABASE_URL")
        or os.environ.get("MARINOVA_DB_PATH", "./marinova.sqlite")
    )

    # -----------------
    # Auth (JWT)
    # -----------------
    # The fallback is for local development only.
    # Production deployments set AUTH_JWT_SECRET (or JWT_SECRET).
    AUTH_JWT_SECRET: str = (
        os.environ.get("AUTH_JWT_SECRET")
        or os.environ.get("JWT_SECRET")
        or "dev_change_me"
    )
    AUTH_TOKEN_EXPIRE_MINUTES: int = int(os.environ.get("AUTH_TOKEN_EXPIRE_MINUTES", "10080"))  # 7 days

    # Registration rules
    AUTH_PASSWORD_MIN_LENGTH: int = int(os.environ.get("AUTH_PASSWORD_MIN_LENGTH", "6"))
    AUTH_ALLOWED_EMAIL_DOMAIN: str = os.environ.get("AUTH_ALLOWED_EMAIL_DOMAIN", "gmail.com")

    # -----------------
    # Usage credits
    # -----------------
    # Granted once, at account creation.
    FREE_USAGE_CREDITS: int = int(os.environ.get("FREE_USAGE_CREDITS", "3"))
    # Paid plans are unlimited; the counter is parked at this sentinel.
    PAID_USAGE_CREDITS: int = int(os.environ.get("PAID_USAGE_CREDITS", "999999"))

    # -----------------
    # Email (Resend)
    # -----------------
    # Verification links point at the SPA: <FRONTEND_URL>/verify/<token>
    FRONTEND_URL: str = os.environ.get("FRONTEND_URL", "http://localhost:3000")
    RESEND_API_KEY: str | None = (os.environ.get("RESEND_API_KEY") or "").strip() or None
    EMAIL_FROM: str = os.environ.get("EMAIL_FROM", "Marinova <no-reply@marinova.app>")

    # -----------------
    # CORS (development)
    # -----------------
    CORS_ALLOW_ORIGINS: str = os.environ.get(
        "CORS_ALLOW_ORIGINS",
        "http://localhost:3000,http://localhost:5173",
    )

    # -----------------
    # Gemini
    # -----------------
    GEMINI_API_KEY: str | None = os.environ.get("GEMINI_API_KEY")
    GEMINI_MODEL: str = os.environ.get("GEMINI_MODEL", "gemini-2.5-flash-lite")
    GEMINI_IMAGE_MODEL: str = os.environ.get("GEMINI_IMAGE_MODEL", "gemini-2.5-flash-image")
    GEMINI_BASE_URL: str = os.environ.get(
        "GEMINI_BASE_URL",
        "https://generativelanguage.googleapis.com/v1beta",
    )
    AI_TEMPERATURE: float = float(os.environ.get("AI_TEMPERATURE", "0.7"))
    AI_MAX_TOKENS: int = int(os.environ.get("AI_MAX_TOKENS", "2048"))

    # -----------------
    # Weather (Open-Meteo, no key required)
    # -----------------
    WEATHER_BASE_URL: str = os.environ.get("WEATHER_BASE_URL", "https://api.open-meteo.com/v1")
    WEATHER_TIMEOUT_SECONDS: int = int(os.environ.get("WEATHER_TIMEOUT_SECONDS", "30"))

    # Optional: print every request path (local debugging).
    API_LOG_REQUESTS: bool = _env_bool("API_LOG_REQUESTS")


def load_config() -> Config:
    return Config()
