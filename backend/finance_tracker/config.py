import os
from dataclasses import dataclass


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    storage_backend: str = os.getenv("STORAGE_BACKEND", "memory").strip().lower()
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./finance.db")
    auth_required: bool = _flag("AUTH_REQUIRED", "true")
    seed_on_startup: bool = _flag("SEED_ON_STARTUP", "true")
    log_level: str = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    log_json: bool = _flag("LOG_JSON", "false")
    session_cookie_name: str = os.getenv("SESSION_COOKIE_NAME", "ft_session")
    # idle minutes before a session is dropped; 0 keeps sessions until logout
    session_timeout_minutes: int = int(os.getenv("SESSION_TIMEOUT_MINUTES", "720"))


settings = Settings()
