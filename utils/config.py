"""
Runtime configuration for the formdrop API, read from the environment.

Values are loaded once from a `.env` file (without overriding variables that
are already set) and cleaned defensively: hosting dashboards tend to wrap
values in quotes and double-escape newlines in private keys.
"""
import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv

# Load environment variables (do not override shell env)
try:
    load_dotenv()
    _root_env = Path(__file__).resolve().parents[1] / ".env"
    if _root_env.exists():
        load_dotenv(dotenv_path=str(_root_env), override=False)
except Exception:
    pass


DEFAULT_EXCLUDED_FIELDS: Tuple[str, ...] = ("_gotcha", "cf-turnstile-response")

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def clean_env_value(value: Optional[str]) -> str:
    """Trim whitespace and a single pair of wrapping quotes."""
    s = str(value or "").strip()
    if len(s) >= 2 and s[0] == s[-1] and s[0] in ("'", '"'):
        s = s[1:-1].strip()
    return s


def clean_private_key(value: Optional[str]) -> str:
    """Normalize a PEM private key pasted into an environment variable."""
    key = clean_env_value(value)
    if not key:
        return ""
    # Double-escaped first so "\\n" does not leave a stray backslash
    key = key.replace("\\\\n", "\n").replace("\\n", "\n")
    return key.strip('"').strip("'")


def _env(name: str, default: str = "") -> str:
    raw = os.getenv(name)
    if raw is None:
        return default
    return clean_env_value(raw)


def _env_bool(name: str, default: bool) -> bool:
    v = _env(name).lower()
    if v in _TRUE:
        return True
    if v in _FALSE:
        return False
    return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(_env(name) or default)
    except ValueError:
        return default


def _env_list(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None:
        return default
    return tuple(x.strip() for x in clean_env_value(raw).split(",") if x.strip())


def _normalize_prefix(prefix: str) -> str:
    p = "/" + (prefix or "").strip().strip("/")
    return "/api/f" if p == "/" else p


@dataclass(frozen=True)
class Settings:
    env: str = "development"
    store_backend: str = "firestore"
    database_url: str = ""
    google_credentials_path: str = ""
    firebase_project_id: str = ""
    firebase_client_email: str = ""
    firebase_private_key: str = field(default="", repr=False)
    ingest_prefix: str = "/api/f"
    public_base_url: str = "http://localhost:8000"
    excluded_fields: Tuple[str, ...] = DEFAULT_EXCLUDED_FIELDS
    require_existing_form: bool = False
    notification_mode: str = "background"
    notification_timeout: float = 8.0
    html_return_to_referrer: bool = True
    rate_limit: str = "60/minute"
    rate_limit_enabled: bool = True
    redis_url: str = ""
    auth_mode: str = "firebase"
    sql_poll_interval: float = 2.0

    @property
    def is_production(self) -> bool:
        return self.env.lower() == "production"

    @classmethod
    def from_env(cls) -> "Settings":
        mode = _env("NOTIFICATION_MODE", "background").lower()
        if mode not in ("background", "await"):
            mode = "background"
        return cls(
            env=_env("ENV") or _env("APP_ENV") or "development",
            store_backend=_env("STORE_BACKEND", "firestore").lower(),
            database_url=_env("DATABASE_URL"),
            google_credentials_path=_env("GOOGLE_APPLICATION_CREDENTIALS"),
            firebase_project_id=_env("FIREBASE_PROJECT_ID"),
            firebase_client_email=_env("FIREBASE_CLIENT_EMAIL"),
            firebase_private_key=clean_private_key(os.getenv("FIREBASE_PRIVATE_KEY")),
            ingest_prefix=_normalize_prefix(_env("INGEST_PREFIX", "/api/f")),
            public_base_url=(_env("PUBLIC_BASE_URL") or "http://localhost:8000").rstrip("/"),
            excluded_fields=_env_list("SANITIZER_EXCLUDED_FIELDS", DEFAULT_EXCLUDED_FIELDS),
            require_existing_form=_env_bool("REQUIRE_EXISTING_FORM", False),
            notification_mode=mode,
            notification_timeout=max(0.1, _env_float("NOTIFICATION_TIMEOUT_SECONDS", 8.0)),
            html_return_to_referrer=_env_bool("HTML_RETURN_TO_REFERRER", True),
            rate_limit=_env("RATE_LIMIT", "60/minute"),
            rate_limit_enabled=_env_bool("RATE_LIMIT_ENABLED", True),
            redis_url=_env("REDIS_URL"),
            auth_mode=_env("AUTH_MODE", "firebase").lower(),
            sql_poll_interval=max(0.05, _env_float("SQL_POLL_INTERVAL_SECONDS", 2.0)),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
