# config/settings.py

"""
Process configuration for the evaluator
Everything is read from the environment (after load_dotenv in app.py)
"""

import os
from dataclasses import dataclass
from typing import Optional


REASONING_MODEL_PREFIXES = ("gpt-5", "o1", "o3")


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, ""))
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, ""))
    except ValueError:
        return default


@dataclass
class Settings:
    """Runtime settings. Build with Settings.from_env()."""

    # Evaluation engine
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    openai_reasoning_effort: str = "low"
    openai_text_verbosity: str = "medium"
    openai_max_output_tokens: int = 1500
    openai_temperature: float = 0.1
    openai_max_tokens: int = 1500
    openai_timeout: float = 60.0

    # Help Scout
    helpscout_app_id: str = ""
    helpscout_app_secret: str = ""
    helpscout_access_token: str = ""
    helpscout_auth_timeout: float = 10.0
    helpscout_api_timeout: float = 15.0

    # Webhook auth
    webhook_secret: str = ""
    disable_signature_validation: bool = False

    # Ledger
    ledger_database_url: Optional[str] = None
    ledger_report_url: str = ""

    # Memory cache
    cache_max_entries: int = 500
    cache_ttl_seconds: int = 60 * 60 * 24

    # Process
    request_timeout: float = 30.0
    port: int = 8080
    log_level: str = "INFO"
    environment: str = "development"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY", "").strip(),
            openai_model=os.getenv("OPENAI_MODEL") or cls.openai_model,
            openai_reasoning_effort=os.getenv("OPENAI_REASONING_EFFORT") or cls.openai_reasoning_effort,
            openai_text_verbosity=os.getenv("OPENAI_TEXT_VERBOSITY") or cls.openai_text_verbosity,
            openai_max_output_tokens=_env_int("OPENAI_MAX_OUTPUT_TOKENS", cls.openai_max_output_tokens),
            openai_temperature=_env_float("OPENAI_TEMPERATURE", cls.openai_temperature),
            openai_max_tokens=_env_int("OPENAI_MAX_TOKENS", cls.openai_max_tokens),
            openai_timeout=_env_float("OPENAI_TIMEOUT_SECONDS", cls.openai_timeout),
            helpscout_app_id=os.getenv("HELPSCOUT_APP_ID", ""),
            helpscout_app_secret=os.getenv("HELPSCOUT_APP_SECRET", ""),
            helpscout_access_token=os.getenv("HELPSCOUT_ACCESS_TOKEN", ""),
            # Legacy deployments only set HELPSCOUT_APP_SECRET
            webhook_secret=(
                os.getenv("HELPSCOUT_DYNAMIC_WIDGET_SECRET_KEY")
                or os.getenv("HELPSCOUT_APP_SECRET")
                or ""
            ),
            disable_signature_validation=_env_bool("DISABLE_SIGNATURE_VALIDATION"),
            ledger_database_url=os.getenv("LEDGER_DATABASE_URL") or os.getenv("DATABASE_URL") or None,
            ledger_report_url=os.getenv("LEDGER_REPORT_URL", ""),
            cache_max_entries=_env_int("CACHE_MAX_ENTRIES", cls.cache_max_entries),
            cache_ttl_seconds=_env_int("CACHE_TTL_SECONDS", cls.cache_ttl_seconds),
            request_timeout=_env_float("REQUEST_TIMEOUT_SECONDS", cls.request_timeout),
            port=_env_int("PORT", cls.port),
            log_level=os.getenv("LOG_LEVEL", cls.log_level).upper(),
            environment=os.getenv("APP_ENV", cls.environment),
        )

    @property
    def uses_reasoning_model(self) -> bool:
        return self.openai_model.startswith(REASONING_MODEL_PREFIXES)

    @property
    def ledger_enabled(self) -> bool:
        return bool(self.ledger_database_url)

    @property
    def helpscout_configured(self) -> bool:
        return bool(self.helpscout_access_token or (self.helpscout_app_id and self.helpscout_app_secret))
