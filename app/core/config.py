from functools import lru_cache
from typing import Any, List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_CORS = ["http://localhost:5173", "capacitor://localhost", "http://localhost"]


def _parse_list(v: Any, default: List[str] | None = None) -> List[str]:
    """Accept a JSON list or a comma-separated string; blank values fall back to default."""
    fallback = list(default or [])
    if v is None or v == "":
        return fallback
    if isinstance(v, list):
        return [x.strip() for x in v if isinstance(x, str) and x.strip()]
    s = str(v).strip()
    if not s:
        return fallback
    if s.startswith("["):
        import json
        try:
            out = json.loads(s)
        except ValueError:
            return fallback
        return [x.strip() for x in out if isinstance(x, str) and x.strip()] or fallback
    return [x.strip() for x in s.split(",") if x.strip()] or fallback


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # App
    env: str = Field(default="development", description="ENV")
    debug: bool = Field(default=False, description="DEBUG")

    # MongoDB
    mongodb_uri: str = Field(default="mongodb://localhost:27017", alias="MONGODB_URI")
    mongodb_db_name: str = Field(default="benchcoach", alias="MONGODB_DB_NAME")

    # Redis (rate limits + ARQ)
    redis_url: str = Field(default="redis://localhost:6379/0", alias="REDIS_URL")

    # Firebase auth
    firebase_project_id: str = Field(default="", alias="FIREBASE_PROJECT_ID")
    admin_emails_raw: str = Field(default="", alias="ADMIN_EMAILS")

    # Ledger: accounts that bypass debits
    credit_exempt_user_ids_raw: str = Field(default="", alias="CREDIT_EXEMPT_USER_IDS")

    # AI generation endpoint
    ai_gateway_url: str = Field(default="http://localhost:8900/v1/generate", alias="AI_GATEWAY_URL")
    ai_gateway_api_key: str = Field(default="", alias="AI_GATEWAY_API_KEY")
    ai_gateway_timeout_seconds: float = Field(default=30.0, alias="AI_GATEWAY_TIMEOUT_SECONDS")

    # Sentry
    sentry_dsn: str | None = Field(default=None, alias="SENTRY_DSN")

    cors_origins_raw: str = Field(
        default="http://localhost:5173,capacitor://localhost,http://localhost",
        alias="CORS_ORIGINS",
        description="Comma-separated or JSON list",
    )

    @property
    def cors_origins(self) -> List[str]:
        return _parse_list(self.cors_origins_raw, _DEFAULT_CORS)

    @property
    def admin_emails(self) -> List[str]:
        return [e.lower() for e in _parse_list(self.admin_emails_raw)]

    @property
    def credit_exempt_user_ids(self) -> List[str]:
        return _parse_list(self.credit_exempt_user_ids_raw)

    # Pricing (credits)
    credits_per_chat: int = 1
    credits_per_workout: int = 5
    credits_per_program: int = 10
    credits_per_group_workout_athlete: int = 5
    credits_form_check_quick: int = 10
    credits_form_check_standard: int = 15
    credits_form_check_detailed: int = 25
    credits_per_suggest_goals: int = 1
    credits_per_swap_exercise: int = 1
    credits_per_analyze_progress: int = 3
    credits_per_autofill_workout: int = 2

    signup_bonus_credits: int = 50

    # Rate limits (requests per window)
    rate_limit_window_seconds: int = 60
    rate_limit_default: int = 20


@lru_cache
def get_settings() -> Settings:
    return Settings()
