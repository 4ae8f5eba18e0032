import json
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"
    # JSON log lines; off gives console-readable output for local runs
    LOG_JSON: bool = True

    # Dashboard UI origins allowed by CORS
    CORS_ALLOWED_ORIGINS: list[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
    ]

    # Request context
    TRUST_X_FORWARDED_FOR: bool = False
    TRUSTED_PROXY_IPS: list[str] = []

    # Redis snapshot mirror (optional, memory-only when unset)
    REDIS_URL: str | None = None
    REDIS_KEY_PREFIX: str = "priority:snapshot:"
    REDIS_MAX_CONNECTIONS: int = 20

    # =================================================================
    # SOURCE ADAPTERS
    # =================================================================
    # Upstream bridge URLs return a JSON list of native records; {focus_user}
    # is substituted. Fixture paths point at JSON files (test/mock mode).
    JIRA_SOURCE_URL: str | None = None
    OUTLOOK_SOURCE_URL: str | None = None
    CONFLUENCE_SOURCE_URL: str | None = None
    JIRA_FIXTURE_PATH: str | None = None
    OUTLOOK_FIXTURE_PATH: str | None = None
    CONFLUENCE_FIXTURE_PATH: str | None = None
    SOURCE_TIMEOUT_SECONDS: float = 10.0

    # =================================================================
    # CACHE
    # =================================================================
    PRIORITY_CACHE_TTL_SECONDS: float = 60.0
    PRIORITY_CACHE_RETENTION_SECONDS: float = 900.0

    # Identity aliases: {"john": ["EMP042", "john.doe@company.com"]}
    FOCUS_USER_ALIASES: dict[str, list[str]] = {}

    # =================================================================
    # SCORING - product parameters, pinned by golden-value tests
    # =================================================================
    PRIORITY_BASE_WEIGHTS: dict[str, float] = {
        "highest": 45.0,
        "blocker": 45.0,
        "critical": 45.0,
        "urgent": 45.0,
        "asap": 45.0,
        "flagged": 35.0,
        "high": 35.0,
        "major": 35.0,
        "escalation": 35.0,
        "priority": 35.0,
        "medium": 20.0,
        "normal": 15.0,
        "low": 10.0,
        "minor": 10.0,
        "lowest": 5.0,
        "trivial": 5.0,
    }
    PRIORITY_DEFAULT_BASE_WEIGHT: float = 10.0
    PRIORITY_DUE_WEIGHT: float = 40.0
    PRIORITY_DUE_HORIZON_HOURS: float = 72.0
    PRIORITY_OVERDUE_BONUS: float = 10.0
    PRIORITY_OVERDUE_CAP_HOURS: float = 336.0
    PRIORITY_RECENCY_WEIGHT: float = 15.0
    PRIORITY_RECENCY_HALF_LIFE_HOURS: float = 72.0
    URGENCY_CRITICAL_THRESHOLD: float = 75.0
    URGENCY_HIGH_THRESHOLD: float = 55.0
    URGENCY_MEDIUM_THRESHOLD: float = 35.0

    # =================================================================
    # CAPACITY
    # =================================================================
    CAPACITY_BASELINE: float = 10.0
    CAPACITY_CRITICAL_WEIGHT: float = 2.0
    CAPACITY_HIGH_WEIGHT: float = 1.0
    CAPACITY_MODERATE_PERCENT: float = 25.0
    CAPACITY_HIGH_PERCENT: float = 50.0
    CAPACITY_OVERLOADED_PERCENT: float = 80.0

    # =================================================================
    # DASHBOARD PRESENTATION
    # =================================================================
    # IANA zone for the time-of-day greeting; server local time when unset
    GREETING_TIMEZONE: str | None = None
    # Report item filters (overridable per request)
    REPORT_MAX_ITEMS: int = 50
    REPORT_MIN_SCORE: float = 20.0

    # Background cache warm job
    CACHE_WARM_FOCUS_USERS: list[str] = []
    CACHE_WARM_INTERVAL_SECONDS: float = 45.0

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("FOCUS_USER_ALIASES", mode="before")
    @classmethod
    def _parse_aliases(cls, value):
        # Accept a JSON string from plain env files as well as a dict
        if isinstance(value, str):
            return json.loads(value) if value.strip() else {}
        return value

    def source_urls(self) -> dict[str, str | None]:
        return {
            "jira": self.JIRA_SOURCE_URL,
            "outlook": self.OUTLOOK_SOURCE_URL,
            "confluence": self.CONFLUENCE_SOURCE_URL,
        }

    def source_fixtures(self) -> dict[str, str | None]:
        return {
            "jira": self.JIRA_FIXTURE_PATH,
            "outlook": self.OUTLOOK_FIXTURE_PATH,
            "confluence": self.CONFLUENCE_FIXTURE_PATH,
        }

    def redis_enabled(self) -> bool:
        return bool(self.REDIS_URL)


settings = Settings()
