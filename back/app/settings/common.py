# Standard library imports
from pathlib import Path
import secrets
from typing import Annotated, Any, Literal

# Third-party imports
from pydantic import AnyUrl, BeforeValidator, computed_field
from pydantic_core import MultiHostUrl
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR: Path = Path(__file__).resolve().parent.parent


def parse_cors(v: Any) -> list[str] | str:
    if isinstance(v, str) and not v.startswith("["):
        return [i.strip() for i in v.split(",")]
    elif isinstance(v, list | str):
        return v
    raise ValueError(v)


class CommonSettings(BaseSettings):
    model_config = SettingsConfigDict(
        # Use top level .env file (one level above ./back/)
        env_file="../.env",
        env_ignore_empty=True,
        extra="ignore",
    )

    # General settings
    API_V1_STR: str = "/api/v1"
    SECRET_KEY: str = secrets.token_urlsafe(32)
    ENVIRONMENT: Literal["dev", "staging", "production"] = "dev"
    DEBUG_MODE: bool = False
    PROJECT_NAME: str = "Nearby Verify"

    # Database settings
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "nearby_verify"
    # Full async URL override (e.g. sqlite+aiosqlite:///./nearby_verify.db)
    DATABASE_URL: str | None = None
    DATABASE_ECHO: bool = False

    @property
    def SQLALCHEMY_ASYNC_DATABASE_URI(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return str(
            MultiHostUrl.build(
                scheme="postgresql+asyncpg",  # async driver for async queries
                username=self.POSTGRES_USER,
                password=self.POSTGRES_PASSWORD,
                host=self.POSTGRES_SERVER,
                port=self.POSTGRES_PORT,
                path=self.POSTGRES_DB,
            )
        )

    # CORS settings
    BACKEND_CORS_ORIGINS: Annotated[list[AnyUrl] | str, BeforeValidator(parse_cors)] = [
        AnyUrl("http://localhost/"),
        AnyUrl("http://localhost:3000/"),
        AnyUrl("http://localhost:5173/"),
        AnyUrl("http://localhost:8000/"),
    ]

    @computed_field  # type: ignore[prop-decorator, misc]
    @property
    def all_cors_origins(self) -> list[str]:
        return [str(origin).rstrip("/") for origin in self.BACKEND_CORS_ORIGINS]

    # Optional settings
    SENTRY_DSN: str | None = None

    # JWT settings (tokens are issued by the identity provider)
    JWT_ALGORITHM: str = "HS256"
    AUTHORITY_ROLE: str = "authority"

    # Redis settings
    REDIS_URL: str = "redis://localhost:6379/0"
    REALTIME_REDIS_ENABLED: bool = False
    REALTIME_REDIS_CHANNEL: str = "issues:changes"

    # Celery settings
    CELERY_BROKER_URL: str = "redis://redis:6379/2"
    CELERY_RESULT_BACKEND: str = "redis://redis:6379/3"
    CELERY_WORKER_CONCURRENCY: int = 4
    CELERY_TASK_TIME_LIMIT: int = 300  # 5 minutes
    CELERY_TASK_SOFT_TIME_LIMIT: int = 240  # 4 minutes

    # Scheduler settings
    SCHEDULER_BACKEND: Literal["inline", "celery", "disabled"] = "inline"
    SCHEDULER_INTERVAL_SECONDS: int = 300

    # Verification engine settings
    MAX_RADIUS_METERS: float = 10_000.0
    REPOST_EXPANSION_FACTOR: float = 1.5
    VOTE_MAX_ATTEMPTS: int = 3
    ALLOW_REPORTER_VOTE: bool = False
    REPORTER_COUNTS_TOWARD_THRESHOLD: bool = False
    CRITICAL_REQUIRES_CORROBORATION: bool = False
    CRITICAL_CORROBORATION_WINDOW_HOURS: int = 1

    # Severity defaults looked up when an issue is created
    SEVERITY_DEFAULTS: dict[str, dict[str, float]] = {
        "critical": {
            # Bypasses the threshold; verified on creation
            "vote_threshold": 1,
            "radius_meters": 500,
            "expiry_hours": 0,
        },
        "high": {
            "vote_threshold": 5,
            "radius_meters": 1_000,
            "expiry_hours": 24,
        },
        "medium": {
            "vote_threshold": 10,
            "radius_meters": 1_000,
            "expiry_hours": 24 * 3,
        },
        "low": {
            "vote_threshold": 15,
            "radius_meters": 2_000,
            "expiry_hours": 24 * 7,
        },
    }

    # Pagination configurations
    PAGINATION_CONFIGS: dict[str, dict[str, int]] = {
        "issues": {
            "default_limit": 20,
            "max_limit": 100,
            "min_limit": 1,
        },
        "votes": {
            "default_limit": 50,
            "max_limit": 500,
            "min_limit": 1,
        },
    }
