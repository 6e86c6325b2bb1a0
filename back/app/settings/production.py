# Standard library imports
from typing import Literal

# Local application imports
from app.settings.common import CommonSettings


class ProductionSettings(CommonSettings):
    DEBUG_MODE: bool = False
    SCHEDULER_BACKEND: Literal["inline", "celery", "disabled"] = "celery"
    REALTIME_REDIS_ENABLED: bool = True
    SENTRY_DSN: str | None = None
