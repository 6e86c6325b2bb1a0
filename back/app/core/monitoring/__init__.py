# Local application imports
from app.core.monitoring.logging import get_contextual_logger, get_logger
from app.core.monitoring.sentry import setup_sentry

__all__ = ["get_contextual_logger", "get_logger", "setup_sentry"]
