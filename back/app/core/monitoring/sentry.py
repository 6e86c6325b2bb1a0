# Standard library imports
import logging

# Third-party imports
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

# Local application imports
from app.settings import settings


def setup_sentry(with_fastapi: bool = False) -> bool:
    """
    Initialise Sentry once per process when a DSN is configured.

    Errors logged by the engine (scheduler per-issue failures included) are
    sent as events; warnings are kept as breadcrumbs.

    Args:
        with_fastapi: Also attach the FastAPI integration (API processes only).

    Returns:
        True if Sentry is active after the call.
    """
    if not settings.SENTRY_DSN or settings.ENVIRONMENT == "dev":
        return False

    if sentry_sdk.get_client().is_active():
        return True

    integrations: list = [
        LoggingIntegration(
            level=logging.WARNING,  # Capture warnings and above as breadcrumbs
            event_level=logging.ERROR,  # Send errors as events
        )
    ]
    if with_fastapi:
        integrations.append(FastApiIntegration())

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        integrations=integrations,
        environment=settings.ENVIRONMENT,
        traces_sample_rate=1.0,  # tweak for performance
    )
    return True
