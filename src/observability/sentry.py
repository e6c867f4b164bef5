"""Sentry error reporting for the chat API."""

import logging
import os

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

from src.agent.exceptions import ConfigurationError

DEFAULT_TRACES_SAMPLE_RATE = 0.1


def _parse_sample_rate(value: str | None) -> float:
    if not value:
        return DEFAULT_TRACES_SAMPLE_RATE
    try:
        rate = float(value)
    except ValueError as e:
        raise ConfigurationError(f"Invalid SENTRY_TRACES_SAMPLE_RATE: {value}") from e
    if not 0.0 <= rate <= 1.0:
        raise ConfigurationError(f"SENTRY_TRACES_SAMPLE_RATE must be in [0, 1], got {rate}")
    return rate


def init_sentry() -> bool:
    """Initialise Sentry when SENTRY_DSN is set.

    Env vars:
      - SENTRY_DSN: project DSN; Sentry stays disabled when unset
      - APP_ENV: environment tag (default local)
      - SENTRY_RELEASE: optional release tag
      - SENTRY_TRACES_SAMPLE_RATE: float in [0, 1] (default 0.1)

    :returns: True if Sentry was initialised.
    :raises ConfigurationError: If the sample rate is not a valid float in [0, 1].
    """
    dsn = os.environ.get("SENTRY_DSN")
    if not dsn:
        return False

    # ERROR logs become events, INFO+ are kept as breadcrumbs
    logging_integration = LoggingIntegration(
        level=logging.INFO,
        event_level=logging.ERROR,
    )

    sentry_sdk.init(
        dsn=dsn,
        integrations=[
            FastApiIntegration(),
            logging_integration,
        ],
        environment=os.environ.get("APP_ENV", "local"),
        release=os.environ.get("SENTRY_RELEASE") or None,
        send_default_pii=False,
        traces_sample_rate=_parse_sample_rate(os.environ.get("SENTRY_TRACES_SAMPLE_RATE")),
    )
    return True
