"""Environment configuration checks."""

from __future__ import annotations

import logging
import os

logger = logging.getLogger(__name__)

REQUIRED_ENV = {
    "DATABASE_URL": "PostgreSQL connection string",
    "REDIS_URL": "Redis URL for the upcoming cache and the Celery broker",
    "TMDB_API_KEY": "The Movie Database API key",
    "CRON_SECRET": "Bearer token for cron endpoints",
}


def require_env(key: str) -> str:
    value = os.environ.get(key)
    if not value:
        description = REQUIRED_ENV.get(key, "required setting")
        raise EnvironmentError(f"Missing environment variable {key} ({description})")
    return value


def missing_env() -> list[str]:
    missing = [key for key in REQUIRED_ENV if not os.environ.get(key)]
    if missing:
        logger.warning("Missing environment variables: %s", ", ".join(missing))
    return missing
