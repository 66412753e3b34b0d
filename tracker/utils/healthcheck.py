"""Healthcheck pings for scheduled jobs."""

from __future__ import annotations

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)


async def ping_healthcheck(
    url: str | None,
    *,
    success: bool,
    session: httpx.AsyncClient | None = None,
) -> dict[str, Any]:
    """Ping ``url`` on success or ``url/fail`` on failure. Never raises."""
    if not url:
        return {"attempted": False, "success": False}
    target = url if success else f"{url.rstrip('/')}/fail"
    try:
        if session is not None:
            response = await session.get(target)
        else:
            async with httpx.AsyncClient(timeout=10.0) as client:
                response = await client.get(target)
    except httpx.HTTPError as exc:
        logger.warning("Healthcheck ping to %s failed: %s", target, exc)
        return {"attempted": True, "success": False, "url": target, "error": str(exc)}
    logger.info("Healthcheck ping sent (%s): %s", "success" if success else "failure", response.status_code)
    return {
        "attempted": True,
        "success": response.is_success,
        "url": target,
        "status": response.status_code,
    }
