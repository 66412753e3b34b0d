"""Email rendering utilities."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, TemplateError, select_autoescape

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent
POSTER_BASE_URL = "https://image.tmdb.org/t/p/w342"
ENV = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    autoescape=select_autoescape(enabled_extensions=("html",)),
)


class EmailRenderError(RuntimeError):
    pass


def poster_url(poster_path: str | None) -> str | None:
    if not poster_path:
        return None
    return f"{POSTER_BASE_URL}{poster_path}"


ENV.filters["poster_url"] = poster_url


def render_email(kind: str, context: dict[str, Any]) -> tuple[str, str]:
    template = ENV.get_template("template.html")
    merged_context = {
        "kind": kind,
        "app_url": os.environ.get("APP_URL", "https://moviereleasetracker.online"),
        **context,
    }
    try:
        html = template.render(**merged_context)
    except TemplateError as exc:
        raise EmailRenderError(f"Failed to render {kind} email: {exc}") from exc
    subject = context.get("subject", "Movie Release Tracker")
    return subject, html
