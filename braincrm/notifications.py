"""
User-facing notifications.

Services report outcomes through flash() with the same categories the UI uses
("success", "danger", "info", "warning"). JSON endpoints return the pending
messages with every response (see pop_notifications()).

Outside a request (CLI, background job) messages only go to the log.
"""

from __future__ import annotations

import logging

from flask import flash, get_flashed_messages, has_request_context

logger = logging.getLogger(__name__)


def _notify(message: str, category: str) -> None:
    if has_request_context():
        flash(message, category)
    else:
        logger.info("[%s] %s", category, message)


def notify_success(message: str) -> None:
    _notify(message, "success")


def notify_error(message: str) -> None:
    _notify(message, "danger")


def notify_info(message: str) -> None:
    _notify(message, "info")


def pop_notifications() -> list[dict]:
    """Drain flashed messages as [{"category": ..., "message": ...}]."""
    if not has_request_context():
        return []
    return [
        {"category": category, "message": message}
        for category, message in get_flashed_messages(with_categories=True)
    ]
