"""Observability layer: one logging setup shared by HTTP, WebSocket and delivery tasks."""

from __future__ import annotations

import logging

_SERVER_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "websockets")


def setup_logging(level: str = "INFO") -> None:
    """Configure root logger once; server loggers propagate into it."""
    normalized = level.upper()
    logging.basicConfig(
        level=normalized,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        force=True,
    )
    for name in _SERVER_LOGGERS:
        logger = logging.getLogger(name)
        logger.handlers.clear()
        logger.setLevel(normalized)
        logger.propagate = True


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def short_text(text: str | None, *, limit: int = 120) -> str:
    """Collapse whitespace and clip free text before it goes into a log line."""
    if not isinstance(text, str):
        return ""
    compact = " ".join(text.split())
    if len(compact) <= limit:
        return compact
    return f"{compact[: max(1, limit - 3)].rstrip()}..."
