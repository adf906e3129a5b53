"""Detect when a visitor asks to see a listing in person."""

from __future__ import annotations

import re

from casabot.infra.db.listing_store import fold_accents

_PLACE = r"(o|a)?\s*(imovel|casa|apartamento|propriedade)"

VISIT_PATTERN = re.compile(
    r"(visitar"
    r"|\bvisita\b"
    r"|agendar(\s+uma)?\s+visita"
    r"|marcar(\s+uma)?\s+visita"
    rf"|ver\s+{_PLACE}\s*(pessoalmente|ao vivo)"
    rf"|conhecer\s+{_PLACE}"
    rf"|ir\s+(visitar|ver)\s+{_PLACE})"
)


def is_visit_request(message: str) -> bool:
    """Accent-insensitive match; asking for photos or details does not count."""
    return bool(VISIT_PATTERN.search(fold_accents(message)))
