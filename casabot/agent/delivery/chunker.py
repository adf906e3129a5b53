"""Delivery layer: split one finished reply into human-paced chunks."""

from __future__ import annotations

import random
import re
from dataclasses import dataclass

SINGLE_CHUNK_LIMIT = 400
MAX_CHUNK_CHARS = 500
MIN_SENTENCE_CHUNK_CHARS = 150
MIN_WORD_CHUNK_CHARS = 100
CHUNK_DELAY_MS = (1000, 3000)

_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")


@dataclass(frozen=True)
class Chunk:
    """One fragment of a reply and the pause to wait before showing it."""

    content: str
    is_last: bool
    delay_ms: int


def _borrow_words(head: str, tail: str) -> tuple[str, str]:
    """Move trailing words of `head` into `tail` until the tail reaches the sentence minimum."""
    words = head.split(" ")
    while len(tail) < MIN_SENTENCE_CHUNK_CHARS and len(words) > 1:
        tail = f"{words.pop()} {tail}"
    return " ".join(words), tail


def _pack(pieces: list[str], *, min_chars: int, cap_merge: bool = False) -> list[str]:
    """Greedy accumulation: flush past MAX_CHUNK_CHARS only once min_chars is reached."""
    packed: list[str] = []
    buffer = ""
    for piece in pieces:
        candidate = f"{buffer} {piece}" if buffer else piece
        if len(candidate) > MAX_CHUNK_CHARS and len(buffer) >= min_chars:
            packed.append(buffer)
            buffer = piece
        else:
            buffer = candidate
    if buffer:
        # A short remainder joins the previous chunk instead of trailing alone.
        if packed and len(buffer) < MIN_SENTENCE_CHUNK_CHARS:
            merged = f"{packed[-1]} {buffer}"
            if cap_merge and len(merged) > MAX_CHUNK_CHARS:
                packed[-1], buffer = _borrow_words(packed[-1], buffer)
                packed.append(buffer)
            else:
                packed[-1] = merged
        else:
            packed.append(buffer)
    return packed


def _split_sentences(text: str) -> list[str]:
    return [part.strip() for part in _SENTENCE_BOUNDARY.split(text) if part.strip()]


def chunk_message(text: str, rng: random.Random | None = None) -> list[Chunk]:
    """Split `text` into ordered chunks; exactly the last one has `is_last=True`."""
    source = rng or random

    def _delay() -> int:
        return source.randint(*CHUNK_DELAY_MS)

    if len(text) <= SINGLE_CHUNK_LIMIT:
        return [Chunk(content=text, is_last=True, delay_ms=_delay())]

    pieces = _pack(_split_sentences(text), min_chars=MIN_SENTENCE_CHUNK_CHARS)
    if not pieces or (len(pieces) == 1 and len(pieces[0]) > MAX_CHUNK_CHARS):
        pieces = _pack(text.split(), min_chars=MIN_WORD_CHUNK_CHARS, cap_merge=True)
    if not pieces:
        return [Chunk(content="", is_last=True, delay_ms=_delay())]

    last = len(pieces) - 1
    return [
        Chunk(content=piece, is_last=index == last, delay_ms=_delay())
        for index, piece in enumerate(pieces)
    ]
