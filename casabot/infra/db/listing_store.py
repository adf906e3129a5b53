"""Data layer: JSONL-seeded in-memory listing catalog with keyword search."""

from __future__ import annotations

import json
import re
import unicodedata
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from typing import Any
from uuid import uuid4


@dataclass(frozen=True)
class LoadStats:
    """Basic diagnostics collected while loading source JSONL."""

    total_lines: int
    loaded_rows: int
    bad_lines: int


def _as_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _as_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def fold_accents(text: str) -> str:
    """Lowercase and strip diacritics so `imóvel` matches `imovel`."""
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch)).lower()


def _build_search_blob(listing: dict[str, Any]) -> str:
    chunks: list[str] = [
        str(listing.get("title") or ""),
        str(listing.get("description") or ""),
        str(listing.get("property_type") or ""),
        str(listing.get("business_type") or ""),
        str(listing.get("state") or ""),
        str(listing.get("city") or ""),
        str(listing.get("neighborhood") or ""),
        str(listing.get("address") or ""),
    ]
    chunks.extend(str(item) for item in listing.get("amenities", []))
    return fold_accents(" ".join(chunks))


def _keyword_terms(keyword: str | None) -> list[str]:
    if not keyword:
        return []
    normalized = fold_accents(keyword.strip())
    if not normalized:
        return []
    parts = [term.strip() for term in re.split(r"[\s,.;!?|/\\]+", normalized) if term.strip()]
    return list(dict.fromkeys(parts))


def describe_listing(listing: dict[str, Any]) -> str:
    """Flatten one listing into the text that gets embedded for similarity search."""
    amenities = ", ".join(listing.get("amenities") or []) or "Nenhuma"
    lines = [
        f"Título: {listing.get('title')}",
        f"Tipo: {listing.get('property_type')}",
        f"Descrição: {listing.get('description') or ''}",
        f"Localização: {listing.get('neighborhood')}, {listing.get('city')}, {listing.get('state')}",
        f"Quartos: {listing.get('bedrooms') or 0}",
        f"Banheiros: {listing.get('bathrooms') or 0}",
        f"Área: {listing.get('area') or 0}m²",
        f"Preço: R$ {listing.get('price')}",
        f"Tipo de negócio: {listing.get('business_type')}",
        f"Comodidades: {amenities}",
    ]
    return "\n".join(lines)


class ListingStore:
    """Listing catalog kept in memory, seeded from `properties.jsonl`."""

    def __init__(self, listings: list[dict[str, Any]], stats: LoadStats) -> None:
        self._lock = Lock()
        self._listings = listings
        self._stats = stats
        self._by_id = {item["id"]: item for item in listings}

    @classmethod
    def from_jsonl(cls, path: Path) -> "ListingStore":
        if not path.exists():
            raise FileNotFoundError(f"Listing data file not found: {path}")

        listings: list[dict[str, Any]] = []
        seen: set[str] = set()
        bad_lines = 0
        total = 0

        with path.open("r", encoding="utf-8") as handle:
            for line in handle:
                total += 1
                raw_line = line.strip()
                if not raw_line:
                    bad_lines += 1
                    continue
                try:
                    payload = json.loads(raw_line)
                except json.JSONDecodeError:
                    bad_lines += 1
                    continue
                normalized = cls.normalize_listing(payload) if isinstance(payload, dict) else None
                if normalized is None or normalized["id"] in seen:
                    bad_lines += 1
                    continue
                seen.add(normalized["id"])
                listings.append(normalized)

        return cls(
            listings,
            stats=LoadStats(total_lines=total, loaded_rows=len(listings), bad_lines=bad_lines),
        )

    @staticmethod
    def normalize_listing(raw: dict[str, Any]) -> dict[str, Any] | None:
        required = ("id", "title", "property_type", "state", "city", "neighborhood", "business_type")
        if any(raw.get(key) in (None, "") for key in required):
            return None
        price = _as_float(raw.get("price"))
        if price is None:
            return None

        amenities = raw.get("amenities")
        result = {
            "id": str(raw.get("id")),
            "title": str(raw.get("title")),
            "description": raw.get("description"),
            "property_type": str(raw.get("property_type")),
            "state": str(raw.get("state")),
            "city": str(raw.get("city")),
            "neighborhood": str(raw.get("neighborhood")),
            "address": raw.get("address"),
            "zip_code": raw.get("zip_code"),
            "bedrooms": _as_int(raw.get("bedrooms")),
            "bathrooms": _as_int(raw.get("bathrooms")),
            "parking_spaces": _as_int(raw.get("parking_spaces")),
            "area": _as_int(raw.get("area")),
            "price": price,
            "condo_fee": _as_float(raw.get("condo_fee")),
            "iptu": _as_float(raw.get("iptu")),
            "business_type": str(raw.get("business_type")),
            "amenities": [str(item) for item in amenities] if isinstance(amenities, list) else [],
            "main_image": raw.get("main_image"),
            "contact_name": raw.get("contact_name"),
            "contact_phone": raw.get("contact_phone"),
            "contact_email": raw.get("contact_email"),
        }
        result["_search_blob"] = _build_search_blob(result)
        return result

    def health(self) -> dict[str, int]:
        """Expose basic load/quality stats for health endpoint."""
        with self._lock:
            listed = len(self._listings)
        return {
            "total_lines": self._stats.total_lines,
            "loaded_rows": self._stats.loaded_rows,
            "bad_lines": self._stats.bad_lines,
            "listings": listed,
        }

    def list_listings(self) -> list[dict[str, Any]]:
        with self._lock:
            return list(self._listings)

    def get(self, listing_id: str) -> dict[str, Any] | None:
        with self._lock:
            return self._by_id.get(listing_id)

    def search(self, keyword: str | None, *, limit: int = 3) -> list[dict[str, Any]]:
        """Keyword match over the search blob, ranked by how many terms hit."""
        terms = _keyword_terms(keyword)
        if not terms:
            return []
        scored: list[tuple[int, int, dict[str, Any]]] = []
        with self._lock:
            for position, row in enumerate(self._listings):
                blob = str(row.get("_search_blob") or "")
                hits = sum(1 for term in terms if term in blob)
                if hits:
                    scored.append((hits, position, row))
        scored.sort(key=lambda item: (-item[0], item[1]))
        return [row for _, _, row in scored[: max(1, limit)]]

    def create(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Add one listing; a fresh id is assigned when the payload has none."""
        candidate = dict(payload)
        candidate.setdefault("id", uuid4().hex)
        normalized = self.normalize_listing(candidate)
        if normalized is None:
            raise ValueError("listing payload is missing required fields")
        with self._lock:
            if normalized["id"] in self._by_id:
                raise ValueError(f"listing '{normalized['id']}' already exists")
            self._listings.append(normalized)
            self._by_id[normalized["id"]] = normalized
        return normalized
