"""Merge external search-volume metadata into keyword records."""

from __future__ import annotations

import math
import re
from dataclasses import replace
from typing import Any, Dict, Iterable, List, Mapping, Sequence

from .models import KeywordMeta, KeywordRecord, MetadataMap

_VOLUME_NOISE_RE = re.compile(r"[\s,]")


def metadata_key(keyword: str) -> str:
    return str(keyword).strip().lower()


def enrich_records(
    records: Sequence[KeywordRecord],
    meta: MetadataMap | None = None,
) -> List[KeywordRecord]:
    """Return new records with search volumes taken from ``meta`` where known.

    A metadata entry without a volume, or no entry at all, leaves the
    record's own volume in place.
    """

    if not meta:
        return list(records)
    enriched: List[KeywordRecord] = []
    for record in records:
        entry = meta.get(metadata_key(record.keyword))
        if entry is None or entry.search_volume is None:
            enriched.append(record)
        else:
            enriched.append(replace(record, search_volume=entry.search_volume))
    return enriched


def parse_search_volume(raw: Any) -> float | int | None:
    """Parse a volume cell such as ``"12,000"``; blank or invalid gives ``None``."""

    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        return raw
    text = _VOLUME_NOISE_RE.sub("", str(raw))
    if not text:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    return int(number) if number.is_integer() else number


def build_metadata_map(
    rows: Iterable[Mapping[str, Any]],
    keyword_column: str,
    volume_column: str | None,
) -> Dict[str, KeywordMeta]:
    """Build a metadata map from already-parsed tabular rows.

    The first parsable volume seen for a keyword wins.
    """

    meta: Dict[str, KeywordMeta] = {}
    if not volume_column:
        return meta
    for row in rows:
        keyword = str(row.get(keyword_column) or "").strip()
        if not keyword:
            continue
        volume = parse_search_volume(row.get(volume_column))
        if volume is None:
            continue
        key = metadata_key(keyword)
        existing = meta.get(key)
        if existing is None or existing.search_volume is None:
            meta[key] = KeywordMeta(search_volume=volume)
    return meta


__all__ = [
    "build_metadata_map",
    "enrich_records",
    "metadata_key",
    "parse_search_volume",
]
