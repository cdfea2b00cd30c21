"""Data model shared by the normalizer, grouping engine and processor."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping


class KeywordType(str, Enum):
    """Classification assigned to a keyword by the scoring backend."""

    GENERIC = "generic"
    OUR_BRAND = "our_brand"
    COMPETITOR_BRAND = "competitor_brand"

    @classmethod
    def parse(cls, value: Any) -> "KeywordType":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            raise ValueError(f"Unknown keyword type: {value!r}") from exc


def _optional_number(value: Any) -> float | int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = value
    else:
        try:
            number = float(str(value).strip())
        except ValueError:
            return None
    if isinstance(number, float) and not math.isfinite(number):
        return None
    if isinstance(number, float) and number.is_integer():
        return int(number)
    return number


def _optional_volume(value: Any) -> float | int | None:
    """Parse a search volume; negative or non-finite values count as unknown."""

    number = _optional_number(value)
    if number is None or number < 0:
        return None
    return number


@dataclass(frozen=True, slots=True)
class KeywordRecord:
    """One analysed keyword.

    ``score`` is expected to fall within 1-10 because the scoring backend
    promises it; nothing in the grouping core validates that bound.
    ``search_volume`` is ``None`` when unknown.
    """

    keyword: str
    type: KeywordType = KeywordType.GENERIC
    score: float = 1
    reasoning: str = ""
    search_volume: float | int | None = None
    relevance: float | None = None
    analysis: str | None = None

    @property
    def ranking_volume(self) -> float | int:
        return self.search_volume or 0

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "KeywordRecord":
        keyword = payload.get("keyword")
        if keyword is None:
            raise ValueError("Keyword record requires a 'keyword' field")
        volume = payload.get("searchVolume", payload.get("search_volume"))
        score = _optional_number(payload.get("score"))
        return cls(
            keyword=str(keyword),
            type=KeywordType.parse(payload.get("type", KeywordType.GENERIC)),
            score=score if score is not None else 1,
            reasoning=str(payload.get("reasoning") or ""),
            search_volume=_optional_volume(volume),
            relevance=_optional_number(payload.get("relevance")),
            analysis=payload.get("analysis"),
        )

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "keyword": self.keyword,
            "type": self.type.value,
            "score": self.score,
            "reasoning": self.reasoning,
        }
        if self.search_volume is not None:
            payload["searchVolume"] = self.search_volume
        if self.relevance is not None:
            payload["relevance"] = self.relevance
        if self.analysis is not None:
            payload["analysis"] = self.analysis
        return payload


@dataclass(slots=True)
class GroupedKeywordResult:
    """A cluster of phrase variations represented by its parent keyword."""

    parent: KeywordRecord
    lemma: str
    variations: list[KeywordRecord] = field(default_factory=list)

    @property
    def total_variations(self) -> int:
        return len(self.variations)

    def members(self) -> list[KeywordRecord]:
        return [self.parent, *self.variations]

    def to_payload(self) -> dict[str, Any]:
        return {
            "parent": self.parent.to_payload(),
            "variations": [record.to_payload() for record in self.variations],
            "lemma": self.lemma,
            "totalVariations": self.total_variations,
        }


@dataclass(frozen=True, slots=True)
class KeywordMeta:
    """External metadata for a keyword, keyed by its lowercased text."""

    search_volume: float | int | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any] | None) -> "KeywordMeta":
        if not payload:
            return cls()
        volume = payload.get("searchVolume", payload.get("search_volume"))
        return cls(search_volume=_optional_volume(volume))

    def to_payload(self) -> dict[str, Any]:
        if self.search_volume is None:
            return {}
        return {"searchVolume": self.search_volume}


MetadataMap = Mapping[str, KeywordMeta]


def metadata_map_from_payload(payload: Mapping[str, Any] | None) -> Dict[str, KeywordMeta]:
    """Parse the ``keywordMeta`` wire object into a metadata map."""

    if not payload:
        return {}
    meta: Dict[str, KeywordMeta] = {}
    for key, value in payload.items():
        normalized = str(key).strip().lower()
        if not normalized:
            continue
        meta[normalized] = KeywordMeta.from_payload(value if isinstance(value, Mapping) else None)
    return meta


__all__ = [
    "GroupedKeywordResult",
    "KeywordMeta",
    "KeywordRecord",
    "KeywordType",
    "MetadataMap",
    "metadata_map_from_payload",
]
