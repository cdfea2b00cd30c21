"""Client for the keyword scoring backend and the offline fallback generator."""

from __future__ import annotations

import json
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping, Sequence

import httpx

from .config import Settings
from .models import KeywordRecord, KeywordType

logger = logging.getLogger(__name__)

_MIN_SCORE = 1
_MAX_SCORE = 10


class ScoringError(RuntimeError):
    """Raised when the scoring backend rejects or cannot serve a request."""


def clamp_score(value: Any) -> float | int:
    """Clamp a backend score into 1-10; missing or zero scores become 1."""

    try:
        score = float(value) if value is not None else 0.0
    except (TypeError, ValueError):
        score = 0.0
    score = max(_MIN_SCORE, min(_MAX_SCORE, score or _MIN_SCORE))
    return int(score) if float(score).is_integer() else score


@dataclass(frozen=True, slots=True)
class ProductInput:
    """Product context sent with a scoring request: an ASIN or a description."""

    asin: str | None = None
    country: str = "US"
    description: str | None = None

    def __post_init__(self) -> None:
        if not (self.asin or "").strip() and not (self.description or "").strip():
            raise ValueError("Product input requires an ASIN or a description")

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "ProductInput":
        mode = str(payload.get("mode") or "").strip().lower()
        if mode == "asin" or (not mode and payload.get("asin")):
            return cls(asin=str(payload.get("asin") or "").strip(), country=str(payload.get("country") or "US"))
        return cls(description=str(payload.get("description") or "").strip())

    def to_request(self, keywords: Sequence[str]) -> dict[str, Any]:
        if self.asin:
            return {"asin": self.asin, "country": self.country, "keywords": list(keywords)}
        return {"product_description": self.description, "keywords": list(keywords)}


@dataclass(slots=True)
class KeywordAnalysisResponse:
    results: List[KeywordRecord]
    summary: dict[str, Any] = field(default_factory=dict)
    product_info: dict[str, Any] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)


def convert_to_records(rows: Iterable[Mapping[str, Any]]) -> List[KeywordRecord]:
    """Map backend analysis rows to display records with clamped scores."""

    records: List[KeywordRecord] = []
    for row in rows:
        score = clamp_score(row.get("score"))
        reasoning = str(row.get("reasoning") or "")
        records.append(
            KeywordRecord(
                keyword=str(row.get("keyword") or ""),
                type=KeywordType.parse(row.get("type") or KeywordType.GENERIC),
                score=score,
                reasoning=reasoning,
                relevance=score * 10,
                analysis=reasoning,
            )
        )
    return records


def summarize_records(records: Sequence[KeywordRecord], *, total_keywords: int | None = None) -> dict[str, Any]:
    by_type = {member.value: 0 for member in KeywordType}
    for record in records:
        by_type[record.type.value] += 1
    average = sum(record.score for record in records) / len(records) if records else 0.0
    return {
        "total_keywords": total_keywords if total_keywords is not None else len(records),
        "analyzed": len(records),
        "failed": 0,
        "by_type": by_type,
        "average_score": average,
    }


def generate_fallback_records(
    keywords: Iterable[str],
    *,
    rng: random.Random | None = None,
) -> List[KeywordRecord]:
    """Produce demo records when the scoring backend is unreachable.

    Every keyword gets a valid type and a score within 1-10 so downstream
    grouping sees the same shape as real backend output.
    """

    rng = rng or random.Random()
    types = list(KeywordType)
    records: List[KeywordRecord] = []
    for keyword in keywords:
        score = rng.randint(_MIN_SCORE, _MAX_SCORE)
        reasoning = f'Mock analysis for "{keyword}": This is demo data as the API is not connected.'
        records.append(
            KeywordRecord(
                keyword=keyword,
                type=rng.choice(types),
                score=score,
                reasoning=reasoning,
                relevance=score * 10,
                analysis=reasoning,
            )
        )
    return records


def _error_message(response: httpx.Response, operation: str) -> str:
    try:
        body = response.json()
    except ValueError:
        body = {}
    if isinstance(body, dict):
        detail = body.get("detail")
        if isinstance(detail, str):
            return detail
        if isinstance(body.get("message"), str):
            return body["message"]
        if detail:
            return json.dumps(detail)
    return f"{operation} failed with status {response.status_code}"


class KeywordScoringClient:
    """Thin synchronous client for the scoring backend's JSON endpoints."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 120.0,
        client: httpx.Client | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._client = client or httpx.Client(timeout=timeout)

    @classmethod
    def from_settings(cls, settings: Settings) -> "KeywordScoringClient":
        return cls(settings.scoring_api_url, timeout=settings.scoring_request_timeout)

    @property
    def base_url(self) -> str:
        return self._base_url

    def close(self) -> None:
        self._client.close()

    def analyze_keywords(self, product: ProductInput, keywords: Sequence[str]) -> KeywordAnalysisResponse:
        data = self._post("/analyze-keywords", product.to_request(keywords), operation="Analysis")
        if not isinstance(data, dict):
            raise ScoringError("Analysis response must be a JSON object")
        try:
            records = convert_to_records(data.get("analysis_results") or [])
        except ValueError as exc:
            raise ScoringError(f"Analysis returned an invalid result: {exc}") from exc
        summary = dict(data.get("summary") or {})
        if summary and records:
            summary["average_score"] = sum(record.score for record in records) / len(records)
        logger.info(
            "scoring.analyze.complete sent=%s analyzed=%s",
            len(keywords),
            summary.get("analyzed", len(records)),
        )
        return KeywordAnalysisResponse(
            results=records,
            summary=summary,
            product_info=dict(data.get("product_info") or {}),
            errors=[str(error) for error in data.get("errors") or []],
        )

    def analyze_keyword_roots(
        self,
        members: Sequence[Mapping[str, Any]],
        *,
        mode: str = "full",
    ) -> dict[str, Any]:
        payload = {"mode": mode, "keywords": [dict(member) for member in members]}
        data = self._post("/root-analysis", payload, operation="Root analysis")
        if not isinstance(data, dict):
            raise ScoringError("Root analysis response must be a JSON object")
        return data

    def get_negative_phrases(self, asin: str, *, country: str = "US") -> List[str]:
        data = self._post(
            "/negative-phrase",
            {"asin": asin, "country": country or "US"},
            operation="Negative phrase generation",
        )
        if not isinstance(data, list):
            raise ScoringError("Negative phrase response must be a list")
        return [str(item) for item in data]

    def _post(self, path: str, payload: Mapping[str, Any], *, operation: str) -> Any:
        url = f"{self._base_url}{path}"
        try:
            response = self._client.post(url, json=payload, timeout=self._timeout)
        except httpx.HTTPError as exc:
            raise ScoringError(f"{operation} request failed: {exc}") from exc
        if response.status_code >= 400:
            raise ScoringError(_error_message(response, operation))
        try:
            return response.json()
        except ValueError as exc:
            raise ScoringError(f"{operation} returned invalid JSON") from exc


__all__ = [
    "KeywordAnalysisResponse",
    "KeywordScoringClient",
    "ProductInput",
    "ScoringError",
    "clamp_score",
    "convert_to_records",
    "generate_fallback_records",
    "summarize_records",
]
