"""FastAPI application setup for the keyword grouping service."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, Response

from .config import Settings
from .jobs import GroupingJobQueue
from .models import metadata_map_from_payload
from .observability import MetricsRecorder
from .processor import KeywordProcessor, ProcessRequest
from .scoring import (
    KeywordScoringClient,
    ProductInput,
    ScoringError,
    generate_fallback_records,
    summarize_records,
)

logger = logging.getLogger(__name__)

_SERVICE_NAME = "keygroup"

_LOGGING_CONFIGURED = False


def _ensure_logging() -> None:
    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return

    keygroup_logger = logging.getLogger("keygroup")
    uvicorn_logger = logging.getLogger("uvicorn.error")

    handlers = list(uvicorn_logger.handlers)
    if handlers:
        keygroup_logger.handlers = []
        for handler in handlers:
            keygroup_logger.addHandler(handler)
    else:
        handler = logging.StreamHandler()
        handler.setLevel(logging.INFO)
        handler.setFormatter(logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s"))
        keygroup_logger.addHandler(handler)

    if keygroup_logger.level == logging.NOTSET or keygroup_logger.level > logging.INFO:
        keygroup_logger.setLevel(logging.INFO)
    keygroup_logger.propagate = False
    _LOGGING_CONFIGURED = True


class ApplicationState:
    """Container for runtime dependencies used by the FastAPI app."""

    def __init__(
        self,
        *,
        settings: Settings,
        scoring_client: KeywordScoringClient,
        job_queue: GroupingJobQueue,
        metrics: MetricsRecorder | None,
    ) -> None:
        self.settings = settings
        self.scoring_client = scoring_client
        self.job_queue = job_queue
        self.metrics = metrics


def _parse_keyword_list(value: Any) -> list[str]:
    if isinstance(value, str):
        candidates = value.splitlines()
    elif isinstance(value, list):
        candidates = value
    else:
        return []
    keywords: list[str] = []
    seen: set[str] = set()
    for candidate in candidates:
        cleaned = str(candidate).strip()
        if cleaned and cleaned.lower() not in seen:
            seen.add(cleaned.lower())
            keywords.append(cleaned)
    return keywords


async def _read_json_object(request: Request) -> dict[str, Any]:
    try:
        payload = await request.json()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Request body must be valid JSON") from exc
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Request body must be a JSON object")
    return payload


def create_app(
    *,
    settings: Settings | None = None,
    scoring_client: KeywordScoringClient | None = None,
    job_queue: GroupingJobQueue | None = None,
    processor: KeywordProcessor | None = None,
    metrics: MetricsRecorder | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    _ensure_logging()

    settings = settings or Settings.from_env()
    metrics = metrics or settings.build_metrics_recorder()
    scoring_client = scoring_client or KeywordScoringClient.from_settings(settings)
    if job_queue is None:
        processor = processor or KeywordProcessor.from_settings(settings, metrics=metrics)
        job_queue = GroupingJobQueue(
            processor,
            max_queue=settings.grouping_job_max_queue,
            retention=settings.grouping_job_retention,
            metrics=metrics,
        )
    logger.info(
        "app.start environment=%s scoring_api=%s lexicon=%s",
        settings.environment,
        scoring_client.base_url,
        settings.lexicon_path or "default",
    )

    app = FastAPI()
    app.state.services = ApplicationState(
        settings=settings,
        scoring_client=scoring_client,
        job_queue=job_queue,
        metrics=metrics,
    )

    @app.on_event("startup")
    async def _start_job_queue() -> None:
        job_queue.start()

    @app.on_event("shutdown")
    async def _shutdown_job_queue() -> None:
        await job_queue.shutdown()

    def get_state(request: Request) -> ApplicationState:
        return request.app.state.services

    def get_settings_dependency(request: Request) -> Settings:
        return get_state(request).settings

    def get_scoring_client(request: Request) -> KeywordScoringClient:
        return get_state(request).scoring_client

    def get_job_queue(request: Request) -> GroupingJobQueue:
        return get_state(request).job_queue

    def get_metrics(request: Request) -> MetricsRecorder | None:
        return get_state(request).metrics

    async def _enqueue(queue: GroupingJobQueue, grouping_request: ProcessRequest):
        try:
            return await queue.enqueue(grouping_request)
        except RuntimeError as exc:
            raise HTTPException(status_code=429, detail=str(exc)) from exc

    @app.get("/health", response_class=JSONResponse)
    async def health(settings_inst: Settings = Depends(get_settings_dependency)) -> JSONResponse:
        return JSONResponse(
            {
                "status": "ok",
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "service": _SERVICE_NAME,
                "environment": settings_inst.environment,
            }
        )

    @app.post("/keywords/groups", response_class=JSONResponse)
    async def create_grouping_job(
        request: Request,
        queue: GroupingJobQueue = Depends(get_job_queue),
    ) -> JSONResponse:
        payload = await _read_json_object(request)
        try:
            grouping_request = ProcessRequest.from_payload(payload)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        if not grouping_request.keywords:
            raise HTTPException(status_code=400, detail="At least one keyword is required")

        job = await _enqueue(queue, grouping_request)
        logger.info("keywords.groups.endpoint job_id=%s records=%s", job.id, len(grouping_request.keywords))
        return JSONResponse({"jobId": job.id, "status": job.status}, status_code=202)

    @app.post("/keywords/analyze", response_class=JSONResponse)
    async def analyze_keywords(
        request: Request,
        client: KeywordScoringClient = Depends(get_scoring_client),
        queue: GroupingJobQueue = Depends(get_job_queue),
        settings_inst: Settings = Depends(get_settings_dependency),
        metrics_inst: MetricsRecorder | None = Depends(get_metrics),
    ) -> JSONResponse:
        payload = await _read_json_object(request)
        keywords = _parse_keyword_list(payload.get("keywords"))
        if not keywords:
            raise HTTPException(status_code=400, detail="At least one keyword is required")
        try:
            product = ProductInput.from_payload(payload)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        raw_meta = payload.get("keywordMeta")
        if raw_meta is not None and not isinstance(raw_meta, dict):
            raise HTTPException(status_code=400, detail="'keywordMeta' must be an object keyed by keyword")

        source = "backend"
        errors: list[str] = []
        try:
            analysis = await asyncio.to_thread(client.analyze_keywords, product, keywords)
            records = analysis.results
            summary = analysis.summary or summarize_records(records, total_keywords=len(keywords))
            errors = analysis.errors
        except ScoringError as exc:
            if not settings_inst.scoring_fallback_enabled:
                raise HTTPException(status_code=502, detail=str(exc)) from exc
            logger.warning("keywords.analyze.fallback keywords=%s error=%s", len(keywords), exc)
            source = "fallback"
            records = generate_fallback_records(keywords)
            summary = summarize_records(records, total_keywords=len(keywords))
        if metrics_inst:
            metrics_inst.increment("keywords.analyze", source=source)

        meta = metadata_map_from_payload(raw_meta)
        job = await _enqueue(queue, ProcessRequest(keywords=tuple(records), keyword_meta=meta or None))
        return JSONResponse(
            {
                "jobId": job.id,
                "status": job.status,
                "source": source,
                "summary": summary,
                "errors": errors,
            },
            status_code=202,
        )

    @app.get("/keywords/groups/{job_id}", response_class=JSONResponse)
    async def get_grouping_job(
        job_id: str,
        queue: GroupingJobQueue = Depends(get_job_queue),
    ) -> JSONResponse:
        job = await queue.get(job_id)
        if job is None:
            raise HTTPException(status_code=404, detail="Grouping job not found")
        return JSONResponse(job.to_payload())

    @app.post("/keywords/groups/{job_id}/cancel", response_class=JSONResponse)
    async def cancel_grouping_job(
        job_id: str,
        queue: GroupingJobQueue = Depends(get_job_queue),
    ) -> JSONResponse:
        job = await queue.cancel(job_id)
        if job is None:
            raise HTTPException(status_code=404, detail="Grouping job not found")
        return JSONResponse(job.to_payload(include_result=False))

    @app.post("/keywords/roots", response_class=JSONResponse)
    async def analyze_roots(
        request: Request,
        client: KeywordScoringClient = Depends(get_scoring_client),
    ) -> JSONResponse:
        payload = await _read_json_object(request)
        members = payload.get("keywords")
        if not isinstance(members, list) or not members:
            raise HTTPException(status_code=400, detail="At least one keyword is required")
        rows = [member if isinstance(member, dict) else {"keyword": str(member)} for member in members]
        mode = str(payload.get("mode") or "full")
        try:
            result = await asyncio.to_thread(client.analyze_keyword_roots, rows, mode=mode)
        except ScoringError as exc:
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        return JSONResponse(result)

    @app.post("/keywords/negative-phrases", response_class=JSONResponse)
    async def negative_phrases(
        request: Request,
        client: KeywordScoringClient = Depends(get_scoring_client),
    ) -> JSONResponse:
        payload = await _read_json_object(request)
        asin = str(payload.get("asin") or "").strip()
        if not asin:
            raise HTTPException(status_code=400, detail="ASIN is required")
        country = str(payload.get("country") or "US")
        try:
            phrases = await asyncio.to_thread(client.get_negative_phrases, asin, country=country)
        except ScoringError as exc:
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        return JSONResponse({"asin": asin, "country": country, "phrases": phrases})

    @app.get("/metrics")
    async def metrics_endpoint(metrics_inst: MetricsRecorder | None = Depends(get_metrics)) -> Response:
        if metrics_inst is None or not metrics_inst.prometheus_enabled:
            raise HTTPException(status_code=404, detail="Metrics export disabled")
        try:
            payload = metrics_inst.render_prometheus()
        except RuntimeError as exc:  # pragma: no cover
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        return Response(content=payload, media_type=metrics_inst.prometheus_content_type)

    return app


__all__ = ["ApplicationState", "create_app"]
