"""Asynchronous queue for running grouping requests in the background."""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, List, Optional

from .grouping import grouping_stats
from .models import GroupedKeywordResult, KeywordRecord
from .observability import MetricsRecorder
from .processor import (
    CancelledMessage,
    CompleteMessage,
    ErrorMessage,
    KeywordProcessor,
    ProcessRequest,
    ProgressMessage,
    TerminalMessage,
    resolve_outcome,
)

logger = logging.getLogger(__name__)

_FINISHED = frozenset({"success", "error", "cancelled"})


def _utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


@dataclass(slots=True)
class GroupingJob:
    """In-memory state of one grouping request."""

    id: str
    request: ProcessRequest
    status: str = "pending"
    progress: int = 0
    message: str = "Queued"
    results: List[KeywordRecord] = field(default_factory=list)
    groups: List[GroupedKeywordResult] = field(default_factory=list)
    error: str | None = None
    requested_at: str = field(default_factory=_utcnow_iso)
    started_at: str | None = None
    completed_at: str | None = None
    _event: asyncio.Event = field(default_factory=asyncio.Event, init=False, repr=False)

    @property
    def finished(self) -> bool:
        return self.status in _FINISHED

    async def wait(self, timeout: float | None = None) -> bool:
        if self.finished:
            return True
        if timeout is not None and timeout <= 0:
            return False
        try:
            await asyncio.wait_for(self._event.wait(), timeout)
            return True
        except asyncio.TimeoutError:
            return False

    def apply_progress(self, message: ProgressMessage) -> None:
        self.progress = max(self.progress, message.progress)
        self.message = message.message

    def finish(self, terminal: TerminalMessage) -> None:
        self.results, self.groups = resolve_outcome(self.request, terminal)
        if isinstance(terminal, CompleteMessage):
            self.status = "success"
            self.progress = terminal.progress
            self.message = terminal.message
        elif isinstance(terminal, ErrorMessage):
            self.status = "error"
            self.error = terminal.error
            self.message = "Processing failed"
        else:
            self.status = "cancelled"
            self.message = terminal.message
        self.completed_at = _utcnow_iso()
        self._event.set()

    def mark_error(self, message: str) -> None:
        self.finish(ErrorMessage(error=message))

    def mark_cancelled(self) -> None:
        self.finish(CancelledMessage())

    def to_payload(self, *, include_result: bool = True) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "status": self.status,
            "progress": self.progress,
            "message": self.message,
            "error": self.error,
            "keywordCount": len(self.request.keywords),
            "requestedAt": self.requested_at,
            "startedAt": self.started_at,
            "completedAt": self.completed_at,
        }
        if include_result and self.finished:
            payload["results"] = [record.to_payload() for record in self.results]
            payload["groups"] = [group.to_payload() for group in self.groups]
            payload["stats"] = grouping_stats(self.groups).to_payload()
        return payload


class GroupingJobQueue:
    """Feed queued grouping requests to a single :class:`KeywordProcessor`."""

    def __init__(
        self,
        processor: KeywordProcessor,
        *,
        max_queue: int = 8,
        retention: int = 64,
        metrics: MetricsRecorder | None = None,
    ) -> None:
        self._processor = processor
        self._max_queue = max(1, max_queue)
        self._retention = max(1, retention)
        self._metrics = metrics
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=self._max_queue)
        self._jobs: "OrderedDict[str, GroupingJob]" = OrderedDict()
        self._lock = asyncio.Lock()
        self._worker: asyncio.Task | None = None
        self._current: str | None = None
        self._shutdown = False

    @property
    def processor(self) -> KeywordProcessor:
        return self._processor

    async def enqueue(self, request: ProcessRequest) -> GroupingJob:
        if self._shutdown:
            raise RuntimeError("GroupingJobQueue is shut down")
        if self._queue.full():
            raise RuntimeError("Grouping job queue is full")

        job = GroupingJob(id=uuid.uuid4().hex, request=request)
        async with self._lock:
            self._jobs[job.id] = job
            self._evict_finished()

        if self._metrics:
            self._metrics.increment("grouping.job.enqueued")
        logger.info("grouping.job.enqueued job_id=%s records=%s", job.id, len(request.keywords))

        self._queue.put_nowait(job.id)
        return job

    async def get(self, job_id: str) -> GroupingJob | None:
        async with self._lock:
            return self._jobs.get(job_id)

    async def cancel(self, job_id: str) -> GroupingJob | None:
        """Cancel a queued or running job; finished jobs are left untouched."""

        job = await self.get(job_id)
        if job is None or job.finished:
            return job
        if job.status == "pending":
            job.mark_cancelled()
            logger.info("grouping.job.cancelled job_id=%s state=pending", job_id)
        elif self._current == job_id:
            self._processor.cancel()
        return job

    def start(self) -> None:
        if self._worker is not None:
            return
        self._shutdown = False
        self._worker = asyncio.create_task(self._worker_loop())

    async def shutdown(self) -> None:
        self._shutdown = True
        if self._worker is None:
            return
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None

    async def _worker_loop(self) -> None:
        while not self._shutdown:
            try:
                job_id = await self._queue.get()
            except asyncio.CancelledError:
                break

            job = await self.get(job_id)
            if job is None or job.finished:
                self._queue.task_done()
                continue

            job.status = "running"
            job.started_at = _utcnow_iso()
            job.message = "Starting keyword processing..."
            self._current = job.id
            if self._metrics:
                requested_at = _parse_iso(job.requested_at)
                started_at = _parse_iso(job.started_at)
                if requested_at and started_at:
                    queue_seconds = max((started_at - requested_at).total_seconds(), 0.0)
                    self._metrics.record_timing("grouping.job.queue_time", queue_seconds)
                self._metrics.set_gauge("grouping.job.active", 1.0)
            try:
                terminal = await self._processor.submit(job.request, on_progress=job.apply_progress)
                job.finish(terminal)
            except asyncio.CancelledError:
                job.mark_cancelled()
                raise
            except Exception as exc:  # pragma: no cover
                logger.exception("grouping.job.failed job_id=%s", job.id)
                job.mark_error(str(exc) or exc.__class__.__name__)
            finally:
                self._current = None
                if self._metrics:
                    self._metrics.set_gauge("grouping.job.active", 0.0)
                self._queue.task_done()
            logger.info("grouping.job.finished job_id=%s status=%s", job.id, job.status)

    def _evict_finished(self) -> None:
        finished = [job_id for job_id, job in self._jobs.items() if job.finished]
        excess = len(self._jobs) - self._retention
        for job_id in finished[: max(excess, 0)]:
            del self._jobs[job_id]


__all__ = ["GroupingJob", "GroupingJobQueue"]
