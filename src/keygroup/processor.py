"""Run enrichment and grouping off the event loop with progress and cancellation.

The caller and the worker thread share no mutable state. The worker receives
an immutable :class:`ProcessRequest` plus a private inbox for cancel
messages, and posts :data:`ProcessorResponse` messages back onto the event
loop. Every request ends with exactly one terminal message
(:class:`CompleteMessage`, :class:`ErrorMessage` or :class:`CancelledMessage`)
and no progress follows it.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import queue
import time
from concurrent.futures import Executor
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, ClassVar, Iterable, List, Mapping, Tuple, Union

from .config import Settings
from .enrichment import enrich_records
from .grouping import GroupingCancelled, group_keywords
from .lexicon import Lexicon
from .models import (
    GroupedKeywordResult,
    KeywordMeta,
    KeywordRecord,
    metadata_map_from_payload,
)
from .normalizer import PhraseNormalizer
from .observability import MetricsRecorder
from .variations import Normalize

logger = logging.getLogger(__name__)

_CANCEL = "cancel"


class ProcessorState(str, Enum):
    IDLE = "idle"
    PROCESSING = "processing"
    COMPLETE = "complete"
    CANCELLED = "cancelled"
    ERROR = "error"


class ProcessorBusyError(RuntimeError):
    """Raised when a request is started while another one is in flight."""


@dataclass(frozen=True, slots=True)
class ProcessRequest:
    keywords: Tuple[KeywordRecord, ...]
    keyword_meta: Mapping[str, KeywordMeta] | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "ProcessRequest":
        raw_keywords = payload.get("keywords")
        if not isinstance(raw_keywords, list):
            raise ValueError("'keywords' must be a list of keyword records")
        keywords = tuple(
            KeywordRecord.from_payload(item) if isinstance(item, Mapping) else KeywordRecord(keyword=str(item))
            for item in raw_keywords
        )
        raw_meta = payload.get("keywordMeta")
        if raw_meta is not None and not isinstance(raw_meta, Mapping):
            raise ValueError("'keywordMeta' must be an object keyed by keyword")
        meta = metadata_map_from_payload(raw_meta)
        return cls(keywords=keywords, keyword_meta=meta or None)


@dataclass(frozen=True, slots=True)
class ProgressMessage:
    progress: int
    message: str
    state: ClassVar[ProcessorState] = ProcessorState.PROCESSING

    def to_payload(self) -> dict[str, Any]:
        return {"type": "PROGRESS", "data": {"progress": self.progress, "message": self.message}}


@dataclass(frozen=True, slots=True)
class CompleteMessage:
    results: List[KeywordRecord]
    groups: List[GroupedKeywordResult]
    progress: int = 100
    message: str = "Processing complete"
    state: ClassVar[ProcessorState] = ProcessorState.COMPLETE

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": "COMPLETE",
            "data": {
                "results": [record.to_payload() for record in self.results],
                "groups": [group.to_payload() for group in self.groups],
                "progress": self.progress,
                "message": self.message,
            },
        }


@dataclass(frozen=True, slots=True)
class ErrorMessage:
    error: str
    state: ClassVar[ProcessorState] = ProcessorState.ERROR

    def to_payload(self) -> dict[str, Any]:
        return {"type": "ERROR", "data": {"error": self.error}}


@dataclass(frozen=True, slots=True)
class CancelledMessage:
    message: str = "Processing cancelled"
    state: ClassVar[ProcessorState] = ProcessorState.CANCELLED

    def to_payload(self) -> dict[str, Any]:
        return {"type": "CANCELLED", "data": {"message": self.message}}


TerminalMessage = Union[CompleteMessage, ErrorMessage, CancelledMessage]
ProcessorResponse = Union[ProgressMessage, TerminalMessage]
ProgressCallback = Callable[[ProgressMessage], None]
NormalizerFactory = Callable[[Lexicon], Normalize]


def resolve_outcome(
    request: ProcessRequest,
    response: TerminalMessage,
) -> tuple[List[KeywordRecord], List[GroupedKeywordResult]]:
    """Return ``(results, groups)`` to display for a terminal response.

    A failed run falls back to the unprocessed input with no groups; a
    cancelled run yields nothing.
    """

    if isinstance(response, CompleteMessage):
        return list(response.results), list(response.groups)
    if isinstance(response, ErrorMessage):
        return list(request.keywords), []
    return [], []


class _ProgressReporter:
    """Throttle progress messages and keep percentages non-decreasing."""

    def __init__(
        self,
        post: Callable[[ProcessorResponse], None],
        *,
        interval: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._post = post
        self._interval = interval
        self._clock = clock
        self._last_sent: float | None = None
        self._last_progress = 0

    def report(self, progress: int, message: str, *, force: bool = False) -> None:
        now = self._clock()
        if not force and self._last_sent is not None and now - self._last_sent < self._interval:
            return
        progress = min(100, max(progress, self._last_progress))
        self._last_progress = progress
        self._last_sent = now
        self._post(ProgressMessage(progress=progress, message=message))


def _run_request(
    request: ProcessRequest,
    inbox: "queue.Queue[str]",
    post: Callable[[ProcessorResponse], None],
    *,
    lexicon: Lexicon,
    normalizer_factory: NormalizerFactory,
    progress_interval: float,
    cancel_check_interval: int,
) -> None:
    reporter = _ProgressReporter(post, interval=progress_interval)

    def check_cancelled() -> None:
        try:
            inbox.get_nowait()
        except queue.Empty:
            return
        raise GroupingCancelled()

    def on_record(processed: int, total: int) -> None:
        if processed % cancel_check_interval == 0:
            check_cancelled()
        reporter.report(processed * 100 // total, f"Grouping keywords... ({processed}/{total})")

    try:
        reporter.report(0, "Starting keyword processing...", force=True)
        check_cancelled()
        results = enrich_records(request.keywords, request.keyword_meta)
        check_cancelled()
        groups = group_keywords(
            results,
            normalizer=normalizer_factory(lexicon),
            on_record=on_record,
        )
        check_cancelled()
        reporter.report(100, "Processing complete", force=True)
        post(CompleteMessage(results=results, groups=groups))
    except GroupingCancelled:
        post(CancelledMessage())
    except Exception as exc:
        logger.exception("grouping.worker.failed records=%s", len(request.keywords))
        post(ErrorMessage(error=str(exc) or exc.__class__.__name__))


class KeywordProcessor:
    """Execute one enrichment + grouping request at a time on a worker thread."""

    def __init__(
        self,
        *,
        lexicon: Lexicon | None = None,
        progress_interval: float = 0.1,
        cancel_check_interval: int = 64,
        metrics: MetricsRecorder | None = None,
        executor: Executor | None = None,
        normalizer_factory: NormalizerFactory = PhraseNormalizer,
    ) -> None:
        self._lexicon = lexicon or Lexicon.default()
        self._progress_interval = max(0.0, progress_interval)
        self._cancel_check_interval = max(1, cancel_check_interval)
        self._metrics = metrics
        self._executor = executor
        self._normalizer_factory = normalizer_factory
        self._state = ProcessorState.IDLE
        self._inbox: "queue.Queue[str] | None" = None
        self._last_state: ProcessorState | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        metrics: MetricsRecorder | None = None,
        lexicon: Lexicon | None = None,
    ) -> "KeywordProcessor":
        return cls(
            lexicon=lexicon or settings.load_lexicon(),
            progress_interval=settings.progress_interval_seconds,
            cancel_check_interval=settings.cancel_check_interval,
            metrics=metrics,
        )

    @property
    def state(self) -> ProcessorState:
        return self._state

    @property
    def last_state(self) -> ProcessorState | None:
        """Terminal state of the most recent request, if any."""

        return self._last_state

    @property
    def is_processing(self) -> bool:
        return self._state is ProcessorState.PROCESSING

    async def process(
        self,
        keywords: Iterable[KeywordRecord],
        keyword_meta: Mapping[str, KeywordMeta] | None = None,
        *,
        on_progress: ProgressCallback | None = None,
    ) -> TerminalMessage:
        request = ProcessRequest(
            keywords=tuple(keywords),
            keyword_meta=dict(keyword_meta) if keyword_meta else None,
        )
        return await self.submit(request, on_progress=on_progress)

    async def submit(
        self,
        request: ProcessRequest,
        *,
        on_progress: ProgressCallback | None = None,
    ) -> TerminalMessage:
        """Run ``request`` and return its terminal message."""

        if self._state is ProcessorState.PROCESSING:
            raise ProcessorBusyError("A keyword processing request is already in flight")

        loop = asyncio.get_running_loop()
        outbox: asyncio.Queue[ProcessorResponse] = asyncio.Queue()
        inbox: "queue.Queue[str]" = queue.Queue()
        self._inbox = inbox
        self._state = ProcessorState.PROCESSING

        def post(message: ProcessorResponse) -> None:
            # The caller may have gone away with its loop during shutdown.
            if loop.is_closed():
                return
            loop.call_soon_threadsafe(outbox.put_nowait, message)

        logger.info(
            "grouping.run.start records=%s meta_entries=%s",
            len(request.keywords),
            len(request.keyword_meta or {}),
        )
        started = time.perf_counter()
        worker = loop.run_in_executor(
            self._executor,
            functools.partial(
                _run_request,
                request,
                inbox,
                post,
                lexicon=self._lexicon,
                normalizer_factory=self._normalizer_factory,
                progress_interval=self._progress_interval,
                cancel_check_interval=self._cancel_check_interval,
            ),
        )
        try:
            while True:
                message = await outbox.get()
                if isinstance(message, ProgressMessage):
                    if on_progress is not None:
                        on_progress(message)
                    continue
                terminal = message
                break
            await worker
        except BaseException:
            inbox.put_nowait(_CANCEL)
            # Stay PROCESSING until the worker thread has stopped.
            await asyncio.wait({worker})
            raise
        finally:
            self._inbox = None
            self._state = ProcessorState.IDLE

        self._last_state = terminal.state
        self._record_outcome(request, terminal, time.perf_counter() - started)
        return terminal

    def cancel(self) -> bool:
        """Ask the in-flight request to stop; returns ``False`` when idle."""

        inbox = self._inbox
        if inbox is None or self._state is not ProcessorState.PROCESSING:
            return False
        inbox.put_nowait(_CANCEL)
        logger.info("grouping.run.cancel_requested")
        return True

    def _record_outcome(self, request: ProcessRequest, terminal: TerminalMessage, elapsed: float) -> None:
        outcome = terminal.state.value
        if isinstance(terminal, CompleteMessage):
            logger.info(
                "grouping.run.complete records=%s groups=%s duration=%.3fs",
                len(terminal.results),
                len(terminal.groups),
                elapsed,
            )
        elif isinstance(terminal, ErrorMessage):
            logger.warning("grouping.run.error records=%s error=%s", len(request.keywords), terminal.error)
        else:
            logger.info("grouping.run.cancelled records=%s duration=%.3fs", len(request.keywords), elapsed)

        if self._metrics is None:
            return
        self._metrics.increment(f"grouping.run.{outcome}")
        self._metrics.record_timing("grouping.run.duration", elapsed, outcome=outcome)
        if isinstance(terminal, CompleteMessage):
            self._metrics.set_gauge("grouping.groups", float(len(terminal.groups)))


__all__ = [
    "CancelledMessage",
    "CompleteMessage",
    "ErrorMessage",
    "KeywordProcessor",
    "ProcessRequest",
    "ProcessorBusyError",
    "ProcessorResponse",
    "ProcessorState",
    "ProgressMessage",
    "TerminalMessage",
    "resolve_outcome",
]
