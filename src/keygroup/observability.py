"""Grouping metrics: one log line per observation, optionally mirrored to Prometheus."""

from __future__ import annotations

import logging
import re
import time
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Mapping, Tuple, Union

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

_INVALID_NAME_CHARS = re.compile(r"[^a-zA-Z0-9_]")

_Collector = Union[Counter, Gauge, Histogram]
_COLLECTOR_TYPES: Dict[str, type] = {"counter": Counter, "gauge": Gauge, "timing": Histogram}


class MetricsRecorder:
    """Record counters, gauges and timings for grouping runs and jobs.

    Every observation is logged as ``<namespace>.<metric> key=value ...`` on
    the ``keygroup.metrics`` logger. With ``prometheus_enabled`` the same
    observation also updates a collector in a private registry, labelled by
    the tag names; timings are exported as histograms in seconds.
    """

    def __init__(
        self,
        *,
        enabled: bool = True,
        namespace: str = "keygroup",
        logger: logging.Logger | None = None,
        prometheus_enabled: bool = False,
        registry: CollectorRegistry | None = None,
    ) -> None:
        self._enabled = enabled
        self._namespace = namespace.strip() or "keygroup"
        self._logger = logger or logging.getLogger("keygroup.metrics")
        if prometheus_enabled and registry is None:
            registry = CollectorRegistry()
        self._registry = registry if prometheus_enabled else None
        self._collectors: Dict[Tuple[str, str, Tuple[str, ...]], _Collector] = {}

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def prometheus_enabled(self) -> bool:
        return self._registry is not None

    @property
    def prometheus_content_type(self) -> str:
        return CONTENT_TYPE_LATEST

    def render_prometheus(self) -> bytes:
        if self._registry is None:
            raise RuntimeError("Prometheus export is disabled")
        return generate_latest(self._registry)

    def increment(self, metric: str, *, value: int = 1, **tags: Any) -> None:
        count = int(value)
        self._observe("counter", metric, {"value": count}, tags, lambda child: child.inc(max(count, 0)))

    def set_gauge(self, metric: str, value: float, **tags: Any) -> None:
        self._observe("gauge", metric, {"value": value}, tags, lambda child: child.set(float(value)))

    def record_timing(self, metric: str, duration_seconds: float, **tags: Any) -> None:
        """Log the duration in milliseconds; Prometheus observes seconds."""

        seconds = max(duration_seconds, 0.0)
        self._observe(
            "timing",
            metric,
            {"duration_ms": round(seconds * 1000.0, 4)},
            tags,
            lambda child: child.observe(seconds),
        )

    @contextmanager
    def track_timing(self, metric: str, **tags: Any) -> Iterator[None]:
        started = time.perf_counter()
        try:
            yield
        finally:
            self.record_timing(metric, time.perf_counter() - started, **tags)

    def _observe(self, kind: str, metric: str, fields: Mapping[str, Any], tags: Mapping[str, Any], update) -> None:
        if not self._enabled:
            return
        labels = {_metric_name(name): _format_value(value) for name, value in sorted(tags.items()) if value is not None}
        self._logger.info(_format_line(f"{self._namespace}.{metric}", fields, labels))
        if self._registry is None:
            return
        collector = self._collector(kind, metric, tuple(labels))
        update(collector.labels(**labels) if labels else collector)

    def _collector(self, kind: str, metric: str, label_names: Tuple[str, ...]) -> _Collector:
        key = (kind, metric, label_names)
        collector = self._collectors.get(key)
        if collector is None:
            name = _metric_name(f"{self._namespace}_{metric}").strip("_")
            collector = _COLLECTOR_TYPES[kind](
                name,
                f"{metric} ({kind})",
                labelnames=label_names,
                registry=self._registry,
            )
            self._collectors[key] = collector
        return collector


def _metric_name(raw: str) -> str:
    return _INVALID_NAME_CHARS.sub("_", raw) or "label"


def _format_value(value: Any) -> str:
    if isinstance(value, float) and not value.is_integer():
        return f"{value:.4f}"
    if isinstance(value, float):
        return str(int(value))
    return str(value)


def _format_line(event: str, fields: Mapping[str, Any], labels: Mapping[str, str]) -> str:
    parts = [event]
    parts.extend(f"{key}={_format_value(value)}" for key, value in sorted(fields.items()))
    parts.extend(f"{key}={value}" for key, value in labels.items())
    return " ".join(parts)


__all__ = ["MetricsRecorder"]
