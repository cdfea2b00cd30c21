"""Configuration helpers for the keyword grouping service."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Final, TypeVar

from dotenv import load_dotenv

if TYPE_CHECKING:
    from .lexicon import Lexicon
    from .observability import MetricsRecorder

load_dotenv()

_DEFAULT_SCORING_API_URL: Final[str] = "http://localhost:8001"
_DEFAULT_SCORING_TIMEOUT: Final[float] = 120.0
_DEFAULT_SCORING_FALLBACK: Final[bool] = True
_DEFAULT_PROGRESS_INTERVAL: Final[float] = 0.1
_DEFAULT_CANCEL_CHECK_INTERVAL: Final[int] = 64
_DEFAULT_GROUPING_JOB_MAX_QUEUE: Final[int] = 8
_DEFAULT_GROUPING_JOB_RETENTION: Final[int] = 64
_DEFAULT_NAMESPACE: Final[str] = "keygroup"
_DEFAULT_ENVIRONMENT: Final[str] = "development"


_TRUE_VALUES: Final[frozenset[str]] = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES: Final[frozenset[str]] = frozenset({"0", "false", "no", "off"})

_Number = TypeVar("_Number", int, float)


def _env_text(name: str) -> str | None:
    """Return the stripped value of ``name``; blank counts as unset."""

    value = (os.getenv(name) or "").strip()
    return value or None


def _env_bool(name: str, default: bool) -> bool:
    value = _env_text(name)
    if value is None:
        return default
    if value.lower() in _TRUE_VALUES:
        return True
    if value.lower() in _FALSE_VALUES:
        return False
    raise ValueError(f"Environment variable {name} must be a boolean value (true/false).")


def _env_number(name: str, default: _Number, cast: Callable[[str], _Number]) -> _Number:
    """Parse ``name`` with ``cast``; zero is a valid override."""

    value = _env_text(name)
    if value is None:
        return default
    try:
        return cast(value)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be a valid {cast.__name__}") from exc


@dataclass(slots=True)
class Settings:
    """Runtime settings loaded from environment variables."""

    scoring_api_url: str = _DEFAULT_SCORING_API_URL
    scoring_request_timeout: float = _DEFAULT_SCORING_TIMEOUT
    scoring_fallback_enabled: bool = _DEFAULT_SCORING_FALLBACK
    lexicon_path: str | None = None
    progress_interval_seconds: float = _DEFAULT_PROGRESS_INTERVAL
    cancel_check_interval: int = _DEFAULT_CANCEL_CHECK_INTERVAL
    grouping_job_max_queue: int = _DEFAULT_GROUPING_JOB_MAX_QUEUE
    grouping_job_retention: int = _DEFAULT_GROUPING_JOB_RETENTION
    observability_metrics_enabled: bool = True
    observability_namespace: str = _DEFAULT_NAMESPACE
    observability_prometheus_enabled: bool = False
    environment: str = _DEFAULT_ENVIRONMENT

    @classmethod
    def from_env(cls) -> "Settings":
        """Create settings by reading environment variables."""

        lexicon_path = (os.getenv("KEYWORD_LEXICON_PATH") or "").strip() or None

        return cls(
            scoring_api_url=os.getenv("KEYWORD_API_URL", _DEFAULT_SCORING_API_URL).rstrip("/"),
            scoring_request_timeout=_env_number("KEYWORD_API_TIMEOUT", _DEFAULT_SCORING_TIMEOUT, float),
            scoring_fallback_enabled=_env_bool("KEYWORD_API_FALLBACK", _DEFAULT_SCORING_FALLBACK),
            lexicon_path=lexicon_path,
            progress_interval_seconds=max(
                0.0,
                _env_number("GROUPING_PROGRESS_INTERVAL", _DEFAULT_PROGRESS_INTERVAL, float),
            ),
            cancel_check_interval=max(
                1,
                _env_number("GROUPING_CANCEL_CHECK_INTERVAL", _DEFAULT_CANCEL_CHECK_INTERVAL, int),
            ),
            grouping_job_max_queue=max(
                1,
                _env_number("GROUPING_JOB_MAX_QUEUE", _DEFAULT_GROUPING_JOB_MAX_QUEUE, int),
            ),
            grouping_job_retention=max(
                1,
                _env_number("GROUPING_JOB_RETENTION", _DEFAULT_GROUPING_JOB_RETENTION, int),
            ),
            observability_metrics_enabled=_env_bool("OBSERVABILITY_METRICS_ENABLED", True),
            observability_namespace=os.getenv("OBSERVABILITY_NAMESPACE", _DEFAULT_NAMESPACE),
            observability_prometheus_enabled=_env_bool("OBSERVABILITY_PROMETHEUS_ENABLED", False),
            environment=os.getenv("APP_ENV", _DEFAULT_ENVIRONMENT),
        )

    def build_metrics_recorder(self) -> "MetricsRecorder":
        """Instantiate the configured metrics recorder."""

        from .observability import MetricsRecorder

        return MetricsRecorder(
            enabled=self.observability_metrics_enabled,
            namespace=self.observability_namespace,
            prometheus_enabled=self.observability_prometheus_enabled,
        )

    def load_lexicon(self) -> "Lexicon":
        """Return the default lexicon extended by ``lexicon_path`` when set."""

        from .lexicon import load_lexicon

        return load_lexicon(self.lexicon_path)


__all__ = ["Settings"]
