from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from importlib import import_module
from typing import Any, List, Optional

from bundleuri.core.runtime.settings import Settings

log = logging.getLogger("bundleuri.core.observability")


class MetricsSink:
    """Optional metrics sink.

    Users can provide a module via BUNDLEURI_METRICS_MODULE exposing METRICS: MetricsSink.
    """

    def on_fetch_start(self, *, uri: str) -> None:  # pragma: no cover
        return None

    def on_fetch_end(self, *, uri: str, status: str, duration_ms: int, refs_updated: int) -> None:  # pragma: no cover
        return None


def load_metrics_sink(settings: Settings) -> MetricsSink:
    mod = settings.metrics_module
    if not mod:
        return MetricsSink()
    m = import_module(mod)
    sink = getattr(m, "METRICS", None)
    if sink is None:
        raise AttributeError(f"{mod} must expose METRICS")
    return sink


def _now_ms() -> int:
    return int(time.time() * 1000)


def _dur_ms(t0: float, t1: float) -> int:
    return int((t1 - t0) * 1000)


def log_event(logger: logging.Logger, *, settings: Settings, level: int, event: str, **fields: Any) -> None:
    """Emit an event log.

    - text format: one-liner `event key=value ...`
    - json format: one JSON object per line
    """
    if settings.log_format.lower() == "json":
        payload = {"ts_ms": _now_ms(), "event": event, **fields}
        logger.log(level, json.dumps(payload, ensure_ascii=False, default=str))
        return

    parts = [event]
    for k, v in fields.items():
        parts.append(f"{k}={v}")
    logger.log(level, " ".join(parts))


@dataclass
class FetchSummary:
    uri: str
    status: str
    duration_ms: int
    refs: List[str] = field(default_factory=list)
    error: Optional[str] = None

    def as_dict(self) -> dict:
        return {
            "uri": self.uri,
            "status": self.status,
            "duration_ms": self.duration_ms,
            "refs": list(self.refs),
            "error": self.error,
        }


class FetchObserver:
    """Times one bundle fetch and emits start/end events."""

    def __init__(self, *, settings: Settings, logger: logging.Logger, uri: str):
        self.settings = settings
        self.logger = logger
        self.uri = uri
        self._t0: float | None = None
        self.metrics = load_metrics_sink(settings)

    def fetch_start(self, *, temp_file: str) -> None:
        self._t0 = time.perf_counter()
        log_event(self.logger, settings=self.settings, level=logging.INFO, event="bundle_fetch_start", uri=self.uri, temp_file=temp_file)
        try:
            self.metrics.on_fetch_start(uri=self.uri)
        except Exception:
            # Metrics must never break the fetch.
            log.warning("FetchObserver.fetch_start metrics hook failed", exc_info=True)

    def fetch_end(self, *, status: str, refs: List[str] | None = None, error: str | None = None) -> FetchSummary:
        t0 = self._t0
        dur = _dur_ms(t0, time.perf_counter()) if t0 is not None else 0
        summary = FetchSummary(uri=self.uri, status=status, duration_ms=dur, refs=list(refs or []), error=error)
        level = logging.INFO if status == "SUCCESS" else logging.WARNING
        log_event(self.logger, settings=self.settings, level=level, event="bundle_fetch_end", **summary.as_dict())
        try:
            self.metrics.on_fetch_end(uri=self.uri, status=status, duration_ms=dur, refs_updated=len(summary.refs))
        except Exception:
            log.warning("FetchObserver.fetch_end metrics hook failed", exc_info=True)
        return summary
