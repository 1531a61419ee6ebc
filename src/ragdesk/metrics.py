"""
Request metrics for the RagDesk API service.

Keeps running totals per route plus a bounded window of recent latencies
for percentiles, and appends one JSON line per request to
<log_dir>/metrics.jsonl.
"""
from __future__ import annotations

import json
import os
import threading
import time
from collections import deque
from pathlib import Path

import numpy as np
import psutil

from . import config
from .observability import get_logger

logger = get_logger(__name__)

ROUTES = ("greeting", "system_meta", "content")
LATENCY_WINDOW = 1000


class MetricsCollector:
    """Thread-safe request metrics tracker with JSONL file logging."""

    def __init__(self, log_dir: str | Path = config.LOG_PATH.parent, window: int = LATENCY_WINDOW):
        self._lock = threading.Lock()
        self._started = time.time()
        self._requests = 0
        self._errors = 0
        self._citations = 0
        self._latency_total_ms = 0.0
        self._recent_latencies: deque[float] = deque(maxlen=max(1, int(window)))
        self._routes: dict[str, int] = dict.fromkeys(ROUTES, 0)

        self._log_path = Path(log_dir) / "metrics.jsonl"
        self._log_path.parent.mkdir(parents=True, exist_ok=True)
        self._process = psutil.Process(os.getpid())

    @property
    def log_path(self) -> Path:
        return self._log_path

    def record_request(self, latency_ms: float, success: bool, route: str = "content", citations: int = 0) -> None:
        with self._lock:
            self._requests += 1
            self._latency_total_ms += latency_ms
            self._recent_latencies.append(float(latency_ms))
            self._errors += 0 if success else 1
            self._routes[route] = self._routes.get(route, 0) + 1
            self._citations += int(citations)

        entry = {
            "timestamp": time.strftime("%Y-%m-%dT%H:%M:%S%z"),
            "route": route,
            "latency_ms": round(latency_ms, 2),
            "success": success,
            "citations": int(citations),
        }
        try:
            with open(self._log_path, "a", encoding="utf-8") as fh:
                fh.write(json.dumps(entry) + "\n")
        except OSError as exc:
            logger.warning("metrics_log_write_failed", path=str(self._log_path), error=str(exc))

    def _latency_summary(self, total: int, recent: list[float]) -> dict:
        if not recent:
            return {"avg_ms": 0.0, "min_ms": 0.0, "max_ms": 0.0, "p50_ms": 0.0, "p95_ms": 0.0}
        window = np.asarray(recent, dtype=np.float64)
        return {
            "avg_ms": round(self._latency_total_ms / total, 2),
            "min_ms": round(float(window.min()), 2),
            "max_ms": round(float(window.max()), 2),
            "p50_ms": round(float(np.percentile(window, 50)), 2),
            "p95_ms": round(float(np.percentile(window, 95)), 2),
        }

    def get_summary(self) -> dict:
        """Snapshot of the counters; min/max/percentiles cover the recent window."""
        with self._lock:
            total = self._requests
            errors = self._errors
            citations = self._citations
            routes = dict(self._routes)
            latency = self._latency_summary(total, list(self._recent_latencies))

        uptime_s = time.time() - self._started
        memory = self._process.memory_info()
        return {
            "latency": latency,
            "throughput": {
                "total_requests": total,
                "requests_per_second": round(total / uptime_s, 4) if uptime_s > 0 else 0.0,
                "uptime_seconds": round(uptime_s, 1),
            },
            "routes": routes,
            "citations": {
                "total": citations,
                "avg_per_request": round(citations / total, 3) if total else 0.0,
            },
            "memory": {
                "rss_mb": round(memory.rss / (1024 * 1024), 1),
                "vms_mb": round(memory.vms / (1024 * 1024), 1),
            },
            "errors": {
                "count": errors,
                "rate_percent": round(errors / total * 100, 2) if total else 0.0,
            },
        }


metrics_collector = MetricsCollector()
