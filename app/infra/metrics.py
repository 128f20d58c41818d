# app/infra/metrics.py
"""
In-process metrics for the image proxy.

Counters and bounded latency windows, exposed as JSON on ``/metrics``.
Values live in process memory and reset on restart. Series are keyed by
metric name plus sorted labels and rendered Prometheus-style as
``name{label=value,...}``.
"""
from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass, field
from threading import Lock

from app.infra.logging_config import get_logger

logger = get_logger(__name__)

# Latency samples kept per histogram; older samples are dropped
HISTOGRAM_WINDOW = 1024

SeriesKey = tuple[str, tuple[tuple[str, str], ...]]


def series_key(name: str, labels: dict) -> SeriesKey:
    return name, tuple(sorted((k, str(v)) for k, v in labels.items()))


def render_key(key: SeriesKey) -> str:
    name, labels = key
    if not labels:
        return name
    return name + "{" + ",".join(f"{k}={v}" for k, v in labels) + "}"


@dataclass
class Counter:
    """Monotonic counter"""
    value: int = 0

    def inc(self, amount: int = 1) -> None:
        self.value += amount


@dataclass
class Histogram:
    """Sliding window of the most recent observations (e.g. transform time)"""
    values: deque = field(default_factory=lambda: deque(maxlen=HISTOGRAM_WINDOW))
    total_count: int = 0

    def observe(self, value: float) -> None:
        self.values.append(value)
        self.total_count += 1

    def get_stats(self) -> dict:
        window = sorted(self.values)
        size = len(window)
        if not size:
            return {"count": self.total_count, "window": 0, "min": 0, "max": 0,
                    "avg": 0, "p50": 0, "p95": 0, "p99": 0}

        def at(q: float) -> float:
            return window[min(int(size * q), size - 1)]

        return {
            "count": self.total_count,
            "window": size,
            "min": window[0],
            "max": window[-1],
            "avg": sum(window) / size,
            "p50": at(0.50),
            "p95": at(0.95),
            "p99": at(0.99),
        }


class MetricsCollector:
    """Thread-safe registry of labelled counters and histograms."""

    def __init__(self):
        self._series: dict[SeriesKey, Counter | Histogram] = {}
        self._lock = Lock()

    def _get(self, key: SeriesKey, kind: type):
        series = self._series.get(key)
        if series is None:
            series = self._series[key] = kind()
        elif not isinstance(series, kind):
            raise TypeError(f"{render_key(key)} is a {type(series).__name__}, not a {kind.__name__}")
        return series

    def inc_counter(self, name: str, amount: int = 1, **labels) -> None:
        with self._lock:
            self._get(series_key(name, labels), Counter).inc(amount)

    def observe_histogram(self, name: str, value: float, **labels) -> None:
        with self._lock:
            self._get(series_key(name, labels), Histogram).observe(value)

    def get_metrics(self) -> dict:
        """Snapshot: ``{"counters": {...}, "histograms": {...}}``"""
        counters: dict[str, int] = {}
        histograms: dict[str, dict] = {}
        with self._lock:
            for key, series in self._series.items():
                if isinstance(series, Counter):
                    counters[render_key(key)] = series.value
                else:
                    histograms[render_key(key)] = series.get_stats()
        return {"counters": counters, "histograms": histograms}

    def reset(self) -> None:
        with self._lock:
            self._series.clear()
        logger.info("Metrics reset")


_metrics = MetricsCollector()


def get_metrics_collector() -> MetricsCollector:
    return _metrics


class Timer:
    """Context manager recording elapsed seconds into a histogram, even on error"""

    def __init__(self, metric_name: str, **labels):
        self.metric_name = metric_name
        self.labels = labels
        self._started = 0.0

    def __enter__(self):
        self._started = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        _metrics.observe_histogram(
            self.metric_name, time.perf_counter() - self._started, **self.labels
        )


class AppMetrics:
    """Image proxy metrics tracking"""

    @staticmethod
    def image_request(endpoint: str, outcome: str) -> None:
        _metrics.inc_counter("image_requests_total", endpoint=endpoint, outcome=outcome)

    @staticmethod
    def fetch_fallback(result: str) -> None:
        _metrics.inc_counter("fetch_fallback_total", result=result)

    @staticmethod
    def encode_fallback() -> None:
        _metrics.inc_counter("image_encode_fallback_total")

    @staticmethod
    def favicon_request(provider: str) -> None:
        _metrics.inc_counter("favicon_requests_total", provider=provider)

    @staticmethod
    def track_transform_time(endpoint: str) -> Timer:
        return Timer("image_transform_seconds", endpoint=endpoint)
