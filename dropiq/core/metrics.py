from __future__ import annotations

"""Application performance metrics collection.

Provides a lightweight, thread-safe collector for:
- HTTP API response times and counts by method+route and status code
- Named domain event counters (airdrop submissions, strategy copies, ...)
- Named timers for engine runs (risk assessment, recommendation scoring)

Exposes a singleton `metrics` for convenient use throughout the app. Metrics
are exported as a JSON-safe dict via snapshot().
"""

import threading
import time
from dataclasses import dataclass, field
from typing import Dict, Tuple, Any


@dataclass
class Stat:
    """Accumulates basic statistics for durations.

    Stores count, total seconds, min/max seconds, and last observed seconds.
    Also retains a bounded sample window to estimate tail latencies (p95/p99).
    """

    count: int = 0
    total_s: float = 0.0
    min_s: float = float("inf")
    max_s: float = 0.0
    last_s: float = 0.0
    _samples: list[float] = field(default_factory=list)
    _max_samples: int = 256

    def add(self, duration_s: float) -> None:
        self.count += 1
        self.total_s += duration_s
        self.last_s = duration_s
        if duration_s < self.min_s:
            self.min_s = duration_s
        if duration_s > self.max_s:
            self.max_s = duration_s
        self._samples.append(duration_s)
        if len(self._samples) > self._max_samples:
            # Drop oldest
            self._samples.pop(0)

    def _percentile_ms(self, p: float) -> float:
        if not self._samples:
            return 0.0
        data = sorted(self._samples)
        k = max(0, min(len(data) - 1, int(round((p / 100.0) * (len(data) - 1)))))
        return data[k] * 1000.0

    def as_dict_ms(self) -> Dict[str, float | int]:
        avg_ms = (self.total_s / self.count * 1000.0) if self.count else 0.0
        return {
            "count": self.count,
            "total_ms": self.total_s * 1000.0,
            "avg_ms": avg_ms,
            "min_ms": (self.min_s * 1000.0 if self.count else 0.0),
            "max_ms": self.max_s * 1000.0,
            "last_ms": self.last_s * 1000.0,
            "p95_ms": self._percentile_ms(95.0),
            "p99_ms": self._percentile_ms(99.0),
        }


class MetricsCollector:
    """Thread-safe in-process metrics collector.

    - HTTP metrics keyed by (method, route_template) with per-status counts.
    - Server errors (5xx) counted per route.
    - Domain event counters and generic timers by name.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._http_stats: Dict[Tuple[str, str], Stat] = {}
        self._http_status_counts: Dict[Tuple[str, str], Dict[str, int]] = {}
        self._http_errors: Dict[Tuple[str, str], int] = {}
        self._http_total: int = 0
        self._events: Dict[str, int] = {}
        self._timers: Dict[str, Stat] = {}
        self._start_monotonic: float = time.monotonic()
        self._start_time_s: float = time.time()

    def increment_event(self, key: str, count: int = 1) -> None:
        """Increment a named event counter by count (default 1).

        Keys are arbitrary strings like 'airdrop.submitted' or 'strategy.copied'.
        """
        if not key:
            return
        with self._lock:
            self._events[key] = int(self._events.get(key, 0)) + int(count)

    def record_http(self, method: str, route: str, status_code: int, duration_s: float) -> None:
        key = (method.upper(), route)
        sc = str(status_code)
        with self._lock:
            stat = self._http_stats.get(key)
            if stat is None:
                stat = self._http_stats[key] = Stat()
            stat.add(duration_s)
            self._http_status_counts.setdefault(key, {})
            self._http_status_counts[key][sc] = self._http_status_counts[key].get(sc, 0) + 1
            if status_code >= 500:
                self._http_errors[key] = self._http_errors.get(key, 0) + 1
            self._http_total += 1

    def record_timer(self, name: str, duration_s: float) -> None:
        """Record a one-shot timer duration under the given name."""
        if not name:
            return
        with self._lock:
            stat = self._timers.get(name)
            if stat is None:
                stat = self._timers[name] = Stat()
            stat.add(float(duration_s))

    def uptime_s(self) -> float:
        return max(0.0, time.monotonic() - self._start_monotonic)

    def reset(self) -> None:
        with self._lock:
            self._http_stats.clear()
            self._http_status_counts.clear()
            self._http_errors.clear()
            self._http_total = 0
            self._events.clear()
            self._timers.clear()

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            http_by_route: Dict[str, Dict[str, Any]] = {}
            for (method, route), stat in self._http_stats.items():
                http_by_route[f"{method}:{route}"] = {
                    **stat.as_dict_ms(),
                    "status_counts": dict(self._http_status_counts.get((method, route), {})),
                    "errors": self._http_errors.get((method, route), 0),
                }
            timers_by_name = {name: stat.as_dict_ms() for name, stat in self._timers.items()}
            return {
                "process": {
                    "started_at": self._start_time_s,
                    "uptime_s": self.uptime_s(),
                },
                "http": {
                    "total_count": self._http_total,
                    "error_count": sum(self._http_errors.values()),
                    "by_route": http_by_route,
                },
                "events": dict(self._events),
                "timers": timers_by_name,
            }


class timed:
    """Context manager recording the wrapped block's duration as a named timer."""

    def __init__(self, name: str, collector: "MetricsCollector | None" = None) -> None:
        self.name = name
        self.collector = collector
        self._start = 0.0

    def __enter__(self) -> "timed":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        (self.collector or metrics).record_timer(self.name, time.perf_counter() - self._start)


# Singleton instance exported for app-wide use
metrics = MetricsCollector()

__all__ = ["metrics", "MetricsCollector", "Stat", "timed"]
