"""
Observability — In-process metrics collection.

No external dependencies. The session records every unit of work in a
MetricsRecorder; collect_metrics() freezes the counters into a
SessionMetrics snapshot for the API or logs.
"""

from __future__ import annotations

import threading
from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict

if TYPE_CHECKING:
    from .session import HierarchySession


@dataclass(frozen=True)
class SessionMetrics:
    """Snapshot of observable session metrics."""

    committed: Dict[str, int]        # per operation kind
    aborted: Dict[str, int]          # per error code
    conflicts: int
    retries: int
    mean_commit_latency_ms: float
    people_written: int
    departments_written: int
    warnings: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "committed": dict(self.committed),
            "aborted": dict(self.aborted),
            "conflicts": self.conflicts,
            "retries": self.retries,
            "mean_commit_latency_ms": self.mean_commit_latency_ms,
            "people_written": self.people_written,
            "departments_written": self.departments_written,
            "warnings": list(self.warnings),
        }


class MetricsRecorder:
    """Thread-safe counters updated by HierarchySession."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._committed: Counter = Counter()
        self._aborted: Counter = Counter()
        self._conflicts = 0
        self._retries = 0
        self._latency_total_ms = 0.0
        self._people_written = 0
        self._departments_written = 0

    def record_commit(
        self, kind: str, duration_ms: float, people: int, departments: int,
    ) -> None:
        with self._lock:
            self._committed[kind] += 1
            self._latency_total_ms += duration_ms
            self._people_written += people
            self._departments_written += departments

    def record_abort(self, error_code: str) -> None:
        with self._lock:
            self._aborted[error_code] += 1

    def record_conflict(self, retried: bool) -> None:
        with self._lock:
            self._conflicts += 1
            if retried:
                self._retries += 1

    def snapshot(self) -> SessionMetrics:
        with self._lock:
            total = sum(self._committed.values())
            mean = self._latency_total_ms / total if total else 0.0
            warnings = []
            if total and self._conflicts > total:
                warnings.append(
                    f"Conflicts ({self._conflicts}) exceed committed units ({total}); "
                    f"the store is heavily contended"
                )
            return SessionMetrics(
                committed=dict(sorted(self._committed.items())),
                aborted=dict(sorted(self._aborted.items())),
                conflicts=self._conflicts,
                retries=self._retries,
                mean_commit_latency_ms=round(mean, 2),
                people_written=self._people_written,
                departments_written=self._departments_written,
                warnings=warnings,
            )


def collect_metrics(session: "HierarchySession") -> SessionMetrics:
    """Collect metrics from a live session."""
    return session.metrics.snapshot()
