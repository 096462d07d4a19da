# -*- coding: utf-8 -*-
from __future__ import annotations

from functools import wraps
from time import perf_counter
from typing import Any, Callable

from prometheus_client import Counter, Histogram


request_transition_total = Counter(
    "matchmaker_request_transition_total", "Supervision request transitions", ["event_type"]
)
capacity_exceeded_total = Counter(
    "matchmaker_capacity_exceeded_total", "Accept attempts rejected for lack of capacity"
)
lifecycle_command_duration_seconds = Histogram(
    "matchmaker_lifecycle_command_duration_seconds",
    "Time to execute one lifecycle command",
    ["command"],
    buckets=(0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1, 2),
)
lifecycle_command_failed_total = Counter(
    "matchmaker_lifecycle_command_failed_total", "Failed lifecycle commands", ["command", "reason"]
)
ranking_duration_seconds = Histogram(
    "matchmaker_ranking_duration_seconds",
    "Time to score and order one student's candidates",
    buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1),
)
tag_import_total = Counter("matchmaker_tag_import_total", "Tag graph imports", ["outcome"])
db_query_duration_seconds = Histogram(
    "matchmaker_db_query_duration_seconds", "DB query duration", buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.5)
)


def record_command(command: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Time a lifecycle command and count its failures by error type."""

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(func)
        def wrapper(*args, **kwargs):
            t0 = perf_counter()
            try:
                return func(*args, **kwargs)
            except Exception as ex:
                reason = getattr(ex, "error_code", type(ex).__name__)
                lifecycle_command_failed_total.labels(command=command, reason=reason).inc()
                raise
            finally:
                lifecycle_command_duration_seconds.labels(command=command).observe(perf_counter() - t0)

        return wrapper

    return decorator


__all__ = [
    "capacity_exceeded_total",
    "db_query_duration_seconds",
    "lifecycle_command_duration_seconds",
    "lifecycle_command_failed_total",
    "ranking_duration_seconds",
    "record_command",
    "request_transition_total",
    "tag_import_total",
]
