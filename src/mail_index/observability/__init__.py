"""Observability module for OpenTelemetry-aligned tracing, metrics, and logging."""

from mail_index.observability.context import get_trace_context, set_trace_context, trace_context
from mail_index.observability.logging import JsonFormatter, configure_logging
from mail_index.observability.metrics import (
    COMMIT_COUNT,
    COMMIT_LATENCY,
    INDEX_DOC_COUNT,
    PENDING_CHANGES,
    SEARCH_LATENCY,
    get_metrics,
    get_metrics_content_type,
    track_latency,
)
from mail_index.observability.tracing import create_span, get_tracer, init_tracing


__all__ = [
    "COMMIT_COUNT",
    "COMMIT_LATENCY",
    "INDEX_DOC_COUNT",
    "PENDING_CHANGES",
    "SEARCH_LATENCY",
    "JsonFormatter",
    "configure_logging",
    "create_span",
    "get_metrics",
    "get_metrics_content_type",
    "get_trace_context",
    "get_tracer",
    "init_tracing",
    "set_trace_context",
    "trace_context",
    "track_latency",
]
