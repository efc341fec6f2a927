"""
Metrics Module: Usage Tracking, Attempt Metrics, Cost and Reporting

Components:
    UsageTracker: Append-only request/success/error/switch event log
    UsageAnalytics: Counters derived from the usage log
    MetricsStore: Thread-safe in-memory per-attempt metrics aggregation
    RequestMetric: Individual attempt metric record
    summarize: min/max/avg/p50/p95/p99 over samples
    CostCalculator: Per-attempt cost and savings from provider pricing
    MetricsReporter: Generate MetricsResponse for API endpoints

Usage:
    from relay.metrics import UsageTracker, MetricsStore, RequestMetric

    tracker = UsageTracker()
    tracker.log_request("primary", "code_generation")
    tracker.log_success("primary")

    store = MetricsStore()
    store.record(RequestMetric(
        timestamp=time.time(),
        provider_key="primary",
        task_type="code_generation",
        latency_ms=1800.0,
        success=True,
    ))

There are no module-level singletons: the provider manager owns its
tracker and store, and the application builds one manager at startup.
"""

from relay.metrics.cost import CostBreakdown, CostCalculator
from relay.metrics.reporter import MetricsReporter
from relay.metrics.store import (
    AggregatedMetrics,
    LatencySummary,
    MetricsStore,
    RequestMetric,
    summarize,
)
from relay.metrics.usage import (
    LogType,
    UsageAnalytics,
    UsageLogEntry,
    UsageTracker,
    error_message,
)

__all__ = [
    # Usage tracking
    "LogType",
    "UsageLogEntry",
    "UsageAnalytics",
    "UsageTracker",
    "error_message",
    # Attempt metrics
    "RequestMetric",
    "AggregatedMetrics",
    "LatencySummary",
    "MetricsStore",
    "summarize",
    # Cost calculation
    "CostBreakdown",
    "CostCalculator",
    # Reporting
    "MetricsReporter",
]
