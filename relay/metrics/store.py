"""
Metrics Store for Provider Attempts

Aggregates per-attempt performance samples (latency, tokens, cost) for
analysis and reporting. Uses in-memory storage; nothing is persisted.

The store is thread-safe using threading.Lock to handle
concurrent dispatches in FastAPI's async environment.
"""

import math
import threading
from collections import defaultdict
from dataclasses import dataclass, field


@dataclass
class RequestMetric:
    """
    Individual provider attempt record.

    Attributes:
        timestamp: Unix timestamp when the attempt finished
        provider_key: Provider that served (or failed) the attempt
        task_type: Task tag of the dispatch
        latency_ms: Wall time of the attempt in milliseconds
        success: Whether the attempt returned a response
        input_tokens: Prompt tokens reported by the provider
        output_tokens: Completion tokens reported by the provider
        cost_usd: Cost of the attempt at the provider's per-token rate
    """

    timestamp: float
    provider_key: str
    task_type: str
    latency_ms: float
    success: bool
    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: float = 0.0

    @property
    def total_tokens(self) -> int:
        """Total tokens processed (input + output)."""
        return self.input_tokens + self.output_tokens


@dataclass
class LatencySummary:
    """Order statistics over a list of samples."""

    count: int = 0
    min: float = 0.0
    max: float = 0.0
    avg: float = 0.0
    p50: float = 0.0
    p95: float = 0.0
    p99: float = 0.0


def summarize(samples: list[float]) -> LatencySummary:
    """
    Compute min/max/avg/p50/p95/p99 over samples.

    Percentiles index the ascending sort at floor(n * p), clamped to the
    last element.

    Args:
        samples: Sample values in any order

    Returns:
        LatencySummary, all zeros for an empty list
    """
    if not samples:
        return LatencySummary()

    ordered = sorted(samples)
    n = len(ordered)

    def at(percentile: float) -> float:
        return ordered[min(math.floor(n * percentile), n - 1)]

    return LatencySummary(
        count=n,
        min=ordered[0],
        max=ordered[-1],
        avg=sum(ordered) / n,
        p50=at(0.50),
        p95=at(0.95),
        p99=at(0.99),
    )


@dataclass
class _ProviderAggregate:
    """Internal aggregate for per-provider metrics."""

    count: int = 0
    successes: int = 0
    failures: int = 0
    total_tokens: int = 0
    total_cost: float = 0.0
    latencies: list[float] = field(default_factory=list)


@dataclass
class AggregatedMetrics:
    """
    Aggregated metrics snapshot for reporting.

    All fields are snapshots captured at a specific moment.

    Attributes:
        total_attempts: Total provider attempts recorded
        total_successes: Attempts that returned a response
        total_failures: Attempts that failed or timed out
        total_cost: Cumulative cost in USD
        total_input_tokens: Total input tokens across attempts
        total_output_tokens: Total output tokens across attempts
        by_provider: Per-provider aggregates
        by_task: Attempt count per task type
        latencies: Latencies for percentile calculation
    """

    total_attempts: int = 0
    total_successes: int = 0
    total_failures: int = 0
    total_cost: float = 0.0
    total_input_tokens: int = 0
    total_output_tokens: int = 0

    by_provider: dict[str, _ProviderAggregate] = field(
        default_factory=lambda: defaultdict(_ProviderAggregate)
    )
    by_task: dict[str, int] = field(default_factory=lambda: defaultdict(int))

    latencies: list[float] = field(default_factory=list)


class MetricsStore:
    """
    Thread-safe in-memory metrics storage.

    Stores individual attempt metrics and provides aggregation for
    reporting. Designed for single-process deployment.

    Example:
        store = MetricsStore()
        store.record(RequestMetric(
            timestamp=time.time(),
            provider_key="primary",
            task_type="code_generation",
            latency_ms=1800.0,
            success=True,
        ))
        store.get_aggregated().total_attempts  # 1
    """

    def __init__(self, max_history: int = 10000):
        """
        Initialize the metrics store.

        Args:
            max_history: Maximum individual metrics and latency samples
                         to retain. Counters are preserved regardless.
        """
        self._lock = threading.Lock()
        self._metrics: list[RequestMetric] = []
        self._max_history = max_history

        self._total_attempts: int = 0
        self._total_successes: int = 0
        self._total_failures: int = 0
        self._total_cost: float = 0.0
        self._total_input_tokens: int = 0
        self._total_output_tokens: int = 0

        self._by_provider: dict[str, _ProviderAggregate] = defaultdict(
            _ProviderAggregate
        )
        self._by_task: dict[str, int] = defaultdict(int)
        self._latencies: list[float] = []

    def record(self, metric: RequestMetric) -> None:
        """
        Record a new attempt metric.

        Thread-safe. Updates both raw history and pre-computed aggregates.

        Args:
            metric: The attempt metric to record
        """
        with self._lock:
            self._metrics.append(metric)
            if len(self._metrics) > self._max_history:
                self._metrics = self._metrics[-self._max_history :]

            self._total_attempts += 1
            if metric.success:
                self._total_successes += 1
            else:
                self._total_failures += 1
            self._total_cost += metric.cost_usd
            self._total_input_tokens += metric.input_tokens
            self._total_output_tokens += metric.output_tokens

            provider_agg = self._by_provider[metric.provider_key]
            provider_agg.count += 1
            if metric.success:
                provider_agg.successes += 1
            else:
                provider_agg.failures += 1
            provider_agg.total_tokens += metric.total_tokens
            provider_agg.total_cost += metric.cost_usd
            provider_agg.latencies.append(metric.latency_ms)
            if len(provider_agg.latencies) > self._max_history:
                provider_agg.latencies = provider_agg.latencies[-self._max_history :]

            self._by_task[metric.task_type] += 1

            self._latencies.append(metric.latency_ms)
            if len(self._latencies) > self._max_history:
                self._latencies = self._latencies[-self._max_history :]

    def get_aggregated(self) -> AggregatedMetrics:
        """
        Get current aggregated metrics.

        Thread-safe. The returned object is a copy and safe to use
        outside the lock.

        Returns:
            AggregatedMetrics snapshot
        """
        with self._lock:
            by_provider_copy = {
                key: _ProviderAggregate(
                    count=agg.count,
                    successes=agg.successes,
                    failures=agg.failures,
                    total_tokens=agg.total_tokens,
                    total_cost=agg.total_cost,
                    latencies=list(agg.latencies),
                )
                for key, agg in self._by_provider.items()
            }

            return AggregatedMetrics(
                total_attempts=self._total_attempts,
                total_successes=self._total_successes,
                total_failures=self._total_failures,
                total_cost=self._total_cost,
                total_input_tokens=self._total_input_tokens,
                total_output_tokens=self._total_output_tokens,
                by_provider=by_provider_copy,
                by_task=dict(self._by_task),
                latencies=list(self._latencies),
            )

    def get_recent(self, count: int = 100) -> list[RequestMetric]:
        """
        Get most recent attempt metrics.

        Args:
            count: Number of recent metrics to return

        Returns:
            List of recent RequestMetric objects
        """
        with self._lock:
            return list(self._metrics[-count:])

    def reset(self) -> None:
        """
        Reset all metrics.

        Thread-safe. Clears all stored data and aggregates.
        Primarily used for testing.
        """
        with self._lock:
            self._metrics.clear()
            self._total_attempts = 0
            self._total_successes = 0
            self._total_failures = 0
            self._total_cost = 0.0
            self._total_input_tokens = 0
            self._total_output_tokens = 0
            self._by_provider.clear()
            self._by_task.clear()
            self._latencies.clear()
