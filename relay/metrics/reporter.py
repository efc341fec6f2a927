"""
Metrics Reporter for API Responses

Transforms raw aggregated metrics into structured API responses with
computed fields like savings percentage and latency percentiles.
"""

from relay.metrics.cost import CostCalculator
from relay.metrics.store import MetricsStore, summarize
from relay.schemas.api import MetricsResponse, ProviderMetrics, latency_stats_from_summary


class MetricsReporter:
    """
    Generate metrics reports from aggregated data.

    Example:
        reporter = MetricsReporter(store, calculator)
        response = reporter.generate_report()
        return response  # Ready for JSON serialization
    """

    def __init__(self, store: MetricsStore, calculator: CostCalculator | None = None):
        """
        Initialize the reporter.

        Args:
            store: MetricsStore instance to report from
            calculator: Supplies the baseline rate for the savings figure
        """
        self._store = store
        self._calculator = calculator or CostCalculator()

    def generate_report(self) -> MetricsResponse:
        """
        Generate a complete metrics report.

        Returns:
            MetricsResponse ready for API serialization
        """
        agg = self._store.get_aggregated()

        providers: dict[str, ProviderMetrics] = {}
        for key, data in agg.by_provider.items():
            providers[key] = ProviderMetrics(
                provider_key=key,
                attempt_count=data.count,
                success_count=data.successes,
                failure_count=data.failures,
                total_tokens=data.total_tokens,
                total_cost_usd=round(data.total_cost, 6),
                latency=latency_stats_from_summary(summarize(data.latencies)),
            )

        total_tokens = agg.total_input_tokens + agg.total_output_tokens
        baseline_cost = total_tokens * self._calculator.baseline_cost_per_token
        if baseline_cost > 0:
            savings_percent = (baseline_cost - agg.total_cost) / baseline_cost * 100
        else:
            savings_percent = 0.0

        return MetricsResponse(
            total_attempts=agg.total_attempts,
            total_successes=agg.total_successes,
            total_failures=agg.total_failures,
            attempts_by_provider=providers,
            attempts_by_task=dict(agg.by_task),
            total_cost_usd=round(agg.total_cost, 6),
            baseline_cost_usd=round(baseline_cost, 6),
            cost_savings_percent=round(savings_percent, 2),
            latency=latency_stats_from_summary(summarize(agg.latencies)),
        )

    def get_success_rates(self) -> dict[str, float]:
        """
        Observed success rate per provider, in percent.

        Returns:
            Dictionary mapping provider keys to success percentage
        """
        agg = self._store.get_aggregated()
        return {
            key: round(data.successes / data.count * 100, 1) if data.count else 0.0
            for key, data in agg.by_provider.items()
        }
