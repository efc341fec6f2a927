"""
Cost Calculator for Provider Calls

Calculates the cost of a provider attempt from its flat per-token price
and compares it against a baseline provider (by default the most expensive
one registered) to show what capability-based selection saves.
"""

from dataclasses import dataclass

from relay.registry.models import ProviderDescriptor, ProviderRegistry


@dataclass
class CostBreakdown:
    """
    Cost breakdown for a single provider attempt.

    Attributes:
        input_tokens: Number of input tokens processed
        output_tokens: Number of output tokens generated
        cost_usd: Cost at the serving provider's rate
        baseline_cost_usd: Cost had the baseline provider served it
        savings_usd: Dollar amount saved against the baseline
        savings_percent: Percentage saved against the baseline
        provider_key: Provider that served the attempt
    """

    input_tokens: int
    output_tokens: int
    cost_usd: float
    baseline_cost_usd: float
    savings_usd: float
    savings_percent: float
    provider_key: str

    @property
    def total_tokens(self) -> int:
        """Total tokens processed (input + output)."""
        return self.input_tokens + self.output_tokens


class CostCalculator:
    """
    Calculate attempt costs and savings.

    The calculator only reads descriptor pricing, so it is safe to share
    between concurrent dispatches.

    Example:
        calculator = CostCalculator.for_registry(registry)
        cost = calculator.calculate(registry.get("codex"), 150, 50)
        print(f"Saved ${cost.savings_usd:.6f} ({cost.savings_percent:.1f}%)")
    """

    def __init__(self, baseline_cost_per_token: float = 0.0):
        """
        Initialize the cost calculator.

        Args:
            baseline_cost_per_token: Per-token price used for the
                                     hypothetical comparison
        """
        self._baseline_cost_per_token = baseline_cost_per_token

    @classmethod
    def for_registry(cls, registry: ProviderRegistry) -> "CostCalculator":
        """Use the most expensive registered provider as the baseline."""
        prices = [d.pricing.cost_per_token for d in registry.list_available()]
        return cls(baseline_cost_per_token=max(prices, default=0.0))

    @property
    def baseline_cost_per_token(self) -> float:
        return self._baseline_cost_per_token

    def calculate(
        self, descriptor: ProviderDescriptor, input_tokens: int, output_tokens: int
    ) -> CostBreakdown:
        """
        Calculate cost breakdown for an attempt.

        Args:
            descriptor: Provider with pricing information
            input_tokens: Number of input tokens used
            output_tokens: Number of output tokens generated

        Returns:
            Complete cost breakdown with savings calculation
        """
        tokens = input_tokens + output_tokens
        cost = tokens * descriptor.pricing.cost_per_token
        baseline_cost = tokens * self._baseline_cost_per_token

        savings_usd = baseline_cost - cost
        savings_percent = (
            (savings_usd / baseline_cost * 100) if baseline_cost > 0 else 0.0
        )

        return CostBreakdown(
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost_usd=cost,
            baseline_cost_usd=baseline_cost,
            savings_usd=savings_usd,
            savings_percent=savings_percent,
            provider_key=descriptor.key,
        )
