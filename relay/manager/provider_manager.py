"""
Provider Manager - capability-ranked dispatch with ordered fallback.

The manager is the orchestrator of the dispatch path. It owns the registry,
the capability matcher, the load balancer and the usage tracker, and it is
the only writer of provider performance metrics and of the active provider.

Dispatch flow for execute_with_fallback(request, task_type):
1. No registered provider -> ConfigurationError (no I/O, no log entries)
2. Rank providers for the task -> UnsupportedTaskError when nobody declares it
3. Walk the ranking one proficiency group at a time. Inside a group the
   load balancer picks who goes first; the rest of the group follows in
   registry order, then the next, less proficient group
4. Each attempt: log request, call the adapter under a timeout, log
   success and return the raw response, or log the error and move on
5. Every candidate failed -> FallbackExhaustedError with the last error

Cancellation propagates immediately: asyncio.CancelledError is not an
Exception subclass, so the fallback loop never catches it and no further
candidates are tried.
"""

import asyncio
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
import threading
import time
from typing import Any

from relay.dispatcher.errors import (
    ConfigurationError,
    FallbackExhaustedError,
    ProviderError,
    ProviderTimeoutError,
    UnsupportedTaskError,
)
from relay.dispatcher.handlers import ProviderAdapter, extract_token_usage
from relay.manager.branding import BrandIdentity
from relay.metrics.cost import CostCalculator
from relay.metrics.store import MetricsStore, RequestMetric
from relay.metrics.usage import UsageAnalytics, UsageTracker
from relay.registry.models import (
    UNIVERSAL_FRAMEWORKS,
    UNIVERSAL_LANGUAGES,
    PerformanceMetrics,
    ProviderDescriptor,
    ProviderRegistry,
    WireFormat,
)
from relay.router.balancer import LoadBalancer
from relay.router.matcher import CapabilityMatcher

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 60.0


@dataclass
class DetailedCapabilities:
    """
    Aggregate, vendor-free view of what the configured providers can do.

    Attributes:
        average_response_time_ms: Mean of provider average response times
        overall_uptime_percent: Mean of provider uptimes
        supported_languages: Union of declared languages, first-seen order
        supported_frameworks: Union of declared frameworks, first-seen order
        provider_count: Number of configured providers
    """

    average_response_time_ms: float = 0.0
    overall_uptime_percent: float = 0.0
    supported_languages: list[str] = field(default_factory=list)
    supported_frameworks: list[str] = field(default_factory=list)
    provider_count: int = 0


@dataclass
class _AttemptCounts:
    """Observed attempts per provider, for live performance metrics."""

    attempts: int = 0
    successes: int = 0
    # The catalog's seeded average counts as one sample
    latency_samples: int = 1


class ProviderManager:
    """
    Orchestrates provider selection, execution and fallback.

    There is no module-level instance: the application builds one at
    startup and tests build their own with fake adapters.

    Example:
        manager = ProviderManager(registry, build_adapters())
        response = await manager.execute_with_fallback(
            {"prompt": "Write a debounce helper"}, "code_generation"
        )
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        adapters: Mapping[WireFormat, ProviderAdapter] | None = None,
        *,
        balancer: LoadBalancer | None = None,
        tracker: UsageTracker | None = None,
        metrics_store: MetricsStore | None = None,
        cost_calculator: CostCalculator | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        track_costs: bool = True,
        identity: BrandIdentity | None = None,
    ):
        """
        Initialize the manager.

        Args:
            registry: Available providers, in declared order
            adapters: Adapter per wire format
            balancer: Load balancer (a fresh one by default)
            tracker: Usage tracker (a fresh one by default)
            metrics_store: Per-attempt metrics (a fresh one by default)
            cost_calculator: Prices attempts (baseline from the registry by default)
            timeout_seconds: Upper bound for one provider attempt
            track_costs: Record latency/token/cost samples per attempt
            identity: Brand strings for display name and model info
        """
        self._registry = registry
        self._adapters: dict[WireFormat, ProviderAdapter] = dict(adapters or {})
        self._matcher = CapabilityMatcher(registry)
        self._balancer = balancer or LoadBalancer()
        self._tracker = tracker or UsageTracker()
        self._metrics_store = metrics_store or MetricsStore()
        self._cost_calculator = cost_calculator or CostCalculator.for_registry(registry)
        self._timeout_seconds = timeout_seconds
        self._track_costs = track_costs
        self._identity = identity or BrandIdentity()

        self._lock = threading.Lock()
        self._attempt_counts: dict[str, _AttemptCounts] = {}
        self._active_key: str | None = self._initial_active_key()

        if self._active_key:
            logger.info(
                f"Provider manager ready: {len(registry)} provider(s), "
                f"active={self._active_key}"
            )
        else:
            logger.warning("Provider manager has no configured provider")

    def _initial_active_key(self) -> str | None:
        best_key = None
        best_rank = -1
        for descriptor in self._registry.list_available():
            proficiency = descriptor.best_proficiency()
            rank = proficiency.rank if proficiency else -1
            # Strict comparison keeps the earliest provider on ties
            if best_key is None or rank > best_rank:
                best_key, best_rank = descriptor.key, rank
        return best_key

    # -------------------------------------------------------------------------
    # Component access
    # -------------------------------------------------------------------------

    @property
    def registry(self) -> ProviderRegistry:
        return self._registry

    @property
    def matcher(self) -> CapabilityMatcher:
        return self._matcher

    @property
    def balancer(self) -> LoadBalancer:
        return self._balancer

    @property
    def tracker(self) -> UsageTracker:
        return self._tracker

    @property
    def metrics_store(self) -> MetricsStore:
        return self._metrics_store

    @property
    def cost_calculator(self) -> CostCalculator:
        return self._cost_calculator

    @property
    def identity(self) -> BrandIdentity:
        return self._identity

    # -------------------------------------------------------------------------
    # Active provider
    # -------------------------------------------------------------------------

    def has_provider(self) -> bool:
        """True when at least one provider is configured."""
        return self._active_key is not None

    def get_active_provider(self) -> ProviderDescriptor | None:
        """
        Return a copy of the active provider's descriptor.

        Mutating the copy has no effect on the manager.
        """
        if self._active_key is None:
            return None
        descriptor = self._registry.get(self._active_key)
        return descriptor.model_copy(deep=True) if descriptor else None

    def get_active_provider_key(self) -> str | None:
        return self._active_key

    def switch_provider(self, key: str) -> bool:
        """
        Make a registered provider the active one.

        Unknown keys are ignored: nothing changes and nothing is logged.

        Returns:
            True if the active provider was switched
        """
        if key not in self._registry:
            logger.debug(f"Ignoring switch to unknown provider '{key}'")
            return False

        self._active_key = key
        self._tracker.log_provider_switch(key)
        logger.info(f"Active provider switched to {key}")
        return True

    def get_best_provider_for_task(
        self,
        task_type: str,
        language: str | None = None,
        framework: str | None = None,
    ) -> str | None:
        """
        Top-ranked provider key for a task, or None when unsupported.

        Args:
            task_type: Task tag, e.g. "code_generation"
            language: Optional language filter
            framework: Optional framework filter
        """
        ranked = self._matcher.rank(task_type, language, framework)
        return ranked[0] if ranked else None

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    async def execute_with_fallback(
        self, request: dict[str, Any], task_type: str
    ) -> dict[str, Any]:
        """
        Execute a request against the best providers until one succeeds.

        Args:
            request: Opaque payload ({prompt, ...options}) forwarded to adapters
            task_type: Task tag used for ranking

        Returns:
            Raw response of the first provider that succeeded

        Raises:
            ConfigurationError: No provider is configured
            UnsupportedTaskError: No provider declares the task type
            FallbackExhaustedError: Every ranked provider failed
        """
        if not self.has_provider():
            raise ConfigurationError()

        task_type = getattr(task_type, "value", task_type)
        groups = self._matcher.rank_groups(task_type)
        if not groups:
            raise UnsupportedTaskError(task_type)

        attempted: list[str] = []
        last_error: Exception | None = None

        for key in self._attempt_order(groups):
            attempted.append(key)
            self._tracker.log_request(key, task_type)
            start_time = time.perf_counter()

            try:
                response = await self._execute_with_provider(key, request)
            except Exception as e:
                latency_ms = (time.perf_counter() - start_time) * 1000
                self._tracker.log_error(key, e)
                self._record_attempt(key, task_type, latency_ms, success=False)
                logger.warning(
                    f"Provider {key} failed for {task_type} after "
                    f"{latency_ms:.0f}ms: {e}"
                )
                last_error = e
                continue

            latency_ms = (time.perf_counter() - start_time) * 1000
            self._tracker.log_success(key)
            self._record_attempt(key, task_type, latency_ms, success=True, response=response)
            logger.info(f"Provider {key} served {task_type} in {latency_ms:.0f}ms")
            return response

        logger.error(
            f"All {len(attempted)} provider(s) failed for {task_type}: "
            f"{', '.join(attempted)}"
        )
        raise FallbackExhaustedError(last_error, attempted) from last_error

    def _attempt_order(self, groups: list[list[str]]) -> Iterator[str]:
        """
        Yield provider keys in fallback order.

        The balancer is consulted only when a group is actually reached, so
        a dispatch served by the first group never counts against the rest.
        """
        for group in groups:
            first = self._balancer.pick_next(group)
            if first is None:
                continue
            yield first
            for key in group:
                if key != first:
                    yield key

    async def _execute_with_provider(
        self, key: str, request: dict[str, Any]
    ) -> dict[str, Any]:
        """
        One attempt against one provider, bounded by the attempt timeout.

        Raises:
            ProviderError: Missing adapter, adapter failure or malformed reply
            ProviderTimeoutError: The attempt exceeded timeout_seconds
        """
        descriptor = self._registry.get(key)
        if descriptor is None:
            raise ProviderError(f"Unknown provider: {key}", provider=key)

        adapter = self._adapters.get(descriptor.wire_format)
        if adapter is None:
            raise ProviderError(
                f"No adapter configured for provider {key}",
                provider=key,
            )

        try:
            response = await asyncio.wait_for(
                adapter.execute(descriptor, request), timeout=self._timeout_seconds
            )
        except asyncio.TimeoutError as e:
            raise ProviderTimeoutError(
                provider=key, timeout_seconds=self._timeout_seconds
            ) from e

        if not isinstance(response, dict):
            raise ProviderError("Provider returned a malformed response", provider=key)
        return response

    def _record_attempt(
        self,
        key: str,
        task_type: str,
        latency_ms: float,
        success: bool,
        response: dict[str, Any] | None = None,
    ) -> None:
        descriptor = self._registry.get(key)
        if descriptor is None:
            return

        self._update_performance(descriptor, latency_ms, success)

        if not self._track_costs:
            return

        usage = extract_token_usage(response) if response else None
        input_tokens = usage.input_tokens if usage else 0
        output_tokens = usage.output_tokens if usage else 0
        cost = self._cost_calculator.calculate(descriptor, input_tokens, output_tokens)

        self._metrics_store.record(
            RequestMetric(
                timestamp=time.time(),
                provider_key=key,
                task_type=task_type,
                latency_ms=latency_ms,
                success=success,
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                cost_usd=cost.cost_usd,
            )
        )

    def _update_performance(
        self, descriptor: ProviderDescriptor, latency_ms: float, success: bool
    ) -> None:
        """
        Refresh a provider's performance metrics after an attempt.

        Average response time is a running mean over successful attempts
        seeded with the catalog value; success rate covers observed attempts.
        """
        with self._lock:
            counts = self._attempt_counts.setdefault(descriptor.key, _AttemptCounts())
            counts.attempts += 1
            current = descriptor.performance_metrics

            average = current.average_response_time_ms
            if success:
                counts.successes += 1
                counts.latency_samples += 1
                average += (latency_ms - average) / counts.latency_samples

            descriptor.performance_metrics = PerformanceMetrics(
                average_response_time_ms=average,
                success_rate_percent=counts.successes / counts.attempts * 100,
                uptime_percent=current.uptime_percent,
                last_updated=datetime.now(timezone.utc),
            )

    # -------------------------------------------------------------------------
    # Reporting
    # -------------------------------------------------------------------------

    def get_usage_analytics(self) -> UsageAnalytics:
        return self._tracker.get_analytics()

    def get_detailed_capabilities(self) -> DetailedCapabilities:
        """
        Summarise the configured providers without naming any of them.

        Universal sentinels are left out of the language/framework lists.
        """
        descriptors = self._registry.list_available()
        if not descriptors:
            return DetailedCapabilities()

        languages: dict[str, None] = {}
        frameworks: dict[str, None] = {}
        for descriptor in descriptors:
            for capability in descriptor.capabilities:
                for language in capability.languages:
                    if language != UNIVERSAL_LANGUAGES:
                        languages.setdefault(language)
                for framework in capability.frameworks:
                    if framework != UNIVERSAL_FRAMEWORKS:
                        frameworks.setdefault(framework)

        count = len(descriptors)
        return DetailedCapabilities(
            average_response_time_ms=sum(
                d.performance_metrics.average_response_time_ms for d in descriptors
            )
            / count,
            overall_uptime_percent=sum(
                d.performance_metrics.uptime_percent for d in descriptors
            )
            / count,
            supported_languages=list(languages),
            supported_frameworks=list(frameworks),
            provider_count=count,
        )

    def get_display_name(self) -> str:
        return self._identity.name

    def get_model_info(self) -> str:
        """Architecture label, with the engine count when any are configured."""
        count = len(self._registry)
        if count == 0:
            return self._identity.architecture
        return f"{self._identity.architecture} ({count} engines available)"
