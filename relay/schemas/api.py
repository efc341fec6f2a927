"""
Pydantic Schemas for the Relay API

This module defines the request and response models for the Neural Relay API:
- DispatchRequest: Prompt, task type and pass-through task options
- DispatchResponse: Raw provider payload plus branded metadata
- Provider, analytics, metrics, error and health schemas

Nothing here carries an endpoint, upstream model name or credential.
Providers are described by key, branded display name and declared
capabilities only.
"""

from datetime import datetime
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

if TYPE_CHECKING:
    from relay.metrics.store import LatencySummary
    from relay.metrics.usage import UsageAnalytics
    from relay.registry.models import ProviderDescriptor


# =============================================================================
# REQUEST MODELS
# =============================================================================


class DispatchRequest(BaseModel):
    """
    Request body for the /dispatch endpoint.

    Example:
        {
            "prompt": "Write a debounce helper",
            "task_type": "code_generation",
            "options": {"language": "typescript", "max_tokens": 800}
        }
    """

    prompt: str = Field(
        ...,
        min_length=1,
        max_length=200_000,
        description="Prompt forwarded to the selected provider",
    )

    task_type: str = Field(
        default="code_generation",
        min_length=1,
        description="Task tag used for capability matching",
    )

    options: dict[str, Any] = Field(
        default_factory=dict,
        description="Task options forwarded untouched (system, max_tokens, temperature, ...)",
    )

    @field_validator("prompt")
    @classmethod
    def validate_prompt_not_whitespace(cls, v: str) -> str:
        """Ensure prompt is not empty or whitespace only."""
        if not v.strip():
            raise ValueError("Prompt cannot be empty or whitespace only")
        return v

    def to_payload(self) -> dict[str, Any]:
        """Flatten into the {prompt, ...options} payload the dispatcher takes."""
        return {"prompt": self.prompt, **self.options}

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {
                    "prompt": "Write a debounce helper",
                    "task_type": "code_generation",
                    "options": {"language": "typescript"},
                },
            ]
        }
    )


class SwitchProviderRequest(BaseModel):
    """Request body for POST /providers/active."""

    key: str = Field(..., min_length=1, description="Provider key to activate")


class AnalyzeRequest(BaseModel):
    """Request body for the /analyze endpoint."""

    code: str = Field(..., min_length=1, max_length=200_000)
    language: str = Field(..., min_length=1, examples=["javascript"])
    file_path: str | None = Field(default=None, examples=["utils.js"])

    @field_validator("code")
    @classmethod
    def validate_code_not_whitespace(cls, v: str) -> str:
        """Ensure code is not empty or whitespace only."""
        if not v.strip():
            raise ValueError("Code cannot be empty or whitespace only")
        return v


# =============================================================================
# RESPONSE MODELS
# =============================================================================


class BrandMetadata(BaseModel):
    """Uniform identity stamped on every outward response."""

    model: str = Field(..., description="Branded model label")
    provider: str = Field(..., description="Branded provider label")
    capabilities: str = Field(..., description="Branded capability summary")


class DispatchResponse(BaseModel):
    """
    Response from the /dispatch endpoint.

    Example:
        {
            "result": {"id": "msg_1", "content": [...], "model": "CroweCode Neural Engine v4.0"},
            "metadata": {
                "model": "CroweCode Neural Engine v4.0",
                "provider": "CroweCode™ Proprietary",
                "capabilities": "Advanced Reasoning + Multi-step Execution"
            }
        }
    """

    result: dict[str, Any] = Field(..., description="Provider response payload")
    metadata: BrandMetadata


class AnalyzeResponse(BaseModel):
    """Structured code analysis returned by /analyze."""

    completion: str = ""
    refactoring: str = ""
    fixes: list[Any] = Field(default_factory=list)
    optimization: str = ""
    documentation: str = ""


class CapabilitySummary(BaseModel):
    """Declared capability of a provider."""

    task_type: str
    proficiency: str
    languages: list[str] = Field(default_factory=list)
    frameworks: list[str] = Field(default_factory=list)


class PerformanceSummary(BaseModel):
    """Observed performance of a provider."""

    average_response_time_ms: float = Field(..., ge=0.0)
    success_rate_percent: float = Field(..., ge=0.0, le=100.0)
    uptime_percent: float = Field(..., ge=0.0, le=100.0)
    last_updated: datetime


class ProviderSummary(BaseModel):
    """Caller-safe view of one provider."""

    key: str
    display_name: str
    context_window: int
    pricing_tier: str
    capabilities: list[CapabilitySummary] = Field(default_factory=list)
    performance: PerformanceSummary


class ProviderListResponse(BaseModel):
    """Response from GET /providers."""

    active: str | None = Field(default=None, description="Active provider key")
    providers: list[ProviderSummary] = Field(default_factory=list)
    total_providers: int = Field(default=0, ge=0)


class ActiveProviderResponse(BaseModel):
    """Response from GET/POST /providers/active."""

    configured: bool
    provider: ProviderSummary | None = None


class BestProviderResponse(BaseModel):
    """Response from GET /providers/best."""

    task_type: str
    language: str | None = None
    framework: str | None = None
    provider: ProviderSummary | None = Field(
        default=None, description="Top-ranked provider, null when unsupported"
    )


class UsageLogSchema(BaseModel):
    """One usage log entry."""

    type: Literal["request", "success", "error", "switch"]
    provider: str
    timestamp: datetime
    task_type: str | None = None
    error: str | None = None


class AnalyticsResponse(BaseModel):
    """Response from GET /analytics."""

    total_requests: int = Field(default=0, ge=0)
    total_successes: int = Field(default=0, ge=0)
    total_errors: int = Field(default=0, ge=0)
    total_switches: int = Field(default=0, ge=0)
    providers: list[str] = Field(default_factory=list)
    last_activity: datetime | None = None
    logs: list[UsageLogSchema] = Field(default_factory=list)


class LatencyStats(BaseModel):
    """Order statistics over latency samples, in milliseconds."""

    count: int = Field(default=0, ge=0)
    min: float = 0.0
    max: float = 0.0
    avg: float = 0.0
    p50: float = 0.0
    p95: float = 0.0
    p99: float = 0.0


class ProviderMetrics(BaseModel):
    """Aggregated attempt metrics for one provider."""

    provider_key: str
    attempt_count: int = Field(default=0, ge=0)
    success_count: int = Field(default=0, ge=0)
    failure_count: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)
    total_cost_usd: float = Field(default=0.0, ge=0.0)
    latency: LatencyStats = Field(default_factory=LatencyStats)


class MetricsResponse(BaseModel):
    """
    Response from the /metrics endpoint.

    Example:
        {
            "total_attempts": 120,
            "total_successes": 117,
            "total_failures": 3,
            "attempts_by_provider": {...},
            "attempts_by_task": {"code_generation": 80, "code_completion": 40},
            "total_cost_usd": 0.42,
            "baseline_cost_usd": 1.35,
            "cost_savings_percent": 68.9,
            "latency": {"count": 120, "p50": 1900.0, ...}
        }
    """

    total_attempts: int = Field(default=0, ge=0)
    total_successes: int = Field(default=0, ge=0)
    total_failures: int = Field(default=0, ge=0)
    attempts_by_provider: dict[str, ProviderMetrics] = Field(default_factory=dict)
    attempts_by_task: dict[str, int] = Field(default_factory=dict)
    total_cost_usd: float = Field(default=0.0, ge=0.0)
    baseline_cost_usd: float = Field(default=0.0, ge=0.0)
    cost_savings_percent: float = 0.0
    latency: LatencyStats = Field(default_factory=LatencyStats)


# =============================================================================
# ERROR MODELS
# =============================================================================


class ErrorCodes:
    """
    Standard error codes for API responses.

    These codes enable programmatic error handling by clients
    without parsing human-readable messages.
    """

    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_CONFIGURED = "NOT_CONFIGURED"
    UNSUPPORTED_TASK = "UNSUPPORTED_TASK"
    UNKNOWN_PROVIDER = "UNKNOWN_PROVIDER"
    PROVIDERS_EXHAUSTED = "PROVIDERS_EXHAUSTED"
    CLIENT_DISCONNECTED = "CLIENT_DISCONNECTED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ErrorDetail(BaseModel):
    """Detailed error information for API error responses."""

    code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    field: str | None = Field(
        default=None, description="Field that caused the error (validation only)"
    )


class ErrorResponse(BaseModel):
    """
    Standard error response format for all API errors.

    Example:
        {
            "error": {
                "code": "PROVIDERS_EXHAUSTED",
                "message": "CroweCode™ Intelligence System is experiencing high demand. Please try again."
            }
        }
    """

    error: ErrorDetail


# =============================================================================
# HEALTH MODELS
# =============================================================================


class ComponentHealth(BaseModel):
    """Health status of an individual system component."""

    name: str
    status: Literal["healthy", "degraded", "unhealthy"]
    message: str | None = None


class HealthResponse(BaseModel):
    """Response from the /health endpoint."""

    status: Literal["healthy", "degraded", "unhealthy"]
    service: str = Field(default="neural-relay")
    version: str
    components: list[ComponentHealth] = Field(default_factory=list)
    uptime_seconds: float | None = Field(default=None, ge=0.0)


# =============================================================================
# CONVERSION UTILITIES
# =============================================================================


def provider_summary_from_descriptor(
    descriptor: "ProviderDescriptor",
) -> ProviderSummary:
    """
    Convert a ProviderDescriptor into its caller-safe summary.

    Endpoint, upstream model name and credential are dropped.
    """
    metrics = descriptor.performance_metrics
    return ProviderSummary(
        key=descriptor.key,
        display_name=descriptor.display_name,
        context_window=descriptor.context_window,
        pricing_tier=descriptor.pricing.tier.value,
        capabilities=[
            CapabilitySummary(
                task_type=c.task_type.value,
                proficiency=c.proficiency.value,
                languages=list(c.languages),
                frameworks=list(c.frameworks),
            )
            for c in descriptor.capabilities
        ],
        performance=PerformanceSummary(
            average_response_time_ms=metrics.average_response_time_ms,
            success_rate_percent=metrics.success_rate_percent,
            uptime_percent=metrics.uptime_percent,
            last_updated=metrics.last_updated,
        ),
    )


def analytics_response_from_usage(analytics: "UsageAnalytics") -> AnalyticsResponse:
    """Convert a UsageAnalytics snapshot into the API model."""
    return AnalyticsResponse(
        total_requests=analytics.total_requests,
        total_successes=analytics.total_successes,
        total_errors=analytics.total_errors,
        total_switches=analytics.total_switches,
        providers=list(analytics.providers),
        last_activity=analytics.last_activity,
        logs=[UsageLogSchema(**entry.to_dict()) for entry in analytics.logs],
    )


def latency_stats_from_summary(summary: "LatencySummary") -> LatencyStats:
    """Convert a LatencySummary dataclass into the API model."""
    return LatencyStats(
        count=summary.count,
        min=round(summary.min, 2),
        max=round(summary.max, 2),
        avg=round(summary.avg, 2),
        p50=round(summary.p50, 2),
        p95=round(summary.p95, 2),
        p99=round(summary.p99, 2),
    )
