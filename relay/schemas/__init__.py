"""
Schemas module: Pydantic request/response models.

This module provides validated data models for the Neural Relay API:
- Request/response models for /dispatch and provider management
- Analytics and metrics response models
- Error response models for consistent error handling
- Health check response models

Example usage:
    from relay.schemas import DispatchRequest, provider_summary_from_descriptor

    request = DispatchRequest(prompt="Write a debounce helper")
    payload = request.to_payload()
"""

from relay.schemas.api import (
    # Request models
    DispatchRequest,
    SwitchProviderRequest,
    AnalyzeRequest,
    # Response models
    BrandMetadata,
    DispatchResponse,
    AnalyzeResponse,
    CapabilitySummary,
    PerformanceSummary,
    ProviderSummary,
    ProviderListResponse,
    ActiveProviderResponse,
    BestProviderResponse,
    # Analytics and metrics models
    UsageLogSchema,
    AnalyticsResponse,
    LatencyStats,
    ProviderMetrics,
    MetricsResponse,
    # Error models
    ErrorCodes,
    ErrorDetail,
    ErrorResponse,
    # Health models
    ComponentHealth,
    HealthResponse,
    # Conversion utilities
    provider_summary_from_descriptor,
    analytics_response_from_usage,
    latency_stats_from_summary,
)

__all__ = [
    "DispatchRequest",
    "SwitchProviderRequest",
    "AnalyzeRequest",
    "BrandMetadata",
    "DispatchResponse",
    "AnalyzeResponse",
    "CapabilitySummary",
    "PerformanceSummary",
    "ProviderSummary",
    "ProviderListResponse",
    "ActiveProviderResponse",
    "BestProviderResponse",
    "UsageLogSchema",
    "AnalyticsResponse",
    "LatencyStats",
    "ProviderMetrics",
    "MetricsResponse",
    "ErrorCodes",
    "ErrorDetail",
    "ErrorResponse",
    "ComponentHealth",
    "HealthResponse",
    "provider_summary_from_descriptor",
    "analytics_response_from_usage",
    "latency_stats_from_summary",
]
