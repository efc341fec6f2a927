"""
Registry module: Provider pool configuration and metadata.

This module contains:
- models.py: Provider descriptors with capability, pricing and performance data

Public API:
- TaskType, Proficiency, PricingTier, WireFormat: Enumerations
- Capability, Pricing, PerformanceMetrics: Descriptor building blocks
- ProviderDescriptor: Pydantic model for one upstream backend
- ProviderRegistry: Ordered registry of available providers
- build_default_catalog: The shipped provider catalog
"""

from relay.registry.models import (
    UNIVERSAL_FRAMEWORKS,
    UNIVERSAL_LANGUAGES,
    Capability,
    PerformanceMetrics,
    Pricing,
    PricingTier,
    Proficiency,
    ProviderDescriptor,
    ProviderRegistry,
    TaskType,
    WireFormat,
    build_default_catalog,
)

__all__ = [
    "UNIVERSAL_LANGUAGES",
    "UNIVERSAL_FRAMEWORKS",
    "TaskType",
    "Proficiency",
    "PricingTier",
    "WireFormat",
    "Capability",
    "Pricing",
    "PerformanceMetrics",
    "ProviderDescriptor",
    "ProviderRegistry",
    "build_default_catalog",
]
