"""
Manager module: Provider orchestration, branding and task helpers.

Key exports:
- ProviderManager: Capability-ranked dispatch with ordered fallback
- DetailedCapabilities: Vendor-free summary of configured providers
- BrandIdentity, BrandedDispatcher: Uniform outward identity
- generate_code, generate_completion, analyze_code, get_ai_capabilities
"""

from relay.manager.branding import BrandedDispatcher, BrandIdentity
from relay.manager.provider_manager import DetailedCapabilities, ProviderManager
from relay.manager.tasks import (
    analyze_code,
    generate_code,
    generate_completion,
    get_ai_capabilities,
)

__all__ = [
    "ProviderManager",
    "DetailedCapabilities",
    "BrandIdentity",
    "BrandedDispatcher",
    "generate_code",
    "generate_completion",
    "analyze_code",
    "get_ai_capabilities",
]
