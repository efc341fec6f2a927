"""
Provider Registry

This module defines the pool of upstream AI backends with metadata for each:
- Connection data (endpoint, model, API key, wire format)
- Declared capabilities per task type with a proficiency rating
- Pricing tier and per-token cost
- Performance metrics seeded from configuration and refreshed after calls

Display names are branded engine labels. Vendor names never appear in
anything a caller can see; they only live in the endpoint/model strings
used by the adapters.

A descriptor is "available" when it carries a non-empty API key. The registry
only admits available descriptors, so a deployment with fewer configured keys
is still valid, just smaller.
"""

from collections.abc import Iterable
from datetime import datetime, timezone
from enum import Enum
import logging

from pydantic import BaseModel, Field

from relay.config import Settings

logger = logging.getLogger(__name__)

UNIVERSAL_LANGUAGES = "All major languages"
UNIVERSAL_FRAMEWORKS = "All major frameworks"


class TaskType(str, Enum):
    """Task tags understood by the capability matcher."""

    CODE_GENERATION = "code_generation"
    CODE_COMPLETION = "code_completion"
    CODE_ANALYSIS = "code_analysis"
    SECURITY_ANALYSIS = "security_analysis"
    REFACTORING = "refactoring"
    DEBUGGING = "debugging"
    TESTING = "testing"
    DOCUMENTATION = "documentation"


class Proficiency(str, Enum):
    """Ordinal skill rating for a capability."""

    BASIC = "basic"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    EXPERT = "expert"

    @property
    def rank(self) -> int:
        """Ordinal position, higher is better."""
        return _PROFICIENCY_ORDER[self]


_PROFICIENCY_ORDER = {
    Proficiency.BASIC: 0,
    Proficiency.INTERMEDIATE: 1,
    Proficiency.ADVANCED: 2,
    Proficiency.EXPERT: 3,
}


class PricingTier(str, Enum):
    """Commercial tier of a provider."""

    FREE = "free"
    STANDARD = "standard"
    PREMIUM = "premium"
    ENTERPRISE = "enterprise"


class WireFormat(str, Enum):
    """Request/response shape spoken by a provider's API."""

    ANTHROPIC = "anthropic"  # Messages API
    OPENAI = "openai"  # Chat completions, also used by compatible hosts
    GROQ = "groq"  # Chat completions through the Groq SDK


class Capability(BaseModel):
    """A declared (task type, proficiency, languages, frameworks) tuple."""

    task_type: TaskType
    proficiency: Proficiency
    languages: list[str] = Field(default_factory=list)
    frameworks: list[str] = Field(default_factory=list)

    def supports_language(self, language: str) -> bool:
        """Case-insensitive language check honouring the universal sentinel."""
        return _contains(self.languages, language, UNIVERSAL_LANGUAGES)

    def supports_framework(self, framework: str) -> bool:
        """Case-insensitive framework check honouring the universal sentinel."""
        return _contains(self.frameworks, framework, UNIVERSAL_FRAMEWORKS)


def _contains(declared: list[str], wanted: str, sentinel: str) -> bool:
    wanted = wanted.lower()
    for entry in declared:
        lowered = entry.lower()
        if lowered == wanted or lowered == sentinel.lower():
            return True
    return False


class Pricing(BaseModel):
    """Pricing tier and flat per-token cost in USD."""

    tier: PricingTier
    cost_per_token: float = Field(..., ge=0)


class PerformanceMetrics(BaseModel):
    """
    Observed performance of a provider.

    Seeded from the catalog and refreshed by the provider manager after
    each completed attempt.
    """

    average_response_time_ms: float = Field(..., ge=0)
    success_rate_percent: float = Field(..., ge=0, le=100)
    uptime_percent: float = Field(..., ge=0, le=100)
    last_updated: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )


class ProviderDescriptor(BaseModel):
    """
    Complete description of one upstream backend.

    This class holds all information needed to:
    1. Rank the provider for a task
    2. Dispatch requests through the correct adapter
    3. Price and monitor the calls it serves
    """

    key: str = Field(..., min_length=1, description="Stable provider identifier")

    display_name: str = Field(..., description="Branded, vendor-free label")

    endpoint: str = Field(..., description="Base URL handed to the SDK client")

    model: str = Field(..., description="Model name used in API calls")

    api_key: str = Field(default="", repr=False, description="Credential")

    wire_format: WireFormat = Field(..., description="Adapter selector")

    context_window: int = Field(..., gt=0, description="Token budget")

    capabilities: list[Capability] = Field(default_factory=list)

    pricing: Pricing

    performance_metrics: PerformanceMetrics

    @property
    def is_available(self) -> bool:
        """A provider is usable only with a non-empty credential."""
        return bool(self.api_key)

    def capability_for(self, task_type: str) -> Capability | None:
        """Return the declared capability for a task type, if any."""
        for capability in self.capabilities:
            if capability.task_type.value == task_type:
                return capability
        return None

    def best_proficiency(self) -> Proficiency | None:
        """Highest proficiency across all declared capabilities."""
        if not self.capabilities:
            return None
        return max((c.proficiency for c in self.capabilities), key=lambda p: p.rank)


class ProviderRegistry:
    """
    Registry of available providers in declared order.

    Declared order matters: the capability matcher uses it to break
    proficiency ties, which keeps rankings reproducible.

    Attributes:
        _providers: Dictionary mapping provider keys to their descriptors
    """

    def __init__(self, descriptors: Iterable[ProviderDescriptor] = ()) -> None:
        self._providers: dict[str, ProviderDescriptor] = {}
        for descriptor in descriptors:
            self._register(descriptor)

    def _register(self, descriptor: ProviderDescriptor) -> None:
        """Register a descriptor, skipping it when no credential is present."""
        if not descriptor.is_available:
            logger.debug(f"Provider '{descriptor.key}' has no API key, skipping")
            return
        if descriptor.key in self._providers:
            raise ValueError(f"Duplicate provider key: {descriptor.key}")
        self._providers[descriptor.key] = descriptor

    @classmethod
    def from_settings(cls, settings: Settings) -> "ProviderRegistry":
        """
        Build the registry from the default catalog and configured credentials.

        Args:
            settings: Application settings holding keys and overrides

        Returns:
            ProviderRegistry containing only the providers with credentials
        """
        registry = cls(build_default_catalog(settings))
        logger.info(
            f"Provider registry built with {len(registry)} available "
            f"provider(s): {', '.join(registry.keys()) or 'none'}"
        )
        return registry

    def get(self, key: str) -> ProviderDescriptor | None:
        """
        Retrieve a descriptor by key.

        Args:
            key: The provider key

        Returns:
            ProviderDescriptor if registered, None otherwise
        """
        return self._providers.get(key)

    def list_available(self) -> list[ProviderDescriptor]:
        """
        Return all available descriptors in declared order.

        Returns:
            List of ProviderDescriptor instances
        """
        return list(self._providers.values())

    def keys(self) -> list[str]:
        """Return registered provider keys in declared order."""
        return list(self._providers.keys())

    def position(self, key: str) -> int:
        """Declared position of a key, used as the stable tie-breaker."""
        return self.keys().index(key)

    def __contains__(self, key: object) -> bool:
        return key in self._providers

    def __len__(self) -> int:
        return len(self._providers)


_COMMON_LANGUAGES = [
    "typescript",
    "javascript",
    "python",
    "rust",
    "go",
    "java",
    "csharp",
]

_COMMON_FRAMEWORKS = [
    "react",
    "next.js",
    "vue",
    "angular",
    "express",
    "fastapi",
    "django",
]


def _secret(settings: Settings, field_name: str) -> str:
    value = getattr(settings, field_name)
    return value.get_secret_value() if value else ""


def build_default_catalog(settings: Settings) -> list[ProviderDescriptor]:
    """
    Build the default provider catalog in declared order.

    Keys come from the dedicated settings fields; entries in
    provider_overrides replace the key, endpoint or model per provider.

    Args:
        settings: Application settings

    Returns:
        Every catalog descriptor, including those without a key
    """
    catalog = [
        ProviderDescriptor(
            key="primary",
            display_name="CroweCode Neural Engine Pro",
            endpoint="https://api.anthropic.com",
            model="claude-opus-4-1-20250805",
            api_key=_secret(settings, "anthropic_api_key"),
            wire_format=WireFormat.ANTHROPIC,
            context_window=200_000,
            capabilities=[
                Capability(
                    task_type=TaskType.CODE_GENERATION,
                    proficiency=Proficiency.EXPERT,
                    languages=_COMMON_LANGUAGES,
                    frameworks=_COMMON_FRAMEWORKS,
                ),
                Capability(
                    task_type=TaskType.CODE_ANALYSIS,
                    proficiency=Proficiency.EXPERT,
                    languages=[UNIVERSAL_LANGUAGES],
                    frameworks=[UNIVERSAL_FRAMEWORKS],
                ),
                Capability(
                    task_type=TaskType.SECURITY_ANALYSIS,
                    proficiency=Proficiency.EXPERT,
                    languages=[UNIVERSAL_LANGUAGES],
                ),
                Capability(
                    task_type=TaskType.REFACTORING,
                    proficiency=Proficiency.EXPERT,
                    languages=[UNIVERSAL_LANGUAGES],
                ),
                Capability(
                    task_type=TaskType.CODE_COMPLETION,
                    proficiency=Proficiency.ADVANCED,
                    languages=[UNIVERSAL_LANGUAGES],
                ),
                Capability(
                    task_type=TaskType.DOCUMENTATION,
                    proficiency=Proficiency.ADVANCED,
                    languages=[UNIVERSAL_LANGUAGES],
                ),
            ],
            pricing=Pricing(tier=PricingTier.ENTERPRISE, cost_per_token=0.000015),
            performance_metrics=PerformanceMetrics(
                average_response_time_ms=2500,
                success_rate_percent=99.9,
                uptime_percent=99.99,
            ),
        ),
        ProviderDescriptor(
            key="gpt4-turbo",
            display_name="CroweCode Advanced Engine",
            endpoint="https://api.openai.com/v1",
            model="gpt-4-turbo",
            api_key=_secret(settings, "openai_api_key"),
            wire_format=WireFormat.OPENAI,
            context_window=128_000,
            capabilities=[
                Capability(
                    task_type=TaskType.CODE_GENERATION,
                    proficiency=Proficiency.EXPERT,
                    languages=[UNIVERSAL_LANGUAGES],
                    frameworks=_COMMON_FRAMEWORKS,
                ),
                Capability(
                    task_type=TaskType.CODE_COMPLETION,
                    proficiency=Proficiency.EXPERT,
                    languages=[UNIVERSAL_LANGUAGES],
                ),
                Capability(
                    task_type=TaskType.DOCUMENTATION,
                    proficiency=Proficiency.EXPERT,
                    languages=[UNIVERSAL_LANGUAGES],
                ),
                Capability(
                    task_type=TaskType.CODE_ANALYSIS,
                    proficiency=Proficiency.ADVANCED,
                    languages=[UNIVERSAL_LANGUAGES],
                ),
                Capability(
                    task_type=TaskType.TESTING,
                    proficiency=Proficiency.ADVANCED,
                    languages=_COMMON_LANGUAGES,
                    frameworks=["jest", "pytest", "vitest"],
                ),
                Capability(
                    task_type=TaskType.DEBUGGING,
                    proficiency=Proficiency.ADVANCED,
                    languages=[UNIVERSAL_LANGUAGES],
                ),
            ],
            pricing=Pricing(tier=PricingTier.PREMIUM, cost_per_token=0.00001),
            performance_metrics=PerformanceMetrics(
                average_response_time_ms=3000,
                success_rate_percent=99.5,
                uptime_percent=99.9,
            ),
        ),
        ProviderDescriptor(
            key="grok",
            display_name="CroweCode Rapid Reasoning Engine",
            endpoint="https://api.x.ai/v1",
            model="grok-2-latest",
            api_key=_secret(settings, "xai_api_key"),
            wire_format=WireFormat.OPENAI,
            context_window=131_072,
            capabilities=[
                Capability(
                    task_type=TaskType.DEBUGGING,
                    proficiency=Proficiency.EXPERT,
                    languages=[UNIVERSAL_LANGUAGES],
                ),
                Capability(
                    task_type=TaskType.CODE_GENERATION,
                    proficiency=Proficiency.ADVANCED,
                    languages=["python", "javascript", "typescript", "go"],
                    frameworks=["fastapi", "express", "react"],
                ),
                Capability(
                    task_type=TaskType.CODE_ANALYSIS,
                    proficiency=Proficiency.ADVANCED,
                    languages=[UNIVERSAL_LANGUAGES],
                ),
                Capability(
                    task_type=TaskType.SECURITY_ANALYSIS,
                    proficiency=Proficiency.ADVANCED,
                    languages=[UNIVERSAL_LANGUAGES],
                ),
            ],
            pricing=Pricing(tier=PricingTier.PREMIUM, cost_per_token=0.000005),
            performance_metrics=PerformanceMetrics(
                average_response_time_ms=1800,
                success_rate_percent=98.5,
                uptime_percent=99.5,
            ),
        ),
        ProviderDescriptor(
            key="gemini",
            display_name="CroweCode Long-Context Engine",
            endpoint="https://generativelanguage.googleapis.com/v1beta/openai/",
            model="gemini-1.5-pro",
            api_key=_secret(settings, "google_ai_key"),
            wire_format=WireFormat.OPENAI,
            context_window=2_000_000,
            capabilities=[
                Capability(
                    task_type=TaskType.CODE_ANALYSIS,
                    proficiency=Proficiency.EXPERT,
                    languages=[UNIVERSAL_LANGUAGES],
                    frameworks=[UNIVERSAL_FRAMEWORKS],
                ),
                Capability(
                    task_type=TaskType.DOCUMENTATION,
                    proficiency=Proficiency.ADVANCED,
                    languages=[UNIVERSAL_LANGUAGES],
                ),
                Capability(
                    task_type=TaskType.CODE_GENERATION,
                    proficiency=Proficiency.ADVANCED,
                    languages=["python", "java", "go", "kotlin", "typescript"],
                    frameworks=["angular", "flutter", "django"],
                ),
                Capability(
                    task_type=TaskType.TESTING,
                    proficiency=Proficiency.ADVANCED,
                    languages=[UNIVERSAL_LANGUAGES],
                ),
            ],
            pricing=Pricing(tier=PricingTier.STANDARD, cost_per_token=0.0000035),
            performance_metrics=PerformanceMetrics(
                average_response_time_ms=2200,
                success_rate_percent=99.0,
                uptime_percent=99.9,
            ),
        ),
        ProviderDescriptor(
            key="codex",
            display_name="CroweCode Completion Engine",
            endpoint="https://api.openai.com/v1",
            model="gpt-4.1-mini",
            api_key=_secret(settings, "codex_api_key"),
            wire_format=WireFormat.OPENAI,
            context_window=128_000,
            capabilities=[
                Capability(
                    task_type=TaskType.CODE_COMPLETION,
                    proficiency=Proficiency.EXPERT,
                    languages=[UNIVERSAL_LANGUAGES],
                ),
                Capability(
                    task_type=TaskType.CODE_GENERATION,
                    proficiency=Proficiency.INTERMEDIATE,
                    languages=_COMMON_LANGUAGES,
                ),
                Capability(
                    task_type=TaskType.TESTING,
                    proficiency=Proficiency.INTERMEDIATE,
                    languages=_COMMON_LANGUAGES,
                ),
            ],
            pricing=Pricing(tier=PricingTier.STANDARD, cost_per_token=0.0000004),
            performance_metrics=PerformanceMetrics(
                average_response_time_ms=900,
                success_rate_percent=99.2,
                uptime_percent=99.9,
            ),
        ),
        ProviderDescriptor(
            key="instant",
            display_name="CroweCode Instant Engine",
            endpoint="https://api.groq.com",
            model="llama-3.3-70b-versatile",
            api_key=_secret(settings, "groq_api_key"),
            wire_format=WireFormat.GROQ,
            context_window=131_072,
            capabilities=[
                Capability(
                    task_type=TaskType.CODE_COMPLETION,
                    proficiency=Proficiency.ADVANCED,
                    languages=[UNIVERSAL_LANGUAGES],
                ),
                Capability(
                    task_type=TaskType.CODE_GENERATION,
                    proficiency=Proficiency.INTERMEDIATE,
                    languages=["python", "javascript", "typescript"],
                ),
                Capability(
                    task_type=TaskType.DOCUMENTATION,
                    proficiency=Proficiency.INTERMEDIATE,
                    languages=[UNIVERSAL_LANGUAGES],
                ),
            ],
            pricing=Pricing(tier=PricingTier.FREE, cost_per_token=0.00000059),
            performance_metrics=PerformanceMetrics(
                average_response_time_ms=400,
                success_rate_percent=98.0,
                uptime_percent=99.5,
            ),
        ),
    ]

    return [_apply_override(settings, descriptor) for descriptor in catalog]


def _apply_override(
    settings: Settings, descriptor: ProviderDescriptor
) -> ProviderDescriptor:
    override = settings.provider_overrides.get(descriptor.key)
    if override is None:
        return descriptor

    update: dict[str, str] = {}
    if override.api_key is not None:
        update["api_key"] = override.api_key.get_secret_value()
    if override.endpoint:
        update["endpoint"] = override.endpoint
    if override.model:
        update["model"] = override.model
    return descriptor.model_copy(update=update)
