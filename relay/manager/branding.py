"""
Branding - one public identity regardless of the serving backend.

BrandedDispatcher wraps a ProviderManager and rewrites what leaves the
service: the response's model/provider fields become the brand labels and
a metadata block is attached. The manager itself, its usage log and its
provider keys are never touched.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from relay.config import Settings
from relay.dispatcher.errors import (
    ConfigurationError,
    FallbackExhaustedError,
    UnsupportedTaskError,
)
from relay.registry.models import WireFormat

if TYPE_CHECKING:
    from relay.manager.provider_manager import ProviderManager

# Top-level response fields that identify the serving vendor, per wire shape
VENDOR_RESPONSE_KEYS: dict[WireFormat, frozenset[str]] = {
    WireFormat.ANTHROPIC: frozenset(),
    WireFormat.OPENAI: frozenset({"system_fingerprint", "service_tier"}),
    WireFormat.GROQ: frozenset({"x_groq", "usage_breakdown", "system_fingerprint"}),
}

_STRIPPED_KEYS = frozenset().union(*VENDOR_RESPONSE_KEYS.values())


@dataclass(frozen=True)
class BrandIdentity:
    """
    The strings callers see instead of any vendor identity.

    Attributes:
        name: Product name, e.g. "CroweCode™ Intelligence System"
        model: Model label stamped on responses
        provider: Provider label stamped on responses
        capabilities: One-line capability summary
        architecture: Label used by model info
    """

    name: str = "CroweCode™ Intelligence System"
    model: str = "CroweCode Neural Engine v4.0"
    provider: str = "CroweCode™ Proprietary"
    capabilities: str = "Advanced Reasoning + Multi-step Execution"
    architecture: str = "CroweCode Neural Architecture v4.1"

    @classmethod
    def from_settings(cls, settings: Settings) -> "BrandIdentity":
        return cls(
            name=settings.brand_name,
            model=settings.brand_model_name,
            provider=settings.brand_provider_name,
            capabilities=settings.brand_capabilities,
            architecture=settings.brand_architecture_name,
        )

    def metadata(self) -> dict[str, str]:
        """Metadata block attached to every outward response."""
        return {
            "model": self.model,
            "provider": self.provider,
            "capabilities": self.capabilities,
        }

    def error_message(self, error: BaseException) -> str:
        """
        Caller-facing message for a dispatch failure.

        Never includes the underlying provider error, which may name a vendor.
        """
        if isinstance(error, ConfigurationError):
            return f"{self.name} is not configured. Please contact support."
        if isinstance(error, UnsupportedTaskError):
            return f"{self.name} does not support task type: {error.task_type}"
        if isinstance(error, FallbackExhaustedError):
            return f"{self.name} is experiencing high demand. Please try again."
        return f"{self.name} is temporarily unavailable."


class BrandedDispatcher:
    """
    Decorator around ProviderManager that brands outward responses.

    Example:
        dispatcher = BrandedDispatcher(manager, BrandIdentity())
        response = await dispatcher.dispatch({"prompt": "..."}, "code_generation")
        response["metadata"]["model"]  # "CroweCode Neural Engine v4.0"
    """

    def __init__(self, manager: "ProviderManager", identity: BrandIdentity | None = None):
        self._manager = manager
        self._identity = identity or BrandIdentity()

    @property
    def manager(self) -> "ProviderManager":
        return self._manager

    @property
    def identity(self) -> BrandIdentity:
        return self._identity

    def brand(self, raw: dict[str, Any]) -> dict[str, Any]:
        """
        Apply the brand identity to a raw provider response.

        Vendor-identifying top-level fields are dropped; content is untouched.

        Args:
            raw: Response returned by execute_with_fallback

        Returns:
            {"result": branded copy of raw, "metadata": brand metadata}
        """
        result = {key: value for key, value in raw.items() if key not in _STRIPPED_KEYS}
        if "model" in result:
            result["model"] = self._identity.model
        if "provider" in result:
            result["provider"] = self._identity.provider
        return {"result": result, "metadata": self._identity.metadata()}

    async def dispatch(self, request: dict[str, Any], task_type: str) -> dict[str, Any]:
        """Run execute_with_fallback and brand the response."""
        raw = await self._manager.execute_with_fallback(request, task_type)
        return self.brand(raw)

    def get_display_name(self) -> str:
        return self._manager.get_display_name()

    def get_model_info(self) -> str:
        return self._manager.get_model_info()
