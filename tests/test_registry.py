"""
Registry and Configuration Tests

Validates descriptor availability, the default catalog, per-provider
overrides and the settings layer.

Test Categories:
1. TestProviderDescriptor - Availability and capability lookup
2. TestProviderRegistry - Registration rules and ordering
3. TestDefaultCatalog - Catalog built from settings
4. TestSettings - Environment loading and key reporting
"""

import pytest
from pydantic import ValidationError

from relay.config import ProviderOverride, Settings, get_settings
from relay.registry.models import (
    Capability,
    Proficiency,
    ProviderRegistry,
    TaskType,
    WireFormat,
    build_default_catalog,
)


class TestProviderDescriptor:
    """Unit tests for ProviderDescriptor helpers."""

    def test_available_with_key(self, make_descriptor):
        """A non-empty key makes a descriptor available."""
        assert make_descriptor("a").is_available is True

    def test_unavailable_without_key(self, make_descriptor):
        """An empty key makes a descriptor unavailable."""
        assert make_descriptor("a", api_key="").is_available is False

    def test_api_key_not_in_repr(self, make_descriptor):
        """The credential is kept out of repr()."""
        assert "test-key-not-real" not in repr(make_descriptor("a"))

    def test_capability_for(self, make_descriptor):
        """Capability lookup by task tag."""
        descriptor = make_descriptor("a", {"debugging": "advanced"})

        assert descriptor.capability_for("debugging").proficiency == Proficiency.ADVANCED
        assert descriptor.capability_for("testing") is None

    def test_best_proficiency(self, make_descriptor):
        """Highest proficiency across capabilities."""
        descriptor = make_descriptor(
            "a", {"debugging": "basic", "testing": "advanced", "refactoring": "intermediate"}
        )

        assert descriptor.best_proficiency() == Proficiency.ADVANCED

    def test_proficiency_rank_order(self):
        """Proficiency ranks are strictly increasing."""
        ranks = [p.rank for p in Proficiency]
        assert ranks == sorted(ranks)
        assert Proficiency.EXPERT.rank > Proficiency.BASIC.rank

    def test_capability_sentinels(self):
        """Universal sentinels match any language or framework."""
        capability = Capability(
            task_type=TaskType.CODE_ANALYSIS,
            proficiency=Proficiency.EXPERT,
            languages=["All major languages"],
            frameworks=["All major frameworks"],
        )

        assert capability.supports_language("Haskell")
        assert capability.supports_framework("svelte")

    def test_invalid_success_rate_rejected(self, make_descriptor):
        """Performance percentages are bounded to [0, 100]."""
        from relay.registry.models import PerformanceMetrics

        with pytest.raises(ValidationError):
            PerformanceMetrics(
                average_response_time_ms=10, success_rate_percent=101, uptime_percent=99
            )


class TestProviderRegistry:
    """Unit tests for ProviderRegistry."""

    def test_keyless_descriptors_excluded(self, make_descriptor):
        """Descriptors without a key are silently dropped."""
        registry = ProviderRegistry(
            [make_descriptor("a"), make_descriptor("b", api_key=""), make_descriptor("c")]
        )

        assert registry.keys() == ["a", "c"]
        assert registry.get("b") is None
        assert "b" not in registry
        assert len(registry) == 2

    def test_declared_order_preserved(self, make_descriptor):
        """list_available() keeps declared order."""
        registry = ProviderRegistry([make_descriptor(k) for k in ("z", "m", "a")])

        assert [d.key for d in registry.list_available()] == ["z", "m", "a"]
        assert registry.position("a") == 2

    def test_duplicate_key_rejected(self, make_descriptor):
        """Registering the same key twice is a configuration error."""
        with pytest.raises(ValueError, match="Duplicate provider key"):
            ProviderRegistry([make_descriptor("a"), make_descriptor("a")])

    def test_empty_registry(self):
        """A registry may be empty."""
        registry = ProviderRegistry()

        assert registry.list_available() == []
        assert len(registry) == 0


class TestDefaultCatalog:
    """Tests for the catalog built from settings."""

    def test_all_keys_configured(self, full_settings):
        """With every key set, the whole catalog is available in order."""
        registry = ProviderRegistry.from_settings(full_settings)

        assert registry.keys() == [
            "primary",
            "gpt4-turbo",
            "grok",
            "gemini",
            "codex",
            "instant",
        ]

    def test_no_keys_configured(self, empty_settings):
        """Without keys the registry is empty."""
        assert len(ProviderRegistry.from_settings(empty_settings)) == 0

    def test_primary_provider(self, full_settings):
        """Primary engine carries the anthropic key and its catalog data."""
        primary = ProviderRegistry.from_settings(full_settings).get("primary")

        assert primary.api_key == "test-anthropic-key"
        assert primary.model == "claude-opus-4-1-20250805"
        assert primary.context_window == 200_000
        assert primary.wire_format == WireFormat.ANTHROPIC
        assert primary.pricing.cost_per_token == 0.000015
        assert "Neural Engine Pro" in primary.display_name

    def test_display_names_are_branded(self, full_settings):
        """No display name names a vendor."""
        for descriptor in build_default_catalog(full_settings):
            assert descriptor.display_name.startswith("CroweCode")
            for vendor in ("Claude", "OpenAI", "GPT", "Grok", "Gemini", "Groq", "Llama"):
                assert vendor.lower() not in descriptor.display_name.lower()

    def test_partial_configuration(self):
        """Only providers with keys are registered."""
        settings = Settings(_env_file=None, xai_api_key="x", groq_api_key="g")

        assert ProviderRegistry.from_settings(settings).keys() == ["grok", "instant"]

    def test_override_replaces_endpoint_and_model(self, full_settings):
        """Overrides change connection data for one provider only."""
        settings = full_settings.model_copy(
            update={
                "provider_overrides": {
                    "grok": ProviderOverride(
                        endpoint="https://proxy.invalid/v1", model="grok-beta"
                    )
                }
            }
        )

        registry = ProviderRegistry.from_settings(settings)

        assert registry.get("grok").endpoint == "https://proxy.invalid/v1"
        assert registry.get("grok").model == "grok-beta"
        assert registry.get("primary").endpoint == "https://api.anthropic.com"

    def test_override_supplies_missing_key(self, empty_settings):
        """An override api_key makes an otherwise keyless provider available."""
        settings = empty_settings.model_copy(
            update={"provider_overrides": {"codex": ProviderOverride(api_key="k")}}
        )

        assert ProviderRegistry.from_settings(settings).keys() == ["codex"]


class TestSettings:
    """Tests for the pydantic-settings configuration."""

    def test_defaults(self, empty_settings):
        """Defaults match the documented values."""
        assert empty_settings.provider_timeout_seconds == 60.0
        assert empty_settings.brand_name == "CroweCode™ Intelligence System"
        assert empty_settings.track_costs is True
        assert empty_settings.provider_overrides == {}

    def test_reads_environment(self, monkeypatch):
        """Keys and overrides are read from the environment."""
        monkeypatch.setenv("ANTHROPIC_API_KEY", "env-key")
        monkeypatch.setenv("PROVIDER_OVERRIDES", '{"grok": {"model": "grok-3"}}')
        monkeypatch.setenv("PROVIDER_TIMEOUT_SECONDS", "5")

        settings = get_settings()

        assert settings.anthropic_api_key.get_secret_value() == "env-key"
        assert settings.provider_overrides["grok"].model == "grok-3"
        assert settings.provider_timeout_seconds == 5.0

    def test_timeout_must_be_positive(self):
        """A zero timeout is rejected."""
        with pytest.raises(ValidationError):
            Settings(_env_file=None, provider_timeout_seconds=0)

    def test_blank_override_key_rejected(self):
        """Override keys must be non-empty."""
        with pytest.raises(ValidationError):
            Settings(_env_file=None, provider_overrides={" ": {"model": "m"}})

    def test_provider_keys_configured_hides_values(self, full_settings):
        """Key report contains booleans only."""
        report = full_settings.provider_keys_configured()

        assert all(value is True for value in report.values())
        assert "test-anthropic-key" not in str(report)

    def test_secret_not_in_repr(self, full_settings):
        """SecretStr keeps keys out of repr()."""
        assert "test-openai-key" not in repr(full_settings)
