"""
Pytest configuration and shared fixtures.

Provides fake provider adapters, descriptor/registry/manager factories and
a TestClient for the Neural Relay test suite.

IMPORTANT: Environment variables must be set BEFORE importing relay modules
that use pydantic-settings, so no real credential from the developer's
shell leaks into a test.
"""

import os

# Set test environment variables before importing relay modules
for _var in (
    "ANTHROPIC_API_KEY",
    "OPENAI_API_KEY",
    "XAI_API_KEY",
    "GOOGLE_AI_KEY",
    "CODEX_API_KEY",
    "GROQ_API_KEY",
    "PROVIDER_OVERRIDES",
):
    os.environ.pop(_var, None)
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["DEBUG"] = "false"

# Now safe to import everything else
import asyncio
from typing import Any

import pytest
from fastapi.testclient import TestClient

from relay.config import Settings, get_settings
from relay.dispatcher.handlers import ProviderAdapter
from relay.manager import ProviderManager
from relay.registry.models import (
    Capability,
    PerformanceMetrics,
    Pricing,
    PricingTier,
    Proficiency,
    ProviderDescriptor,
    ProviderRegistry,
    TaskType,
    WireFormat,
)


def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "asyncio: mark test as async")
    config.addinivalue_line(
        "markers", "integration: mark test as requiring real API calls"
    )
    config.addinivalue_line("markers", "slow: mark test as slow-running")


@pytest.fixture(autouse=True)
def reset_settings_cache():
    """
    Clear the cached settings between tests.

    This ensures each test sees the environment it set up.
    """
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class FakeAdapter(ProviderAdapter):
    """
    Adapter that never touches the network.

    Each provider key maps to a behaviour:
    - dict: returned as the raw response
    - Exception instance: raised
    - float: sleep that many seconds, then return a default response
    Keys without a behaviour succeed with a chat-completions shaped reply.
    """

    wire_format = WireFormat.OPENAI

    def __init__(self, behaviours: dict[str, Any] | None = None):
        super().__init__(client_factory=lambda descriptor: None)
        self.behaviours = dict(behaviours or {})
        self.calls: list[tuple[str, dict]] = []

    def _create_client(self, descriptor):
        return None

    @property
    def called_keys(self) -> list[str]:
        return [key for key, _ in self.calls]

    async def execute(self, descriptor, request):
        self.calls.append((descriptor.key, request))
        behaviour = self.behaviours.get(descriptor.key)

        if isinstance(behaviour, BaseException):
            raise behaviour
        if isinstance(behaviour, (int, float)):
            await asyncio.sleep(behaviour)
        if isinstance(behaviour, dict):
            return behaviour

        return default_response(descriptor.key)


def default_response(key: str, text: str = "ok") -> dict:
    """Chat-completions shaped raw response naming the serving provider."""
    return {
        "id": f"resp-{key}",
        "model": f"{key}-model",
        "provider": key,
        "choices": [{"index": 0, "message": {"role": "assistant", "content": text}}],
        "usage": {"prompt_tokens": 100, "completion_tokens": 50},
    }


@pytest.fixture
def make_descriptor():
    """
    Factory fixture for ProviderDescriptor objects.

    Usage:
        d = make_descriptor("a", {"code_generation": "expert"})
    """

    def _create(
        key: str,
        capabilities: dict[str, str] | None = None,
        api_key: str = "test-key-not-real",
        wire_format: WireFormat = WireFormat.OPENAI,
        languages: list[str] | None = None,
        frameworks: list[str] | None = None,
        cost_per_token: float = 0.00001,
        average_response_time_ms: float = 1000.0,
        uptime_percent: float = 99.9,
    ) -> ProviderDescriptor:
        capabilities = capabilities or {"code_generation": "expert"}
        return ProviderDescriptor(
            key=key,
            display_name=f"Engine {key}",
            endpoint=f"https://{key}.invalid/v1",
            model=f"{key}-model",
            api_key=api_key,
            wire_format=wire_format,
            context_window=100_000,
            capabilities=[
                Capability(
                    task_type=TaskType(task),
                    proficiency=Proficiency(proficiency),
                    languages=list(languages or ["All major languages"]),
                    frameworks=list(frameworks or []),
                )
                for task, proficiency in capabilities.items()
            ],
            pricing=Pricing(tier=PricingTier.STANDARD, cost_per_token=cost_per_token),
            performance_metrics=PerformanceMetrics(
                average_response_time_ms=average_response_time_ms,
                success_rate_percent=99.0,
                uptime_percent=uptime_percent,
            ),
        )

    return _create


@pytest.fixture
def fake_adapter():
    """Factory fixture for FakeAdapter instances."""

    def _create(behaviours: dict[str, Any] | None = None) -> FakeAdapter:
        return FakeAdapter(behaviours)

    return _create


@pytest.fixture
def make_manager(make_descriptor):
    """
    Factory fixture for ProviderManager instances backed by one FakeAdapter.

    Usage:
        manager, adapter = make_manager(
            [make_descriptor("a"), make_descriptor("b")],
            behaviours={"a": ProviderError("boom", provider="a")},
        )
    """

    def _create(
        descriptors: list[ProviderDescriptor],
        behaviours: dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> tuple[ProviderManager, FakeAdapter]:
        adapter = FakeAdapter(behaviours)
        adapters = {wire_format: adapter for wire_format in WireFormat}
        manager = ProviderManager(ProviderRegistry(descriptors), adapters, **kwargs)
        return manager, adapter

    return _create


@pytest.fixture
def three_experts(make_descriptor):
    """Three equally proficient code generation providers."""
    return [
        make_descriptor("a", {"code_generation": "expert"}),
        make_descriptor("b", {"code_generation": "expert"}),
        make_descriptor("c", {"code_generation": "expert"}),
    ]


@pytest.fixture
def full_settings():
    """Settings with every catalog credential configured."""
    return Settings(
        _env_file=None,
        anthropic_api_key="test-anthropic-key",
        openai_api_key="test-openai-key",
        xai_api_key="test-xai-key",
        google_ai_key="test-google-key",
        codex_api_key="test-codex-key",
        groq_api_key="test-groq-key",
    )


@pytest.fixture
def empty_settings():
    """Settings without any credential."""
    return Settings(_env_file=None)


@pytest.fixture
def test_client(make_manager, three_experts):
    """
    Create a FastAPI TestClient serving a manager with fake adapters.

    Yields (client, manager, adapter) so tests can shape provider
    behaviour and inspect the manager's state.
    """
    from relay.main import create_app

    manager, adapter = make_manager(three_experts)
    app = create_app(manager)

    with TestClient(app) as client:
        yield client, manager, adapter
