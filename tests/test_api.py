"""
API Endpoint Tests

Integration tests for REST API endpoints using FastAPI TestClient.
Validates request/response contracts, error handling, and endpoint behavior.
Every app under test serves a manager built on fake adapters.

Test Categories:
1. TestDispatchEndpoint - /dispatch success, fallback and failures
2. TestAnalyzeEndpoint - /analyze structured analysis
3. TestProviderEndpoints - /providers, /providers/active, /providers/best
4. TestAnalyticsEndpoint - /analytics read and clear
5. TestMetricsEndpoint - /metrics aggregates
6. TestHealthEndpoint - /health status
7. TestRootAndConfig - / and /config
8. TestClientDisconnect - Cancellation when the caller goes away
9. TestErrorHandling - Validation and HTTP error envelopes
"""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

from relay.config import get_settings
from relay.dispatcher.errors import ProviderError
from relay.main import create_app, run_until_disconnected

_VENDORS = ("claude", "anthropic", "openai", "gpt", "grok", "gemini", "groq", "llama")


@pytest.fixture
def make_client(make_manager):
    """
    Factory fixture for TestClients over custom descriptors.

    Usage:
        client, manager, adapter = make_client([make_descriptor("a")])
    """
    clients = []

    def _create(descriptors, behaviours=None, **kwargs):
        manager, adapter = make_manager(descriptors, behaviours, **kwargs)
        client = TestClient(create_app(manager))
        client.__enter__()
        clients.append(client)
        return client, manager, adapter

    yield _create

    for client in clients:
        client.__exit__(None, None, None)


class TestDispatchEndpoint:
    """Tests for POST /dispatch."""

    def test_dispatch_success(self, test_client):
        """A served request returns the branded raw response."""
        client, _, adapter = test_client

        response = client.post(
            "/dispatch", json={"prompt": "Create a React component", "task_type": "code_generation"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["result"]["model"] == "CroweCode Neural Engine v4.0"
        assert data["result"]["provider"] == "CroweCode™ Proprietary"
        assert data["result"]["choices"][0]["message"]["content"] == "ok"
        assert data["metadata"]["capabilities"] == "Advanced Reasoning + Multi-step Execution"
        assert adapter.called_keys == ["a"]

    def test_default_task_type(self, test_client):
        """task_type defaults to code_generation."""
        client, manager, _ = test_client

        client.post("/dispatch", json={"prompt": "test"})

        assert manager.tracker.get_logs_by_type("request")[0].task_type == "code_generation"

    def test_options_forwarded(self, test_client):
        """Options are flattened into the adapter payload."""
        client, _, adapter = test_client

        client.post(
            "/dispatch",
            json={"prompt": "test", "options": {"system": "Be terse", "max_tokens": 5}},
        )

        assert adapter.calls[0][1] == {"prompt": "test", "system": "Be terse", "max_tokens": 5}

    def test_fallback_is_invisible(self, test_client):
        """A failing first provider still yields 200."""
        client, manager, adapter = test_client
        adapter.behaviours["a"] = ProviderError("OpenAI returned 500", provider="a")

        response = client.post("/dispatch", json={"prompt": "test"})

        assert response.status_code == 200
        assert adapter.called_keys == ["a", "b"]
        assert manager.get_usage_analytics().total_errors == 1

    def test_all_providers_fail(self, test_client):
        """Exhaustion answers 503 with a branded message only."""
        client, _, adapter = test_client
        for key in ("a", "b", "c"):
            adapter.behaviours[key] = ProviderError(f"anthropic overloaded {key}", provider=key)

        response = client.post("/dispatch", json={"prompt": "test"})

        assert response.status_code == 503
        error = response.json()["error"]
        assert error["code"] == "PROVIDERS_EXHAUSTED"
        assert error["message"] == (
            "CroweCode™ Intelligence System is experiencing high demand. Please try again."
        )
        assert "anthropic" not in response.text.lower()

    def test_unsupported_task(self, test_client):
        """No provider declares the task: 400."""
        client, _, adapter = test_client

        response = client.post("/dispatch", json={"prompt": "test", "task_type": "testing"})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "UNSUPPORTED_TASK"
        assert adapter.calls == []

    def test_not_configured(self, make_client):
        """No provider at all: 503 NOT_CONFIGURED."""
        client, _, _ = make_client([])

        response = client.post("/dispatch", json={"prompt": "test"})

        assert response.status_code == 503
        error = response.json()["error"]
        assert error["code"] == "NOT_CONFIGURED"
        assert error["message"].endswith("is not configured. Please contact support.")

    def test_whitespace_prompt_rejected(self, test_client):
        """Whitespace-only prompts fail validation."""
        client, _, adapter = test_client

        response = client.post("/dispatch", json={"prompt": "   "})

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"
        assert adapter.calls == []

    def test_missing_prompt(self, test_client):
        """The prompt field is required."""
        client, _, _ = test_client

        response = client.post("/dispatch", json={"task_type": "code_generation"})

        assert response.status_code == 422
        assert "prompt" in response.json()["error"]["field"]


class TestAnalyzeEndpoint:
    """Tests for POST /analyze."""

    @pytest.fixture
    def analysis_client(self, make_client, make_descriptor):
        def _create(reply_text: str):
            reply = {"id": "msg", "content": [{"type": "text", "text": reply_text}]}
            return make_client(
                [make_descriptor("a", {"code_analysis": "expert"})], {"a": reply}
            )

        return _create

    def test_structured_analysis(self, analysis_client):
        """JSON replies are returned field by field."""
        client, _, _ = analysis_client(
            json.dumps({"completion": "c", "fixes": ["f1"], "documentation": "d"})
        )

        response = client.post(
            "/analyze",
            json={"code": "function add(a, b) { return a + b; }", "language": "javascript", "file_path": "utils.js"},
        )

        assert response.status_code == 200
        assert response.json() == {
            "completion": "c",
            "refactoring": "",
            "fixes": ["f1"],
            "optimization": "",
            "documentation": "d",
        }

    def test_plain_text_analysis(self, analysis_client):
        """Unparseable replies come back as documentation."""
        client, _, _ = analysis_client("Adds two numbers.")

        response = client.post("/analyze", json={"code": "x = 1", "language": "python"})

        assert response.status_code == 200
        assert response.json()["documentation"] == "Adds two numbers."
        assert response.json()["fixes"] == []

    def test_null_and_structured_fields(self, analysis_client):
        """Null and non-string fields are fitted to the response model."""
        client, _, _ = analysis_client(
            json.dumps(
                {
                    "completion": None,
                    "refactoring": {"steps": ["rename"]},
                    "fixes": None,
                    "optimization": None,
                    "documentation": "d",
                }
            )
        )

        response = client.post("/analyze", json={"code": "x = 1", "language": "python"})

        assert response.status_code == 200
        assert response.json() == {
            "completion": "",
            "refactoring": '{"steps": ["rename"]}',
            "fixes": [],
            "optimization": "",
            "documentation": "d",
        }

    def test_blank_code_rejected(self, analysis_client):
        """Code must not be blank."""
        client, _, _ = analysis_client("{}")

        response = client.post("/analyze", json={"code": "  \n ", "language": "python"})

        assert response.status_code == 422


class TestProviderEndpoints:
    """Tests for the provider endpoints."""

    def test_list_providers(self, test_client):
        """Providers are listed in registry order without endpoints or keys."""
        client, _, _ = test_client

        response = client.get("/providers")

        assert response.status_code == 200
        data = response.json()
        assert data["active"] == "a"
        assert data["total_providers"] == 3
        assert [p["key"] for p in data["providers"]] == ["a", "b", "c"]
        assert data["providers"][0]["capabilities"][0]["proficiency"] == "expert"
        assert ".invalid" not in response.text
        assert "test-key-not-real" not in response.text
        assert "a-model" not in response.text

    def test_catalog_listing_is_branded(self, make_client, full_settings):
        """The real catalog never names a vendor."""
        from relay.registry.models import ProviderRegistry

        registry = ProviderRegistry.from_settings(full_settings)
        client, _, _ = make_client(registry.list_available())

        response = client.get("/providers")

        assert response.json()["total_providers"] == 6
        names = " ".join(p["display_name"] for p in response.json()["providers"]).lower()
        assert not any(vendor in names for vendor in _VENDORS)

    def test_get_active(self, test_client):
        """The active provider is reported."""
        client, _, _ = test_client

        data = client.get("/providers/active").json()

        assert data["configured"] is True
        assert data["provider"]["key"] == "a"

    def test_get_active_without_providers(self, make_client):
        """No providers: configured is false."""
        client, _, _ = make_client([])

        data = client.get("/providers/active").json()

        assert data == {"configured": False, "provider": None}

    def test_switch_provider(self, test_client):
        """Switching is reflected and logged."""
        client, manager, _ = test_client

        response = client.post("/providers/active", json={"key": "b"})

        assert response.status_code == 200
        assert response.json()["provider"]["key"] == "b"
        assert manager.get_active_provider_key() == "b"
        assert manager.get_usage_analytics().total_switches == 1

    def test_switch_unknown_provider(self, test_client):
        """Unknown keys answer 404 and change nothing."""
        client, manager, _ = test_client

        response = client.post("/providers/active", json={"key": "non-existent-provider"})

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "UNKNOWN_PROVIDER"
        assert manager.get_active_provider_key() == "a"
        assert manager.get_usage_analytics().logs == []

    def test_best_provider(self, test_client):
        """The top-ranked provider is returned."""
        client, _, _ = test_client

        data = client.get("/providers/best", params={"task_type": "code_generation"}).json()

        assert data["provider"]["key"] == "a"

    def test_best_provider_unsupported(self, test_client):
        """Unsupported tasks give a null provider."""
        client, _, _ = test_client

        data = client.get(
            "/providers/best", params={"task_type": "testing", "language": "rust"}
        ).json()

        assert data["provider"] is None
        assert data["language"] == "rust"

    def test_best_provider_requires_task(self, test_client):
        """task_type is required."""
        client, _, _ = test_client

        assert client.get("/providers/best").status_code == 422


class TestAnalyticsEndpoint:
    """Tests for /analytics."""

    def test_analytics_after_dispatch(self, test_client):
        """Counters and logs reflect dispatch activity."""
        client, _, adapter = test_client
        adapter.behaviours["a"] = ProviderError("down", provider="a")
        client.post("/dispatch", json={"prompt": "test"})

        data = client.get("/analytics").json()

        assert data["total_requests"] == 2
        assert data["total_successes"] == 1
        assert data["total_errors"] == 1
        assert data["providers"] == ["a", "b"]
        assert data["last_activity"] is not None
        assert [entry["type"] for entry in data["logs"]] == [
            "request",
            "error",
            "request",
            "success",
        ]
        assert data["logs"][1]["error"] == "down"

    def test_clear_analytics(self, test_client):
        """DELETE clears the log."""
        client, _, _ = test_client
        client.post("/dispatch", json={"prompt": "test"})

        response = client.delete("/analytics")

        assert response.status_code == 204
        data = client.get("/analytics").json()
        assert data["total_requests"] == 0
        assert data["logs"] == []


class TestMetricsEndpoint:
    """Tests for /metrics."""

    def test_metrics_empty_state(self, test_client):
        """Metrics are zero before any dispatch."""
        client, _, _ = test_client

        data = client.get("/metrics").json()

        assert data["total_attempts"] == 0
        assert data["attempts_by_provider"] == {}

    def test_metrics_after_dispatch(self, test_client):
        """Attempts, tokens, cost and latency are aggregated."""
        client, _, _ = test_client
        client.post("/dispatch", json={"prompt": "test"})

        data = client.get("/metrics").json()

        assert data["total_attempts"] == 1
        assert data["attempts_by_task"] == {"code_generation": 1}
        assert data["attempts_by_provider"]["a"]["total_tokens"] == 150
        assert data["total_cost_usd"] > 0
        assert data["latency"]["count"] == 1


class TestHealthEndpoint:
    """Tests for /health."""

    def test_health_healthy(self, test_client):
        """Configured providers make the service healthy."""
        client, _, _ = test_client

        data = client.get("/health").json()

        assert data["status"] == "healthy"
        assert data["service"] == "neural-relay"
        assert {c["name"] for c in data["components"]} == {"manager", "registry"}
        assert data["uptime_seconds"] >= 0

    def test_health_degraded_without_providers(self, make_client):
        """No providers: degraded but still answering."""
        client, _, _ = make_client([])

        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "degraded"


class TestRootAndConfig:
    """Tests for / and /config."""

    def test_root(self, test_client):
        """Root lists the brand, model info and capabilities."""
        client, _, _ = test_client

        data = client.get("/").json()

        assert data["name"] == "CroweCode™ Intelligence System"
        assert "3 engines available" in data["model"]
        assert data["docs"] == "/docs"

    def test_config_excludes_secrets(self, test_client, monkeypatch):
        """Only booleans are reported for keys."""
        client, _, _ = test_client
        monkeypatch.setenv("OPENAI_API_KEY", "sk-should-not-leak")
        get_settings.cache_clear()

        response = client.get("/config")

        assert response.status_code == 200
        data = response.json()
        assert data["api_keys_configured"]["openai"] is True
        assert "sk-should-not-leak" not in response.text
        assert data["dispatch"]["provider_timeout_seconds"] == 60.0


class TestClientDisconnect:
    """Tests for run_until_disconnected()."""

    @pytest.mark.asyncio
    async def test_work_completes(self):
        """Finished work is returned when the client stays."""
        http_request = MagicMock()
        http_request.is_disconnected = AsyncMock(return_value=False)

        async def work():
            return {"ok": True}

        assert await run_until_disconnected(http_request, work()) == {"ok": True}

    @pytest.mark.asyncio
    async def test_work_errors_propagate(self):
        """Errors from the work reach the caller."""
        http_request = MagicMock()
        http_request.is_disconnected = AsyncMock(return_value=False)

        async def work():
            raise ProviderError("boom")

        with pytest.raises(ProviderError):
            await run_until_disconnected(http_request, work())

    @pytest.mark.asyncio
    async def test_disconnect_cancels_dispatch(self, make_manager, three_experts):
        """A disconnect cancels the dispatch and answers 499."""
        manager, adapter = make_manager(three_experts, {"a": 10.0})
        http_request = MagicMock()
        http_request.is_disconnected = AsyncMock(return_value=True)

        with pytest.raises(HTTPException) as exc_info:
            await run_until_disconnected(
                http_request,
                manager.execute_with_fallback({"prompt": "test"}, "code_generation"),
            )

        assert exc_info.value.status_code == 499
        assert exc_info.value.detail["code"] == "CLIENT_DISCONNECTED"
        # Nothing after the cancelled attempt was tried or logged
        await asyncio.sleep(0)
        assert adapter.called_keys in ([], ["a"])
        assert manager.get_usage_analytics().total_successes == 0
        assert manager.get_usage_analytics().total_errors == 0


class TestErrorHandling:
    """Tests for error envelopes."""

    def test_validation_error_format(self, test_client):
        """Validation errors use the error envelope."""
        client, _, _ = test_client

        response = client.post("/dispatch", json={"prompt": ""})

        assert response.status_code == 422
        error = response.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert "message" in error
        assert "field" in error

    def test_invalid_json_returns_422(self, test_client):
        """Malformed JSON is a validation error."""
        client, _, _ = test_client

        response = client.post(
            "/dispatch", content="not json", headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 422

    def test_method_not_allowed(self, test_client):
        """GET on a POST-only endpoint is 405."""
        client, _, _ = test_client

        assert client.get("/dispatch").status_code == 405

    def test_not_found_endpoint(self, test_client):
        """Unknown paths are 404."""
        client, _, _ = test_client

        assert client.get("/moderate").status_code == 404
