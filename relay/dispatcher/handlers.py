"""
Dispatcher Handlers - Provider-specific request execution.

This module handles the actual API calls to upstream providers, hiding the
differences between wire shapes behind one adapter interface:

    await adapter.execute(descriptor, request) -> dict

Key components:
- TokenUsage: Token consumption extracted from either response shape
- ProviderAdapter: The adapter interface
- AnthropicAdapter: Messages API (system prompt as a top-level field)
- OpenAIAdapter: Chat completions, also used by OpenAI-compatible hosts
- GroqAdapter: Chat completions through the Groq SDK
- build_adapters(): Default adapter per wire format

Adapters make exactly one attempt (SDK retries are disabled) and translate
SDK exceptions into ProviderError / ProviderTimeoutError. They return the
provider's raw response as a plain dict; nothing is normalised here.
"""

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import anthropic
import groq
import openai
from anthropic import AsyncAnthropic
from groq import AsyncGroq
from openai import AsyncOpenAI

from relay.dispatcher.errors import ProviderError, ProviderTimeoutError
from relay.registry.models import ProviderDescriptor, WireFormat

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 4096

# Options forwarded to chat-completions style APIs when present
_CHAT_OPTIONS = ("temperature", "top_p", "stop")


@dataclass
class TokenUsage:
    """
    Token usage reported by a provider.

    Used for cost calculation based on descriptor pricing.
    """

    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        """Total tokens consumed (input + output)."""
        return self.input_tokens + self.output_tokens


def extract_token_usage(response: dict[str, Any]) -> TokenUsage:
    """
    Read token usage from a raw response of either wire shape.

    Anthropic reports input_tokens/output_tokens, chat completions report
    prompt_tokens/completion_tokens. Missing usage yields zeros.
    """
    usage = response.get("usage") or {}
    if not isinstance(usage, dict):
        return TokenUsage()
    return TokenUsage(
        input_tokens=int(usage.get("input_tokens") or usage.get("prompt_tokens") or 0),
        output_tokens=int(
            usage.get("output_tokens") or usage.get("completion_tokens") or 0
        ),
    )


def extract_text(response: dict[str, Any]) -> str:
    """
    Pull the generated text out of a raw response of either wire shape.

    Returns:
        Concatenated text blocks (Anthropic) or the first choice's
        message content (chat completions); empty string if neither.
    """
    content = response.get("content")
    if isinstance(content, list):
        return "".join(
            block.get("text", "")
            for block in content
            if isinstance(block, dict) and block.get("type", "text") == "text"
        )

    choices = response.get("choices")
    if isinstance(choices, list) and choices:
        message = choices[0].get("message") or {}
        return message.get("content") or ""

    return ""


def parse_json_content(text: str | None) -> dict | None:
    """
    Parse a JSON object out of model text.

    Models asked for JSON do not always comply, so several strategies
    are tried in order:
    1. Direct JSON parse
    2. Extract from ```json code blocks
    3. Extract from ``` code blocks

    Args:
        text: Raw text generated by the model.

    Returns:
        Parsed dictionary, or None when no JSON object could be found.
    """
    if not text:
        return None

    # Strategy 1: Direct JSON parse
    try:
        parsed = json.loads(text)
        return parsed if isinstance(parsed, dict) else None
    except json.JSONDecodeError:
        pass

    # Strategy 2: Extract from ```json code block
    if "```json" in text:
        try:
            json_start = text.index("```json") + 7
            json_end = text.index("```", json_start)
            parsed = json.loads(text[json_start:json_end].strip())
            return parsed if isinstance(parsed, dict) else None
        except (ValueError, json.JSONDecodeError):
            pass

    # Strategy 3: Extract from any ``` code block
    if "```" in text:
        try:
            json_start = text.index("```") + 3
            # Skip language identifier if present (e.g., ```python)
            newline_pos = text.find("\n", json_start)
            if newline_pos != -1 and newline_pos < json_start + 20:
                json_start = newline_pos + 1
            json_end = text.index("```", json_start)
            parsed = json.loads(text[json_start:json_end].strip())
            return parsed if isinstance(parsed, dict) else None
        except (ValueError, json.JSONDecodeError):
            pass

    return None


def build_conversation(request: dict[str, Any]) -> tuple[str | None, list[dict]]:
    """
    Turn a dispatch payload into (system prompt, conversation messages).

    A payload either carries a ready ``messages`` list or a bare ``prompt``.
    System-role entries inside ``messages`` are dropped; only the
    ``system`` option sets the system prompt.
    """
    system = request.get("system")
    messages = request.get("messages")

    if messages:
        conversation = [
            {"role": m["role"], "content": m["content"]}
            for m in messages
            if m.get("role") in ("user", "assistant")
        ]
    else:
        conversation = [{"role": "user", "content": request.get("prompt", "")}]

    return system, conversation


class ProviderAdapter(ABC):
    """
    One vendor wire shape.

    SDK clients are created lazily, one per provider key, so a provider
    that is never selected never gets a client.
    """

    wire_format: WireFormat

    def __init__(self, client_factory: Callable[[ProviderDescriptor], Any] | None = None):
        self._client_factory = client_factory or self._create_client
        self._clients: dict[str, Any] = {}

    def client_for(self, descriptor: ProviderDescriptor) -> Any:
        """Get the SDK client for a provider (lazy initialization)."""
        client = self._clients.get(descriptor.key)
        if client is None:
            client = self._client_factory(descriptor)
            self._clients[descriptor.key] = client
            logger.debug(f"Initialized {self.wire_format.value} client for {descriptor.key}")
        return client

    @abstractmethod
    def _create_client(self, descriptor: ProviderDescriptor) -> Any:
        """Build the SDK client for a provider."""

    @abstractmethod
    async def execute(
        self, descriptor: ProviderDescriptor, request: dict[str, Any]
    ) -> dict[str, Any]:
        """
        Execute one request against a provider.

        Args:
            descriptor: Provider to call
            request: Dispatch payload ({prompt, ...options})

        Returns:
            The provider's raw response as a dict

        Raises:
            ProviderError: On non-2xx status, transport failure or bad reply
            ProviderTimeoutError: When the SDK reports a timeout
        """


class AnthropicAdapter(ProviderAdapter):
    """
    Adapter for the Messages API.

    The system prompt travels as a top-level ``system`` field and
    ``max_tokens`` is mandatory.
    """

    wire_format = WireFormat.ANTHROPIC

    def _create_client(self, descriptor: ProviderDescriptor) -> AsyncAnthropic:
        return AsyncAnthropic(
            api_key=descriptor.api_key,
            base_url=descriptor.endpoint,
            max_retries=0,
        )

    async def execute(
        self, descriptor: ProviderDescriptor, request: dict[str, Any]
    ) -> dict[str, Any]:
        client = self.client_for(descriptor)
        system, messages = build_conversation(request)

        kwargs: dict[str, Any] = {
            "model": descriptor.model,
            "max_tokens": request.get("max_tokens", DEFAULT_MAX_TOKENS),
            "messages": messages,
        }
        if system:
            kwargs["system"] = system
        if "temperature" in request:
            kwargs["temperature"] = request["temperature"]
        if "top_p" in request:
            kwargs["top_p"] = request["top_p"]
        if "stop" in request:
            kwargs["stop_sequences"] = request["stop"]

        try:
            response = await client.messages.create(**kwargs)
        except anthropic.APITimeoutError as e:
            raise ProviderTimeoutError(provider=descriptor.key) from e
        except anthropic.APIStatusError as e:
            raise ProviderError(
                f"Provider returned HTTP {e.status_code}",
                provider=descriptor.key,
                status_code=e.status_code,
            ) from e
        except anthropic.APIError as e:
            raise ProviderError(
                f"Provider request failed: {e.message}", provider=descriptor.key
            ) from e

        return response.model_dump()


class _ChatCompletionsAdapter(ProviderAdapter):
    """Shared request building for chat-completions style APIs."""

    # SDK module whose exception classes this adapter translates
    _sdk: Any = None

    async def execute(
        self, descriptor: ProviderDescriptor, request: dict[str, Any]
    ) -> dict[str, Any]:
        client = self.client_for(descriptor)
        system, conversation = build_conversation(request)

        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.extend(conversation)

        kwargs: dict[str, Any] = {
            "model": descriptor.model,
            "messages": messages,
            "max_tokens": request.get("max_tokens", DEFAULT_MAX_TOKENS),
        }
        for option in _CHAT_OPTIONS:
            if option in request:
                kwargs[option] = request[option]

        sdk = self._sdk
        try:
            response = await client.chat.completions.create(**kwargs)
        except sdk.APITimeoutError as e:
            raise ProviderTimeoutError(provider=descriptor.key) from e
        except sdk.APIStatusError as e:
            raise ProviderError(
                f"Provider returned HTTP {e.status_code}",
                provider=descriptor.key,
                status_code=e.status_code,
            ) from e
        except sdk.APIError as e:
            raise ProviderError(
                f"Provider request failed: {e.message}", provider=descriptor.key
            ) from e

        return response.model_dump()


class OpenAIAdapter(_ChatCompletionsAdapter):
    """
    Adapter for chat completions.

    Serves every OpenAI-compatible host; the descriptor's endpoint is
    used as the client's base URL.
    """

    wire_format = WireFormat.OPENAI
    _sdk = openai

    def _create_client(self, descriptor: ProviderDescriptor) -> AsyncOpenAI:
        return AsyncOpenAI(
            api_key=descriptor.api_key,
            base_url=descriptor.endpoint,
            max_retries=0,
        )


class GroqAdapter(_ChatCompletionsAdapter):
    """Adapter for chat completions through the Groq SDK."""

    wire_format = WireFormat.GROQ
    _sdk = groq

    def _create_client(self, descriptor: ProviderDescriptor) -> AsyncGroq:
        return AsyncGroq(
            api_key=descriptor.api_key,
            base_url=descriptor.endpoint,
            max_retries=0,
        )


def build_adapters() -> dict[WireFormat, ProviderAdapter]:
    """
    Default adapter for every wire format.

    Returns:
        Mapping from WireFormat to a fresh adapter instance
    """
    return {
        WireFormat.ANTHROPIC: AnthropicAdapter(),
        WireFormat.OPENAI: OpenAIAdapter(),
        WireFormat.GROQ: GroqAdapter(),
    }
