"""
Dispatcher module: Provider adapters and the dispatch error taxonomy.

This module provides a unified interface for executing requests against
upstream AI providers across several wire shapes. It handles
provider-specific API calls and error translation.

Key exports:
- ProviderAdapter: The adapter interface
- AnthropicAdapter, OpenAIAdapter, GroqAdapter: One adapter per wire shape
- build_adapters(): Default adapter per wire format
- TokenUsage, extract_token_usage(), extract_text(): Response helpers
- RelayError and subclasses: Dispatch error taxonomy
"""

from relay.dispatcher.errors import (
    ConfigurationError,
    FallbackExhaustedError,
    ProviderError,
    ProviderTimeoutError,
    RelayError,
    UnsupportedTaskError,
)
from relay.dispatcher.handlers import (
    # Data classes
    TokenUsage,
    # Adapters
    ProviderAdapter,
    AnthropicAdapter,
    OpenAIAdapter,
    GroqAdapter,
    build_adapters,
    # Response helpers
    build_conversation,
    extract_text,
    extract_token_usage,
    parse_json_content,
)

__all__ = [
    # Errors
    "RelayError",
    "ConfigurationError",
    "UnsupportedTaskError",
    "ProviderError",
    "ProviderTimeoutError",
    "FallbackExhaustedError",
    # Data classes
    "TokenUsage",
    # Adapters
    "ProviderAdapter",
    "AnthropicAdapter",
    "OpenAIAdapter",
    "GroqAdapter",
    "build_adapters",
    # Response helpers
    "build_conversation",
    "extract_text",
    "extract_token_usage",
    "parse_json_content",
]
