"""
Task helpers - convenience calls over a ProviderManager.

Thin wrappers that fix the task type and build the payload, so callers can
say generate_code(manager, "...") instead of assembling a request by hand.
Errors from the manager propagate unchanged.
"""

import json
import logging
from typing import TYPE_CHECKING, Any

from relay.dispatcher.handlers import extract_text, parse_json_content
from relay.manager.branding import BrandIdentity
from relay.registry.models import TaskType

if TYPE_CHECKING:
    from relay.manager.provider_manager import ProviderManager

logger = logging.getLogger(__name__)

ANALYSIS_SYSTEM_PROMPT = """You are a senior code reviewer.

Respond with ONLY a JSON object with these keys:
- "completion": the code completed where it is unfinished
- "refactoring": a cleaner version of the code
- "fixes": a list of concrete bug fixes, each a short string
- "optimization": a faster or leaner version of the code
- "documentation": documentation for the code

Do not include any text outside the JSON object."""

_ANALYSIS_DEFAULTS: dict[str, Any] = {
    "completion": "",
    "refactoring": "",
    "fixes": [],
    "optimization": "",
    "documentation": "",
}

CAPABILITY_FEATURES = [
    "256K context window",
    "Advanced reasoning",
    "Multi-step execution",
    "Code optimization",
    "Security analysis",
    "Pattern recognition",
]


async def generate_code(
    manager: "ProviderManager", prompt: str, **options: Any
) -> dict[str, Any]:
    """Dispatch a code generation task with {prompt, ...options}."""
    return await manager.execute_with_fallback(
        {"prompt": prompt, **options}, TaskType.CODE_GENERATION.value
    )


async def generate_completion(
    manager: "ProviderManager", prompt: str, **options: Any
) -> dict[str, Any]:
    """Dispatch a code completion task with {prompt, ...options}."""
    return await manager.execute_with_fallback(
        {"prompt": prompt, **options}, TaskType.CODE_COMPLETION.value
    )


async def analyze_code(
    manager: "ProviderManager",
    code: str,
    language: str,
    file_path: str | None = None,
) -> dict[str, Any]:
    """
    Ask for completion, refactoring, fixes, optimization and documentation.

    The model is asked for JSON. When the reply cannot be parsed, the raw
    text is returned as the documentation and every other field is empty.

    Args:
        manager: Manager to dispatch through
        code: Source code to analyze
        language: Language of the code
        file_path: Optional path, included for context

    Returns:
        Dict with completion, refactoring, fixes, optimization, documentation
    """
    location = f" from {file_path}" if file_path else ""
    prompt = f"Analyze this {language} code{location}:\n\n{code}"

    raw = await manager.execute_with_fallback(
        {"prompt": prompt, "system": ANALYSIS_SYSTEM_PROMPT},
        TaskType.CODE_ANALYSIS.value,
    )

    text = extract_text(raw)
    parsed = parse_json_content(text)
    if parsed is None:
        logger.warning("Analysis reply was not JSON, returning it as documentation")
        return {**_ANALYSIS_DEFAULTS, "fixes": [], "documentation": text}

    return {key: _coerce_field(key, parsed.get(key)) for key in _ANALYSIS_DEFAULTS}


def _coerce_field(key: str, value: Any) -> Any:
    """
    Fit one parsed analysis value to its field type.

    Models sometimes answer null or the wrong type: text fields become
    strings (structured values as JSON) and fixes always becomes a list.
    """
    if key == "fixes":
        if value is None:
            return []
        return list(value) if isinstance(value, (list, tuple)) else [value]

    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value)


def get_ai_capabilities(identity: BrandIdentity | None = None) -> dict[str, Any]:
    """
    Static, vendor-free capability statement.

    Never mentions providers, keys or endpoints.
    """
    identity = identity or BrandIdentity()
    return {
        "name": identity.name,
        "version": "4.0",
        "features": list(CAPABILITY_FEATURES),
        "powered_by": "Proprietary Neural Network",
    }
