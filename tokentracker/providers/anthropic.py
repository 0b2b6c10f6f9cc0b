"""Anthropic provider profile (Claude models)."""

from typing import Optional

from ..core.pricing import DEFAULT_PRICING, PricingTable
from ..core.token_counter import TokenCache, estimate_response_tokens
from .base import ConfiguredProvider, ModelInfo, VendorProfile
from .responses import UsageFieldMap

NAME = "anthropic"

_CAPABILITIES = ("text", "chat", "tool-use", "image-understanding")

MODELS = {
    "claude-3-haiku": ModelInfo(
        NAME, "claude-3-haiku", 200000,
        "Claude 3 Haiku - fastest and most compact model", _CAPABILITIES
    ),
    "claude-3-sonnet": ModelInfo(
        NAME, "claude-3-sonnet", 200000,
        "Claude 3 Sonnet - balanced performance and intelligence", _CAPABILITIES
    ),
    "claude-3-opus": ModelInfo(
        NAME, "claude-3-opus", 200000,
        "Claude 3 Opus - most powerful model for complex tasks", _CAPABILITIES
    ),
}


def approximate_tokens(model: str, text: str) -> int:
    """Roughly 0.95 tokens per four characters, plus a fixed overhead of 5."""
    return len(text) * 95 // 400 + 5


def estimate_response(model: str, input_tokens: int) -> int:
    if "opus" in model:
        return input_tokens * 2
    if "sonnet" in model:
        return input_tokens * 3 // 2
    if "haiku" in model:
        return input_tokens
    return estimate_response_tokens(model, input_tokens)


PROFILE = VendorProfile(
    name=NAME,
    models=MODELS,
    approximate_tokens=approximate_tokens,
    usage_fields=UsageFieldMap(
        container_key="usage",
        input_key="input_tokens",
        output_key="output_tokens",
        container_attr="usage",
        input_attr="input_tokens",
        output_attr="output_tokens",
    ),
    default_pricing=DEFAULT_PRICING[NAME],
    per_message_overhead=6,
    estimate_response=estimate_response,
)


def anthropic_provider(pricing: PricingTable, cache: Optional[TokenCache] = None) -> ConfiguredProvider:
    """Create the Anthropic provider."""
    return ConfiguredProvider(PROFILE, pricing, cache)
